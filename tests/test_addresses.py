import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from nosdeploy.config.nosana_tokens import ASSOCIATED_TOKEN_PROGRAM_ID, JOBS_PROGRAM_ID, NOS, TOKEN_PROGRAM_ID
from nosdeploy.engines.execution.addresses import (
    derive_associated_token_address,
    derive_vault_address,
    parse_pubkey,
)
from nosdeploy.errors import EncodingError


def test_ata_is_pda_of_owner_token_program_and_mint() -> None:
    owner = Keypair().pubkey()
    expected, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(NOS.mint_pubkey)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    assert derive_associated_token_address(owner) == expected
    assert derive_associated_token_address(str(owner), NOS.mint) == expected


def test_vault_is_pda_of_market_and_mint() -> None:
    market = Keypair().pubkey()
    expected, _ = Pubkey.find_program_address([bytes(market), bytes(NOS.mint_pubkey)], JOBS_PROGRAM_ID)
    assert derive_vault_address(market) == expected
    assert derive_vault_address(str(market)) == expected


def test_vault_differs_per_market() -> None:
    assert derive_vault_address(Keypair().pubkey()) != derive_vault_address(Keypair().pubkey())


@pytest.mark.parametrize("bad", ["", "   ", "not-a-key", "0OIl" * 11])
def test_parse_pubkey_rejects_garbage(bad: str) -> None:
    with pytest.raises(EncodingError):
        parse_pubkey(bad, "market")


def test_parse_pubkey_passes_through_pubkey() -> None:
    pk = Keypair().pubkey()
    assert parse_pubkey(pk) is pk
