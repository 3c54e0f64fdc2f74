from decimal import Decimal

import pytest

from nosdeploy.config.nosana_tokens import JOBS_PROGRAM_ID, NOS, get_token, load_extra_tokens


def test_nos_mint_and_jobs_program_are_mainnet_addresses() -> None:
    assert get_token("NOS").mint == "nosXBVoaCTtYdLvKY6Csb4AC8JCdQKKAaWYtx2ZMoo7"
    assert get_token("NOS").decimals == 6
    assert str(JOBS_PROGRAM_ID) == "nosJhNRqr2bc9g1nfGDcXXTXvYUmxD4cVwy2pMWhrYM"


def test_get_token_is_case_insensitive() -> None:
    assert get_token("nos").mint == get_token("NOS").mint


def test_get_token_unknown_symbol_raises() -> None:
    with pytest.raises(KeyError):
        get_token("BONK")


def test_to_base_units_scales_by_decimals() -> None:
    assert NOS.to_base_units(Decimal("2.0")) == 2_000_000
    assert get_token("SOL").to_base_units(Decimal("0.003")) == 3_000_000


def test_load_extra_tokens_overrides_and_skips_malformed() -> None:
    devnet_mint = "devr1BGQndEW5k5zfvG5FsLyZv1Ap73vNgAHcQ9sUVP"
    tokens = load_extra_tokens(f"NOS={devnet_mint}:6, junk, FOO=:x")
    assert tokens["NOS"].mint == devnet_mint
    assert "FOO" not in tokens
    # module-level map untouched
    assert get_token("NOS").mint == NOS.mint
