import hashlib
import struct

import base58
import pytest
from solders.keypair import Keypair

from nosdeploy.config.nosana_tokens import JOBS_PROGRAM_ID, SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID
from nosdeploy.engines.execution.addresses import derive_associated_token_address, derive_vault_address
from nosdeploy.engines.execution.instructions import LIST_DISCRIMINATOR, build_list_instruction, ipfs_digest
from nosdeploy.errors import EncodingError


def _build(ipfs_hash: str, timeout: int = 3600, **overrides):
    keys = {
        "job": Keypair().pubkey(),
        "run": Keypair().pubkey(),
        "market": Keypair().pubkey(),
        "wallet": Keypair().pubkey(),
    }
    keys.update(overrides)
    return keys, build_list_instruction(ipfs_hash=ipfs_hash, timeout_seconds=timeout, **keys)


def test_discriminator_is_anchor_sighash_of_list() -> None:
    assert LIST_DISCRIMINATOR == hashlib.sha256(b"global:list").digest()[:8]


def test_data_layout(ipfs_hash: str) -> None:
    _, ix = _build(ipfs_hash, timeout=3600)
    data = bytes(ix.data)
    assert len(data) == 48
    assert data[:8] == LIST_DISCRIMINATOR
    assert data[8:40] == bytes(range(32))
    assert struct.unpack("<Q", data[40:48])[0] == 3600


def test_account_order_and_flags(ipfs_hash: str) -> None:
    keys, ix = _build(ipfs_hash)
    assert ix.program_id == JOBS_PROGRAM_ID

    expected = [
        (keys["job"], True, True),
        (keys["market"], False, True),
        (keys["run"], True, True),
        (derive_associated_token_address(keys["wallet"]), False, True),
        (derive_vault_address(keys["market"]), False, True),
        (keys["wallet"], True, True),
        (keys["wallet"], True, False),
        (TOKEN_PROGRAM_ID, False, False),
        (SYSTEM_PROGRAM_ID, False, False),
    ]
    actual = [(m.pubkey, m.is_signer, m.is_writable) for m in ix.accounts]
    assert actual == expected


def test_zero_timeout_is_accepted(ipfs_hash: str) -> None:
    _, ix = _build(ipfs_hash, timeout=0)
    assert bytes(ix.data)[40:] == bytes(8)


def test_short_content_address_rejected() -> None:
    short_hash = base58.b58encode(b"\x12\x20" + bytes(31)).decode()
    with pytest.raises(EncodingError):
        _build(short_hash)


@pytest.mark.parametrize("bad", ["", "0OIl", "QmNotBase58!!"])
def test_invalid_base58_rejected(bad: str) -> None:
    with pytest.raises(EncodingError):
        ipfs_digest(bad)


@pytest.mark.parametrize("timeout", [-1, 2 ** 64, 1.5, True])
def test_timeout_out_of_range_rejected(ipfs_hash: str, timeout) -> None:
    with pytest.raises(EncodingError):
        _build(ipfs_hash, timeout=timeout)


def test_bad_market_address_rejected(ipfs_hash: str) -> None:
    with pytest.raises(EncodingError):
        _build(ipfs_hash, market="nope")
