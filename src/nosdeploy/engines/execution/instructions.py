"""
instructions.py - Jobs program `list` instruction encoder

Layout of the instruction data:
    [0:8]   method selector, sha256("global:list")[:8]
    [8:40]  32-byte digest of the job definition (IPFS CIDv0 without the 0x12 0x20 prefix)
    [40:48] job timeout in seconds, u64 little-endian

The function either returns a complete instruction or raises; it never
returns a partially filled one.
"""

from __future__ import annotations

import hashlib
import struct

import base58
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from nosdeploy.config.nosana_tokens import JOBS_PROGRAM_ID, NOS, SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID
from nosdeploy.engines.execution.addresses import (
    AddressLike,
    derive_associated_token_address,
    derive_vault_address,
    parse_pubkey,
)
from nosdeploy.errors import EncodingError


IPFS_MIN_DECODED_LEN = 34
IPFS_DIGEST_SLICE = slice(2, 34)
U64_MAX = 2 ** 64 - 1


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


LIST_DISCRIMINATOR = sighash("list")


def ipfs_digest(ipfs_hash: str) -> bytes:
    """Decode a base58 content address and return its 32 digest bytes."""
    if not ipfs_hash or not isinstance(ipfs_hash, str):
        raise EncodingError("ipfs hash is empty")
    try:
        decoded = base58.b58decode(ipfs_hash.strip())
    except ValueError as e:
        raise EncodingError(f"ipfs hash is not valid base58: {ipfs_hash!r}") from e
    if len(decoded) < IPFS_MIN_DECODED_LEN:
        raise EncodingError(
            f"ipfs hash decodes to {len(decoded)} bytes, need at least {IPFS_MIN_DECODED_LEN}"
        )
    return decoded[IPFS_DIGEST_SLICE]


def encode_list_data(ipfs_hash: str, timeout_seconds: int) -> bytes:
    if isinstance(timeout_seconds, bool) or not isinstance(timeout_seconds, int):
        raise EncodingError(f"timeout must be an integer number of seconds, got {timeout_seconds!r}")
    if timeout_seconds < 0 or timeout_seconds > U64_MAX:
        raise EncodingError(f"timeout {timeout_seconds} does not fit in u64")
    return LIST_DISCRIMINATOR + ipfs_digest(ipfs_hash) + struct.pack("<Q", timeout_seconds)


def build_list_instruction(
    job: AddressLike,
    run: AddressLike,
    market: AddressLike,
    wallet: AddressLike,
    ipfs_hash: str,
    timeout_seconds: int,
    program_id: Pubkey = JOBS_PROGRAM_ID,
    mint: AddressLike = NOS.mint,
) -> Instruction:
    """
    Build the Jobs program `list` instruction.

    `wallet` pays for the job and run accounts and authorises the NOS
    transfer from its associated token account into the market vault.

    Raises:
        EncodingError: bad address, short content address, timeout out of range.
    """
    job_pk = parse_pubkey(job, "job")
    run_pk = parse_pubkey(run, "run")
    market_pk = parse_pubkey(market, "market")
    wallet_pk = parse_pubkey(wallet, "wallet")

    data = encode_list_data(ipfs_hash, timeout_seconds)

    accounts = [
        AccountMeta(pubkey=job_pk, is_signer=True, is_writable=True),
        AccountMeta(pubkey=market_pk, is_signer=False, is_writable=True),
        AccountMeta(pubkey=run_pk, is_signer=True, is_writable=True),
        AccountMeta(pubkey=derive_associated_token_address(wallet_pk, mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=derive_vault_address(market_pk, mint, program_id), is_signer=False, is_writable=True),
        # payer
        AccountMeta(pubkey=wallet_pk, is_signer=True, is_writable=True),
        # authority
        AccountMeta(pubkey=wallet_pk, is_signer=True, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]

    return Instruction(program_id, data, accounts)


__all__ = [
    "LIST_DISCRIMINATOR",
    "sighash",
    "ipfs_digest",
    "encode_list_data",
    "build_list_instruction",
]
