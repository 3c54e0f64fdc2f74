"""
addresses.py - Key and address helpers

Derived addresses (vault PDA, associated token accounts) are recomputed on
every call; nothing here caches or touches the network.
"""

from __future__ import annotations

from typing import Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from nosdeploy.config.nosana_tokens import JOBS_PROGRAM_ID, NOS
from nosdeploy.errors import EncodingError


AddressLike = Union[str, Pubkey]


def parse_pubkey(value: AddressLike, label: str = "address") -> Pubkey:
    """Accept a Pubkey or base58 string; anything else raises EncodingError."""
    if isinstance(value, Pubkey):
        return value
    if not isinstance(value, str) or not value.strip():
        raise EncodingError(f"{label} is empty")
    try:
        return Pubkey.from_string(value.strip())
    except Exception as e:  # noqa: BLE001
        raise EncodingError(f"invalid {label} {value!r}: {e}") from e


def generate_keypair() -> Keypair:
    """Fresh ephemeral keypair (job and run accounts)."""
    return Keypair()


def derive_vault_address(market: AddressLike, mint: AddressLike = NOS.mint, program_id: Pubkey = JOBS_PROGRAM_ID) -> Pubkey:
    """Market vault PDA: seeds [market, mint] under the Jobs program."""
    market_pk = parse_pubkey(market, "market")
    mint_pk = parse_pubkey(mint, "mint")
    vault, _bump = Pubkey.find_program_address([bytes(market_pk), bytes(mint_pk)], program_id)
    return vault


def derive_associated_token_address(owner: AddressLike, mint: AddressLike = NOS.mint) -> Pubkey:
    owner_pk = parse_pubkey(owner, "owner")
    mint_pk = parse_pubkey(mint, "mint")
    return get_associated_token_address(owner_pk, mint_pk)


def short(address: AddressLike, n: int = 8) -> str:
    text = str(address)
    return f"{text[:n]}..." if len(text) > n else text


__all__ = [
    "AddressLike",
    "parse_pubkey",
    "generate_keypair",
    "derive_vault_address",
    "derive_associated_token_address",
    "short",
]
