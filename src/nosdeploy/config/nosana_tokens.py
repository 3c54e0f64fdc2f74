"""
Nosana token and program universe.

Kept small so the encoder, the funding code and tests import the same
addresses. If a mint or program id changes, update the constants below or
pass an override via `load_extra_tokens`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class SolanaToken:
    symbol: str
    mint: str
    decimals: int

    @property
    def mint_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.mint)

    def to_base_units(self, amount) -> int:
        return int(amount * (10 ** self.decimals))


# NOTE: mainnet addresses; the Jobs program is the one the Nosana SDK posts to.
SOL = SolanaToken(symbol="SOL", mint="So11111111111111111111111111111111111111112", decimals=9)
NOS = SolanaToken(symbol="NOS", mint="nosXBVoaCTtYdLvKY6Csb4AC8JCdQKKAaWYtx2ZMoo7", decimals=6)

JOBS_PROGRAM_ID = Pubkey.from_string("nosJhNRqr2bc9g1nfGDcXXTXvYUmxD4cVwy2pMWhrYM")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")

LAMPORTS_PER_SOL = 10 ** SOL.decimals


TOKEN_MAP: Dict[str, SolanaToken] = {t.symbol: t for t in [SOL, NOS]}


def load_extra_tokens(extra_tokens_str: Optional[str] = None) -> Dict[str, SolanaToken]:
    """Merge extra tokens from a config string into a copy of TOKEN_MAP.

    Format (comma-separated):
        "NOS=<mint>:<decimals>,FOO=<mint>:<decimals>"

    Used at boot to point NOS at a devnet mint. Malformed entries are skipped.
    """
    token_map = TOKEN_MAP.copy()

    if not extra_tokens_str or not extra_tokens_str.strip():
        return token_map

    for entry in [p.strip() for p in extra_tokens_str.split(",") if p.strip()]:
        if "=" not in entry:
            continue
        sym, rest = entry.split("=", 1)
        sym = sym.strip().upper()
        if not sym or ":" not in rest:
            continue
        mint, dec_str = (part.strip() for part in rest.split(":", 1))
        if not mint or not dec_str:
            continue
        try:
            decimals = int(dec_str)
        except ValueError:
            continue
        token_map[sym] = SolanaToken(symbol=sym, mint=mint, decimals=decimals)

    return token_map


def get_token(symbol: str, token_map: Optional[Dict[str, SolanaToken]] = None) -> SolanaToken:
    tokens = token_map if token_map is not None else TOKEN_MAP
    key = symbol.upper()
    if key not in tokens:
        raise KeyError(f"Token not configured: {symbol}")
    return tokens[key]


__all__ = [
    "SolanaToken",
    "SOL",
    "NOS",
    "JOBS_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "SYSTEM_PROGRAM_ID",
    "LAMPORTS_PER_SOL",
    "TOKEN_MAP",
    "get_token",
    "load_extra_tokens",
]
