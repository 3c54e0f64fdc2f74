"""
funding.py - Decide how much SOL and NOS to move into a deployment vault

Read-only: the planner inspects wallet, market and (optionally) vault state
and returns a FundingPlan. Nothing is cached; every call re-reads the chain,
so calling it twice in a row is safe.

Market account layout (Jobs program):
    [40:48] job price in NOS micro-units, u64 little-endian
SPL token account layout:
    [64:72] amount, u64 little-endian
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from loguru import logger
from solders.pubkey import Pubkey

from nosdeploy.config.nosana_tokens import LAMPORTS_PER_SOL, NOS, SOL, SolanaToken
from nosdeploy.config.settings import FundingSettings
from nosdeploy.engines.execution.addresses import (
    AddressLike,
    derive_associated_token_address,
    parse_pubkey,
    short,
)
from nosdeploy.errors import InsufficientFundsError, MarketAccountError
from nosdeploy.ports.ledger import LedgerPort


MARKET_PRICE_OFFSET = 40
MARKET_MIN_LEN = 48
TOKEN_AMOUNT_OFFSET = 64
TOKEN_ACCOUNT_MIN_LEN = 72


def read_u64(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


def token_account_amount(data: Optional[bytes]) -> int:
    """Amount held by an SPL token account; 0 when the account is absent or short."""
    if not data or len(data) < TOKEN_ACCOUNT_MIN_LEN:
        return 0
    return read_u64(data, TOKEN_AMOUNT_OFFSET)


@dataclass(frozen=True)
class MarketSnapshot:
    market: Pubkey
    job_price: int  # NOS micro-units

    @property
    def job_price_nos(self) -> Decimal:
        return Decimal(self.job_price) / (10 ** NOS.decimals)


@dataclass(frozen=True)
class FundingPlan:
    snapshot: MarketSnapshot
    wallet_lamports: int
    native_lamports: int
    token_amount: int
    token_deferred: bool = False
    required: bool = True

    @property
    def native_sol(self) -> Decimal:
        return Decimal(self.native_lamports) / LAMPORTS_PER_SOL

    @property
    def token_nos(self) -> Decimal:
        return Decimal(self.token_amount) / (10 ** NOS.decimals)

    def ensure_affordable(self) -> "FundingPlan":
        """Raise when the market price could not be funded for lack of SOL."""
        if self.token_deferred:
            raise InsufficientFundsError(
                f"wallet holds {self.wallet_lamports / LAMPORTS_PER_SOL:.6f} SOL; "
                f"need SOL for fees before transferring {self.snapshot.job_price_nos} NOS"
            )
        return self


class FundingPlanner:
    def __init__(
        self,
        ledger: LedgerPort,
        settings: Optional[FundingSettings] = None,
        token: SolanaToken = NOS,
    ):
        self.ledger = ledger
        self.settings = settings or FundingSettings()
        self.token = token

    @property
    def target_topup_lamports(self) -> int:
        return SOL.to_base_units(self.settings.target_topup_sol)

    @property
    def fee_buffer_lamports(self) -> int:
        return SOL.to_base_units(self.settings.fee_buffer_sol)

    @property
    def min_lamports_for_token(self) -> int:
        return SOL.to_base_units(self.settings.min_sol_for_token_transfer)

    async def read_market(self, market: AddressLike) -> MarketSnapshot:
        market_pk = parse_pubkey(market, "market")
        data = await self.ledger.get_account_data(market_pk)
        if data is None:
            raise MarketAccountError(f"market account {market_pk} not found")
        if len(data) < MARKET_MIN_LEN:
            raise MarketAccountError(
                f"market account {market_pk} data is {len(data)} bytes, need at least {MARKET_MIN_LEN}"
            )
        return MarketSnapshot(market=market_pk, job_price=read_u64(data, MARKET_PRICE_OFFSET))

    async def plan(
        self,
        wallet: AddressLike,
        market: AddressLike,
        vault: Optional[AddressLike] = None,
    ) -> FundingPlan:
        """
        Compute native and token amounts for one funding transaction.

        Raises:
            MarketAccountError: market missing or too short to hold a price.
            InsufficientFundsError: wallet cannot cover the fee buffer.
        """
        wallet_pk = parse_pubkey(wallet, "wallet")
        snapshot = await self.read_market(market)
        wallet_lamports = await self.ledger.get_balance(wallet_pk)

        native = min(self.target_topup_lamports, wallet_lamports - self.fee_buffer_lamports)
        if native <= 0:
            raise InsufficientFundsError(
                f"wallet {short(wallet_pk)} holds {wallet_lamports} lamports, "
                f"below the {self.fee_buffer_lamports} lamport fee buffer"
            )

        token_amount = 0
        token_deferred = False
        if snapshot.job_price > 0:
            if wallet_lamports >= self.min_lamports_for_token:
                token_amount = snapshot.job_price
            else:
                token_deferred = True
                logger.warning(
                    f"FUNDING_TOKEN_DEFERRED | wallet={short(wallet_pk)} | lamports={wallet_lamports} "
                    f"| min={self.min_lamports_for_token}"
                )

        required = True
        if vault is not None and not token_deferred:
            required = await self._vault_needs_funding(parse_pubkey(vault, "vault"), native, snapshot.job_price)

        plan = FundingPlan(
            snapshot=snapshot,
            wallet_lamports=wallet_lamports,
            native_lamports=native,
            token_amount=token_amount,
            token_deferred=token_deferred,
            required=required,
        )
        logger.info(
            f"FUNDING_PLAN | market={short(snapshot.market)} | price={snapshot.job_price_nos} NOS "
            f"| sol={plan.native_sol} | nos={plan.token_nos} | required={required}"
        )
        return plan

    async def _vault_needs_funding(self, vault: Pubkey, native: int, token: int) -> bool:
        vault_lamports = await self.ledger.get_balance(vault)
        vault_token = token_account_amount(
            await self.ledger.get_account_data(derive_associated_token_address(vault, self.token.mint))
        )
        logger.debug(f"VAULT_BALANCE | vault={short(vault)} | lamports={vault_lamports} | token={vault_token}")
        return vault_lamports < native or vault_token < token


__all__ = [
    "MarketSnapshot",
    "FundingPlan",
    "FundingPlanner",
    "read_u64",
    "token_account_amount",
]
