"""
transaction_engine.py - Build, sign, send and confirm transactions

Rules:
1. Signers are checked against the compiled message BEFORE any network call.
2. A transaction whose signature already has a terminal status is never
   resubmitted; the recorded outcome is returned instead.
3. Confirmation is polled on a fixed interval until a terminal status or the
   deadline. Status fetch errors are logged and polling continues.
4. A send that fails in transport is not a failure: the known signature is
   polled like any sent transaction.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

import httpx
from loguru import logger
from solana.exceptions import SolanaRpcException
from solana.rpc.commitment import Confirmed, Finalized
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus, TransactionStatus

from nosdeploy.config.settings import ConfirmationSettings
from nosdeploy.errors import MissingSignerError, TransactionFailed, TransactionTimedOut
from nosdeploy.ports.ledger import LedgerPort


SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]

# Transport-level send failures: the transaction may have been broadcast.
# Anything else raised by send (preflight / simulation rejection) is FAILED.
SEND_UNCERTAIN_ERRORS = (httpx.TransportError, SolanaRpcException, asyncio.TimeoutError, OSError)


# =============================================================================
# OUTCOME CLASSIFICATION
# =============================================================================

class TxOutcome(Enum):
    CONFIRMED = "confirmed"    # confirmed or finalized on-chain
    FAILED = "failed"          # program error, or rejected on send
    TIMED_OUT = "timed_out"    # no terminal status before the deadline


@dataclass
class TxResult:
    """Result of a submission with enough context to decide what to do next."""
    outcome: TxOutcome
    signature: Optional[str] = None
    error_message: Optional[str] = None
    send_time: Optional[datetime] = None
    confirm_time: Optional[datetime] = None
    elapsed: float = 0.0
    already_landed: bool = False

    @property
    def is_success(self) -> bool:
        return self.outcome is TxOutcome.CONFIRMED

    def raise_for_outcome(self) -> "TxResult":
        if self.outcome is TxOutcome.FAILED:
            raise TransactionFailed(self.error_message or "transaction failed", self.signature)
        if self.outcome is TxOutcome.TIMED_OUT:
            raise TransactionTimedOut(self.signature or "<unsent>", self.elapsed)
        return self


def classify_status(status: Optional[TransactionStatus]) -> Optional[TxOutcome]:
    """Map a signature status to a terminal outcome, or None while still pending."""
    if status is None:
        return None
    if status.err is not None:
        return TxOutcome.FAILED
    if status.confirmation_status in (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized):
        return TxOutcome.CONFIRMED
    return None


def required_signers(message: Message) -> List[Pubkey]:
    return list(message.account_keys[: message.header.num_required_signatures])


# =============================================================================
# ENGINE
# =============================================================================

class TransactionEngine:
    def __init__(
        self,
        ledger: LedgerPort,
        settings: Optional[ConfirmationSettings] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = time.monotonic,
    ):
        self.ledger = ledger
        self.settings = settings or ConfirmationSettings()
        self._sleep = sleep
        self._clock = clock
        self.send_opts = TxOpts(skip_preflight=False, preflight_commitment=Confirmed)

    async def build(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Iterable[Keypair] = (),
    ) -> Transaction:
        """
        Compile instructions into one signed transaction paid by `payer`.

        Raises:
            MissingSignerError: a required signer has no keypair (no RPC call made).
        """
        if not instructions:
            raise ValueError("cannot build a transaction with no instructions")

        available: Dict[Pubkey, Keypair] = {payer.pubkey(): payer}
        for kp in signers:
            available.setdefault(kp.pubkey(), kp)

        unsigned = Message(list(instructions), payer.pubkey())
        required = required_signers(unsigned)
        missing = [str(pk) for pk in required if pk not in available]
        if missing:
            raise MissingSignerError(missing)

        blockhash = await self.ledger.get_latest_blockhash(Finalized)
        message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
        tx = Transaction([available[pk] for pk in required], message, blockhash)

        logger.debug(
            f"TX_BUILD | ixs={len(instructions)} | signers={len(required)} | blockhash={blockhash}"
        )
        return tx

    async def send_and_confirm(self, tx: Transaction) -> TxResult:
        signature = tx.signatures[0]
        sig_str = str(signature)

        prior = await self._fetch_status(signature)
        prior_outcome = classify_status(prior)
        if prior_outcome is not None:
            logger.info(f"TX_ALREADY_LANDED | sig={sig_str} | outcome={prior_outcome.value}")
            return TxResult(
                outcome=prior_outcome,
                signature=sig_str,
                error_message=str(prior.err) if prior.err is not None else None,
                already_landed=True,
            )

        send_time = datetime.now(timezone.utc)
        try:
            signature = await self.ledger.send_transaction(tx, self.send_opts)
        except SEND_UNCERTAIN_ERRORS as e:
            logger.warning(f"TX_SEND | uncertain | sig={sig_str} | {type(e).__name__}: {e} | polling signature")
            return await self._wait_for_confirmation(signature, send_time)
        except Exception as e:
            logger.error(f"TX_SEND | error | sig={sig_str} | {e}")
            return TxResult(
                outcome=TxOutcome.FAILED,
                signature=sig_str,
                error_message=str(e),
                send_time=send_time,
            )

        sig_str = str(signature)
        logger.info(f"TX_SENT | sig={sig_str}")
        return await self._wait_for_confirmation(signature, send_time)

    async def submit(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Iterable[Keypair] = (),
    ) -> TxResult:
        tx = await self.build(instructions, payer, signers)
        return await self.send_and_confirm(tx)

    async def _fetch_status(self, signature: Signature) -> Optional[TransactionStatus]:
        try:
            statuses = await self.ledger.get_signature_statuses([signature])
        except Exception as e:
            logger.warning(f"SIG_STATUS | error | sig={str(signature)[:16]}... | {e}")
            return None
        return statuses[0] if statuses else None

    async def _wait_for_confirmation(self, signature: Signature, send_time: datetime) -> TxResult:
        sig_str = str(signature)
        start = self._clock()

        while True:
            await self._sleep(self.settings.poll_interval_seconds)
            elapsed = self._clock() - start

            status = await self._fetch_status(signature)
            outcome = classify_status(status)

            if outcome is TxOutcome.FAILED:
                logger.error(f"TX_FAILED | sig={sig_str} | error={status.err}")
                return TxResult(
                    outcome=outcome,
                    signature=sig_str,
                    error_message=str(status.err),
                    send_time=send_time,
                    confirm_time=datetime.now(timezone.utc),
                    elapsed=elapsed,
                )

            if outcome is TxOutcome.CONFIRMED:
                logger.info(f"TX_CONFIRMED | sig={sig_str} | elapsed={elapsed:.1f}s")
                return TxResult(
                    outcome=outcome,
                    signature=sig_str,
                    send_time=send_time,
                    confirm_time=datetime.now(timezone.utc),
                    elapsed=elapsed,
                )

            if elapsed >= self.settings.confirm_timeout_seconds:
                logger.warning(f"TX_TIMEOUT | sig={sig_str} | elapsed={elapsed:.1f}s")
                return TxResult(
                    outcome=TxOutcome.TIMED_OUT,
                    signature=sig_str,
                    error_message=f"confirmation_timeout:{elapsed:.1f}s",
                    send_time=send_time,
                    elapsed=elapsed,
                )


__all__ = [
    "SEND_UNCERTAIN_ERRORS",
    "TxOutcome",
    "TxResult",
    "TransactionEngine",
    "classify_status",
    "required_signers",
]
