from __future__ import annotations

import struct
from types import SimpleNamespace
from typing import Dict, List, Optional

import base58
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction_status import TransactionConfirmationStatus

from nosdeploy.config.nosana_tokens import NOS
from nosdeploy.engines.execution.addresses import derive_associated_token_address
from nosdeploy.ports.ledger import LedgerPort


LAMPORTS = 1_000_000_000


class FakeClock:
    """Monotonic clock advanced only by the injected sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeLedger(LedgerPort):
    def __init__(self) -> None:
        self.accounts: Dict[Pubkey, bytes] = {}
        self.balances: Dict[Pubkey, int] = {}
        self.sent: List[object] = []
        self.last_opts = None
        self.send_error: Optional[Exception] = None
        self.broadcast_before_error = False
        self.landed: Dict[str, object] = {}
        self.poll_script: List[Optional[object]] = []
        self.status_errors = 0
        self.status_calls = 0
        self.blockhash_calls = 0

    # -- status helpers -------------------------------------------------------

    @staticmethod
    def processed():
        return SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Processed)

    @staticmethod
    def confirmed():
        return SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Confirmed)

    @staticmethod
    def finalized():
        return SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Finalized)

    @staticmethod
    def failed(err: str = "InstructionError(0, Custom(1))"):
        return SimpleNamespace(err=err, confirmation_status=TransactionConfirmationStatus.Confirmed)

    # -- account helpers ------------------------------------------------------

    def set_market(self, market: Pubkey, price: int, length: int = 64) -> None:
        data = bytearray(length)
        if length >= 48:
            data[40:48] = struct.pack("<Q", price)
        self.accounts[market] = bytes(data)

    def set_token_account(self, owner: Pubkey, amount: int, mint: str = NOS.mint) -> Pubkey:
        ata = derive_associated_token_address(owner, mint)
        self.accounts[ata] = bytes(64) + struct.pack("<Q", amount) + bytes(93)
        return ata

    # -- LedgerPort -----------------------------------------------------------

    async def get_latest_blockhash(self, commitment):
        self.blockhash_calls += 1
        return Hash.default()

    async def get_account_data(self, address):
        return self.accounts.get(address)

    async def get_balance(self, address):
        return self.balances.get(address, 0)

    async def send_transaction(self, tx, opts):
        if self.send_error is not None:
            if self.broadcast_before_error:
                self.sent.append(tx)
            raise self.send_error
        self.sent.append(tx)
        self.last_opts = opts
        return tx.signatures[0]

    async def get_signature_statuses(self, signatures):
        self.status_calls += 1
        sig = str(signatures[0])
        if sig in self.landed:
            return [self.landed[sig]]
        if not self.sent:
            return [None]
        if self.status_errors > 0:
            self.status_errors -= 1
            raise RuntimeError("rpc unavailable")
        if not self.poll_script:
            return [None]
        if len(self.poll_script) > 1:
            return [self.poll_script.pop(0)]
        return [self.poll_script[0]]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def wallet() -> Keypair:
    return Keypair()


@pytest.fixture
def market() -> Pubkey:
    return Keypair().pubkey()


@pytest.fixture
def ipfs_hash() -> str:
    # CIDv0: sha2-256 multihash prefix + 32-byte digest
    return base58.b58encode(b"\x12\x20" + bytes(range(32))).decode()
