from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionStatus


class LedgerPort(ABC):
    """Read and submit access to the Solana ledger."""

    @abstractmethod
    async def get_latest_blockhash(self, commitment: Commitment) -> Hash:
        ...

    @abstractmethod
    async def get_account_data(self, address: Pubkey) -> Optional[bytes]:
        """Raw account data, or None when the account does not exist."""
        ...

    @abstractmethod
    async def get_balance(self, address: Pubkey) -> int:
        """Native balance in lamports."""
        ...

    @abstractmethod
    async def send_transaction(self, tx: Transaction, opts: TxOpts) -> Signature:
        ...

    @abstractmethod
    async def get_signature_statuses(self, signatures: Sequence[Signature]) -> List[Optional[TransactionStatus]]:
        ...
