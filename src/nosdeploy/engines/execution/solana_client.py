"""
solana_client.py - Ledger adapter over solana-py's AsyncClient

Thin by intent: each method is one RPC call with its response unwrapped to
plain solders types. Retry and confirmation policy live in
transaction_engine.py; RPC errors propagate to the caller.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionStatus

from nosdeploy.ports.ledger import LedgerPort


class SolanaClient(LedgerPort):
    def __init__(self, rpc_url: str, commitment: Commitment = Confirmed):
        self.rpc_url = rpc_url
        self.commitment = commitment
        self._client: Optional[AsyncClient] = None
        logger.info(f"SOLANA_CLIENT | init | rpc={rpc_url} | commitment={commitment}")

    async def _get_client(self) -> AsyncClient:
        """Get or create RPC client."""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=self.commitment)
        return self._client

    async def close(self):
        """Close RPC client."""
        if self._client:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> "SolanaClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # =========================================================================
    # READS
    # =========================================================================

    async def get_latest_blockhash(self, commitment: Commitment) -> Hash:
        client = await self._get_client()
        resp = await client.get_latest_blockhash(commitment=commitment)
        return resp.value.blockhash

    async def get_account_data(self, address: Pubkey) -> Optional[bytes]:
        client = await self._get_client()
        resp = await client.get_account_info(address)
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    async def get_balance(self, address: Pubkey) -> int:
        client = await self._get_client()
        resp = await client.get_balance(address, commitment=self.commitment)
        return int(resp.value)

    async def get_signature_statuses(self, signatures: Sequence[Signature]) -> List[Optional[TransactionStatus]]:
        client = await self._get_client()
        resp = await client.get_signature_statuses(list(signatures))
        return list(resp.value)

    # =========================================================================
    # WRITES
    # =========================================================================

    async def send_transaction(self, tx: Transaction, opts: TxOpts) -> Signature:
        client = await self._get_client()
        resp = await client.send_transaction(tx, opts=opts)
        return resp.value


__all__ = ["SolanaClient"]
