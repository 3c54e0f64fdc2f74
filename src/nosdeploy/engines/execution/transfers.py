"""
transfers.py - Turn a FundingPlan into ordered transfer instructions

Order is fixed so one transaction carries everything:
    [SOL transfer] [create destination token account] [NOS transfer] [job instruction]
"""

from __future__ import annotations

from typing import List, Optional

from loguru import logger
from solders.instruction import Instruction
from solders.system_program import TransferParams, transfer
from spl.token.instructions import TransferCheckedParams, create_associated_token_account, transfer_checked

from nosdeploy.config.nosana_tokens import NOS, TOKEN_PROGRAM_ID, SolanaToken
from nosdeploy.engines.execution.addresses import (
    AddressLike,
    derive_associated_token_address,
    parse_pubkey,
    short,
)
from nosdeploy.engines.execution.funding import FundingPlan, token_account_amount
from nosdeploy.errors import InsufficientFundsError, SourceAccountMissing
from nosdeploy.ports.ledger import LedgerPort


class TransferBuilder:
    def __init__(self, ledger: LedgerPort, token: SolanaToken = NOS):
        self.ledger = ledger
        self.token = token

    async def build(
        self,
        wallet: AddressLike,
        destination: AddressLike,
        plan: FundingPlan,
        job_instruction: Optional[Instruction] = None,
    ) -> List[Instruction]:
        """
        Raises:
            InsufficientFundsError: wallet SOL or NOS balance below the planned amount.
            SourceAccountMissing: wallet has no NOS token account.
        """
        wallet_pk = parse_pubkey(wallet, "wallet")
        dest_pk = parse_pubkey(destination, "destination")
        mint_pk = self.token.mint_pubkey
        instructions: List[Instruction] = []

        if plan.native_lamports > 0:
            # balance may have moved since planning
            balance = await self.ledger.get_balance(wallet_pk)
            if balance < plan.native_lamports:
                raise InsufficientFundsError(
                    f"wallet {short(wallet_pk)} holds {balance} lamports, transfer needs {plan.native_lamports}"
                )
            instructions.append(
                transfer(TransferParams(from_pubkey=wallet_pk, to_pubkey=dest_pk, lamports=plan.native_lamports))
            )

        if plan.token_amount > 0:
            source_ata = derive_associated_token_address(wallet_pk, mint_pk)
            source_data = await self.ledger.get_account_data(source_ata)
            if source_data is None:
                raise SourceAccountMissing(f"wallet {short(wallet_pk)} has no {self.token.symbol} token account")
            held = token_account_amount(source_data)
            if held < plan.token_amount:
                raise InsufficientFundsError(
                    f"wallet {short(wallet_pk)} holds {held} {self.token.symbol} base units, "
                    f"transfer needs {plan.token_amount}"
                )

            dest_ata = derive_associated_token_address(dest_pk, mint_pk)
            if await self.ledger.get_account_data(dest_ata) is None:
                logger.info(f"TRANSFER_CREATE_ATA | owner={short(dest_pk)} | ata={short(dest_ata)}")
                instructions.append(create_associated_token_account(wallet_pk, dest_pk, mint_pk))

            instructions.append(
                transfer_checked(
                    TransferCheckedParams(
                        program_id=TOKEN_PROGRAM_ID,
                        source=source_ata,
                        mint=mint_pk,
                        dest=dest_ata,
                        owner=wallet_pk,
                        amount=plan.token_amount,
                        decimals=self.token.decimals,
                    )
                )
            )

        if job_instruction is not None:
            instructions.append(job_instruction)

        logger.info(
            f"TRANSFER_BUILD | to={short(dest_pk)} | lamports={plan.native_lamports} "
            f"| token={plan.token_amount} | ixs={len(instructions)}"
        )
        return instructions


__all__ = ["TransferBuilder"]
