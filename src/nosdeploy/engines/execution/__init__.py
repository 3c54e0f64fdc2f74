from .funding import FundingPlan, FundingPlanner, MarketSnapshot
from .instructions import build_list_instruction
from .transaction_engine import TransactionEngine, TxOutcome, TxResult
from .transfers import TransferBuilder

__all__ = [
    "FundingPlan",
    "FundingPlanner",
    "MarketSnapshot",
    "build_list_instruction",
    "TransactionEngine",
    "TxOutcome",
    "TxResult",
    "TransferBuilder",
]
