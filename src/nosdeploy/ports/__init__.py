from .deployment_service import DeploymentServicePort
from .ledger import LedgerPort

__all__ = ["DeploymentServicePort", "LedgerPort"]
