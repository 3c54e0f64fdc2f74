from .deployment_manager import DeploymentManagerClient
from .pinata_adapter import PinataAdapter

__all__ = ["DeploymentManagerClient", "PinataAdapter"]
