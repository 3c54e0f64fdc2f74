from abc import ABC, abstractmethod

from nosdeploy.domain.deployment import Deployment, DeploymentCreateRequest


class DeploymentServicePort(ABC):
    """Remote deployment manager abstraction."""

    @abstractmethod
    async def create(self, request: DeploymentCreateRequest) -> Deployment:
        ...

    @abstractmethod
    async def get(self, deployment_id: str) -> Deployment:
        ...

    @abstractmethod
    async def start(self, deployment_id: str) -> None:
        ...

    @abstractmethod
    async def stop(self, deployment_id: str) -> None:
        ...

    @abstractmethod
    async def restart(self, deployment_id: str) -> None:
        ...

    @abstractmethod
    async def update_vault_balance(self, vault: str) -> None:
        ...
