from .deployment import (
    STABLE_STATUSES,
    Deployment,
    DeploymentCreateRequest,
    DeploymentEvent,
    DeploymentStatus,
    DeploymentStrategy,
)

__all__ = [
    "STABLE_STATUSES",
    "Deployment",
    "DeploymentCreateRequest",
    "DeploymentEvent",
    "DeploymentStatus",
    "DeploymentStrategy",
]
