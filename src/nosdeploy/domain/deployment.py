"""
Deployment domain types.

A deployment is owned by the remote deployment manager; everything here is an
observation of its state, parsed from JSON payloads. Parsing is strict: a
payload missing a required field raises ResponseSchemaError instead of
producing a half-filled object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from nosdeploy.errors import ResponseSchemaError


class DeploymentStatus(Enum):
    DRAFT = "DRAFT"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    ARCHIVED = "ARCHIVED"
    ERROR = "ERROR"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"

    @property
    def is_stable(self) -> bool:
        return self in STABLE_STATUSES


STABLE_STATUSES = frozenset(
    {
        DeploymentStatus.RUNNING,
        DeploymentStatus.STOPPED,
        DeploymentStatus.ARCHIVED,
        DeploymentStatus.ERROR,
        DeploymentStatus.INSUFFICIENT_FUNDS,
    }
)


class DeploymentStrategy(Enum):
    SIMPLE = "SIMPLE"
    SIMPLE_EXTEND = "SIMPLE-EXTEND"
    SCHEDULED = "SCHEDULED"
    INFINITE = "INFINITE"


def _require(payload: Dict[str, Any], key: str, kind: str) -> Any:
    if not isinstance(payload, dict):
        raise ResponseSchemaError(f"{kind} payload must be an object, got {type(payload).__name__}")
    if key not in payload or payload[key] is None:
        raise ResponseSchemaError(f"{kind} payload missing required field '{key}'")
    return payload[key]


def _parse_enum(enum_cls, raw: Any, kind: str, key: str):
    try:
        return enum_cls(raw)
    except ValueError as e:
        raise ResponseSchemaError(f"{kind} field '{key}' has unknown value {raw!r}") from e


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw / 1000)
    text = str(raw)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class DeploymentEvent:
    category: str
    deployment_id: str
    type: str
    message: str
    tx: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DeploymentEvent":
        return cls(
            category=str(payload.get("category", "")),
            deployment_id=str(payload.get("deploymentId", "")),
            type=str(payload.get("type", "")),
            message=str(_require(payload, "message", "event")),
            tx=payload.get("tx") or None,
            created_at=_parse_timestamp(payload.get("created_at")),
        )


@dataclass(frozen=True)
class Deployment:
    id: str
    name: str
    status: DeploymentStatus
    market: str
    owner: str
    vault: str
    replicas: int
    timeout: int
    strategy: DeploymentStrategy
    schedule: Optional[str] = None
    events: Tuple[DeploymentEvent, ...] = ()

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Deployment":
        status = _parse_enum(DeploymentStatus, _require(payload, "status", "deployment"), "deployment", "status")
        strategy = _parse_enum(
            DeploymentStrategy, payload.get("strategy") or DeploymentStrategy.SIMPLE.value, "deployment", "strategy"
        )
        raw_events = payload.get("events") or []
        if not isinstance(raw_events, list):
            raise ResponseSchemaError("deployment field 'events' must be a list")

        return cls(
            id=str(_require(payload, "id", "deployment")),
            name=str(payload.get("name", "")),
            status=status,
            market=str(_require(payload, "market", "deployment")),
            owner=str(payload.get("owner", "")),
            vault=str(_require(payload, "vault", "deployment")),
            replicas=int(payload.get("replicas", 1)),
            timeout=int(payload.get("timeout", 0)),
            strategy=strategy,
            schedule=payload.get("schedule") or None,
            events=tuple(DeploymentEvent.from_payload(e) for e in raw_events),
        )

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.events]


@dataclass
class DeploymentCreateRequest:
    """Body of POST /api/deployment/create."""
    name: str
    market: str
    timeout: int
    replicas: int = 1
    strategy: DeploymentStrategy = DeploymentStrategy.SIMPLE
    ipfs_definition_hash: Optional[str] = None
    job_definition: Optional[Dict[str, Any]] = None
    schedule: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.ipfs_definition_hash and self.job_definition is None:
            raise ValueError("either ipfs_definition_hash or job_definition is required")
        if self.replicas < 1:
            raise ValueError("replicas must be >= 1")
        if self.strategy is DeploymentStrategy.SCHEDULED and not self.schedule:
            raise ValueError("SCHEDULED strategy requires a schedule")

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "market": self.market,
            "replicas": self.replicas,
            "timeout": self.timeout,
            "strategy": self.strategy.value,
        }
        if self.ipfs_definition_hash:
            payload["ipfs_definition_hash"] = self.ipfs_definition_hash
        if self.job_definition is not None:
            payload["job_definition"] = self.job_definition
        if self.schedule:
            payload["schedule"] = self.schedule
        payload.update(self.extra)
        return payload


__all__ = [
    "DeploymentStatus",
    "STABLE_STATUSES",
    "DeploymentStrategy",
    "DeploymentEvent",
    "Deployment",
    "DeploymentCreateRequest",
]
