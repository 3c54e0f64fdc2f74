"""
diagnostics.py - Classify deployment error events

The deployment manager reports the 60-second confirmation timeout only as
free text in its event log. Matching that text happens here and nowhere else.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, List, Optional

from nosdeploy.config.settings import DEFAULT_TIMEOUT_SIGNATURE
from nosdeploy.domain.deployment import Deployment, DeploymentEvent, DeploymentStatus


_SIGNATURE_RE = re.compile(r"Check signature\s+([1-9A-HJ-NP-Za-km-z]{32,88})")


class ErrorKind(Enum):
    NONE = "none"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    OTHER = "other"


def is_confirmation_timeout(events: Iterable[DeploymentEvent], signature: str = DEFAULT_TIMEOUT_SIGNATURE) -> bool:
    return any(signature in (event.message or "") for event in events)


def classify(deployment: Deployment, signature: str = DEFAULT_TIMEOUT_SIGNATURE) -> ErrorKind:
    if deployment.status is not DeploymentStatus.ERROR:
        return ErrorKind.NONE
    if is_confirmation_timeout(deployment.events, signature):
        return ErrorKind.CONFIRMATION_TIMEOUT
    return ErrorKind.OTHER


def extract_signature(message: str) -> Optional[str]:
    """Pull the transaction signature out of "... Check signature <sig> ..." text."""
    match = _SIGNATURE_RE.search(message or "")
    return match.group(1) if match else None


def timed_out_signatures(events: Iterable[DeploymentEvent], signature: str = DEFAULT_TIMEOUT_SIGNATURE) -> List[str]:
    found: List[str] = []
    for event in events:
        if signature not in (event.message or ""):
            continue
        sig = event.tx or extract_signature(event.message)
        if sig:
            found.append(sig)
    return found


__all__ = [
    "ErrorKind",
    "is_confirmation_timeout",
    "classify",
    "extract_signature",
    "timed_out_signatures",
]
