"""
errors.py - Failure taxonomy for job posting, funding and deployment control.

Local validation errors (encoding, signers, funds) are raised before anything
touches the network and are never retried. Confirmation and deployment errors
carry the last observed status plus the raw diagnostic text so operators can
see what the remote side reported.
"""

from __future__ import annotations

from typing import Optional, Sequence


class NosDeployError(Exception):
    """Base class for every error raised by nosdeploy."""


class ConfigError(NosDeployError):
    """Raised when boot configuration is missing or invalid."""


class EncodingError(NosDeployError):
    """Malformed address, key or content-address input."""


class MarketAccountError(EncodingError):
    """Market account is missing on-chain or too short to hold a job price."""


class MissingSignerError(NosDeployError):
    """A transaction requires a signature whose keypair is not available."""

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"missing keypair for required signer(s): {', '.join(self.missing)}")


class InsufficientFundsError(NosDeployError):
    """Wallet cannot cover the planned transfer plus fees."""


class SourceAccountMissing(NosDeployError):
    """The wallet's own token account does not exist, so a token transfer is impossible."""


class TransactionFailed(NosDeployError):
    """Ledger reported a program-level error, or rejected the transaction on send."""

    def __init__(self, message: str, signature: Optional[str] = None):
        self.signature = signature
        super().__init__(message if not signature else f"{message} (sig={signature})")


class TransactionTimedOut(NosDeployError):
    """No terminal status was observed before the confirmation deadline."""

    def __init__(self, signature: str, elapsed: float):
        self.signature = signature
        self.elapsed = elapsed
        super().__init__(f"transaction {signature} not confirmed after {elapsed:.1f}s")


class DeploymentAPIError(NosDeployError):
    """Deployment manager answered with a non-2xx status."""

    def __init__(self, method: str, path: str, status_code: int, body: str):
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body
        super().__init__(f"{method} {path} failed with status {status_code}: {body}")


class StorageAPIError(NosDeployError):
    """Content storage answered an upload with a non-2xx status."""

    def __init__(self, path: str, status_code: int, body: str):
        self.path = path
        self.status_code = status_code
        self.body = body
        super().__init__(f"upload to {path} failed with status {status_code}: {body}")


class ServiceUnavailable(NosDeployError):
    """A remote HTTP service could not be reached or dropped the connection."""

    def __init__(self, service: str, method: str, path: str, cause: Exception):
        self.service = service
        self.method = method
        self.path = path
        super().__init__(f"{service} {method} {path} unreachable: {type(cause).__name__}: {cause}")


class ResponseSchemaError(NosDeployError):
    """A remote response is missing a required field or has the wrong shape."""


def _format_events(events: Sequence[object]) -> str:
    lines = []
    for event in events:
        message = getattr(event, "message", None) or str(event)
        lines.append(f"  - {message}")
    return "\n".join(lines)


class _DeploymentStateError(NosDeployError):
    def __init__(self, message: str, status: Optional[object] = None, events: Sequence[object] = ()):
        self.status = status
        self.events = list(events)
        text = message
        if status is not None:
            text += f" (last status: {getattr(status, 'value', status)})"
        if self.events:
            text += "\nevents:\n" + _format_events(self.events)
        super().__init__(text)


class StartFailed(_DeploymentStateError):
    """Deployment could not be started within the attempt budget."""


class RestartBudgetExhausted(StartFailed):
    """Automatic restarts while waiting for a stable status were used up."""

    def __init__(self, deployment_id: str, restarts: int, status: Optional[object] = None, events: Sequence[object] = ()):
        self.restarts = restarts
        super().__init__(
            f"deployment {deployment_id} still in ERROR after {restarts} automatic restart(s)",
            status=status,
            events=events,
        )


class CompletionTimeout(_DeploymentStateError):
    """Deployment did not reach a stable status before the completion timeout."""


class DeploymentFailed(_DeploymentStateError):
    """Deployment settled in ERROR or INSUFFICIENT_FUNDS."""


__all__ = [
    "NosDeployError",
    "ConfigError",
    "EncodingError",
    "MarketAccountError",
    "MissingSignerError",
    "InsufficientFundsError",
    "SourceAccountMissing",
    "TransactionFailed",
    "TransactionTimedOut",
    "DeploymentAPIError",
    "StorageAPIError",
    "ServiceUnavailable",
    "ResponseSchemaError",
    "StartFailed",
    "RestartBudgetExhausted",
    "CompletionTimeout",
    "DeploymentFailed",
]
