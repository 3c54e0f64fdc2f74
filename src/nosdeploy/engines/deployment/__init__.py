from .diagnostics import ErrorKind, classify, extract_signature, is_confirmation_timeout
from .start_controller import StartController
from .state_tracker import DeploymentTracker

__all__ = [
    "ErrorKind",
    "classify",
    "extract_signature",
    "is_confirmation_timeout",
    "StartController",
    "DeploymentTracker",
]
