"""
Call Orchestration Module

Role orchestrators live in `caller` and `callee`; this package root
re-exports the call exception taxonomy only, so that lower layers can
import it without pulling in the orchestrators.
"""
from .exceptions import (
    CallError,
    MediaAcquisitionError,
    SignalingProtocolViolation,
    PeerConnectionFailure,
    CallSetupTimeoutError,
    RoutingError,
    CallRejectedError,
    InsufficientBalanceError,
    CleanupError,
    CallApiError,
    SignalingError,
)

__all__ = [
    "CallError",
    "MediaAcquisitionError",
    "SignalingProtocolViolation",
    "PeerConnectionFailure",
    "CallSetupTimeoutError",
    "RoutingError",
    "CallRejectedError",
    "InsufficientBalanceError",
    "CleanupError",
    "CallApiError",
    "SignalingError",
]
