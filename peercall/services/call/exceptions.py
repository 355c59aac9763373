"""
Call Exceptions

Custom exceptions for call setup, negotiation and teardown.
"""


class CallError(Exception):
    """Base exception for call errors"""
    pass


class MediaAcquisitionError(CallError):
    """Raised when the device denies or lacks an audio input"""
    pass


class SignalingProtocolViolation(CallError):
    """Raised when a description arrives twice or out of order"""
    pass


class PeerConnectionFailure(CallError):
    """Raised when the ICE/peer connection reaches the failed state"""
    pass


class CallSetupTimeoutError(PeerConnectionFailure):
    """Raised when a session does not connect within the setup timeout"""
    pass


class RoutingError(CallError):
    """Raised when the callee is unavailable, busy or the route cannot be created"""
    pass


class CallRejectedError(RoutingError):
    """Raised when the callee rejects the call"""
    pass


class InsufficientBalanceError(CallError):
    """Raised when the caller's last-known balance is below the call minimum"""
    pass


class CleanupError(CallError):
    """Wraps a failing teardown step. Logged only, never raised to callers"""
    pass


class CallApiError(CallError):
    """Raised when the call-record HTTP collaborator fails"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SignalingError(CallError):
    """Raised when the signaling channel is unusable"""
    pass
