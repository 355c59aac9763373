"""
Session negotiation module.

Provides the per-call negotiators and the state they expose.
"""
from .candidates import PendingCandidateQueue
from .models import CallSession
from .negotiator import (
    SessionNegotiator,
    InitiatorNegotiator,
    ReceiverNegotiator,
    create_negotiator,
)
from .states import CallRole, ConnectionState, EndReason, NegotiatorState
from .timer import DurationTimer, format_duration

__all__ = [
    "PendingCandidateQueue",
    "CallSession",
    "SessionNegotiator",
    "InitiatorNegotiator",
    "ReceiverNegotiator",
    "create_negotiator",
    "CallRole",
    "ConnectionState",
    "EndReason",
    "NegotiatorState",
    "DurationTimer",
    "format_duration",
]
