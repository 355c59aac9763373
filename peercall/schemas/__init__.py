"""
Pydantic schemas for relay payloads and call-record responses.
"""
from .signaling_events import (
    WireModel,
    SessionDescription,
    IceCandidate,
    CallRequestEvent,
    CallAcceptedEvent,
    CallRejectedEvent,
    DescriptionEvent,
    IceCandidateEvent,
    CallEndedEvent,
)
from .call import (
    CalleeSummary,
    CalleeListResponse,
    InitiateCallResponse,
    AvailabilityResponse,
    CallHistoryItem,
    CallHistoryResponse,
)

__all__ = [
    "WireModel",
    "SessionDescription",
    "IceCandidate",
    "CallRequestEvent",
    "CallAcceptedEvent",
    "CallRejectedEvent",
    "DescriptionEvent",
    "IceCandidateEvent",
    "CallEndedEvent",
    "CalleeSummary",
    "CalleeListResponse",
    "InitiateCallResponse",
    "AvailabilityResponse",
    "CallHistoryItem",
    "CallHistoryResponse",
]
