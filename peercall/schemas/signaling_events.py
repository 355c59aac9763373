"""
Signaling Event Schemas

Pydantic models for the payloads exchanged over the signaling relay.
Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base model for all relay payloads."""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Media negotiation primitives
# =============================================================================

class SessionDescription(WireModel):
    """An offer or answer document."""
    type: Literal["offer", "answer"]
    sdp: str


class IceCandidate(WireModel):
    """A single trickled network candidate."""
    candidate: str
    sdp_mid: Optional[str] = Field(None, alias="sdpMid")
    sdp_mline_index: Optional[int] = Field(None, alias="sdpMLineIndex")


# =============================================================================
# Routing events
# =============================================================================

class CallRequestEvent(WireModel):
    """Caller -> relay -> callee. Delivered to the callee as incoming-call."""
    target_id: str = Field(alias="targetId")
    caller_id: str = Field(alias="callerId")
    caller_name: str = Field("User", alias="callerName")
    room_id: str = Field(alias="roomId")


class CallAcceptedEvent(WireModel):
    caller_id: str = Field(alias="callerId")
    callee_id: str = Field(alias="calleeId")
    room_id: str = Field(alias="roomId")


class CallRejectedEvent(WireModel):
    caller_id: str = Field(alias="callerId")
    callee_id: Optional[str] = Field(None, alias="calleeId")
    room_id: Optional[str] = Field(None, alias="roomId")
    reason: Optional[str] = None


# =============================================================================
# Negotiation events (room-scoped)
# =============================================================================

class DescriptionEvent(WireModel):
    """Payload of both offer and answer events."""
    room_id: str = Field(alias="roomId")
    sdp: SessionDescription


class IceCandidateEvent(WireModel):
    room_id: str = Field(alias="roomId")
    candidate: IceCandidate


class CallEndedEvent(WireModel):
    room_id: str = Field(alias="roomId")
    ended_by: Optional[str] = Field(None, alias="endedBy")
