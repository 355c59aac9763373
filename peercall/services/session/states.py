"""
Session State Enums

Roles, negotiation progress, peer connection lifecycle and end reasons.
"""
from enum import Enum
from typing import Optional


class CallRole(str, Enum):
    INITIATOR = "initiator"  # creates the offer
    RECEIVER = "receiver"    # creates the answer


class NegotiatorState(str, Enum):
    IDLE = "idle"
    ACQUIRING_MEDIA = "acquiring_media"
    CREATING_OFFER = "creating_offer"
    AWAITING_REMOTE_DESCRIPTION = "awaiting_remote_description"
    DESCRIPTION_EXCHANGED = "description_exchanged"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ENDING = "ending"
    CLOSED = "closed"
    FAILED = "failed"


class ConnectionState(str, Enum):
    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"

    @classmethod
    def from_peer(cls, value: str) -> Optional["ConnectionState"]:
        """Map a peer-connection or ICE-connection state string."""
        return _PEER_STATE_MAP.get(value)


_PEER_STATE_MAP = {
    "new": ConnectionState.NEW,
    "connecting": ConnectionState.CONNECTING,
    "checking": ConnectionState.CONNECTING,
    "connected": ConnectionState.CONNECTED,
    "completed": ConnectionState.CONNECTED,
    "disconnected": ConnectionState.DISCONNECTED,
    "failed": ConnectionState.FAILED,
    "closed": ConnectionState.CLOSED,
}


class EndReason(str, Enum):
    HANGUP = "hangup"
    REMOTE_ENDED = "remote_ended"
    NAVIGATION = "navigation"
    MEDIA_ERROR = "media_error"
    CONNECTION_FAILED = "connection_failed"
    SETUP_TIMEOUT = "setup_timeout"
    PROTOCOL_ERROR = "protocol_error"
    SETUP_FAILED = "setup_failed"

    @property
    def is_local(self) -> bool:
        """True when this side initiated the teardown."""
        return self is not EndReason.REMOTE_ENDED
