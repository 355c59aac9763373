"""
Call-client constants for signaling and session tuning.

This file centralizes event names and operational parameters that
are shared by the negotiator and the orchestrators.

Note: Environment-dependent settings (URLs, tokens, ICE servers) belong in settings.py.
This file is for values that rarely change between environments.
"""

# ==============================================================================
# SIGNALING EVENTS
# ==============================================================================

# Room membership
EVENT_JOIN_ROOM: str = "join-room"
EVENT_LEAVE_ROOM: str = "leave-room"

# Presence registration (payload is the bare identity)
EVENT_USER_CONNECT: str = "user-connect"
EVENT_THERAPIST_CONNECT: str = "therapist-connect"

# Routing
EVENT_CALL_REQUEST: str = "call-therapist"
EVENT_INCOMING_CALL: str = "incoming-call"
EVENT_CALL_ACCEPTED: str = "call-accepted"
EVENT_CALL_REJECTED: str = "call-rejected"

# Negotiation
EVENT_OFFER: str = "offer"
EVENT_ANSWER: str = "answer"
EVENT_ICE_CANDIDATE: str = "ice-candidate"

# Teardown (emitted as end-call, relayed to the peer as call-ended)
EVENT_END_CALL: str = "end-call"
EVENT_CALL_ENDED: str = "call-ended"

# ==============================================================================
# BILLING (display and local pre-check only)
# ==============================================================================

# Minimum prepaid balance required to place a call (coins)
MIN_CALL_BALANCE: int = 5

# Per-minute rate shown next to each callee (coins)
COINS_PER_MINUTE: int = 5

# ==============================================================================
# MEDIA
# ==============================================================================

# Audio-only capture constraints
AUDIO_CONSTRAINTS: dict = {
    "echoCancellation": True,
    "noiseSuppression": True,
    "autoGainControl": True,
    "sampleRate": 44100,
}

VIDEO_ENABLED: bool = False

# ==============================================================================
# SESSION
# ==============================================================================

# Duration timer tick (seconds)
TIMER_RESOLUTION_SEC: float = 1.0

# endedBy labels sent with the end-call record
ENDED_BY_INITIATOR: str = "user"
ENDED_BY_RECEIVER: str = "therapist"

# Reasons sent with an automatic rejection
REJECT_REASON_BUSY: str = "busy"
REJECT_REASON_ACCEPT_FAILED: str = "accept_failed"
