"""
Media stack boundary.

Protocols for the real-time media primitives plus a logging audio router.
The aiortc implementation lives in `aiortc_stack` and is imported on demand.
"""
from .protocols import (
    AudioRouter,
    MediaDevices,
    MediaStream,
    MediaTrack,
    PeerConnection,
    PeerConnectionFactory,
)
from .routing import NullAudioRouter

__all__ = [
    "AudioRouter",
    "MediaDevices",
    "MediaStream",
    "MediaTrack",
    "PeerConnection",
    "PeerConnectionFactory",
    "NullAudioRouter",
]
