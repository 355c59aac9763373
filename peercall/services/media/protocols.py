"""
Protocol definitions for the real-time media stack.

The session negotiator only talks to these interfaces, which allows:
- Swapping implementations (aiortc, native bindings, test fakes)
- Testing negotiation without audio hardware or network access
- Clear contracts between signaling logic and the media transport

Usage:
    from peercall.services.media.protocols import PeerConnection

    async def offer(pc: PeerConnection) -> SessionDescription:
        desc = await pc.create_offer()
        await pc.set_local_description(desc)
        return desc
"""

from typing import Callable, List, Optional, Protocol

from peercall.schemas.signaling_events import IceCandidate, SessionDescription


class MediaTrack(Protocol):
    """
    A single local or remote media track.

    Disabling a track keeps it attached to the peer connection but sends
    silence; no renegotiation takes place.
    """

    kind: str
    enabled: bool

    def stop(self) -> None:
        """Release the underlying capture device."""
        ...


class MediaStream(Protocol):
    """A group of tracks acquired together."""

    def get_tracks(self) -> List[MediaTrack]:
        ...

    def get_audio_tracks(self) -> List[MediaTrack]:
        ...


class MediaDevices(Protocol):
    """Entry point for capturing local media."""

    async def get_user_media(self, audio: dict, video: bool = False) -> MediaStream:
        """
        Acquire a local stream.

        Args:
            audio: Audio constraints (echoCancellation, noiseSuppression, ...)
            video: Whether to capture video (always False for voice calls)

        Returns:
            The acquired stream

        Raises:
            Any exception when the device denies access or has no input.
        """
        ...


class PeerConnection(Protocol):
    """
    Interface of one peer-to-peer connection.

    Callback attributes are assigned by the owner and invoked by the
    implementation on the event loop:
        on_track(track, streams)
        on_connection_state_change(state)
        on_ice_connection_state_change(state)
        on_ice_gathering_state_change(state)
        on_ice_candidate(candidate or None when gathering is complete)
    """

    connection_state: str
    ice_connection_state: str
    ice_gathering_state: str
    # Applied local description; may carry gathered candidates the
    # created description lacked
    local_description: Optional[SessionDescription]

    on_track: Optional[Callable]
    on_connection_state_change: Optional[Callable[[str], None]]
    on_ice_connection_state_change: Optional[Callable[[str], None]]
    on_ice_gathering_state_change: Optional[Callable[[str], None]]
    on_ice_candidate: Optional[Callable[[Optional[IceCandidate]], None]]

    def add_track(self, track: MediaTrack, stream: MediaStream) -> None:
        ...

    async def create_offer(self) -> SessionDescription:
        ...

    async def create_answer(self) -> SessionDescription:
        ...

    async def set_local_description(self, description: SessionDescription) -> None:
        ...

    async def set_remote_description(self, description: SessionDescription) -> None:
        ...

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        ...

    async def close(self) -> None:
        ...


# Builds a fresh peer connection from a list of STUN/TURN URLs
PeerConnectionFactory = Callable[[List[str]], PeerConnection]


class AudioRouter(Protocol):
    """
    Device audio routing (earpiece vs speaker, screen wake lock).

    Purely local: nothing here touches the peer connection.
    """

    def start(self, media: str = "audio") -> None:
        ...

    def stop(self) -> None:
        ...

    def set_speaker_on(self, enabled: bool) -> None:
        ...

    def set_keep_screen_on(self, enabled: bool) -> None:
        ...
