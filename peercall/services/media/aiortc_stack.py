"""
aiortc Media Stack

Concrete media stack on top of aiortc:
- Microphone capture through MediaPlayer (pulse/avfoundation/dshow)
- Mute by silencing frames on a relaying track
- Peer connection adapter exposing the callback attributes the
  negotiator expects

aiortc gathers every candidate before setLocalDescription returns and
embeds them in the SDP, so only the terminal (None) local candidate is
reported. Trickled remote candidates are still accepted.
"""
import logging
import platform
from typing import Callable, List, Optional

from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.contrib.media import MediaPlayer
from aiortc.sdp import candidate_from_sdp

from peercall.schemas.signaling_events import IceCandidate, SessionDescription

logger = logging.getLogger(__name__)

# (device, format) for the default microphone per platform
_DEFAULT_MICROPHONE = {
    "Linux": ("default", "pulse"),
    "Darwin": (":default", "avfoundation"),
    "Windows": ("audio=Microphone", "dshow"),
}


class MutableAudioTrack(MediaStreamTrack):
    """Relays a source track, replacing samples with silence while disabled."""

    kind = "audio"

    def __init__(self, source: MediaStreamTrack):
        super().__init__()
        self._source = source
        self.enabled = True

    async def recv(self):
        frame = await self._source.recv()
        if not self.enabled:
            for plane in frame.planes:
                plane.update(bytes(plane.buffer_size))
        return frame

    def stop(self) -> None:
        super().stop()
        self._source.stop()


class AiortcMediaStream:
    def __init__(self, tracks: List[MutableAudioTrack]):
        self._tracks = tracks

    def get_tracks(self) -> List[MutableAudioTrack]:
        return list(self._tracks)

    def get_audio_tracks(self) -> List[MutableAudioTrack]:
        return [t for t in self._tracks if t.kind == "audio"]


class AiortcMediaDevices:
    """Captures the local microphone with ffmpeg via MediaPlayer."""

    def __init__(self, device: Optional[str] = None, format: Optional[str] = None, options: Optional[dict] = None):
        default_device, default_format = _DEFAULT_MICROPHONE.get(platform.system(), ("default", "pulse"))
        self.device = device or default_device
        self.format = format or default_format
        self.options = options or {}

    async def get_user_media(self, audio: dict, video: bool = False) -> AiortcMediaStream:
        if video:
            raise ValueError("Video capture is not supported")

        # Processing constraints are applied by the OS audio service, not ffmpeg
        logger.debug(f"[Media] Opening {self.format}:{self.device} (constraints: {audio})")
        player = MediaPlayer(self.device, format=self.format, options=self.options)

        if player.audio is None:
            raise RuntimeError(f"No audio input on {self.device}")

        return AiortcMediaStream([MutableAudioTrack(player.audio)])


class AiortcPeerConnection:
    """Adapts RTCPeerConnection to the callback-attribute interface."""

    def __init__(self, ice_servers: List[str]):
        config = RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in ice_servers])
        self._pc = RTCPeerConnection(configuration=config)
        self._gathering_reported = False

        self.on_track: Optional[Callable] = None
        self.on_connection_state_change: Optional[Callable[[str], None]] = None
        self.on_ice_connection_state_change: Optional[Callable[[str], None]] = None
        self.on_ice_gathering_state_change: Optional[Callable[[str], None]] = None
        self.on_ice_candidate: Optional[Callable[[Optional[IceCandidate]], None]] = None

        self._pc.on("track", self._handle_track)
        self._pc.on("connectionstatechange", self._handle_connection_state)
        self._pc.on("iceconnectionstatechange", self._handle_ice_connection_state)
        self._pc.on("icegatheringstatechange", self._handle_ice_gathering_state)

    # === State ===

    @property
    def connection_state(self) -> str:
        return self._pc.connectionState

    @property
    def ice_connection_state(self) -> str:
        return self._pc.iceConnectionState

    @property
    def ice_gathering_state(self) -> str:
        return self._pc.iceGatheringState

    @property
    def local_description(self) -> Optional[SessionDescription]:
        desc = self._pc.localDescription
        if desc is None:
            return None
        return SessionDescription(type=desc.type, sdp=desc.sdp)

    # === Event bridging ===

    def _handle_track(self, track) -> None:
        if self.on_track:
            self.on_track(track, [])

    def _handle_connection_state(self) -> None:
        if self.on_connection_state_change:
            self.on_connection_state_change(self._pc.connectionState)

    def _handle_ice_connection_state(self) -> None:
        if self.on_ice_connection_state_change:
            self.on_ice_connection_state_change(self._pc.iceConnectionState)

    def _handle_ice_gathering_state(self) -> None:
        state = self._pc.iceGatheringState
        if self.on_ice_gathering_state_change:
            self.on_ice_gathering_state_change(state)
        if state == "complete" and not self._gathering_reported:
            self._gathering_reported = True
            if self.on_ice_candidate:
                self.on_ice_candidate(None)

    # === Negotiation ===

    def add_track(self, track, stream) -> None:
        self._pc.addTrack(track)

    async def create_offer(self) -> SessionDescription:
        desc = await self._pc.createOffer()
        return SessionDescription(type=desc.type, sdp=desc.sdp)

    async def create_answer(self) -> SessionDescription:
        desc = await self._pc.createAnswer()
        return SessionDescription(type=desc.type, sdp=desc.sdp)

    async def set_local_description(self, description: SessionDescription) -> None:
        await self._pc.setLocalDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type)
        )

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type)
        )

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        sdp = candidate.candidate
        if sdp.startswith("candidate:"):
            sdp = sdp[len("candidate:"):]
        if not sdp:
            # end-of-candidates marker
            return

        rtc_candidate = candidate_from_sdp(sdp)
        rtc_candidate.sdpMid = candidate.sdp_mid
        rtc_candidate.sdpMLineIndex = candidate.sdp_mline_index
        await self._pc.addIceCandidate(rtc_candidate)

    async def close(self) -> None:
        await self._pc.close()


def aiortc_peer_connection_factory(ice_servers: List[str]) -> AiortcPeerConnection:
    return AiortcPeerConnection(ice_servers)
