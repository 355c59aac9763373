import asyncio
import itertools
from typing import Any, Dict, List, Optional, Set

from peercall.schemas.call import CalleeSummary, CallHistoryItem
from peercall.schemas.signaling_events import IceCandidate, SessionDescription
from peercall.services.call.exceptions import CallApiError, SignalingError
from peercall.services.media.routing import NullAudioRouter
from peercall.services.session.negotiator import create_negotiator
from peercall.services.signaling.channel import SignalingChannel

ROOM = "room-call1"
CALL_ID = "call1"

_ids = itertools.count(1)


async def settle(rounds: int = 10) -> None:
    # Let spawned tasks and callbacks run
    for _ in range(rounds):
        await asyncio.sleep(0)


def candidate(n: int) -> IceCandidate:
    return IceCandidate(
        candidate=f"candidate:{n} 1 udp 2122260223 192.168.1.{n} 5000{n} typ host",
        sdp_mid="0",
        sdp_mline_index=0,
    )


def candidate_payload(n: int, room_id: str = ROOM) -> Dict[str, Any]:
    return {"roomId": room_id, "candidate": candidate(n).to_wire()}


def description_payload(kind: str, sdp: str = "v=0", room_id: str = ROOM) -> Dict[str, Any]:
    return {"roomId": room_id, "sdp": {"type": kind, "sdp": sdp}}


# =============================================================================
# Signaling
# =============================================================================

class FakeSignalingChannel(SignalingChannel):
    """Records outbound events; inbound events are queued and dispatched one at a time."""

    def __init__(self, relay: Optional["LoopbackRelay"] = None, name: str = "client"):
        super().__init__()
        self.name = name
        self.relay = relay
        self.sent: List[tuple] = []
        self.fail_events: Set[str] = set()
        self.is_connected = False
        self.connect_count = 0
        self._inbox: Optional[asyncio.Queue] = None
        self._pump: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self.is_connected

    async def connect(self) -> None:
        self.is_connected = True
        self.connect_count += 1

    async def disconnect(self) -> None:
        self.is_connected = False
        if self._pump is not None:
            self._pump.cancel()
            self._pump = None

    async def emit(self, event: str, payload: Any = None) -> None:
        if event in self.fail_events:
            raise SignalingError(f"emit '{event}' failed")
        self.sent.append((event, payload))
        if self.relay is not None:
            self.relay.route(self, event, payload)

    def emitted(self, event: str) -> List[Any]:
        return [payload for name, payload in self.sent if name == event]

    def event_names(self) -> List[str]:
        return [name for name, _ in self.sent]

    def push(self, event: str, payload: Any) -> None:
        if self._inbox is None:
            self._inbox = asyncio.Queue()
            self._pump = asyncio.create_task(self._run())
        self._inbox.put_nowait((event, payload))

    async def _run(self) -> None:
        while True:
            event, payload = await self._inbox.get()
            try:
                await self.dispatch(event, payload)
            finally:
                self._inbox.task_done()

    async def drained(self) -> None:
        if self._inbox is not None:
            await self._inbox.join()


class LoopbackRelay:
    """In-process stand-in for the signaling relay server."""

    def __init__(self):
        self.channels: List[FakeSignalingChannel] = []
        self.identities: Dict[str, FakeSignalingChannel] = {}
        self.rooms: Dict[str, Set[FakeSignalingChannel]] = {}
        self.unavailable: Set[str] = set()

    def channel(self, name: str) -> FakeSignalingChannel:
        ch = FakeSignalingChannel(relay=self, name=name)
        self.channels.append(ch)
        return ch

    def route(self, sender: FakeSignalingChannel, event: str, payload: Any) -> None:
        if event in ("user-connect", "therapist-connect"):
            self.identities[payload] = sender
        elif event == "join-room":
            self.rooms.setdefault(payload, set()).add(sender)
        elif event == "leave-room":
            self.rooms.get(payload, set()).discard(sender)
        elif event == "call-therapist":
            target = payload["targetId"]
            if target in self.unavailable or target not in self.identities:
                return
            self.identities[target].push("incoming-call", payload)
        elif event in ("call-accepted", "call-rejected"):
            caller = self.identities.get(payload["callerId"])
            if caller is not None:
                caller.push(event, payload)
        elif event in ("offer", "answer", "ice-candidate"):
            self._to_room(sender, payload["roomId"], event, payload)
        elif event == "end-call":
            self._to_room(sender, payload["roomId"], "call-ended", payload)

    def _to_room(self, sender, room_id, event, payload) -> None:
        for member in self.rooms.get(room_id, set()):
            if member is not sender:
                member.push(event, payload)

    async def settle(self, rounds: int = 10) -> None:
        for _ in range(rounds):
            for ch in self.channels:
                await ch.drained()
            await asyncio.sleep(0)


# =============================================================================
# Media
# =============================================================================

class FakeTrack:
    def __init__(self, kind: str = "audio", fail_stop: bool = False):
        self.kind = kind
        self.enabled = True
        self.stopped = False
        self.fail_stop = fail_stop

    def stop(self) -> None:
        if self.fail_stop:
            raise RuntimeError("device busy")
        self.stopped = True


class FakeStream:
    def __init__(self, tracks: Optional[List[FakeTrack]] = None):
        self.tracks = tracks if tracks is not None else [FakeTrack()]

    def get_tracks(self) -> List[FakeTrack]:
        return list(self.tracks)

    def get_audio_tracks(self) -> List[FakeTrack]:
        return [t for t in self.tracks if t.kind == "audio"]


class FakeMediaDevices:
    def __init__(self, error: Optional[Exception] = None, gate: Optional[asyncio.Event] = None):
        self.error = error
        self.gate = gate
        self.requests: List[dict] = []
        self.streams: List[FakeStream] = []

    async def get_user_media(self, audio: dict, video: bool = False) -> FakeStream:
        self.requests.append({"audio": audio, "video": video})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        stream = FakeStream()
        self.streams.append(stream)
        return stream


class FakePeerConnection:
    def __init__(self, ice_servers=(), fail_remote: bool = False, fail_close: bool = False):
        self.id = next(_ids)
        self.ice_servers = list(ice_servers)
        self.fail_remote = fail_remote
        self.fail_close = fail_close

        self.connection_state = "new"
        self.ice_connection_state = "new"
        self.ice_gathering_state = "new"
        self.local_description: Optional[SessionDescription] = None
        self.remote_description: Optional[SessionDescription] = None
        self.tracks: List[FakeTrack] = []
        self.added_candidates: List[IceCandidate] = []
        self.closed = False

        self.on_track = None
        self.on_connection_state_change = None
        self.on_ice_connection_state_change = None
        self.on_ice_gathering_state_change = None
        self.on_ice_candidate = None

    def add_track(self, track, stream) -> None:
        self.tracks.append(track)

    async def create_offer(self) -> SessionDescription:
        return SessionDescription(type="offer", sdp=f"v=0 offer pc{self.id}")

    async def create_answer(self) -> SessionDescription:
        if self.remote_description is None:
            raise RuntimeError("answer without remote offer")
        return SessionDescription(type="answer", sdp=f"v=0 answer pc{self.id}")

    async def set_local_description(self, description: SessionDescription) -> None:
        self.local_description = description

    async def set_remote_description(self, description: SessionDescription) -> None:
        if self.fail_remote:
            raise ValueError("invalid sdp")
        self.remote_description = description

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        if self.remote_description is None:
            raise RuntimeError("candidate before remote description")
        self.added_candidates.append(candidate)

    async def close(self) -> None:
        if self.fail_close:
            raise RuntimeError("close failed")
        self.closed = True

    # Test drivers

    def set_connection_state(self, value: str) -> None:
        self.connection_state = value
        if self.on_connection_state_change:
            self.on_connection_state_change(value)

    def set_ice_connection_state(self, value: str) -> None:
        self.ice_connection_state = value
        if self.on_ice_connection_state_change:
            self.on_ice_connection_state_change(value)

    def gather(self, ice_candidate: Optional[IceCandidate]) -> None:
        self.on_ice_candidate(ice_candidate)


class FakePeerConnectionFactory:
    def __init__(self, fail_remote: bool = False, fail_close: bool = False):
        self.fail_remote = fail_remote
        self.fail_close = fail_close
        self.created: List[FakePeerConnection] = []

    def __call__(self, ice_servers) -> FakePeerConnection:
        pc = FakePeerConnection(ice_servers, fail_remote=self.fail_remote, fail_close=self.fail_close)
        self.created.append(pc)
        return pc


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNotifier:
    def __init__(self):
        self.notices: List[tuple] = []

    def notify(self, title: str, message: str) -> None:
        self.notices.append((title, message))

    def titles(self) -> List[str]:
        return [title for title, _ in self.notices]


# =============================================================================
# Call-record API
# =============================================================================

class FakeCallApi:
    """Duck-typed CallApiClient. Set `fail` to make every call raise CallApiError."""

    def __init__(self, room_id: str = ROOM, is_available: bool = False):
        self.room_id = room_id
        self.is_available = is_available
        self.fail = False
        self.calls: List[tuple] = []
        self.ended: List[tuple] = []
        self.callees = [CalleeSummary(id="t1", name="Dr. One")]
        self.history: List[CallHistoryItem] = []

    def _check(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if self.fail:
            raise CallApiError(f"{name} failed", status_code=500)

    async def initiate_call(self, callee_id: str) -> str:
        self._check("initiate_call", callee_id)
        return self.room_id

    async def answer_call(self, call_id: str) -> dict:
        self._check("answer_call", call_id)
        return {}

    async def end_call(self, call_id: str, ended_by: str) -> dict:
        self._check("end_call", call_id, ended_by)
        self.ended.append((call_id, ended_by))
        return {}

    async def get_availability(self) -> bool:
        self._check("get_availability")
        return self.is_available

    async def set_availability(self, is_available: bool) -> bool:
        self._check("set_availability", is_available)
        self.is_available = is_available
        return is_available

    async def fetch_callees(self) -> List[CalleeSummary]:
        self._check("fetch_callees")
        return self.callees

    async def fetch_call_history(self) -> List[CallHistoryItem]:
        self._check("fetch_call_history")
        return self.history


# =============================================================================
# Wiring
# =============================================================================

class MediaKit:
    """One participant's fake media stack."""

    def __init__(self, media: Optional[FakeMediaDevices] = None, pcs: Optional[FakePeerConnectionFactory] = None):
        self.media = media or FakeMediaDevices()
        self.pcs = pcs or FakePeerConnectionFactory()
        self.router = NullAudioRouter()
        self.clock = FakeClock()

    @property
    def pc(self) -> FakePeerConnection:
        return self.pcs.created[-1]

    def negotiator(self, role, channel, room_id: str = ROOM, remote_party_id=None, call_records=None, **kwargs):
        return create_negotiator(
            role,
            channel,
            room_id,
            media_devices=self.media,
            peer_connection_factory=self.pcs,
            audio_router=self.router,
            remote_party_id=remote_party_id,
            call_records=call_records,
            clock=self.clock,
            **kwargs,
        )

    def factory(self, channel, call_records=None, **kwargs):
        def build(role, room_id, remote_party_id):
            return self.negotiator(role, channel, room_id, remote_party_id, call_records, **kwargs)
        return build
