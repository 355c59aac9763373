"""
Session Negotiator - drives one call's peer-to-peer session.

One instance per room per participant. It owns the local media stream,
the peer connection, the pending-candidate queue and the description
exchange, and it tears everything down exactly once.

Lifecycle:
    Idle -> AcquiringMedia -> CreatingOffer (initiator)
                           -> AwaitingRemoteDescription (receiver)
         -> DescriptionExchanged -> Connecting -> Connected -> Ending -> Closed

    Failed is entered on unrecoverable errors and always proceeds to
    teardown. Closed is reachable from any state through end().

Role behavior is fixed at construction by picking InitiatorNegotiator or
ReceiverNegotiator; handlers never branch on the role per event.
"""
import asyncio
import inspect
import logging
import time
from datetime import datetime, UTC
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from peercall.config.constants import (
    AUDIO_CONSTRAINTS,
    ENDED_BY_INITIATOR,
    ENDED_BY_RECEIVER,
    EVENT_ANSWER,
    EVENT_CALL_ENDED,
    EVENT_END_CALL,
    EVENT_ICE_CANDIDATE,
    EVENT_JOIN_ROOM,
    EVENT_LEAVE_ROOM,
    EVENT_OFFER,
    VIDEO_ENABLED,
)
from peercall.schemas.signaling_events import (
    CallEndedEvent,
    DescriptionEvent,
    IceCandidate,
    IceCandidateEvent,
    SessionDescription,
)
from peercall.services.call.exceptions import (
    CallError,
    CallSetupTimeoutError,
    CleanupError,
    MediaAcquisitionError,
    PeerConnectionFailure,
    SignalingProtocolViolation,
)
from peercall.services.media.protocols import (
    AudioRouter,
    MediaDevices,
    MediaStream,
    PeerConnection,
    PeerConnectionFactory,
)
from peercall.services.signaling.channel import SignalingChannel, call_id_from_room
from .candidates import PendingCandidateQueue
from .models import CallSession
from .states import CallRole, ConnectionState, EndReason, NegotiatorState
from .timer import DurationTimer

if TYPE_CHECKING:
    from peercall.services.api_client import CallApiClient

logger = logging.getLogger(__name__)

# Forward progress order; FAILED/ENDING/CLOSED are handled separately
_PROGRESS = {
    NegotiatorState.IDLE: 0,
    NegotiatorState.ACQUIRING_MEDIA: 1,
    NegotiatorState.CREATING_OFFER: 2,
    NegotiatorState.AWAITING_REMOTE_DESCRIPTION: 2,
    NegotiatorState.DESCRIPTION_EXCHANGED: 3,
    NegotiatorState.CONNECTING: 4,
    NegotiatorState.CONNECTED: 5,
}

_TERMINAL = (NegotiatorState.FAILED, NegotiatorState.ENDING, NegotiatorState.CLOSED)

FailureListener = Callable[["SessionNegotiator", CallError], Any]
ClosedListener = Callable[["SessionNegotiator", EndReason], Any]


class SessionNegotiator:
    """
    Shared negotiation machinery. Use InitiatorNegotiator or
    ReceiverNegotiator (or create_negotiator) rather than this class.
    """

    role: CallRole
    ended_by_label: str

    def __init__(
        self,
        channel: SignalingChannel,
        room_id: str,
        media_devices: MediaDevices,
        peer_connection_factory: PeerConnectionFactory,
        audio_router: AudioRouter,
        remote_party_id: Optional[str] = None,
        call_records: Optional["CallApiClient"] = None,
        ice_servers: Sequence[str] = (),
        setup_timeout: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self.media_devices = media_devices
        self.peer_connection_factory = peer_connection_factory
        self.audio_router = audio_router
        self.call_records = call_records
        self.ice_servers = list(ice_servers)
        self.setup_timeout = setup_timeout

        self.session = CallSession(
            room_id=room_id,
            local_role=self.role,
            remote_party_id=remote_party_id,
            timer=DurationTimer(clock=clock),
        )

        self.state = NegotiatorState.IDLE
        self.connection_state = ConnectionState.NEW
        self.ice_gathering_state = "new"
        self.status_text = "Initializing..."

        self.pc: Optional[PeerConnection] = None
        self.local_stream: Optional[MediaStream] = None
        self.candidates = PendingCandidateQueue()
        self.remote_description_set = False
        self.local_description_set = False
        self.local_gathering_complete = False
        self.is_muted = False
        self.is_speaker_on = False

        self.failure: Optional[CallError] = None
        self.violations: List[SignalingProtocolViolation] = []
        self.end_reason: Optional[EndReason] = None

        self._ready: Optional[asyncio.Future] = None
        self._end_task: Optional[asyncio.Task] = None
        self._setup_timer: Optional[asyncio.TimerHandle] = None
        self._candidate_emit: Optional[asyncio.Task] = None
        self._remote_description_started = False
        self._listeners: List[Tuple[str, Callable]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._failure_listeners: List[FailureListener] = []
        self._closed_listeners: List[ClosedListener] = []

    # === Properties ===

    @property
    def room_id(self) -> str:
        return self.session.room_id

    @property
    def is_active(self) -> bool:
        return self.state not in _TERMINAL

    @property
    def is_closed(self) -> bool:
        return self.state is NegotiatorState.CLOSED

    @property
    def ever_connected(self) -> bool:
        return self.session.timer.started

    def add_failure_listener(self, listener: FailureListener) -> None:
        self._failure_listeners.append(listener)

    def add_closed_listener(self, listener: ClosedListener) -> None:
        self._closed_listeners.append(listener)

    # === Setup ===

    async def start(self) -> CallSession:
        """
        Join the room, acquire audio, build the peer connection and begin
        the role-specific exchange.

        Raises:
            MediaAcquisitionError: the device denied or lacks an audio input.
                The session is torn down before the error is raised.
        """
        if self.state is not NegotiatorState.IDLE:
            raise RuntimeError(f"Negotiator for {self.room_id} already started")

        self._ready = asyncio.get_running_loop().create_future()

        # Listen before joining so nothing relayed into the room is missed
        self._listen(EVENT_OFFER, self._on_offer_event)
        self._listen(EVENT_ANSWER, self._on_answer_event)
        self._listen(EVENT_ICE_CANDIDATE, self._on_candidate_event)
        self._listen(EVENT_CALL_ENDED, self._on_call_ended_event)

        logger.info(f"[Negotiator] {self.role.value} joining room {self.room_id}")
        self.status_text = "Setting up call..."
        await self.channel.emit(EVENT_JOIN_ROOM, self.room_id)
        if not self.is_active:
            return self.session

        self.audio_router.start(media="audio")
        self.audio_router.set_keep_screen_on(True)
        self.audio_router.set_speaker_on(False)

        self._advance(NegotiatorState.ACQUIRING_MEDIA)
        try:
            stream = await self.media_devices.get_user_media(
                audio=dict(AUDIO_CONSTRAINTS), video=VIDEO_ENABLED
            )
        except Exception as e:
            # Setup errors go back to the caller of start(), not to failure listeners
            error = MediaAcquisitionError(f"Could not access microphone: {e}")
            logger.error(f"[Negotiator] {error}")
            self.failure = error
            self.state = NegotiatorState.FAILED
            await self.end(EndReason.MEDIA_ERROR)
            raise error from e

        if not self.is_active:
            # end() ran while the device was opening
            for track in stream.get_tracks():
                track.stop()
            return self.session

        self.local_stream = stream
        self.status_text = "Media ready, connecting..."
        logger.info(f"[Negotiator] Got local stream with {len(stream.get_tracks())} track(s)")

        self.pc = self.peer_connection_factory(self.ice_servers)
        for track in stream.get_tracks():
            self.pc.add_track(track, stream)

        self.pc.on_track = self._on_remote_track
        self.pc.on_connection_state_change = self._on_connection_state_change
        self.pc.on_ice_connection_state_change = self._on_ice_connection_state_change
        self.pc.on_ice_gathering_state_change = self._on_ice_gathering_state_change
        self.pc.on_ice_candidate = self.on_local_candidate

        self._ready.set_result(True)
        await self._begin_exchange()
        return self.session

    async def _wait_ready(self) -> bool:
        """Wait until the peer connection exists. False if setup was abandoned."""
        if self._ready is None:
            return False
        return await self._ready

    async def _begin_exchange(self) -> None:
        raise NotImplementedError

    # === Remote descriptions (role-specific) ===

    async def _handle_remote_offer(self, description: SessionDescription) -> None:
        self._protocol_violation(f"Unexpected offer for {self.role.value} in room {self.room_id}")

    async def _handle_remote_answer(self, description: SessionDescription) -> None:
        self._protocol_violation(f"Unexpected answer for {self.role.value} in room {self.room_id}")

    async def _apply_remote_description(self, description: SessionDescription) -> bool:
        """Apply the remote description once and drain queued candidates."""
        self._remote_description_started = True
        try:
            await self.pc.set_remote_description(description)
        except Exception as e:
            error = SignalingProtocolViolation(f"Remote {description.type} rejected: {e}")
            self.violations.append(error)
            self._fail(error, EndReason.PROTOCOL_ERROR)
            return False

        self.remote_description_set = True
        logger.info(f"[Negotiator] Set remote description from {description.type}")

        await self.candidates.drain(self._apply_candidate)
        return self.is_active

    async def _emit_local_description(self, event: str, description: SessionDescription) -> None:
        await self.pc.set_local_description(description)
        self.local_description_set = True

        applied = self.pc.local_description or description
        payload = DescriptionEvent(room_id=self.room_id, sdp=applied)
        await self.channel.emit(event, payload.to_wire())
        logger.info(f"[Negotiator] Sent {description.type} to room {self.room_id}")

    def _protocol_violation(self, message: str) -> None:
        logger.warning(f"[Negotiator] Protocol violation ignored: {message}")
        self.violations.append(SignalingProtocolViolation(message))

    # === Candidates ===

    async def on_remote_candidate(self, candidate: IceCandidate) -> None:
        """Apply now if the queue has been drained, otherwise queue in arrival order."""
        if self.candidates.accepting:
            self.candidates.push(candidate)
            logger.debug(f"[Negotiator] Queued candidate ({len(self.candidates)} pending)")
            return

        await self._apply_candidate(candidate)

    async def _apply_candidate(self, candidate: IceCandidate) -> None:
        if self.pc is None:
            return
        try:
            await self.pc.add_ice_candidate(candidate)
            logger.debug("[Negotiator] Added ICE candidate")
        except Exception as e:
            logger.error(f"[Negotiator] Error adding ICE candidate: {e}")

    def on_local_candidate(self, candidate: Optional[IceCandidate]) -> None:
        """Relay a locally discovered candidate; None marks gathering complete."""
        if candidate is None:
            self.local_gathering_complete = True
            logger.info("[Negotiator] ICE gathering completed")
            return

        if not self.is_active:
            return

        previous = self._candidate_emit
        payload = IceCandidateEvent(room_id=self.room_id, candidate=candidate).to_wire()

        async def _send():
            # Keep local candidates in discovery order
            if previous is not None and not previous.done():
                await asyncio.wait([previous])
            try:
                await self.channel.emit(EVENT_ICE_CANDIDATE, payload)
            except Exception as e:
                logger.error(f"[Negotiator] Failed to send ICE candidate: {e}")

        self._candidate_emit = self._spawn(_send())

    # === Room event handlers ===

    def _for_this_room(self, room_id: Optional[str], event: str) -> bool:
        if room_id != self.room_id:
            logger.debug(f"[Negotiator] {event} for room {room_id} ignored (active: {self.room_id})")
            return False
        return True

    async def _on_offer_event(self, payload: Any) -> None:
        try:
            event = DescriptionEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[Negotiator] Malformed offer ignored: {e}")
            return
        if not self._for_this_room(event.room_id, EVENT_OFFER):
            return
        if not await self._wait_ready() or not self.is_active:
            return
        await self._handle_remote_offer(event.sdp)

    async def _on_answer_event(self, payload: Any) -> None:
        try:
            event = DescriptionEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[Negotiator] Malformed answer ignored: {e}")
            return
        if not self._for_this_room(event.room_id, EVENT_ANSWER):
            return
        if not await self._wait_ready() or not self.is_active:
            return
        await self._handle_remote_answer(event.sdp)

    async def _on_candidate_event(self, payload: Any) -> None:
        try:
            event = IceCandidateEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[Negotiator] Malformed ICE candidate ignored: {e}")
            return
        if not self._for_this_room(event.room_id, EVENT_ICE_CANDIDATE):
            return
        if not self.is_active:
            return
        await self.on_remote_candidate(event.candidate)

    async def _on_call_ended_event(self, payload: Any) -> None:
        # Older relays send call-ended without a payload
        data = payload if isinstance(payload, dict) else {}
        room_id = data.get("roomId")
        if room_id is not None and not self._for_this_room(room_id, EVENT_CALL_ENDED):
            return
        logger.info(f"[Negotiator] Call ended by remote party ({data.get('endedBy') or 'unknown'})")
        await self.end(EndReason.REMOTE_ENDED)

    # === Peer connection callbacks ===

    def _on_remote_track(self, track: Any, streams: Sequence[Any] = ()) -> None:
        logger.info(f"[Negotiator] Received remote track: {getattr(track, 'kind', 'unknown')}")
        self.session.remote_stream = streams[0] if streams else track
        if self.is_active:
            self.status_text = "Audio connected"

    def _on_connection_state_change(self, value: str) -> None:
        logger.info(f"[Negotiator] Connection state changed to: {value}")
        state = ConnectionState.from_peer(value)
        if state is not None:
            self._apply_connection_state(state)

    def _on_ice_connection_state_change(self, value: str) -> None:
        logger.info(f"[Negotiator] ICE connection state: {value}")
        state = ConnectionState.from_peer(value)
        # ICE only confirms success or failure; the peer state drives the rest
        if state in (ConnectionState.CONNECTED, ConnectionState.FAILED):
            self._apply_connection_state(state)

    def _on_ice_gathering_state_change(self, value: str) -> None:
        self.ice_gathering_state = value
        logger.info(f"[Negotiator] ICE gathering state: {value}")

    def _apply_connection_state(self, state: ConnectionState) -> None:
        current = self.connection_state
        if state is current:
            return
        if current in (ConnectionState.FAILED, ConnectionState.CLOSED):
            return
        if self.ever_connected and state in (ConnectionState.NEW, ConnectionState.CONNECTING):
            return
        if not self.is_active and state is not ConnectionState.CLOSED:
            return

        self.connection_state = state

        if state is ConnectionState.CONNECTED:
            self._cancel_setup_timeout()
            if self.session.timer.start():
                self.session.started_at = datetime.now(UTC)
            self._advance(NegotiatorState.CONNECTED)
            self.status_text = "Connected"

        elif state is ConnectionState.CONNECTING:
            self._advance(NegotiatorState.CONNECTING)
            self.status_text = "Connecting..."

        elif state is ConnectionState.DISCONNECTED:
            self.status_text = "Disconnected"

        elif state is ConnectionState.FAILED:
            self.status_text = "Connection failed"
            self._fail(PeerConnectionFailure("Call connection failed"), EndReason.CONNECTION_FAILED)

        elif state is ConnectionState.CLOSED and self.is_active:
            # Only teardown closes the connection on purpose
            self.status_text = "Connection closed"
            self._fail(PeerConnectionFailure("Peer connection closed unexpectedly"), EndReason.CONNECTION_FAILED)

        elif state is ConnectionState.NEW:
            self.status_text = "Initializing..."

    # === User controls ===

    def toggle_mute(self) -> bool:
        """Flip the local audio track's enabled flag. Returns the muted state."""
        tracks = self.local_stream.get_audio_tracks() if self.local_stream else []
        if not tracks:
            return self.is_muted

        track = tracks[0]
        track.enabled = not track.enabled
        self.is_muted = not track.enabled
        logger.info(f"[Negotiator] Mute toggled: {self.is_muted}")
        return self.is_muted

    def toggle_speaker_routing(self) -> bool:
        """Switch between earpiece and speaker. Returns the speaker state."""
        self.is_speaker_on = not self.is_speaker_on
        self.audio_router.set_speaker_on(self.is_speaker_on)
        return self.is_speaker_on

    # === Failure & timeout ===

    def _fail(self, error: CallError, reason: EndReason) -> None:
        if self.state in _TERMINAL:
            return

        logger.error(f"[Negotiator] Session {self.room_id} failed: {error}")
        self.failure = error
        self.state = NegotiatorState.FAILED

        for listener in list(self._failure_listeners):
            try:
                listener(self, error)
            except Exception as e:
                logger.error(f"[Negotiator] Failure listener raised: {e}")

        self._begin_end(reason)

    def _arm_setup_timeout(self) -> None:
        if self.setup_timeout <= 0 or self.ever_connected or self._setup_timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._setup_timer = loop.call_later(self.setup_timeout, self._on_setup_timeout)

    def _cancel_setup_timeout(self) -> None:
        if self._setup_timer is not None:
            self._setup_timer.cancel()
            self._setup_timer = None

    def _on_setup_timeout(self) -> None:
        self._setup_timer = None
        if self.ever_connected or not self.is_active:
            return
        self._fail(
            CallSetupTimeoutError(f"Not connected within {self.setup_timeout:g}s"),
            EndReason.SETUP_TIMEOUT,
        )

    # === Teardown ===

    async def end(self, reason: EndReason = EndReason.HANGUP) -> None:
        """
        Tear the session down. Idempotent: concurrent and repeated calls
        all wait for the single teardown started by the first one.
        """
        self._begin_end(reason)
        await asyncio.shield(self._end_task)

    def _begin_end(self, reason: EndReason) -> None:
        if self._end_task is None:
            self._end_task = asyncio.ensure_future(self._teardown(reason))

    async def _teardown(self, reason: EndReason) -> None:
        self.end_reason = reason
        self.state = NegotiatorState.ENDING
        self.session.timer.freeze()
        self._cancel_setup_timeout()
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(False)

        logger.info(f"[Negotiator] Ending session {self.room_id} ({reason.value})")

        await self._cleanup_step("signal end", self._signal_end(reason))
        await self._cleanup_step("stop local tracks", self._stop_local_tracks())
        await self._cleanup_step("close peer connection", self._close_peer_connection())
        await self._cleanup_step("stop audio routing", self._stop_audio_routing())
        await self._cleanup_step("cancel timer", self._stop_timer())
        await self._cleanup_step("remove listeners", self._remove_listeners())
        if reason.is_local:
            await self._cleanup_step("record call end", self._record_end())

        self.connection_state = ConnectionState.CLOSED
        self.state = NegotiatorState.CLOSED
        self.status_text = "Call ended"
        logger.info(
            f"[Negotiator] Session {self.room_id} closed after {self.session.duration_text}"
        )

        for listener in list(self._closed_listeners):
            try:
                result = listener(self, reason)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[Negotiator] Closed listener raised: {e}")

    async def _cleanup_step(self, name: str, step) -> None:
        try:
            await step
        except Exception as e:
            error = CleanupError(f"{name}: {e}")
            logger.error(f"[Negotiator] Cleanup step failed ({error})")

    async def _signal_end(self, reason: EndReason) -> None:
        try:
            if reason.is_local:
                payload = CallEndedEvent(room_id=self.room_id, ended_by=self.ended_by_label)
                await self.channel.emit(EVENT_END_CALL, payload.to_wire())
        finally:
            await self.channel.emit(EVENT_LEAVE_ROOM, self.room_id)

    async def _stop_local_tracks(self) -> None:
        if self.local_stream is None:
            return
        errors = []
        for track in self.local_stream.get_tracks():
            try:
                track.stop()
                logger.debug(f"[Negotiator] Stopped track: {track.kind}")
            except Exception as e:
                errors.append(e)
        if errors:
            raise CleanupError(f"{len(errors)} track(s) failed to stop: {errors[0]}")

    async def _close_peer_connection(self) -> None:
        if self.pc is not None:
            await self.pc.close()
            logger.info("[Negotiator] Closed peer connection")

    async def _stop_audio_routing(self) -> None:
        self.audio_router.stop()

    async def _stop_timer(self) -> None:
        self.session.timer.stop()

    async def _remove_listeners(self) -> None:
        for event, handler in self._listeners:
            self.channel.off(event, handler)
        self._listeners.clear()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    async def _record_end(self) -> None:
        if self.call_records is None:
            return
        await self.call_records.end_call(call_id_from_room(self.room_id), self.ended_by_label)

    # === Helpers ===

    def _listen(self, event: str, handler: Callable) -> None:
        self.channel.on(event, handler)
        self._listeners.append((event, handler))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _advance(self, state: NegotiatorState) -> None:
        if self.state in _TERMINAL:
            return
        if _PROGRESS[state] < _PROGRESS[self.state]:
            return
        if state is not self.state:
            logger.debug(f"[Negotiator] {self.state.value} -> {state.value}")
            self.state = state


class InitiatorNegotiator(SessionNegotiator):
    """Creates the offer and applies the inbound answer."""

    role = CallRole.INITIATOR
    ended_by_label = ENDED_BY_INITIATOR

    async def _begin_exchange(self) -> None:
        await self.create_offer()

    async def create_offer(self) -> None:
        # Readiness replaces retry-polling while the connection is built
        if not await self._wait_ready() or not self.is_active:
            return

        self._advance(NegotiatorState.CREATING_OFFER)
        self.status_text = "Creating offer..."

        offer = await self.pc.create_offer()
        if not self.is_active:
            return
        await self._emit_local_description(EVENT_OFFER, offer)
        self.status_text = "Offer sent, waiting for answer..."
        self._arm_setup_timeout()

    async def _handle_remote_answer(self, description: SessionDescription) -> None:
        if description.type != "answer":
            self._protocol_violation(f"Answer event carried a {description.type}")
            return
        if not self.local_description_set:
            self._protocol_violation("Answer received before an offer was sent")
            return
        if self._remote_description_started:
            self._protocol_violation(f"Second answer for room {self.room_id}")
            return

        if not await self._apply_remote_description(description):
            return
        self._advance(NegotiatorState.DESCRIPTION_EXCHANGED)
        self.status_text = "Connecting..."


class ReceiverNegotiator(SessionNegotiator):
    """Waits for the offer, then answers it."""

    role = CallRole.RECEIVER
    ended_by_label = ENDED_BY_RECEIVER

    async def _begin_exchange(self) -> None:
        self._advance(NegotiatorState.AWAITING_REMOTE_DESCRIPTION)
        self.status_text = "Waiting for offer..."
        logger.info(f"[Negotiator] Waiting for offer in room {self.room_id}")

    async def _handle_remote_offer(self, description: SessionDescription) -> None:
        if description.type != "offer":
            self._protocol_violation(f"Offer event carried a {description.type}")
            return
        if self._remote_description_started:
            self._protocol_violation(f"Second offer for room {self.room_id}")
            return

        if not await self._apply_remote_description(description):
            return

        self.status_text = "Creating answer..."
        try:
            answer = await self.pc.create_answer()
            if not self.is_active:
                return
            await self._emit_local_description(EVENT_ANSWER, answer)
        except Exception as e:
            # A resent offer would be dropped as a duplicate
            self._fail(PeerConnectionFailure(f"Could not answer offer: {e}"), EndReason.SETUP_FAILED)
            return

        self._advance(NegotiatorState.DESCRIPTION_EXCHANGED)
        if self.state is NegotiatorState.DESCRIPTION_EXCHANGED:
            self.status_text = "Answer sent, connecting..."
        self._arm_setup_timeout()


_VARIANTS = {
    CallRole.INITIATOR: InitiatorNegotiator,
    CallRole.RECEIVER: ReceiverNegotiator,
}


def create_negotiator(role: CallRole, channel: SignalingChannel, room_id: str, **kwargs) -> SessionNegotiator:
    """Build the negotiator variant for a role."""
    return _VARIANTS[role](channel, room_id, **kwargs)
