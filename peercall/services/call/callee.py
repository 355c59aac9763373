"""
Callee Orchestrator

Advertises availability and reacts to routed call requests:
- Availability always mirrors the last server-confirmed value
- One incoming-call prompt at a time; further requests while a prompt
  is showing or a call is active are rejected automatically as busy
- Accepting confirms the call record, notifies the caller and runs the
  session as Receiver
"""
import logging
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError

from peercall.config.constants import (
    EVENT_CALL_ACCEPTED,
    EVENT_CALL_REJECTED,
    EVENT_INCOMING_CALL,
    EVENT_THERAPIST_CONNECT,
    REJECT_REASON_ACCEPT_FAILED,
    REJECT_REASON_BUSY,
)
from peercall.schemas.signaling_events import (
    CallAcceptedEvent,
    CallRejectedEvent,
    CallRequestEvent,
)
from peercall.services.api_client import CallApiClient
from peercall.services.protocols import CallNavigator, Notifier
from peercall.services.session.states import CallRole, EndReason
from peercall.services.signaling.channel import SignalingChannel, call_id_from_room
from .exceptions import CallApiError, SignalingError
from .orchestrator import CallOrchestratorBase, NegotiatorFactory

logger = logging.getLogger(__name__)


class CalleeState(str, Enum):
    OFFLINE = "offline"
    IDLE = "idle"
    PROMPTING = "prompting"
    IN_CALL = "in_call"


class CalleeOrchestrator(CallOrchestratorBase):
    log_tag = "[Callee]"

    def __init__(
        self,
        channel: SignalingChannel,
        api: CallApiClient,
        negotiator_factory: NegotiatorFactory,
        navigator: CallNavigator,
        notifier: Notifier,
        callee_id: str,
        is_available: bool = False,
    ):
        super().__init__(channel, api, negotiator_factory, navigator, notifier)
        self.callee_id = callee_id
        self.is_available = is_available
        self.state = CalleeState.OFFLINE
        self.incoming: Optional[CallRequestEvent] = None

    async def connect(self) -> None:
        self._listen(EVENT_INCOMING_CALL, self._on_incoming_call)
        await self._connect(EVENT_THERAPIST_CONNECT, self.callee_id)
        self.state = CalleeState.IDLE

    async def disconnect(self) -> None:
        await super().disconnect()
        self.incoming = None
        self.state = CalleeState.OFFLINE

    # === Availability ===

    async def refresh_availability(self) -> bool:
        try:
            self.is_available = await self.api.get_availability()
        except CallApiError as e:
            logger.error(f"[Callee] Could not read availability: {e}")
        return self.is_available

    async def set_availability(self, is_available: bool) -> bool:
        """
        Ask the registry for a new availability value.

        The displayed flag only changes to what the server acknowledged;
        on failure it keeps the previous value.
        """
        try:
            confirmed = await self.api.set_availability(is_available)
        except CallApiError:
            self.notifier.notify("Error", "Failed to update availability")
            return self.is_available

        self.is_available = confirmed
        logger.info(f"[Callee] Availability is now {'on' if confirmed else 'off'}")
        return confirmed

    async def toggle_availability(self) -> bool:
        return await self.set_availability(not self.is_available)

    # === Incoming calls ===

    async def _on_incoming_call(self, payload: Any) -> None:
        try:
            call = CallRequestEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[Callee] Malformed incoming-call ignored: {e}")
            return

        if call.target_id != self.callee_id:
            logger.debug(f"[Callee] incoming-call for {call.target_id} ignored")
            return

        if self.state in (CalleeState.PROMPTING, CalleeState.IN_CALL):
            logger.info(f"[Callee] Busy, rejecting call from {call.caller_id} (room {call.room_id})")
            await self._send_rejection(call, reason=REJECT_REASON_BUSY)
            return

        self.incoming = call
        self.state = CalleeState.PROMPTING
        self.navigator.show_incoming_call(call)
        logger.info(f"[Callee] {call.caller_name} is calling (room {call.room_id})")

    def _take_prompt(self, call: Optional[CallRequestEvent]) -> Optional[CallRequestEvent]:
        current = self.incoming
        if current is None:
            return None
        if call is not None and call.room_id != current.room_id:
            logger.warning(f"[Callee] No prompt for room {call.room_id}")
            return None

        self.incoming = None
        self.navigator.dismiss_incoming_call()
        return current

    async def accept(self, call: Optional[CallRequestEvent] = None) -> bool:
        """Accept the prompted call and start the session as Receiver."""
        call = self._take_prompt(call)
        if call is None:
            return False

        self.state = CalleeState.IN_CALL
        try:
            await self.api.answer_call(call_id_from_room(call.room_id))
            accepted = CallAcceptedEvent(
                caller_id=call.caller_id,
                callee_id=self.callee_id,
                room_id=call.room_id,
            )
            await self.channel.emit(EVENT_CALL_ACCEPTED, accepted.to_wire())
        except (CallApiError, SignalingError, ValueError) as e:
            logger.error(f"[Callee] Failed to accept call {call.room_id}: {e}")
            self.state = CalleeState.IDLE
            self.notifier.notify("Error", "Failed to accept call")
            # The caller is still ringing
            await self._send_rejection(call, reason=REJECT_REASON_ACCEPT_FAILED)
            return False

        logger.info(f"[Callee] Accepted call from {call.caller_id}")
        negotiator = await self._start_session(CallRole.RECEIVER, call.room_id, call.caller_id)
        return negotiator is not None

    async def reject(self, call: Optional[CallRequestEvent] = None) -> bool:
        """Decline the prompted call. No session is created."""
        call = self._take_prompt(call)
        if call is None:
            return False

        self.state = CalleeState.IDLE
        await self._send_rejection(call)
        logger.info(f"[Callee] Rejected call from {call.caller_id}")
        return True

    async def _send_rejection(self, call: CallRequestEvent, reason: Optional[str] = None) -> None:
        rejected = CallRejectedEvent(
            caller_id=call.caller_id,
            callee_id=self.callee_id,
            room_id=call.room_id,
            reason=reason,
        )
        try:
            await self.channel.emit(EVENT_CALL_REJECTED, rejected.to_wire())
        except SignalingError as e:
            logger.error(f"[Callee] Could not send rejection for {call.room_id}: {e}")

    def _session_closed(self, reason: EndReason) -> None:
        if self.state is CalleeState.IN_CALL:
            self.state = CalleeState.IDLE
