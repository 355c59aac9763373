"""
Caller Orchestrator

Turns "call this callee" into a routed call:
1. Local balance pre-check (the server re-checks)
2. Call record + room creation through the API
3. Join the room and send the routed call request
4. Ring until accepted, rejected or cancelled
5. On acceptance, run the session as Initiator
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from pydantic import ValidationError

from peercall.config.constants import (
    EVENT_CALL_ACCEPTED,
    EVENT_CALL_REJECTED,
    EVENT_CALL_REQUEST,
    EVENT_JOIN_ROOM,
    EVENT_LEAVE_ROOM,
    EVENT_USER_CONNECT,
    MIN_CALL_BALANCE,
)
from peercall.schemas.call import CalleeSummary, CallHistoryItem
from peercall.schemas.signaling_events import (
    CallAcceptedEvent,
    CallRejectedEvent,
    CallRequestEvent,
)
from peercall.services.api_client import CallApiClient
from peercall.services.protocols import CallNavigator, Notifier
from peercall.services.session.states import CallRole, EndReason
from peercall.services.signaling.channel import SignalingChannel
from .exceptions import (
    CallApiError,
    CallRejectedError,
    InsufficientBalanceError,
    RoutingError,
    SignalingError,
)
from .orchestrator import CallOrchestratorBase, NegotiatorFactory

logger = logging.getLogger(__name__)


class CallerState(str, Enum):
    IDLE = "idle"
    RINGING = "ringing"
    IN_CALL = "in_call"


@dataclass
class CallRequest:
    """The single outstanding call attempt."""
    target_callee_id: str
    room_id: str
    busy: bool = True


class CallerOrchestrator(CallOrchestratorBase):
    log_tag = "[Caller]"

    def __init__(
        self,
        channel: SignalingChannel,
        api: CallApiClient,
        negotiator_factory: NegotiatorFactory,
        navigator: CallNavigator,
        notifier: Notifier,
        user_id: str,
        user_name: str = "User",
        balance: int = 0,
        min_balance: int = MIN_CALL_BALANCE,
    ):
        super().__init__(channel, api, negotiator_factory, navigator, notifier)
        self.user_id = user_id
        self.user_name = user_name
        self.balance = balance
        self.min_balance = min_balance

        self.state = CallerState.IDLE
        self.pending: Optional[CallRequest] = None
        self.last_rejection: Optional[CallRejectedError] = None
        self.callees: List[CalleeSummary] = []
        self.history: List[CallHistoryItem] = []

    async def connect(self) -> None:
        self._listen(EVENT_CALL_ACCEPTED, self._on_call_accepted)
        self._listen(EVENT_CALL_REJECTED, self._on_call_rejected)
        await self._connect(EVENT_USER_CONNECT, self.user_id)

    def update_balance(self, balance: int) -> None:
        """Adopt the last balance reported by the server."""
        self.balance = balance

    async def refresh_callees(self) -> List[CalleeSummary]:
        try:
            self.callees = await self.api.fetch_callees()
        except CallApiError:
            self.notifier.notify("Error", "Failed to fetch therapists")
        return self.callees

    async def refresh_history(self) -> List[CallHistoryItem]:
        try:
            self.history = await self.api.fetch_call_history()
        except CallApiError as e:
            logger.error(f"[Caller] Error fetching call history: {e}")
        return self.history

    # === Placing calls ===

    async def place_call(self, callee_id: str) -> Optional[CallRequest]:
        """
        Route a call to a callee.

        Returns:
            The outstanding request, or None if a call is already ringing
            or active.

        Raises:
            InsufficientBalanceError: balance below the call minimum; no
                network call is made.
            RoutingError: the call record or request could not be created.
        """
        if self.state is not CallerState.IDLE:
            logger.info(f"[Caller] place_call({callee_id}) ignored while {self.state.value}")
            return None

        if self.balance < self.min_balance:
            self.notifier.notify(
                "Insufficient Balance",
                f"You need at least {self.min_balance} coins to make a call"
            )
            raise InsufficientBalanceError(
                f"Balance {self.balance} is below the minimum of {self.min_balance}"
            )

        self.state = CallerState.RINGING
        self.last_rejection = None
        try:
            room_id = await self.api.initiate_call(callee_id)
            request = CallRequest(target_callee_id=callee_id, room_id=room_id)
            self.pending = request

            await self.channel.emit(EVENT_JOIN_ROOM, room_id)
            call_request = CallRequestEvent(
                target_id=callee_id,
                caller_id=self.user_id,
                caller_name=self.user_name,
                room_id=room_id,
            )
            await self.channel.emit(EVENT_CALL_REQUEST, call_request.to_wire())
        except (CallApiError, SignalingError) as e:
            self.state = CallerState.IDLE
            self.pending = None
            self.notifier.notify("Error", "Failed to initiate call")
            raise RoutingError(f"Could not route call to {callee_id}: {e}") from e

        logger.info(f"[Caller] Ringing {callee_id} in room {room_id}")
        self.notifier.notify("Calling...", "Waiting for therapist to accept")
        return request

    async def cancel_call(self) -> None:
        """Stop ringing. A late acceptance for the cancelled room is ignored."""
        if self.state is not CallerState.RINGING or self.pending is None:
            return

        request, self.pending = self.pending, None
        self.state = CallerState.IDLE
        logger.info(f"[Caller] Call to {request.target_callee_id} cancelled")
        try:
            await self.channel.emit(EVENT_LEAVE_ROOM, request.room_id)
        except SignalingError as e:
            logger.error(f"[Caller] Could not leave room {request.room_id}: {e}")

    # === Routing events ===

    def _matches_pending(self, room_id: Optional[str]) -> bool:
        return self.pending is not None and room_id == self.pending.room_id

    async def _on_call_accepted(self, payload: Any) -> None:
        try:
            event = CallAcceptedEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[Caller] Malformed call-accepted ignored: {e}")
            return

        if not self._matches_pending(event.room_id):
            logger.debug(f"[Caller] call-accepted for room {event.room_id} ignored")
            return

        logger.info(f"[Caller] Call accepted by {event.callee_id}")
        self.pending = None
        self.state = CallerState.IN_CALL
        await self._start_session(CallRole.INITIATOR, event.room_id, event.callee_id)

    async def _on_call_rejected(self, payload: Any) -> None:
        try:
            event = CallRejectedEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[Caller] Malformed call-rejected ignored: {e}")
            return

        if self.pending is None or event.caller_id != self.user_id:
            return
        if event.room_id is not None and event.room_id != self.pending.room_id:
            logger.debug(f"[Caller] call-rejected for room {event.room_id} ignored")
            return

        request, self.pending = self.pending, None
        self.state = CallerState.IDLE
        self.last_rejection = CallRejectedError(
            f"Call to {request.target_callee_id} rejected ({event.reason or 'declined'})"
        )
        logger.info(f"[Caller] {self.last_rejection}")

        try:
            await self.channel.emit(EVENT_LEAVE_ROOM, request.room_id)
        except SignalingError as e:
            logger.error(f"[Caller] Could not leave room {request.room_id}: {e}")

        self.notifier.notify("Call Rejected", "The therapist is not available")

    def _session_closed(self, reason: EndReason) -> None:
        self.state = CallerState.IDLE
