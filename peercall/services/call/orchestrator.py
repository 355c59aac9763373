"""
Call Orchestrator Base

Shared control logic for both roles:
- Presence registration on connect
- Starting a session negotiator and entering the call view
- Reconciling local state when the session fails or closes
"""
import logging
from typing import Callable, List, Optional, Tuple

from peercall.services.api_client import CallApiClient
from peercall.services.protocols import CallNavigator, Notifier
from peercall.services.session.negotiator import SessionNegotiator
from peercall.services.session.states import CallRole, EndReason
from peercall.services.signaling.channel import SignalingChannel
from .exceptions import CallError, MediaAcquisitionError

logger = logging.getLogger(__name__)

# (role, room_id, remote_party_id) -> fresh negotiator
NegotiatorFactory = Callable[[CallRole, str, Optional[str]], SessionNegotiator]


class CallOrchestratorBase:
    """
    Owns at most one session negotiator at a time. The negotiator is
    always built fresh per call and dropped once it closes.
    """

    log_tag = "[Orchestrator]"

    def __init__(
        self,
        channel: SignalingChannel,
        api: CallApiClient,
        negotiator_factory: NegotiatorFactory,
        navigator: CallNavigator,
        notifier: Notifier,
    ):
        self.channel = channel
        self.api = api
        self.negotiator_factory = negotiator_factory
        self.navigator = navigator
        self.notifier = notifier
        self.negotiator: Optional[SessionNegotiator] = None
        self._handlers: List[Tuple[str, Callable]] = []

    @property
    def in_call(self) -> bool:
        return self.negotiator is not None

    # === Connection ===

    async def _connect(self, presence_event: str, identity: str) -> None:
        await self.channel.connect()
        await self.channel.emit(presence_event, identity)
        logger.info(f"{self.log_tag} Registered presence as {identity}")

    def _listen(self, event: str, handler: Callable) -> None:
        self.channel.on(event, handler)
        self._handlers.append((event, handler))

    async def disconnect(self) -> None:
        """Leave any active call, drop routing listeners and close the channel."""
        if self.negotiator is not None:
            await self.negotiator.end(EndReason.NAVIGATION)

        for event, handler in self._handlers:
            self.channel.off(event, handler)
        self._handlers.clear()

        await self.channel.disconnect()

    # === Session lifecycle ===

    async def _start_session(self, role: CallRole, room_id: str, remote_party_id: Optional[str]) -> Optional[SessionNegotiator]:
        negotiator = self.negotiator_factory(role, room_id, remote_party_id)
        self.negotiator = negotiator
        negotiator.add_failure_listener(self._on_session_failed)
        negotiator.add_closed_listener(self._on_session_closed)

        self.navigator.open_call_view(negotiator)

        try:
            await negotiator.start()
        except MediaAcquisitionError as e:
            # start() already tore the session down
            self.notifier.notify("Error", f"Failed to setup call: {e}")
            return None
        except Exception as e:
            logger.error(f"{self.log_tag} Call setup failed: {e}")
            self.notifier.notify("Error", f"Failed to setup call: {e}")
            await negotiator.end(EndReason.SETUP_FAILED)
            return None

        return negotiator

    def _on_session_failed(self, negotiator: SessionNegotiator, error: CallError) -> None:
        if negotiator is not self.negotiator:
            return
        self.notifier.notify("Connection Error", str(error))

    def _on_session_closed(self, negotiator: SessionNegotiator, reason: EndReason) -> None:
        if negotiator is not self.negotiator:
            return

        self.negotiator = None
        self._session_closed(reason)

        if reason is EndReason.REMOTE_ENDED:
            self.notifier.notify("Call Ended", "The other party ended the call")
        self.navigator.go_back()
        logger.info(
            f"{self.log_tag} Session {negotiator.room_id} closed "
            f"({reason.value}, {negotiator.session.duration_text})"
        )

    def _session_closed(self, reason: EndReason) -> None:
        """Hook for role-specific state reset."""

    # === User actions ===

    async def end_call(self) -> None:
        """Explicit hangup from the call view."""
        if self.negotiator is not None:
            await self.negotiator.end(EndReason.HANGUP)

    async def leave_call_view(self) -> None:
        """The call view is being dismissed (back navigation, app closing)."""
        if self.negotiator is not None:
            await self.negotiator.end(EndReason.NAVIGATION)
