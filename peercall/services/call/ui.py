"""
Headless presentation adapters.

Used by scripts and by hosts without a screen: notices go to the log and
navigation is recorded as a simple view stack.
"""
import logging
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from peercall.schemas.signaling_events import CallRequestEvent
    from peercall.services.session.negotiator import SessionNegotiator

logger = logging.getLogger(__name__)


class LoggingNotifier:
    def __init__(self):
        self.notices: List[tuple] = []

    def notify(self, title: str, message: str) -> None:
        self.notices.append((title, message))
        logger.info(f"[Notice] {title}: {message}")


class HeadlessNavigator:
    """Keeps a view stack: "dashboard" at the bottom, "call" on top while in a call."""

    def __init__(self):
        self.views: List[str] = ["dashboard"]
        self.negotiator: Optional["SessionNegotiator"] = None
        self.incoming_call: Optional["CallRequestEvent"] = None

    @property
    def current_view(self) -> str:
        return self.views[-1]

    def open_call_view(self, negotiator: "SessionNegotiator") -> None:
        self.negotiator = negotiator
        self.views.append("call")
        logger.info(f"[Navigator] Call view opened for room {negotiator.room_id}")

    def go_back(self) -> None:
        if len(self.views) > 1:
            self.views.pop()
        self.negotiator = None
        logger.info(f"[Navigator] Back to {self.current_view}")

    def show_incoming_call(self, call: "CallRequestEvent") -> None:
        self.incoming_call = call
        logger.info(f"[Navigator] {call.caller_name} is calling... (room {call.room_id})")

    def dismiss_incoming_call(self) -> None:
        self.incoming_call = None
