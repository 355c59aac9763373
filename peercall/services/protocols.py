"""
Protocol definitions for the presentation layer the orchestrators drive.

Screens, dialogs and navigation are owned by the host application; the
orchestrators only depend on these interfaces.

Usage:
    from peercall.services.protocols import CallNavigator, Notifier

    class MyScreens(CallNavigator):
        def open_call_view(self, negotiator): ...
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from peercall.schemas.signaling_events import CallRequestEvent
    from peercall.services.session.negotiator import SessionNegotiator


class Notifier(Protocol):
    """User-visible, non-blocking notices (alerts, toasts)."""

    def notify(self, title: str, message: str) -> None:
        ...


class CallNavigator(Protocol):
    """
    Navigation between the dashboard, the incoming-call prompt and the
    call view.
    """

    def open_call_view(self, negotiator: "SessionNegotiator") -> None:
        """Show the in-call screen bound to a running negotiator."""
        ...

    def go_back(self) -> None:
        """Return to the view that was active before the call."""
        ...

    def show_incoming_call(self, call: "CallRequestEvent") -> None:
        """Show the accept/reject prompt for an inbound call."""
        ...

    def dismiss_incoming_call(self) -> None:
        ...
