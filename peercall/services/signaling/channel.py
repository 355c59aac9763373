"""
Signaling Channel

Transport-agnostic event channel used by the orchestrators and the
session negotiator:
- connect / disconnect
- emit(event, payload)
- on(event, handler) / off(event[, handler])

Inbound events are dispatched to handlers in registration order.
Coroutine handlers are awaited before the next handler runs, so a
transport that dispatches sequentially keeps relay ordering intact.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]


def make_room_id(call_id: str, prefix: str = "room") -> str:
    """Build the room identifier for a call record."""
    return f"{prefix}-{call_id}"


def call_id_from_room(room_id: str) -> str:
    """Extract the call record id from a room identifier."""
    prefix, sep, call_id = room_id.partition("-")
    if not sep or not call_id:
        raise ValueError(f"Malformed room id: {room_id!r}")
    return call_id


class SignalingChannel:
    """Base channel: owns the handler registry, subclasses own the transport."""

    def __init__(self):
        # event -> handlers in registration order
        self._handlers: Dict[str, List[Handler]] = {}

    # === Transport (implemented by subclasses) ===

    @property
    def connected(self) -> bool:
        raise NotImplementedError

    async def connect(self) -> None:
        raise NotImplementedError

    async def disconnect(self) -> None:
        raise NotImplementedError

    async def emit(self, event: str, payload: Any = None) -> None:
        raise NotImplementedError

    # === Handler registry ===

    def on(self, event: str, handler: Handler) -> None:
        """Register a handler for an inbound event."""
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        """Remove one handler, or every handler for the event when none is given."""
        if handler is None:
            self._handlers.pop(event, None)
            return

        handlers = self._handlers.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event]

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def dispatch(self, event: str, payload: Any) -> int:
        """
        Deliver an inbound event to its handlers.

        A failing handler is logged and does not prevent the remaining
        handlers from running.

        Returns:
            Number of handlers invoked.
        """
        handlers = list(self._handlers.get(event, []))
        if not handlers:
            logger.debug(f"[Signaling] No handler for '{event}'")
            return 0

        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[Signaling] Handler for '{event}' failed: {e}")

        return len(handlers)
