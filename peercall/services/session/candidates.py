"""
Pending Candidate Queue

Buffers remote network candidates that arrive before the remote
description has been applied. The queue is drained exactly once, in
arrival order; afterwards it is closed and callers apply candidates
directly.

Candidates that arrive while the drain is still awaiting earlier ones
are appended and applied by the same drain, so arrival order holds
across the hand-over.
"""
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, List

from peercall.schemas.signaling_events import IceCandidate

logger = logging.getLogger(__name__)


class PendingCandidateQueue:
    def __init__(self):
        self._items: Deque[IceCandidate] = deque()
        self._draining = False
        self._closed = False

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def accepting(self) -> bool:
        """True while arrivals must be queued rather than applied."""
        return not self._closed

    def push(self, candidate: IceCandidate) -> None:
        if self._closed:
            raise RuntimeError("Candidate queue already drained")
        self._items.append(candidate)

    def snapshot(self) -> List[IceCandidate]:
        return list(self._items)

    async def drain(self, apply: Callable[[IceCandidate], Awaitable[None]]) -> int:
        """
        Apply every queued candidate in arrival order, then close.

        A candidate that fails to apply is logged and skipped; the rest
        are still applied.

        Returns:
            Number of candidates taken from the queue.
        """
        if self._closed or self._draining:
            return 0

        self._draining = True
        count = 0
        try:
            while self._items:
                candidate = self._items.popleft()
                count += 1
                try:
                    await apply(candidate)
                except Exception as e:
                    logger.error(f"[Candidates] Failed to apply queued candidate: {e}")
        finally:
            self._draining = False
            self._closed = True
            self._items.clear()

        logger.info(f"[Candidates] Drained {count} queued candidate(s)")
        return count
