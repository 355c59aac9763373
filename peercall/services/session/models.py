"""
Session Models

Data classes owned by a single session negotiator.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .states import CallRole
from .timer import DurationTimer, format_duration


@dataclass
class CallSession:
    """One participant's view of one call. Destroyed with its negotiator."""
    room_id: str
    local_role: CallRole
    remote_party_id: Optional[str] = None
    started_at: Optional[datetime] = None
    timer: DurationTimer = field(default_factory=DurationTimer)
    remote_stream: Any = None

    @property
    def duration_seconds(self) -> int:
        return self.timer.seconds

    @property
    def duration_text(self) -> str:
        return format_duration(self.timer.seconds)
