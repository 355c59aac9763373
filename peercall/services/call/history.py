"""
Call History

Presentation helpers for past calls returned by the call-record API.
"""
from typing import Dict, List, Optional

from peercall.schemas.call import CallHistoryItem

STATUS_LABELS: Dict[str, str] = {
    "ended_by_user": "Completed",
    "ended_by_therapist": "Completed",
    "missed": "Missed",
    "rejected": "Rejected",
}


def status_label(status: Optional[str]) -> str:
    return STATUS_LABELS.get(status or "", "Unknown")


def format_history_duration(minutes: int) -> str:
    """Format a billed duration, e.g. 65 -> '1h 5m', 5 -> '5m'."""
    hrs, mins = divmod(max(0, int(minutes)), 60)
    return f"{hrs}h {mins}m" if hrs > 0 else f"{mins}m"


def summarize_call(item: CallHistoryItem) -> Dict[str, str]:
    """Flatten a history item into display strings."""
    started = ""
    if item.start_time is not None:
        started = item.start_time.strftime("%Y-%m-%d %H:%M")

    return {
        "therapist": item.therapist.name if item.therapist else "Unknown Therapist",
        "started": started,
        "duration": format_history_duration(item.duration_minutes),
        "cost": f"-{item.cost_in_coins} coins",
        "status": status_label(item.status),
    }


def summarize_history(items: List[CallHistoryItem]) -> List[Dict[str, str]]:
    return [summarize_call(item) for item in items]
