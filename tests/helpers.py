from datetime import datetime, timezone

from tba.domains.activity.events import ActivityEvent


def ts(s: str) -> datetime:
    """'2024-03-01 09:00' -> aware UTC datetime."""
    return datetime.strptime(s, "%Y-%m-%d %H:%M").replace(tzinfo=timezone.utc)


def ev(kind: str, start: str, end: str, user: str = "u1") -> ActivityEvent:
    return ActivityEvent.create(user, kind, ts(start), ts(end))
