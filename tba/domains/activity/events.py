"""Activity event and segment records.

Events arrive from the mobile activity-recognition backend as
(user, kind, start, end) tuples. Kinds are a closed set; the family table
below decides which kinds may coalesce with each other during
segmentation. Kinds outside every family are passed through unmerged.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple, Union

from tba.errors import InvalidEventError


class ActivityType(str, Enum):
    IN_VEHICLE = "IN_VEHICLE"
    ON_BICYCLE = "ON_BICYCLE"
    ON_FOOT = "ON_FOOT"
    RUNNING = "RUNNING"
    STILL = "STILL"
    TILTING = "TILTING"
    UNKNOWN = "UNKNOWN"
    WALKING = "WALKING"

    @classmethod
    def parse(cls, value: Union[str, "ActivityType"]) -> "ActivityType":
        """Case-insensitive lookup; raises InvalidEventError on unknown labels."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            raise InvalidEventError("activity_type", "must be a non-empty activity label")
        key = value.strip().upper().replace(" ", "_").replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise InvalidEventError("activity_type", f"unknown activity kind {value!r}") from None


STILL_FAMILY = "STILL"
WALKING_RUNNING_FAMILY = "WALKING_RUNNING"

# family name -> member kinds
DEFAULT_MERGE_FAMILIES: Dict[str, FrozenSet[ActivityType]] = {
    STILL_FAMILY: frozenset({ActivityType.STILL}),
    WALKING_RUNNING_FAMILY: frozenset({ActivityType.WALKING, ActivityType.RUNNING}),
}


def _as_utc_aware(value, field: str) -> datetime:
    if not isinstance(value, datetime):
        raise InvalidEventError(field, f"expected datetime, got {type(value).__name__}")
    # naive timestamps are UTC; aware ones are normalized to UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ActivityEvent:
    """One raw activity-classification record. Immutable."""

    user_id: str
    activity_type: ActivityType
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise InvalidEventError("user_id", "must be a non-empty string")
        if not isinstance(self.activity_type, ActivityType):
            raise InvalidEventError("activity_type", "must be an ActivityType; use ActivityEvent.create for labels")
        start = _as_utc_aware(self.start_time, "start_time")
        end = _as_utc_aware(self.end_time, "end_time")
        if end < start:
            raise InvalidEventError("end_time", f"end {end.isoformat()} is before start {start.isoformat()}")
        object.__setattr__(self, "start_time", start)
        object.__setattr__(self, "end_time", end)

    @classmethod
    def create(
        cls,
        user_id: str,
        activity_type: Union[str, ActivityType],
        start_time: datetime,
        end_time: datetime,
    ) -> "ActivityEvent":
        """Validating factory accepting activity labels as strings."""
        return cls(
            user_id=user_id,
            activity_type=ActivityType.parse(activity_type),
            start_time=start_time,
            end_time=end_time,
        )

    @classmethod
    def from_millis(
        cls,
        user_id: str,
        activity_type: Union[str, ActivityType],
        start_ms: int,
        end_ms: int,
    ) -> "ActivityEvent":
        """Build an event from epoch milliseconds, the backend wire format."""
        try:
            start = datetime.fromtimestamp(int(start_ms) / 1000.0, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            raise InvalidEventError("start_time", f"invalid epoch millis {start_ms!r}") from None
        try:
            end = datetime.fromtimestamp(int(end_ms) / 1000.0, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            raise InvalidEventError("end_time", f"invalid epoch millis {end_ms!r}") from None
        return cls.create(user_id, activity_type, start, end)

    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)


@dataclass(frozen=True)
class Segment:
    """Contiguous span of one activity family (or unfamilied kind).

    Produced only by the merge step; `source_event_count` is the number of
    raw events coalesced into it.
    """

    user_id: str
    activity_type: ActivityType
    family: Optional[str]
    day: date
    start_time: datetime
    end_time: datetime
    source_event_count: int = 1
    activity_types: Tuple[ActivityType, ...] = ()

    @property
    def label(self) -> str:
        return self.family if self.family is not None else self.activity_type.value

    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    def as_event(self) -> ActivityEvent:
        """Re-express this segment as a single event of its first kind."""
        return ActivityEvent(self.user_id, self.activity_type, self.start_time, self.end_time)
