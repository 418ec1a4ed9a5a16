"""Engine configuration.

Configs are frozen and validated on construction so a bad threshold or
day-start hour fails before any user is processed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tba.domains.activity.events import DEFAULT_MERGE_FAMILIES, ActivityType
from tba.errors import ConfigurationError, InvalidRangeError

MILLIS_PER_MINUTE = 60_000
DEFAULT_MERGE_GAP_MS = 2 * MILLIS_PER_MINUTE
CLI_DATE_FORMAT = "%m-%d-%Y"


def _default_family_members() -> Dict[str, FrozenSet[ActivityType]]:
    return dict(DEFAULT_MERGE_FAMILIES)


@dataclass(frozen=True)
class MergeThresholdConfig:
    """Merge families with a gap threshold and an on/off switch each.

    The still and walking/running fields apply to whichever family holds
    STILL, respectively WALKING or RUNNING, whatever that family is named.
    Other families take their gap from `extra_family_gaps_ms` and their
    switch from `family_enabled` (defaults: 2 minutes, on).
    """

    still_merge_gap_ms: int = DEFAULT_MERGE_GAP_MS
    walking_running_merge_gap_ms: int = DEFAULT_MERGE_GAP_MS
    merge_still_enabled: bool = True
    merge_walking_running_enabled: bool = True
    family_members: Mapping[str, FrozenSet[ActivityType]] = field(default_factory=_default_family_members)
    extra_family_gaps_ms: Mapping[str, int] = field(default_factory=dict)
    family_enabled: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        gaps = {
            "still_merge_gap_ms": self.still_merge_gap_ms,
            "walking_running_merge_gap_ms": self.walking_running_merge_gap_ms,
        }
        gaps.update({f"extra_family_gaps_ms[{k}]": v for k, v in self.extra_family_gaps_ms.items()})
        for name, value in gaps.items():
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer number of milliseconds, got {value!r}")
            if value < 0:
                raise ConfigurationError(f"{name} must be >= 0, got {value}")

        members: Dict[str, FrozenSet[ActivityType]] = {}
        owner: Dict[ActivityType, str] = {}
        for family, kinds in self.family_members.items():
            for kind in kinds:
                if not isinstance(kind, ActivityType):
                    raise ConfigurationError(f"family {family!r} lists non-activity member {kind!r}")
                if kind in owner:
                    raise ConfigurationError(
                        f"{kind.value} belongs to both {owner[kind]!r} and {family!r} merge families"
                    )
                owner[kind] = family
            members[family] = frozenset(kinds)

        builtin = (
            ({ActivityType.STILL}, self.still_merge_gap_ms, self.merge_still_enabled),
            (
                {ActivityType.WALKING, ActivityType.RUNNING},
                self.walking_running_merge_gap_ms,
                self.merge_walking_running_enabled,
            ),
        )
        builtin_families = {owner[k] for kinds, _, _ in builtin for k in kinds if k in owner}

        for family in self.extra_family_gaps_ms:
            if family not in members:
                raise ConfigurationError(f"extra_family_gaps_ms names unknown family {family!r}")
            if family in builtin_families:
                raise ConfigurationError(
                    f"gap of family {family!r} is set by still_merge_gap_ms / walking_running_merge_gap_ms"
                )
        for family, on in self.family_enabled.items():
            if family not in members:
                raise ConfigurationError(f"family_enabled names unknown family {family!r}")
            if not isinstance(on, bool):
                raise ConfigurationError(f"family_enabled[{family}] must be a bool, got {on!r}")

        gap_by_family = {f: self.extra_family_gaps_ms.get(f, DEFAULT_MERGE_GAP_MS) for f in members}
        enabled_by_family = {f: self.family_enabled.get(f, True) for f in members}
        for kinds, gap, on in builtin:
            for family in {owner[k] for k in kinds if k in owner}:
                gap_by_family[family] = gap
                enabled_by_family[family] = enabled_by_family[family] and on

        # frozen: read-only copies, lookups resolved once
        object.__setattr__(self, "family_members", MappingProxyType(members))
        object.__setattr__(self, "extra_family_gaps_ms", MappingProxyType(dict(self.extra_family_gaps_ms)))
        object.__setattr__(self, "family_enabled", MappingProxyType(dict(self.family_enabled)))
        object.__setattr__(self, "_family_by_type", MappingProxyType(owner))
        object.__setattr__(self, "_gap_by_family", MappingProxyType(gap_by_family))
        object.__setattr__(self, "_enabled_by_family", MappingProxyType(enabled_by_family))

    def family_of(self, activity_type: ActivityType) -> Optional[str]:
        return self._family_by_type.get(activity_type)

    def gap_ms_for(self, family: str) -> int:
        return self._gap_by_family.get(family, DEFAULT_MERGE_GAP_MS)

    def is_enabled(self, family: str) -> bool:
        return self._enabled_by_family.get(family, False)


@dataclass(frozen=True)
class DayBoundaryConfig:
    """Analysis days start at `same_day_start_hour` local time in `tz`."""

    same_day_start_hour: int = 0
    tz: str = "UTC"

    def __post_init__(self):
        h = self.same_day_start_hour
        if isinstance(h, bool) or not isinstance(h, int) or not 0 <= h <= 23:
            raise ConfigurationError(f"same_day_start_hour must be an integer in 0-23, got {h!r}")
        try:
            zone = ZoneInfo(self.tz)
        except (ZoneInfoNotFoundError, ValueError, TypeError):
            raise ConfigurationError(f"unknown time zone {self.tz!r}") from None
        object.__setattr__(self, "_zone", zone)

    @property
    def zone(self) -> ZoneInfo:
        return self._zone


@dataclass(frozen=True)
class DateRangeFilter:
    """Inclusive analysis-day range. Both bounds or neither."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def is_set(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    def validate(self) -> None:
        if self.start_date is None and self.end_date is None:
            return
        if self.end_date is None:
            raise InvalidRangeError("startDate and endDate must be provided together: endDate is missing")
        if self.start_date is None:
            raise InvalidRangeError("startDate and endDate must be provided together: startDate is missing")
        if self.end_date < self.start_date:
            raise InvalidRangeError(
                f"endDate {self.end_date.isoformat()} is before startDate {self.start_date.isoformat()}"
            )

    def contains(self, day: date) -> bool:
        if not self.is_set:
            return True
        self.validate()
        return self.start_date <= day <= self.end_date

    @classmethod
    def from_strings(cls, start: Optional[str], end: Optional[str]) -> "DateRangeFilter":
        """Parse `mm-dd-yyyy` bounds; empty strings count as absent."""
        return cls(
            start_date=parse_cli_date(start) if start else None,
            end_date=parse_cli_date(end) if end else None,
        )


def parse_cli_date(value: str) -> date:
    try:
        return datetime.strptime(value.strip(), CLI_DATE_FORMAT).date()
    except (AttributeError, ValueError):
        raise InvalidRangeError(f"invalid date {value!r}; use the format mm-dd-yyyy") from None


def minutes_to_millis(minutes: float) -> int:
    return int(round(float(minutes) * MILLIS_PER_MINUTE))


@dataclass
class ProgramOptions:
    """Configuration surface of the command-line tool."""

    events_path: Optional[str] = None
    user_id: Optional[str] = None
    multi_user_path: Optional[str] = None
    merge_still_enabled: bool = True
    merge_walking_running_enabled: bool = True
    still_merge_threshold_min: float = 2.0
    walking_running_merge_threshold_min: float = 2.0
    same_day_start_hour: int = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    output_dir: str = "output"
    skip_kmz: bool = False
    tz: str = "UTC"
    max_workers: int = 1

    def to_merge_config(self) -> MergeThresholdConfig:
        return MergeThresholdConfig(
            still_merge_gap_ms=minutes_to_millis(self.still_merge_threshold_min),
            walking_running_merge_gap_ms=minutes_to_millis(self.walking_running_merge_threshold_min),
            merge_still_enabled=self.merge_still_enabled,
            merge_walking_running_enabled=self.merge_walking_running_enabled,
        )

    def to_day_config(self) -> DayBoundaryConfig:
        return DayBoundaryConfig(same_day_start_hour=self.same_day_start_hour, tz=self.tz)

    def to_date_range(self) -> DateRangeFilter:
        rng = DateRangeFilter.from_strings(self.start_date, self.end_date)
        rng.validate()
        return rng
