"""Reduce a raw activity stream into per-day segments.

Pipeline per user:
    validate range -> drop exact duplicates -> filter by analysis day ->
    stable sort by start -> bucket by analysis day -> merge within bucket

Bucketing happens before merging, and `merge_bucket` only ever sees one
bucket, so no segment can span an analysis-day boundary however small the
gap between two same-family events is.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from tba.config import DateRangeFilter, DayBoundaryConfig, MergeThresholdConfig
from tba.domains.activity.events import ActivityEvent, Segment
from tba.domains.activity.merge_policy import should_merge
from tba.domains.common.day_boundary import day_of

logger = logging.getLogger("tba.segment")

SEGMENT_COLUMNS = [
    "user_id",
    "day",
    "label",
    "family",
    "activity_type",
    "activity_types",
    "start_time",
    "end_time",
    "duration_min",
    "source_event_count",
]


@dataclass(frozen=True)
class DayBucket:
    """Time-ordered events of one user on one analysis day."""

    user_id: str
    day: date
    events: Tuple[ActivityEvent, ...]


def _dedupe(events: Iterable[ActivityEvent]) -> List[ActivityEvent]:
    seen = set()
    out = []
    for ev in events:
        key = (ev.user_id, ev.activity_type, ev.start_time, ev.end_time)
        if key in seen:
            continue
        seen.add(key)
        out.append(ev)
    return out


def bucket_by_day(events: Sequence[ActivityEvent], day_config: DayBoundaryConfig) -> Tuple[DayBucket, ...]:
    """Partition events into (user, analysis day) buckets.

    Users keep first-seen order; within a user, buckets are in day order and
    events inside a bucket are sorted by start time (stable).
    """
    by_user: Dict[str, Dict[date, List[ActivityEvent]]] = {}
    for ev in sorted(events, key=lambda e: e.start_time):
        days = by_user.setdefault(ev.user_id, {})
        days.setdefault(day_of(ev.start_time, day_config), []).append(ev)

    # re-apply first-seen user order (sorting above reshuffles users)
    user_order: Dict[str, None] = dict.fromkeys(ev.user_id for ev in events)
    buckets = []
    for uid in user_order:
        days = by_user.get(uid, {})
        for d in sorted(days):
            buckets.append(DayBucket(user_id=uid, day=d, events=tuple(days[d])))
    return tuple(buckets)


def _open_segment(ev: ActivityEvent, day: date, merge_config: MergeThresholdConfig) -> Segment:
    return Segment(
        user_id=ev.user_id,
        activity_type=ev.activity_type,
        family=merge_config.family_of(ev.activity_type),
        day=day,
        start_time=ev.start_time,
        end_time=ev.end_time,
        source_event_count=1,
        activity_types=(ev.activity_type,),
    )


def _extend(acc: Segment, ev: ActivityEvent) -> Segment:
    kinds = acc.activity_types
    if ev.activity_type not in kinds:
        kinds = tuple(sorted(kinds + (ev.activity_type,), key=lambda k: k.value))
    return replace(
        acc,
        end_time=max(acc.end_time, ev.end_time),
        source_event_count=acc.source_event_count + 1,
        activity_types=kinds,
    )


def merge_bucket(bucket: DayBucket, merge_config: MergeThresholdConfig) -> List[Segment]:
    """Coalesce adjacent same-family events of a single day bucket."""
    out: List[Segment] = []
    acc: Optional[Segment] = None
    for ev in bucket.events:
        if acc is None:
            acc = _open_segment(ev, bucket.day, merge_config)
        elif should_merge(acc, ev, merge_config):
            acc = _extend(acc, ev)
        else:
            out.append(acc)
            acc = _open_segment(ev, bucket.day, merge_config)
    if acc is not None:
        out.append(acc)
    logger.debug("user=%s day=%s events=%d segments=%d", bucket.user_id, bucket.day, len(bucket.events), len(out))
    return out


def segment(
    events: Iterable[ActivityEvent],
    merge_config: Optional[MergeThresholdConfig] = None,
    day_config: Optional[DayBoundaryConfig] = None,
    date_range: Optional[DateRangeFilter] = None,
) -> List[Segment]:
    """Turn raw events into day-bounded, de-noised segments.

    Raises InvalidRangeError for a half-specified or reversed `date_range`
    before touching any event.
    """
    merge_config = merge_config or MergeThresholdConfig()
    day_config = day_config or DayBoundaryConfig()
    date_range = date_range or DateRangeFilter()
    date_range.validate()

    events = _dedupe(events)
    if date_range.is_set:
        events = [ev for ev in events if date_range.contains(day_of(ev.start_time, day_config))]
    if not events:
        return []

    segments: List[Segment] = []
    for bucket in bucket_by_day(events, day_config):
        segments.extend(merge_bucket(bucket, merge_config))
    logger.debug("segmented %d events into %d segments", len(events), len(segments))
    return segments


def segments_to_frame(segments: Sequence[Segment]) -> pd.DataFrame:
    """Flatten segments into a table for the export sink."""
    if not segments:
        return pd.DataFrame(columns=SEGMENT_COLUMNS)
    rows = []
    for s in segments:
        rows.append({
            "user_id": s.user_id,
            "day": s.day.isoformat(),
            "label": s.label,
            "family": s.family if s.family is not None else pd.NA,
            "activity_type": s.activity_type.value,
            "activity_types": ";".join(k.value for k in s.activity_types),
            "start_time": s.start_time.isoformat(),
            "end_time": s.end_time.isoformat(),
            "duration_min": round(s.duration_ms / 60_000.0, 3),
            "source_event_count": int(s.source_event_count),
        })
    return pd.DataFrame(rows, columns=SEGMENT_COLUMNS)


def summarize_segments(segments: Sequence[Segment]) -> dict:
    """QC summary of one user's segments."""
    if not segments:
        return {
            "n_segments": 0,
            "n_source_events": 0,
            "n_days": 0,
            "day_min": "",
            "day_max": "",
            "median_duration_min": 0.0,
            "p95_duration_min": 0.0,
        }
    durations = np.array([s.duration_ms for s in segments], dtype=float) / 60_000.0
    days = sorted({s.day for s in segments})
    return {
        "n_segments": len(segments),
        "n_source_events": int(sum(s.source_event_count for s in segments)),
        "n_days": len(days),
        "day_min": days[0].isoformat(),
        "day_max": days[-1].isoformat(),
        "median_duration_min": round(float(np.median(durations)), 3),
        "p95_duration_min": round(float(np.percentile(durations, 95)), 3),
    }
