"""Pairwise merge decision for adjacent activity records.

Two records coalesce only when both kinds sit in the same configured
family, that family's switch is on, and the gap between them is within the
family threshold. Overlap counts as a zero gap.
"""
from __future__ import annotations

from tba.config import MergeThresholdConfig


def gap_ms(prev, next_) -> int:
    """Milliseconds from `prev.end_time` to `next_.start_time`, clamped at 0."""
    delta = (next_.start_time - prev.end_time).total_seconds() * 1000
    return max(0, int(round(delta)))


def should_merge(prev, next_, config: MergeThresholdConfig) -> bool:
    """Return True when `next_` may extend `prev`.

    Works on anything exposing user_id, activity_type, start_time and
    end_time, so the segmentation accumulator can be passed as `prev`.
    """
    if prev.user_id != next_.user_id:
        return False
    family = config.family_of(prev.activity_type)
    if family is None or config.family_of(next_.activity_type) != family:
        return False
    if not config.is_enabled(family):
        return False
    return gap_ms(prev, next_) <= config.gap_ms_for(family)
