"""Multi-user batch execution with per-user fault isolation.

Each user is an independent (fetch, segment) task. A failing user is
recorded in the result and never stops the rest of the batch. With
`max_workers > 1` tasks run on a thread pool and results are gathered from
the futures, so workers share nothing but the read-only configs.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from tba.config import DateRangeFilter, DayBoundaryConfig, MergeThresholdConfig
from tba.domains.activity.events import ActivityEvent, Segment
from tba.domains.activity.segmentation import segment, summarize_segments
from tba.domains.common.progress import progress_bar
from tba.errors import DataSourceError, TbaError

logger = logging.getLogger("tba.batch")

FetchFn = Callable[[str], Iterable[ActivityEvent]]

_CANCELLED = object()


@dataclass(frozen=True)
class UserFailure:
    user_id: str
    error_type: str
    message: str
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_exception(cls, user_id: str, exc: BaseException) -> "UserFailure":
        return cls(user_id=user_id, error_type=type(exc).__name__, message=str(exc), cause=exc)


UserOutcome = Union[Tuple[Segment, ...], UserFailure]


@dataclass(frozen=True)
class BatchRunResult:
    per_user: Mapping[str, UserOutcome]
    cancelled: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> Tuple[str, ...]:
        return tuple(u for u, r in self.per_user.items() if not isinstance(r, UserFailure))

    @property
    def failed(self) -> Tuple[str, ...]:
        return tuple(u for u, r in self.per_user.items() if isinstance(r, UserFailure))

    def segments_for(self, user_id: str) -> Tuple[Segment, ...]:
        """Segments of a successful user; raises KeyError for unknown users and
        the recorded error for failed ones."""
        outcome = self.per_user[user_id]
        if isinstance(outcome, UserFailure):
            if outcome.cause is not None:
                raise outcome.cause
            raise DataSourceError(outcome.message, user_id=user_id)
        return outcome

    def summary_frame(self) -> pd.DataFrame:
        rows = []
        for uid in sorted(self.per_user):
            outcome = self.per_user[uid]
            row = {"user_id": uid}
            if isinstance(outcome, UserFailure):
                row.update({"status": "failed", "error_type": outcome.error_type, "error": outcome.message})
                row.update(summarize_segments(()))
            else:
                row.update({"status": "ok", "error_type": "", "error": ""})
                row.update(summarize_segments(outcome))
            rows.append(row)
        for uid in sorted(self.cancelled):
            row = {"user_id": uid, "status": "cancelled", "error_type": "", "error": ""}
            row.update(summarize_segments(()))
            rows.append(row)
        return pd.DataFrame(rows)


def _unique(user_ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(user_ids))


def _process_user(
    user_id: str,
    fetch: FetchFn,
    merge_config: MergeThresholdConfig,
    day_config: DayBoundaryConfig,
    date_range: DateRangeFilter,
    cancel_event: Optional[threading.Event],
):
    if cancel_event is not None and cancel_event.is_set():
        return _CANCELLED
    try:
        try:
            events = fetch(user_id)
        except TbaError:
            raise
        except Exception as exc:
            raise DataSourceError(f"fetch failed for user {user_id}: {exc}", user_id=user_id) from exc
        segments = segment(events, merge_config, day_config, date_range)
    except Exception as exc:
        logger.warning("user=%s failed: %s: %s", user_id, type(exc).__name__, exc)
        return UserFailure.from_exception(user_id, exc)
    logger.info("user=%s segments=%d", user_id, len(segments))
    return tuple(segments)


def run_batch(
    user_ids: Iterable[str],
    fetch: FetchFn,
    merge_config: Optional[MergeThresholdConfig] = None,
    day_config: Optional[DayBoundaryConfig] = None,
    date_range: Optional[DateRangeFilter] = None,
    *,
    max_workers: int = 1,
    cancel_event: Optional[threading.Event] = None,
    show_progress: bool = False,
) -> BatchRunResult:
    """Segment every user in `user_ids`, isolating per-user failures.

    Range errors are raised here, before any fetch, because they would fail
    every user the same way. Setting `cancel_event` stops new users from
    starting; users already running finish normally.
    """
    merge_config = merge_config or MergeThresholdConfig()
    day_config = day_config or DayBoundaryConfig()
    date_range = date_range or DateRangeFilter()
    date_range.validate()
    if max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")

    users = _unique(user_ids)
    outcomes: Dict[str, UserOutcome] = {}
    cancelled: List[str] = []

    def _collect(uid: str, outcome) -> None:
        if outcome is _CANCELLED:
            cancelled.append(uid)
        else:
            outcomes[uid] = outcome

    logger.info("batch start: users=%d workers=%d", len(users), max_workers)
    with progress_bar(total=len(users), desc="users", enabled=show_progress) as bar:
        if max_workers == 1 or len(users) <= 1:
            for uid in users:
                _collect(uid, _process_user(uid, fetch, merge_config, day_config, date_range, cancel_event))
                bar.update(1)
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = {
                    executor.submit(
                        _process_user, uid, fetch, merge_config, day_config, date_range, cancel_event
                    ): uid
                    for uid in users
                }
                for future in as_completed(futures):
                    _collect(futures[future], future.result())
                    bar.update(1)

    result = BatchRunResult(per_user=MappingProxyType(dict(outcomes)), cancelled=tuple(cancelled))
    logger.info(
        "batch done: ok=%d failed=%d cancelled=%d",
        len(result.succeeded), len(result.failed), len(result.cancelled),
    )
    return result
