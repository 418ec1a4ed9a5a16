"""Local data-source and output-path helpers.

`CsvEventSource` stands in for the remote activity store: it loads an
exported CSV of activity records once and builds `ActivityEvent`s per user
on `fetch`, so a malformed row only fails the user it belongs to.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from dateutil import parser as dt_parser

from tba.domains.activity.events import ActivityEvent
from tba.errors import DataSourceError, InvalidEventError

logger = logging.getLogger("tba.source")


ALIASES = {
    "user_id": ["user_id", "userid", "uid", "user"],
    "activity_type": ["activity_type", "activitytype", "activity", "type"],
    "start_time": ["start_time", "starttime", "start", "start_ms", "startdate"],
    "end_time": ["end_time", "endtime", "end", "end_ms", "enddate"],
}

_EPOCH_MS = re.compile(r"^-?\d+(\.0+)?$")
_USER_HEADERS = {"user_id", "userid", "uid"}


def _normalize_cols(df: pd.DataFrame) -> pd.DataFrame:
    return df.rename(columns={c: str(c).strip().lower() for c in df.columns})


def _find_alias(df: pd.DataFrame, keys: List[str]) -> Optional[str]:
    for k in keys:
        if k in df.columns:
            return k
    return None


def parse_instant(value, field: str) -> datetime:
    """Parse an ISO-8601 string or epoch milliseconds into an aware datetime."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        raise InvalidEventError(field, "missing timestamp")
    s = str(value).strip()
    if not s:
        raise InvalidEventError(field, "missing timestamp")
    if _EPOCH_MS.match(s):
        return pd.Timestamp(int(float(s)), unit="ms", tz="UTC").to_pydatetime()
    try:
        return dt_parser.parse(s)
    except (ValueError, OverflowError):
        raise InvalidEventError(field, f"unparseable timestamp {s!r}") from None


class CsvEventSource:
    def __init__(self, path):
        self.path = Path(path)
        if not self.path.exists():
            raise DataSourceError(f"events file not found: {self.path}")
        try:
            df = pd.read_csv(self.path, dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
            raise DataSourceError(f"could not read events file {self.path}: {exc}") from exc
        df = _normalize_cols(df)

        cols = {canon: _find_alias(df, keys) for canon, keys in ALIASES.items()}
        missing = [canon for canon, col in cols.items() if col is None]
        if missing:
            raise DataSourceError(f"events file {self.path} is missing columns: {', '.join(missing)}")
        df = df[[cols[c] for c in ALIASES]].copy()
        df.columns = list(ALIASES)
        df["user_id"] = df["user_id"].str.strip()
        blank = int((df["user_id"] == "").sum())
        if blank:
            logger.warning("%d rows without user_id in %s are skipped", blank, self.path)
            df = df[df["user_id"] != ""]

        self._rows: Dict[str, pd.DataFrame] = {
            str(uid): grp for uid, grp in df.groupby("user_id", sort=False)
        }
        logger.info("loaded %d rows for %d users from %s", len(df), len(self._rows), self.path)

    def user_ids(self) -> List[str]:
        return list(self._rows)

    def fetch(self, user_id: str) -> List[ActivityEvent]:
        """Events of `user_id` in file order; unknown users yield no events."""
        grp = self._rows.get(user_id)
        if grp is None:
            logger.info("user=%s: no records in %s", user_id, self.path.name)
            return []
        events = []
        for row in grp.itertuples(index=False):
            events.append(
                ActivityEvent.create(
                    user_id=row.user_id,
                    activity_type=row.activity_type,
                    start_time=parse_instant(row.start_time, "start_time"),
                    end_time=parse_instant(row.end_time, "end_time"),
                )
            )
        return events


def read_user_ids(path) -> List[str]:
    """Read one user id per row from a text/CSV file.

    Blank rows, `#` comments and a leading user-id header are skipped;
    duplicates are dropped keeping the first occurrence.
    """
    p = Path(path)
    if not p.exists():
        raise DataSourceError(f"user id file not found: {p}")
    try:
        df = pd.read_csv(
            p, header=None, dtype=str, comment="#", skip_blank_lines=True, keep_default_na=False,
            usecols=[0],
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise DataSourceError(f"could not read user id file {p}: {exc}") from exc
    ids = [str(v).strip() for v in df.iloc[:, 0].tolist()]
    ids = [v for v in ids if v]
    if ids and ids[0].lower() in _USER_HEADERS:
        ids = ids[1:]
    return list(dict.fromkeys(ids))


def user_output_dir(output_dir, user_id: str) -> Path:
    return Path(output_dir) / str(user_id)
