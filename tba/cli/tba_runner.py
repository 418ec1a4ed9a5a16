#!/usr/bin/env python3
"""Command line runner for the segmentation engine.

Reads activity records from a local CSV export, segments every selected
user and writes `<output>/<user>/segments.csv` plus a run-level
`batch_summary.csv`. Users are selected by `--user-id`, else by the file
given with `--multi-user-id`, else every user found in the events file.

Exit codes: 0 all users processed, 1 at least one user failed,
2 invalid options or unreadable inputs.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from tba.batch import run_batch
from tba.config import ProgramOptions
from tba.domains.activity.segmentation import segments_to_frame
from tba.domains.common.io import CsvEventSource, read_user_ids, user_output_dir
from tba.domains.common.progress import Timer
from tba.errors import ConfigurationError, DataSourceError, InvalidRangeError
from tba.lib.io_guards import write_csv

logger = logging.getLogger("tba.cli")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %d", name, raw, default)
        return default


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tba_runner", description="Merge activity events into per-day segments")
    p.add_argument("--events", required=True, help="CSV of activity records (user_id, activity_type, start_time, end_time)")
    p.add_argument("--user-id", dest="user_id", default=None, help="Only run the analysis for a specific user")
    p.add_argument("--multi-user-id", dest="multi_user_path", default=None, help="Path to file including multiple user IDs")
    p.add_argument("--no-merge-still", dest="merge_still", action="store_false", help="Do not merge still events")
    p.add_argument("--no-merge-walking-running", dest="merge_walking_running", action="store_false",
                   help="Do not merge walking and running events")
    p.add_argument("--still-merge-threshold", type=float, default=2.0,
                   help="Still event merging threshold in minutes (default 2)")
    p.add_argument("--walking-running-merge-threshold", type=float, default=2.0,
                   help="Walking and running event merging threshold in minutes (default 2)")
    p.add_argument("--same-day-start-point", type=int, default=0, help="Starting point of the day in hours (0-23)")
    p.add_argument("--start-date", default=None, help="Start date (mm-dd-yyyy) of the analysis range")
    p.add_argument("--end-date", default=None, help="End date (mm-dd-yyyy) of the analysis range")
    p.add_argument("--save-on-path", dest="output_dir", default="output", help="Directory to save output data on")
    p.add_argument("--no-kmz", dest="skip_kmz", action="store_true", help="No export data in KMZ format")
    p.add_argument("--tz", default=None, help="Time zone for analysis days (default TBA_TZ or UTC)")
    p.add_argument("--max-workers", type=int, default=None, help="Users processed concurrently (default TBA_MAX_WORKERS or 1)")
    p.add_argument("--dry-run", type=int, default=0, help="If 1 do not write any file")
    return p


def options_from_args(args: argparse.Namespace) -> ProgramOptions:
    return ProgramOptions(
        events_path=args.events,
        user_id=args.user_id,
        multi_user_path=args.multi_user_path,
        merge_still_enabled=args.merge_still,
        merge_walking_running_enabled=args.merge_walking_running,
        still_merge_threshold_min=args.still_merge_threshold,
        walking_running_merge_threshold_min=args.walking_running_merge_threshold,
        same_day_start_hour=args.same_day_start_point,
        start_date=args.start_date,
        end_date=args.end_date,
        output_dir=args.output_dir,
        skip_kmz=bool(args.skip_kmz),
        tz=args.tz or os.getenv("TBA_TZ", "UTC"),
        max_workers=args.max_workers if args.max_workers is not None else _env_int("TBA_MAX_WORKERS", 1),
    )


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    lvl = getattr(logging, os.getenv("TBA_LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(level=lvl, format="%(asctime)s | %(name)s | %(levelname)s | %(message)s")

    args = build_parser().parse_args(argv)
    opts = options_from_args(args)

    if bool(opts.start_date) != bool(opts.end_date):
        given, missing = ("startDate", "endDate") if opts.start_date else ("endDate", "startDate")
        print(f"startDate and endDate must be provided together.\n{given} was provided but {missing} was not provided.",
              file=sys.stderr)
        return 2

    try:
        merge_config = opts.to_merge_config()
        day_config = opts.to_day_config()
        date_range = opts.to_date_range()
    except InvalidRangeError as e:
        print(f"Invalid start/end dates provided: {e}", file=sys.stderr)
        return 2
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    if opts.max_workers < 1:
        print(f"Invalid configuration: --max-workers must be >= 1, got {opts.max_workers}", file=sys.stderr)
        return 2

    if opts.multi_user_path and not Path(opts.multi_user_path).exists():
        print("The provided csv file for multiple userId's does not exist.", file=sys.stderr)
        return 2

    try:
        source = CsvEventSource(opts.events_path)
        if opts.user_id:
            users = [opts.user_id]
        elif opts.multi_user_path:
            users = read_user_ids(opts.multi_user_path)
        else:
            users = source.user_ids()
    except DataSourceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if not opts.skip_kmz:
        logger.info("KMZ export is not produced by this tool; writing CSV only")

    dry_run = bool(args.dry_run)
    print("Analysis started!")
    print(f"INFO: users={len(users)} output={opts.output_dir} dry_run={dry_run}")
    with Timer(f"tba segment [{len(users)} users]"):
        result = run_batch(
            users,
            source.fetch,
            merge_config,
            day_config,
            date_range,
            max_workers=opts.max_workers,
            show_progress=True,
        )

        for uid in result.succeeded:
            out = user_output_dir(opts.output_dir, uid) / "segments.csv"
            write_csv(segments_to_frame(result.segments_for(uid)), out, dry_run=dry_run)
        write_csv(result.summary_frame(), Path(opts.output_dir) / "batch_summary.csv", dry_run=dry_run)

    for uid in result.failed:
        failure = result.per_user[uid]
        print(f"WARNING: user {uid} failed: {failure.error_type}: {failure.message}", file=sys.stderr)
    print(f"INFO: ok={len(result.succeeded)} failed={len(result.failed)}")
    print("Analysis finished!")
    return 1 if result.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
