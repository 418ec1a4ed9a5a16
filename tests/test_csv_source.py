from datetime import datetime, timezone

import pytest

from tba.batch import run_batch
from tba.domains.activity.events import ActivityType
from tba.domains.common.io import CsvEventSource, parse_instant, read_user_ids, user_output_dir
from tba.errors import DataSourceError, InvalidEventError


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_reads_iso_and_epoch_millis(tmp_path):
    p = _write(
        tmp_path / "events.csv",
        "user_id,activity_type,start_time,end_time\n"
        "u1,still,2024-03-01T09:00:00Z,2024-03-01T09:05:00Z\n"
        "u1,WALKING,1709284200000,1709284500000\n"
        "u2,in vehicle,2024-03-01 10:00:00,2024-03-01 10:30:00\n",
    )
    src = CsvEventSource(p)
    assert src.user_ids() == ["u1", "u2"]

    u1 = src.fetch("u1")
    assert [e.activity_type for e in u1] == [ActivityType.STILL, ActivityType.WALKING]
    assert u1[0].start_time == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    assert u1[1].start_time == datetime(2024, 3, 1, 9, 10, tzinfo=timezone.utc)
    assert u1[1].duration_ms == 300_000

    (u2,) = src.fetch("u2")
    assert u2.activity_type is ActivityType.IN_VEHICLE
    # naive timestamps are read as UTC
    assert u2.start_time.tzinfo is not None
    assert u2.start_time.hour == 10


def test_column_aliases_and_case(tmp_path):
    p = _write(
        tmp_path / "events.csv",
        " UserId ,Activity,Start,End\n"
        "abc,RUNNING,2024-03-01T09:00:00+02:00,2024-03-01T09:30:00+02:00\n",
    )
    (e,) = CsvEventSource(p).fetch("abc")
    assert e.activity_type is ActivityType.RUNNING
    assert e.start_time == datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)


def test_unknown_user_yields_no_events(tmp_path):
    p = _write(tmp_path / "events.csv", "user_id,activity_type,start_time,end_time\n")
    src = CsvEventSource(p)
    assert src.user_ids() == []
    assert src.fetch("ghost") == []


def test_missing_file_and_columns(tmp_path):
    with pytest.raises(DataSourceError):
        CsvEventSource(tmp_path / "nope.csv")
    p = _write(tmp_path / "events.csv", "user_id,activity_type,start_time\nu1,STILL,0\n")
    with pytest.raises(DataSourceError) as ei:
        CsvEventSource(p)
    assert "end_time" in str(ei.value)


def test_malformed_row_fails_only_its_user(tmp_path):
    p = _write(
        tmp_path / "events.csv",
        "user_id,activity_type,start_time,end_time\n"
        "good,STILL,2024-03-01T09:00:00Z,2024-03-01T09:05:00Z\n"
        "bad,STILL,2024-03-01T09:05:00Z,2024-03-01T09:00:00Z\n"
        "worse,FLYING,2024-03-01T09:00:00Z,2024-03-01T09:05:00Z\n",
    )
    src = CsvEventSource(p)
    with pytest.raises(InvalidEventError) as ei:
        src.fetch("bad")
    assert ei.value.field == "end_time"

    result = run_batch(src.user_ids(), src.fetch)
    assert result.succeeded == ("good",)
    assert result.failed == ("bad", "worse")
    assert result.per_user["worse"].error_type == "InvalidEventError"


def test_parse_instant_errors():
    with pytest.raises(InvalidEventError):
        parse_instant("", "start_time")
    with pytest.raises(InvalidEventError):
        parse_instant(None, "start_time")
    with pytest.raises(InvalidEventError) as ei:
        parse_instant("not a time", "end_time")
    assert ei.value.field == "end_time"
    assert parse_instant("0", "start_time") == datetime(1970, 1, 1, tzinfo=timezone.utc)


def test_read_user_ids(tmp_path):
    p = _write(tmp_path / "users.csv", "user_id\nu1\n\n# comment\nu2\nu1\n  u3  \n")
    assert read_user_ids(p) == ["u1", "u2", "u3"]


def test_read_user_ids_without_header_and_empty(tmp_path):
    assert read_user_ids(_write(tmp_path / "a.txt", "x1\nx2\n")) == ["x1", "x2"]
    assert read_user_ids(_write(tmp_path / "b.txt", "")) == []
    with pytest.raises(DataSourceError):
        read_user_ids(tmp_path / "missing.csv")


def test_user_output_dir(tmp_path):
    assert user_output_dir(tmp_path, "u1") == tmp_path / "u1"


def test_read_user_ids_rejects_undecodable_file(tmp_path):
    p = tmp_path / "users.csv"
    p.write_bytes(b"u1\n\xe9l\xe8ve\n")
    with pytest.raises(DataSourceError):
        read_user_ids(p)


def test_rows_without_user_are_skipped_with_warning(tmp_path, caplog):
    p = _write(
        tmp_path / "events.csv",
        "user_id,activity_type,start_time,end_time\n"
        "u1,STILL,2024-03-01T09:00:00Z,2024-03-01T09:05:00Z\n"
        "  ,STILL,2024-03-01T09:10:00Z,2024-03-01T09:15:00Z\n"
        ",WALKING,2024-03-01T09:20:00Z,2024-03-01T09:25:00Z\n",
    )
    with caplog.at_level("WARNING", logger="tba.source"):
        src = CsvEventSource(p)
    assert src.user_ids() == ["u1"]
    assert "2 rows without user_id" in caplog.text
