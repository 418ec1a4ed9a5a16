from datetime import datetime, timedelta, timezone

import pytest

from tba.domains.activity.events import ActivityEvent, ActivityType, Segment
from tba.errors import InvalidEventError

from helpers import ev, ts


def test_create_parses_labels_case_insensitively():
    e = ActivityEvent.create("u1", "walking", ts("2024-03-01 09:00"), ts("2024-03-01 09:05"))
    assert e.activity_type is ActivityType.WALKING
    assert ActivityType.parse("in vehicle") is ActivityType.IN_VEHICLE
    assert ActivityType.parse("on-foot") is ActivityType.ON_FOOT


@pytest.mark.parametrize("user", ["", "   ", None])
def test_empty_user_rejected(user):
    with pytest.raises(InvalidEventError) as ei:
        ActivityEvent.create(user, "STILL", ts("2024-03-01 09:00"), ts("2024-03-01 09:05"))
    assert ei.value.field == "user_id"


@pytest.mark.parametrize("kind", ["", "FLYING", None])
def test_bad_activity_type_rejected(kind):
    with pytest.raises(InvalidEventError) as ei:
        ActivityEvent.create("u1", kind, ts("2024-03-01 09:00"), ts("2024-03-01 09:05"))
    assert ei.value.field == "activity_type"


def test_end_before_start_rejected():
    with pytest.raises(InvalidEventError) as ei:
        ev("STILL", "2024-03-01 09:05", "2024-03-01 09:00")
    assert ei.value.field == "end_time"


def test_non_datetime_rejected():
    with pytest.raises(InvalidEventError) as ei:
        ActivityEvent.create("u1", "STILL", "2024-03-01", ts("2024-03-01 09:00"))
    assert ei.value.field == "start_time"


def test_zero_duration_is_valid():
    e = ev("STILL", "2024-03-01 09:00", "2024-03-01 09:00")
    assert e.duration_ms == 0


def test_naive_datetimes_are_utc():
    e = ActivityEvent.create("u1", "STILL", datetime(2024, 3, 1, 9), datetime(2024, 3, 1, 9, 5))
    assert e.start_time.tzinfo is not None
    assert e.start_time.utcoffset() == timedelta(0)


def test_events_are_immutable():
    e = ev("STILL", "2024-03-01 09:00", "2024-03-01 09:05")
    with pytest.raises(Exception):
        e.end_time = ts("2024-03-01 10:00")


def test_from_millis():
    start = int(datetime(2024, 3, 1, 9, tzinfo=timezone.utc).timestamp() * 1000)
    e = ActivityEvent.from_millis("u1", "RUNNING", start, start + 60_000)
    assert e.start_time == ts("2024-03-01 09:00")
    assert e.duration_ms == 60_000
    with pytest.raises(InvalidEventError):
        ActivityEvent.from_millis("u1", "RUNNING", "abc", start)


def test_segment_label_and_as_event():
    seg = Segment(
        user_id="u1",
        activity_type=ActivityType.RUNNING,
        family="WALKING_RUNNING",
        day=ts("2024-03-01 00:00").date(),
        start_time=ts("2024-03-01 09:00"),
        end_time=ts("2024-03-01 09:30"),
        source_event_count=3,
    )
    assert seg.label == "WALKING_RUNNING"
    assert seg.duration_ms == 30 * 60_000
    back = seg.as_event()
    assert back.activity_type is ActivityType.RUNNING
    assert (back.start_time, back.end_time) == (seg.start_time, seg.end_time)

    vehicle = Segment("u1", ActivityType.IN_VEHICLE, None, seg.day, seg.start_time, seg.end_time)
    assert vehicle.label == "IN_VEHICLE"
