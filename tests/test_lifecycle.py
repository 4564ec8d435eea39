# tests/test_lifecycle.py
# PURPOSE: status rules, timestamp/status parsing.

from datetime import UTC, datetime, timedelta, timezone

import pytest

from taskpilot.errors import InvalidStatus, InvalidTimestamp
from taskpilot.lifecycle import (
    TaskStatus,
    compute_status,
    draft_task,
    parse_instant,
    parse_status,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
HOUR = timedelta(hours=1)


def test_no_start_time_is_ongoing():
    assert compute_status(None, NOW + HOUR, NOW) is TaskStatus.ONGOING


def test_future_start_is_upcoming():
    assert compute_status(NOW + HOUR, NOW + 2 * HOUR, NOW) is TaskStatus.UPCOMING


@pytest.mark.parametrize("start", [NOW, NOW - HOUR])
def test_started_before_deadline_is_ongoing(start):
    assert compute_status(start, NOW + HOUR, NOW) is TaskStatus.ONGOING


@pytest.mark.parametrize("start", [None, NOW - 2 * HOUR, NOW + HOUR])
@pytest.mark.parametrize("current", [None, TaskStatus.UPCOMING, TaskStatus.ONGOING, TaskStatus.FAILED])
def test_deadline_reached_is_failed(start, current):
    # deadline == now counts as reached
    assert compute_status(start, NOW, NOW, current) is TaskStatus.FAILED
    assert compute_status(start, NOW - HOUR, NOW, current) is TaskStatus.FAILED


def test_successful_is_sticky():
    assert compute_status(None, NOW - HOUR, NOW, TaskStatus.SUCCESSFUL) is TaskStatus.SUCCESSFUL
    assert compute_status(NOW + HOUR, NOW + 2 * HOUR, NOW, "Successful") is TaskStatus.SUCCESSFUL


def test_naive_and_offset_inputs_are_compared_as_utc():
    # 14:00+02:00 == 12:00Z, so the task has started
    start = datetime(2026, 10, 19, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert compute_status(start, NOW + HOUR, NOW.replace(tzinfo=None)) is TaskStatus.ONGOING


def test_upcoming_draft_turns_ongoing_after_start():
    draft = draft_task(
        title="Team sync",
        description=None,
        start_time=NOW + 2 * HOUR,
        deadline=NOW + 3 * HOUR,
        now=NOW,
    )
    assert draft.status is TaskStatus.UPCOMING

    later = NOW + 2 * HOUR + timedelta(minutes=1)
    assert compute_status(draft.start_time, draft.deadline, later, draft.status) is TaskStatus.ONGOING


def test_parse_instant_normalizes_to_utc():
    assert parse_instant("2026-10-19T12:00:00Z") == NOW
    assert parse_instant("2026-10-19T14:00:00+02:00") == NOW
    naive = parse_instant("2026-10-19T12:00:00")
    assert naive == NOW
    assert naive.tzinfo is not None


@pytest.mark.parametrize(
    "value",
    [
        "",
        "tomorrow",
        "2026-13-40T00:00:00Z",
        None,
        123,
        # valid ISO, but the UTC conversion leaves the datetime range
        "9999-12-31T23:59:59-01:00",
        "0001-01-01T00:00:00+01:00",
    ],
)
def test_parse_instant_rejects_garbage(value):
    with pytest.raises(InvalidTimestamp):
        parse_instant(value, "deadline")


def test_parse_status():
    assert parse_status("Ongoing") is TaskStatus.ONGOING
    with pytest.raises(InvalidStatus):
        parse_status("Done")
    with pytest.raises(InvalidStatus):
        parse_status("Ongoing Task")
