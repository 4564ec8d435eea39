# PURPOSE: task status rules.
# Status is a function of (start_time, deadline, now) plus the current status;
# callers (routers, store, sweeper) decide when to recompute and persist it.

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .errors import InvalidStatus, InvalidTimestamp


class TaskStatus(str, Enum):
    UPCOMING = "Upcoming"
    ONGOING = "Ongoing"
    FAILED = "Failed"
    SUCCESSFUL = "Successful"


# Statuses the sweeper moves to FAILED once the deadline is strictly past
ACTIVE_STATUSES = (TaskStatus.UPCOMING, TaskStatus.ONGOING)


@dataclass(frozen=True)
class TaskDraft:
    """Unsaved task with its status already computed."""

    title: str
    description: str | None
    start_time: datetime | None
    deadline: datetime
    status: TaskStatus


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_instant(value: Any, field: str = "timestamp") -> datetime:
    """Parse an ISO 8601 string (or datetime) into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif not isinstance(value, str) or not value.strip():
        raise InvalidTimestamp(f"{field} must be an ISO 8601 timestamp")
    else:
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as err:
            raise InvalidTimestamp(f"{field} is not a valid ISO 8601 timestamp: {value!r}") from err
    try:
        return to_utc(parsed)
    except OverflowError as err:
        # offset pushes the instant outside the representable range
        raise InvalidTimestamp(f"{field} is out of range: {value!r}") from err


def parse_status(value: Any) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(value)
    except ValueError as err:
        allowed = ", ".join(s.value for s in TaskStatus)
        raise InvalidStatus(f"status must be one of: {allowed}") from err


def compute_status(
    start_time: datetime | None,
    deadline: datetime,
    now: datetime,
    current: TaskStatus | str | None = None,
) -> TaskStatus:
    """Return the status a task should hold at `now`.

    Precedence:
      1. SUCCESSFUL is never overridden automatically.
      2. now >= deadline -> FAILED
      3. no start_time -> ONGOING
      4. start_time > now -> UPCOMING
      5. start_time <= now < deadline -> ONGOING
    """
    if current is not None and parse_status(current) is TaskStatus.SUCCESSFUL:
        return TaskStatus.SUCCESSFUL
    now = to_utc(now)
    if now >= to_utc(deadline):
        return TaskStatus.FAILED
    if start_time is None:
        return TaskStatus.ONGOING
    if to_utc(start_time) > now:
        return TaskStatus.UPCOMING
    return TaskStatus.ONGOING


def draft_task(
    *,
    title: str,
    description: str | None,
    start_time: datetime | None,
    deadline: datetime,
    now: datetime,
) -> TaskDraft:
    """Build a draft for either creation path; status comes from compute_status()."""
    return TaskDraft(
        title=title,
        description=description,
        start_time=to_utc(start_time) if start_time is not None else None,
        deadline=to_utc(deadline),
        status=compute_status(start_time, deadline, now),
    )
