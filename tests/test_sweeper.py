# tests/test_sweeper.py
# PURPOSE: deadline sweeper batch transition, idempotence and failure handling.

import logging
from datetime import UTC, datetime, timedelta

from taskpilot.db_models import TaskDB
from taskpilot.lifecycle import TaskStatus, draft_task
from taskpilot.store_db import create_task, create_user, get_task, set_task_status
from taskpilot.sweeper import run_sweep, sweep_overdue

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
HOUR = timedelta(hours=1)


def _task(db, owner_id, title, *, start=None, deadline):
    draft = draft_task(title=title, description=None, start_time=start, deadline=deadline, now=NOW)
    return create_task(db, draft, owner_id=owner_id)


def _status(session_factory, task_id, owner_id):
    db = session_factory()
    try:
        return get_task(db, task_id, owner_id=owner_id).status
    finally:
        db.close()


def test_sweep_fails_only_overdue_active_tasks(session_factory, db_session):
    user = create_user(db_session, "sweepy", "hash")
    upcoming = _task(db_session, user.id, "upcoming", start=NOW + HOUR, deadline=NOW + 2 * HOUR)
    ongoing = _task(db_session, user.id, "ongoing", deadline=NOW + HOUR)
    later = _task(db_session, user.id, "later", deadline=NOW + 10 * HOUR)
    done = _task(db_session, user.id, "done", deadline=NOW + HOUR)
    set_task_status(db_session, done.id, TaskStatus.SUCCESSFUL, owner_id=user.id)
    ids = (upcoming.id, ongoing.id, later.id, done.id)

    count = sweep_overdue(db_session, now=NOW + 3 * HOUR)

    assert count == 2
    assert _status(session_factory, ids[0], user.id) == TaskStatus.FAILED.value
    assert _status(session_factory, ids[1], user.id) == TaskStatus.FAILED.value
    assert _status(session_factory, ids[2], user.id) == TaskStatus.ONGOING.value
    assert _status(session_factory, ids[3], user.id) == TaskStatus.SUCCESSFUL.value


def test_sweep_updates_modification_time(session_factory, db_session):
    user = create_user(db_session, "sweepy", "hash")
    task_id = _task(db_session, user.id, "t", deadline=NOW + HOUR).id
    swept_at = NOW + 2 * HOUR

    sweep_overdue(db_session, now=swept_at)

    db = session_factory()
    try:
        row = db.get(TaskDB, task_id)
        assert row.updated_at == swept_at
    finally:
        db.close()


def test_sweep_is_idempotent(db_session):
    user = create_user(db_session, "sweepy", "hash")
    _task(db_session, user.id, "a", deadline=NOW + HOUR)
    _task(db_session, user.id, "b", deadline=NOW + HOUR)

    assert sweep_overdue(db_session, now=NOW + 2 * HOUR) == 2
    assert sweep_overdue(db_session, now=NOW + 2 * HOUR) == 0


def test_deadline_equal_to_now_is_not_swept(db_session):
    user = create_user(db_session, "sweepy", "hash")
    _task(db_session, user.id, "edge", deadline=NOW + HOUR)
    assert sweep_overdue(db_session, now=NOW + HOUR) == 0


def test_run_sweep_counts_and_closes_session(session_factory, db_session):
    user = create_user(db_session, "sweepy", "hash")
    _task(db_session, user.id, "a", deadline=NOW + HOUR)

    assert run_sweep(session_factory, now=NOW + 2 * HOUR) == 1
    assert run_sweep(session_factory, now=NOW + 2 * HOUR) == 0


class _BrokenSession:
    def execute(self, *args, **kwargs):
        raise RuntimeError("database is gone")

    def rollback(self):
        pass

    def close(self):
        self.closed = True


def test_run_sweep_logs_failure_and_does_not_raise(caplog):
    session = _BrokenSession()
    with caplog.at_level(logging.ERROR, logger="taskpilot.sweeper"):
        assert run_sweep(lambda: session) == 0
    assert session.closed
    assert "deadline sweep failed" in caplog.text


def test_upcoming_task_is_failed_only_once_deadline_passes(session_factory, db_session):
    user = create_user(db_session, "sweepy", "hash")
    task_id = _task(db_session, user.id, "Team sync", start=NOW + 2 * HOUR, deadline=NOW + 3 * HOUR).id
    assert _status(session_factory, task_id, user.id) == TaskStatus.UPCOMING.value

    assert sweep_overdue(db_session, now=NOW + 2 * HOUR + timedelta(minutes=1)) == 0
    assert _status(session_factory, task_id, user.id) == TaskStatus.UPCOMING.value

    assert sweep_overdue(db_session, now=NOW + 3 * HOUR + timedelta(minutes=1)) == 1
    assert _status(session_factory, task_id, user.id) == TaskStatus.FAILED.value
