# PURPOSE: background job that fails overdue tasks.
# One UPDATE per tick: Upcoming/Ongoing rows whose deadline is strictly in
# the past become Failed. A second run right after the first matches nothing.

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from prometheus_client import Counter
from sqlalchemy import update
from sqlalchemy.orm import Session

from .config import settings
from .db_models import TaskDB, now_utc
from .lifecycle import ACTIVE_STATUSES, TaskStatus

logger = logging.getLogger("taskpilot.sweeper")

TASKS_SWEPT = Counter(
    "taskpilot_tasks_swept_total",
    "Tasks transitioned to Failed by the deadline sweeper.",
)


def sweep_overdue(db: Session, now: Optional[datetime] = None) -> int:
    """Mark overdue active tasks as Failed; return how many rows changed."""
    now = now or now_utc()
    stmt = (
        update(TaskDB)
        .where(
            TaskDB.status.in_([s.value for s in ACTIVE_STATUSES]),
            TaskDB.deadline < now,
        )
        .values(status=TaskStatus.FAILED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount or 0


def run_sweep(session_factory: Callable[[], Session], now: Optional[datetime] = None) -> int:
    """One scheduled tick. Failures are logged; the next tick tries again."""
    db = session_factory()
    try:
        count = sweep_overdue(db, now=now)
    except Exception:
        db.rollback()
        logger.exception("deadline sweep failed")
        return 0
    finally:
        db.close()
    if count:
        TASKS_SWEPT.inc(count)
        logger.info("deadline sweep marked %s task(s) as Failed", count)
    else:
        logger.debug("deadline sweep found no overdue tasks")
    return count


def start_sweeper(
    session_factory: Callable[[], Session],
    interval_seconds: Optional[int] = None,
) -> BackgroundScheduler:
    """Start a background scheduler that runs run_sweep() every interval."""
    interval = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_sweep,
        "interval",
        [session_factory],
        seconds=interval,
        id="deadline-sweeper",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("deadline sweeper started (every %ss)", interval)
    return scheduler
