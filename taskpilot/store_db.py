# PURPOSE: persistence for users and tasks.
# Every task query is scoped by owner; a foreign row looks exactly like a
# missing one. SQLAlchemy failures are rolled back and re-raised as StoreError.

from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .db_models import TaskDB, UserDB, now_utc
from .errors import Conflict, NotFound, StoreError, ValidationError
from .lifecycle import TaskDraft, TaskStatus, compute_status, parse_instant, parse_status

logger = logging.getLogger(__name__)


# --- Session dependency ----------------------------------------------------


def get_db():
    """Yield a SQLAlchemy session (used as a FastAPI dependency)."""
    from .db import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _wrap_store_errors(func):
    """Roll back and convert SQLAlchemy failures into StoreError."""

    @functools.wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return func(db, *args, **kwargs)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("store operation %s failed: %s", func.__name__, exc)
            raise StoreError("Storage failure") from exc

    return wrapper


# --- Users -----------------------------------------------------------------


@_wrap_store_errors
def get_user_by_username(db: Session, username: str) -> Optional[UserDB]:
    return db.query(UserDB).filter(UserDB.username == username).one_or_none()


@_wrap_store_errors
def get_user(db: Session, user_id: int) -> Optional[UserDB]:
    return db.get(UserDB, user_id)


def create_user(db: Session, username: str, password_hash: str) -> UserDB:
    """Insert a user; duplicate username -> Conflict."""
    if get_user_by_username(db, username) is not None:
        raise Conflict("Username already taken")
    user = UserDB(username=username, password_hash=password_hash, created_at=now_utc())
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        # lost a race against a concurrent registration
        db.rollback()
        raise Conflict("Username already taken") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("store operation create_user failed: %s", exc)
        raise StoreError("Storage failure") from exc
    db.refresh(user)
    return user


# --- Tasks -----------------------------------------------------------------


@_wrap_store_errors
def list_tasks(db: Session, *, owner_id: int, status: Optional[TaskStatus] = None) -> List[TaskDB]:
    """Return the owner's tasks, optionally filtered by status, earliest deadline first."""
    query = db.query(TaskDB).filter(TaskDB.user_id == owner_id)
    if status is not None:
        query = query.filter(TaskDB.status == status.value)
    return query.order_by(TaskDB.deadline.asc(), TaskDB.id.asc()).all()


@_wrap_store_errors
def create_task(db: Session, draft: TaskDraft, *, owner_id: int) -> TaskDB:
    """Persist a draft produced by lifecycle.draft_task()."""
    now = now_utc()
    row = TaskDB(
        user_id=owner_id,
        title=draft.title,
        description=draft.description,
        start_time=draft.start_time,
        deadline=draft.deadline,
        status=draft.status.value,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@_wrap_store_errors
def get_task(db: Session, task_id: int, *, owner_id: int) -> TaskDB:
    """Fetch a single owned task or raise NotFound."""
    row = (
        db.query(TaskDB)
        .filter(TaskDB.id == task_id, TaskDB.user_id == owner_id)
        .one_or_none()
    )
    if row is None:
        raise NotFound("Task not found")
    return row


def _apply_changes(row: TaskDB, changes: Mapping[str, Any], now: datetime) -> None:
    """Validate a partial update and apply it to `row` in place."""
    if "title" in changes:
        title = changes["title"]
        if title is None or not str(title).strip():
            raise ValidationError("title cannot be empty")
        row.title = title
    if "description" in changes:
        row.description = changes["description"]

    timestamps_changed = False
    if "start_time" in changes:
        raw = changes["start_time"]
        start_time = parse_instant(raw, "start_time") if raw is not None else None
        if start_time != row.start_time:
            row.start_time = start_time
            timestamps_changed = True
    if "deadline" in changes:
        raw = changes["deadline"]
        if raw is None:
            raise ValidationError("deadline is required and cannot be null")
        deadline = parse_instant(raw, "deadline")
        if deadline != row.deadline:
            row.deadline = deadline
            timestamps_changed = True

    # explicit status wins over recomputation
    if changes.get("status") is not None:
        row.status = parse_status(changes["status"]).value
    elif "status" in changes:
        raise ValidationError("status cannot be null")
    elif timestamps_changed:
        row.status = compute_status(row.start_time, row.deadline, now, row.status).value


@_wrap_store_errors
def update_task(
    db: Session,
    task_id: int,
    changes: Mapping[str, Any],
    *,
    owner_id: int,
    now: Optional[datetime] = None,
) -> TaskDB:
    """Partial update; omitted fields stay unchanged. Raises NotFound."""
    row = get_task(db, task_id, owner_id=owner_id)
    now = now or now_utc()
    try:
        _apply_changes(row, changes, now)
    except Exception:
        # drop half-applied attribute changes
        db.rollback()
        raise
    row.updated_at = now
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@_wrap_store_errors
def set_task_status(db: Session, task_id: int, status: TaskStatus, *, owner_id: int) -> TaskDB:
    """Explicit status override; touches nothing but status and updated_at."""
    row = get_task(db, task_id, owner_id=owner_id)
    row.status = status.value
    row.updated_at = now_utc()
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@_wrap_store_errors
def delete_task(db: Session, task_id: int, *, owner_id: int) -> None:
    """Delete an owned task or raise NotFound."""
    row = get_task(db, task_id, owner_id=owner_id)
    db.delete(row)
    db.commit()
