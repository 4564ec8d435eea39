# taskpilot/routers/tasks.py
# PURPOSE: task CRUD for the authenticated user.
# "custom" and "simple" creation both end in lifecycle.draft_task() and a
# single store_db.create_task() call.

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Response, status
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..api.deps import parse_status_filter
from ..db_models import now_utc
from ..derivation import TaskGenerator, derive_task, get_task_generator
from ..lifecycle import TaskDraft, TaskStatus, draft_task, parse_instant, parse_status
from ..models import (
    CustomTaskCreate,
    MessageResponse,
    SimpleTaskCreate,
    Task,
    TaskCreate,
    TaskEnvelope,
    TaskListEnvelope,
    TaskStatusPatch,
    TaskUpdate,
    UserPublic,
)
from ..store_db import (
    get_db,
    list_tasks as db_list_tasks,
    create_task as db_create_task,
    get_task as db_get_task,
    update_task as db_update_task,
    set_task_status as db_set_task_status,
    delete_task as db_delete_task,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def build_draft(
    item: CustomTaskCreate | SimpleTaskCreate,
    generator: TaskGenerator,
) -> TaskDraft:
    """Dispatch a create request to direct field mapping or to derivation."""
    now = now_utc()
    if isinstance(item, SimpleTaskCreate):
        return derive_task(item.text_input, now, generator)
    return draft_task(
        title=item.title,
        description=item.description,
        start_time=parse_instant(item.start_time, "start_time") if item.start_time is not None else None,
        deadline=parse_instant(item.deadline, "deadline"),
        now=now,
    )


@router.get("", response_model=TaskListEnvelope)
def list_tasks(
    task_status: Optional[TaskStatus] = Depends(parse_status_filter),
    db: Session = Depends(get_db),
    user: UserPublic = Depends(get_current_user),
):
    return TaskListEnvelope(
        tasks=[Task.model_validate(row) for row in db_list_tasks(db, owner_id=user.id, status=task_status)]
    )


@router.post("", response_model=TaskEnvelope, status_code=status.HTTP_201_CREATED)
def create_task(
    response: Response,
    item: Annotated[TaskCreate, Body(discriminator="type")],
    db: Session = Depends(get_db),
    user: UserPublic = Depends(get_current_user),
    generator: TaskGenerator = Depends(get_task_generator),
):
    draft = build_draft(item, generator)
    task = db_create_task(db, draft, owner_id=user.id)
    logger.info("created %s task id=%s status=%s", item.type, task.id, task.status)
    response.headers["Location"] = f"/tasks/{task.id}"
    return TaskEnvelope(task=Task.model_validate(task))


@router.get("/{task_id}", response_model=TaskEnvelope)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    user: UserPublic = Depends(get_current_user),
):
    return TaskEnvelope(task=Task.model_validate(db_get_task(db, task_id, owner_id=user.id)))


@router.put("/{task_id}", response_model=TaskEnvelope)
def update_task(
    task_id: int,
    item: TaskUpdate,
    db: Session = Depends(get_db),
    user: UserPublic = Depends(get_current_user),
):
    changes = item.model_dump(exclude_unset=True)
    return TaskEnvelope(task=Task.model_validate(db_update_task(db, task_id, changes, owner_id=user.id)))


@router.patch("/{task_id}/status", response_model=TaskEnvelope)
def patch_task_status(
    task_id: int,
    item: TaskStatusPatch,
    db: Session = Depends(get_db),
    user: UserPublic = Depends(get_current_user),
):
    new_status = parse_status(item.status)
    return TaskEnvelope(task=Task.model_validate(db_set_task_status(db, task_id, new_status, owner_id=user.id)))


@router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    user: UserPublic = Depends(get_current_user),
):
    db_delete_task(db, task_id, owner_id=user.id)
    return MessageResponse(message="Task deleted")
