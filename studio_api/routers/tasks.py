"""Task board endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from studio_api.database import StudioDB
from studio_api.dependencies import get_db
from studio_api.models.responses import (
    ErrorResponse,
    MessageResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _not_found(what: str, item_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": f"{what}_not_found",
            "message": f"{what.capitalize()} {item_id} not found",
            "details": {"id": item_id},
        },
    )


@router.get(
    "",
    response_model=list[TaskResponse],
    summary="List tasks",
)
async def list_tasks(
    db: Annotated[StudioDB, Depends(get_db)],
    project_id: Annotated[int | None, Query(alias="projectId")] = None,
) -> list[TaskResponse]:
    return [TaskResponse(**t) for t in db.list_tasks(project_id)]


@router.post(
    "",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
    summary="Create task",
)
async def create_task(
    task: TaskCreate, db: Annotated[StudioDB, Depends(get_db)]
) -> TaskResponse:
    if not db.get_project(task.project_id):
        raise _not_found("project", task.project_id)

    created = db.create_task(**task.model_dump())
    db.log_activity("task_created", f"Task '{task.title}' created")
    return TaskResponse(**created)


@router.put(
    "/{task_id}",
    response_model=TaskResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Update task",
    description="Update a task. Fields that are omitted or null keep their value.",
)
async def update_task(
    task_id: int,
    task: TaskUpdate,
    db: Annotated[StudioDB, Depends(get_db)],
) -> TaskResponse:
    if not db.update_task(task_id, **task.model_dump()):
        raise _not_found("task", task_id)
    return TaskResponse(**db.get_task(task_id))


@router.delete(
    "/{task_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete task",
)
async def delete_task(
    task_id: int, db: Annotated[StudioDB, Depends(get_db)]
) -> MessageResponse:
    task = db.get_task(task_id)
    if not task or not db.delete_task(task_id):
        raise _not_found("task", task_id)

    db.log_activity("task_deleted", f"Task '{task['title']}' deleted")
    return MessageResponse(message="Task deleted", id=task_id)
