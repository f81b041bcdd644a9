"""Project management endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from studio_api.database import StudioDB
from studio_api.dependencies import get_db, get_table_manager
from studio_api.models.responses import (
    ErrorResponse,
    MessageResponse,
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
)
from studio_api.table_engine import TableLifecycleManager

logger = structlog.get_logger()
router = APIRouter(prefix="/projects", tags=["projects"])


def _project_not_found(project_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "project_not_found",
            "message": f"Project {project_id} not found",
            "details": {"project_id": project_id},
        },
    )


@router.get(
    "",
    response_model=list[ProjectResponse],
    summary="List projects",
)
async def list_projects(db: Annotated[StudioDB, Depends(get_db)]) -> list[ProjectResponse]:
    return [ProjectResponse(**p) for p in db.list_projects()]


@router.get(
    "/{project_id}",
    response_model=ProjectResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get project",
)
async def get_project(
    project_id: int, db: Annotated[StudioDB, Depends(get_db)]
) -> ProjectResponse:
    project = db.get_project(project_id)
    if not project:
        raise _project_not_found(project_id)
    return ProjectResponse(**project)


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create project",
)
async def create_project(
    project: ProjectCreate, db: Annotated[StudioDB, Depends(get_db)]
) -> ProjectResponse:
    created = db.create_project(**project.model_dump())
    db.log_activity("project_created", f"Project '{project.name}' created")
    return ProjectResponse(**created)


@router.put(
    "/{project_id}",
    response_model=ProjectResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Update project",
    description="Update a project. Fields that are omitted or null keep their value.",
)
async def update_project(
    project_id: int,
    project: ProjectUpdate,
    db: Annotated[StudioDB, Depends(get_db)],
) -> ProjectResponse:
    if not db.update_project(project_id, **project.model_dump()):
        raise _project_not_found(project_id)

    updated = db.get_project(project_id)
    db.log_activity("project_updated", f"Project '{updated['name']}' updated")
    return ProjectResponse(**updated)


@router.delete(
    "/{project_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete project",
    description="Delete a project with its tasks, builds and user tables.",
)
async def delete_project(
    project_id: int,
    db: Annotated[StudioDB, Depends(get_db)],
    manager: Annotated[TableLifecycleManager, Depends(get_table_manager)],
) -> MessageResponse:
    project = db.get_project(project_id)
    if not project:
        raise _project_not_found(project_id)

    counts = manager.delete_project(project_id)
    if counts["projects"] == 0:
        raise _project_not_found(project_id)

    logger.info("project_deleted", project_id=project_id, deleted_counts=counts)
    db.log_activity("project_deleted", f"Project '{project['name']}' deleted")
    return MessageResponse(message="Project deleted", id=project_id)
