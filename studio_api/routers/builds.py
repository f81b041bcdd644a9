"""Build history endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from studio_api.database import StudioDB
from studio_api.dependencies import get_db
from studio_api.models.responses import BuildCreate, BuildResponse, ErrorResponse

router = APIRouter(prefix="/builds", tags=["builds"])


@router.get(
    "",
    response_model=list[BuildResponse],
    summary="List builds",
)
async def list_builds(
    db: Annotated[StudioDB, Depends(get_db)],
    project_id: Annotated[int | None, Query(alias="projectId")] = None,
) -> list[BuildResponse]:
    return [BuildResponse(**b) for b in db.list_builds(project_id)]


@router.post(
    "",
    response_model=BuildResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
    summary="Record build",
)
async def create_build(
    build: BuildCreate, db: Annotated[StudioDB, Depends(get_db)]
) -> BuildResponse:
    project = db.get_project(build.project_id)
    if not project:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "project_not_found",
                "message": f"Project {build.project_id} not found",
                "details": {"project_id": build.project_id},
            },
        )

    created = db.create_build(**build.model_dump())
    db.log_activity(
        "build_recorded",
        f"{project['name']} v{build.version} ({build.platform}) build {build.status}",
    )
    return BuildResponse(**created)
