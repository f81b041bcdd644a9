"""User table endpoints: custom tables whose schema is defined at runtime.

Catalog:
    POST   /user-tables                 create table (201)
    GET    /user-tables/{project_id}    list tables of a project
    PUT    /user-tables/{id}            update name, description, schema
    DELETE /user-tables/{id}            delete table and its physical table

Rows:
    GET    /user-tables/{table_id}/data    read all rows
    POST   /user-tables/{table_id}/data    insert one row (201)

Engine errors (validation, not found, creation failures) are rendered by the
application's StudioError handler.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, status

from studio_api.dependencies import get_table_manager
from studio_api.models.responses import (
    ErrorResponse,
    UserTableCreate,
    UserTableDeleteResponse,
    UserTableResponse,
    UserTableUpdate,
    UserTableUpdateResponse,
)
from studio_api.table_engine import TableLifecycleManager

router = APIRouter(prefix="/user-tables", tags=["user-tables"])

Manager = Annotated[TableLifecycleManager, Depends(get_table_manager)]


@router.post(
    "",
    response_model=UserTableResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Create user table",
    description="Register a user table and create its physical table.",
)
async def create_user_table(body: UserTableCreate, manager: Manager) -> UserTableResponse:
    record = manager.create_table(
        project_id=body.project_id,
        name=body.name,
        description=body.description,
        schema=body.table_schema,
    )
    return UserTableResponse(**record)


@router.get(
    "/{project_id}",
    response_model=list[UserTableResponse],
    summary="List user tables",
    description="List all user tables of a project, including incomplete ones.",
)
async def list_user_tables(project_id: int, manager: Manager) -> list[UserTableResponse]:
    return [UserTableResponse(**record) for record in manager.list_tables(project_id)]


@router.put(
    "/{table_id}",
    response_model=UserTableUpdateResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Update user table",
    description=(
        "Update name, description and schema. Fields can be added to a table "
        "that already has data, but not removed or retyped."
    ),
)
async def update_user_table(
    table_id: int, body: UserTableUpdate, manager: Manager
) -> UserTableUpdateResponse:
    record = manager.update_table_metadata(
        table_id,
        name=body.name,
        description=body.description,
        schema=body.table_schema,
    )
    return UserTableUpdateResponse(**record, message="User table updated")


@router.delete(
    "/{table_id}",
    response_model=UserTableDeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete user table",
)
async def delete_user_table(table_id: int, manager: Manager) -> UserTableDeleteResponse:
    result = manager.delete_table(table_id)
    if result["dropped_physical_table"]:
        message = f"User table and physical table {result['physical_table_name']} deleted"
    else:
        message = "User table metadata deleted (no physical table)"
    return UserTableDeleteResponse(message=message, **result)


@router.get(
    "/{table_id}/data",
    responses={404: {"model": ErrorResponse}},
    summary="Read user table rows",
)
async def get_user_table_data(table_id: int, manager: Manager) -> list[dict[str, Any]]:
    return manager.get_table_data(table_id)


@router.post(
    "/{table_id}/data",
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Insert user table row",
    description="Insert one row. Keys that are not table fields are ignored.",
)
async def insert_user_table_data(
    table_id: int,
    record: Annotated[Any, Body()],
    manager: Manager,
) -> dict[str, Any]:
    return manager.insert_table_data(table_id, record)
