"""Request and response models for API endpoints.

JSON field names are camelCase (``projectId``, ``schemaJson``); attributes are
snake_case. FastAPI serializes responses by alias. The ``schemaJson`` field is
held in ``table_schema`` because ``schema_json`` is a BaseModel method.
"""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases, populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status: 'healthy' or 'unhealthy'")
    version: str = Field(description="API version")
    database_available: bool = Field(description="Whether the store answers queries")
    details: dict[str, Any] | None = Field(default=None, description="Additional status details")


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(description="Error type")
    message: str = Field(description="Error message")
    details: dict | None = Field(default=None, description="Additional error details")


class MessageResponse(CamelModel):
    """Plain acknowledgement."""

    message: str
    id: int | None = None


# ============================================
# User table models
# ============================================

SchemaInput = str | list[Any]


class UserTableCreate(CamelModel):
    """Request to create a user table.

    Required fields are optional here so that a missing one is reported by
    the table engine as a validation error rather than a 422.
    """

    project_id: int | None = Field(default=None, description="Owning project id")
    name: str | None = Field(default=None, description="Display name")
    description: str | None = Field(default=None, description="Table description")
    table_schema: SchemaInput | None = Field(
        default=None,
        alias="schemaJson",
        description='Field list, JSON-encoded or inline: [{"name": "qty", "type": "number"}]',
    )


class UserTableUpdate(CamelModel):
    """Request to update a user table."""

    name: str | None = Field(default=None, description="Display name")
    description: str | None = Field(default=None, description="Table description")
    table_schema: SchemaInput | None = Field(
        default=None, alias="schemaJson", description="Field list"
    )


class UserTableResponse(CamelModel):
    """User table catalog record."""

    id: int
    project_id: int
    name: str
    description: str | None = None
    table_schema: str = Field(
        validation_alias=AliasChoices("schemaJson", "schema_json"),
        serialization_alias="schemaJson",
        description="Serialized field list",
    )
    physical_table_name: str | None = Field(
        default=None, description="Physical table, absent until creation completed"
    )
    created_at: str | None = None
    updated_at: str | None = None


class UserTableUpdateResponse(UserTableResponse):
    """Updated record plus a status message."""

    message: str


class UserTableDeleteResponse(CamelModel):
    """Result of a user table deletion."""

    message: str
    id: int
    dropped_physical_table: bool
    physical_table_name: str | None = None


# ============================================
# Project models
# ============================================


class ProjectFields(CamelModel):
    current_version: str | None = None
    status: str | None = None
    last_updated: str | None = None
    description: str | None = None
    team: str | None = None
    progress: str | None = None


class ProjectCreate(ProjectFields):
    """Request to create a new project."""

    name: str = Field(min_length=1, description="Project name")


class ProjectUpdate(ProjectFields):
    """Request to update a project. Omitted fields keep their value."""

    name: str | None = Field(default=None, min_length=1)


class ProjectResponse(ProjectFields):
    """Project information response."""

    id: int
    name: str
    created_at: str | None = None


# ============================================
# Task models
# ============================================

TaskStatus = Literal["todo", "in-progress", "done"]
TaskPriority = Literal["low", "medium", "high"]


class TaskCreate(CamelModel):
    """Request to create a task."""

    title: str = Field(min_length=1)
    description: str | None = None
    status: TaskStatus = "todo"
    assignee: str | None = None
    priority: TaskPriority = "medium"
    project_id: int


class TaskUpdate(CamelModel):
    """Request to update a task. Omitted fields keep their value."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: TaskStatus | None = None
    assignee: str | None = None
    priority: TaskPriority | None = None


class TaskResponse(CamelModel):
    id: int
    title: str
    description: str | None = None
    status: str
    assignee: str | None = None
    priority: str
    project_id: int | None = None


# ============================================
# Build and activity models
# ============================================


class BuildCreate(CamelModel):
    """Request to record a build."""

    project_id: int
    version: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    status: str = Field(min_length=1)
    duration: str | None = None


class BuildResponse(CamelModel):
    id: int
    project_id: int
    version: str
    platform: str
    status: str
    timestamp: str | None = None
    duration: str | None = None


class ActivityResponse(CamelModel):
    id: int
    type: str
    description: str | None = None
    timestamp: str | None = None


# ============================================
# Recipe and ingredient models
# ============================================


class RecipeCreate(CamelModel):
    """Request to create a crafting recipe."""

    name: str = Field(min_length=1, description="Recipe name, unique")
    ingredients: str = Field(min_length=1, description="Ingredient list as free text")
    difficulty: str | None = None


class RecipeUpdate(CamelModel):
    """Request to update a recipe. Omitted fields keep their value."""

    name: str | None = Field(default=None, min_length=1)
    ingredients: str | None = Field(default=None, min_length=1)
    difficulty: str | None = None


class RecipeResponse(CamelModel):
    id: int
    name: str
    ingredients: str
    difficulty: str | None = None


class IngredientCreate(CamelModel):
    """Request to add an ingredient to the catalog."""

    name: str = Field(min_length=1, description="Ingredient name, unique")
    type: str | None = None
    rarity: str | None = None


class IngredientUpdate(CamelModel):
    """Request to update an ingredient. Omitted fields keep their value."""

    name: str | None = Field(default=None, min_length=1)
    type: str | None = None
    rarity: str | None = None


class IngredientResponse(CamelModel):
    id: int
    name: str
    type: str | None = None
    rarity: str | None = None
