"""Crafting recipe endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from studio_api.database import StudioDB
from studio_api.dependencies import get_db
from studio_api.models.responses import (
    ErrorResponse,
    MessageResponse,
    RecipeCreate,
    RecipeResponse,
    RecipeUpdate,
)

router = APIRouter(prefix="/recipes", tags=["recipes"])


def _recipe_not_found(recipe_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "recipe_not_found",
            "message": f"Recipe {recipe_id} not found",
            "details": {"id": recipe_id},
        },
    )


def _recipe_exists(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "recipe_exists",
            "message": f"Recipe '{name}' already exists",
            "details": {"name": name},
        },
    )


@router.get(
    "",
    response_model=list[RecipeResponse],
    summary="List recipes",
)
async def list_recipes(db: Annotated[StudioDB, Depends(get_db)]) -> list[RecipeResponse]:
    return [RecipeResponse(**r) for r in db.list_recipes()]


@router.get(
    "/{recipe_id}",
    response_model=RecipeResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get recipe",
)
async def get_recipe(
    recipe_id: int, db: Annotated[StudioDB, Depends(get_db)]
) -> RecipeResponse:
    recipe = db.get_recipe(recipe_id)
    if not recipe:
        raise _recipe_not_found(recipe_id)
    return RecipeResponse(**recipe)


@router.post(
    "",
    response_model=RecipeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Create recipe",
)
async def create_recipe(
    recipe: RecipeCreate, db: Annotated[StudioDB, Depends(get_db)]
) -> RecipeResponse:
    if db.find_recipe(recipe.name):
        raise _recipe_exists(recipe.name)
    return RecipeResponse(**db.create_recipe(**recipe.model_dump()))


@router.put(
    "/{recipe_id}",
    response_model=RecipeResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Update recipe",
    description="Update a recipe. Fields that are omitted or null keep their value.",
)
async def update_recipe(
    recipe_id: int,
    recipe: RecipeUpdate,
    db: Annotated[StudioDB, Depends(get_db)],
) -> RecipeResponse:
    if not db.get_recipe(recipe_id):
        raise _recipe_not_found(recipe_id)
    if recipe.name:
        existing = db.find_recipe(recipe.name)
        if existing and existing["id"] != recipe_id:
            raise _recipe_exists(recipe.name)

    if not db.update_recipe(recipe_id, **recipe.model_dump()):
        raise _recipe_not_found(recipe_id)
    return RecipeResponse(**db.get_recipe(recipe_id))


@router.delete(
    "/{recipe_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete recipe",
)
async def delete_recipe(
    recipe_id: int, db: Annotated[StudioDB, Depends(get_db)]
) -> MessageResponse:
    if not db.delete_recipe(recipe_id):
        raise _recipe_not_found(recipe_id)
    return MessageResponse(message="Recipe deleted", id=recipe_id)
