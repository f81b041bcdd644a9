"""Ingredient catalog endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from studio_api.database import StudioDB
from studio_api.dependencies import get_db
from studio_api.models.responses import (
    ErrorResponse,
    IngredientCreate,
    IngredientResponse,
    IngredientUpdate,
    MessageResponse,
)

router = APIRouter(prefix="/ingredients", tags=["ingredients"])


def _ingredient_not_found(ingredient_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "ingredient_not_found",
            "message": f"Ingredient {ingredient_id} not found",
            "details": {"id": ingredient_id},
        },
    )


def _ingredient_exists(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "ingredient_exists",
            "message": f"Ingredient '{name}' already exists",
            "details": {"name": name},
        },
    )


@router.get(
    "",
    response_model=list[IngredientResponse],
    summary="List ingredients",
)
async def list_ingredients(
    db: Annotated[StudioDB, Depends(get_db)],
) -> list[IngredientResponse]:
    return [IngredientResponse(**i) for i in db.list_ingredients()]


@router.post(
    "",
    response_model=IngredientResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Create ingredient",
)
async def create_ingredient(
    ingredient: IngredientCreate, db: Annotated[StudioDB, Depends(get_db)]
) -> IngredientResponse:
    if db.find_ingredient(ingredient.name):
        raise _ingredient_exists(ingredient.name)
    return IngredientResponse(**db.create_ingredient(**ingredient.model_dump()))


@router.put(
    "/{ingredient_id}",
    response_model=IngredientResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Update ingredient",
    description="Update an ingredient. Fields that are omitted or null keep their value.",
)
async def update_ingredient(
    ingredient_id: int,
    ingredient: IngredientUpdate,
    db: Annotated[StudioDB, Depends(get_db)],
) -> IngredientResponse:
    if not db.get_ingredient(ingredient_id):
        raise _ingredient_not_found(ingredient_id)
    if ingredient.name:
        existing = db.find_ingredient(ingredient.name)
        if existing and existing["id"] != ingredient_id:
            raise _ingredient_exists(ingredient.name)

    if not db.update_ingredient(ingredient_id, **ingredient.model_dump()):
        raise _ingredient_not_found(ingredient_id)
    return IngredientResponse(**db.get_ingredient(ingredient_id))


@router.delete(
    "/{ingredient_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete ingredient",
)
async def delete_ingredient(
    ingredient_id: int, db: Annotated[StudioDB, Depends(get_db)]
) -> MessageResponse:
    if not db.delete_ingredient(ingredient_id):
        raise _ingredient_not_found(ingredient_id)
    return MessageResponse(message="Ingredient deleted", id=ingredient_id)
