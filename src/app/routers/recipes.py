# src/app/routers/recipes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from src.app.domain.errors import SharingError
from src.app.domain.models import Visibility, is_accessible
from src.app.deps import (
    get_collection_service,
    get_recipe_access,
    get_recipe_service,
    get_session_counters,
)
from src.app.routers.errors import http_error
from src.app.schemas.collections import CollectionResponse, CounterResponse
from src.app.schemas.recipes import (
    RecipeCreate,
    RecipeResponse,
    RecipeUpdate,
    VisibilityUpdate,
)
from src.app.services.collection_service import CollectionService
from src.app.services.recipe_access import RecipeAccess
from src.app.services.recipe_service import RecipeService
from src.app.services.session_counters import SessionCounters

router = APIRouter(prefix="/recipes", tags=["recipes"])


# Shared (read-only, anonymous allowed)

@router.get("/shared/{recipe_id}", response_model=RecipeResponse)
async def get_shared_recipe(
    recipe_id: str,
    access: RecipeAccess = Depends(get_recipe_access),
) -> RecipeResponse:
    recipe = await access.get_accessible_recipe(recipe_id)
    if recipe is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return RecipeResponse.from_recipe(recipe)


@router.post("/shared/{recipe_id}/views", response_model=CounterResponse)
async def count_recipe_view(
    recipe_id: str,
    counters: SessionCounters = Depends(get_session_counters),
) -> CounterResponse:
    return CounterResponse(counted=await counters.increment_recipe_views(recipe_id))


@router.post("/shared/{recipe_id}/copies", response_model=CounterResponse)
async def count_recipe_copy(
    recipe_id: str,
    counters: SessionCounters = Depends(get_session_counters),
) -> CounterResponse:
    return CounterResponse(counted=await counters.increment_recipe_copies(recipe_id))


# Owner

@router.get("/", response_model=list[RecipeResponse])
async def list_recipes(
    service: RecipeService = Depends(get_recipe_service),
) -> list[RecipeResponse]:
    try:
        recipes = await service.list_recipes()
    except SharingError as exc:
        raise http_error(exc)
    return [RecipeResponse.from_recipe(recipe) for recipe in recipes]


@router.post("/", response_model=RecipeResponse, status_code=status.HTTP_201_CREATED)
async def create_recipe(
    payload: RecipeCreate,
    service: RecipeService = Depends(get_recipe_service),
) -> RecipeResponse:
    try:
        recipe = await service.create_recipe(
            payload.title,
            content=payload.content,
            image=payload.image,
            visibility=payload.visibility,
        )
    except SharingError as exc:
        raise http_error(exc)
    return RecipeResponse.from_recipe(recipe)


@router.get("/{recipe_id}", response_model=RecipeResponse)
async def get_recipe(
    recipe_id: str,
    service: RecipeService = Depends(get_recipe_service),
) -> RecipeResponse:
    try:
        recipe = await service.get_recipe(recipe_id)
    except SharingError as exc:
        raise http_error(exc)
    return RecipeResponse.from_recipe(recipe)


@router.patch("/{recipe_id}", response_model=RecipeResponse)
async def update_recipe(
    recipe_id: str,
    payload: RecipeUpdate,
    service: RecipeService = Depends(get_recipe_service),
) -> RecipeResponse:
    try:
        recipe = await service.update_recipe(recipe_id, payload.to_changes())
    except SharingError as exc:
        raise http_error(exc)
    return RecipeResponse.from_recipe(recipe)


@router.delete("/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recipe(
    recipe_id: str,
    service: RecipeService = Depends(get_recipe_service),
) -> Response:
    try:
        await service.delete_recipe(recipe_id)
    except SharingError as exc:
        raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{recipe_id}/visibility", response_model=RecipeResponse)
async def set_recipe_visibility(
    recipe_id: str,
    payload: VisibilityUpdate,
    service: RecipeService = Depends(get_recipe_service),
    collections: CollectionService = Depends(get_collection_service),
) -> RecipeResponse:
    """
    Making a recipe private while public collections still list it needs
    ``confirm=true``; without it the affected collections come back with a 409.
    The collections keep listing the recipe either way.
    """
    try:
        current = await service.get_recipe(recipe_id)
        demoting = (
            payload.visibility is Visibility.PRIVATE
            and is_accessible(current.resolved_visibility)
        )
        if demoting and not payload.confirm:
            affected = await collections.get_public_collections_containing_recipe(recipe_id)
            if affected:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail={
                        "message": "Recipe is listed in public collections",
                        "collections": [
                            CollectionResponse.from_collection(c).model_dump(mode="json")
                            for c in affected
                        ],
                    },
                )
        recipe = await service.set_recipe_visibility(recipe_id, payload.visibility)
    except SharingError as exc:
        raise http_error(exc)
    return RecipeResponse.from_recipe(recipe)


@router.get("/{recipe_id}/public-collections", response_model=list[CollectionResponse])
async def list_public_collections_for_recipe(
    recipe_id: str,
    collections: CollectionService = Depends(get_collection_service),
) -> list[CollectionResponse]:
    found = await collections.get_public_collections_containing_recipe(recipe_id)
    return [CollectionResponse.from_collection(c) for c in found]
