# src/app/routers/collections.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from src.app.deps import (
    CurrentUser,
    get_collection_service,
    get_current_user,
    get_optional_user,
    get_session_counters,
    get_viewer_collection_service,
)
from src.app.domain.errors import SharingError
from src.app.routers.errors import http_error
from src.app.schemas.collections import (
    CollectionAppendRequest,
    CollectionCreate,
    CollectionDetail,
    CollectionReorderRequest,
    CollectionResponse,
    CollectionUpdate,
    CounterResponse,
    VisibilityChangeResponse,
)
from src.app.schemas.recipes import RecipeResponse
from src.app.services.collection_service import CollectionService
from src.app.services.session_counters import SessionCounters

router = APIRouter(prefix="/collections", tags=["collections"])


@router.get("/", response_model=list[CollectionResponse])
async def list_collections(
    service: CollectionService = Depends(get_collection_service),
) -> list[CollectionResponse]:
    try:
        collections = await service.get_user_collections()
    except SharingError as exc:
        raise http_error(exc)
    return [CollectionResponse.from_collection(c) for c in collections]


@router.post("/", response_model=CollectionResponse, status_code=status.HTTP_201_CREATED)
async def create_collection(
    payload: CollectionCreate,
    user: CurrentUser = Depends(get_current_user),
    service: CollectionService = Depends(get_collection_service),
) -> CollectionResponse:
    try:
        collection = await service.create_collection(
            payload.name,
            payload.description,
            payload.visibility,
            owner_name=user.name,
        )
    except SharingError as exc:
        raise http_error(exc)
    return CollectionResponse.from_collection(collection)


@router.get("/{collection_id}", response_model=CollectionResponse)
async def get_collection(
    collection_id: str,
    service: CollectionService = Depends(get_viewer_collection_service),
) -> CollectionResponse:
    try:
        collection = await service.get_viewable_collection(collection_id)
    except SharingError as exc:
        raise http_error(exc)
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return CollectionResponse.from_collection(collection)


@router.patch("/{collection_id}", response_model=CollectionResponse)
async def update_collection(
    collection_id: str,
    payload: CollectionUpdate,
    service: CollectionService = Depends(get_collection_service),
) -> CollectionResponse:
    try:
        collection = await service.update_collection(collection_id, payload.to_changes())
    except SharingError as exc:
        raise http_error(exc)
    return CollectionResponse.from_collection(collection)


@router.delete("/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_collection(
    collection_id: str,
    service: CollectionService = Depends(get_collection_service),
) -> Response:
    try:
        await service.delete_collection(collection_id)
    except SharingError as exc:
        raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{collection_id}/recipes", response_model=CollectionDetail)
async def get_collection_recipes(
    collection_id: str,
    user: CurrentUser | None = Depends(get_optional_user),
    service: CollectionService = Depends(get_viewer_collection_service),
) -> CollectionDetail:
    try:
        collection = await service.require_existing(collection_id)
        recipes = await service.get_collection_recipes(
            collection, user.id if user else None
        )
    except SharingError as exc:
        raise http_error(exc)
    return CollectionDetail(
        collection=CollectionResponse.from_collection(collection),
        recipes=[RecipeResponse.from_recipe(recipe) for recipe in recipes],
    )


@router.post("/{collection_id}/recipes", response_model=VisibilityChangeResponse)
async def add_recipe_to_collection(
    collection_id: str,
    payload: CollectionAppendRequest,
    service: CollectionService = Depends(get_collection_service),
) -> VisibilityChangeResponse:
    try:
        change = await service.add_recipe_to_collection(collection_id, payload.recipeId)
    except SharingError as exc:
        raise http_error(exc)
    return VisibilityChangeResponse.from_change(change)


@router.put("/{collection_id}/recipes", status_code=status.HTTP_204_NO_CONTENT)
async def reorder_collection_recipes(
    collection_id: str,
    payload: CollectionReorderRequest,
    service: CollectionService = Depends(get_collection_service),
) -> Response:
    try:
        await service.reorder_collection_recipes(collection_id, payload.recipeIds)
    except SharingError as exc:
        raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{collection_id}/recipes/{recipe_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_recipe_from_collection(
    collection_id: str,
    recipe_id: str,
    service: CollectionService = Depends(get_collection_service),
) -> Response:
    try:
        await service.remove_recipe_from_collection(collection_id, recipe_id)
    except SharingError as exc:
        raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{collection_id}/views", response_model=CounterResponse)
async def count_collection_view(
    collection_id: str,
    counters: SessionCounters = Depends(get_session_counters),
) -> CounterResponse:
    return CounterResponse(counted=await counters.increment_collection_views(collection_id))


@router.post("/{collection_id}/copies", response_model=CounterResponse)
async def count_collection_copy(
    collection_id: str,
    counters: SessionCounters = Depends(get_session_counters),
) -> CounterResponse:
    counted = await counters.increment_collection_recipes_copied(collection_id)
    return CounterResponse(counted=counted)
