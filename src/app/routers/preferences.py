# src/app/routers/preferences.py
from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from src.app.deps import get_preferences_service
from src.app.domain.errors import SharingError
from src.app.domain.models import UserPreferences
from src.app.routers.errors import http_error
from src.app.schemas.preferences import PreferencesResponse, PreferencesUpdate
from src.app.services.preferences_service import PreferencesService

router = APIRouter(prefix="/preferences", tags=["preferences"])


async def _load(service: PreferencesService) -> PreferencesResponse:
    preferences, servings_map = await asyncio.gather(
        service.load_preferences(), service.load_servings_map()
    )
    return PreferencesResponse(
        hideBuiltInRecipes=preferences.hide_built_in_recipes,
        servingsMap=servings_map,
    )


@router.get("/", response_model=PreferencesResponse)
async def get_preferences(
    service: PreferencesService = Depends(get_preferences_service),
) -> PreferencesResponse:
    try:
        return await _load(service)
    except SharingError as exc:
        raise http_error(exc)


@router.put("/", response_model=PreferencesResponse)
async def update_preferences(
    payload: PreferencesUpdate,
    service: PreferencesService = Depends(get_preferences_service),
) -> PreferencesResponse:
    try:
        if payload.hideBuiltInRecipes is not None:
            await service.save_preferences(
                UserPreferences(hide_built_in_recipes=payload.hideBuiltInRecipes)
            )
        if payload.servingsMap is not None:
            await service.save_servings_map(payload.servingsMap)
        return await _load(service)
    except SharingError as exc:
        raise http_error(exc)
