# src/app/schemas/preferences.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class PreferencesResponse(BaseModel):
    hideBuiltInRecipes: bool = False
    servingsMap: dict[str, int] = Field(default_factory=dict)


class PreferencesUpdate(BaseModel):
    hideBuiltInRecipes: Optional[bool] = None
    servingsMap: Optional[dict[str, int]] = None
