# src/app/main.py
from __future__ import annotations
import logging
import sys
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.app.config import settings
from src.app.deps import shutdown_store
from src.app.routers.auth import router as auth_router
from src.app.routers.collections import router as collections_router
from src.app.routers.discover import router as discover_router
from src.app.routers.preferences import router as preferences_router
from src.app.routers.recipes import router as recipes_router

# Plain stdout logging (dev and containers)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

app = FastAPI(title="Recipe Sharing API", version="0.3.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(recipes_router)
app.include_router(collections_router)
app.include_router(discover_router)
app.include_router(preferences_router)


@app.on_event("shutdown")
async def shutdown() -> None:
    await shutdown_store()


@app.get("/health")
def health():
    return {"ok": True}
