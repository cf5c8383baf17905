"""API router initialization."""

from fastapi import APIRouter

from cadence.api.routers import playlists, search, sync

# Mounted at /api in main.py
api_router = APIRouter()

api_router.include_router(sync.router, prefix="/sync", tags=["Sync"])
api_router.include_router(search.router, tags=["Search"])
api_router.include_router(playlists.router, prefix="/playlists", tags=["Playlists"])

__all__ = ["api_router"]
