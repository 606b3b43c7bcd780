"""Health and version routes."""
from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["health"])

APP_VERSION = "0.4.0"


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/api/version")
async def version():
    return {"current": APP_VERSION}
