"""Options API routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from swiper.dependencies import get_config_service
from swiper.services.config_service import ConfigService

router = APIRouter(tags=["config"])


@router.get("/api/options")
async def get_options(cfg: ConfigService = Depends(get_config_service)):
    return cfg.options


@router.post("/api/options")
async def update_options(request: Request, cfg: ConfigService = Depends(get_config_service)):
    try:
        data = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})
    if not isinstance(data, dict):
        return JSONResponse(status_code=400, content={"error": "Expected a JSON object"})
    try:
        options = cfg.update_options(data)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return {"status": "ok", "options": options}
