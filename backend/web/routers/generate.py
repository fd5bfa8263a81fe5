"""App generation endpoint (newline-delimited JSON stream)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.web.core.dependencies import get_generation_service
from backend.web.models.requests import GenerateRequest
from backend.web.services.generation_service import GenerationInProgressError, GenerationService
from backend.web.services.stream_channel import ndjson_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generate"])


@router.post("/generate")
async def generate(
    payload: GenerateRequest,
    service: Annotated[GenerationService, Depends(get_generation_service)],
):
    """Create or update an app; progress streams as one JSON object per line."""
    if not payload.prompt or not payload.prompt.strip():
        return JSONResponse({"error": "Prompt is required"}, status_code=400)
    try:
        channel = service.start(payload.prompt, payload.sandbox_id)
    except GenerationInProgressError as e:
        return JSONResponse({"error": e.message}, status_code=409)
    return ndjson_response(channel)
