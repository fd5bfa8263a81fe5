"""Pull-request review endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.web.core.dependencies import get_review_service
from backend.web.models.requests import ReviewRequest
from backend.web.services.review_service import ReviewService
from backend.web.services.stream_channel import ndjson_response

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


@router.post("")
async def create_review(
    payload: ReviewRequest,
    service: Annotated[ReviewService, Depends(get_review_service)],
):
    if not payload.pr_url:
        return JSONResponse({"error": "prUrl is required"}, status_code=400)
    return ndjson_response(service.start(payload.pr_url))
