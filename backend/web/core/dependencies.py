"""FastAPI dependencies resolving services from app state."""

from fastapi import Request

from backend.web.services.generation_service import GenerationService
from backend.web.services.project_service import ProjectService
from backend.web.services.review_service import ReviewService


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def get_project_service(request: Request) -> ProjectService:
    return request.app.state.project_service


def get_review_service(request: Request) -> ReviewService:
    return request.app.state.review_service
