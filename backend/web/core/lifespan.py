"""Application lifespan management."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.web.core.config import SHUTDOWN_GRACE_SEC
from backend.web.services.generation_service import GenerationService
from backend.web.services.project_service import ProjectService
from backend.web.services.review_service import ReviewService
from config.loader import load_settings
from core.generation.capability import LangChainCapability
from core.generation.loop import GenerationLoop
from core.generation.prompts import app_builder_prompt
from core.review.github import GitHubClient
from core.review.runner import ReviewRunner
from sandbox import build_provider
from sandbox.cache import SandboxCache
from sandbox.state_store import SessionStateStore
from storage.project_store import SQLiteProjectStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown.

    Pre-set app.state.settings / provider / capability / github replace the
    defaults (used by tests and embedders).
    """
    settings = getattr(app.state, "settings", None) or load_settings()
    provider = getattr(app.state, "provider", None) or build_provider(settings.sandbox)
    capability = getattr(app.state, "capability", None) or LangChainCapability(settings.model)
    github = getattr(app.state, "github", None) or GitHubClient(
        settings.review.github_token, settings.review.github_api_url
    )

    cache = SandboxCache(provider.get, ttl=settings.cache.ttl, sweep_interval=settings.cache.sweep_interval)
    projects = SQLiteProjectStore(settings.store.db_path)
    state_store = SessionStateStore(settings.generation.state_path)
    loop = GenerationLoop(
        capability,
        state_store,
        settings.generation,
        system_prompt=app_builder_prompt(settings.sandbox.app_dir),
    )

    app.state.settings = settings
    app.state.provider = provider
    app.state.sandbox_cache = cache
    app.state.projects = projects
    app.state.generation_service = GenerationService(provider, cache, loop, projects, settings)
    app.state.project_service = ProjectService(provider, cache, projects, state_store, settings)
    app.state.review_service = ReviewService(ReviewRunner(provider, capability, github, settings))

    logger.info("Sandcastle started (provider=%s)", provider.name)
    try:
        cache.start()
        yield
    finally:
        await app.state.generation_service.shutdown(SHUTDOWN_GRACE_SEC)
        await app.state.review_service.shutdown(SHUTDOWN_GRACE_SEC)
        await cache.stop()
        cache.clear()
        projects.close()
