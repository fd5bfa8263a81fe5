"""Sandcastle Web Backend - FastAPI Application."""

import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.web.core.config import HOST, resolve_port
from backend.web.core.lifespan import lifespan
from backend.web.routers import generate, projects, reviews
from sandbox.errors import ProcessNotFoundError, SandboxError, SandboxNotFoundError, SandboxTimeoutError

logger = logging.getLogger(__name__)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


async def _not_found(request: Request, exc: Exception) -> JSONResponse:
    message = getattr(exc, "message", None) or str(exc) or "Not found"
    return JSONResponse({"error": message}, status_code=404)


async def _sandbox_error(request: Request, exc: SandboxError) -> JSONResponse:
    status = 504 if isinstance(exc, SandboxTimeoutError) else 500
    return JSONResponse({"error": exc.message}, status_code=status)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": str(exc) or "Internal server error"}, status_code=500)


def create_app(**state) -> FastAPI:
    """Build the application. Keyword arguments pre-seed app.state (settings, provider, capability, github)."""
    app = FastAPI(title="Sandcastle Web Backend", lifespan=lifespan)
    for key, value in state.items():
        setattr(app.state, key, value)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(SandboxNotFoundError, _not_found)
    app.add_exception_handler(ProcessNotFoundError, _not_found)
    app.add_exception_handler(FileNotFoundError, _not_found)
    app.add_exception_handler(SandboxError, _sandbox_error)
    app.add_exception_handler(Exception, _unexpected_error)

    app.include_router(generate.router)
    app.include_router(projects.router)
    app.include_router(reviews.router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # @@@module-launch-target - Package-qualified target keeps `python -m backend.web.main` import-safe.
    uvicorn.run("backend.web.main:app", host=HOST, port=resolve_port(), reload=True)
