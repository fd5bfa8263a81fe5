"""Core configuration schema for Sandcastle using Pydantic.

Nested config groups:
- model      → chat model used by the generation loop
- sandbox    → provider selection and sandbox shape
- cache      → compute handle cache TTL and sweep cadence
- generation → step bound, timeouts, state document path, tool allow-list
- poller     → bounded retry policy for remote processes
- review     → pull-request review flow
- store      → project record store
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from sandbox.config import SandboxConfig

# Default model used across the codebase
DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"

DEFAULT_TOOLS = ["fsReadFile", "fsWriteFile", "fsListDirectory", "processExecute"]


class ModelConfig(BaseModel):
    """Chat model configuration (passed to init_chat_model)."""

    name: str = Field(DEFAULT_MODEL, description="provider:model identifier")
    api_key: str | None = Field(None, description="API key (falls back to env vars)")
    max_tokens: int = Field(8000, gt=0, description="Max tokens per model call")
    temperature: float | None = Field(None, ge=0.0, le=2.0, description="Temperature")


class CacheConfig(BaseModel):
    ttl: float = Field(300.0, gt=0, description="Evict handles idle longer than this (seconds)")
    sweep_interval: float = Field(60.0, gt=0, description="Sweep cadence (seconds)")


class GenerationConfig(BaseModel):
    max_steps: int = Field(50, gt=0, description="Upper bound on AI steps per run")
    overall_timeout: float = Field(600.0, gt=0, description="Upper bound on one run (seconds)")
    process_wait: float = Field(600.0, gt=0, description="Upper bound on one tool process (seconds)")
    state_path: str = Field("/state.json", description="Session state document inside the sandbox")
    allowed_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_TOOLS))


class PollerConfig(BaseModel):
    max_attempts: int = Field(10, gt=0)
    poll_interval: float = Field(0.5, ge=0)
    max_wait: float = Field(60.0, gt=0, description="Remote wait bound per attempt (seconds)")
    jitter: float = Field(0.0, ge=0, le=1.0, description="Random fraction added to poll_interval")


class ReviewConfig(BaseModel):
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    image: str = "sandbox/custom-sandbox:latest"
    repository_dir: str = "/app/repository"
    clone_process: str = "clone-repository"


class StoreConfig(BaseModel):
    db_path: str = str(Path.home() / ".sandcastle" / "projects.db")


class AppSettings(BaseModel):
    """Main Sandcastle configuration.

    Configuration priority (highest to lowest):
    1. Explicit overrides
    2. Environment variables
    3. User config (~/.sandcastle/settings.json)
    4. System defaults (config/defaults/settings.json)
    """

    model: ModelConfig = Field(default_factory=ModelConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
