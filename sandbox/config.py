"""Sandbox configuration.

Priority: SANDBOX_FORCED_URL env (forces the local provider) > configured provider > "e2b" (default)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class E2BConfig(BaseModel):
    api_key: str | None = None
    lifetime: int = Field(3600, gt=0, description="Sandbox lifetime in seconds")


class LocalConfig(BaseModel):
    root: str = str(Path.home() / ".sandcastle" / "local-sandbox")


class SandboxConfig(BaseModel):
    provider: str = "e2b"
    image: str = "sandbox/codegen-sandbox:latest"
    # @@@ forced-url - when set, sandboxes are local and this address is the cache key
    forced_url: str | None = None
    app_dir: str = "/app"
    preview_port: int = 4321
    terminal_port: int = 7681
    memory_mb: int = 8192
    create_timeout: float = Field(300.0, gt=0, description="Upper bound for create + readiness wait")
    label: str = "sandcastle"
    e2b: E2BConfig = Field(default_factory=E2BConfig)
    local: LocalConfig = Field(default_factory=LocalConfig)

    @property
    def is_local(self) -> bool:
        return bool(self.forced_url) or self.provider == "local"
