"""
Abstract sandbox provider interface.

All sandbox backends (E2B, local) implement this interface.
"""

from __future__ import annotations

import random
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from sandbox.base import SandboxHandle

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_sandbox_id(prefix: str = "app") -> str:
    """Sandbox identifier: <prefix>-<epoch millis>-<9 base36 chars>."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))  # noqa: S311
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


@dataclass
class SandboxSpec:
    """What to provision."""

    name: str
    image: str
    memory_mb: int = 8192
    envs: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    ports: list[int] = field(default_factory=list)


@dataclass
class SandboxSummary:
    """Listing entry for a provisioned sandbox."""

    sandbox_id: str
    status: str
    created_at: str | None = None
    labels: dict[str, str] = field(default_factory=dict)


class SandboxProvider(ABC):
    """
    Abstract interface for sandbox providers.

    Implementations:
    - E2BProvider: E2B cloud sandbox
    - LocalProvider: directories on the host, used when a forced URL is configured
    """

    name: str  # Provider identifier: 'e2b', 'local'

    @property
    def forced_url(self) -> str | None:
        """Override connection address used as the cache key, if any."""
        return None

    @abstractmethod
    async def create(self, spec: SandboxSpec) -> SandboxHandle:
        """Provision a new sandbox."""
        ...

    @abstractmethod
    async def get(self, sandbox_id: str) -> SandboxHandle:
        """Connect to an existing sandbox. Raises SandboxNotFoundError."""
        ...

    @abstractmethod
    async def delete(self, sandbox_id: str) -> bool:
        """Delete a sandbox. Returns False if it was already gone."""
        ...

    @abstractmethod
    async def list(self) -> list[SandboxSummary]:
        """List sandboxes carrying this deployment's label."""
        ...

    async def wait_ready(self, handle: SandboxHandle, timeout: float) -> None:
        """Block until the sandbox accepts filesystem/process calls. Default: ready on create."""
        pass
