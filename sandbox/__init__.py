"""Sandbox: infrastructure layer for remote execution environments.

Usage:
    from sandbox import build_provider, SandboxCache

    provider = build_provider(settings.sandbox)
    cache = SandboxCache(provider.get, ttl=settings.cache.ttl)
    handle = await cache.resolve(sandbox_id, provider.forced_url)
"""

from __future__ import annotations

from sandbox.base import ProcessResult, SandboxHandle, TerminalSession
from sandbox.cache import SandboxCache, cache_key
from sandbox.config import SandboxConfig
from sandbox.provider import SandboxProvider, SandboxSpec, new_sandbox_id


def build_provider(config: SandboxConfig) -> SandboxProvider:
    """Factory: create a SandboxProvider from config.

    A forced URL always selects the local provider.
    """
    if config.is_local:
        from sandbox.providers.local import LocalProvider

        return LocalProvider(
            root=config.local.root,
            forced_url=config.forced_url,
            preview_port=config.preview_port,
        )

    if config.provider == "e2b":
        from sandbox.providers.e2b import E2BProvider

        return E2BProvider(
            api_key=config.e2b.api_key,
            lifetime=config.e2b.lifetime,
            preview_port=config.preview_port,
            terminal_port=config.terminal_port,
            label=config.label,
        )

    raise ValueError(f"Unknown sandbox provider: {config.provider}")


__all__ = [
    "ProcessResult",
    "SandboxCache",
    "SandboxConfig",
    "SandboxHandle",
    "SandboxProvider",
    "SandboxSpec",
    "TerminalSession",
    "build_provider",
    "cache_key",
    "new_sandbox_id",
]
