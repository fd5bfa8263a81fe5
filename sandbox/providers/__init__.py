"""Sandbox provider implementations."""

from sandbox.providers.e2b import E2BProvider
from sandbox.providers.local import LocalProvider

__all__ = ["E2BProvider", "LocalProvider"]
