"""Configuration constants for the Sandcastle web backend."""

import os

DEFAULT_PORT = 8001
HOST = os.environ.get("SANDCASTLE_HOST", "0.0.0.0")  # noqa: S104

# Grace period for background runs on shutdown
SHUTDOWN_GRACE_SEC = 5.0


def resolve_port() -> int:
    """Resolve backend port: SANDCASTLE_PORT > PORT > 8001."""
    port = os.environ.get("SANDCASTLE_PORT") or os.environ.get("PORT")
    if port:
        return int(port)
    return DEFAULT_PORT
