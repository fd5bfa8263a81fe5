"""Settings loader.

Configuration priority (highest to lowest):
1. Explicit overrides (tests, CLI)
2. Environment variables (API keys, forced sandbox URL, ...)
3. User config (~/.sandcastle/settings.json)
4. System defaults (config/defaults/settings.json)
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from config.schema import AppSettings

logger = logging.getLogger(__name__)

# env var -> dotted settings path
ENV_BINDINGS: dict[str, str] = {
    "ANTHROPIC_API_KEY": "model.api_key",
    "SANDCASTLE_MODEL": "model.name",
    "E2B_API_KEY": "sandbox.e2b.api_key",
    "SANDBOX_IMAGE": "sandbox.image",
    "SANDBOX_FORCED_URL": "sandbox.forced_url",
    "SANDBOX_PROVIDER": "sandbox.provider",
    "GITHUB_TOKEN": "review.github_token",
    "SANDCASTLE_DB_PATH": "store.db_path",
}


class SettingsLoader:
    """Three-tier settings merge plus environment bindings."""

    def __init__(self, user_dir: str | Path | None = None, environ: dict[str, str] | None = None):
        self.user_dir = Path(user_dir) if user_dir else Path.home() / ".sandcastle"
        self.environ = os.environ if environ is None else environ
        self._system_defaults_dir = Path(__file__).parent / "defaults"

    def load(self, overrides: dict[str, Any] | None = None) -> AppSettings:
        merged = self._deep_merge(
            self._load_json(self._system_defaults_dir / "settings.json"),
            self._load_json(self.user_dir / "settings.json"),
            self._env_config(),
            overrides or {},
        )
        return AppSettings.model_validate(merged)

    def _env_config(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for var, dotted in ENV_BINDINGS.items():
            value = self.environ.get(var)
            if not value:
                continue
            node = result
            *parents, leaf = dotted.split(".")
            for part in parents:
                node = node.setdefault(part, {})
            node[leaf] = value
        return result

    @staticmethod
    def _load_json(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ValueError(f"Invalid settings file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid settings file {path}: expected a JSON object")
        return data

    def _deep_merge(self, *dicts: dict[str, Any]) -> dict[str, Any]:
        """Deep merge multiple dictionaries. Later dicts override earlier ones."""
        result: dict[str, Any] = {}
        for d in dicts:
            for key, value in d.items():
                if key not in result:
                    result[key] = value
                elif value is None:
                    continue
                elif isinstance(value, dict) and isinstance(result[key], dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = value
        return result


def load_settings(overrides: dict[str, Any] | None = None) -> AppSettings:
    """Load settings from defaults, user file, environment and overrides."""
    settings = SettingsLoader().load(overrides)
    logger.debug("Settings loaded (sandbox provider=%s)", settings.sandbox.provider)
    return settings
