"""Pytest configuration for Sandcastle tests.

Ensures the project root and the tests directory are in sys.path so that
project packages and the shared ``fakes`` helpers import correctly.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
tests_dir = Path(__file__).parent
for path in (project_root, tests_dir):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from config.schema import AppSettings  # noqa: E402


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    """Settings with fast poller/cache timings and an isolated project database."""
    return AppSettings.model_validate(
        {
            "sandbox": {"provider": "e2b", "label": "sandcastle-test"},
            "cache": {"ttl": 300, "sweep_interval": 60},
            "generation": {"max_steps": 50, "overall_timeout": 5},
            "poller": {"max_attempts": 10, "poll_interval": 0, "max_wait": 1},
            "store": {"db_path": str(tmp_path / "projects.db")},
        }
    )
