"""Pytest configuration.

Ensures the `sage_mcp` package imports from `src/` even without an editable install.
"""

import sys
from pathlib import Path

import pytest


def _prepend_sys_path(path: Path) -> None:
    resolved = str(path.resolve())
    if resolved not in sys.path:
        sys.path.insert(0, resolved)


REPO_ROOT = Path(__file__).resolve().parent

_prepend_sys_path(REPO_ROOT / "src")


SAGE_ENV_VARS = (
    "SAGE_CLIENT_ID",
    "SAGE_CLIENT_SECRET",
    "SAGE_ACCESS_TOKEN",
    "SAGE_REFRESH_TOKEN",
    "SAGE_REGION",
    "SAGE_API_VERSION",
    "SAGE_HTTP_TIMEOUT_SECONDS",
    "SAGE_LOG_LEVEL",
)


@pytest.fixture
def clean_sage_env(monkeypatch, tmp_path):
    """Unset every SAGE_* variable and run from an empty directory (no .env files)."""
    for name in SAGE_ENV_VARS:
        # setenv first so values written by load_env_files() are undone afterwards.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch
