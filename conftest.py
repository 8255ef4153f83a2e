"""
Repository-level pytest configuration (showcase-safe).

Why this exists:
  - Provide safe defaults so the suite runs against the in-memory stub API
    out of the box (no secrets embedded)
  - Keep behavior explicit and discoverable

Important:
  Values below are placeholders. Point BASE_URL / API_BASE_URL at a real
  deployment and set API_TARGET=live to exercise a live API; real projects
  should load credentials from a secure secret manager in CI/CD.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator

import pytest


DEMO_SAFE_DEFAULTS = {
    "BASE_URL": "http://localhost:3000",
    "API_BASE_URL": "http://localhost:3000/api",
    "AUTH_BASE_URL": "http://localhost:3000/api/auth",
    "USERS_BASE_URL": "http://localhost:3000/api/users",
    "NODE_ENV": "test",
}


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return repo root path."""
    return Path(__file__).parent


@pytest.fixture(scope="session", autouse=True)
def _demo_safe_env_defaults() -> Generator[None, None, None]:
    """
    Set demo-safe environment defaults if not already provided by the user/CI.

    This keeps local runs predictable and never overrides real configuration.
    """
    for k, v in DEMO_SAFE_DEFAULTS.items():
        os.environ.setdefault(k, v)

    yield
