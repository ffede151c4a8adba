from __future__ import annotations

from datetime import UTC, datetime

import pytest


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 10, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _no_env_tokens(monkeypatch):
    """Keep real GITHUB_TOKEN / EXPO_TOKEN from leaking into settings."""
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("EXPO_TOKEN", raising=False)
