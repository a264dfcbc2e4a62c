from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient

import booklab.core.security as security
from booklab.core.config import get_settings
from booklab.main import app
from booklab.services.repository import get_repository
from booklab.services.store import InMemoryRepository


@pytest.fixture
def store() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def client(store: InMemoryRepository) -> TestClient:
    os.environ["BOOKLAB_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["BOOKLAB_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    app.dependency_overrides[get_repository] = lambda: store

    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    os.environ.pop("BOOKLAB_SUPABASE_URL", None)
    os.environ.pop("BOOKLAB_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()


@pytest.fixture
def sign_in(monkeypatch: pytest.MonkeyPatch) -> Callable[[str], dict[str, str]]:
    """Return a helper mapping a user id to bearer headers accepted by the fake Supabase lookup."""
    tokens: dict[str, str] = {}

    async def _fake_fetch(*, token: str, **_: Any) -> dict[str, Any]:
        return {"id": tokens[token], "app_metadata": {}}

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)

    def _headers(user_id: str) -> dict[str, str]:
        token = f"token-{user_id}"
        tokens[token] = user_id
        return {"Authorization": f"Bearer {token}"}

    return _headers
