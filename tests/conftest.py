from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from promptpilot_api.app.config import Settings, get_settings

from memory_storage import InMemoryPromptStorage


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Never reach a real model or database from unit tests.
    for name in (
        "OPENAI_API_KEY",
        "DATABASE_URL",
        "PROMPTPILOT_OPENAI_API_KEY",
        "PROMPTPILOT_DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, default_owner_id="local-user")


@pytest.fixture
def storage() -> InMemoryPromptStorage:
    return InMemoryPromptStorage()


@pytest.fixture
def client(storage: InMemoryPromptStorage, settings: Settings) -> TestClient:
    from promptpilot_api.main import create_app

    app = create_app(storage=storage, settings_override=settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seed_prompt(client: TestClient):
    def _seed(title: str, content: str, *, owner: str | None = None, **extra) -> dict:
        headers = {"X-Owner-Id": owner} if owner else {}
        response = client.post(
            "/prompts",
            json={"title": title, "content": content, **extra},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _seed
