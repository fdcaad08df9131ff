from pathlib import Path

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from pagegen.config import AppSettings
from pagegen.db import Database
from pagegen.main import create_app
from tests.fakes import FakeModelRouter


CREDENTIALS = {
    "ANTHROPIC_API_KEY": "test-anthropic",
    "CEREBRAS_API_KEY": "test-cerebras",
    "OPENAI_API_KEY": "",
}


def make_settings(tmp_path: Path, **overrides) -> AppSettings:
    settings = AppSettings(
        model_preset="fast",
        anthropic_api_key="test-anthropic",
        cerebras_api_key="test-cerebras",
        database_path=str(tmp_path / "test.db"),
        host="127.0.0.1",
        port=8000,
        log_level="INFO",
    )
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@pytest.fixture
def app_factory(tmp_path: Path):
    def _factory(
        *,
        fake_router: FakeModelRouter | None = None,
        tools=None,
        config_path: Path | None = None,
        **settings_overrides,
    ):
        settings = make_settings(tmp_path, **settings_overrides)
        model_router = fake_router or FakeModelRouter()
        cfg_path = config_path or (tmp_path / "config.json")
        app = create_app(settings, model_router=model_router, tools=tools, config_path=cfg_path)
        return app, cfg_path, model_router

    return _factory


@pytest.fixture
async def client(app_factory):
    app, config_path, model_router = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.config_path = config_path  # type: ignore[attr-defined]
            http_client.fake_router = model_router  # type: ignore[attr-defined]
            yield http_client


@pytest.fixture
async def db(tmp_path: Path):
    database = Database(str(tmp_path / "pagegen.db"))
    await database.init()
    return database
