from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.di import build_container
from server.http_app import create_app


@pytest.fixture
def make_settings(tmp_path: Path):
    def _make(**overrides) -> Settings:
        values = {
            "DATA_DIR": tmp_path / "data",
            "STATE_DIR": tmp_path / "state",
            "STATIC_DIR": tmp_path / "no-frontend",
        }
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def container(settings):
    return build_container(settings)


@pytest.fixture
def client(container) -> TestClient:
    return TestClient(create_app(container))
