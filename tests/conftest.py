from pathlib import Path

import pytest

from planet_sync.config import AppConfig
from planet_sync.engine import Engine
from planet_sync.storage import Database
from planet_sync.workspace import PlainDirectoryRenderer, PlanetWorkspace

from fakes import FakePublisher, mock_client


@pytest.fixture
def db():
    database = Database.in_memory()
    yield database
    database.close()


@pytest.fixture
def make_engine(tmp_path: Path):
    """Build an Engine over an in-memory database and a routed mock client."""

    def _make(routes=None, publisher=None, resolver=None, avatar_updater=None, cfg=None) -> Engine:
        return Engine(
            Database.in_memory(),
            mock_client(routes or {}),
            PlanetWorkspace(tmp_path / "planets"),
            renderer=PlainDirectoryRenderer(),
            publisher=publisher or FakePublisher(),
            name_resolver=resolver,
            avatar_updater=avatar_updater,
            cfg=cfg or AppConfig(),
        )

    return _make
