"""Shared pytest fixtures for pokedex tests."""

import pytest

from pokedex.config import PokedexSettings, load_settings
from pokedex.db.executor import SqlQueryExecutor
from pokedex.db.seed import init_data
from pokedex.db.session import create_schema, dispose_engines, get_engine


@pytest.fixture(autouse=True)
def _dispose_engines():
    """Dispose engines cached during the test."""
    yield
    dispose_engines()


@pytest.fixture
def settings(tmp_path) -> PokedexSettings:
    """Packaged settings pointing at a SQLite file in tmp_path."""
    defaults = load_settings()
    database = defaults.database.model_copy(update={"url": f"sqlite:///{tmp_path / 'pokedex.db'}"})
    return defaults.model_copy(update={"database": database})


@pytest.fixture
def engine(settings):
    """Create a file-backed SQLite engine with the schema in place."""
    engine = get_engine(settings.database.url)
    create_schema(engine)
    return engine


@pytest.fixture
def executor(engine, settings):
    """Named-statement executor over the test engine."""
    return SqlQueryExecutor(engine, settings.database.statements)


@pytest.fixture
def seeded(executor, settings):
    """Executor over a database populated with the packaged sample data."""
    init_data(executor, settings.bootstrap)
    return executor
