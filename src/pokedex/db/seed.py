"""Schema initialization and sample data.

Source data files are JSON arrays:

    types.json:    [{"id": <type_id>, "name": <type_name>}, ...]
    pokemons.json: [{"id": <id>, "name": <name>, "type": [<type_id>, ...]}, ...]

Types are inserted before pokemons so that every link refers to a stored type.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from sqlalchemy import Engine

from pokedex.config import BootstrapSettings
from pokedex.db import repo
from pokedex.db.executor import QueryExecutor
from pokedex.db.session import create_schema, drop_schema
from pokedex.models.domain import PokemonRecord, TypeRecord

logger = logging.getLogger(__name__)


def _read_array(path: Path) -> list[dict[str, Any]]:
    """Read a JSON array of objects.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the content is not an array of objects.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError(f"Expected a JSON array of objects in {path}")
    return data


def load_types(executor: QueryExecutor, path: Path) -> int:
    """Insert every type from the types file.

    Returns:
        Number of types inserted.
    """
    count = 0
    for item in _read_array(path):
        repo.insert_type(executor, TypeRecord(id=int(item["id"]), name=str(item["name"])))
        count += 1
    return count


def load_pokemons(executor: QueryExecutor, path: Path) -> int:
    """Insert every pokemon and its type links from the pokemons file.

    Returns:
        Number of pokemons inserted.
    """
    count = 0
    for item in _read_array(path):
        record = PokemonRecord(id=int(item["id"]), name=str(item["name"]))
        type_ids = [int(tid) for tid in item.get("type", [])]
        repo.create_pokemon(executor, record, type_ids)
        count += 1
    return count


def init_data(executor: QueryExecutor, settings: BootstrapSettings) -> None:
    """Populate the database from the configured data files."""
    types = load_types(executor, settings.resolved_types_file)
    pokemons = load_pokemons(executor, settings.resolved_pokemons_file)
    logger.info(f"Database populated with {types} types and {pokemons} pokemons.")


def init_db(engine: Engine, executor: QueryExecutor, settings: BootstrapSettings) -> None:
    """Create schema and populate it with sample data.

    Raises:
        Exception: Whatever the schema creation or data load raised, after logging it.
    """
    try:
        create_schema(engine)
        init_data(executor, settings)
    except Exception as e:
        logger.error(f"Could not initialize database: {e}")
        raise


def reset_db(engine: Engine, executor: QueryExecutor, settings: BootstrapSettings) -> None:
    """Drop existing tables, then create and populate them again."""
    drop_schema(engine)
    init_db(engine, executor, settings)
