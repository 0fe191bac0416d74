"""Repository functions over named statements.

Encapsulates which statement serves which operation and returns domain
models (not raw rows) to external callers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from sqlalchemy.exc import IntegrityError

from pokedex.aggregation import aggregate
from pokedex.config import AggregationSettings
from pokedex.db.executor import QueryExecutor, Row
from pokedex.models.domain import PokemonDocument, PokemonRecord, TypeRecord

logger = logging.getLogger(__name__)


class PokemonExistsError(ValueError):
    """A pokemon with the same id is already stored."""


class UnknownTypeError(ValueError):
    """A referenced type id does not exist."""

    def __init__(self, type_ids: list[int]):
        super().__init__(f"Unknown type ids: {type_ids}")
        self.type_ids = type_ids


def _aggregate_options(settings: AggregationSettings | None) -> dict:
    settings = settings or AggregationSettings()
    return {
        "max_concurrency": settings.max_concurrency,
        "secondary_failure": settings.secondary_failure,
        "preserve_order": settings.preserve_order,
        "timeout": settings.timeout_seconds,
    }


# ============================================================================
# Type Repository
# ============================================================================


def list_types(executor: QueryExecutor) -> list[TypeRecord]:
    """Get all types."""
    return [TypeRecord.from_row(row) for row in executor.run_query("select-all-types")]


def missing_type_ids(executor: QueryExecutor, type_ids: list[int]) -> list[int]:
    """Return the ids in type_ids that are not stored, in request order."""
    return [tid for tid in type_ids if not executor.run_query("select-type-by-id", tid)]


def insert_type(executor: QueryExecutor, record: TypeRecord) -> None:
    """Insert one type."""
    executor.run_statement("insert-type", record.id, record.name)


# ============================================================================
# Pokemon Repository
# ============================================================================


def _fetched_rows(executor: QueryExecutor, name: str, *params: Any) -> Iterator[Row]:
    # Whole result is read on first access; the connection is back in the
    # pool before any lookup waits for a concurrency slot
    yield from executor.run_query(name, *params)


def list_pokemons(
    executor: QueryExecutor, settings: AggregationSettings | None = None
) -> list[PokemonDocument]:
    """Get all pokemons with their type names.

    A failed primary query is reported by the aggregation as
    PrimaryQueryFailure.
    """
    rows = _fetched_rows(executor, "select-all-pokemons")
    return aggregate(executor, rows, **_aggregate_options(settings))


def get_pokemon(
    executor: QueryExecutor, pokemon_id: int, settings: AggregationSettings | None = None
) -> PokemonDocument | None:
    """Get pokemon by ID."""
    rows = executor.run_query("select-pokemon-by-id", pokemon_id)
    documents = aggregate(executor, rows, **_aggregate_options(settings))
    return documents[0] if documents else None


def get_pokemon_by_name(
    executor: QueryExecutor, name: str, settings: AggregationSettings | None = None
) -> PokemonDocument | None:
    """Get pokemon by name."""
    rows = executor.run_query("select-pokemon-by-name", name)
    documents = aggregate(executor, rows, **_aggregate_options(settings))
    return documents[0] if documents else None


def pokemon_exists(executor: QueryExecutor, pokemon_id: int) -> bool:
    return bool(executor.run_query("select-pokemon-by-id", pokemon_id))


def _link_types(executor: QueryExecutor, pokemon_id: int, type_ids: list[int]) -> None:
    # dict.fromkeys drops duplicates but keeps order
    for tid in dict.fromkeys(type_ids):
        executor.run_statement("insert-poke-types", pokemon_id, tid)


def create_pokemon(executor: QueryExecutor, record: PokemonRecord, type_ids: list[int]) -> None:
    """Create a new pokemon linked to the given types.

    The checks, the insert and the links run in one transaction. A
    concurrent insert of the same id surfaces as an IntegrityError from the
    primary key and is reported like the explicit check.

    Raises:
        PokemonExistsError: If the id is taken.
        UnknownTypeError: If a type id does not exist.
    """
    try:
        with executor.transaction() as tx:
            if pokemon_exists(tx, record.id):
                raise PokemonExistsError(f"Pokemon already exists: {record.id}")
            missing = missing_type_ids(tx, type_ids)
            if missing:
                raise UnknownTypeError(missing)

            tx.run_statement("insert-pokemon", record.id, record.name)
            _link_types(tx, record.id, type_ids)
    except IntegrityError as e:
        raise PokemonExistsError(f"Pokemon already exists: {record.id}") from e
    logger.info(f"Created pokemon {record.id} ({record.name})")


def update_pokemon(executor: QueryExecutor, record: PokemonRecord, type_ids: list[int]) -> bool:
    """Replace name and types of an existing pokemon.

    Runs in one transaction: on failure the old name and links are kept.

    Returns:
        False if the pokemon does not exist.

    Raises:
        UnknownTypeError: If a type id does not exist.
    """
    with executor.transaction() as tx:
        if not pokemon_exists(tx, record.id):
            return False
        missing = missing_type_ids(tx, type_ids)
        if missing:
            raise UnknownTypeError(missing)

        tx.run_statement("update-pokemon", record.name, record.id)
        tx.run_statement("delete-poke-types-by-pokemon-id", record.id)
        _link_types(tx, record.id, type_ids)
    logger.info(f"Updated pokemon {record.id} ({record.name})")
    return True


def delete_pokemon(executor: QueryExecutor, pokemon_id: int) -> bool:
    """Delete a pokemon and its type links.

    Returns:
        False if the pokemon does not exist.
    """
    with executor.transaction() as tx:
        tx.run_statement("delete-poke-types-by-pokemon-id", pokemon_id)
        deleted = tx.run_statement("delete-pokemon", pokemon_id)
    if deleted:
        logger.info(f"Deleted pokemon {pokemon_id}")
    return deleted > 0


def delete_all(executor: QueryExecutor) -> None:
    """Delete all rows (links first)."""
    with executor.transaction() as tx:
        tx.run_statement("delete-all-poke-types")
        tx.run_statement("delete-all-pokemons")
        tx.run_statement("delete-all-types")
