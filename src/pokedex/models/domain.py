"""Domain models for the pokedex.

Pure Python dataclasses, independent of SQLAlchemy and of the wire format.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PokemonRecord:
    """A pokemon row as read by the primary query (no type information)."""

    id: int
    name: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> PokemonRecord:
        """Build a record from a row mapping with id and name columns."""
        return cls(id=int(row["id"]), name=str(row["name"]))


@dataclass(frozen=True)
class TypeRecord:
    """A pokemon type."""

    id: int
    name: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> TypeRecord:
        return cls(id=int(row["id"]), name=str(row["name"]))


@dataclass(frozen=True)
class PokemonDocument:
    """A pokemon joined with the names of its types.

    Types keep the order returned by the type lookup.
    """

    id: int
    name: str
    types: tuple[str, ...] = field(default_factory=tuple)

    def to_json(self) -> dict[str, Any]:
        """Wire representation; the type list is published as "type"."""
        return {"id": self.id, "name": self.name, "type": list(self.types)}
