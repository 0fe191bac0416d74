"""Pydantic models for the pokedex API.

The pokemon type list is named "type" on the wire even though it is a list.
"""

from pydantic import BaseModel, Field

from pokedex.models.domain import PokemonDocument, TypeRecord


class TypeDetail(BaseModel):
    """A pokemon type."""

    id: int
    name: str

    @classmethod
    def from_record(cls, record: TypeRecord) -> "TypeDetail":
        return cls(id=record.id, name=record.name)


class PokemonDetail(BaseModel):
    """A pokemon with the names of its types."""

    id: int
    name: str
    type: list[str]

    @classmethod
    def from_document(cls, document: PokemonDocument) -> "PokemonDetail":
        return cls(**document.to_json())


class PokemonInput(BaseModel):
    """Request body for creating or updating a pokemon.

    The type list holds type ids, not names.
    """

    id: int
    name: str = Field(min_length=1, max_length=64)
    type: list[int] = Field(default_factory=list)
