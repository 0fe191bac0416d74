"""Database schema for the pokedex.

Pokemons and Types are linked many-to-many through PokemonTypes.
Table names match the ones used by the named SQL statements.
"""

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Type(Base):
    """Pokemon type (grass, fire, ...)."""

    __tablename__ = "Types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)


class Pokemon(Base):
    """Pokemon without its type information."""

    __tablename__ = "Pokemons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)


class PokemonType(Base):
    """Link between a pokemon and one of its types.

    Invariant: UNIQUE(pid, tid)
    The surrogate id keeps the insertion order of a pokemon's types.
    """

    __tablename__ = "PokemonTypes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pid: Mapped[int] = mapped_column(Integer, ForeignKey("Pokemons.id"), nullable=False)
    tid: Mapped[int] = mapped_column(Integer, ForeignKey("Types.id"), nullable=False)

    __table_args__ = (UniqueConstraint("pid", "tid", name="uq_pokemon_type"),)
