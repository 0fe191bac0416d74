"""Aggregation module: pokemons joined with their type names.

Reads pokemons from a primary query, fans out one type lookup per pokemon
and assembles the documents once every lookup has completed.
"""

from pokedex.aggregation.aggregator import (
    Aggregation,
    AggregationError,
    AggregationTimeout,
    PrimaryQueryFailure,
    SecondaryQueryFailure,
    aggregate,
)

__all__ = [
    "Aggregation",
    "AggregationError",
    "AggregationTimeout",
    "PrimaryQueryFailure",
    "SecondaryQueryFailure",
    "aggregate",
]
