"""Pokedex: pokemon records joined with their types, served as JSON."""

__version__ = "0.1.0"
