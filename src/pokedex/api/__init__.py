"""API module for the pokedex.

- Validates inputs, reads/writes through the repository
- Returns JSON payloads
- Forbidden: SQL text, schema handling outside the application lifespan
"""
