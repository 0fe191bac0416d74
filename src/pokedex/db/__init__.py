"""Database layer: schema, engine, named-statement executor, repository."""
