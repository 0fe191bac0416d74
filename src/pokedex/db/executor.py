"""Named-statement query executor.

Narrow interface over the database: statements are referenced by the name
they are bound to in configuration, parameters are positional.

- QueryExecutor: abstract interface used by the aggregation and repository
- SqlQueryExecutor: implementation over a SQLAlchemy engine
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Connection, Engine

Row = dict[str, Any]


class UnknownStatementError(LookupError):
    """Raised when a statement name is not bound to any SQL."""

    def __init__(self, name: str):
        super().__init__(f"Unknown statement: {name}")
        self.name = name


class QueryExecutor(ABC):
    """Abstract base class for named-statement executors.

    Implementations must accept concurrent submissions from several threads.
    """

    @abstractmethod
    def run_query(self, name: str, *params: Any) -> list[Row]:
        """Run a named query and return all of its rows."""

    @abstractmethod
    def run_statement(self, name: str, *params: Any) -> int:
        """Run a named DML statement and return the affected row count."""

    def stream_query(self, name: str, *params: Any) -> Iterator[Row]:
        """Run a named query and yield its rows one at a time.

        The default implementation materializes the rows first.
        """
        yield from self.run_query(name, *params)

    @contextmanager
    def transaction(self) -> Iterator[QueryExecutor]:
        """Run several statements as one unit of work.

        Yields an executor whose statements commit together when the block
        exits normally and roll back when it raises. The default
        implementation has no atomicity and yields the executor itself.
        """
        yield self


class _ConnectionExecutor(QueryExecutor):
    """Executor bound to one open connection (inside a transaction)."""

    def __init__(self, conn: Connection, statement: Callable[[str], str]):
        self.conn = conn
        self.statement = statement

    def run_query(self, name: str, *params: Any) -> list[Row]:
        result = self.conn.exec_driver_sql(self.statement(name), tuple(params))
        return [dict(row) for row in result.mappings()]

    def run_statement(self, name: str, *params: Any) -> int:
        return self.conn.exec_driver_sql(self.statement(name), tuple(params)).rowcount


class SqlQueryExecutor(QueryExecutor):
    """QueryExecutor over a SQLAlchemy engine.

    Statements are passed to the DBAPI driver as written, so their
    parameter markers must follow the driver's paramstyle (qmark for SQLite).
    """

    def __init__(self, engine: Engine, statements: Mapping[str, str]):
        """Initialize executor.

        Args:
            engine: Engine providing pooled connections.
            statements: Mapping of statement name to literal SQL.
        """
        self.engine = engine
        self.statements = dict(statements)

    def statement(self, name: str) -> str:
        """Look up the SQL bound to a statement name.

        Raises:
            UnknownStatementError: If the name is not configured.
        """
        try:
            return self.statements[name]
        except KeyError:
            raise UnknownStatementError(name) from None

    def run_query(self, name: str, *params: Any) -> list[Row]:
        sql = self.statement(name)
        with self.engine.connect() as conn:
            result = conn.exec_driver_sql(sql, tuple(params))
            return [dict(row) for row in result.mappings()]

    def run_statement(self, name: str, *params: Any) -> int:
        sql = self.statement(name)
        with self.engine.begin() as conn:
            result = conn.exec_driver_sql(sql, tuple(params))
            return result.rowcount

    def stream_query(self, name: str, *params: Any) -> Iterator[Row]:
        # Connection stays checked out until the generator is exhausted or closed
        sql = self.statement(name)
        with self.engine.connect() as conn:
            result = conn.exec_driver_sql(sql, tuple(params))
            for row in result.mappings():
                yield dict(row)

    @contextmanager
    def transaction(self) -> Iterator[QueryExecutor]:
        """Run statements on one connection, committed together on success.

        Example:
            with executor.transaction() as tx:
                tx.run_statement("insert-pokemon", 25, "Pikachu")
                tx.run_statement("insert-poke-types", 25, 13)
        """
        with self.engine.begin() as conn:
            yield _ConnectionExecutor(conn, self.statement)
