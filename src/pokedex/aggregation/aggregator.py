"""Fan-out aggregation of pokemons and their types.

For each pokemon delivered by the primary sequence one secondary lookup is
dispatched to a thread pool. The aggregation waits for the whole set of
lookups and produces the documents exactly once.

Architecture:
- Aggregation: state of a single request (futures, completed documents)
- aggregate(): convenience wrapper building and running an Aggregation
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable, Mapping
from concurrent.futures import ALL_COMPLETED, FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any

from pokedex.config import SecondaryFailurePolicy
from pokedex.db.executor import QueryExecutor
from pokedex.models.domain import PokemonDocument, PokemonRecord

logger = logging.getLogger(__name__)

TYPE_NAMES_QUERY = "select-type-name-by-pokemon-id"


class AggregationError(Exception):
    """Base class for aggregation failures."""


class PrimaryQueryFailure(AggregationError):
    """The primary sequence raised before it was exhausted."""


class SecondaryQueryFailure(AggregationError):
    """The type lookup of one pokemon failed."""

    def __init__(self, parent_id: int, message: str):
        super().__init__(message)
        self.parent_id = parent_id


class AggregationTimeout(AggregationError):
    """The aggregation did not complete within its time limit."""


class Aggregation:
    """A single aggregation request.

    Completed documents are appended under one lock; once the aggregation
    has finished (successfully or not) late completions are discarded.

    Usage:
        aggregation = Aggregation(executor, max_concurrency=4)
        documents = aggregation.run(executor.stream_query("select-all-pokemons"))
    """

    def __init__(
        self,
        executor: QueryExecutor,
        *,
        query_id: str = TYPE_NAMES_QUERY,
        max_concurrency: int | None = None,
        secondary_failure: SecondaryFailurePolicy = "fail",
        preserve_order: bool = True,
        timeout: float | None = None,
    ):
        """Initialize aggregation.

        Args:
            executor: Executor running the secondary lookups.
            query_id: Named query returning type names for a pokemon id.
            max_concurrency: Maximum lookups in flight. None dispatches every
                row as soon as it is read.
            secondary_failure: "fail" or "skip" (see AggregationSettings).
            preserve_order: Sort documents by primary position.
            timeout: Seconds before AggregationTimeout is raised.
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        if secondary_failure not in ("fail", "skip"):
            raise ValueError(f"Unknown secondary failure policy: {secondary_failure}")

        self.executor = executor
        self.query_id = query_id
        self.max_concurrency = max_concurrency
        self.secondary_failure = secondary_failure
        self.preserve_order = preserve_order
        self.timeout = timeout

        self._lock = threading.Lock()
        self._slots = (
            threading.BoundedSemaphore(max_concurrency) if max_concurrency is not None else None
        )
        self._completed: list[tuple[int, PokemonDocument]] = []
        self._pending = 0
        self._failure: SecondaryQueryFailure | None = None
        self._closed = False
        self._started = False

    @property
    def pending(self) -> int:
        """Number of dispatched lookups that have not completed yet."""
        with self._lock:
            return self._pending

    @property
    def completed(self) -> int:
        """Number of documents recorded so far."""
        with self._lock:
            return len(self._completed)

    @property
    def closed(self) -> bool:
        """True once the aggregation has produced its result or failed."""
        with self._lock:
            return self._closed

    def run(
        self, primary_rows: Iterable[Mapping[str, Any] | PokemonRecord]
    ) -> list[PokemonDocument]:
        """Consume the primary sequence and return the aggregated documents.

        Args:
            primary_rows: Pokemon rows (mappings with id and name) or records.

        Returns:
            One document per primary row.

        Raises:
            PrimaryQueryFailure: The primary sequence raised.
            SecondaryQueryFailure: A lookup failed and the policy is "fail".
            AggregationTimeout: The time limit was exceeded.
            RuntimeError: The aggregation was already run.
        """
        with self._lock:
            if self._started:
                raise RuntimeError("Aggregation can only be run once")
            self._started = True

        deadline = time.monotonic() + self.timeout if self.timeout is not None else None
        pool = ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="pokedex-lookup"
        )
        futures: list[Future[None]] = []
        try:
            self._dispatch_all(pool, primary_rows, futures, deadline)
            self._wait_all(futures, deadline)
            return self._finalize()
        finally:
            with self._lock:
                self._closed = True
            # In-flight lookups keep running; their results are discarded
            pool.shutdown(wait=False)

    def _dispatch_all(
        self,
        pool: ThreadPoolExecutor,
        primary_rows: Iterable[Mapping[str, Any] | PokemonRecord],
        futures: list[Future[None]],
        deadline: float | None,
    ) -> None:
        """Read the primary sequence and submit one lookup per row."""
        rows = iter(primary_rows)
        position = 0
        try:
            while True:
                try:
                    row = next(rows)
                    record = row if isinstance(row, PokemonRecord) else PokemonRecord.from_row(row)
                except StopIteration:
                    break
                except Exception as e:
                    raise PrimaryQueryFailure(
                        f"Primary query failed after {position} rows: {e}"
                    ) from e

                self._raise_if_failed()
                self._acquire_slot(deadline)
                with self._lock:
                    self._pending += 1
                futures.append(pool.submit(self._lookup, position, record))
                position += 1
        finally:
            close = getattr(rows, "close", None)
            if close is not None:
                close()

        logger.debug(f"Primary sequence exhausted after {position} rows")

    def _acquire_slot(self, deadline: float | None) -> None:
        if self._slots is None:
            return
        if deadline is None:
            self._slots.acquire()
            return
        if not self._slots.acquire(timeout=max(deadline - time.monotonic(), 0)):
            raise AggregationTimeout(f"Aggregation exceeded {self.timeout}s while dispatching")

    def _raise_if_failed(self) -> None:
        with self._lock:
            failure = self._failure
        if failure is not None:
            raise failure

    def _lookup(self, position: int, record: PokemonRecord) -> None:
        """Fetch type names of one pokemon and record the document."""
        try:
            try:
                rows = self.executor.run_query(self.query_id, record.id)
                types = tuple(str(row["name"]) for row in rows)
            except Exception as e:
                if self.secondary_failure == "fail":
                    failure = SecondaryQueryFailure(
                        record.id, f"Type lookup failed for pokemon {record.id}: {e}"
                    )
                    with self._lock:
                        if self._failure is None:
                            self._failure = failure
                    raise failure from e
                logger.warning(f"Type lookup failed for pokemon {record.id}, skipping: {e}")
                types = ()

            document = PokemonDocument(id=record.id, name=record.name, types=types)
            with self._lock:
                if not self._closed:
                    self._completed.append((position, document))
        finally:
            with self._lock:
                self._pending -= 1
            if self._slots is not None:
                self._slots.release()

    def _wait_all(self, futures: list[Future[None]], deadline: float | None) -> None:
        """Wait for every dispatched lookup, failing on the first error when configured."""
        if not futures:
            return

        remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
        return_when = FIRST_EXCEPTION if self.secondary_failure == "fail" else ALL_COMPLETED
        done, not_done = wait(futures, timeout=remaining, return_when=return_when)

        if any(future.exception() is not None for future in done):
            # Report the first failure recorded, not an arbitrary one
            self._raise_if_failed()

        if not_done:
            raise AggregationTimeout(
                f"Aggregation exceeded {self.timeout}s with {len(not_done)} lookups pending"
            )

    def _finalize(self) -> list[PokemonDocument]:
        with self._lock:
            self._closed = True
            completed = list(self._completed)

        if self.preserve_order:
            completed.sort(key=lambda item: item[0])

        logger.debug(f"Aggregated {len(completed)} documents")
        return [document for _, document in completed]


def aggregate(
    executor: QueryExecutor,
    primary_rows: Iterable[Mapping[str, Any] | PokemonRecord],
    **options: Any,
) -> list[PokemonDocument]:
    """Join every primary row with its type names.

    Args:
        executor: Executor running the secondary lookups.
        primary_rows: Pokemon rows or records, consumed lazily.
        **options: Keyword arguments of Aggregation.

    Returns:
        One PokemonDocument per primary row.
    """
    return Aggregation(executor, **options).run(primary_rows)
