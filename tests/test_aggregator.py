"""Tests for the pokemon/type fan-out aggregation."""

import random
import threading
import time

import pytest

from pokedex.aggregation import (
    Aggregation,
    AggregationTimeout,
    PrimaryQueryFailure,
    SecondaryQueryFailure,
    aggregate,
)
from pokedex.db.executor import QueryExecutor
from pokedex.models.domain import PokemonDocument, PokemonRecord


class FakeExecutor(QueryExecutor):
    """In-memory executor answering the type-name lookup.

    Args:
        types: Type names per pokemon id.
        delays: Seconds to sleep before answering, per pokemon id.
        failing: Pokemon ids whose lookup raises.
        barrier: Optional barrier every lookup waits on before answering.
    """

    def __init__(self, types=None, delays=None, failing=(), barrier=None):
        self.types = types or {}
        self.delays = delays or {}
        self.failing = set(failing)
        self.barrier = barrier
        self.calls: list[int] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self._lock = threading.Lock()

    def run_query(self, name, *params):
        assert name == "select-type-name-by-pokemon-id"
        (pid,) = params
        with self._lock:
            self.calls.append(pid)
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.barrier is not None:
                self.barrier.wait()
            time.sleep(self.delays.get(pid, 0))
            if pid in self.failing:
                raise RuntimeError(f"lookup {pid} exploded")
            return [{"name": n} for n in self.types.get(pid, [])]
        finally:
            with self._lock:
                self.in_flight -= 1

    def run_statement(self, name, *params):
        raise NotImplementedError


def rows(n):
    return [{"id": i, "name": f"pokemon-{i}"} for i in range(1, n + 1)]


def failing_rows(good, error):
    """Primary sequence that yields `good` rows then raises `error`."""
    yield from good
    raise error


class TestBasicAggregation:
    """Happy-path behaviour of aggregate()."""

    def test_single_pokemon_with_two_types(self):
        """Pidgey is joined with normal and flying."""
        executor = FakeExecutor(types={1: ["normal", "flying"]})

        documents = aggregate(executor, [{"id": 1, "name": "Pidgey"}])

        assert documents == [PokemonDocument(id=1, name="Pidgey", types=("normal", "flying"))]
        assert documents[0].to_json() == {"id": 1, "name": "Pidgey", "type": ["normal", "flying"]}

    def test_empty_primary_sequence_finalizes(self):
        """Empty input yields an empty list without waiting."""
        executor = FakeExecutor()
        assert aggregate(executor, [], timeout=1.0) == []
        assert executor.calls == []

    def test_rows_without_types_have_empty_type_lists(self):
        """N rows with no types give N documents with empty types."""
        documents = aggregate(FakeExecutor(), rows(7))

        assert len(documents) == 7
        assert all(d.types == () for d in documents)

    def test_type_order_matches_lookup_order(self):
        """Types keep the order returned by the lookup."""
        executor = FakeExecutor(types={1: ["poison", "grass", "bug"]})
        documents = aggregate(executor, [{"id": 1, "name": "x"}])
        assert documents[0].types == ("poison", "grass", "bug")

    def test_accepts_records(self):
        """PokemonRecord instances are accepted as primary rows."""
        executor = FakeExecutor(types={4: ["fire"]})
        documents = aggregate(executor, [PokemonRecord(id=4, name="Charmander")])
        assert documents == [PokemonDocument(id=4, name="Charmander", types=("fire",))]

    def test_one_lookup_per_row(self):
        """Exactly one secondary lookup is dispatched per primary row."""
        executor = FakeExecutor()
        aggregate(executor, rows(10))
        assert sorted(executor.calls) == list(range(1, 11))

    def test_primary_sequence_consumed_lazily(self):
        """A generator primary sequence is consumed in full."""
        executor = FakeExecutor()
        documents = aggregate(executor, (row for row in rows(3)))
        assert [d.id for d in documents] == [1, 2, 3]


class TestOrdering:
    """Output ordering with out-of-order completions."""

    def test_preserves_primary_order_by_default(self):
        """Slow first lookup still comes first."""
        executor = FakeExecutor(delays={1: 0.2})
        documents = aggregate(executor, rows(4))
        assert [d.id for d in documents] == [1, 2, 3, 4]

    def test_completion_order_when_not_preserving(self):
        """Slow first lookup completes last."""
        executor = FakeExecutor(delays={1: 0.3})
        documents = aggregate(executor, rows(4), preserve_order=False, max_concurrency=4)
        assert documents[-1].id == 1
        assert sorted(d.id for d in documents) == [1, 2, 3, 4]

    def test_no_duplicates_or_omissions_under_random_interleaving(self):
        """Every row appears exactly once whatever the completion order."""
        rng = random.Random(7)
        delays = {i: rng.uniform(0, 0.02) for i in range(1, 51)}
        executor = FakeExecutor(delays=delays)

        documents = aggregate(executor, rows(50), preserve_order=False, max_concurrency=10)

        assert sorted(d.id for d in documents) == list(range(1, 51))

    def test_repeated_runs_give_same_documents(self):
        """Running twice on unchanged data gives the same documents."""
        types = {1: ["water"], 2: ["fire", "flying"], 3: []}
        first = aggregate(FakeExecutor(types=types), rows(3), preserve_order=False)
        second = aggregate(FakeExecutor(types=types), rows(3), preserve_order=False)
        assert set(first) == set(second)


class TestConcurrency:
    """Fan-out and concurrency limits."""

    def test_lookups_run_concurrently(self):
        """Three lookups are in flight together (barrier would time out otherwise)."""
        barrier = threading.Barrier(3, timeout=5)
        executor = FakeExecutor(barrier=barrier)

        documents = aggregate(executor, rows(3), max_concurrency=3)

        assert len(documents) == 3
        assert executor.peak_in_flight == 3

    def test_max_concurrency_bounds_in_flight_lookups(self):
        """No more than max_concurrency lookups run at once."""
        executor = FakeExecutor(delays={i: 0.02 for i in range(1, 21)})

        documents = aggregate(executor, rows(20), max_concurrency=2)

        assert len(documents) == 20
        assert executor.peak_in_flight <= 2

    def test_pending_returns_to_zero(self):
        """All dispatched lookups are accounted for after completion."""
        aggregation = Aggregation(FakeExecutor(delays={1: 0.05, 2: 0.01}))
        aggregation.run(rows(5))
        assert aggregation.pending == 0
        assert aggregation.closed

    def test_rejects_non_positive_concurrency(self):
        """max_concurrency must be positive."""
        with pytest.raises(ValueError):
            Aggregation(FakeExecutor(), max_concurrency=0)

    def test_rejects_unknown_failure_policy(self):
        """Only fail and skip are valid policies."""
        with pytest.raises(ValueError):
            Aggregation(FakeExecutor(), secondary_failure="ignore")

    def test_runs_only_once(self):
        """A second run raises instead of finalizing again."""
        aggregation = Aggregation(FakeExecutor())
        aggregation.run(rows(1))
        with pytest.raises(RuntimeError):
            aggregation.run(rows(1))


class TestFailures:
    """Primary and secondary failure handling."""

    def test_primary_failure_after_two_of_five_rows(self):
        """Primary error fails the aggregation; no partial result is returned."""
        error = RuntimeError("cursor lost")
        executor = FakeExecutor()

        with pytest.raises(PrimaryQueryFailure) as exc_info:
            aggregate(executor, failing_rows(rows(5)[:2], error))

        assert exc_info.value.__cause__ is error
        assert "after 2 rows" in str(exc_info.value)

    def test_malformed_primary_row_is_primary_failure(self):
        """A row without id counts as a primary failure."""
        with pytest.raises(PrimaryQueryFailure):
            aggregate(FakeExecutor(), [{"name": "nameless"}])

    def test_late_completions_discarded_after_primary_failure(self):
        """In-flight lookups finish in the background without touching the result."""
        release = threading.Event()

        class BlockingExecutor(FakeExecutor):
            def run_query(self, name, *params):
                release.wait(5)
                return super().run_query(name, *params)

        aggregation = Aggregation(BlockingExecutor(types={1: ["fire"]}))
        with pytest.raises(PrimaryQueryFailure):
            aggregation.run(failing_rows(rows(1), RuntimeError("boom")))

        assert aggregation.closed
        release.set()
        deadline = time.monotonic() + 5
        while aggregation.pending and time.monotonic() < deadline:
            time.sleep(0.01)

        assert aggregation.pending == 0
        assert aggregation.completed == 0

    def test_secondary_failure_fails_aggregation_by_default(self):
        """A failed lookup fails the whole aggregation."""
        executor = FakeExecutor(types={1: ["fire"]}, failing={2})

        with pytest.raises(SecondaryQueryFailure) as exc_info:
            aggregate(executor, rows(3))

        assert exc_info.value.parent_id == 2
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_secondary_failure_stops_reading_primary(self):
        """After a failed lookup no further rows are dispatched."""
        executor = FakeExecutor(failing={1})

        def slow_rows():
            for row in rows(20):
                time.sleep(0.01)
                yield row

        with pytest.raises(SecondaryQueryFailure):
            aggregate(executor, slow_rows(), max_concurrency=1)

        assert len(executor.calls) < 20

    def test_secondary_failure_skipped_when_configured(self):
        """With skip policy the failing pokemon keeps an empty type list."""
        executor = FakeExecutor(types={1: ["fire"], 2: ["water"], 3: ["grass"]}, failing={2})

        documents = aggregate(executor, rows(3), secondary_failure="skip")

        assert [d.types for d in documents] == [("fire",), (), ("grass",)]

    def test_timeout(self):
        """Slow lookups raise AggregationTimeout."""
        executor = FakeExecutor(delays={1: 1.0})

        with pytest.raises(AggregationTimeout):
            aggregate(executor, rows(1), timeout=0.1)

    def test_timeout_while_waiting_for_a_slot(self):
        """Dispatch blocked on the concurrency limit also times out."""
        executor = FakeExecutor(delays={1: 1.0, 2: 1.0})

        with pytest.raises(AggregationTimeout):
            aggregate(executor, rows(2), max_concurrency=1, timeout=0.1)

    def test_primary_generator_closed_on_failure(self):
        """The primary sequence is closed when the aggregation fails."""
        closed = []

        def tracked_rows():
            try:
                yield from rows(5)
            finally:
                closed.append(True)

        executor = FakeExecutor(failing={1})
        with pytest.raises(SecondaryQueryFailure):
            aggregate(executor, tracked_rows(), max_concurrency=1)

        assert closed == [True]
