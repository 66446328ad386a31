"""Batch execution with per-record fallback.

Execution is an explicit two-phase protocol::

    BATCHED ──ok──────────────────────────────▶ DONE
       │
       └─failed─▶ FALLBACK (one query per record) ─▶ DONE

Each attempt yields an ``AttemptResult`` value rather than raising, so the
switch to per-record replay is a plain branch on that result.  The only
failure that escapes is ``GraphUnavailableError``: if the database cannot be
reached, replaying records one by one cannot help.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from loguru import logger

from graph_loader.graph.client import GraphUnavailableError
from graph_loader.telemetry import get_metrics

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from graph_loader.progress import LoadEventSink

R = TypeVar("R")


class GraphWriter(Protocol):
    async def execute_write(self, query: str, params: dict[str, Any] | None = None) -> None: ...


class ExecutionPhase(StrEnum):
    BATCHED = "batched"
    FALLBACK = "fallback"
    DONE = "done"


class BatchExecutionError(Exception):
    """The batched query for a whole batch was rejected or failed."""

    def __init__(self, record_count: int, cause: BaseException) -> None:
        self.record_count = record_count
        self.cause = cause
        super().__init__(f"Batch of {record_count} records failed: {cause}")


class RecordExecutionError(Exception):
    """A single-record fallback query failed."""

    def __init__(self, position: int, cause: BaseException) -> None:
        self.position = position
        self.cause = cause
        super().__init__(f"Record {position} failed: {cause}")


@dataclass(frozen=True)
class AttemptResult:
    ok: bool
    error: BaseException | None = None


@dataclass(frozen=True)
class LoadOutcome:
    """Per-batch accounting: every record is either succeeded or failed."""

    succeeded: int
    failed: int
    fallback_used: bool
    elapsed_s: float

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


@dataclass
class LoadTotals:
    """Running aggregate of batch outcomes (per file or per run)."""

    batches: int = 0
    succeeded: int = 0
    failed: int = 0
    fallback_batches: int = 0
    elapsed_s: float = 0.0

    def add(self, outcome: LoadOutcome) -> None:
        self.batches += 1
        self.succeeded += outcome.succeeded
        self.failed += outcome.failed
        self.fallback_batches += int(outcome.fallback_used)
        self.elapsed_s += outcome.elapsed_s

    def merge(self, other: LoadTotals) -> None:
        self.batches += other.batches
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.fallback_batches += other.fallback_batches
        self.elapsed_s += other.elapsed_s

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


class BatchExecutor(Generic[R]):
    """Send synthesized batch queries and account for every record."""

    def __init__(self, client: GraphWriter, sink: LoadEventSink | None = None, *, kind: str = "record") -> None:
        self._client = client
        self._sink = sink
        self._kind = kind
        self._phase = ExecutionPhase.DONE

    @property
    def phase(self) -> ExecutionPhase:
        return self._phase

    async def execute(
        self,
        query: str,
        records: Sequence[R],
        synthesize: Callable[[Sequence[R]], str],
    ) -> LoadOutcome:
        """Run *query* for *records*; on failure replay each record via *synthesize*."""
        start = time.monotonic()
        self._phase = ExecutionPhase.BATCHED
        try:
            result = await self._attempt(query)
            if result.ok:
                succeeded, failed, fallback_used = len(records), 0, False
            else:
                batch_error = BatchExecutionError(len(records), result.error)  # type: ignore[arg-type]
                logger.error("Error loading batch of {} {}s: {}", len(records), self._kind, batch_error.cause)
                logger.error("Query: {}", query)
                logger.warning("Falling back to individual queries for this batch...")
                self._phase = ExecutionPhase.FALLBACK
                succeeded, failed = await self._replay(records, synthesize)
                fallback_used = True
        finally:
            self._phase = ExecutionPhase.DONE

        outcome = LoadOutcome(
            succeeded=succeeded,
            failed=failed,
            fallback_used=fallback_used,
            elapsed_s=time.monotonic() - start,
        )
        self._record_metrics(outcome)
        if self._sink is not None:
            self._sink.on_batch_outcome(outcome)
        return outcome

    async def _attempt(self, query: str) -> AttemptResult:
        try:
            await self._client.execute_write(query)
        except GraphUnavailableError:
            raise
        except Exception as exc:  # noqa: BLE001  # any rejection is recoverable by fallback
            return AttemptResult(ok=False, error=exc)
        return AttemptResult(ok=True)

    async def _replay(self, records: Sequence[R], synthesize: Callable[[Sequence[R]], str]) -> tuple[int, int]:
        succeeded = 0
        failed = 0
        for position, record in enumerate(records):
            single_query = synthesize([record])
            result = await self._attempt(single_query)
            if result.ok:
                succeeded += 1
                continue
            failed += 1
            record_error = RecordExecutionError(position, result.error)  # type: ignore[arg-type]
            logger.error("Error loading {}: {}", self._kind, record_error)
            logger.error("Query: {}", single_query)

        if failed:
            logger.warning("Loaded {} out of {} {}s in this batch", succeeded, len(records), self._kind)
        return succeeded, failed

    def _record_metrics(self, outcome: LoadOutcome) -> None:
        metrics = get_metrics()
        attributes = {"kind": self._kind}
        metrics.batches_total.add(1, attributes)
        metrics.records_loaded_total.add(outcome.succeeded, attributes)
        if outcome.failed:
            metrics.records_failed_total.add(outcome.failed, attributes)
        if outcome.fallback_used:
            metrics.fallbacks_total.add(1, attributes)
        metrics.batch_duration.record(outcome.elapsed_s, attributes)
