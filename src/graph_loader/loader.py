"""Load orchestration: CSV directory in, batched queries out.

A run is strictly sequential: label validation, health check, schema
bootstrap, every node file, then every edge file.  Within a file, batches are
synthesized and executed one at a time, so the database never sees an edge
before the nodes it connects have been written.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, Any

from loguru import logger

from graph_loader.batching import iter_batches
from graph_loader.executor import BatchExecutor, LoadTotals
from graph_loader.graph.client import GraphUnavailableError
from graph_loader.labels import LabelValidationError, build_label_mapping, quote_identifier
from graph_loader.progress import LoggingSink, ProgressReporter
from graph_loader.query import missing_endpoint_ids, missing_node_ids, synthesize_edge_batch, synthesize_node_batch
from graph_loader.reader import (
    count_rows,
    discover_csv_files,
    iter_rows,
    label_from_filename,
    read_header,
    rel_type_from_filename,
)
from graph_loader.records import LoadMode, edge_from_row, node_from_row
from graph_loader.schema import bootstrap_schema
from graph_loader.telemetry import get_tracer

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from pathlib import Path

    from graph_loader.batching import Batch
    from graph_loader.graph.client import GraphClient
    from graph_loader.reader import CsvInventory
    from graph_loader.settings import LoaderSettings

_tracer = get_tracer(__name__)

_HEALTH_PROBE_ID = "health_check_test"
_HEALTH_PROBE_CREATE = f"CREATE (h:HealthCheck {{id: '{_HEALTH_PROBE_ID}'}})"
_HEALTH_PROBE_DELETE = f"MATCH (h:HealthCheck {{id: '{_HEALTH_PROBE_ID}'}}) DELETE h"

_NODE_STATS_QUERY = "MATCH (n) RETURN labels(n) AS labels, count(n) AS count ORDER BY count DESC"
_EDGE_STATS_QUERY = "MATCH ()-[r]->() RETURN type(r) AS type, count(r) AS count ORDER BY count DESC"

# Characters of the first batch query echoed at info level.
_QUERY_PREVIEW = 500


class LoadAbortedError(Exception):
    """Raised in fail-fast mode when a batch reports failed records."""

    def __init__(self, path: Path, failed: int) -> None:
        self.path = path
        self.failed = failed
        super().__init__(f"Aborting load: {failed} records failed in {path.name}")


@dataclass
class FileSummary:
    """Accounting for one CSV file."""

    path: Path
    kind: str
    subject: str
    totals: LoadTotals = field(default_factory=LoadTotals)
    missing_ids: int = 0

    @property
    def ok(self) -> bool:
        return self.totals.failed == 0


@dataclass
class RunSummary:
    files: list[FileSummary] = field(default_factory=list)
    elapsed_s: float = 0.0

    def _totals(self, kind: str) -> LoadTotals:
        totals = LoadTotals()
        for summary in self.files:
            if summary.kind == kind:
                totals.merge(summary.totals)
        return totals

    @property
    def node_totals(self) -> LoadTotals:
        return self._totals("node")

    @property
    def edge_totals(self) -> LoadTotals:
        return self._totals("edge")

    @property
    def ok(self) -> bool:
        return all(summary.ok for summary in self.files)


@dataclass
class GraphStats:
    node_counts: list[tuple[str, int]] = field(default_factory=list)
    relationship_counts: list[tuple[str, int]] = field(default_factory=list)

    @property
    def total_nodes(self) -> int:
        return sum(count for _, count in self.node_counts)

    @property
    def total_relationships(self) -> int:
        return sum(count for _, count in self.relationship_counts)


def edge_label_specs(edge_files: Iterable[Path]) -> set[str]:
    specs: set[str] = set()
    for path in edge_files:
        for row in iter_rows(path):
            for column in ("source_label", "target_label"):
                value = row.get(column, "").strip()
                if value:
                    specs.add(value)
    return specs


class GraphLoader:
    """Drive a complete CSV load against one graph database."""

    def __init__(self, client: GraphClient, settings: LoaderSettings) -> None:
        self._client = client
        self._settings = settings
        self._load = settings.load
        self._label_mapping: dict[str, str] = {}

    @property
    def graph_name(self) -> str:
        return self._settings.graph.database or "(default)"

    @property
    def label_mapping(self) -> dict[str, str]:
        return dict(self._label_mapping)

    # -------------------------------------------------------------------
    # Pre-flight
    # -------------------------------------------------------------------

    async def check_health(self) -> None:
        """Verify the database answers queries and accepts writes.

        A failing read propagates as ``GraphUnavailableError``; a failing
        probe write is only a warning, the load itself will report why.
        """
        logger.info("Performing database health check...")
        if not await self._client.ping():
            msg = "unexpected response to RETURN 1"
            raise GraphUnavailableError(self._client.uri, RuntimeError(msg))

        try:
            await self._client.execute_write(_HEALTH_PROBE_CREATE)
            await self._client.execute_write(_HEALTH_PROBE_DELETE)
        except GraphUnavailableError:
            raise
        except Exception as exc:  # noqa: BLE001  # probe failure is advisory
            logger.warning("Database write test failed: {}", exc)
        else:
            logger.info("Database write test passed")

        if self._load.mode is LoadMode.UPSERT:
            logger.warning("Merge mode is enabled: MERGE queries are slower than CREATE on large graphs")
        logger.info("Database health check completed")

    def validate_labels(self, inventory: CsvInventory) -> dict[str, str]:
        """Check that every edge endpoint label has a node file; remember the mapping."""
        logger.info("Validating label consistency between nodes and edges...")
        node_labels = inventory.node_labels
        edge_labels = edge_label_specs(inventory.edge_files)
        logger.info("Node labels from files: {}", sorted(node_labels))
        logger.info("Edge labels from CSV data: {}", sorted(edge_labels))
        self._label_mapping = build_label_mapping(node_labels, edge_labels, strict=self._load.strict_labels)
        logger.info("Label validation passed ({} mapped labels)", len(self._label_mapping))
        return self.label_mapping

    # -------------------------------------------------------------------
    # Per-file loading
    # -------------------------------------------------------------------

    async def load_node_file(self, path: Path, total: int | None = None) -> FileSummary:
        label = label_from_filename(path)
        summary = FileSummary(path=path, kind="node", subject=f"{label} nodes")
        logger.info("Loading {} from {}...", summary.subject, path.name)
        logger.info("  CSV headers: {}", read_header(path))
        records = (node_from_row(row, label) for row in iter_rows(path))
        await self._load_batches(
            summary,
            iter_batches(records, self._load.batch_size),
            partial(synthesize_node_batch, mode=self._load.mode),
            missing_node_ids,
            total,
        )
        return summary

    async def load_edge_file(self, path: Path, total: int | None = None) -> FileSummary:
        """Load one edge file; batches are keyed by endpoint labels and type."""
        rel_type = rel_type_from_filename(path)
        summary = FileSummary(path=path, kind="edge", subject=f"{rel_type} relationships")
        logger.info("Loading {} from {}...", summary.subject, path.name)
        logger.info("  CSV headers: {}", read_header(path))
        records = (edge_from_row(row, rel_type, self._label_mapping) for row in iter_rows(path))
        await self._load_batches(
            summary,
            iter_batches(records, self._load.batch_size, key=lambda record: record.batch_key),
            partial(synthesize_edge_batch, mode=self._load.mode),
            missing_endpoint_ids,
            total,
        )
        return summary

    async def _load_batches(
        self,
        summary: FileSummary,
        batches: Iterable[Batch[Any]],
        synthesize: Callable[[Sequence[Any]], str],
        count_missing: Callable[[Sequence[Any]], int],
        total: int | None,
    ) -> None:
        sink = LoggingSink(summary.subject)
        reporter = ProgressReporter(self._load.progress_interval, sink)
        executor: BatchExecutor[Any] = BatchExecutor(self._client, sink, kind=summary.kind)
        if total is None:
            total = count_rows(summary.path) if reporter.interval > 0 else 0
        processed = 0

        with _tracer.start_as_current_span(
            "loader.load_file", attributes={"file": summary.path.name, "kind": summary.kind}
        ):
            for batch in batches:
                query = synthesize(batch.records)
                if batch.index == 0:
                    self._log_first_batch(batch.records, query)
                logger.debug("Batch {} ({} records) query: {}", batch.index, len(batch), query)

                missing = count_missing(batch.records)
                if missing:
                    summary.missing_ids += missing
                    logger.warning(
                        "{} of {} {} in batch {} have an empty id (encoded as null)",
                        missing,
                        len(batch),
                        summary.subject,
                        batch.index,
                    )

                outcome = await executor.execute(query, batch.records, synthesize)
                summary.totals.add(outcome)
                processed += len(batch)
                reporter.report(processed, total)

                if outcome.failed and self._load.fail_fast:
                    raise LoadAbortedError(summary.path, outcome.failed)

        logger.info(
            "Loaded {} of {} {} in {} batches ({:.2f}s)",
            summary.totals.succeeded,
            summary.totals.total,
            summary.subject,
            summary.totals.batches,
            summary.totals.elapsed_s,
        )

    def _log_first_batch(self, records: Sequence[Any], query: str) -> None:
        for position, record in enumerate(records[: self._load.sample_records]):
            logger.debug("  Sample record {}: {}", position, record)
        preview = query if len(query) <= _QUERY_PREVIEW else query[:_QUERY_PREVIEW] + "..."
        logger.info("  First batch query: {}", preview)

    # -------------------------------------------------------------------
    # Whole run
    # -------------------------------------------------------------------

    async def load_all(self) -> RunSummary:
        """Load every node file, then every edge file, from the CSV directory."""
        start = time.monotonic()
        logger.info("Starting load into graph '{}' at {}", self.graph_name, self._client.uri)
        inventory = discover_csv_files(self._load.csv_dir)
        if not inventory.node_files and not inventory.edge_files:
            logger.warning("No node or edge CSV files found in {}", inventory.csv_dir)

        try:
            self.validate_labels(inventory)
        except LabelValidationError:
            logger.error("Please ensure all edge labels have corresponding node files")
            raise

        await self.check_health()
        await bootstrap_schema(self._client, inventory)

        counts: dict[Path, int] = {}
        if self._load.progress_interval > 0:
            counts = {path: count_rows(path) for path in [*inventory.node_files, *inventory.edge_files]}
            logger.info("Total records to load: {}", sum(counts.values()))
        grand_total = sum(counts.values())

        run = RunSummary()
        node_count = len(inventory.node_files)
        for position, path in enumerate(inventory.node_files, 1):
            logger.info("Processing node file {}/{}: {}", position, node_count, path.name)
            run.files.append(await self.load_node_file(path, total=counts.get(path)))
            self._log_overall(run, grand_total)

        edge_count = len(inventory.edge_files)
        for position, path in enumerate(inventory.edge_files, 1):
            logger.info("Processing edge file {}/{}: {}", position, edge_count, path.name)
            run.files.append(await self.load_edge_file(path, total=counts.get(path)))
            self._log_overall(run, grand_total)

        run.elapsed_s = time.monotonic() - start
        self._log_summary(run)
        return run

    @staticmethod
    def _log_overall(run: RunSummary, grand_total: int) -> None:
        if grand_total <= 0:
            return
        done = sum(summary.totals.total for summary in run.files)
        logger.info("Overall progress: {:.1f}% ({}/{} records)", done / grand_total * 100.0, done, grand_total)

    def _log_summary(self, run: RunSummary) -> None:
        nodes, edges = run.node_totals, run.edge_totals
        logger.info(
            "Loaded {} nodes and {} relationships into graph '{}' in {:.2f}s",
            nodes.succeeded,
            edges.succeeded,
            self.graph_name,
            run.elapsed_s,
        )
        if run.ok:
            return
        for summary in run.files:
            if not summary.ok:
                totals = summary.totals
                logger.warning("  {}: {} of {} records failed", summary.path.name, totals.failed, totals.total)

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------

    async def graph_stats(self) -> GraphStats:
        """Node counts per label set and relationship counts per type."""
        stats = GraphStats()
        for row in await self._client.execute(_NODE_STATS_QUERY):
            labels = row.get("labels") or []
            stats.node_counts.append((":".join(labels), int(row.get("count", 0))))
        for row in await self._client.execute(_EDGE_STATS_QUERY):
            stats.relationship_counts.append((str(row.get("type", "")), int(row.get("count", 0))))
        return stats

    async def sample_nodes(self, label: str, limit: int = 5) -> list[dict[str, Any]]:
        query = f"MATCH (n:{quote_identifier(label)}) RETURN n LIMIT {int(limit)}"
        return [dict(row["n"]) for row in await self._client.execute(query)]
