"""CLI entrypoint for graph-loader."""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from loguru import logger

if TYPE_CHECKING:
    from graph_loader.loader import GraphLoader, GraphStats, RunSummary
    from graph_loader.settings import LoaderSettings

app = typer.Typer(
    name="graph-loader",
    help="graph-loader: bulk-load node and edge CSV files into a graph database.",
    no_args_is_help=True,
)

# Exit codes for ``graph-loader load``.
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


@dataclass
class OutputMode:
    quiet: bool = False
    json: bool = False
    verbose: int = 0


_output = OutputMode()


def _configure_logging() -> None:
    """Install one stderr sink whose level follows the output mode."""
    if _output.verbose:
        level = "DEBUG"
    elif _output.quiet:
        level = "WARNING"
    elif _output.json:
        level = "ERROR"
    else:
        level = "INFO"
    logger.remove()
    logger.add(sys.stderr, level=level, format="{time:HH:mm:ss} | {level: <8} | {message}")


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="More log output (repeatable)."),
    quiet: bool = typer.Option(False, "--quiet", "-q", envvar="GRAPH_LOADER_QUIET", help="Only warnings and errors."),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON on stdout."),
) -> None:
    """Global output options."""
    _output.verbose = verbose
    _output.quiet = quiet
    _output.json = json_output
    _configure_logging()


def _emit(payload: dict[str, Any]) -> None:
    if _output.json:
        typer.echo(json.dumps(payload, indent=2, default=str))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def load(
    graph_name: str = typer.Argument(..., help="Name of the target graph (database)."),
    host: str | None = typer.Option(None, help="Graph database host."),
    port: int | None = typer.Option(None, help="Bolt port."),
    username: str | None = typer.Option(None, help="Username."),
    password: str | None = typer.Option(None, help="Password."),
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, help="Records per batch query."),
    csv_dir: Path | None = typer.Option(None, "--csv-dir", help="Directory containing the CSV files."),
    merge_mode: bool = typer.Option(False, "--merge-mode", help="Upsert with MERGE instead of CREATE."),
    progress_interval: int | None = typer.Option(
        None, "--progress-interval", min=0, help="Report progress every N records (0 disables)."
    ),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Abort as soon as a batch has failed records."),
    no_strict_labels: bool = typer.Option(
        False, "--no-strict-labels", help="Warn instead of aborting on unknown edge labels."
    ),
    stats: bool = typer.Option(False, "--stats", help="Print graph statistics after loading."),
    sample_labels: list[str] | None = typer.Option(
        None, "--sample-label", help="With --stats, also print sample nodes of this label (repeatable)."
    ),
) -> None:
    """Load every nodes_*.csv and edges_*.csv file into GRAPH_NAME."""
    from graph_loader.records import LoadMode
    from graph_loader.settings import LoaderSettings

    settings = LoaderSettings()
    graph_updates: dict[str, Any] = {"database": graph_name}
    for name, value in (("host", host), ("port", port), ("username", username), ("password", password)):
        if value is not None:
            graph_updates[name] = value
    load_updates: dict[str, Any] = {}
    for name, value in (("batch_size", batch_size), ("csv_dir", csv_dir), ("progress_interval", progress_interval)):
        if value is not None:
            load_updates[name] = value
    if merge_mode:
        load_updates["mode"] = LoadMode.UPSERT
    if fail_fast:
        load_updates["fail_fast"] = True
    if no_strict_labels:
        load_updates["strict_labels"] = False
    settings.graph = settings.graph.model_copy(update=graph_updates)
    settings.load = settings.load.model_copy(update=load_updates)

    code = asyncio.run(_run_load(settings, show_stats=stats, sample_labels=sample_labels or []))
    if code != EXIT_OK:
        raise typer.Exit(code=code)


@app.command()
def validate(
    csv_dir: Path | None = typer.Option(None, "--csv-dir", help="Directory containing the CSV files."),
    no_strict_labels: bool = typer.Option(
        False, "--no-strict-labels", help="Report unknown edge labels as warnings instead of failing."
    ),
) -> None:
    """Check that every edge endpoint label has a node file (no database needed)."""
    from graph_loader.labels import LabelValidationError, build_label_mapping
    from graph_loader.loader import edge_label_specs
    from graph_loader.reader import discover_csv_files
    from graph_loader.settings import LoaderSettings

    load_settings = LoaderSettings().load
    directory = csv_dir if csv_dir is not None else load_settings.csv_dir
    strict = load_settings.strict_labels and not no_strict_labels
    try:
        inventory = discover_csv_files(directory)
        mapping = build_label_mapping(inventory.node_labels, edge_label_specs(inventory.edge_files), strict=strict)
    except FileNotFoundError as exc:
        logger.error("{}", exc)
        raise typer.Exit(code=EXIT_FATAL) from exc
    except LabelValidationError as exc:
        _emit({"ok": False, "missing": exc.missing})
        raise typer.Exit(code=EXIT_FATAL) from exc

    logger.info(
        "Labels are consistent across {} node and {} edge files",
        len(inventory.node_files),
        len(inventory.edge_files),
    )
    _emit({"ok": True, "mapping": mapping})


@app.command("stats")
def stats_command(
    graph_name: str = typer.Argument(..., help="Name of the graph (database) to inspect."),
    host: str | None = typer.Option(None, help="Graph database host."),
    port: int | None = typer.Option(None, help="Bolt port."),
    sample_labels: list[str] | None = typer.Option(
        None, "--sample-label", help="Also print sample nodes of this label (repeatable)."
    ),
) -> None:
    """Print node and relationship counts for GRAPH_NAME."""
    from graph_loader.settings import LoaderSettings

    settings = LoaderSettings()
    updates: dict[str, Any] = {"database": graph_name}
    if host is not None:
        updates["host"] = host
    if port is not None:
        updates["port"] = port
    settings.graph = settings.graph.model_copy(update=updates)
    asyncio.run(_run_stats(settings, sample_labels=sample_labels or []))


# ---------------------------------------------------------------------------
# Async helpers
# ---------------------------------------------------------------------------


async def _run_load(settings: LoaderSettings, *, show_stats: bool, sample_labels: list[str]) -> int:
    """Async implementation of ``graph-loader load``; returns the exit code."""
    from graph_loader.graph import GraphClient, GraphUnavailableError, QueryTimeoutError
    from graph_loader.labels import LabelValidationError
    from graph_loader.loader import GraphLoader, LoadAbortedError
    from graph_loader.telemetry import init_telemetry, shutdown_telemetry

    init_telemetry(settings.observability)
    graph = GraphClient(settings.graph)
    try:
        loader = GraphLoader(graph, settings)
        try:
            run = await loader.load_all()
        except FileNotFoundError as exc:
            logger.error("{}", exc)
            return EXIT_FATAL
        except LabelValidationError as exc:
            logger.error("{}", exc)
            return EXIT_FATAL
        except (GraphUnavailableError, QueryTimeoutError) as exc:
            logger.error("Cannot reach graph database at {}: {}", graph.uri, exc)
            return EXIT_FATAL
        except LoadAbortedError as exc:
            logger.error("{}", exc)
            return EXIT_FATAL

        payload: dict[str, Any] = {"ok": run.ok, **_run_payload(run)}
        if show_stats:
            graph_stats = await loader.graph_stats()
            _log_stats(graph_stats)
            payload["stats"] = _stats_payload(graph_stats)
            if sample_labels:
                payload["samples"] = await _collect_samples(loader, sample_labels, settings.load.sample_records)
        _emit(payload)
        return EXIT_OK if run.ok else EXIT_PARTIAL
    finally:
        await graph.close()
        shutdown_telemetry()


async def _run_stats(settings: LoaderSettings, *, sample_labels: list[str]) -> None:
    """Async implementation of ``graph-loader stats``."""
    from graph_loader.graph import GraphClient, GraphUnavailableError, QueryTimeoutError
    from graph_loader.loader import GraphLoader

    graph = GraphClient(settings.graph)
    try:
        loader = GraphLoader(graph, settings)
        try:
            graph_stats = await loader.graph_stats()
            payload = _stats_payload(graph_stats)
            _log_stats(graph_stats)
            if sample_labels:
                payload["samples"] = await _collect_samples(loader, sample_labels, settings.load.sample_records)
        except (GraphUnavailableError, QueryTimeoutError) as exc:
            logger.error("Cannot reach graph database at {}: {}", graph.uri, exc)
            raise typer.Exit(code=EXIT_FATAL) from exc
        _emit(payload)
    finally:
        await graph.close()


async def _collect_samples(loader: GraphLoader, labels: list[str], limit: int) -> dict[str, list[dict[str, Any]]]:
    samples: dict[str, list[dict[str, Any]]] = {}
    for label in labels:
        nodes = await loader.sample_nodes(label, limit)
        logger.info("Sample {} nodes ({}):", label, len(nodes))
        for node in nodes:
            logger.info("  {}", node)
        samples[label] = nodes
    return samples


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _run_payload(run: RunSummary) -> dict[str, Any]:
    return {
        "elapsed_s": round(run.elapsed_s, 3),
        "nodes": {"loaded": run.node_totals.succeeded, "failed": run.node_totals.failed},
        "relationships": {"loaded": run.edge_totals.succeeded, "failed": run.edge_totals.failed},
        "files": [
            {
                "file": summary.path.name,
                "kind": summary.kind,
                "loaded": summary.totals.succeeded,
                "failed": summary.totals.failed,
                "fallback_batches": summary.totals.fallback_batches,
                "missing_ids": summary.missing_ids,
            }
            for summary in run.files
        ],
    }


def _stats_payload(graph_stats: GraphStats) -> dict[str, Any]:
    return {
        "nodes": dict(graph_stats.node_counts),
        "relationships": dict(graph_stats.relationship_counts),
        "total_nodes": graph_stats.total_nodes,
        "total_relationships": graph_stats.total_relationships,
    }


def _log_stats(graph_stats: GraphStats) -> None:
    logger.info("Graph statistics:")
    for labels, count in graph_stats.node_counts:
        logger.info("  Nodes {}: {}", labels or "(no label)", count)
    for rel_type, count in graph_stats.relationship_counts:
        logger.info("  Relationships {}: {}", rel_type, count)
    logger.info("  Total: {} nodes, {} relationships", graph_stats.total_nodes, graph_stats.total_relationships)


if __name__ == "__main__":
    app()
