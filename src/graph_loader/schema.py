"""Schema bootstrap: indexes and constraints created before loading.

Every node label gets an ``id`` index so label-scoped matches stay indexed.
``indexes.csv`` and ``constraints.csv`` (columns ``labels``, ``properties``,
``type``, ``uniqueness`` / ``entity_type``; ``;``-separated lists) describe
extra schema.  Statements use the Memgraph dialect (``CREATE INDEX ON :L(p)``,
``CREATE CONSTRAINT ON (n:L) ASSERT n.p IS UNIQUE``).  Schema failures never
stop a load: a missing index only makes matching slower.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from graph_loader.graph.client import GraphUnavailableError
from graph_loader.labels import quote_identifier
from graph_loader.reader import read_rows

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from graph_loader.executor import GraphWriter
    from graph_loader.reader import CsvInventory

ID_PROPERTY = "id"

_ALREADY_EXISTS_MARKERS: tuple[str, ...] = ("already exists", "equivalent", "already indexed", "index exists")


class SchemaError(Exception):
    """A schema statement could not be generated or was rejected."""


# ---------------------------------------------------------------------------
# Spec dataclasses (frozen, for generating DDL)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexSpec:
    label: str
    properties: tuple[str, ...]


@dataclass(frozen=True)
class ConstraintSpec:
    label: str
    properties: tuple[str, ...]
    kind: str = "UNIQUE"
    entity_type: str = "NODE"

    @property
    def is_unique(self) -> bool:
        return "UNIQUE" in self.kind


@dataclass
class SchemaReport:
    """What bootstrap did; failures are counted, not raised."""

    created: int = 0
    existing: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# CSV → specs (pure functions, no I/O)
# ---------------------------------------------------------------------------


def _split_list(value: str) -> list[str]:
    return [part.strip() for part in value.split(";") if part.strip()]


def id_index_specs(labels: Iterable[str]) -> list[IndexSpec]:
    return [IndexSpec(label, (ID_PROPERTY,)) for label in sorted(set(labels))]


def parse_index_specs(rows: Iterable[Mapping[str, str]]) -> tuple[list[IndexSpec], int]:
    """Expand ``indexes.csv`` rows into one spec per label × property.

    Rows without labels/properties, ``LOOKUP`` indexes and ``UNIQUE`` indexes
    (constraints own those) are skipped.  Returns ``(specs, skipped_rows)``.
    """
    specs: list[IndexSpec] = []
    skipped = 0
    for row in rows:
        labels = _split_list(row.get("labels", ""))
        properties = _split_list(row.get("properties", ""))
        index_type = row.get("type", "").strip().upper()
        uniqueness = row.get("uniqueness", "").strip().upper()
        if not labels or not properties or index_type == "LOOKUP" or uniqueness == "UNIQUE":
            skipped += 1
            continue
        specs.extend(IndexSpec(label, (prop,)) for label in labels for prop in properties)
    return specs, skipped


def parse_constraint_specs(rows: Iterable[Mapping[str, str]]) -> tuple[list[ConstraintSpec], int]:
    """One spec per label of each ``constraints.csv`` row. Returns ``(specs, skipped_rows)``."""
    specs: list[ConstraintSpec] = []
    skipped = 0
    for row in rows:
        labels = _split_list(row.get("labels", ""))
        properties = tuple(_split_list(row.get("properties", "")))
        if not labels or not properties:
            skipped += 1
            continue
        kind = row.get("type", "").strip().upper()
        entity_type = (row.get("entity_type", "") or "NODE").strip().upper()
        specs.extend(ConstraintSpec(label, properties, kind, entity_type) for label in labels)
    return specs, skipped


def supporting_index_specs(constraints: Iterable[ConstraintSpec]) -> list[IndexSpec]:
    """Indexes backing UNIQUE constraints (one per label, composite if needed)."""
    return [IndexSpec(c.label, c.properties) for c in constraints if c.is_unique]


# ---------------------------------------------------------------------------
# DDL generation (pure functions, no I/O)
# ---------------------------------------------------------------------------


def index_ddl(spec: IndexSpec) -> str:
    label = quote_identifier(spec.label)
    props = ", ".join(quote_identifier(p) for p in spec.properties)
    return f"CREATE INDEX ON :{label}({props})"


def constraint_ddl(spec: ConstraintSpec) -> str:
    """Only node UNIQUE constraints are supported."""
    if not spec.is_unique or spec.entity_type != "NODE":
        msg = f"Unsupported constraint type: {spec.kind} for entity type: {spec.entity_type}"
        raise SchemaError(msg)
    label = quote_identifier(spec.label)
    props = ", ".join(f"n.{quote_identifier(p)}" for p in spec.properties)
    return f"CREATE CONSTRAINT ON (n:{label}) ASSERT {props} IS UNIQUE"


def is_already_exists_error(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return any(marker in msg for marker in _ALREADY_EXISTS_MARKERS)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


async def _exec_ddl(client: GraphWriter, stmt: str, report: SchemaReport) -> None:
    """Execute one DDL statement; only an unreachable database propagates."""
    try:
        await client.execute_write(stmt)
    except GraphUnavailableError:
        raise
    except Exception as exc:  # noqa: BLE001  # schema failures are non-fatal
        if is_already_exists_error(exc):
            logger.debug("DDL skipped (already exists): {}", stmt)
            report.existing += 1
        else:
            logger.error("Error executing schema statement '{}': {}", stmt, exc)
            report.failed.append(stmt)
        return
    logger.info("  Created: {}", stmt)
    report.created += 1


async def bootstrap_schema(client: GraphWriter, inventory: CsvInventory) -> SchemaReport:
    """Create id indexes, CSV-declared indexes, supporting indexes and constraints."""
    report = SchemaReport()

    logger.info("Creating ID indexes for all node labels...")
    for spec in id_index_specs(inventory.node_labels):
        await _exec_ddl(client, index_ddl(spec), report)

    if inventory.indexes_file is None:
        logger.warning("No indexes.csv file found, skipping index creation")
    else:
        logger.info("Creating indexes from {}...", inventory.indexes_file.name)
        specs, skipped = parse_index_specs(read_rows(inventory.indexes_file))
        report.skipped += skipped
        for spec in specs:
            await _exec_ddl(client, index_ddl(spec), report)

    if inventory.constraints_file is None:
        logger.warning("No constraints.csv file found, skipping constraint creation")
    else:
        constraints, skipped = parse_constraint_specs(read_rows(inventory.constraints_file))
        report.skipped += skipped
        logger.info("Creating supporting indexes for constraints...")
        for spec in supporting_index_specs(constraints):
            await _exec_ddl(client, index_ddl(spec), report)
        logger.info("Creating constraints...")
        for constraint in constraints:
            try:
                stmt = constraint_ddl(constraint)
            except SchemaError as exc:
                logger.warning("  {}, skipping {}({})", exc, constraint.label, ", ".join(constraint.properties))
                report.skipped += 1
                continue
            await _exec_ddl(client, stmt, report)

    logger.info(
        "Schema ready: {} created, {} already present, {} skipped, {} failed",
        report.created,
        report.existing,
        report.skipped,
        len(report.failed),
    )
    return report
