"""CSV file discovery and streaming row access.

Node files are named ``nodes_<Label>.csv`` and edge files
``edges_<REL_TYPE>.csv``; ``indexes.csv`` and ``constraints.csv`` optionally
describe schema to create before loading.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from graph_loader.labels import sanitize_label

if TYPE_CHECKING:
    from collections.abc import Iterator

NODE_FILE_PREFIX = "nodes_"
EDGE_FILE_PREFIX = "edges_"
CSV_SUFFIX = ".csv"
INDEXES_FILENAME = "indexes.csv"
CONSTRAINTS_FILENAME = "constraints.csv"

# utf-8-sig strips a leading BOM that spreadsheet exports like to add.
_ENCODING = "utf-8-sig"


@dataclass(frozen=True)
class CsvInventory:
    """The loadable files found in one CSV directory."""

    csv_dir: Path
    node_files: list[Path] = field(default_factory=list)
    edge_files: list[Path] = field(default_factory=list)
    indexes_file: Path | None = None
    constraints_file: Path | None = None

    @property
    def node_labels(self) -> list[str]:
        return [label_from_filename(p) for p in self.node_files]


def _stem_after(path: Path, prefix: str) -> str:
    return path.name.removeprefix(prefix).removesuffix(CSV_SUFFIX)


def is_node_file(path: Path) -> bool:
    return path.name.startswith(NODE_FILE_PREFIX) and path.name.endswith(CSV_SUFFIX)


def is_edge_file(path: Path) -> bool:
    return path.name.startswith(EDGE_FILE_PREFIX) and path.name.endswith(CSV_SUFFIX)


def label_from_filename(path: Path) -> str:
    """``nodes_OS:Process.csv`` → ``OS_Process``."""
    return sanitize_label(_stem_after(path, NODE_FILE_PREFIX))


def rel_type_from_filename(path: Path) -> str:
    """``edges_CONNECTS.csv`` → ``CONNECTS``."""
    return _stem_after(path, EDGE_FILE_PREFIX)


def discover_csv_files(csv_dir: Path) -> CsvInventory:
    """List node, edge and schema files in *csv_dir* (sorted by name)."""
    if not csv_dir.is_dir():
        msg = f"Directory {csv_dir} does not exist"
        raise FileNotFoundError(msg)

    files = sorted(p for p in csv_dir.iterdir() if p.is_file())
    indexes = csv_dir / INDEXES_FILENAME
    constraints = csv_dir / CONSTRAINTS_FILENAME
    inventory = CsvInventory(
        csv_dir=csv_dir,
        node_files=[p for p in files if is_node_file(p)],
        edge_files=[p for p in files if is_edge_file(p)],
        indexes_file=indexes if indexes.is_file() else None,
        constraints_file=constraints if constraints.is_file() else None,
    )
    logger.info("Found {} node files and {} edge files", len(inventory.node_files), len(inventory.edge_files))
    return inventory


def iter_rows(path: Path) -> Iterator[dict[str, str]]:
    """Stream rows as ``{column: cell}``; short rows are padded with ``""``."""
    with path.open(newline="", encoding=_ENCODING) as fh:
        for row in csv.DictReader(fh):
            yield {key: value or "" for key, value in row.items() if key is not None}


def read_rows(path: Path) -> list[dict[str, str]]:
    rows = list(iter_rows(path))
    logger.debug("Read {} rows from {}", len(rows), path)
    return rows


def read_header(path: Path) -> list[str]:
    with path.open(newline="", encoding=_ENCODING) as fh:
        return next(csv.reader(fh), [])


def count_rows(path: Path) -> int:
    """Count data rows (excluding the header)."""
    return sum(1 for _ in iter_rows(path))
