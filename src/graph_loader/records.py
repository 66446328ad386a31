"""Node and edge records built from CSV rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from graph_loader.labels import LabelSpec, is_identifier, quote_identifier
from graph_loader.literals import PropertyMap, property_map

if TYPE_CHECKING:
    from collections.abc import Mapping

NODE_RESERVED_COLUMNS: tuple[str, ...] = ("id", "labels")
EDGE_RESERVED_COLUMNS: tuple[str, ...] = ("source", "target", "type", "source_label", "target_label")


class LoadMode(StrEnum):
    """Insert creates unconditionally; upsert merges by ``id``."""

    INSERT = "insert"
    UPSERT = "upsert"

    @property
    def verb(self) -> str:
        return "MERGE" if self is LoadMode.UPSERT else "CREATE"


EdgeKey = tuple[str, str, str]  # (source primary label, target primary label, rel type)


@dataclass(frozen=True)
class NodeRecord:
    id: str
    label: str
    properties: PropertyMap = field(default_factory=dict)


@dataclass(frozen=True)
class EdgeRecord:
    source_id: str
    target_id: str
    source_labels: LabelSpec
    target_labels: LabelSpec
    rel_type: str
    properties: PropertyMap = field(default_factory=dict)

    @property
    def batch_key(self) -> EdgeKey:
        """Records sharing a key can share one match pattern."""
        return (self.source_labels.primary, self.target_labels.primary, self.rel_type)


def clean_property_name(name: str) -> str:
    """Normalise a CSV column name into a map key.

    ``Date:Date`` style duplicated prefixes collapse to ``Date``; anything that
    is still not a plain identifier is backtick-quoted.
    """
    name = name.strip()
    parts = name.split(":")
    if len(parts) == 2 and parts[0] == parts[1]:
        name = parts[0]
    return name if is_identifier(name) else quote_identifier(name)


def _property_cells(row: Mapping[str, str], reserved: tuple[str, ...]) -> dict[str, str]:
    return {
        clean_property_name(key): value
        for key, value in row.items()
        if key not in reserved and key and value != ""
    }


def node_from_row(row: Mapping[str, str], label: str) -> NodeRecord:
    """Build a node record; empty cells are left out of the property map."""
    return NodeRecord(
        id=row.get("id", "") or "",
        label=label,
        properties=property_map(_property_cells(row, NODE_RESERVED_COLUMNS)),
    )


def edge_from_row(
    row: Mapping[str, str],
    rel_type: str,
    label_mapping: Mapping[str, str] | None = None,
) -> EdgeRecord:
    """Build an edge record, resolving endpoint label specs through *label_mapping*."""
    mapping = label_mapping or {}
    raw_source = (row.get("source_label") or "").strip()
    raw_target = (row.get("target_label") or "").strip()
    return EdgeRecord(
        source_id=row.get("source", "") or "",
        target_id=row.get("target", "") or "",
        source_labels=LabelSpec.parse(mapping.get(raw_source, raw_source)),
        target_labels=LabelSpec.parse(mapping.get(raw_target, raw_target)),
        rel_type=rel_type,
        properties=property_map(_property_cells(row, EDGE_RESERVED_COLUMNS)),
    )
