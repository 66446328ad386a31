"""Batch query synthesis.

A batch becomes one ``UNWIND [...] AS row`` statement with every row inlined
as a map literal.  Only the creation clause depends on the load mode: node
identity and edge endpoints are keyed by ``id``, and endpoints are always
merged so a relationship never points at a missing node.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from graph_loader.labels import quote_identifier
from graph_loader.literals import build_list, build_map, encode_id

if TYPE_CHECKING:
    from collections.abc import Sequence

    from graph_loader.records import EdgeRecord, LoadMode, NodeRecord


def _label_clause(label: str) -> str:
    return f":{quote_identifier(label)}" if label else ""


def node_row(record: NodeRecord) -> str:
    return f"{{id: {encode_id(record.id).text}, props: {build_map(record.properties)}}}"


def edge_row(record: EdgeRecord) -> str:
    return (
        f"{{source_id: {encode_id(record.source_id).text}, "
        f"target_id: {encode_id(record.target_id).text}, "
        f"props: {build_map(record.properties)}}}"
    )


def synthesize_node_batch(records: Sequence[NodeRecord], mode: LoadMode) -> str:
    """Render one query creating or merging every node in *records*.

    All records must share one label (one node file maps to one label).
    """
    if not records:
        msg = "Cannot synthesize a query for an empty node batch"
        raise ValueError(msg)
    label = records[0].label
    if any(r.label != label for r in records):
        msg = f"Node batch mixes labels: {sorted({r.label for r in records})}"
        raise ValueError(msg)

    rows = build_list(node_row(r) for r in records)
    return f"UNWIND {rows} AS row {mode.verb} (n{_label_clause(label)} {{id: row.id}}) SET n += row.props"


def synthesize_edge_batch(records: Sequence[EdgeRecord], mode: LoadMode) -> str:
    """Render one query creating or merging every relationship in *records*.

    All records must share one ``batch_key``; an empty endpoint label drops
    the label from that endpoint's pattern (unindexed, still correct).
    """
    if not records:
        msg = "Cannot synthesize a query for an empty edge batch"
        raise ValueError(msg)
    key = records[0].batch_key
    if any(r.batch_key != key for r in records):
        msg = f"Edge batch mixes match patterns: {sorted({r.batch_key for r in records})}"
        raise ValueError(msg)
    source_label, target_label, rel_type = key

    rows = build_list(edge_row(r) for r in records)
    return (
        f"UNWIND {rows} AS row "
        f"MERGE (a{_label_clause(source_label)} {{id: row.source_id}}) "
        f"MERGE (b{_label_clause(target_label)} {{id: row.target_id}}) "
        f"{mode.verb} (a)-[r:{quote_identifier(rel_type)}]->(b) "
        f"SET r += row.props"
    )


def missing_node_ids(records: Sequence[NodeRecord]) -> int:
    """Count nodes whose identity key is empty (they encode to ``null``)."""
    return sum(1 for r in records if not r.id)


def missing_endpoint_ids(records: Sequence[EdgeRecord]) -> int:
    """Count edges with an empty source or target id."""
    return sum(1 for r in records if not r.source_id or not r.target_id)
