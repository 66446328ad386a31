"""Label specs, primary-label resolution and label consistency checks.

Edge files name their endpoint labels as colon-joined specs (``"OS:Process"``).
Matching an endpoint by a single label lets the database use the label-scoped
``id`` index; any one of the node's labels is correct since the loader never
changes label assignment, so the first one is used.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Iterable

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*", re.ASCII)


class LabelValidationError(Exception):
    """Raised when edge files reference labels that no node file provides."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Label validation failed: missing node files for labels: {missing}")


@dataclass(frozen=True)
class LabelSpec:
    """An ordered sequence of labels; the first one is the primary label."""

    labels: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> LabelSpec:
        return cls(tuple(part.strip() for part in text.split(":") if part.strip()))

    @property
    def primary(self) -> str:
        return self.labels[0] if self.labels else ""

    @property
    def is_compound(self) -> bool:
        return len(self.labels) > 1

    def __str__(self) -> str:
        return ":".join(self.labels)


def primary_label(spec: str) -> str:
    """Return the first label of a (possibly compound) spec, or ``""``."""
    return LabelSpec.parse(spec).primary


def sanitize_label(raw: str) -> str:
    """Labels taken from file names cannot carry the compound separator."""
    return raw.replace(":", "_")


def is_identifier(name: str) -> bool:
    return _IDENTIFIER_RE.fullmatch(name) is not None


def quote_identifier(name: str) -> str:
    """Backtick-quote *name* unless it is already a plain identifier."""
    if is_identifier(name):
        return name
    return "`" + name.replace("`", "``") + "`"


def build_label_mapping(
    node_labels: Iterable[str],
    edge_labels: Iterable[str],
    *,
    strict: bool = True,
) -> dict[str, str]:
    """Map edge label specs onto the spelling used by node files.

    - exact match: identity entry
    - case-insensitive match: entry pointing at the node file's spelling
    - compound spec whose parts all exist (case-insensitively): entry with
      every part respelled as its node file's label, so the primary label
      used for matching is one the nodes actually carry

    Raises ``LabelValidationError`` listing every spec that resolves to nothing,
    unless *strict* is False, in which case they are only logged.
    """
    known = set(node_labels)
    by_lower = {label.lower(): label for label in sorted(known)}
    mapping: dict[str, str] = {}
    missing: list[str] = []

    for edge_label in sorted(set(edge_labels)):
        if not edge_label:
            continue
        if edge_label in known:
            mapping[edge_label] = edge_label
            continue
        match = by_lower.get(edge_label.lower())
        if match is not None:
            mapping[edge_label] = match
            logger.info("Mapped edge label '{}' -> node label '{}'", edge_label, match)
            continue
        spec = LabelSpec.parse(edge_label)
        if spec.is_compound and all(part.lower() in by_lower for part in spec.labels):
            resolved = ":".join(by_lower[part.lower()] for part in spec.labels)
            mapping[edge_label] = resolved
            logger.info("Multi-label '{}' is valid, resolved to '{}'", edge_label, resolved)
            continue
        missing.append(edge_label)

    if missing and strict:
        logger.error("Found edge labels without corresponding node files: {}", missing)
        raise LabelValidationError(missing)
    if missing:
        logger.warning("Edge labels without corresponding node files: {}", missing)
    return mapping
