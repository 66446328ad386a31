"""Cypher literal encoding for CSV cell values.

Every cell maps to exactly one typed literal; encoding never fails.  The
rendered text is embedded directly into batch queries, so string escaping is
the only thing standing between a CSV cell and the query parser.

Classification rules (ASCII only, no locale handling):

- ``""`` → ``null``
- ``-?[0-9]+`` within signed 64-bit range → integer (``"007"`` → ``7``)
- ``[+-]?(d+[.d*] | .d+)([eE][+-]?d+)?`` with a finite value → float
  (``"1e3"`` → ``1000.0``)
- anything else → single-quoted string (out-of-range integers, ``inf``,
  ``nan``, ``1_000``, ``" 42"``, ``"1,5"`` all stay strings)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

_INT_RE = re.compile(r"-?[0-9]+", re.ASCII)
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?", re.ASCII)

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

EMPTY_MAP = "{}"


class LiteralKind(StrEnum):
    NULL = "null"
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"


@dataclass(frozen=True)
class TypedLiteral:
    """A cell value classified and rendered as query-language literal text."""

    kind: LiteralKind
    text: str
    value: int | float | str | None

    def __str__(self) -> str:
        return self.text


NULL = TypedLiteral(LiteralKind.NULL, "null", None)

# Ordered property name → literal mapping.
PropertyMap = dict[str, TypedLiteral]


def escape_string(text: str) -> str:
    """Escape backslashes first, then single quotes."""
    return text.replace("\\", "\\\\").replace("'", "\\'")


def string_literal(text: str) -> TypedLiteral:
    return TypedLiteral(LiteralKind.STRING, f"'{escape_string(text)}'", text)


def _format_float(value: float) -> str:
    # repr() gives the shortest round-tripping form; Cypher exponents take no '+'.
    return repr(value).replace("e+", "e")


def encode_cell(cell: str) -> TypedLiteral:
    """Classify *cell* and render it as a literal. Total and deterministic."""
    if cell == "":
        return NULL

    if _INT_RE.fullmatch(cell):
        number = int(cell)
        if _I64_MIN <= number <= _I64_MAX:
            return TypedLiteral(LiteralKind.INTEGER, str(number), number)
        return string_literal(cell)

    if _FLOAT_RE.fullmatch(cell):
        number = float(cell)
        if math.isfinite(number):
            return TypedLiteral(LiteralKind.FLOAT, _format_float(number), number)

    return string_literal(cell)


def encode_id(cell: str) -> TypedLiteral:
    """Encode an identity key: empty → ``null``, everything else a string."""
    if cell == "":
        return NULL
    return string_literal(cell)


def property_map(cells: Mapping[str, str]) -> PropertyMap:
    """Encode every cell of *cells*, keeping iteration order."""
    return {name: encode_cell(cell) for name, cell in cells.items()}


def build_map(props: Mapping[str, TypedLiteral]) -> str:
    """Render ``{name: literal, ...}``; names are emitted verbatim."""
    if not props:
        return EMPTY_MAP
    return "{" + ", ".join(f"{name}: {literal.text}" for name, literal in props.items()) + "}"


def build_list(items: Iterable[str]) -> str:
    return "[" + ", ".join(items) + "]"
