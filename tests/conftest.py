"""Shared test fixtures for graph-loader."""

from __future__ import annotations

import csv
from typing import TYPE_CHECKING, Any

import pytest

from graph_loader.graph.client import GraphClient, GraphUnavailableError
from graph_loader.settings import GraphDBSettings, LoaderSettings, LoadSettings

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


class FakeGraphClient:
    """In-memory stand-in for ``GraphClient`` that records every statement.

    *reject* decides which writes fail (with a plain ``RuntimeError``, like a
    server-side syntax or constraint error).  *unavailable* makes every call
    raise ``GraphUnavailableError``.
    """

    uri = "bolt://fake:7687"

    def __init__(
        self,
        *,
        reject: Callable[[str], bool] | None = None,
        unavailable: bool = False,
        ping_ok: bool = True,
        read_results: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self.reject = reject
        self.unavailable = unavailable
        self.ping_ok = ping_ok
        self.read_results = read_results or {}
        self.writes: list[str] = []
        self.reads: list[str] = []
        self.closed = False

    def _check_available(self) -> None:
        if self.unavailable:
            raise GraphUnavailableError(self.uri, OSError("Connection refused"))

    async def ping(self) -> bool:
        self._check_available()
        return self.ping_ok

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        self._check_available()
        self.reads.append(query)
        for prefix, rows in self.read_results.items():
            if query.startswith(prefix):
                return rows
        return []

    async def execute_write(self, query: str, params: dict[str, Any] | None = None) -> None:
        self._check_available()
        self.writes.append(query)
        if self.reject is not None and self.reject(query):
            msg = f"Invalid input near: {query[:40]}"
            raise RuntimeError(msg)

    async def close(self) -> None:
        self.closed = True

    def data_writes(self) -> list[str]:
        """Writes that load records (skips DDL and the health probe)."""
        return [q for q in self.writes if q.startswith("UNWIND")]


def write_csv(path: Path, header: list[str], rows: list[list[str]]) -> Path:
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(header)
        writer.writerows(rows)
    return path


@pytest.fixture
def fake_client():
    return FakeGraphClient()


@pytest.fixture
def make_client():
    """Factory for fake clients with custom failure behaviour."""
    return FakeGraphClient


@pytest.fixture
def csv_dir(tmp_path):
    """A small CSV export: two node files, one edge file, schema files."""
    write_csv(
        tmp_path / "nodes_Person.csv",
        ["id", "labels", "name", "age"],
        [["1001", "Person", "Alice", "30"], ["1002", "Person", "Bob", "25"], ["1003", "Person", "Eve", ""]],
    )
    write_csv(tmp_path / "nodes_Company.csv", ["id", "name"], [["c1", "Acme"]])
    write_csv(
        tmp_path / "edges_WORKS_AT.csv",
        ["source", "target", "type", "source_label", "target_label", "since"],
        [["1001", "c1", "WORKS_AT", "person", "Company", "2020"], ["1002", "c1", "WORKS_AT", "Person", "Company", ""]],
    )
    write_csv(
        tmp_path / "indexes.csv",
        ["labels", "properties", "type", "uniqueness"],
        [["Person", "name", "RANGE", ""]],
    )
    write_csv(
        tmp_path / "constraints.csv",
        ["labels", "properties", "type", "entity_type"],
        [["Company", "name", "UNIQUE", "NODE"]],
    )
    return tmp_path


@pytest.fixture
def loader_settings(csv_dir):
    return LoaderSettings(load=LoadSettings(csv_dir=csv_dir, batch_size=2, progress_interval=1))


@pytest.fixture
async def graph_client():
    """Async GraphClient fixture — skips if no graph database is reachable.

    Wipes all data before and after each test for isolation.
    """
    client = GraphClient(GraphDBSettings())
    try:
        await client.ping()
    except Exception:
        await client.close()
        pytest.skip("Graph database not available")

    await client.execute_write("MATCH (n) DETACH DELETE n")

    yield client

    await client.execute_write("MATCH (n) DETACH DELETE n")
    await client.close()


@pytest.fixture
def csv_writer():
    """``write_csv(path, header, rows)`` helper for tests building their own files."""
    return write_csv
