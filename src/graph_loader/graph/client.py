"""Async graph database client for graph-loader.

Handles connection lifecycle and statement execution over Bolt using the
neo4j async driver (Memgraph, Neo4j and other Bolt endpoints).  Failures to
reach the server are raised as ``GraphUnavailableError``; everything else the
server rejects surfaces as the driver's own exceptions.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger
from neo4j import AsyncGraphDatabase
from neo4j.exceptions import ServiceUnavailable, SessionExpired

from graph_loader.telemetry import get_tracer

if TYPE_CHECKING:
    from types import TracebackType

    from neo4j import AsyncDriver

    from graph_loader.settings import GraphDBSettings

_tracer = get_tracer(__name__)

# Characters of a statement kept in span attributes and error messages.
_STATEMENT_PREVIEW = 200


class QueryTimeoutError(Exception):
    """Raised when a query exceeds the configured timeout."""

    def __init__(self, timeout_s: float, query_prefix: str = "") -> None:
        self.timeout_s = timeout_s
        self.query_prefix = query_prefix
        super().__init__(f"Query timed out after {timeout_s}s: {query_prefix}")


class GraphUnavailableError(Exception):
    """Raised when the graph database cannot be reached at all."""

    def __init__(self, uri: str, cause: BaseException) -> None:
        self.uri = uri
        super().__init__(f"Graph database unreachable at {uri}: {cause}")


class GraphClient:
    """Async graph client wrapping the neo4j Bolt driver.

    Lifecycle: construct → ping → use → close (or ``async with``).
    """

    def __init__(self, settings: GraphDBSettings) -> None:
        self._uri = settings.uri
        auth = (settings.username, settings.password) if settings.username else None
        self._driver: AsyncDriver = AsyncGraphDatabase.driver(self._uri, auth=auth)
        self._database = settings.database or None
        self._query_timeout_s = settings.query_timeout_s
        self._write_timeout_s = settings.write_timeout_s

    @property
    def uri(self) -> str:
        return self._uri

    async def __aenter__(self) -> GraphClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def ping(self) -> bool:
        """Health check — returns True if the database answers."""
        records = await self.execute("RETURN 1 AS n")
        return len(records) == 1 and records[0]["n"] == 1

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute a read query and return results as a list of dicts."""
        with _tracer.start_as_current_span(
            "graph.execute", attributes={"db.statement": query[:_STATEMENT_PREVIEW]}
        ):
            try:
                return await asyncio.wait_for(self._execute_inner(query, params), timeout=self._query_timeout_s)
            except TimeoutError:
                raise QueryTimeoutError(self._query_timeout_s, query[:120]) from None
            except (ServiceUnavailable, SessionExpired, OSError) as exc:
                raise GraphUnavailableError(self._uri, exc) from exc

    async def _execute_inner(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Inner execute without timeout — used by ``execute()``."""
        async with self._driver.session(database=self._database) as session:
            result = await session.run(query, params or {})  # type: ignore[arg-type]  # dynamic Cypher
            return [dict(record) async for record in result]

    async def execute_write(self, query: str, params: dict[str, Any] | None = None) -> None:
        """Execute a write query as one auto-committed unit of work.

        Consumes the result to ensure server-side errors (e.g. constraint
        violations) are raised instead of being silently dropped.
        """
        with _tracer.start_as_current_span(
            "graph.execute_write", attributes={"db.statement": query[:_STATEMENT_PREVIEW]}
        ):
            try:
                await asyncio.wait_for(self._execute_write_inner(query, params), timeout=self._write_timeout_s)
            except TimeoutError:
                raise QueryTimeoutError(self._write_timeout_s, query[:120]) from None
            except (ServiceUnavailable, SessionExpired, OSError) as exc:
                raise GraphUnavailableError(self._uri, exc) from exc

    async def _execute_write_inner(self, query: str, params: dict[str, Any] | None = None) -> None:
        """Inner execute_write without timeout."""
        async with self._driver.session(database=self._database) as session:
            result = await session.run(query, params or {})  # type: ignore[arg-type]  # dynamic Cypher
            await result.consume()

    async def close(self) -> None:
        """Close the driver and release pooled connections."""
        await self._driver.close()
        logger.debug("Graph client closed ({})", self._uri)
