"""Table store: the CRUD surface the services talk to.

Services never write CQL. They call four operations over a named table:

- ``list(table, filters, order_by, descending)``
- ``create(table, record)`` (upsert on the primary key)
- ``update(table, filters, patch)``
- ``delete(table, filters)``

Filters are equality only, sorting is on a single column, and only
single-row writes are atomic. ``update`` and ``delete`` touching several rows
are a sequence of independent writes.

``CassandraTableStore`` implements the surface over the cassandra-asyncio-driver
session. Cassandra can only sort by clustering columns and can only update or
delete by full primary key, so sorting happens in memory and filtered writes are
resolved to the matching keys first.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from cassandra import DriverException, RequestExecutionException
from cassandra.cluster import NoHostAvailable

from src.core.errors import InvalidRequestError, TransientIOError


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from cassandra.query import PreparedStatement

logger = structlog.get_logger(__name__)

Record = dict[str, Any]

STORE_ERRORS = (RequestExecutionException, DriverException, NoHostAvailable)


@dataclass(frozen=True)
class TableSpec:
    """Shape of a table as far as the store needs to know it."""

    name: str
    partition_key: tuple[str, ...]
    clustering_key: tuple[str, ...] = ()
    columns: tuple[str, ...] = field(default_factory=tuple)

    @property
    def primary_key(self) -> tuple[str, ...]:
        return self.partition_key + self.clustering_key

    def key_of(self, record: Mapping[str, Any]) -> tuple[Any, ...]:
        return tuple(record[column] for column in self.primary_key)


class TableStore(Protocol):
    """Persistence collaborator consumed by the catalogue and progress services."""

    async def list(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Record]: ...

    async def create(self, table: str, record: Mapping[str, Any]) -> Record: ...

    async def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int: ...

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int: ...


def sort_records(
    records: Iterable[Record],
    order_by: str | None,
    descending: bool = False,
) -> list[Record]:
    """Stable single-column sort; rows missing the column sort last."""
    rows = list(records)
    if order_by is None:
        return rows
    present = [r for r in rows if r.get(order_by) is not None]
    missing = [r for r in rows if r.get(order_by) is None]
    present.sort(key=lambda r: r[order_by], reverse=descending)
    return present + missing


def row_to_record(row: Any) -> Record:
    """Convert a driver row (named tuple or mapping) to a plain dict."""
    if hasattr(row, "_asdict"):
        return dict(row._asdict())
    return dict(row)


class CassandraTableStore:
    """TableStore over an async-capable Cassandra session."""

    def __init__(
        self,
        session: Session,
        keyspace: str,
        tables: Iterable[TableSpec],
    ):
        self.session = session
        self.keyspace = keyspace
        self.tables = {spec.name: spec for spec in tables}
        self._prepared: dict[str, PreparedStatement] = {}

    def _spec(self, table: str) -> TableSpec:
        spec = self.tables.get(table)
        if spec is None:
            msg = f"Unknown table: {table}"
            raise InvalidRequestError(msg)
        return spec

    def _prepare(self, cql: str) -> PreparedStatement:
        statement = self._prepared.get(cql)
        if statement is None:
            statement = self.session.prepare(cql)
            self._prepared[cql] = statement
        return statement

    async def _execute(self, cql: str, params: list[Any], table: str) -> Any:
        try:
            return await self.session.aexecute(self._prepare(cql), params)
        except STORE_ERRORS as e:
            logger.warning(
                "store_call_failed",
                table=table,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransientIOError(f"Store call on {table} failed: {e}") from e

    def _select_cql(
        self,
        spec: TableSpec,
        filters: Mapping[str, Any],
        columns: Iterable[str] | None = None,
    ) -> str:
        projection = ", ".join(columns) if columns else "*"
        cql = f"SELECT {projection} FROM {self.keyspace}.{spec.name}"
        if filters:
            cql += " WHERE " + " AND ".join(f"{column} = ?" for column in filters)
            # Anything short of a full partition key is a filtered scan
            if not set(spec.partition_key) <= set(filters):
                cql += " ALLOW FILTERING"
        return cql

    async def list(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Record]:
        spec = self._spec(table)
        filters = dict(filters or {})
        rows = await self._execute(
            self._select_cql(spec, filters), list(filters.values()), table
        )
        return sort_records((row_to_record(row) for row in rows), order_by, descending)

    async def create(self, table: str, record: Mapping[str, Any]) -> Record:
        spec = self._spec(table)
        missing = [column for column in spec.primary_key if record.get(column) is None]
        if missing:
            msg = f"Missing primary key columns for {table}: {', '.join(missing)}"
            raise InvalidRequestError(msg)

        columns = list(record)
        cql = (
            f"INSERT INTO {self.keyspace}.{spec.name} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        await self._execute(cql, [record[c] for c in columns], table)
        return dict(record)

    async def _matching_keys(
        self, spec: TableSpec, filters: Mapping[str, Any]
    ) -> list[tuple[Any, ...]]:
        if set(filters) == set(spec.primary_key):
            return [spec.key_of(filters)]
        rows = await self._execute(
            self._select_cql(spec, filters, spec.primary_key),
            list(filters.values()),
            spec.name,
        )
        return [spec.key_of(row_to_record(row)) for row in rows]

    async def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int:
        spec = self._spec(table)
        if not filters:
            msg = "Refusing an unfiltered update"
            raise InvalidRequestError(msg)
        if set(patch) & set(spec.primary_key):
            msg = f"Primary key columns of {table} cannot be updated"
            raise InvalidRequestError(msg)
        if not patch:
            return 0

        keys = await self._matching_keys(spec, filters)
        assignments = ", ".join(f"{column} = ?" for column in patch)
        where = " AND ".join(f"{column} = ?" for column in spec.primary_key)
        # IF EXISTS keeps an update from resurrecting a concurrently deleted row
        cql = (
            f"UPDATE {self.keyspace}.{spec.name} SET {assignments} "
            f"WHERE {where} IF EXISTS"
        )
        touched = 0
        for key in keys:
            result = await self._execute(cql, [*patch.values(), *key], table)
            if getattr(result, "was_applied", True):
                touched += 1
        return touched

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        spec = self._spec(table)
        if not filters:
            msg = "Refusing an unfiltered delete"
            raise InvalidRequestError(msg)

        keys = await self._matching_keys(spec, filters)
        where = " AND ".join(f"{column} = ?" for column in spec.primary_key)
        cql = f"DELETE FROM {self.keyspace}.{spec.name} WHERE {where}"
        for key in keys:
            await self._execute(cql, list(key), table)
        return len(keys)
