"""Record store interface and the in-memory implementation used by default."""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from .exceptions import StoreError

Row = dict[str, Any]
Filters = dict[str, Any]


class RecordStore(Protocol):
    """Protocol for the generic table store the service reads and writes.

    Filters are equality matches on column values. Rows come back as copies, so
    callers may mutate them freely before writing them back.
    """

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[Row]: ...

    def select_one(self, table: str, filters: Filters) -> Optional[Row]: ...

    def insert(self, table: str, row: Row) -> Row: ...

    def update(self, table: str, filters: Filters, changes: Row) -> list[Row]: ...

    def delete(self, table: str, filters: Filters) -> int: ...

    def count(self, table: str, filters: Optional[Filters] = None) -> int: ...

    def ping(self) -> bool: ...


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(row: Row, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    return all(row.get(column) == value for column, value in filters.items())


class InMemoryRecordStore:
    """Dictionary-backed store with the same surface as a hosted table client.

    Every inserted row gets a uuid ``id`` and ``created_at``/``updated_at``
    timestamps; updates refresh ``updated_at``.
    """

    def __init__(self, tables: Optional[dict[str, list[Row]]] = None):
        self._tables: dict[str, list[Row]] = {}
        for table, rows in (tables or {}).items():
            for row in rows:
                self.insert(table, row)

    def _table(self, table: str) -> list[Row]:
        return self._tables.setdefault(table, [])

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[Row]:
        rows = [row for row in self._table(table) if _matches(row, filters)]
        if order_by:
            try:
                rows.sort(key=lambda row: row.get(order_by) or "", reverse=descending)
            except TypeError as e:
                raise StoreError(f"Cannot order {table} by {order_by}: {e}") from e
        end = None if limit is None else offset + limit
        return copy.deepcopy(rows[offset:end])

    def select_one(self, table: str, filters: Filters) -> Optional[Row]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None

    def insert(self, table: str, row: Row) -> Row:
        now = _utcnow()
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", now)
        stored.setdefault("updated_at", now)
        if any(existing["id"] == stored["id"] for existing in self._table(table)):
            raise StoreError(f"duplicate key value violates unique constraint on {table}.id")
        self._table(table).append(stored)
        return copy.deepcopy(stored)

    def update(self, table: str, filters: Filters, changes: Row) -> list[Row]:
        updated = []
        now = _utcnow()
        for row in self._table(table):
            if _matches(row, filters):
                row.update(copy.deepcopy(changes))
                row["updated_at"] = now
                updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table: str, filters: Filters) -> int:
        rows = self._table(table)
        kept = [row for row in rows if not _matches(row, filters)]
        self._tables[table] = kept
        return len(rows) - len(kept)

    def count(self, table: str, filters: Optional[Filters] = None) -> int:
        return sum(1 for row in self._table(table) if _matches(row, filters))

    def ping(self) -> bool:
        return True
