"""
In-process entity store.

Used by the test-suite and by local runs (``STORE_BACKEND=memory``).
Transactions hold a re-entrant lock for their whole duration and restore a
snapshot of every table if the block raises, so a check-then-write inside
one transaction is serialised against every other transaction.
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from fieldtrack.core.errors import ConflictError, NotFoundError, StaleStatusError
from fieldtrack.store.base import (
    EntityStore,
    LEARNING_CONTRACTS,
    Predicate,
    Row,
    USERS,
    matches,
    plain,
)

logger = logging.getLogger(__name__)

# Single-column unique constraints, mirroring sql/schema.sql.
UNIQUE_COLUMNS = {
    USERS: ("email",),
    LEARNING_CONTRACTS: ("token",),
}


class MemoryEntityStore(EntityStore):
    def __init__(self, unique_columns: Optional[dict] = None):
        self._tables: dict[str, dict[str, Row]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._unique = unique_columns if unique_columns is not None else UNIQUE_COLUMNS

    def _table(self, table: str) -> dict[str, Row]:
        return self._tables.setdefault(table, {})

    # ---- reads ----

    def get(self, table: str, row_id: str) -> Row:
        with self._lock:
            row = self._table(table).get(row_id)
            if row is None:
                raise NotFoundError(f"{table} row '{row_id}' not found")
            return dict(row)

    def list(
        self,
        table: str,
        filters: Optional[dict] = None,
        predicate: Optional[Predicate] = None,
    ) -> list[Row]:
        with self._lock:
            rows = [dict(r) for r in self._table(table).values() if matches(r, filters)]
        if predicate is not None:
            rows = [r for r in rows if predicate(r)]
        return rows

    # ---- writes ----

    def _check_unique(self, table: str, row: Row, exclude_id: Optional[str] = None):
        for column in self._unique.get(table, ()):
            value = row.get(column)
            if value is None:
                continue
            for other_id, other in self._table(table).items():
                if other_id != exclude_id and other.get(column) == value:
                    raise ConflictError(f"{table}.{column} '{value}' already exists")

    def create(self, table: str, fields: Row) -> Row:
        row = {k: plain(v) for k, v in fields.items()}
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        with self._lock:
            if row["id"] in self._table(table):
                raise ConflictError(f"{table} row '{row['id']}' already exists")
            self._check_unique(table, row)
            self._table(table)[row["id"]] = row
            return dict(row)

    def update(self, table: str, row_id: str, fields: Row) -> Row:
        with self._lock:
            current = self._table(table).get(row_id)
            if current is None:
                raise NotFoundError(f"{table} row '{row_id}' not found")
            updated = {**current, **{k: plain(v) for k, v in fields.items()}}
            self._check_unique(table, updated, exclude_id=row_id)
            self._table(table)[row_id] = updated
            return dict(updated)

    def update_where(self, table: str, row_id: str, expected_status: str, fields: Row) -> Row:
        with self._lock:
            current = self._table(table).get(row_id)
            if current is None:
                raise NotFoundError(f"{table} row '{row_id}' not found")
            if current.get("status") != plain(expected_status):
                raise StaleStatusError(
                    f"{table} row '{row_id}' is '{current.get('status')}', expected '{plain(expected_status)}'"
                )
            return self.update(table, row_id, fields)

    def delete(self, table: str, row_id: str) -> None:
        with self._lock:
            if self._table(table).pop(row_id, None) is None:
                raise NotFoundError(f"{table} row '{row_id}' not found")

    @contextmanager
    def transaction(self) -> Iterator["MemoryEntityStore"]:
        with self._lock:
            snapshot = copy.deepcopy(self._tables) if self._depth == 0 else None
            self._depth += 1
            try:
                yield self
            except BaseException:
                if snapshot is not None:
                    logger.debug("Rolling back memory store transaction")
                    self._tables = snapshot
                raise
            finally:
                self._depth -= 1
