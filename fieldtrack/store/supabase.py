"""
Supabase-backed entity store.

PostgREST has no multi-statement transactions, so ``transaction()`` is a
compensating unit of work: every write made inside the block is journalled
and undone in reverse order if the block raises. Status writes use the same
``.eq("status", ...)`` compare-and-swap filter as a plain update, so two
racing approvals can never both succeed. The one-open-placement-per-student
rule is additionally backed by a partial unique index (sql/schema.sql).
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from postgrest.exceptions import APIError
from supabase import Client

from fieldtrack.core.errors import ConflictError, NotFoundError, StaleStatusError
from fieldtrack.store.base import EntityStore, Predicate, Row, plain

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _translate(exc: APIError, table: str):
    if getattr(exc, "code", None) == UNIQUE_VIOLATION:
        return ConflictError(f"{table}: {exc.message}")
    return exc


class SupabaseEntityStore(EntityStore):
    def __init__(self, client: Client):
        self.db = client
        self._local = threading.local()

    # ---- journal ----

    def _journal(self) -> Optional[list]:
        return getattr(self._local, "journal", None)

    def _record(self, entry: tuple):
        journal = self._journal()
        if journal is not None:
            journal.append(entry)

    # ---- reads ----

    def get(self, table: str, row_id: str) -> Row:
        result = self.db.table(table).select("*").eq("id", row_id).limit(1).execute()
        if not result or not result.data:
            raise NotFoundError(f"{table} row '{row_id}' not found")
        return result.data[0]

    def list(
        self,
        table: str,
        filters: Optional[dict] = None,
        predicate: Optional[Predicate] = None,
    ) -> list[Row]:
        query = self.db.table(table).select("*")
        for column, expected in (filters or {}).items():
            expected = plain(expected)
            if isinstance(expected, list):
                query = query.in_(column, expected)
            elif expected is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, expected)
        rows = query.execute().data or []
        if predicate is not None:
            rows = [r for r in rows if predicate(r)]
        return rows

    # ---- writes ----

    def create(self, table: str, fields: Row) -> Row:
        row = {k: plain(v) for k, v in fields.items()}
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        try:
            result = self.db.table(table).insert(row).execute()
        except APIError as exc:
            raise _translate(exc, table) from exc
        created = result.data[0]
        self._record(("delete", table, created["id"]))
        return created

    def _update(self, table: str, row_id: str, fields: Row, expected_status=None) -> Row:
        previous = self.get(table, row_id)
        query = self.db.table(table).update({k: plain(v) for k, v in fields.items()}).eq("id", row_id)
        if expected_status is not None:
            query = query.eq("status", plain(expected_status))
        try:
            result = query.execute()
        except APIError as exc:
            raise _translate(exc, table) from exc
        if not result.data:
            if expected_status is not None:
                raise StaleStatusError(
                    f"{table} row '{row_id}' is no longer '{plain(expected_status)}'"
                )
            raise NotFoundError(f"{table} row '{row_id}' not found")
        self._record(("restore", table, row_id, {k: previous.get(k) for k in fields}))
        return result.data[0]

    def update(self, table: str, row_id: str, fields: Row) -> Row:
        return self._update(table, row_id, fields)

    def update_where(self, table: str, row_id: str, expected_status: str, fields: Row) -> Row:
        return self._update(table, row_id, fields, expected_status=expected_status)

    def delete(self, table: str, row_id: str) -> None:
        previous = self.get(table, row_id)
        self.db.table(table).delete().eq("id", row_id).execute()
        self._record(("reinsert", table, previous))

    # ---- unit of work ----

    def _undo(self, journal: list):
        for entry in reversed(journal):
            action, table = entry[0], entry[1]
            try:
                if action == "delete":
                    self.db.table(table).delete().eq("id", entry[2]).execute()
                elif action == "restore":
                    self.db.table(table).update(entry[3]).eq("id", entry[2]).execute()
                elif action == "reinsert":
                    self.db.table(table).insert(entry[2]).execute()
            except Exception:
                logger.exception("Compensation failed for %s on %s", action, table)

    @contextmanager
    def transaction(self) -> Iterator["SupabaseEntityStore"]:
        outermost = self._journal() is None
        if outermost:
            self._local.journal = []
        try:
            yield self
        except BaseException:
            if outermost:
                logger.warning("Rolling back %d supabase writes", len(self._local.journal))
                self._undo(self._local.journal)
            raise
        finally:
            if outermost:
                self._local.journal = None
