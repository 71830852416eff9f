"""
Entity store contract.

Rows are plain dicts in JSON form (dates and decimals as strings), the same
shape the Supabase client returns, so the workflow layer behaves identically
on every backend.
"""

from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Iterator, Optional

# Tables the workflow engine reads and writes.
USERS = "users"
SUPERVISOR_PROFILES = "supervisor_profiles"
FACULTY_ASSIGNMENTS = "faculty_assignments"
CLASSES = "classes"
SITES = "sites"
PLACEMENTS = "placements"
TIMESHEET_ENTRIES = "timesheet_entries"
LEARNING_CONTRACTS = "learning_contracts"
PENDING_SUPERVISORS = "pending_supervisors"
AUDIT_LOGS = "audit_logs"
NOTIFICATIONS = "notifications"

Row = dict[str, Any]
Predicate = Callable[[Row], bool]


class EntityStore:
    """
    Repository operations the engine composes inside ``transaction()``.

    ``filters`` map a column to a value (equality) or to a list/tuple/set
    (membership). ``predicate`` is applied afterwards, in Python.
    """

    def get(self, table: str, row_id: str) -> Row:
        raise NotImplementedError

    def find(self, table: str, filters: Optional[dict] = None) -> Optional[Row]:
        rows = self.list(table, filters)
        return rows[0] if rows else None

    def list(
        self,
        table: str,
        filters: Optional[dict] = None,
        predicate: Optional[Predicate] = None,
    ) -> list[Row]:
        raise NotImplementedError

    def create(self, table: str, fields: Row) -> Row:
        raise NotImplementedError

    def update(self, table: str, row_id: str, fields: Row) -> Row:
        raise NotImplementedError

    def update_where(self, table: str, row_id: str, expected_status: str, fields: Row) -> Row:
        """Write ``fields`` only if the row's status still equals ``expected_status``."""
        raise NotImplementedError

    def delete(self, table: str, row_id: str) -> None:
        raise NotImplementedError

    @contextmanager
    def transaction(self) -> Iterator["EntityStore"]:
        raise NotImplementedError
        yield self


def plain(value: Any) -> Any:
    """Enum members become their values; collections are normalised recursively."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [plain(v) for v in value]
    return value


def matches(row: Row, filters: Optional[dict]) -> bool:
    if not filters:
        return True
    for column, expected in filters.items():
        value = row.get(column)
        expected = plain(expected)
        if isinstance(expected, list):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True
