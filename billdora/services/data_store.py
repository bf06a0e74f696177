"""
Data store contract and in-memory implementation.

The billing core treats persistence as an external collaborator exposing
table-oriented CRUD with equality/membership filters. Writes are atomic per
statement only; the invoice committer sequences multi-statement work.
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional

from billdora.services.errors import StoreError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Filters = Mapping[str, Any]


def matches(record: Mapping[str, Any], filters: Optional[Filters]) -> bool:
    """Check a record against equality/membership filters.

    A list, tuple or set filter value matches when the field is one of the
    values; ``None`` matches a missing or null field; anything else must be
    equal.

    Example:
        >>> matches({"id": "a", "invoice_id": None}, {"invoice_id": None})
        True
        >>> matches({"id": "a"}, {"id": ["b", "c"]})
        False
    """
    if not filters:
        return True
    for key, expected in filters.items():
        actual = record.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class DataStore(ABC):
    """Table-oriented persistence used by the billing session."""

    @abstractmethod
    def query(self, table: str, filters: Optional[Filters] = None) -> List[Record]:
        """Return records of ``table`` matching ``filters``."""

    @abstractmethod
    def insert(self, table: str, record: Record) -> Record:
        """Insert a record and return it as stored (with its id)."""

    def insert_many(self, table: str, records: Iterable[Record]) -> List[Record]:
        """Insert several records; not atomic across records."""
        return [self.insert(table, record) for record in records]

    @abstractmethod
    def update(self, table: str, patch: Record, filters: Filters) -> List[Record]:
        """Apply ``patch`` to matching records and return the updated rows.

        An empty result means no row matched, which callers use as a
        compare-and-swap failure.
        """


class InMemoryDataStore(DataStore):
    """
    Thread-safe in-memory data store.

    Features:
    - Ids (uuid4 hex) assigned on insert when missing
    - Unique ``id`` per table
    - Records copied in and out so callers never share mutable state
    """

    def __init__(self, tables: Optional[Mapping[str, Iterable[Record]]] = None):
        self._tables: Dict[str, List[Record]] = {}
        self._lock = threading.Lock()
        for table, records in (tables or {}).items():
            self._tables[table] = [copy.deepcopy(dict(r)) for r in records]

    def tables(self) -> List[str]:
        with self._lock:
            return sorted(self._tables)

    def query(self, table: str, filters: Optional[Filters] = None) -> List[Record]:
        with self._lock:
            rows = self._tables.get(table, [])
            return [copy.deepcopy(r) for r in rows if matches(r, filters)]

    def insert(self, table: str, record: Record) -> Record:
        with self._lock:
            rows = self._tables.setdefault(table, [])
            stored = copy.deepcopy(dict(record))
            if not stored.get("id"):
                stored["id"] = uuid.uuid4().hex
            elif any(r.get("id") == stored["id"] for r in rows):
                raise StoreError(
                    f"Duplicate id {stored['id']!r} in table {table!r}"
                )
            rows.append(stored)
            logger.debug(f"Inserted {table} record {stored['id']}")
            return copy.deepcopy(stored)

    def update(self, table: str, patch: Record, filters: Filters) -> List[Record]:
        if not filters:
            raise StoreError("Refusing to update without filters")

        with self._lock:
            updated = []
            for row in self._tables.get(table, []):
                if matches(row, filters):
                    row.update(copy.deepcopy(dict(patch)))
                    updated.append(copy.deepcopy(row))
            logger.debug(f"Updated {len(updated)} {table} record(s)")
            return updated
