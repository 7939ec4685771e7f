"""
In-memory entity store.

Keeps one list of records per entity. Reads hand back the stored record
objects, so updates applied by the executor are visible immediately.
"""

import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
from uuid import UUID


class InMemoryEntityStore:
    """Entity store backed by process memory; safe to share across threads."""

    def __init__(self, entities: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._records: Dict[str, List[Any]] = {name.lower(): [] for name in entities or []}

    def _bucket(self, entity: str) -> List[Any]:
        return self._records.setdefault(entity.lower(), [])

    def seed(self, entity: str, records: Iterable[Any]) -> None:
        """Load records without validation, for fixtures and demos."""
        with self._lock:
            self._bucket(entity).extend(records)

    def find(
        self,
        entity: str,
        predicate: Optional[Callable[[Any], bool]] = None,
        tenant_id: Optional[UUID] = None,
        equals: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        with self._lock:
            records = list(self._bucket(entity))
        if tenant_id is not None:
            records = [record for record in records if getattr(record, "tenant_id", None) == tenant_id]
        if equals:
            records = [record for record in records if _has_values(record, equals)]
        if predicate is not None:
            records = [record for record in records if predicate(record)]
        return records

    def add(self, entity: str, record: Any) -> None:
        with self._lock:
            self._bucket(entity).append(record)

    def update(self, entity: str, records: Iterable[Any]) -> None:
        # Records are the stored objects; changes are already in place
        return None

    def remove(self, entity: str, records: Iterable[Any]) -> None:
        doomed = {id(record) for record in records}
        with self._lock:
            bucket = self._bucket(entity)
            bucket[:] = [record for record in bucket if id(record) not in doomed]

    def count(self, entity: str) -> int:
        with self._lock:
            return len(self._bucket(entity))


def _has_values(record: Any, equals: Mapping[str, Any]) -> bool:
    fields = type(record).model_fields
    for name, expected in equals.items():
        attribute = next((attr for attr, info in fields.items() if (info.alias or attr) == name), name)
        if getattr(record, attribute, None) != expected:
            return False
    return True
