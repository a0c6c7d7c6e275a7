"""
Record store over spreadsheet worksheets.

Each collection keeps a snapshot of its rows and an index from key to row
offsets. Reads are answered from the snapshot while it is fresher than the
cache TTL; update and delete re-read the worksheet first because they address
the sheet by row position. Nothing spans collections: a caller that writes to
two collections performs two independent writes.
"""
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.config import Config
from core.errors import NotFound
from core.logger import logger
from sheets.backend import SheetBackend, sheet_row_number
from sheets.schemas import (
    BUSES,
    REGISTRATIONS,
    ROUTES,
    STUDENTS,
    TEACHERS,
    SheetSchema,
    STATUS_ACTIVE,
    TransportRegistration,
    utc_now_iso,
)


class SheetCollection:
    """Read access to one worksheet, keyed by its first column."""

    def __init__(
        self,
        backend: SheetBackend,
        schema: SheetSchema,
        worksheet: Optional[str] = None,
        cache_ttl: float = 30.0,
    ):
        self.backend = backend
        self.schema = schema
        self.worksheet = worksheet or schema.collection
        self.cache_ttl = cache_ttl

        self._rows: Optional[List[List[str]]] = None
        self._index: Dict[str, List[int]] = {}
        self._loaded_at = 0.0
        # Serializes hydration and row mutations for this worksheet
        self._lock = threading.RLock()

        self.backend.register_worksheet(self.worksheet, schema.header_row())

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def _hydrate(self) -> None:
        rows = self.backend.read_rows(self.worksheet)
        self._rows = [list(row) for row in rows]
        self._rebuild_index()
        self._loaded_at = time.monotonic()
        logger.debug(f"Loaded {len(self._rows)} rows from {self.worksheet}")

    def _rebuild_index(self) -> None:
        index: Dict[str, List[int]] = {}
        for offset, row in enumerate(self._rows or []):
            key = self.schema.key_of(row)
            if key:
                index.setdefault(key, []).append(offset)
        self._index = index

    def _ensure_fresh(self, force: bool = False) -> None:
        expired = (
            self.cache_ttl <= 0
            or time.monotonic() - self._loaded_at >= self.cache_ttl
        )
        if force or self._rows is None or expired:
            self._hydrate()

    def refresh(self) -> None:
        """Drop the snapshot and reload it from the backend."""
        with self._lock:
            self._hydrate()

    def _entity_at(self, offset: int) -> Any:
        return self.schema.from_row(self._rows[offset], sheet_row_number(offset))

    def _matches(self, entity: Any) -> bool:
        """Extra condition a keyed row must meet to count as a hit."""
        return True

    def _locate(self, key: str) -> Optional[Tuple[int, Any]]:
        """First (offset, entity) for `key` in sheet order, or None."""
        for offset in self._index.get(str(key).strip(), []):
            entity = self._entity_at(offset)
            if self._matches(entity):
                return offset, entity
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Entity for `key`, or None when no row matches."""
        with self._lock:
            self._ensure_fresh()
            found = self._locate(key)
        return found[1] if found else None

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def list(self, predicate: Optional[Callable[[Any], bool]] = None, **filters) -> List[Any]:
        """
        All entities in sheet order, optionally filtered.

        `filters` match attributes by equality (None values are ignored), e.g.
        `list(shift='FN')`.
        """
        with self._lock:
            self._ensure_fresh()
            entities = [self._entity_at(offset) for offset in range(len(self._rows))]

        active_filters = {k: v for k, v in filters.items() if v is not None}
        if active_filters:
            entities = [
                e for e in entities
                if all(getattr(e, attr) == value for attr, value in active_filters.items())
            ]
        if predicate is not None:
            entities = [e for e in entities if predicate(e)]
        return entities

    def count(self, **filters) -> int:
        return len(self.list(**filters))

    # ------------------------------------------------------------------
    # Writes (used by subclasses that allow them)
    # ------------------------------------------------------------------

    def _append(self, entity: Any) -> Any:
        row = self.schema.to_row(entity)
        with self._lock:
            self.backend.append_row(self.worksheet, row)
            if self._rows is not None:
                self._rows.append(row)
                key = self.schema.key_of(row)
                if key:
                    self._index.setdefault(key, []).append(len(self._rows) - 1)
        logger.info(f"Appended {self.worksheet} row for {self.schema.key_of(row)}")
        return entity

    def _update(self, key: str, changes: Dict[str, Any], stamp: Optional[Callable[[Any], Any]] = None) -> Any:
        with self._lock:
            self._ensure_fresh(force=True)
            found = self._locate(key)
            if found is None:
                raise NotFound(self.schema.collection, key)

            offset, current = found
            updated = self.schema.merge(current, changes)
            if stamp is not None:
                updated = stamp(updated)

            row = self.schema.to_row(updated)
            self.backend.update_row(self.worksheet, offset, row)
            self._rows[offset] = row
        logger.info(f"Updated {self.worksheet} row {sheet_row_number(offset)} for {key}")
        return updated

    def _delete(self, key: str) -> None:
        with self._lock:
            self._ensure_fresh(force=True)
            found = self._locate(key)
            if found is None:
                raise NotFound(self.schema.collection, key)

            offset, _entity = found
            self.backend.delete_row(self.worksheet, offset)
            del self._rows[offset]
            self._rebuild_index()
        logger.info(f"Deleted {self.worksheet} row {sheet_row_number(offset)} for {key}")


class EntityCollection(SheetCollection):
    """Worksheet with full create/update/delete (buses, routes, teachers)."""

    def create(self, entity: Any) -> Any:
        """Append `entity`; duplicate keys are not checked here."""
        return self._append(entity)

    def update(self, key: str, changes: Dict[str, Any]) -> Any:
        """Merge `changes` over the stored row; raises NotFound if `key` is absent."""
        return self._update(key, changes)

    def delete(self, key: str) -> None:
        """Physically remove the row for `key`; raises NotFound if absent."""
        self._delete(key)


class RegistrationCollection(SheetCollection):
    """
    Transport registrations.

    Enrollment numbers repeat across history; lookups by key only see the
    row whose status is Active. Rows are never deleted.
    """

    def __init__(self, *args, clock: Callable[[], str] = utc_now_iso, **kwargs):
        super().__init__(*args, **kwargs)
        self.clock = clock

    def _matches(self, entity: TransportRegistration) -> bool:
        return entity.is_active

    def list(self, predicate=None, active_only: bool = True, **filters) -> List[TransportRegistration]:
        if active_only:
            filters['status'] = STATUS_ACTIVE
        return super().list(predicate, **filters)

    def history(self, enrollment_no: str) -> List[TransportRegistration]:
        """Every registration row for a student, oldest first."""
        with self._lock:
            self._ensure_fresh()
            offsets = self._index.get(str(enrollment_no).strip(), [])
            return [self._entity_at(offset) for offset in offsets]

    def create(self, registration: TransportRegistration) -> TransportRegistration:
        return self._append(registration)

    def update(self, enrollment_no: str, changes: Dict[str, Any]) -> TransportRegistration:
        """Rewrite the Active row for `enrollment_no` and stamp lastUpdated."""
        def _stamp(registration):
            registration.last_updated = self.clock()
            return registration

        return self._update(enrollment_no, changes, stamp=_stamp)


class RecordStore:
    """All transport collections over one backend."""

    def __init__(
        self,
        backend: SheetBackend,
        cache_ttl: float = 30.0,
        worksheet_names: Optional[Dict[str, str]] = None,
        clock: Callable[[], str] = utc_now_iso,
    ):
        names = worksheet_names or {}
        self.backend = backend
        self.students = SheetCollection(
            backend, STUDENTS, names.get('students'), cache_ttl=cache_ttl
        )
        self.registrations = RegistrationCollection(
            backend, REGISTRATIONS, names.get('registrations'), cache_ttl=cache_ttl, clock=clock
        )
        self.buses = EntityCollection(
            backend, BUSES, names.get('buses'), cache_ttl=cache_ttl
        )
        self.routes = EntityCollection(
            backend, ROUTES, names.get('routes'), cache_ttl=cache_ttl
        )
        self.teachers = EntityCollection(
            backend, TEACHERS, names.get('teachers'), cache_ttl=cache_ttl
        )

    def collections(self) -> Dict[str, SheetCollection]:
        return {
            'students': self.students,
            'registrations': self.registrations,
            'buses': self.buses,
            'routes': self.routes,
            'teachers': self.teachers,
        }

    def refresh_all(self) -> None:
        for collection in self.collections().values():
            collection.refresh()
        logger.info("All record store snapshots refreshed")


def build_record_store(config: Config) -> RecordStore:
    """Construct the record store for the configured backend."""
    if config.sheets_backend == 'memory':
        from sheets.memory_backend import InMemoryBackend

        logger.warning("Using in-memory sheet backend; data is not persisted")
        backend = InMemoryBackend()
    elif config.sheets_backend == 'google':
        from sheets.google_sheets_backend import GoogleSheetsBackend

        backend = GoogleSheetsBackend(
            config.sheet_id,
            min_request_interval=config.min_request_interval,
        )
    else:
        raise ValueError(f"Unknown SHEETS_BACKEND: {config.sheets_backend}")

    return RecordStore(
        backend,
        cache_ttl=config.cache_ttl,
        worksheet_names=config.worksheet_names,
    )
