"""
In-process sheet backend.

Used by the test suite and by `SHEETS_BACKEND=memory` for local development
without Google credentials.
"""
import threading
from typing import Dict, List, Sequence

from sheets.backend import SheetBackend


class InMemoryBackend(SheetBackend):

    def __init__(self):
        self._headers: Dict[str, List[str]] = {}
        self._rows: Dict[str, List[List[str]]] = {}
        self._lock = threading.Lock()
        self.read_count = 0

    def register_worksheet(self, title: str, header: Sequence[str]) -> None:
        with self._lock:
            self._headers[title] = list(header)
            self._rows.setdefault(title, [])

    def seed(self, title: str, rows: Sequence[Sequence[str]]) -> None:
        """Replace a worksheet's data rows (test fixtures, demo data)."""
        with self._lock:
            self._rows[title] = [list(row) for row in rows]

    def rows(self, title: str) -> List[List[str]]:
        with self._lock:
            return [list(row) for row in self._rows.get(title, [])]

    def read_rows(self, title: str) -> List[List[str]]:
        with self._lock:
            self.read_count += 1
            return [list(row) for row in self._rows.get(title, [])]

    def append_row(self, title: str, row: Sequence[str]) -> None:
        with self._lock:
            self._rows.setdefault(title, []).append(list(row))

    def update_row(self, title: str, offset: int, row: Sequence[str]) -> None:
        with self._lock:
            rows = self._rows.get(title, [])
            if offset < 0 or offset >= len(rows):
                raise IndexError(f"Row offset {offset} out of range for {title}")
            rows[offset] = list(row)

    def delete_row(self, title: str, offset: int) -> None:
        with self._lock:
            rows = self._rows.get(title, [])
            if offset < 0 or offset >= len(rows):
                raise IndexError(f"Row offset {offset} out of range for {title}")
            del rows[offset]
