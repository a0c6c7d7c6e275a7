"""
Row-level interface every spreadsheet backend implements.

Offsets are 0-based positions among the data rows (the header row is not
counted): offset 0 is sheet row 2.
"""
from abc import ABC, abstractmethod
from typing import List, Sequence


HEADER_ROWS = 1


def sheet_row_number(offset: int) -> int:
    """1-based sheet row number for a data row offset."""
    return offset + HEADER_ROWS + 1


class SheetBackend(ABC):

    @abstractmethod
    def register_worksheet(self, title: str, header: Sequence[str]) -> None:
        """Declare a worksheet and its header row (created on first use if missing)."""

    @abstractmethod
    def read_rows(self, title: str) -> List[List[str]]:
        """Return every data row of the worksheet, header excluded."""

    @abstractmethod
    def append_row(self, title: str, row: Sequence[str]) -> None:
        """Append one row after the last data row."""

    @abstractmethod
    def update_row(self, title: str, offset: int, row: Sequence[str]) -> None:
        """Overwrite the data row at `offset`."""

    @abstractmethod
    def delete_row(self, title: str, offset: int) -> None:
        """Remove the data row at `offset`; later rows shift up by one."""
