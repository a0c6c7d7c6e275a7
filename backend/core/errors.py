"""
Exceptions raised by the record store and the transport workflow.
"""
from typing import Optional


class RecordStoreError(Exception):
    """Base class for record store failures."""
    pass


class NotFound(RecordStoreError):
    """No row matches the requested key."""

    def __init__(self, collection: str, key: str, message: Optional[str] = None):
        self.collection = collection
        self.key = key
        super().__init__(message or f"{collection} record not found: {key}")


class BackendUnavailable(RecordStoreError):
    """The spreadsheet backend could not be reached or refused the request."""
    pass


class MalformedRow(RecordStoreError):
    """A stored row cannot be mapped to its entity."""

    def __init__(self, collection: str, row_number: int, reason: str):
        self.collection = collection
        self.row_number = row_number
        self.reason = reason
        super().__init__(f"Malformed row {row_number} in {collection}: {reason}")


class ValidationError(Exception):
    """Invalid input supplied by the caller"""
    pass


class AlreadyRegistered(Exception):
    """The student already has an active transport registration."""

    def __init__(self, enrollment_no: str):
        self.enrollment_no = enrollment_no
        super().__init__(f"Student {enrollment_no} already has an active transport registration")


class CapacityExceeded(Exception):
    """The bus has no free seat left."""

    def __init__(self, bus_number: str, capacity: int):
        self.bus_number = bus_number
        self.capacity = capacity
        super().__init__(f"Bus {bus_number} is full (capacity {capacity})")
