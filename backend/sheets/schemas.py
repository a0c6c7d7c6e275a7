"""
Entity shapes and fixed column layouts for every worksheet.

Columns are addressed by position: the order of `columns` in each schema is
the order of cells in the sheet (A, B, C, ...). Reordering sheet columns
breaks the mapping.
"""
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from core.errors import MalformedRow


SHIFTS = ('FN', 'AN')
STATUS_ACTIVE = 'Active'
STATUS_CANCELLED = 'Cancelled'
REGISTRATION_STATUSES = (STATUS_ACTIVE, STATUS_CANCELLED)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with milliseconds."""
    now = datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f"{now.microsecond // 1000:03d}Z"


@dataclass
class Student:
    enrollment_no: str
    name: str = ''
    class_name: str = ''
    division: str = ''
    shift: str = ''
    contact_no1: str = ''
    contact_no2: str = ''
    address: str = ''
    parent_name: str = ''


@dataclass
class TransportRegistration:
    enrollment_no: str
    bus_number: str = ''
    route_number: str = ''
    stop_name: str = ''
    registration_date: str = ''
    status: str = STATUS_ACTIVE
    cancellation_date: str = ''
    last_updated: str = ''

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE


@dataclass
class Bus:
    bus_number: str
    capacity: int = 0
    route_number: str = ''
    driver_name: str = ''
    driver_contact: str = ''
    conductor_name: str = ''
    conductor_contact: str = ''
    teacher_assigned: str = ''
    shift: str = ''


@dataclass
class Route:
    route_number: str
    route_name: str = ''
    stops: List[str] = field(default_factory=list)
    total_distance: str = ''
    area: str = ''


@dataclass
class Teacher:
    teacher_id: str
    name: str = ''
    contact: str = ''
    subject: str = ''
    assigned_bus: str = ''


@dataclass(frozen=True)
class Column:
    attr: str
    api_name: str
    title: str
    kind: str = 'text'  # text | int | list


def _parse_stops(raw: str) -> List[str]:
    if not raw.strip():
        return []
    stops = [stop.strip() for stop in raw.split(',')]
    if any(not stop for stop in stops):
        raise ValueError(f"stop list contains a blank entry: {raw!r}")
    return stops


def _parse_capacity(raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f"capacity is not an integer: {raw!r}")
    if value < 0:
        raise ValueError(f"capacity is negative: {raw!r}")
    return value


class SheetSchema:
    """Maps one worksheet's rows to and from an entity dataclass."""

    def __init__(
        self,
        collection: str,
        entity_cls: type,
        columns: Sequence[Column],
        immutable: Sequence[str] = (),
    ):
        self.collection = collection
        self.entity_cls = entity_cls
        self.columns = list(columns)
        self.key_attr = self.columns[0].attr
        # The key column is never rewritten by an update
        self.immutable = {self.key_attr, *immutable}
        self._by_api_name = {col.api_name: col for col in self.columns}
        self._attrs = {col.attr for col in self.columns}

        entity_attrs = {f.name for f in fields(entity_cls)}
        if entity_attrs != self._attrs:
            raise ValueError(f"Schema for {collection} does not cover {entity_cls.__name__} fields")

    @property
    def width(self) -> int:
        return len(self.columns)

    def header_row(self) -> List[str]:
        return [col.title for col in self.columns]

    def key_of(self, cells: Sequence[str]) -> str:
        return str(cells[0]).strip() if cells else ''

    def to_row(self, entity: Any) -> List[str]:
        row = []
        for col in self.columns:
            value = getattr(entity, col.attr)
            if col.kind == 'list':
                row.append(', '.join(value or []))
            elif value is None:
                row.append('')
            else:
                row.append(str(value))
        return row

    def from_row(self, cells: Sequence[str], row_number: int) -> Any:
        """
        Build an entity from raw cells.

        Short rows are padded (the Sheets API trims trailing empty cells).
        `row_number` is the 1-based sheet row, used in error messages.
        """
        padded = [str(c) if c is not None else '' for c in cells]
        padded += [''] * (self.width - len(padded))

        values = {}
        for col, raw in zip(self.columns, padded):
            try:
                if col.kind == 'int':
                    values[col.attr] = _parse_capacity(raw)
                elif col.kind == 'list':
                    values[col.attr] = _parse_stops(raw)
                else:
                    values[col.attr] = raw.strip()
            except ValueError as e:
                raise MalformedRow(self.collection, row_number, str(e))
        return self.entity_cls(**values)

    def merge(self, entity: Any, changes: Dict[str, Any]) -> Any:
        """
        Overlay `changes` (attr -> value) onto `entity`.

        Missing or None values keep the stored value; immutable attributes are
        ignored.
        """
        unknown = set(changes) - self._attrs
        if unknown:
            raise ValueError(f"Unknown {self.collection} fields: {', '.join(sorted(unknown))}")

        applied = {
            attr: value
            for attr, value in changes.items()
            if value is not None and attr not in self.immutable
        }
        return replace(entity, **applied)

    def to_api(self, entity: Any) -> Dict[str, Any]:
        return {col.api_name: getattr(entity, col.attr) for col in self.columns}

    def from_api(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Translate an API payload (camelCase keys) to attr keys; unknown keys are dropped."""
        result = {}
        for api_name, value in data.items():
            col = self._by_api_name.get(api_name)
            if col is not None:
                result[col.attr] = value
        return result


STUDENTS = SheetSchema('Students', Student, [
    Column('enrollment_no', 'enrollmentNo', 'Enrollment No'),
    Column('name', 'name', 'Name'),
    Column('class_name', 'class', 'Class'),
    Column('division', 'division', 'Division'),
    Column('shift', 'shift', 'Shift'),
    Column('contact_no1', 'contactNo1', 'Contact No 1'),
    Column('contact_no2', 'contactNo2', 'Contact No 2'),
    Column('address', 'address', 'Address'),
    Column('parent_name', 'parentName', 'Parent Name'),
])

REGISTRATIONS = SheetSchema('Transport_Registrations', TransportRegistration, [
    Column('enrollment_no', 'enrollmentNo', 'Enrollment No'),
    Column('bus_number', 'busNumber', 'Bus Number'),
    Column('route_number', 'routeNumber', 'Route Number'),
    Column('stop_name', 'stopName', 'Stop Name'),
    Column('registration_date', 'registrationDate', 'Registration Date'),
    Column('status', 'status', 'Status'),
    Column('cancellation_date', 'cancellationDate', 'Cancellation Date'),
    Column('last_updated', 'lastUpdated', 'Last Updated'),
], immutable=('registration_date',))

BUSES = SheetSchema('Buses', Bus, [
    Column('bus_number', 'busNumber', 'Bus Number'),
    Column('capacity', 'capacity', 'Capacity', kind='int'),
    Column('route_number', 'routeNumber', 'Route Number'),
    Column('driver_name', 'driverName', 'Driver Name'),
    Column('driver_contact', 'driverContact', 'Driver Contact'),
    Column('conductor_name', 'conductorName', 'Conductor Name'),
    Column('conductor_contact', 'conductorContact', 'Conductor Contact'),
    Column('teacher_assigned', 'teacherAssigned', 'Teacher Assigned'),
    Column('shift', 'shift', 'Shift'),
])

ROUTES = SheetSchema('Routes', Route, [
    Column('route_number', 'routeNumber', 'Route Number'),
    Column('route_name', 'routeName', 'Route Name'),
    Column('stops', 'stops', 'Stops', kind='list'),
    Column('total_distance', 'totalDistance', 'Total Distance'),
    Column('area', 'area', 'Area'),
])

TEACHERS = SheetSchema('Teachers', Teacher, [
    Column('teacher_id', 'teacherId', 'Teacher ID'),
    Column('name', 'name', 'Name'),
    Column('contact', 'contact', 'Contact'),
    Column('subject', 'subject', 'Subject'),
    Column('assigned_bus', 'assignedBus', 'Assigned Bus'),
])
