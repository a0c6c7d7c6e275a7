"""
Transport registration workflow.

Sequences the record store calls behind register / update / cancel and keeps
at most one Active registration per student. Calls for the same enrollment
number are serialized with a per-student lock, so the "no Active row" check
and the append happen as one step within this process. The registration
snapshot is re-read inside that lock, so rows written by other workers or
typed into the sheet are seen before the check.
"""
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from core.errors import AlreadyRegistered, CapacityExceeded, NotFound, ValidationError
from core.logger import logger
from notifications.sms_templates import (
    DEFAULT_SCHOOL_NAME,
    build_sms_data,
    generate_cancellation_sms,
    generate_registration_sms,
    generate_route_change_sms,
    generate_stop_change_sms,
)
from sheets.record_store import RecordStore
from sheets.schemas import (
    REGISTRATION_STATUSES,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    Bus,
    Route,
    Student,
    TransportRegistration,
    utc_now_iso,
)


UPDATABLE_FIELDS = ('bus_number', 'route_number', 'stop_name', 'status')
TRANSPORT_ACTIONS = ('register', 'update', 'cancel')


@dataclass
class RegistrationResult:
    registration: TransportRegistration
    student: Optional[Student]
    message: str


class TransportRegistrationService:
    """Register, update and cancel student transport."""

    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], str] = utc_now_iso,
        school_name: str = DEFAULT_SCHOOL_NAME,
    ):
        self.store = store
        self.clock = clock
        self.school_name = school_name

        # Entries drop out once no call holds the lock
        self._student_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._student_locks_guard = threading.Lock()

    def _lock_for(self, enrollment_no: str) -> threading.Lock:
        with self._student_locks_guard:
            lock = self._student_locks.get(enrollment_no)
            if lock is None:
                lock = threading.Lock()
                self._student_locks[enrollment_no] = lock
            return lock

    def _normalize(self, enrollment_no: str) -> str:
        """Keys are matched trimmed by the store; lock on the same form."""
        return str(enrollment_no or '').strip()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _require_student(self, enrollment_no: str) -> Student:
        student = self.store.students.get(enrollment_no)
        if student is None:
            raise NotFound('Students', enrollment_no, f"Student not found: {enrollment_no}")
        return student

    def _require_bus(self, bus_number: str) -> Bus:
        bus = self.store.buses.get(bus_number)
        if bus is None:
            raise NotFound('Buses', bus_number, f"Bus not found: {bus_number}")
        return bus

    def _require_route(self, route_number: str) -> Route:
        route = self.store.routes.get(route_number)
        if route is None:
            raise NotFound('Routes', route_number, f"Route not found: {route_number}")
        return route

    def _check_assignment(self, bus: Bus, route: Route, stop_name: str) -> None:
        errors = []
        if bus.route_number and bus.route_number != route.route_number:
            errors.append(
                f"Bus {bus.bus_number} serves route {bus.route_number}, not {route.route_number}"
            )
        if stop_name not in route.stops:
            errors.append(f"Stop '{stop_name}' is not on route {route.route_number}")
        if errors:
            raise ValidationError('; '.join(errors))

    def _check_capacity(self, bus: Bus) -> None:
        occupancy = self.store.registrations.count(bus_number=bus.bus_number)
        if occupancy >= bus.capacity:
            raise CapacityExceeded(bus.bus_number, bus.capacity)

    def _effective_date(self, timestamp: str) -> str:
        return timestamp[:10]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, enrollment_no: str) -> Optional[TransportRegistration]:
        """Active registration for a student, or None."""
        return self.store.registrations.get(enrollment_no)

    def list(self, bus_number: Optional[str] = None, shift: Optional[str] = None) -> List[TransportRegistration]:
        registrations = self.store.registrations.list(bus_number=bus_number)
        if shift:
            students = {s.enrollment_no: s for s in self.store.students.list()}
            registrations = [
                r for r in registrations
                if r.enrollment_no in students and students[r.enrollment_no].shift == shift
            ]
        return registrations

    def history(self, enrollment_no: str) -> List[TransportRegistration]:
        return self.store.registrations.history(enrollment_no)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register(
        self,
        enrollment_no: str,
        bus_number: str,
        route_number: str,
        stop_name: str,
    ) -> RegistrationResult:
        """
        Create a new Active registration.

        Raises NotFound for an unknown student, bus or route, ValidationError
        when the bus/route/stop combination is inconsistent, CapacityExceeded
        when the bus is full and AlreadyRegistered when the student already
        has an Active registration.
        """
        enrollment_no = self._normalize(enrollment_no)
        student = self._require_student(enrollment_no)

        with self._lock_for(enrollment_no):
            bus = self._require_bus(bus_number)
            route = self._require_route(route_number)
            self._check_assignment(bus, route, stop_name)

            self.store.registrations.refresh()
            if self.store.registrations.get(enrollment_no) is not None:
                raise AlreadyRegistered(enrollment_no)
            self._check_capacity(bus)

            now = self.clock()
            registration = TransportRegistration(
                enrollment_no=enrollment_no,
                bus_number=bus_number,
                route_number=route_number,
                stop_name=stop_name,
                registration_date=now,
                status=STATUS_ACTIVE,
                cancellation_date='',
                last_updated=now,
            )
            self.store.registrations.create(registration)

        logger.info(f"Registered {enrollment_no} on bus {bus_number}, route {route_number}, stop '{stop_name}'")
        message = generate_registration_sms(
            build_sms_data(student, registration, bus, route, self._effective_date(now)),
            school_name=self.school_name,
        )
        return RegistrationResult(registration, student, message)

    def update(self, enrollment_no: str, changes: Dict[str, Any]) -> RegistrationResult:
        """
        Rewrite the given fields of the Active registration.

        When the bus changes without an explicit route, the route follows the
        new bus. Setting status to Cancelled behaves like `cancel`.
        """
        enrollment_no = self._normalize(enrollment_no)
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        changes = {k: v for k, v in changes.items() if v is not None}
        if changes.get('status') == STATUS_CANCELLED:
            return self.cancel(enrollment_no)
        if 'status' in changes and changes['status'] not in REGISTRATION_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(REGISTRATION_STATUSES)}")

        with self._lock_for(enrollment_no):
            self.store.registrations.refresh()
            current = self.store.registrations.get(enrollment_no)
            if current is None:
                raise NotFound(
                    'Transport_Registrations', enrollment_no,
                    f"Active registration not found: {enrollment_no}",
                )

            bus_number = changes.get('bus_number', current.bus_number)
            bus = self._require_bus(bus_number)
            if 'bus_number' in changes and 'route_number' not in changes and bus.route_number:
                changes['route_number'] = bus.route_number
            route = self._require_route(changes.get('route_number', current.route_number))
            stop_name = changes.get('stop_name', current.stop_name)
            self._check_assignment(bus, route, stop_name)

            if bus_number != current.bus_number:
                self._check_capacity(bus)

            updated = self.store.registrations.update(enrollment_no, changes)

        student = self.store.students.get(enrollment_no)
        data = build_sms_data(student, updated, bus, route, self._effective_date(updated.last_updated))
        if updated.bus_number != current.bus_number or updated.route_number != current.route_number:
            old_route = self.store.routes.get(current.route_number)
            data.update({
                'old_bus_number': current.bus_number,
                'new_bus_number': updated.bus_number,
                'old_route': old_route.route_name if old_route else current.route_number,
                'new_route': route.route_name,
            })
            message = generate_route_change_sms(data, school_name=self.school_name)
        elif updated.stop_name != current.stop_name:
            data.update({'old_stop': current.stop_name, 'new_stop': updated.stop_name})
            message = generate_stop_change_sms(data, school_name=self.school_name)
        else:
            message = ''

        logger.info(f"Updated transport registration for {enrollment_no}: {sorted(changes)}")
        return RegistrationResult(updated, student, message)

    def cancel(self, enrollment_no: str) -> RegistrationResult:
        """Mark the Active registration Cancelled; the row is kept as history."""
        enrollment_no = self._normalize(enrollment_no)
        with self._lock_for(enrollment_no):
            now = self.clock()
            cancelled = self.store.registrations.update(
                enrollment_no,
                {'status': STATUS_CANCELLED, 'cancellation_date': now},
            )

        student = self.store.students.get(enrollment_no)
        bus = self.store.buses.get(cancelled.bus_number)
        route = self.store.routes.get(cancelled.route_number)
        message = generate_cancellation_sms(
            build_sms_data(student, cancelled, bus, route, self._effective_date(now)),
            school_name=self.school_name,
        )
        logger.info(f"Cancelled transport registration for {enrollment_no}")
        return RegistrationResult(cancelled, student, message)

    def apply(self, payload: Dict[str, Any]) -> RegistrationResult:
        """Dispatch a `{action, enrollmentNo, busNumber, routeNumber, stopName}` payload."""
        action = payload.get('action')
        enrollment_no = str(payload.get('enrollmentNo') or '').strip()
        if action not in TRANSPORT_ACTIONS:
            raise ValidationError(f"action must be one of: {', '.join(TRANSPORT_ACTIONS)}")
        if not enrollment_no:
            raise ValidationError('enrollmentNo is required')

        if action == 'register':
            missing = [k for k in ('busNumber', 'routeNumber', 'stopName') if not payload.get(k)]
            if missing:
                raise ValidationError(f"{', '.join(missing)} required for register")
            return self.register(
                enrollment_no,
                str(payload['busNumber']).strip(),
                str(payload['routeNumber']).strip(),
                str(payload['stopName']).strip(),
            )
        if action == 'cancel':
            return self.cancel(enrollment_no)

        changes = {
            'bus_number': payload.get('busNumber'),
            'route_number': payload.get('routeNumber'),
            'stop_name': payload.get('stopName'),
        }
        return self.update(enrollment_no, changes)
