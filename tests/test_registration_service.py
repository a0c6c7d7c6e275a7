import threading

import pytest

from core.errors import AlreadyRegistered, CapacityExceeded, NotFound, ValidationError
from sheets.memory_backend import InMemoryBackend
from sheets.record_store import RecordStore
from sheets.schemas import STATUS_ACTIVE, STATUS_CANCELLED
from transport.registration_service import TransportRegistrationService

from conftest import FIXED_NOW, seed_backend


@pytest.fixture
def worker_services():
    """Two services over one sheet, each with its own snapshot (default TTL)."""
    backend = InMemoryBackend()
    first = TransportRegistrationService(RecordStore(backend))
    second = TransportRegistrationService(RecordStore(backend))
    seed_backend(backend)
    return backend, first, second


def test_register_appends_active_row(service, backend):
    result = service.register('E100', 'B1', 'R1', 'Main Gate')

    assert result.registration.status == STATUS_ACTIVE
    assert result.registration.registration_date == FIXED_NOW
    assert result.student.name == 'Aisha Khan'
    assert backend.rows('Transport_Registrations') == [
        ['E100', 'B1', 'R1', 'Main Gate', FIXED_NOW, 'Active', '', FIXED_NOW],
    ]


def test_register_message_contains_transport_details(service):
    message = service.register('E100', 'B1', 'R1', 'Main Gate').message

    assert 'Aisha Khan (E100)' in message
    assert 'Bus No: B1' in message
    assert 'Route: Al Sadd Loop (R1)' in message
    assert 'Driver: Rashid (55511111)' in message
    assert 'Effective From: 2024-05-01' in message
    assert message.endswith('Test School\nTransport Department')


def test_register_twice_raises_already_registered(service, backend):
    service.register('E100', 'B1', 'R1', 'Main Gate')

    with pytest.raises(AlreadyRegistered):
        service.register('E100', 'B1', 'R1', 'Lulu Hypermarket')
    assert len(backend.rows('Transport_Registrations')) == 1


def test_cancel_then_register_keeps_history(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    cancelled = service.cancel('E100')
    assert cancelled.registration.status == STATUS_CANCELLED
    assert cancelled.registration.cancellation_date == FIXED_NOW
    assert service.get('E100') is None

    service.register('E100', 'B1', 'R1', 'Al Sadd Signal')

    history = service.history('E100')
    assert [r.status for r in history] == [STATUS_CANCELLED, STATUS_ACTIVE]
    assert service.get('E100').stop_name == 'Al Sadd Signal'


def test_cancel_message(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    message = service.cancel('E100').message
    assert 'has been cancelled' in message
    assert 'Cancellation Date: 2024-05-01' in message


def test_cancel_without_active_registration(service):
    with pytest.raises(NotFound):
        service.cancel('E100')


@pytest.mark.parametrize('enrollment_no, bus, route, exc', [
    ('E999', 'B1', 'R1', NotFound),
    ('E100', 'B9', 'R1', NotFound),
    ('E100', 'B1', 'R9', NotFound),
])
def test_register_unknown_references(service, enrollment_no, bus, route, exc):
    with pytest.raises(exc):
        service.register(enrollment_no, bus, route, 'Main Gate')


def test_register_stop_not_on_route(service):
    with pytest.raises(ValidationError, match='not on route R1'):
        service.register('E100', 'B1', 'R1', 'Najma Park')


def test_register_bus_on_other_route(service):
    with pytest.raises(ValidationError, match='serves route R1'):
        service.register('E100', 'B1', 'R2', 'Main Gate')


def test_register_full_bus(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    service.register('E102', 'B1', 'R1', 'Main Gate')

    with pytest.raises(CapacityExceeded):
        service.register('E101', 'B1', 'R1', 'Main Gate')


def test_cancelled_rows_do_not_count_towards_capacity(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    service.register('E102', 'B1', 'R1', 'Main Gate')
    service.cancel('E102')

    assert service.register('E101', 'B1', 'R1', 'Main Gate').registration.bus_number == 'B1'


def test_update_stop_returns_stop_change_message(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')

    result = service.update('E100', {'stop_name': 'Lulu Hypermarket'})

    assert result.registration.stop_name == 'Lulu Hypermarket'
    assert result.registration.registration_date == FIXED_NOW
    assert 'Previous Stop: Main Gate' in result.message
    assert 'New Stop: Lulu Hypermarket' in result.message


def test_update_bus_moves_route_with_it(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')

    result = service.update('E100', {'bus_number': 'B2'})

    assert result.registration.bus_number == 'B2'
    assert result.registration.route_number == 'R2'
    assert 'Bus: B1 → B2' in result.message
    assert 'Route: Al Sadd Loop → Najma Line' in result.message


def test_update_invalid_stop_leaves_row_untouched(service, backend):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    before = backend.rows('Transport_Registrations')

    with pytest.raises(ValidationError):
        service.update('E100', {'stop_name': 'Najma Park'})
    assert backend.rows('Transport_Registrations') == before


def test_update_without_changes_has_no_message(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    assert service.update('E100', {'stop_name': None}).message == ''


def test_update_status_cancelled_cancels(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    result = service.update('E100', {'status': STATUS_CANCELLED})
    assert result.registration.status == STATUS_CANCELLED
    assert service.get('E100') is None


def test_update_rejects_unknown_fields(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    with pytest.raises(ValidationError):
        service.update('E100', {'registration_date': 'x'})


def test_update_without_active_registration(service):
    with pytest.raises(NotFound):
        service.update('E100', {'stop_name': 'Main Gate'})


def test_list_filters_by_bus_and_shift(service):
    service.register('E100', 'B1', 'R1', 'Main Gate')
    service.register('E101', 'B2', 'R2', 'Najma Park')

    assert [r.enrollment_no for r in service.list(bus_number='B2')] == ['E101']
    assert [r.enrollment_no for r in service.list(shift='FN')] == ['E100']
    assert len(service.list()) == 2


def test_apply_dispatches_actions(service):
    registered = service.apply({
        'action': 'register', 'enrollmentNo': 'E100',
        'busNumber': 'B1', 'routeNumber': 'R1', 'stopName': 'Main Gate',
    })
    assert registered.registration.bus_number == 'B1'

    updated = service.apply({'action': 'update', 'enrollmentNo': 'E100', 'stopName': 'Al Sadd Signal'})
    assert updated.registration.stop_name == 'Al Sadd Signal'

    cancelled = service.apply({'action': 'cancel', 'enrollmentNo': 'E100'})
    assert cancelled.registration.status == STATUS_CANCELLED


@pytest.mark.parametrize('payload', [
    {'action': 'transfer', 'enrollmentNo': 'E100'},
    {'action': 'cancel'},
    {'action': 'register', 'enrollmentNo': 'E100', 'busNumber': 'B1'},
])
def test_apply_rejects_bad_payloads(service, payload):
    with pytest.raises(ValidationError):
        service.apply(payload)


def test_concurrent_registrations_leave_one_active(service, backend):
    errors = []

    def register():
        try:
            service.register('E100', 'B2', 'R2', 'Main Gate')
        except AlreadyRegistered as e:
            errors.append(e)

    threads = [threading.Thread(target=register) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(errors) == 4
    assert len(backend.rows('Transport_Registrations')) == 1


def test_register_sees_rows_written_by_another_worker(worker_services):
    backend, first, second = worker_services
    assert second.get('E100') is None

    first.register('E100', 'B2', 'R2', 'Main Gate')

    with pytest.raises(AlreadyRegistered):
        second.register('E100', 'B2', 'R2', 'Main Gate')
    assert len(backend.rows('Transport_Registrations')) == 1


def test_capacity_counts_rows_written_by_another_worker(worker_services):
    backend, first, second = worker_services
    assert second.list(bus_number='B1') == []

    first.register('E100', 'B1', 'R1', 'Main Gate')
    first.register('E102', 'B1', 'R1', 'Main Gate')

    with pytest.raises(CapacityExceeded):
        second.register('E101', 'B1', 'R1', 'Main Gate')


def test_update_sees_cancellation_by_another_worker(worker_services):
    _backend, first, second = worker_services
    first.register('E100', 'B2', 'R2', 'Main Gate')
    assert second.get('E100') is not None

    first.cancel('E100')

    with pytest.raises(NotFound):
        second.update('E100', {'stop_name': 'Najma Park'})


def test_unknown_student_leaves_no_lock_behind(service):
    with pytest.raises(NotFound):
        service.register('E999', 'B1', 'R1', 'Main Gate')
    assert 'E999' not in service._student_locks


def test_padded_enrollment_number_is_the_same_student(service, backend):
    service.register('E100 ', 'B1', 'R1', 'Main Gate')

    with pytest.raises(AlreadyRegistered):
        service.register('E100', 'B2', 'R2', 'Main Gate')
    assert [row[0] for row in backend.rows('Transport_Registrations')] == ['E100']

    assert service.cancel(' E100').registration.status == STATUS_CANCELLED
