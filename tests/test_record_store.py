from dataclasses import replace

import pytest

from core.errors import MalformedRow, NotFound
from sheets.backend import sheet_row_number
from sheets.memory_backend import InMemoryBackend
from sheets.record_store import RecordStore
from sheets.schemas import BUSES, REGISTRATIONS, Bus, Route, TransportRegistration


def test_sheet_row_number_skips_header():
    assert sheet_row_number(0) == 2
    assert sheet_row_number(9) == 11


def test_get_parses_typed_columns(store):
    bus = store.buses.get('B1')
    assert bus == Bus('B1', 2, 'R1', 'Rashid', '55511111', 'Anil', '55522222', 'T1', 'FN')

    route = store.routes.get('R1')
    assert route.stops == ['Main Gate', 'Al Sadd Signal', 'Lulu Hypermarket']


def test_get_missing_key_returns_none(store):
    assert store.students.get('E999') is None
    assert not store.buses.exists('B9')


def test_get_trims_key(store):
    assert store.students.get(' E100 ').name == 'Aisha Khan'


def test_list_filters_by_attribute(store):
    assert [s.enrollment_no for s in store.students.list(shift='FN')] == ['E100', 'E102']
    # None filter values are ignored
    assert len(store.students.list(shift=None)) == 3
    assert store.students.count(class_name='5') == 2


def test_list_with_predicate(store):
    buses = store.buses.list(lambda b: b.capacity > 10)
    assert [b.bus_number for b in buses] == ['B2']


def test_short_rows_are_padded(backend):
    store = RecordStore(backend, cache_ttl=0)
    backend.seed('Teachers', [['T9', 'Nadia']])
    teacher = store.teachers.get('T9')
    assert teacher.name == 'Nadia'
    assert teacher.assigned_bus == ''


def test_update_rewrites_only_given_fields(store, backend):
    updated = store.buses.update('B1', {'driver_name': 'Hamid', 'capacity': 30})

    assert updated.driver_name == 'Hamid'
    assert updated.capacity == 30
    assert updated.conductor_name == 'Anil'
    assert backend.rows('Buses')[0] == ['B1', '30', 'R1', 'Hamid', '55511111', 'Anil', '55522222', 'T1', 'FN']
    assert store.buses.get('B1').driver_name == 'Hamid'


def test_update_ignores_none_and_key_changes(store):
    updated = store.buses.update('B1', {'bus_number': 'B7', 'driver_name': None})
    assert updated.bus_number == 'B1'
    assert updated.driver_name == 'Rashid'


def test_update_empty_string_overwrites(store):
    assert store.buses.update('B1', {'teacher_assigned': ''}).teacher_assigned == ''


def test_update_unknown_field_raises(store):
    with pytest.raises(ValueError):
        store.buses.update('B1', {'colour': 'yellow'})


def test_update_missing_key_raises_not_found(store):
    with pytest.raises(NotFound):
        store.routes.update('R9', {'route_name': 'Nowhere'})


def test_delete_removes_row_and_reindexes(store, backend):
    store.buses.delete('B1')

    assert store.buses.get('B1') is None
    assert store.buses.get('B2').capacity == 40
    assert [row[0] for row in backend.rows('Buses')] == ['B2']


def test_delete_missing_key_raises_not_found(store):
    with pytest.raises(NotFound):
        store.teachers.delete('T404')


def test_create_appends_row(store, backend):
    store.routes.create(Route('R3', 'Wakra Express', ['Main Gate', 'Wakra Souq'], '20 km', 'Wakra'))

    assert backend.rows('Routes')[-1] == ['R3', 'Wakra Express', 'Main Gate, Wakra Souq', '20 km', 'Wakra']
    assert store.routes.get('R3').stops == ['Main Gate', 'Wakra Souq']


def test_malformed_capacity_reports_sheet_row(backend):
    store = RecordStore(backend, cache_ttl=0)
    backend.seed('Buses', [BUSES.to_row(Bus('B1', 10)), ['B2', 'forty', 'R1']])

    with pytest.raises(MalformedRow) as exc_info:
        store.buses.get('B2')
    assert exc_info.value.row_number == 3
    assert exc_info.value.collection == 'Buses'


def test_malformed_stop_list(backend):
    store = RecordStore(backend, cache_ttl=0)
    backend.seed('Routes', [['R1', 'Broken', 'Main Gate, , Souq']])

    with pytest.raises(MalformedRow):
        store.routes.list()


def test_blank_stop_cell_is_empty_list(backend):
    store = RecordStore(backend, cache_ttl=0)
    backend.seed('Routes', [['R1', 'Unplanned', '']])
    assert store.routes.get('R1').stops == []


def test_snapshot_served_within_ttl(backend):
    store = RecordStore(backend, cache_ttl=3600)
    backend.seed('Students', [['E1', 'First']])

    assert store.students.get('E1').name == 'First'
    reads = backend.read_count

    backend.seed('Students', [['E1', 'Edited in sheet']])
    assert store.students.get('E1').name == 'First'
    assert backend.read_count == reads

    store.refresh_all()
    assert store.students.get('E1').name == 'Edited in sheet'


def test_update_rereads_before_locating_row(backend):
    store = RecordStore(backend, cache_ttl=3600)
    backend.seed('Buses', [['B1', '10'], ['B2', '20']])
    assert store.buses.get('B2').capacity == 20

    # Row removed directly in the sheet; the cached offset for B2 is stale
    backend.seed('Buses', [['B2', '20']])
    store.buses.update('B2', {'capacity': 25})

    assert backend.rows('Buses') == [BUSES.to_row(Bus('B2', 25))]


def test_registration_get_only_sees_active_row(store, backend):
    backend.seed('Transport_Registrations', [
        REGISTRATIONS.to_row(TransportRegistration('E100', 'B2', 'R2', 'Najma Park', 'd1', 'Cancelled', 'd2', 'd2')),
        REGISTRATIONS.to_row(TransportRegistration('E100', 'B1', 'R1', 'Main Gate', 'd3', 'Active', '', 'd3')),
    ])

    assert store.registrations.get('E100').bus_number == 'B1'
    assert len(store.registrations.history('E100')) == 2
    assert len(store.registrations.list()) == 1
    assert len(store.registrations.list(active_only=False)) == 2


def test_registration_update_stamps_last_updated(store, backend):
    backend.seed('Transport_Registrations', [
        REGISTRATIONS.to_row(TransportRegistration('E100', 'B1', 'R1', 'Main Gate', 'd1', 'Active', '', 'd1')),
    ])

    updated = store.registrations.update('E100', {'stop_name': 'Al Sadd Signal', 'registration_date': 'x'})

    assert updated.last_updated == '2024-05-01T07:30:00.000Z'
    assert updated.registration_date == 'd1'
    assert backend.rows('Transport_Registrations')[0][3] == 'Al Sadd Signal'


def test_registration_update_without_active_row(store):
    with pytest.raises(NotFound):
        store.registrations.update('E100', {'stop_name': 'Main Gate'})


def test_worksheet_names_are_configurable():
    backend = InMemoryBackend()
    store = RecordStore(backend, worksheet_names={'buses': 'Fleet'})
    backend.seed('Fleet', [['B1', '12']])
    assert store.buses.get('B1').capacity == 12


def test_update_with_no_changes_keeps_bus(store, backend):
    before = store.buses.get('B1')
    rows_before = backend.rows('Buses')

    assert store.buses.update('B1', {}) == before
    assert store.buses.get('B1') == before
    assert backend.rows('Buses') == rows_before


def test_update_with_no_changes_only_touches_last_updated(store, backend):
    backend.seed('Transport_Registrations', [
        REGISTRATIONS.to_row(TransportRegistration('E100', 'B1', 'R1', 'Main Gate', 'd1', 'Active', '', 'd1')),
    ])
    before = store.registrations.get('E100')

    store.registrations.update('E100', {})

    after = store.registrations.get('E100')
    assert after.last_updated == '2024-05-01T07:30:00.000Z'
    assert replace(after, last_updated=before.last_updated) == before
