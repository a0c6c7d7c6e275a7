import pytest

from core.errors import NotFound, ValidationError
from transport.reports import (
    ANNEXURE_COLUMNS,
    annexure,
    attendance_sheet,
    bus_summaries,
    dashboard_stats,
    route_sheet,
)
from transport.search import search


@pytest.fixture
def riders(service):
    service.register('E100', 'B1', 'R1', 'Lulu Hypermarket')
    service.register('E102', 'B1', 'R1', 'Main Gate')
    return service


def test_route_sheet_orders_by_stop_sequence(store, riders):
    sheet = route_sheet(store, 'B1')

    assert sheet['routeName'] == 'Al Sadd Loop'
    assert sheet['currentOccupancy'] == 2
    assert [s['enrollmentNo'] for s in sheet['students']] == ['E102', 'E100']
    assert [stop['stopName'] for stop in sheet['stops']] == ['Main Gate', 'Lulu Hypermarket']
    assert sheet['students'][1]['contactNo'] == '5551 2345'


def test_route_sheet_empty_bus(store):
    sheet = route_sheet(store, 'B2')
    assert sheet['students'] == []
    assert sheet['stops'] == []


def test_route_sheet_unknown_bus(store):
    with pytest.raises(NotFound):
        route_sheet(store, 'B9')


def test_attendance_sheet_skips_weekend(store, riders):
    sheet = attendance_sheet(store, 'B1', '2024-05-05', '2024-05-11', 'FN')

    days = [d['dayName'] for d in sheet['dates']]
    assert days == ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday']
    assert [r['studentName'] for r in sheet['records']] == ['Aisha Khan', 'Zara Ali']
    assert sheet['records'][0]['class'] == '5-B'
    assert len(sheet['records'][0]['dates']) == 5


def test_attendance_sheet_filters_by_shift(store, riders):
    assert attendance_sheet(store, 'B1', '2024-05-05', '2024-05-06', 'AN')['records'] == []


@pytest.mark.parametrize('start, end, shift', [
    ('2024-05-10', '2024-05-01', 'FN'),
    ('2024-01-01', '2024-06-30', 'FN'),
    ('2024-05-01', '2024-05-02', 'XX'),
    ('not-a-date', '2024-05-02', 'FN'),
])
def test_attendance_sheet_rejects_bad_input(store, start, end, shift):
    with pytest.raises(ValidationError):
        attendance_sheet(store, 'B1', start, end, shift)


def test_annexure_transport_students(store, riders):
    df = annexure(store, 'fn_transport')

    assert list(df.columns) == ANNEXURE_COLUMNS
    assert list(df['enrollmentNo']) == ['E102', 'E100']
    assert list(df['slNo']) == [1, 2]
    assert list(df['busNumber']) == ['B1', 'B1']


def test_annexure_non_transport(store, riders):
    df = annexure(store, 'non_transport')
    assert list(df['enrollmentNo']) == ['E101']
    assert df.iloc[0]['busNumber'] == ''


def test_annexure_all_students_of_shift(store, riders):
    assert len(annexure(store, 'an_all')) == 1
    assert len(annexure(store, 'fn_all')) == 2


def test_annexure_unknown_kind(store):
    with pytest.raises(ValidationError):
        annexure(store, 'everyone')


def test_bus_summaries(store, riders):
    summaries = {s['busNumber']: s for s in bus_summaries(store)}

    assert summaries['B1']['currentOccupancy'] == 2
    assert summaries['B1']['utilizationPercentage'] == 100.0
    assert summaries['B2']['utilizationPercentage'] == 0.0
    assert [s['busNumber'] for s in bus_summaries(store, shift='AN')] == ['B2']


def test_dashboard_stats(store, riders):
    stats = dashboard_stats(store)

    assert stats['totalBuses'] == 2
    assert stats['totalRoutes'] == 2
    assert stats['totalStudents'] == 3
    assert stats['totalTransportUsers'] == 2
    assert stats['fnTransportUsers'] == 2
    assert stats['anTransportUsers'] == 0
    assert stats['averageOccupancy'] == 50


def test_dashboard_stats_without_registrations(store):
    stats = dashboard_stats(store)
    assert stats['totalTransportUsers'] == 0
    assert stats['averageOccupancy'] == 0


def test_search_students_buses_and_routes(store, riders):
    results = search(store, 'main gate')
    assert {r['type'] for r in results} == {'route'}

    student_hits = search(store, 'aisha')
    assert student_hits[0]['type'] == 'student'
    assert student_hits[0]['transportDetails']['busNumber'] == 'B1'

    assert search(store, 'rashid')[0]['data']['busNumber'] == 'B1'
    assert search(store, '   ') == []
