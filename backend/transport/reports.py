"""
Read-only transport reports built from the record store.

Students and active registrations are loaded into DataFrames and joined on
enrollment number, the same way the sheets are merged elsewhere; the
results are returned as JSON-ready dicts (camelCase keys).
"""
from typing import Any, Dict, List, Optional

import pandas as pd

from core.errors import NotFound, ValidationError
from sheets.record_store import RecordStore
from sheets.schemas import SHIFTS


ANNEXURE_KINDS = {
    'fn_transport': 'FN students using school transport',
    'an_transport': 'AN students using school transport',
    'fn_all': 'All FN students',
    'an_all': 'All AN students',
    'non_transport': 'Students not using school transport',
}

STUDENT_COLUMNS = [
    'enrollmentNo', 'name', 'class', 'division', 'shift',
    'contactNo1', 'contactNo2', 'address', 'parentName',
]
REGISTRATION_COLUMNS = ['enrollmentNo', 'busNumber', 'routeNumber', 'stopName', 'registrationDate']
ANNEXURE_COLUMNS = [
    'slNo', 'enrollmentNo', 'name', 'class', 'division', 'shift',
    'contactNo', 'busNumber', 'routeNumber', 'stopName',
]

# Friday and Saturday (Monday == 0)
WEEKEND_DAYS = (4, 5)
MAX_ATTENDANCE_DAYS = 93


def students_frame(store: RecordStore) -> pd.DataFrame:
    schema = store.students.schema
    records = [schema.to_api(s) for s in store.students.list()]
    return pd.DataFrame(records, columns=STUDENT_COLUMNS)


def active_registrations_frame(store: RecordStore, bus_number: Optional[str] = None) -> pd.DataFrame:
    schema = store.registrations.schema
    records = [
        {k: v for k, v in schema.to_api(r).items() if k in REGISTRATION_COLUMNS}
        for r in store.registrations.list(bus_number=bus_number)
    ]
    return pd.DataFrame(records, columns=REGISTRATION_COLUMNS)


def _transport_students(store: RecordStore, bus_number: Optional[str] = None) -> pd.DataFrame:
    """Active registrations joined with their student rows."""
    registrations = active_registrations_frame(store, bus_number)
    students = students_frame(store)
    merged = registrations.merge(students, on='enrollmentNo', how='left')
    for col in STUDENT_COLUMNS:
        if col in merged.columns:
            merged[col] = merged[col].fillna('')
    return merged


def _records(df: pd.DataFrame, columns: List[str]) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    return df[columns].to_dict(orient='records')


def _require_shift(shift: Optional[str]) -> str:
    if shift not in SHIFTS:
        raise ValidationError(f"shift must be one of: {', '.join(SHIFTS)}")
    return shift


def _occupancy_by_bus(store: RecordStore) -> Dict[str, int]:
    registrations = active_registrations_frame(store)
    if registrations.empty:
        return {}
    return registrations.groupby('busNumber').size().to_dict()


def route_sheet(store: RecordStore, bus_number: str) -> Dict[str, Any]:
    """Students on a bus in pickup order (route stop sequence, then name)."""
    bus = store.buses.get(bus_number)
    if bus is None:
        raise NotFound('Buses', bus_number, f"Bus not found: {bus_number}")
    route = store.routes.get(bus.route_number) if bus.route_number else None
    stops = route.stops if route else []

    riders = _transport_students(store, bus_number)
    if not riders.empty:
        stop_order = {stop: i for i, stop in enumerate(stops)}
        riders['stopOrder'] = riders['stopName'].map(lambda s: stop_order.get(s, len(stops)))
        riders = riders.sort_values(['stopOrder', 'name', 'enrollmentNo'])
        riders['contactNo'] = riders['contactNo1']

    student_columns = ['enrollmentNo', 'name', 'class', 'stopName', 'contactNo']
    students = _records(riders, student_columns)

    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for student in students:
        grouped.setdefault(student['stopName'], []).append(student)

    return {
        'busNumber': bus.bus_number,
        'routeNumber': bus.route_number,
        'routeName': route.route_name if route else '',
        'driverName': bus.driver_name,
        'driverContact': bus.driver_contact,
        'conductorName': bus.conductor_name,
        'conductorContact': bus.conductor_contact,
        'teacherAssigned': bus.teacher_assigned,
        'capacity': bus.capacity,
        'currentOccupancy': len(students),
        'shift': bus.shift,
        'students': students,
        'stops': [
            {'stopName': stop_name, 'students': members}
            for stop_name, members in grouped.items()
        ],
    }


def attendance_sheet(
    store: RecordStore,
    bus_number: str,
    start_date: str,
    end_date: str,
    shift: str,
) -> Dict[str, Any]:
    """
    Blank attendance grid for a bus and shift.

    One row per active rider on the bus whose student shift matches, one
    column per school day between the dates (inclusive, weekends skipped).
    """
    shift = _require_shift(shift)
    if store.buses.get(bus_number) is None:
        raise NotFound('Buses', bus_number, f"Bus not found: {bus_number}")

    try:
        start = pd.Timestamp(start_date)
        end = pd.Timestamp(end_date)
    except ValueError as e:
        raise ValidationError(f"Invalid date: {e}")
    if pd.isna(start) or pd.isna(end):
        raise ValidationError('startDate and endDate are required')
    if start > end:
        raise ValidationError('startDate must not be after endDate')
    if (end - start).days + 1 > MAX_ATTENDANCE_DAYS:
        raise ValidationError(f"Date range cannot exceed {MAX_ATTENDANCE_DAYS} days")

    days = [d for d in pd.date_range(start, end, freq='D') if d.weekday() not in WEEKEND_DAYS]
    dates = [
        {'date': d.strftime('%Y-%m-%d'), 'dayName': d.strftime('%A'), 'am': None, 'pm': None}
        for d in days
    ]

    riders = _transport_students(store, bus_number)
    if not riders.empty:
        riders = riders[riders['shift'] == shift].sort_values(['name', 'enrollmentNo'])

    records = []
    for sl_no, (_, rider) in enumerate(riders.iterrows(), start=1):
        records.append({
            'slNo': sl_no,
            'enrollmentNo': rider['enrollmentNo'],
            'studentName': rider['name'],
            'class': f"{rider['class']}-{rider['division']}".strip('-'),
            'contactNo': rider['contactNo1'],
            'dates': [dict(d) for d in dates],
        })

    return {
        'busNumber': bus_number,
        'startDate': start.strftime('%Y-%m-%d'),
        'endDate': end.strftime('%Y-%m-%d'),
        'shift': shift,
        'dates': dates,
        'records': records,
    }


def annexure(store: RecordStore, kind: str) -> pd.DataFrame:
    """Student listing for one of the ANNEXURE_KINDS."""
    if kind not in ANNEXURE_KINDS:
        raise ValidationError(f"Unknown annexure type '{kind}'. Allowed: {', '.join(ANNEXURE_KINDS)}")

    students = students_frame(store)
    registrations = active_registrations_frame(store)
    merged = students.merge(registrations, on='enrollmentNo', how='left', indicator=True)
    has_transport = merged['_merge'] == 'both'

    if kind == 'fn_transport':
        selected = merged[has_transport & (merged['shift'] == 'FN')]
    elif kind == 'an_transport':
        selected = merged[has_transport & (merged['shift'] == 'AN')]
    elif kind == 'fn_all':
        selected = merged[merged['shift'] == 'FN']
    elif kind == 'an_all':
        selected = merged[merged['shift'] == 'AN']
    else:
        selected = merged[~has_transport]

    selected = selected.drop(columns=['_merge']).copy()
    for col in ('busNumber', 'routeNumber', 'stopName'):
        selected[col] = selected[col].fillna('')
    selected['contactNo'] = selected['contactNo1']
    selected = selected.sort_values(['class', 'division', 'name', 'enrollmentNo'])
    selected.insert(0, 'slNo', range(1, len(selected) + 1))
    return selected[ANNEXURE_COLUMNS].reset_index(drop=True)


def bus_summaries(store: RecordStore, shift: Optional[str] = None) -> List[Dict[str, Any]]:
    occupancy = _occupancy_by_bus(store)
    summaries = []
    for bus in store.buses.list(shift=shift):
        current = int(occupancy.get(bus.bus_number, 0))
        utilization = round(current / bus.capacity * 100, 1) if bus.capacity else 0.0
        summaries.append({
            'busNumber': bus.bus_number,
            'routeNumber': bus.route_number,
            'shift': bus.shift,
            'capacity': bus.capacity,
            'currentOccupancy': current,
            'utilizationPercentage': utilization,
            'driverName': bus.driver_name,
            'conductorName': bus.conductor_name,
            'teacherAssigned': bus.teacher_assigned,
            'students': current,
        })
    return summaries


def dashboard_stats(store: RecordStore) -> Dict[str, Any]:
    riders = _transport_students(store)
    summaries = bus_summaries(store)
    utilizations = [s['utilizationPercentage'] for s in summaries if s['capacity'] > 0]

    return {
        'totalBuses': len(summaries),
        'totalRoutes': store.routes.count(),
        'totalTransportUsers': int(len(riders)),
        'fnTransportUsers': int((riders['shift'] == 'FN').sum()) if not riders.empty else 0,
        'anTransportUsers': int((riders['shift'] == 'AN').sum()) if not riders.empty else 0,
        'totalStudents': store.students.count(),
        'averageOccupancy': round(sum(utilizations) / len(utilizations)) if utilizations else 0,
    }
