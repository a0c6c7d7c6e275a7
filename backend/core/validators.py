"""Input validation for API endpoints"""
from typing import Any, Dict, List

from core.errors import ValidationError
from sheets.schemas import BUSES, REGISTRATION_STATUSES, ROUTES, SHIFTS, TEACHERS


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require_strings(data: Dict[str, Any], names: List[str], partial: bool, errors: List[str]) -> None:
    for name in names:
        if name not in data:
            if not partial:
                errors.append(f'{name} is required')
            continue
        value = data[name]
        if not isinstance(value, str) or not value.strip():
            errors.append(f'{name} must be a non-empty string')


def _optional_strings(data: Dict[str, Any], names: List[str], errors: List[str]) -> None:
    for name in names:
        if name in data and data[name] is not None and not isinstance(data[name], str):
            errors.append(f'{name} must be a string')


def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}


def validate_bus(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate bus data; returns record-store changes keyed by attribute"""
    errors = []

    _require_strings(
        data,
        ['busNumber', 'routeNumber', 'driverName', 'driverContact', 'conductorName', 'conductorContact'],
        partial,
        errors,
    )
    _optional_strings(data, ['teacherAssigned'], errors)

    if 'capacity' not in data:
        if not partial:
            errors.append('capacity is required')
    else:
        capacity = data['capacity']
        if isinstance(capacity, str) and capacity.strip().isdigit():
            data = {**data, 'capacity': int(capacity.strip())}
        elif isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 0:
            errors.append('capacity must be a non-negative integer')

    if 'shift' in data or not partial:
        if data.get('shift') not in SHIFTS:
            errors.append(f"shift must be one of: {', '.join(SHIFTS)}")

    if errors:
        raise ValidationError('; '.join(errors))

    return BUSES.from_api(_clean(data))


def validate_route(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate route data; stops may be a list or a comma-separated string"""
    errors = []

    _require_strings(data, ['routeNumber', 'routeName'], partial, errors)
    _optional_strings(data, ['totalDistance', 'area'], errors)

    if 'stops' not in data:
        if not partial:
            errors.append('stops is required')
    else:
        stops = data['stops']
        if isinstance(stops, str):
            stops = [s.strip() for s in stops.split(',')]
        if not isinstance(stops, list) or not stops:
            errors.append('stops must be a non-empty list')
        elif not all(isinstance(s, str) and s.strip() for s in stops):
            errors.append('all stops must be non-empty strings')
        elif any(',' in s for s in stops):
            errors.append('stop names cannot contain commas')
        else:
            data = {**data, 'stops': [s.strip() for s in stops]}

    if errors:
        raise ValidationError('; '.join(errors))

    return ROUTES.from_api(_clean(data))


def validate_teacher(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate teacher data"""
    errors = []

    _require_strings(data, ['teacherId', 'name', 'contact'], partial, errors)
    _optional_strings(data, ['subject', 'assignedBus'], errors)

    if errors:
        raise ValidationError('; '.join(errors))

    return TEACHERS.from_api(_clean(data))


def validate_registration_update(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a transport update payload (bus/route/stop/status)"""
    errors = []

    _optional_strings(data, ['busNumber', 'routeNumber', 'stopName', 'status'], errors)
    if 'status' in data and data['status'] is not None and data['status'] not in REGISTRATION_STATUSES:
        errors.append(f"status must be one of: {', '.join(REGISTRATION_STATUSES)}")

    changes = {
        'bus_number': data.get('busNumber'),
        'route_number': data.get('routeNumber'),
        'stop_name': data.get('stopName'),
        'status': data.get('status'),
    }
    changes = {k: v.strip() for k, v in changes.items() if isinstance(v, str) and not _is_blank(v)}
    if not changes and not errors:
        errors.append('No valid fields to update. Allowed fields: busNumber, routeNumber, stopName, status')

    if errors:
        raise ValidationError('; '.join(errors))

    return changes
