"""
Free-text search across students, buses and routes.
"""
from typing import Any, Dict, List

from sheets.record_store import RecordStore


MAX_RESULTS = 50


def _contains(query: str, *values: str) -> bool:
    return any(query in (value or '').lower() for value in values)


def search(store: RecordStore, query: str, limit: int = MAX_RESULTS) -> List[Dict[str, Any]]:
    """
    Case-insensitive substring search.

    Students match on enrollment number or name and carry their active
    registration; buses match on bus number, driver or conductor; routes on
    number, name or any stop.
    """
    query = (query or '').strip().lower()
    if not query:
        return []

    results: List[Dict[str, Any]] = []

    registrations = {r.enrollment_no: r for r in store.registrations.list()}
    for student in store.students.list():
        if _contains(query, student.enrollment_no, student.name):
            registration = registrations.get(student.enrollment_no)
            results.append({
                'type': 'student',
                'data': store.students.schema.to_api(student),
                'transportDetails': (
                    store.registrations.schema.to_api(registration) if registration else None
                ),
            })

    for bus in store.buses.list():
        if _contains(query, bus.bus_number, bus.driver_name, bus.conductor_name):
            results.append({'type': 'bus', 'data': store.buses.schema.to_api(bus)})

    for route in store.routes.list():
        if _contains(query, route.route_number, route.route_name, *route.stops):
            results.append({'type': 'route', 'data': store.routes.schema.to_api(route)})

    return results[:limit]
