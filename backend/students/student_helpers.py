"""
Helper functions for student endpoints.
Sorting, pagination and merging a student with their transport details.
"""
import math
from typing import Any, Dict, List, Optional

from sheets.schemas import REGISTRATIONS, STUDENTS, Student, TransportRegistration


SORT_FIELDS = ('name', 'enrollment', 'class', 'shift')
MAX_PAGE_SIZE = 500


def sort_students(students: List[Dict[str, Any]], sort_by: str = 'name', sort_order: str = 'asc') -> None:
    """
    Sort students list in-place by specified field and order.

    Args:
        students: List of student dictionaries (API shape, modified in-place)
        sort_by: Field to sort by ('name', 'enrollment', 'class', 'shift')
        sort_order: Sort order ('asc' or 'desc')
    """
    reverse = (sort_order == 'desc')

    if sort_by == 'name':
        students.sort(
            key=lambda x: ((x.get('name') or '').lower(), x.get('enrollmentNo') or ''),
            reverse=reverse
        )
    elif sort_by == 'enrollment':
        students.sort(key=lambda x: x.get('enrollmentNo') or '', reverse=reverse)
    elif sort_by == 'class':
        students.sort(
            key=lambda x: (x.get('class') or '', x.get('division') or '', (x.get('name') or '').lower()),
            reverse=reverse
        )
    elif sort_by == 'shift':
        students.sort(
            key=lambda x: (x.get('shift') or '', (x.get('name') or '').lower()),
            reverse=reverse
        )


def paginate(items: List[Any], page: Optional[int], limit: Optional[int]) -> Dict[str, Any]:
    """
    Slice `items` for one page.

    With no page/limit the whole list is returned as a single page.
    """
    total = len(items)
    if not page and not limit:
        return {'data': items, 'total': total, 'page': 1, 'limit': total, 'totalPages': 1}

    page = max(page or 1, 1)
    limit = min(max(limit or 50, 1), MAX_PAGE_SIZE)
    start = (page - 1) * limit
    return {
        'data': items[start:start + limit],
        'total': total,
        'page': page,
        'limit': limit,
        'totalPages': math.ceil(total / limit) if total else 0,
    }


def student_with_transport(
    student: Student,
    registration: Optional[TransportRegistration],
) -> Dict[str, Any]:
    """Student in API shape with its active registration (or None) attached."""
    data = STUDENTS.to_api(student)
    data['transport'] = REGISTRATIONS.to_api(registration) if registration else None
    return data


def registration_with_student(
    registration: TransportRegistration,
    student: Optional[Student],
) -> Dict[str, Any]:
    data = REGISTRATIONS.to_api(registration)
    data['studentDetails'] = STUDENTS.to_api(student) if student else None
    return data
