"""
SMS text for parent notifications.

Every function is pure: it takes a data bundle (a dict with snake_case keys
such as `student_name`, `bus_number`, `effective_date`) and returns the
message text. Nothing here reads the record store or sends anything.
"""
import math
import re
from typing import Any, Dict, List, Optional

from sheets.schemas import Bus, Route, Student, TransportRegistration


DEFAULT_SCHOOL_NAME = 'Shantiniketan Indian School'
DEFAULT_COUNTRY_CODE = '974'
SMS_SEGMENT_SIZE = 160

SMS_FIELDS = (
    'student_name', 'enrollment_no', 'bus_number', 'route_number', 'route_name',
    'stop_name', 'driver_name', 'driver_contact', 'conductor_name',
    'conductor_contact', 'effective_date', 'old_bus_number', 'new_bus_number',
    'old_route', 'new_route', 'old_stop', 'new_stop', 'old_driver', 'new_driver',
    'old_conductor', 'new_conductor',
)

TEMPLATE_DESCRIPTIONS = {
    'registration': 'New transport registration confirmation',
    'cancellation': 'Transport service cancellation notice',
    'route_change': 'Transport route/bus change notification',
    'reminder': 'Transport service reminder',
}

REQUIRED_FIELDS = (
    ('student_name', 'Student name is required'),
    ('enrollment_no', 'Enrollment number is required'),
    ('bus_number', 'Bus number is required'),
    ('route_number', 'Route number is required'),
    ('effective_date', 'Effective date is required'),
)


def _signature(school_name: str) -> str:
    return f"{school_name}\nTransport Department"


def _get(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return '' if value is None else str(value)


def _changes_block(changes: List[str]) -> str:
    return 'Changes:\n' + '\n'.join(changes) if changes else ''


def generate_registration_sms(data: Dict[str, Any], school_name: str = DEFAULT_SCHOOL_NAME) -> str:
    """Confirmation sent when a student is registered for transport."""
    return f"""Dear Parent,

Your child {_get(data, 'student_name')} ({_get(data, 'enrollment_no')}) has been successfully registered for school transport.

Transport Details:
Bus No: {_get(data, 'bus_number')}
Route: {_get(data, 'route_name')} ({_get(data, 'route_number')})
Stop: {_get(data, 'stop_name')}

Driver: {_get(data, 'driver_name')} ({_get(data, 'driver_contact')})
Conductor: {_get(data, 'conductor_name')} ({_get(data, 'conductor_contact')})

Effective From: {_get(data, 'effective_date')}

Please ensure your child is at the designated stop 5 minutes before the scheduled pick-up time.

For any queries, contact the transport office.

{_signature(school_name)}"""


def generate_cancellation_sms(data: Dict[str, Any], school_name: str = DEFAULT_SCHOOL_NAME) -> str:
    return f"""Dear Parent,

Transport service for {_get(data, 'student_name')} ({_get(data, 'enrollment_no')}) has been cancelled as per your request.

Previous Transport Details:
Bus No: {_get(data, 'bus_number')}
Route: {_get(data, 'route_name')}
Stop: {_get(data, 'stop_name')}

Cancellation Date: {_get(data, 'effective_date')}

If this was done in error, please contact the transport office immediately.

Thank you.

{_signature(school_name)}"""


def generate_route_change_sms(data: Dict[str, Any], school_name: str = DEFAULT_SCHOOL_NAME) -> str:
    """Bus and/or route change; only pairs that actually differ are listed."""
    changes = []
    old_bus, new_bus = data.get('old_bus_number'), data.get('new_bus_number')
    if old_bus and new_bus and old_bus != new_bus:
        changes.append(f"Bus: {old_bus} → {new_bus}")

    old_route, new_route = data.get('old_route'), data.get('new_route')
    if old_route and new_route and old_route != new_route:
        changes.append(f"Route: {old_route} → {new_route}")

    return f"""Dear Parent,

Transport details have been updated for {_get(data, 'student_name')} ({_get(data, 'enrollment_no')}).

{_changes_block(changes)}

Updated Transport Details:
Bus No: {_get(data, 'bus_number')}
Route: {_get(data, 'route_name')} ({_get(data, 'route_number')})
Stop: {_get(data, 'stop_name')}

Driver: {_get(data, 'driver_name')} ({_get(data, 'driver_contact')})
Conductor: {_get(data, 'conductor_name')} ({_get(data, 'conductor_contact')})

Effective From: {_get(data, 'effective_date')}

Please note the changes and ensure your child boards the correct bus.

{_signature(school_name)}"""


def generate_stop_change_sms(data: Dict[str, Any], school_name: str = DEFAULT_SCHOOL_NAME) -> str:
    return f"""Dear Parent,

Transport pickup/drop point has been changed for {_get(data, 'student_name')} ({_get(data, 'enrollment_no')}).

Previous Stop: {_get(data, 'old_stop')}
New Stop: {_get(data, 'new_stop')}

Bus No: {_get(data, 'bus_number')}
Route: {_get(data, 'route_name')}

Driver: {_get(data, 'driver_name')} ({_get(data, 'driver_contact')})

Effective From: {_get(data, 'effective_date')}

Please ensure your child uses the new stop location.

{_signature(school_name)}"""


def generate_reminder_sms(data: Dict[str, Any], school_name: str = DEFAULT_SCHOOL_NAME) -> str:
    return f"""Dear Parent,

This is a reminder about the transport service for {_get(data, 'student_name')} ({_get(data, 'enrollment_no')}).

Bus No: {_get(data, 'bus_number')}
Route: {_get(data, 'route_name')}
Stop: {_get(data, 'stop_name')}

Driver: {_get(data, 'driver_name')} ({_get(data, 'driver_contact')})
Conductor: {_get(data, 'conductor_name')} ({_get(data, 'conductor_contact')})

Important Reminders:
• Be at stop 5 minutes early
• Carry school ID card
• Follow safety rules
• Inform driver about absence

{_signature(school_name)}"""


def generate_staff_change_sms(data: Dict[str, Any], school_name: str = DEFAULT_SCHOOL_NAME) -> str:
    """Driver and/or conductor change for a bus."""
    changes = []
    if data.get('old_driver') and data.get('new_driver'):
        changes.append(f"Driver: {data['old_driver']} → {data['new_driver']}")
    if data.get('old_conductor') and data.get('new_conductor'):
        changes.append(f"Conductor: {data['old_conductor']} → {data['new_conductor']}")

    return f"""Dear Parent,

Transport staff has been updated for Bus {_get(data, 'bus_number')} serving {_get(data, 'route_name')}.

{_changes_block(changes)}

Current Staff:
Driver: {_get(data, 'driver_name')} ({_get(data, 'driver_contact')})
Conductor: {_get(data, 'conductor_name')} ({_get(data, 'conductor_contact')})

All other transport details remain unchanged.

{_signature(school_name)}"""


def generate_emergency_sms(
    student_name: str,
    enrollment_no: str,
    bus_number: str,
    message: str,
    school_name: str = DEFAULT_SCHOOL_NAME,
) -> str:
    return f"""URGENT NOTICE

Dear Parent of {student_name} ({enrollment_no}),

{message}

Bus No: {bus_number}

For immediate assistance, please contact:
Transport Office: [Transport Office Number]

{_signature(school_name)}"""


def generate_delay_sms(
    bus_number: str,
    route_name: str,
    delay_minutes: int,
    reason: str,
    school_name: str = DEFAULT_SCHOOL_NAME,
) -> str:
    return f"""Dear Parents,

Bus {bus_number} ({route_name}) is running approximately {delay_minutes} minutes late.

Reason: {reason}

We apologize for the inconvenience. Please wait at your designated stop.

Thank you for your patience.

{_signature(school_name)}"""


def generate_route_suspension_sms(
    date: str,
    bus_number: str,
    route_name: str,
    reason: str,
    school_name: str = DEFAULT_SCHOOL_NAME,
) -> str:
    return f"""Dear Parents,

Transport service is temporarily suspended for:

Date: {date}
Bus No: {bus_number}
Route: {route_name}

Reason: {reason}

Please make alternative arrangements for this date.

Regular service will resume on the next scheduled day.

{_signature(school_name)}"""


def format_phone_number(phone_number: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Normalize a phone number for SMS sending.

    Strips every non-digit and prefixes the country code when the digits do
    not already start with it: "55512345" -> "+97455512345".
    """
    cleaned = re.sub(r'\D', '', phone_number or '')
    if not cleaned.startswith(country_code):
        cleaned = country_code + cleaned
    return '+' + cleaned


def validate_sms_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Check required fields; every missing field is reported, not just the first."""
    errors = [message for key, message in REQUIRED_FIELDS if not data.get(key)]
    return {'valid': len(errors) == 0, 'errors': errors}


def get_sms_template_description(template_type: str) -> str:
    return TEMPLATE_DESCRIPTIONS.get(template_type, 'General transport notification')


def get_character_count(message: str) -> Dict[str, int]:
    """
    Character count and SMS segment estimate.

    160 characters -> 1 segment, 0 remaining; 161 -> 2 segments, 159 remaining.
    """
    count = len(message)
    segments = math.ceil(count / SMS_SEGMENT_SIZE)
    remaining = segments * SMS_SEGMENT_SIZE - count
    return {'count': count, 'segments': segments, 'remaining': remaining}


BATCH_GENERATORS = {
    'registration': generate_registration_sms,
    'cancellation': generate_cancellation_sms,
    'route_change': generate_route_change_sms,
}


def generate_batch_sms(
    template_type: str,
    students: List[Dict[str, Any]],
    school_name: str = DEFAULT_SCHOOL_NAME,
) -> List[Dict[str, Any]]:
    """One message per student bundle; phone numbers are left for the caller to fill in."""
    if template_type not in BATCH_GENERATORS:
        raise ValueError(
            f"Unsupported batch template '{template_type}'. "
            f"Allowed: {', '.join(BATCH_GENERATORS)}"
        )
    generator = BATCH_GENERATORS[template_type]
    return [
        {
            'enrollmentNo': _get(student, 'enrollment_no'),
            'message': generator(student, school_name=school_name),
            'phoneNumbers': [],
        }
        for student in students
    ]


def build_sms_data(
    student: Optional[Student],
    registration: TransportRegistration,
    bus: Optional[Bus],
    route: Optional[Route],
    effective_date: str,
) -> Dict[str, Any]:
    """Assemble a template bundle from stored entities."""
    return {
        'student_name': student.name if student else '',
        'enrollment_no': registration.enrollment_no,
        'bus_number': registration.bus_number,
        'route_number': registration.route_number,
        'route_name': route.route_name if route else '',
        'stop_name': registration.stop_name,
        'driver_name': bus.driver_name if bus else '',
        'driver_contact': bus.driver_contact if bus else '',
        'conductor_name': bus.conductor_name if bus else '',
        'conductor_contact': bus.conductor_contact if bus else '',
        'effective_date': effective_date,
    }
