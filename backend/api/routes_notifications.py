"""
SMS preview routes. Messages are only rendered here; sending is left to the
school's SMS gateway.
"""
import re
from typing import Any, Dict, List, Optional

from flask import Blueprint

from api.responses import handle_errors, json_body, success_response
from core.auth import require_auth
from core.config import Config
from core.errors import NotFound, ValidationError
from core.logger import logger
from notifications.sms_templates import (
    SMS_FIELDS,
    build_sms_data,
    format_phone_number,
    generate_batch_sms,
    generate_cancellation_sms,
    generate_delay_sms,
    generate_emergency_sms,
    generate_registration_sms,
    generate_reminder_sms,
    generate_route_change_sms,
    generate_route_suspension_sms,
    generate_staff_change_sms,
    generate_stop_change_sms,
    get_character_count,
    get_sms_template_description,
    validate_sms_data,
)
from sheets.record_store import RecordStore


BUNDLE_TEMPLATES = {
    'registration': generate_registration_sms,
    'cancellation': generate_cancellation_sms,
    'route_change': generate_route_change_sms,
    'stop_change': generate_stop_change_sms,
    'reminder': generate_reminder_sms,
    'staff_change': generate_staff_change_sms,
}
NOTICE_TEMPLATES = ('emergency', 'delay', 'route_suspension')


def _snake_case(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


def _bundle_from_api(data: Any) -> Dict[str, Any]:
    """camelCase request data -> snake_case template bundle (unknown keys dropped)."""
    if not isinstance(data, dict):
        raise ValidationError('data must be an object')
    bundle = {}
    for key, value in data.items():
        name = _snake_case(key)
        if name in SMS_FIELDS:
            bundle[name] = value
    return bundle


def _bundle_for_student(store: Optional[RecordStore], enrollment_no: str, effective_date: str) -> Dict[str, Any]:
    if not store:
        raise ValidationError('data is required when the record store is not configured')
    registration = store.registrations.get(enrollment_no)
    if registration is None:
        raise NotFound('Transport_Registrations', enrollment_no, f"Active registration not found: {enrollment_no}")
    return build_sms_data(
        store.students.get(enrollment_no),
        registration,
        store.buses.get(registration.bus_number),
        store.routes.get(registration.route_number),
        effective_date or registration.registration_date[:10],
    )


def _render_notice(template_type: str, data: Dict[str, Any], school_name: str) -> str:
    def field(name: str) -> str:
        value = data.get(name)
        if value is None or str(value).strip() == '':
            raise ValidationError(f"{name} is required for {template_type} messages")
        return str(value)

    if template_type == 'emergency':
        return generate_emergency_sms(
            field('studentName'), field('enrollmentNo'), field('busNumber'), field('message'),
            school_name=school_name,
        )
    if template_type == 'delay':
        try:
            delay_minutes = int(field('delayMinutes'))
        except ValueError:
            raise ValidationError('delayMinutes must be an integer')
        return generate_delay_sms(
            field('busNumber'), field('routeName'), delay_minutes, field('reason'),
            school_name=school_name,
        )
    return generate_route_suspension_sms(
        field('date'), field('busNumber'), field('routeName'), field('reason'),
        school_name=school_name,
    )


def _phone_numbers(store: Optional[RecordStore], enrollment_no: str, country_code: str) -> List[str]:
    if not store:
        return []
    student = store.students.get(enrollment_no)
    if student is None:
        return []
    return [
        format_phone_number(number, country_code)
        for number in (student.contact_no1, student.contact_no2)
        if number and number.strip()
    ]


def register_notification_routes(api: Blueprint, store: Optional[RecordStore], config: Config) -> None:
    """Register SMS preview routes on the given blueprint."""

    @api.route("/notifications/preview", methods=["POST"])
    @require_auth
    @handle_errors("rendering SMS preview")
    def preview_sms():
        """
        Render one message.

        Body: {"type": ..., "data": {camelCase fields}} or
        {"type": ..., "enrollmentNo": ..., "effectiveDate"?: ...} to fill the
        fields from the student's active registration.
        """
        body = json_body()
        template_type = body.get('type')

        if template_type in NOTICE_TEMPLATES:
            data = body.get('data') or {}
            if not isinstance(data, dict):
                raise ValidationError('data must be an object')
            message = _render_notice(template_type, data, config.school_name)
            validation = {'valid': True, 'errors': []}
        elif template_type in BUNDLE_TEMPLATES:
            if body.get('enrollmentNo'):
                bundle = _bundle_for_student(
                    store, str(body['enrollmentNo']).strip(), str(body.get('effectiveDate') or ''),
                )
            else:
                bundle = _bundle_from_api(body.get('data') or {})
            message = BUNDLE_TEMPLATES[template_type](bundle, school_name=config.school_name)
            validation = validate_sms_data(bundle)
        else:
            allowed = ', '.join([*BUNDLE_TEMPLATES, *NOTICE_TEMPLATES])
            raise ValidationError(f"type must be one of: {allowed}")

        return success_response({
            'type': template_type,
            'description': get_sms_template_description(template_type),
            'message': message,
            'characterCount': get_character_count(message),
            'validation': validation,
        })

    @api.route("/notifications/batch", methods=["POST"])
    @require_auth
    @handle_errors("rendering batch SMS")
    def batch_sms():
        """
        Body: {"type": "registration"|"cancellation"|"route_change",
               "enrollmentNos": [...]} or {"type": ..., "students": [{camelCase fields}]}.
        Phone numbers are filled in from the Students sheet when available.
        """
        body = json_body()
        template_type = body.get('type', '')

        if body.get('enrollmentNos') is not None:
            enrollment_nos = body['enrollmentNos']
            if not isinstance(enrollment_nos, list):
                raise ValidationError('enrollmentNos must be a list')
            effective_date = str(body.get('effectiveDate') or '')
            bundles = [_bundle_for_student(store, str(n).strip(), effective_date) for n in enrollment_nos]
        else:
            students = body.get('students')
            if not isinstance(students, list) or not students:
                raise ValidationError('students or enrollmentNos is required')
            bundles = [_bundle_from_api(s) for s in students]

        messages = generate_batch_sms(template_type, bundles, school_name=config.school_name)
        for item in messages:
            item['phoneNumbers'] = _phone_numbers(store, item['enrollmentNo'], config.sms_country_code)

        logger.info(f"Rendered {len(messages)} '{template_type}' messages")
        return success_response(messages)

    @api.route("/notifications/phone", methods=["POST"])
    @require_auth
    @handle_errors("formatting phone number")
    def normalize_phone():
        body = json_body()
        phone = str(body.get('phone') or '').strip()
        if not phone:
            raise ValidationError('phone is required')
        return success_response({'phone': format_phone_number(phone, config.sms_country_code)})
