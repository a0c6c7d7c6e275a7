"""
Transport registration routes: register, update, cancel and lookups.
"""
from typing import Optional

from flask import Blueprint, request

from api.responses import (
    error_response,
    handle_errors,
    json_body,
    store_not_configured,
    success_response,
)
from core.auth import require_auth
from core.logger import logger
from core.validators import validate_registration_update
from sheets.schemas import SHIFTS
from students.student_helpers import registration_with_student
from transport.registration_service import RegistrationResult, TransportRegistrationService


def _result_payload(result: RegistrationResult) -> dict:
    return {
        "registration": registration_with_student(result.registration, result.student),
        "message": result.message,
    }


def register_transport_routes(
    api: Blueprint,
    service: Optional[TransportRegistrationService],
) -> None:
    """Register transport registration routes on the given blueprint."""

    @api.route("/transport", methods=["GET"])
    @require_auth
    @handle_errors("fetching transport registrations")
    def list_registrations():
        """Active registrations, optionally for one bus and/or shift."""
        if not service:
            return store_not_configured()

        shift = request.args.get("shift") or None
        if shift and shift not in SHIFTS:
            return error_response(f"shift must be one of: {', '.join(SHIFTS)}", 400)

        registrations = service.list(bus_number=request.args.get("bus_number") or None, shift=shift)
        students = {s.enrollment_no: s for s in service.store.students.list()}
        data = [registration_with_student(r, students.get(r.enrollment_no)) for r in registrations]
        return success_response(data)

    @api.route("/transport/<enrollment_no>", methods=["GET"])
    @require_auth
    @handle_errors("fetching transport registration")
    def get_registration(enrollment_no):
        if not service:
            return store_not_configured()

        registration = service.get(enrollment_no)
        if not registration:
            return error_response("Active registration not found", 404)

        student = service.store.students.get(enrollment_no)
        return success_response(registration_with_student(registration, student))

    @api.route("/transport/<enrollment_no>/history", methods=["GET"])
    @require_auth
    @handle_errors("fetching registration history")
    def get_registration_history(enrollment_no):
        if not service:
            return store_not_configured()

        schema = service.store.registrations.schema
        return success_response([schema.to_api(r) for r in service.history(enrollment_no)])

    @api.route("/transport", methods=["POST"])
    @require_auth
    @handle_errors("processing transport action")
    def transport_action():
        """
        Register, update or cancel through one payload:
        {"action": "register"|"update"|"cancel", "enrollmentNo": ..., "busNumber": ...,
         "routeNumber": ..., "stopName": ...}
        """
        if not service:
            return store_not_configured()

        data = json_body()
        result = service.apply(data)
        status = 201 if data.get("action") == "register" else 200
        logger.info(f"Transport action '{data.get('action')}' completed for {result.registration.enrollment_no}")
        return success_response(_result_payload(result), status=status)

    @api.route("/transport/<enrollment_no>", methods=["PUT"])
    @require_auth
    @handle_errors("updating transport registration")
    def update_registration(enrollment_no):
        if not service:
            return store_not_configured()

        changes = validate_registration_update(json_body())
        result = service.update(enrollment_no, changes)
        return success_response(_result_payload(result), message="Transport details updated")

    @api.route("/transport/<enrollment_no>/cancel", methods=["POST"])
    @require_auth
    @handle_errors("cancelling transport registration")
    def cancel_registration(enrollment_no):
        if not service:
            return store_not_configured()

        result = service.cancel(enrollment_no)
        return success_response(_result_payload(result), message="Transport cancelled")
