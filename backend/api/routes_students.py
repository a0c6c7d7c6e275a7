"""
Student lookup and search routes (Students sheet is read-only here).
"""
from typing import Optional

from flask import Blueprint, request

from api.responses import error_response, handle_errors, store_not_configured, success_response
from core.auth import require_auth
from core.errors import ValidationError
from core.logger import logger
from sheets.record_store import RecordStore
from sheets.schemas import SHIFTS
from students.student_helpers import (
    SORT_FIELDS,
    paginate,
    sort_students,
    student_with_transport,
)
from transport.search import search


def _int_arg(name: str) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def register_student_routes(api: Blueprint, store: Optional[RecordStore]) -> None:
    """Register student routes on the given blueprint."""

    @api.route("/students", methods=["GET"])
    @require_auth
    @handle_errors("fetching students")
    def get_students():
        """All students, optionally filtered by shift, sorted and paginated."""
        if not store:
            return store_not_configured()

        shift = request.args.get("shift") or None
        if shift and shift not in SHIFTS:
            return error_response(f"shift must be one of: {', '.join(SHIFTS)}", 400)

        sort_by = request.args.get("sort_by", "name")
        if sort_by not in SORT_FIELDS:
            return error_response(f"sort_by must be one of: {', '.join(SORT_FIELDS)}", 400)
        sort_order = request.args.get("sort_order", "asc")

        registrations = {r.enrollment_no: r for r in store.registrations.list()}
        students = [
            student_with_transport(s, registrations.get(s.enrollment_no))
            for s in store.students.list(shift=shift)
        ]
        sort_students(students, sort_by=sort_by, sort_order=sort_order)

        page = paginate(students, _int_arg("page"), _int_arg("limit"))
        logger.info(f"Retrieved {page['total']} students (sorted by {sort_by}, {sort_order})")
        return success_response(page)

    @api.route("/students/<enrollment_no>", methods=["GET"])
    @require_auth
    @handle_errors("fetching student")
    def get_student(enrollment_no):
        if not store:
            return store_not_configured()

        student = store.students.get(enrollment_no)
        if not student:
            logger.info(f"Student not found: {enrollment_no}")
            return error_response("Student not found", 404)

        registration = store.registrations.get(enrollment_no)
        return success_response(student_with_transport(student, registration))

    @api.route("/search", methods=["GET"])
    @require_auth
    @handle_errors("searching records")
    def search_records():
        """Search students, buses and routes."""
        if not store:
            return store_not_configured()

        query = request.args.get("q", "").strip()
        if len(query) < 2:
            return error_response("Search query must be at least 2 characters", 400)

        return success_response(search(store, query))
