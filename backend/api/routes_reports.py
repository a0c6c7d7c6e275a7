"""
Report routes: route sheet, attendance sheet and annexure listings.
"""
from typing import Optional

from flask import Blueprint, Response, request

from api.responses import handle_errors, store_not_configured, success_response
from core.auth import require_auth
from core.logger import logger
from sheets.record_store import RecordStore
from transport.reports import annexure, attendance_sheet, route_sheet


def register_report_routes(api: Blueprint, store: Optional[RecordStore]) -> None:
    """Register report routes on the given blueprint."""

    @api.route("/reports/route-sheet/<bus_number>", methods=["GET"])
    @require_auth
    @handle_errors("generating route sheet")
    def get_route_sheet(bus_number):
        if not store:
            return store_not_configured()
        return success_response(route_sheet(store, bus_number))

    @api.route("/reports/attendance", methods=["GET"])
    @require_auth
    @handle_errors("generating attendance sheet")
    def get_attendance_sheet():
        """
        Query params: bus_number, start_date, end_date (YYYY-MM-DD), shift (FN|AN).
        """
        if not store:
            return store_not_configured()

        sheet = attendance_sheet(
            store,
            bus_number=request.args.get("bus_number", ""),
            start_date=request.args.get("start_date", ""),
            end_date=request.args.get("end_date", ""),
            shift=request.args.get("shift", ""),
        )
        logger.info(
            f"Attendance sheet for bus {sheet['busNumber']}: "
            f"{len(sheet['records'])} students x {len(sheet['dates'])} days"
        )
        return success_response(sheet)

    @api.route("/reports/annexure/<kind>", methods=["GET"])
    @require_auth
    @handle_errors("generating annexure")
    def get_annexure(kind):
        """JSON rows by default, CSV download with ?format=csv."""
        if not store:
            return store_not_configured()

        df = annexure(store, kind)
        if request.args.get("format") == "csv":
            return Response(
                df.to_csv(index=False),
                mimetype="text/csv",
                headers={"Content-Disposition": f"attachment; filename=annexure_{kind}.csv"},
            )
        return success_response(df.to_dict(orient="records"))
