"""
Admin core routes: authentication, dashboard statistics and snapshot refresh.
"""
from typing import Optional

from flask import Blueprint, request

from api.responses import error_response, handle_errors, store_not_configured, success_response
from core.auth import (
    check_rate_limit,
    clear_login_attempts,
    create_jwt_token,
    get_client_ip,
    record_failed_login,
    require_auth,
    verify_password,
)
from core.logger import logger
from sheets.record_store import RecordStore
from transport.reports import dashboard_stats


def register_admin_core_routes(api: Blueprint, store: Optional[RecordStore]) -> None:
    """Register admin auth + dashboard routes on the given blueprint."""

    @api.route("/admin/login", methods=["POST"])
    def admin_login():
        """Verify admin password and return JWT token."""
        if not check_rate_limit():
            logger.warning(f"Rate limit exceeded for IP: {get_client_ip()}")
            return error_response("Too many login attempts. Please try again later.", 429)

        data = request.get_json(silent=True) or {}
        password = data.get("password", "")

        if verify_password(password):
            clear_login_attempts(get_client_ip())
            logger.info(f"Admin login successful from IP: {get_client_ip()}")
            return success_response({"token": create_jwt_token()}, message="Login successful")

        record_failed_login()
        logger.warning(f"Failed login attempt from IP: {get_client_ip()}")
        return error_response("Invalid password", 401)

    @api.route("/dashboard/stats", methods=["GET"])
    @require_auth
    @handle_errors("fetching dashboard stats")
    def get_dashboard_stats():
        """Totals for the home page stat cards."""
        if not store:
            return store_not_configured()
        return success_response(dashboard_stats(store))

    @api.route("/admin/refresh", methods=["POST"])
    @require_auth
    @handle_errors("refreshing sheet data")
    def refresh_sheet_data():
        """Reload every collection from the spreadsheet (after manual sheet edits)."""
        if not store:
            return store_not_configured()
        store.refresh_all()
        return success_response(message="Sheet data reloaded")
