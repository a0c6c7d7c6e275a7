from typing import Optional

from flask import Blueprint

from api.routes_admin_core import register_admin_core_routes
from api.routes_fleet import register_fleet_routes
from api.routes_notifications import register_notification_routes
from api.routes_reports import register_report_routes
from api.routes_students import register_student_routes
from api.routes_transport import register_transport_routes
from core.config import Config
from sheets.record_store import RecordStore
from transport.registration_service import TransportRegistrationService


def create_api_blueprint(store: Optional[RecordStore], config: Config) -> Blueprint:
    """Build the /api blueprint with every route group bound to `store`."""
    api = Blueprint("api", __name__)

    service = None
    if store is not None:
        service = TransportRegistrationService(store, school_name=config.school_name)

    # Register route groups on the shared blueprint
    register_admin_core_routes(api, store)
    register_student_routes(api, store)
    register_transport_routes(api, service)
    register_fleet_routes(api, store)
    register_report_routes(api, store)
    register_notification_routes(api, store, config)

    return api
