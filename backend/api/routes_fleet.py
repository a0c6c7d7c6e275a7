"""
Bus, route and teacher management routes (Buses, Routes, Teachers sheets).

The three entity types share one CRUD shape, so the routes are generated
per collection.
"""
from typing import Callable, Dict, Optional

from flask import Blueprint, request

from api.responses import (
    error_response,
    handle_errors,
    json_body,
    store_not_configured,
    success_response,
)
from core.auth import require_auth
from core.errors import ValidationError
from core.logger import logger
from core.validators import validate_bus, validate_route, validate_teacher
from sheets.record_store import EntityCollection, RecordStore
from sheets.schemas import SHIFTS
from transport.reports import bus_summaries


def _register_crud_routes(
    api: Blueprint,
    store: Optional[RecordStore],
    url_name: str,
    label: str,
    collection_getter: Callable[[RecordStore], EntityCollection],
    validator: Callable[..., Dict],
    list_filters: Callable[[], Dict] = dict,
) -> None:
    """GET list / POST create / GET, PUT, DELETE by key for one collection."""

    def list_items():
        if not store:
            return store_not_configured()
        collection = collection_getter(store)
        items = collection.list(**list_filters())
        return success_response([collection.schema.to_api(item) for item in items])

    def create_item():
        if not store:
            return store_not_configured()
        collection = collection_getter(store)

        attrs = validator(json_body())
        key = attrs[collection.schema.key_attr]
        if collection.exists(key):
            return error_response(f"{label} {key} already exists", 409)

        entity = collection.schema.entity_cls(**attrs)
        collection.create(entity)
        logger.info(f"Created {label.lower()} {key}")
        return success_response(collection.schema.to_api(entity), status=201)

    def get_item(key):
        if not store:
            return store_not_configured()
        collection = collection_getter(store)
        item = collection.get(key)
        if not item:
            return error_response(f"{label} not found", 404)
        return success_response(collection.schema.to_api(item))

    def update_item(key):
        if not store:
            return store_not_configured()
        collection = collection_getter(store)

        data = json_body()
        key_api_name = collection.schema.columns[0].api_name
        if key_api_name in data and str(data[key_api_name]).strip() != key:
            raise ValidationError(f"{key_api_name} cannot be changed")

        changes = validator(data, partial=True)
        updated = collection.update(key, changes)
        logger.info(f"Updated {label.lower()} {key}")
        return success_response(collection.schema.to_api(updated))

    def delete_item(key):
        if not store:
            return store_not_configured()
        collection_getter(store).delete(key)
        logger.info(f"Deleted {label.lower()} {key}")
        return success_response(message=f"{label} deleted")

    endpoint = url_name.replace("-", "_")
    api.add_url_rule(
        f"/{url_name}", f"list_{endpoint}",
        require_auth(handle_errors(f"fetching {url_name}")(list_items)), methods=["GET"],
    )
    api.add_url_rule(
        f"/{url_name}", f"create_{endpoint}",
        require_auth(handle_errors(f"creating {label.lower()}")(create_item)), methods=["POST"],
    )
    api.add_url_rule(
        f"/{url_name}/<key>", f"get_{endpoint}",
        require_auth(handle_errors(f"fetching {label.lower()}")(get_item)), methods=["GET"],
    )
    api.add_url_rule(
        f"/{url_name}/<key>", f"update_{endpoint}",
        require_auth(handle_errors(f"updating {label.lower()}")(update_item)), methods=["PUT"],
    )
    api.add_url_rule(
        f"/{url_name}/<key>", f"delete_{endpoint}",
        require_auth(handle_errors(f"deleting {label.lower()}")(delete_item)), methods=["DELETE"],
    )


def _shift_filter() -> Dict:
    shift = request.args.get("shift") or None
    if shift and shift not in SHIFTS:
        raise ValidationError(f"shift must be one of: {', '.join(SHIFTS)}")
    return {"shift": shift}


def register_fleet_routes(api: Blueprint, store: Optional[RecordStore]) -> None:
    """Register bus/route/teacher management routes on the given blueprint."""

    # Registered before the CRUD rules so /buses/summary is not read as a bus key
    @api.route("/buses/summary", methods=["GET"])
    @require_auth
    @handle_errors("fetching bus summaries")
    def get_bus_summaries():
        """Capacity, occupancy and utilization per bus."""
        if not store:
            return store_not_configured()
        return success_response(bus_summaries(store, shift=_shift_filter()["shift"]))

    _register_crud_routes(
        api, store, "buses", "Bus", lambda s: s.buses, validate_bus, list_filters=_shift_filter,
    )
    _register_crud_routes(api, store, "routes", "Route", lambda s: s.routes, validate_route)
    _register_crud_routes(api, store, "teachers", "Teacher", lambda s: s.teachers, validate_teacher)
