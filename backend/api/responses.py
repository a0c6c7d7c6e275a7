"""
JSON envelope and error mapping shared by every API route.

Every response is `{"success": bool, "data"?: ..., "error"?: str}`.
"""
from functools import wraps
from typing import Any, Optional

from flask import jsonify, request

from core.errors import (
    AlreadyRegistered,
    BackendUnavailable,
    CapacityExceeded,
    MalformedRow,
    NotFound,
    ValidationError,
)
from core.logger import logger


def success_response(data: Any = None, status: int = 200, message: Optional[str] = None):
    body = {'success': True}
    if data is not None:
        body['data'] = data
    if message:
        body['message'] = message
    return jsonify(body), status


def error_response(error: str, status: int = 400):
    return jsonify({'success': False, 'error': error}), status


def json_body() -> dict:
    """Request body as a dict; raises ValidationError when missing or not an object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        raise ValidationError('Request body is required')
    return data


def store_not_configured():
    logger.error("Record store not configured")
    return error_response('Record store not configured', 500)


def handle_errors(action: str):
    """
    Decorator mapping workflow/store exceptions to envelope responses.

    `action` is a short description used in log lines and 500 messages.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except (ValidationError, ValueError) as e:
                logger.warning(f"Validation error {action}: {str(e)}")
                return error_response(str(e), 400)
            except NotFound as e:
                logger.info(f"Not found while {action}: {str(e)}")
                return error_response(str(e), 404)
            except (AlreadyRegistered, CapacityExceeded) as e:
                logger.warning(f"Conflict while {action}: {str(e)}")
                return error_response(str(e), 409)
            except BackendUnavailable as e:
                logger.error(f"Backend unavailable while {action}: {str(e)}")
                return error_response(f"Spreadsheet backend unavailable: {str(e)}", 503)
            except MalformedRow as e:
                logger.error(f"Malformed data while {action}: {str(e)}")
                return error_response(str(e), 500)
            except Exception as e:
                logger.error(f"Error {action}: {str(e)}", exc_info=True)
                return error_response(f"Failed {action}", 500)
        return decorated_function
    return decorator
