"""
API Response Utilities - JSON envelopes shared by the gateway routes

Every route answers {code, success, data?, message?, details?}. Upstream
failures are not handled here: LibraryException subclasses propagate to the
handlers registered in exceptions.py so their upstream status survives.
"""

from flask import jsonify
from functools import wraps
import logging

from exceptions import LibraryException

logger = logging.getLogger(__name__)


class ErrorCode:
    SUCCESS = "SUCCESS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


DEFAULT_MESSAGES = {
    ErrorCode.VALIDATION_ERROR: "Invalid request parameters",
    ErrorCode.NOT_FOUND: "Resource not found",
    ErrorCode.CONFLICT: "Request conflicts with the patron's account",
    ErrorCode.UNAUTHORIZED: "Authentication required",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred",
}

# Codes worth a log line; the rest are ordinary patron mistakes
LOGGED_CODES = (ErrorCode.INTERNAL_ERROR, ErrorCode.VALIDATION_ERROR)


def success_response(data=None, message=None, status_code=200):
    body = {"code": ErrorCode.SUCCESS, "success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return jsonify(body), status_code


def error_response(error_code=ErrorCode.INTERNAL_ERROR, message=None, details=None, status_code=400):
    """Failure envelope; message falls back to the code's default text"""
    body = {
        "code": error_code,
        "success": False,
        "message": message or DEFAULT_MESSAGES.get(error_code, DEFAULT_MESSAGES[ErrorCode.INTERNAL_ERROR]),
    }
    if details:
        body["details"] = details

    if error_code in LOGGED_CODES:
        logger.error(f"{error_code}: {body['message']} | Details: {details}")

    return jsonify(body), status_code


def handle_api_errors(f):
    """
    Turn bad query parameters into 400s and unexpected failures into 500s.
    Library exceptions propagate to the registered Flask handlers.
    """

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LibraryException:
            raise
        except ValueError as e:
            return error_response(ErrorCode.VALIDATION_ERROR, message=str(e), status_code=400)
        except KeyError as e:
            return error_response(ErrorCode.VALIDATION_ERROR, message=f"Missing required parameter: {e}", status_code=400)
        except Exception as e:
            logger.error(f"Unhandled exception in {f.__name__}: {e}", exc_info=True)
            return error_response(ErrorCode.INTERNAL_ERROR, status_code=500)

    return wrapper


def validation_error_response(field, message):
    return error_response(
        ErrorCode.VALIDATION_ERROR,
        message=f"Validation failed for field: {field}",
        details={"field": field, "error": message},
        status_code=400,
    )


def not_found_response(resource_type, resource_id=None):
    if resource_id:
        message = f"{resource_type} with ID '{resource_id}' not found"
    else:
        message = f"{resource_type} not found"
    return error_response(ErrorCode.NOT_FOUND, message=message, status_code=404)


def conflict_response(message, details=None):
    """The patron is not allowed to do this right now (e.g. borrow limit reached)"""
    return error_response(ErrorCode.CONFLICT, message=message, details=details, status_code=409)
