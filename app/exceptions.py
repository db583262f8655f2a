"""
Library Gateway - Custom Exceptions and Exception Handlers
"""
import structlog
from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = structlog.get_logger('exceptions')


class LibraryException(Exception):
    """Base exception for the library gateway"""
    def __init__(self, message: str, code: str = "LIBRARY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self):
        return {
            'error': True,
            'code': self.code,
            'message': self.message
        }


class ApiError(LibraryException):
    """
    Failure talking to the upstream library API.

    status mirrors the upstream HTTP status; 0 means the upstream could not be
    reached at all (DNS, refused connection, timeout).
    """
    def __init__(self, message: str, status: int = 500):
        super().__init__(message, code="API_ERROR")
        self.status = status

    @property
    def is_not_found(self):
        return self.status == 404

    @property
    def is_network_error(self):
        return self.status == 0

    def to_dict(self):
        data = super().to_dict()
        data['status'] = self.status
        return data


class UpstreamException(LibraryException):
    """The proxy could not relay a request"""
    def __init__(self, message: str):
        super().__init__(message, code="UPSTREAM_ERROR")
        logger.error(f"Upstream error: {message}")


class SchemaException(LibraryException):
    """Upstream payload no longer matches the expected shape"""
    def __init__(self, message: str):
        super().__init__(message, code="SCHEMA_ERROR")
        logger.error(f"Schema error: {message}")


class ValidationException(LibraryException):
    """Validation-related exceptions"""
    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")
        logger.warning(f"Validation error: {message}")


def register_exception_handlers(app):
    """Register exception handlers with Flask app"""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """Handle HTTP exceptions"""
        return jsonify({
            'error': True,
            'code': e.name.upper().replace(' ', '_'),
            'message': e.description
        }), e.code

    @app.errorhandler(LibraryException)
    def handle_library_exception(e):
        """Handle custom exceptions"""
        return jsonify(e.to_dict()), 400

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        """Upstream statuses pass through, unreachable upstream becomes 503"""
        if e.status == 0:
            return jsonify(e.to_dict()), 503
        status = e.status if 400 <= e.status < 600 else 502
        return jsonify(e.to_dict()), status

    @app.errorhandler(UpstreamException)
    def handle_upstream_exception(e):
        return jsonify(e.to_dict()), 502

    @app.errorhandler(SchemaException)
    def handle_schema_exception(e):
        return jsonify(e.to_dict()), 502

    @app.errorhandler(ValidationException)
    def handle_validation_exception(e):
        """Handle validation exceptions"""
        return jsonify(e.to_dict()), 400

    @app.errorhandler(Exception)
    def handle_generic_exception(e):
        """Handle all other exceptions"""
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        return jsonify({
            'error': True,
            'code': 'INTERNAL_ERROR',
            'message': 'An unexpected error occurred'
        }), 500
