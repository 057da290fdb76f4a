"""
JSON error responses for TokenPulse.

Every error the gateway produces itself, whether from the dashboard API or
from the proxy when no upstream response exists, is rendered as
``{"error": <code>, "message": <text>[, "details": {...}]}``. Upstream
responses are never rewritten into this shape; the proxy relays them as-is.
"""

import logging
import traceback
from typing import Dict, Any, Optional, Tuple
from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException

# Setup logging
logger = logging.getLogger(__name__)

class APIError(Exception):
    """
    Base for errors raised by TokenPulse endpoints.

    Subclasses set ``error_code``, ``status_code`` and ``default_message``.
    """

    error_code = 'bad_request'
    status_code = 400
    default_message = 'Bad request'

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {'error': self.error_code, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return body

class ValidationError(APIError):
    """Malformed dashboard request (400)"""
    error_code = 'validation_error'
    default_message = 'Invalid request'

class NotFoundError(APIError):
    """Unknown token or resource (404)"""
    error_code = 'resource_not_found'
    status_code = 404
    default_message = 'Resource not found'

class ConflictError(APIError):
    """Request conflicts with the current cycle state (409)"""
    error_code = 'resource_conflict'
    status_code = 409
    default_message = 'Resource conflict'

class BadGatewayError(APIError):
    """The upstream could not be reached, so there is no response to relay (502)"""
    error_code = 'bad_gateway'
    status_code = 502
    default_message = 'Upstream service is unreachable'

class GatewayTimeoutError(APIError):
    """The upstream did not answer within PROXY_TIMEOUT (504)"""
    error_code = 'gateway_timeout'
    status_code = 504
    default_message = 'Upstream service did not respond in time'

def handle_api_error(error: APIError) -> Tuple[Dict[str, Any], int]:
    # Gateway failures point at the upstream, not at the client
    log = logger.error if error.status_code >= 500 else logger.warning
    log(f"API Error {error.status_code}: {error.error_code} - {error.message}")
    return error.to_dict(), error.status_code

def http_error_code(error: HTTPException) -> str:
    """
    Machine-readable code for a werkzeug exception, e.g. 'method_not_allowed'.
    """
    return (error.name or 'unknown error').lower().replace(' ', '_')

def handle_http_exception(error: HTTPException) -> Tuple[Dict[str, Any], int]:
    """
    Handle werkzeug HTTP exceptions raised by routing or by flask itself.

    Args:
        error: HTTPException instance

    Returns:
        Tuple of (error_dict, status_code)
    """
    logger.warning(f"HTTP Exception {error.code}: {error.description}")
    return {
        'error': http_error_code(error),
        'message': error.description or error.name
    }, error.code

def handle_generic_exception(error: Exception) -> Tuple[Dict[str, Any], int]:
    """
    Handle unexpected exceptions.

    The traceback is only returned when DEBUG is on.
    """
    logger.error(f"Unexpected error: {str(error)}", exc_info=True)

    body = {'error': 'internal_error', 'message': 'An unexpected error occurred'}
    if current_app.config.get('DEBUG', False):
        body['message'] = f"Internal error: {str(error)}"
        body['details'] = {'traceback': traceback.format_exc()}

    return body, 500

def register_error_handlers(app):
    """
    Register error handlers with Flask application.

    Args:
        app: Flask application instance
    """
    handlers = (
        (APIError, handle_api_error),
        (HTTPException, handle_http_exception),
        (Exception, handle_generic_exception),
    )

    for error_class, handler in handlers:
        def render(error, handler=handler):
            response_data, status_code = handler(error)
            return jsonify(response_data), status_code

        app.register_error_handler(error_class, render)

def require_json_object(data) -> Dict[str, Any]:
    """
    Ensure a parsed request body is a JSON object.

    Args:
        data: Result of request.get_json(silent=True)

    Returns:
        The body as a dictionary

    Raises:
        ValidationError: If the body is missing or not an object
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
