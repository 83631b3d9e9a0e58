"""
Error Handlers for Boss Arena

Provides:
- Custom exception classes
- Consistent error response format
- Flask error handlers
"""

from flask import jsonify, request, current_app
from typing import Optional, Dict, Any


class ArenaError(Exception):
    """Base exception class for Boss Arena."""

    def __init__(
        self,
        message: str,
        code: str = 'UNKNOWN_ERROR',
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for JSON response."""
        return {
            'success': False,
            'message': self.message,
            'code': self.code,
            'details': self.details
        }


class NotFoundError(ArenaError):
    """Resource not found."""

    def __init__(self, message: str = 'Resource not found', resource: str = None):
        super().__init__(
            message=message,
            code='NOT_FOUND',
            status_code=404,
            details={'resource': resource} if resource else None
        )


class ValidationError(ArenaError):
    """Input validation failed, or the action is not allowed in the current state."""

    def __init__(self, message: str = 'Validation failed', errors: Dict = None, reason: str = None):
        details = {}
        if errors:
            details['errors'] = errors
        if reason:
            details['reason'] = reason
        super().__init__(
            message=message,
            code='VALIDATION_ERROR',
            status_code=400,
            details=details or None
        )
        self.reason = reason


class AuthorizationError(ArenaError):
    """Access denied."""

    def __init__(self, message: str = 'Access denied'):
        super().__init__(
            message=message,
            code='UNAUTHORIZED',
            status_code=403
        )


class KnockedOutError(ArenaError):
    """The student's HP reached zero in this boss quiz."""

    def __init__(self, message: str = 'You have been knocked out of this boss fight'):
        super().__init__(
            message=message,
            code='KNOCKED_OUT',
            status_code=409
        )


class ConcurrencyConflictError(ArenaError):
    """Optimistic-lock retries on a progress row ran out. Safe to resubmit."""

    def __init__(self, message: str = 'Answer could not be saved, please retry', attempts: int = None):
        details = {'transient': True}
        if attempts is not None:
            details['attempts'] = attempts
        super().__init__(
            message=message,
            code='CONCURRENCY_CONFLICT',
            status_code=409,
            details=details
        )


def error_response(
    message: str,
    code: str = 'ERROR',
    status_code: int = 400,
    details: Dict = None
) -> tuple:
    """Create a standardized error response."""
    response = {
        'success': False,
        'message': message,
        'code': code
    }
    if details:
        response['details'] = details

    return jsonify(response), status_code


def success_response(data: Any = None, message: str = None) -> dict:
    """Create a standardized success response."""
    response = {'success': True}
    if data is not None:
        response['data'] = data
    if message:
        response['message'] = message
    return response


def register_error_handlers(app):
    """Register error handlers with Flask app."""

    @app.errorhandler(ArenaError)
    def handle_arena_error(error):
        if error.status_code >= 500:
            current_app.logger.error(f"{error.code}: {error.message}")
        else:
            current_app.logger.info(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(401)
    def handle_unauthorized(error):
        return error_response('Login required', 'UNAUTHENTICATED', 401)

    @app.errorhandler(404)
    def handle_not_found(error):
        if request.path.startswith('/api/'):
            return error_response('Endpoint not found', 'NOT_FOUND', 404)
        return error

    @app.errorhandler(500)
    def handle_internal_error(error):
        current_app.logger.exception('Internal server error')
        if request.path.startswith('/api/'):
            return error_response('Internal server error', 'SERVER_ERROR', 500)
        return error
