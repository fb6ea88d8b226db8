"""
Error Handlers for QuizHub

Provides:
- Custom exception classes (including the quiz session error taxonomy)
- Consistent error response format
- Flask error handlers
"""

from flask import jsonify, request, current_app
from typing import Optional, Dict, Any


class QuizHubError(Exception):
    """Base exception class for QuizHub."""

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


class NotFoundError(QuizHubError):
    """Resource not found."""

    def __init__(self, message: str = 'Resource not found', resource: str = None):
        super().__init__(
            message=message,
            code='NOT_FOUND',
            status_code=404,
            details={'resource': resource} if resource else None
        )


class ValidationError(QuizHubError):
    """Input validation failed."""

    def __init__(self, message: str = 'Validation failed', errors: Any = None):
        super().__init__(
            message=message,
            code='VALIDATION_ERROR',
            status_code=400,
            details={'errors': errors} if errors else None
        )


class PoolEmptyError(QuizHubError):
    """No usable question exists for the requested subject units. Terminal."""

    def __init__(self, message: str = 'No questions available for the selected subject units',
                 subject_unit_ids=None):
        super().__init__(
            message=message,
            code='POOL_EMPTY',
            status_code=404,
            details={'subject_unit_ids': list(subject_unit_ids)} if subject_unit_ids else None
        )


class FetchFailedError(QuizHubError):
    """The question pool could not be fetched. The caller may retry."""

    retryable = True

    def __init__(self, message: str = 'Could not load questions, please try again'):
        super().__init__(
            message=message,
            code='FETCH_FAILED',
            status_code=503,
            details={'retryable': True}
        )


class InvalidAnswerSubmissionError(QuizHubError):
    """An answer or transition was rejected; the session is unchanged."""

    def __init__(self, message: str = 'Answer rejected', reason: str = None):
        super().__init__(
            message=message,
            code='INVALID_ANSWER',
            status_code=409,
            details={'reason': reason} if reason else None
        )


class PersistencePartialFailure(QuizHubError):
    """One or more result persistence steps failed. The score stays valid."""

    def __init__(self, report, message: str = 'Some results could not be saved'):
        self.report = report
        super().__init__(
            message=message,
            code='PERSISTENCE_PARTIAL_FAILURE',
            status_code=207,
            details={'failed_steps': [step.value for step in report.failed_steps]}
        )


class DataAccessError(QuizHubError):
    """The backing store rejected or failed an operation."""

    def __init__(self, message: str = 'Backend operation failed', operation: str = None):
        super().__init__(
            message=message,
            code='DATA_ACCESS_ERROR',
            status_code=502,
            details={'operation': operation} if operation else None
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

    @app.errorhandler(QuizHubError)
    def handle_quizhub_error(error):
        current_app.logger.warning(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        if request.path.startswith('/api/'):
            return error_response('Endpoint not found', 'NOT_FOUND', 404)
        return error

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        if request.path.startswith('/api/'):
            return error_response('Method not allowed', 'METHOD_NOT_ALLOWED', 405)
        return error

    @app.errorhandler(500)
    def handle_internal_error(error):
        current_app.logger.exception('Internal server error')
        if request.path.startswith('/api/'):
            return error_response('Internal server error', 'SERVER_ERROR', 500)
        return error
