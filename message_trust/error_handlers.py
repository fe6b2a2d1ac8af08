"""
Shared error handlers for the Flask application
"""

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from message_trust.services.exceptions import (
    ConflictError,
    ConnectionError,
    ConsentRequired,
    DatabaseError,
    ExternalServiceError,
    NotFoundError,
    PipelineError,
    ServiceError,
    TimeoutError,
    UnrecognizedFormat,
    ValidationError,
)
from message_trust.shared.logging_config import get_project_logger


logger = get_project_logger(__name__)


def _error(message: str, status_code: int, **extra):
    return jsonify({'success': False, 'error': message, **extra}), status_code


def register_error_handlers(app_or_blueprint):
    """Register error handlers for Flask app or blueprint"""

    @app_or_blueprint.errorhandler(ValidationError)
    def validation_error(error):
        logger.info(f"Validation error on {request.path}: {error}")
        return _error(str(error), 400, details=error.details)

    @app_or_blueprint.errorhandler(UnrecognizedFormat)
    def unrecognized_format(error):
        logger.info(f"Unrecognized format on {request.path}: {error}")
        return _error(str(error), 422)

    @app_or_blueprint.errorhandler(PipelineError)
    def pipeline_error(error):
        return _error(str(error), 422)

    @app_or_blueprint.errorhandler(ConsentRequired)
    def consent_required(error):
        return _error(str(error), 403)

    @app_or_blueprint.errorhandler(NotFoundError)
    def service_not_found(error):
        return _error(str(error), 404)

    @app_or_blueprint.errorhandler(ConflictError)
    def conflict_error(error):
        return _error(str(error), 409)

    @app_or_blueprint.errorhandler(ConnectionError)
    @app_or_blueprint.errorhandler(TimeoutError)
    @app_or_blueprint.errorhandler(DatabaseError)
    @app_or_blueprint.errorhandler(ExternalServiceError)
    def unavailable_error(error):
        logger.error(f"Service unavailable on {request.path}: {error}")
        return _error('Service temporarily unavailable', 503)

    @app_or_blueprint.errorhandler(ServiceError)
    def service_error(error):
        logger.error(f"Service error on {request.path}: {error}", exc_info=True)
        return _error('An unexpected error occurred', 500)

    @app_or_blueprint.errorhandler(404)
    def not_found_error(error):
        """Handle 404 errors"""
        logger.warning(f"404 error: {request.url}")
        return _error('Resource not found', 404)

    @app_or_blueprint.errorhandler(405)
    def method_not_allowed_error(error):
        """Handle 405 errors"""
        logger.warning(f"405 error: {request.method} {request.url}")
        return _error('Method not allowed', 405)

    @app_or_blueprint.errorhandler(413)
    def request_too_large(error):
        logger.warning(f"413 error: {request.url}")
        return _error('Uploaded file is too large', 413)

    @app_or_blueprint.errorhandler(HTTPException)
    def http_error(error):
        logger.warning(f"{error.code} error: {request.method} {request.url}")
        return _error(error.description or error.name, error.code)

    @app_or_blueprint.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors"""
        logger.error(f"500 error: {request.url} - {str(error)}")
        return _error('Internal server error', 500)

    @app_or_blueprint.errorhandler(Exception)
    def handle_exception(error):
        """Handle all other exceptions"""
        logger.error(f"Unhandled exception: {request.url} - {str(error)}", exc_info=True)
        return _error('An unexpected error occurred', 500)
