"""
Custom exceptions for the service layer and the upload pipeline
"""

import functools

import requests
import sqlalchemy.exc


class ServiceError(Exception):
    """Base exception for service layer errors"""
    pass

class ValidationError(ServiceError):
    """Raised when an upload or input fails validation (user-correctable)"""

    def __init__(self, message: str = "", details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

class NotFoundError(ServiceError):
    """Raised when a requested resource is not found"""
    pass

class ConflictError(ServiceError):
    """Raised when an operation conflicts with current state"""
    pass

class InvalidTransition(ConflictError):
    """Raised when an upload job is asked to move to a state it cannot reach"""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot transition upload from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested

class ConsentRequired(ServiceError):
    """Raised when analysis results are requested without analysis consent"""
    pass

class ConnectionError(ServiceError):
    """Raised when unable to connect to external services (database, broker, etc.)"""
    pass

class TimeoutError(ServiceError):
    """Raised when an operation times out"""
    pass

class ExternalServiceError(ServiceError):
    """Raised when an external service returns an error"""
    pass

class DatabaseError(ServiceError):
    """Raised when database operations fail"""
    pass


# Pipeline stage failures: terminal for the job, never retried

class PipelineError(ServiceError):
    """Base class for failures that end an upload job"""
    pass

class UnrecognizedFormat(PipelineError):
    """Raised when no parser's structural signature matches the upload"""
    pass

class MalformedInput(PipelineError):
    """Raised when a file cannot be parsed at all"""

    def __init__(self, reason: str, line: int | None = None, offset: int | None = None):
        location = ""
        if line is not None:
            location = f" (line {line})"
        elif offset is not None:
            location = f" (byte offset {offset})"
        super().__init__(f"{reason}{location}")
        self.reason = reason
        self.line = line
        self.offset = offset

class InsufficientData(PipelineError):
    """Raised when fewer messages than the configured minimum survive parsing"""

    def __init__(self, found: int, required: int):
        super().__init__(f"Found {found} usable messages, at least {required} are required")
        self.found = found
        self.required = required

class SanitizationFailed(PipelineError):
    """Raised when no message content survives redaction"""
    pass

class JobCancelled(PipelineError):
    """Raised at a checkpoint when the owner deleted the job mid-processing"""
    pass


# Personality inference failures

class InferenceError(ServiceError):
    """Base class for personality inference failures"""
    retryable = False

class RateLimited(InferenceError):
    """The inference service answered 429"""
    retryable = True

    def __init__(self, message: str = "Inference service rate limit reached", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after

class InferenceTimeout(InferenceError):
    """An inference attempt exceeded its timeout"""
    retryable = True

class InferenceServiceError(InferenceError):
    """The inference service failed or could not be reached"""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable

class InvalidResponseShape(InferenceError):
    """The inference service answered with something that breaks the trait contract"""
    retryable = False


def handle_service_exceptions(logger=None):
    """Decorator to handle common service exceptions and convert them to service-specific exceptions"""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ServiceError:
                # Already one of ours
                raise
            except requests.exceptions.ConnectionError as e:
                if logger:
                    logger.error(f"HTTP connection error in {func.__name__}: {e}")
                raise ConnectionError(f"Unable to connect to external service: {e}") from e
            except requests.exceptions.Timeout as e:
                if logger:
                    logger.error(f"HTTP timeout error in {func.__name__}: {e}")
                raise TimeoutError(f"Request timed out: {e}") from e
            except requests.exceptions.RequestException as e:
                if logger:
                    logger.error(f"HTTP request error in {func.__name__}: {e}")
                raise ExternalServiceError(f"External service error: {e}") from e
            except sqlalchemy.exc.OperationalError as e:
                if logger:
                    logger.error(f"Database operational error in {func.__name__}: {e}")
                raise DatabaseError(f"Database connection error: {e}") from e
            except sqlalchemy.exc.IntegrityError as e:
                if logger:
                    logger.error(f"Database integrity error in {func.__name__}: {e}")
                raise ConflictError(f"Data integrity violation: {e}") from e
            except sqlalchemy.exc.SQLAlchemyError as e:
                if logger:
                    logger.error(f"Database error in {func.__name__}: {e}")
                raise DatabaseError(f"Database error: {e}") from e
            except ValueError as e:
                if logger:
                    logger.error(f"Validation error in {func.__name__}: {e}")
                raise ValidationError(f"Invalid input: {e}") from e
            except KeyError as e:
                if logger:
                    logger.error(f"Missing required data in {func.__name__}: {e}")
                raise ValidationError(f"Missing required field: {e}") from e
            except Exception as e:
                if logger:
                    logger.error(f"Unexpected error in {func.__name__}: {e}", exc_info=True)
                raise ServiceError(f"Unexpected service error: {e}") from e
        return wrapper
    return decorator
