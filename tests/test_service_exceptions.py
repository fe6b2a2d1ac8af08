"""
Tests for service layer exceptions and the exception translating decorator
"""

from unittest.mock import Mock

import pytest
import requests
import sqlalchemy.exc

from message_trust.services.exceptions import (
    ConflictError,
    ConnectionError,
    DatabaseError,
    ExternalServiceError,
    InferenceServiceError,
    InsufficientData,
    InvalidResponseShape,
    InvalidTransition,
    MalformedInput,
    NotFoundError,
    PipelineError,
    RateLimited,
    ServiceError,
    TimeoutError,
    ValidationError,
    handle_service_exceptions,
)


class TestExceptionMessages:
    """Exceptions carry enough context to be shown to an owner"""

    def test_malformed_input_with_line(self):
        error = MalformedInput('Unterminated JSON array', line=12)

        assert str(error) == 'Unterminated JSON array (line 12)'
        assert error.line == 12
        assert isinstance(error, PipelineError)

    def test_malformed_input_with_offset(self):
        assert str(MalformedInput('Invalid UTF-8', offset=40)) == 'Invalid UTF-8 (byte offset 40)'

    def test_insufficient_data(self):
        error = InsufficientData(found=12, required=50)

        assert str(error) == 'Found 12 usable messages, at least 50 are required'
        assert (error.found, error.required) == (12, 50)

    def test_invalid_transition_is_a_conflict(self):
        error = InvalidTransition('completed', 'processing')

        assert isinstance(error, ConflictError)
        assert str(error) == "Cannot transition upload from 'completed' to 'processing'"

    def test_validation_details_default_to_empty(self):
        assert ValidationError('bad').details == {}

    def test_retryable_inference_errors(self):
        assert RateLimited(retry_after=3).retryable is True
        assert InferenceServiceError('server error', status_code=503).retryable is True
        assert InferenceServiceError('bad request', status_code=400, retryable=False).retryable is False
        assert InvalidResponseShape('missing trait').retryable is False


class TestHandleServiceExceptions:
    """Third-party errors become service errors"""

    @pytest.mark.parametrize('raised, expected', [
        (requests.exceptions.ConnectionError('refused'), ConnectionError),
        (requests.exceptions.Timeout('slow'), TimeoutError),
        (requests.exceptions.HTTPError('500'), ExternalServiceError),
        (sqlalchemy.exc.OperationalError('SELECT 1', {}, Exception('gone')), DatabaseError),
        (sqlalchemy.exc.IntegrityError('INSERT', {}, Exception('duplicate')), ConflictError),
        (ValueError('not a number'), ValidationError),
        (KeyError('owner_id'), ValidationError),
        (RuntimeError('boom'), ServiceError),
    ])
    def test_exception_mapping(self, raised, expected):
        @handle_service_exceptions()
        def operation():
            raise raised

        with pytest.raises(expected) as exc_info:
            operation()

        assert exc_info.value.__cause__ is raised

    def test_service_errors_pass_through(self):
        error = NotFoundError('Upload not found')

        @handle_service_exceptions()
        def operation():
            raise error

        with pytest.raises(NotFoundError) as exc_info:
            operation()

        assert exc_info.value is error

    def test_errors_are_logged(self):
        logger = Mock()

        @handle_service_exceptions(logger)
        def operation():
            raise requests.exceptions.Timeout('slow')

        with pytest.raises(TimeoutError):
            operation()

        logger.error.assert_called_once()
        assert 'operation' in logger.error.call_args.args[0]

    def test_return_value_is_preserved(self):
        @handle_service_exceptions()
        def operation(value):
            return value * 2

        assert operation(21) == 42
        assert operation.__name__ == 'operation'
