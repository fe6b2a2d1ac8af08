"""
Tests for the upload job state machine
"""

from types import SimpleNamespace

import pytest

from message_trust.services.exceptions import InvalidTransition
from message_trust.services.upload_state import (
    PROGRESS_STEPS,
    UploadStateMachine,
    UploadStatus,
    can_transition,
)


def _job(status='pending', progress=0):
    return SimpleNamespace(
        status=status,
        progress=progress,
        current_step=None,
        error_message=None,
        completed_at=None,
        message_count=None,
        sanitized_content_hash=None,
    )


class TestTransitions:
    """Only the documented lifecycle moves are allowed"""

    def test_happy_path(self):
        job = _job()
        state = UploadStateMachine(job)

        state.transition_to(UploadStatus.VALIDATING)
        state.transition_to(UploadStatus.PROCESSING)
        state.complete(message_count=120, content_hash='a' * 64)

        assert job.status == 'completed'
        assert job.progress == 100
        assert job.message_count == 120
        assert job.sanitized_content_hash == 'a' * 64
        assert job.completed_at is not None
        assert state.is_terminal

    @pytest.mark.parametrize('current, requested', [
        ('pending', 'processing'),
        ('pending', 'completed'),
        ('validating', 'completed'),
        ('completed', 'processing'),
        ('failed', 'processing'),
        ('failed', 'completed'),
        ('expired', 'failed'),
        ('expired', 'validating'),
    ])
    def test_disallowed_transitions(self, current, requested):
        job = _job(status=current)

        with pytest.raises(InvalidTransition) as exc_info:
            UploadStateMachine(job).transition_to(requested)

        assert exc_info.value.current == current
        assert exc_info.value.requested == requested
        assert job.status == current

    @pytest.mark.parametrize('current', ['pending', 'validating', 'processing'])
    def test_any_active_state_can_fail(self, current):
        job = _job(status=current)

        UploadStateMachine(job).fail('Parsing failed')

        assert job.status == 'failed'
        assert job.error_message == 'Parsing failed'
        assert job.completed_at is not None

    @pytest.mark.parametrize('current', ['pending', 'validating', 'processing', 'completed', 'failed'])
    def test_everything_but_expired_can_expire(self, current):
        job = _job(status=current)

        UploadStateMachine(job).expire()

        assert job.status == 'expired'

    def test_can_transition_helper(self):
        assert can_transition('validating', 'processing')
        assert not can_transition(UploadStatus.COMPLETED, UploadStatus.FAILED)

    def test_validating_sets_step_label(self):
        job = _job()

        UploadStateMachine(job).transition_to('validating')

        assert job.current_step == 'Validating upload'


class TestProgress:
    """Progress only moves forward while processing"""

    def test_steps_map_to_milestones(self):
        job = _job(status='processing')
        state = UploadStateMachine(job)

        for step, milestone in PROGRESS_STEPS.items():
            state.advance_to_step(step)
            assert job.progress == milestone

        assert job.current_step == 'Auditing for bias'

    def test_progress_never_decreases(self):
        job = _job(status='processing', progress=30)

        with pytest.raises(ValueError):
            UploadStateMachine(job).advance(10)

        assert job.progress == 30

    def test_progress_outside_processing_is_rejected(self):
        with pytest.raises(InvalidTransition):
            UploadStateMachine(_job(status='validating')).advance(10)

    def test_progress_is_clamped(self):
        job = _job(status='processing')

        UploadStateMachine(job).advance(150)

        assert job.progress == 100
