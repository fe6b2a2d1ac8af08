"""
Lifecycle of an upload job

    pending -> validating -> processing -> completed | failed -> expired

Any non-terminal state may also fail or expire. ``expired`` is final.
"""

from datetime import UTC, datetime
from enum import Enum

from message_trust.services.exceptions import InvalidTransition


class UploadStatus(str, Enum):
    PENDING = 'pending'
    VALIDATING = 'validating'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    EXPIRED = 'expired'


ALLOWED_TRANSITIONS = {
    UploadStatus.PENDING: frozenset({UploadStatus.VALIDATING, UploadStatus.FAILED, UploadStatus.EXPIRED}),
    UploadStatus.VALIDATING: frozenset({UploadStatus.PROCESSING, UploadStatus.FAILED, UploadStatus.EXPIRED}),
    UploadStatus.PROCESSING: frozenset({UploadStatus.COMPLETED, UploadStatus.FAILED, UploadStatus.EXPIRED}),
    UploadStatus.COMPLETED: frozenset({UploadStatus.EXPIRED}),
    UploadStatus.FAILED: frozenset({UploadStatus.EXPIRED}),
    UploadStatus.EXPIRED: frozenset(),
}

TERMINAL_STATUSES = frozenset({UploadStatus.COMPLETED, UploadStatus.FAILED, UploadStatus.EXPIRED})

# Progress milestone (percent) reached when each processing step finishes
PROGRESS_STEPS = {
    'parsed': 10,
    'sanitized': 30,
    'traits': 70,
    'scored': 90,
    'audited': 100,
}

STEP_LABELS = {
    'validating': 'Validating upload',
    'parsed': 'Parsing messages',
    'sanitized': 'Removing personal information',
    'traits': 'Analyzing communication patterns',
    'scored': 'Computing trust score',
    'audited': 'Auditing for bias',
}


def can_transition(current, requested) -> bool:
    return UploadStatus(requested) in ALLOWED_TRANSITIONS[UploadStatus(current)]


class UploadStateMachine:
    """
    Guards every status change of an upload job

    Works on any object exposing ``status``, ``progress``, ``current_step``,
    ``error_message``, ``completed_at``, ``message_count`` and
    ``sanitized_content_hash`` attributes, normally an UploadJob row.
    """

    def __init__(self, job):
        self.job = job

    @property
    def status(self) -> UploadStatus:
        return UploadStatus(self.job.status)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, status, *, error_message: str | None = None) -> UploadStatus:
        """
        Move the job to ``status``

        Raises:
            InvalidTransition: When the move is not allowed from the current status
        """
        requested = UploadStatus(status)
        current = self.status
        if requested not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransition(current.value, requested.value)

        self.job.status = requested.value
        if requested == UploadStatus.PROCESSING:
            self.job.progress = self.job.progress or 0
        if requested == UploadStatus.VALIDATING:
            self.job.current_step = STEP_LABELS['validating']
        if error_message is not None:
            self.job.error_message = error_message
        if requested in (UploadStatus.COMPLETED, UploadStatus.FAILED):
            self.job.completed_at = datetime.now(UTC)
        return requested

    def advance(self, progress: int, step: str | None = None):
        """Record processing progress; progress never moves backwards"""
        if self.status != UploadStatus.PROCESSING:
            raise InvalidTransition(self.status.value, UploadStatus.PROCESSING.value)
        progress = max(0, min(100, int(progress)))
        if progress < (self.job.progress or 0):
            raise ValueError(f"Progress cannot decrease from {self.job.progress} to {progress}")
        self.job.progress = progress
        if step is not None:
            self.job.current_step = STEP_LABELS.get(step, step)

    def advance_to_step(self, step: str):
        self.advance(PROGRESS_STEPS[step], step)

    def fail(self, message: str):
        self.transition_to(UploadStatus.FAILED, error_message=message)

    def complete(self, message_count: int, content_hash: str):
        self.transition_to(UploadStatus.COMPLETED)
        self.job.message_count = message_count
        self.job.sanitized_content_hash = content_hash
        self.job.progress = 100
        self.job.current_step = 'Completed'

    def expire(self):
        self.transition_to(UploadStatus.EXPIRED)
