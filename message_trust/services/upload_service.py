"""
Service for accepting message exports and answering questions about them
"""
import re
import uuid
from datetime import UTC, datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

from celery.exceptions import OperationalError
from kombu.exceptions import OperationalError as KombuOperationalError

from message_trust.database.models import as_utc
from message_trust.repositories.analysis_repository import AnalysisRepository
from message_trust.repositories.transient_content_repository import TransientContentRepository
from message_trust.repositories.upload_job_repository import UploadJobRepository
from message_trust.services.base_service import BaseService
from message_trust.services.exceptions import (
    ConflictError,
    ConsentRequired,
    NotFoundError,
    UnrecognizedFormat,
    ValidationError,
    handle_service_exceptions,
)
from message_trust.services.upload_state import UploadStateMachine, UploadStatus
from message_trust.shared.format_detector import FormatDetector
from message_trust.shared.settings import PipelineSettings


SCAN_BYTES = 1024
SUSPICIOUS_PATTERNS = (
    (re.compile(rb'\x00{10,}'), 'null byte sequence'),
    (re.compile(rb'<script[^>]*>', re.IGNORECASE), 'script tag'),
    (re.compile(rb'javascript:', re.IGNORECASE), 'javascript URL'),
    (re.compile(rb'vbscript:', re.IGNORECASE), 'vbscript URL'),
)

SMALL_FILE_BYTES = 1024
LARGE_FILE_BYTES = 10 * 1024 * 1024


class UploadSubmission(NamedTuple):
    """Result of accepting an upload"""
    success: bool
    upload_id: Optional[str] = None
    status: Optional[str] = None
    format: Optional[str] = None
    estimated_message_count: int = 0
    warnings: List[str] = []
    task_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'success': self.success,
            'upload_id': self.upload_id,
            'status': self.status,
            'format': self.format,
            'estimated_message_count': self.estimated_message_count,
            'warnings': list(self.warnings),
        }
        if self.error:
            data['error'] = self.error
        return data


class UploadService(BaseService):
    """
    Accepts uploads and starts their processing task

    Handles the submission flow:
    1. Create the job and move it to validating
    2. Check size, type and content, then detect the export format
    3. Store the raw bytes encrypted, scoped to the job
    4. Start the Celery task with a pre-generated task ID
    """

    def __init__(self, settings: PipelineSettings, encryption_key: str, db_session=None,
                 detector: FormatDetector = None, task_function: Callable = None):
        super().__init__(db_session)
        self.settings = settings
        self.jobs = UploadJobRepository(db_session)
        self.contents = TransientContentRepository(encryption_key, db_session)
        self.analyses = AnalysisRepository(db_session)
        self.detector = detector or FormatDetector(self.logger)
        self._task_function = task_function

    def get_task_function(self) -> Callable:
        """Return the Celery task processing an upload"""
        if self._task_function is None:
            from message_trust.tasks.upload_tasks import process_message_upload
            self._task_function = process_message_upload
        return self._task_function

    def validate_upload(self, filename: str, data: bytes, mime_type: str) -> list[str]:
        """
        Check an upload before any processing happens

        Returns:
            Non-fatal warnings

        Raises:
            ValidationError: With every problem found in ``details['errors']``
        """
        limits = self.settings.upload
        errors = []
        warnings = []

        if not filename:
            errors.append('No file selected')
        if not data:
            errors.append('File is empty')
        elif len(data) > limits.max_file_size:
            errors.append(
                f'File size {len(data)} exceeds maximum allowed size of {limits.max_file_size} bytes'
            )
        if mime_type not in limits.allowed_mime_types:
            errors.append(
                f'File type {mime_type} is not allowed. Allowed types: {", ".join(limits.allowed_mime_types)}'
            )

        head = data[:SCAN_BYTES]
        for pattern, label in SUSPICIOUS_PATTERNS:
            if pattern.search(head):
                self.logger.warning(f"Rejected upload '{filename}': {label} in first {SCAN_BYTES} bytes")
                errors.append('File contains suspicious content patterns')
                break

        if errors:
            raise ValidationError('Upload failed validation', details={'errors': errors, 'warnings': warnings})

        if len(data) < SMALL_FILE_BYTES:
            warnings.append('File is very small and may not contain enough messages for analysis')
        elif len(data) > LARGE_FILE_BYTES:
            warnings.append('Large file may take longer to process')
        return warnings

    @handle_service_exceptions()
    def submit_upload(self, owner_id: str, filename: str, data: bytes, mime_type: str,
                      format_hint: str | None = None) -> UploadSubmission:
        """
        Accept an upload for processing

        Raises:
            ValidationError: When size, type or content checks fail
            UnrecognizedFormat: When the export format cannot be detected
        """
        now = datetime.now(UTC)
        job = self.jobs.create(
            owner_id=owner_id,
            original_filename=filename or 'upload',
            mime_type=mime_type or 'application/octet-stream',
            format_hint=format_hint,
            file_size=len(data or b''),
            status=UploadStatus.PENDING.value,
            progress=0,
            expires_at=now + timedelta(hours=self.settings.upload.retention_hours),
        )
        state = UploadStateMachine(job)
        state.transition_to(UploadStatus.VALIDATING)

        try:
            warnings = self.validate_upload(filename, data, mime_type)
            detection = self.detector.detect(data, mime_type, format_hint)
        except (ValidationError, UnrecognizedFormat) as e:
            state.fail(str(e))
            self.jobs.commit()
            self.logger.info(f"Upload {job.id} rejected during validation: {e}")
            raise

        if format_hint and not detection.hint_used:
            warnings.append(f"Format hint '{format_hint}' did not match the file; detected {detection.format.value}")
        if detection.confidence == 'low':
            warnings.append('Message format detected with low confidence')

        self.jobs.update(job, detected_format=detection.format.value, current_step='Queued for processing')
        self.contents.store(job.id, data)

        task_id = str(uuid.uuid4())
        job.task_id = task_id
        # Content must be committed before a worker can pick the job up
        self.jobs.commit()

        queued = self._enqueue(job, task_id)
        if not queued:
            warnings.append('Processing could not be queued yet; retry with the process endpoint')

        self.logger.info(
            f"Accepted upload {job.id} for owner {owner_id}: {detection.format.value}, "
            f"~{detection.estimated_count} messages"
        )
        return UploadSubmission(
            success=True,
            upload_id=str(job.id),
            status=job.status,
            format=detection.format.value,
            estimated_message_count=detection.estimated_count,
            warnings=warnings,
            task_id=task_id if queued else None,
        )

    def _enqueue(self, job, task_id: str) -> bool:
        try:
            self.get_task_function().apply_async(args=[str(job.id)], task_id=task_id)
            self.logger.info(f"Started processing task {task_id} for upload {job.id}")
            return True
        except (OperationalError, KombuOperationalError, OSError) as e:
            self.logger.error(f"Unable to queue processing for upload {job.id}: {e}")
            return False

    def _get_owned_job(self, job_id, owner_id: str):
        job = self.jobs.get_for_owner(job_id, owner_id)
        if job is None:
            raise NotFoundError(f"Upload {job_id} not found")
        return job

    @handle_service_exceptions()
    def list_uploads(self, owner_id: str) -> list[dict]:
        return [job.to_dict() for job in self.jobs.list_for_owner(owner_id)]

    @handle_service_exceptions()
    def get_progress(self, job_id, owner_id: str, now: datetime | None = None) -> dict:
        """Read-only view of where a job stands"""
        job = self._get_owned_job(job_id, owner_id)
        progress = {
            'upload_id': str(job.id),
            'status': job.status,
            'progress': job.progress,
            'current_step': job.current_step,
        }
        if job.status == UploadStatus.PROCESSING.value and job.progress:
            elapsed = ((now or datetime.now(UTC)) - as_utc(job.created_at)).total_seconds()
            remaining = elapsed * (100 - job.progress) / job.progress
            progress['estimated_time_remaining'] = max(0, int(remaining))
        if job.error_message:
            progress['error_message'] = job.error_message
        return progress

    @handle_service_exceptions()
    def get_result(self, job_id, owner_id: str) -> dict:
        """
        Metadata of a completed job; never message content

        Raises:
            ConflictError: When the job has not completed
        """
        job = self._get_owned_job(job_id, owner_id)
        if job.status != UploadStatus.COMPLETED.value:
            raise ConflictError(f"Upload {job.id} is {job.status}, results are only available once completed")
        return {
            'upload_id': str(job.id),
            'status': job.status,
            'message_count': job.message_count,
            'format': job.detected_format,
            'processed_at': as_utc(job.completed_at).isoformat() if job.completed_at else None,
            'sanitized_content_hash': job.sanitized_content_hash,
        }

    @handle_service_exceptions()
    def request_processing(self, job_id, owner_id: str) -> dict:
        """Queue processing for a job waiting in validating; a no-op otherwise"""
        job = self._get_owned_job(job_id, owner_id)
        if job.status != UploadStatus.VALIDATING.value:
            return {'upload_id': str(job.id), 'status': job.status, 'queued': False}

        task_id = str(uuid.uuid4())
        job.task_id = task_id
        self.jobs.commit()
        queued = self._enqueue(job, task_id)
        return {'upload_id': str(job.id), 'status': job.status, 'queued': queued}

    @handle_service_exceptions()
    def delete_upload(self, job_id, owner_id: str) -> dict:
        """
        Delete an upload, or ask the worker to stop when it is mid-processing

        A processing job is flagged for cancellation; the worker fails it at
        its next checkpoint. The row itself stays until the retention sweep
        expires it; expiry keeps the row and purges any content still stored.
        """
        job = self._get_owned_job(job_id, owner_id)
        if job.status == UploadStatus.PROCESSING.value:
            job.cancel_requested = True
            self.jobs.commit()
            self.logger.info(f"Cancellation requested for upload {job.id}")
            return {'upload_id': str(job.id), 'cancelled': True, 'deleted': False}

        upload_id = str(job.id)
        self.contents.purge(job.id)
        self.jobs.delete(job)
        self.jobs.commit()
        self.logger.info(f"Deleted upload {upload_id}")
        return {'upload_id': upload_id, 'cancelled': False, 'deleted': True}

    @handle_service_exceptions()
    def get_analysis(self, job_id, owner_id: str, consent_provider) -> dict:
        """
        Traits, trust score and bias flags of a completed job

        Raises:
            ConsentRequired: When the owner has not consented to analysis
            ConflictError: When the job has not completed
            NotFoundError: When no analysis exists for the job
        """
        job = self._get_owned_job(job_id, owner_id)
        if not consent_provider.has_analysis_consent(owner_id):
            raise ConsentRequired("Analysis consent is required to view results")
        if job.status != UploadStatus.COMPLETED.value:
            raise ConflictError(f"Upload {job.id} is {job.status}, analysis is not available")

        analysis = self.analyses.get_active(job.id)
        if analysis is None:
            raise NotFoundError(f"No analysis stored for upload {job.id}")
        return analysis.to_dict()
