"""
Celery tasks processing message uploads
"""
import os

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from message_trust.repositories.analysis_repository import AnalysisRepository
from message_trust.repositories.transient_content_repository import TransientContentRepository
from message_trust.repositories.upload_job_repository import UploadJobRepository
from message_trust.services.bias_auditor import BiasAuditor, CohortAnalyzer
from message_trust.services.cleanup_service import CleanupService
from message_trust.services.exceptions import (
    InferenceError,
    InvalidTransition,
    JobCancelled,
    NotFoundError,
    PipelineError,
    ServiceError,
)
from message_trust.services.trait_inference_client import TraitInferenceClient
from message_trust.services.trust_score_engine import compute_trust_score
from message_trust.services.upload_state import PROGRESS_STEPS, STEP_LABELS, UploadStateMachine, UploadStatus
from message_trust.shared.logging_config import get_job_logger, get_project_logger
from message_trust.shared.message_parsers import ensure_minimum, get_parser
from message_trust.shared.privacy_sanitizer import PrivacySanitizer, content_hash
from message_trust.shared.settings import PipelineSettings
from message_trust.tasks.base_task import BaseProcessingTask, BaseTaskManager
from message_trust.tasks.celery_app import celery


logger = get_project_logger(__name__)

CANCELLED_MESSAGE = 'Cancelled by owner'


class UploadProcessingTaskManager(BaseTaskManager):
    """
    Drives one upload job through parse, sanitize, inference, scoring and audit

    Only one processing attempt ever runs for a job: ``begin_processing``
    takes a row lock and refuses jobs that already left ``validating``.
    Raw content is purged and the sanitizer mapping discarded on every
    terminal transition.
    """

    def __init__(self, task_id: str, job_id: str, settings: PipelineSettings, encryption_key: str,
                 db_session=None, progress_repository=None, inference_client=None):
        super().__init__(task_id)
        if progress_repository is not None:
            self.progress = progress_repository
        self.job_id = job_id
        self.settings = settings
        self.jobs = UploadJobRepository(db_session)
        self.contents = TransientContentRepository(encryption_key, db_session)
        self.analyses = AnalysisRepository(db_session)
        self.job_logger = get_job_logger('message_trust.pipeline', job_id)
        self.inference_client = inference_client or TraitInferenceClient(settings.inference, self.job_logger)
        self.sanitizer = PrivacySanitizer(self.job_logger)
        self.job = None
        self.state = None

    def begin_processing(self) -> str | None:
        """
        Claim the job for this worker

        Returns:
            None when the job was claimed, otherwise the status it is in
        """
        job = self.jobs.lock_for_processing(self.job_id)
        if job is None:
            raise NotFoundError(f"Upload {self.job_id} not found")

        if job.status != UploadStatus.VALIDATING.value:
            self.jobs.commit()
            self.job_logger.info(f"Not starting processing, upload is already {job.status}")
            return job.status

        self.job = job
        self.state = UploadStateMachine(job)
        self.state.transition_to(UploadStatus.PROCESSING)
        job.current_step = 'Processing messages'
        job.task_id = self.task_id
        self.jobs.commit()
        return None

    def _step_done(self, step: str):
        self.state.advance_to_step(step)
        self.jobs.commit()
        self.update_progress(STEP_LABELS[step], PROGRESS_STEPS[step], upload_id=str(self.job.id))

    def _checkpoint(self, lock: bool = False):
        """Stop when the owner cancelled or the job was expired meanwhile"""
        self.jobs.refresh(self.job, lock=lock)
        if self.job.cancel_requested:
            raise JobCancelled(CANCELLED_MESSAGE)
        if self.job.status != UploadStatus.PROCESSING.value:
            raise JobCancelled(f"Upload is {self.job.status}")

    def _cohort_statistics(self):
        rows = self.analyses.cohort_rows(exclude_owner=self.job.owner_id)
        if len(rows) < self.settings.bias.min_cohort_size:
            return None
        analyzer = CohortAnalyzer(self.settings.bias, self.job_logger)
        return analyzer.cohort_statistics(
            [row.score for row in rows],
            [row.traits_dict() for row in rows],
        )

    def _process(self) -> dict:
        data = self.contents.load(self.job.id)

        parse_result = get_parser(self.job.detected_format, self.job_logger).parse(data)
        records = ensure_minimum(parse_result.records, self.settings.upload.min_messages)
        self.job.message_count = len(records)
        self._step_done('parsed')
        self._checkpoint()

        sanitized = self.sanitizer.sanitize(records)
        digest = content_hash(sanitized.records)
        self.job.sanitized_content_hash = digest
        self._step_done('sanitized')
        self._checkpoint()

        traits = self.inference_client.infer_traits([record.body for record in sanitized.records])
        self._step_done('traits')
        self._checkpoint()

        result = compute_trust_score(traits, self.settings.scoring)
        self._step_done('scored')

        # The row stays locked until the analysis and the completion are committed together
        self._checkpoint(lock=True)
        auditor = BiasAuditor(self.settings.bias, self.job_logger, self.settings.scoring)
        outcome = auditor.audit(result, traits, self._cohort_statistics())
        self.analyses.save_analysis(self.job, traits, outcome, model_version=self.settings.inference.model)
        self.state.advance_to_step('audited')
        self.state.complete(len(records), digest)
        self.contents.purge(self.job.id)
        self.jobs.commit()
        self.update_progress(STEP_LABELS['audited'], PROGRESS_STEPS['audited'], upload_id=str(self.job.id))
        self.job_logger.info(
            f"Processing complete: {len(records)} messages ({parse_result.skipped} skipped), "
            f"score {outcome.result.score}, {len(outcome.flags)} bias flags, withheld={outcome.withheld}"
        )
        return {
            'success': True,
            'upload_id': str(self.job.id),
            'status': self.job.status,
            'message_count': len(records),
            'skipped_records': parse_result.skipped,
            'redactions': sanitized.report.total,
            'withheld': outcome.withheld,
            'bias_flags': len(outcome.flags),
        }

    def _fail(self, message: str):
        """Move the job to failed and purge its content, whatever state it reached"""
        self.jobs.db_session.rollback()
        self.jobs.refresh(self.job)
        if not self.state.is_terminal:
            self.state.fail(message)
        self.contents.purge(self.job.id)
        self.jobs.commit()

    def run(self):
        """Run the complete upload processing workflow"""
        self.update_progress('starting', 0, upload_id=str(self.job_id))

        current_status = self.begin_processing()
        if current_status is not None:
            return {
                'success': False,
                'upload_id': str(self.job_id),
                'status': current_status,
                'error': f'Upload is already {current_status}',
            }

        try:
            return self._process()
        except JobCancelled as e:
            self.job_logger.info(f"Processing stopped: {e}")
            self._fail(str(e))
            return {'success': False, 'upload_id': str(self.job.id), 'status': self.job.status, 'error': str(e)}
        except (PipelineError, InferenceError, NotFoundError, InvalidTransition) as e:
            self.job_logger.error(f"Processing failed: {e}")
            self._fail(str(e))
            return {'success': False, 'upload_id': str(self.job.id), 'status': self.job.status, 'error': str(e)}
        except (ServiceError, SQLAlchemyError) as e:
            self.job_logger.error(f"Processing failed with infrastructure error: {e}", exc_info=True)
            self._fail(f"Processing error: {e}")
            return {'success': False, 'upload_id': str(self.job.id), 'status': self.job.status, 'error': str(e)}
        except Exception as e:
            self.job_logger.error(f"Unexpected error during processing: {e}", exc_info=True)
            self._fail('Unexpected processing error')
            return {'success': False, 'upload_id': str(self.job.id), 'status': self.job.status, 'error': str(e)}
        finally:
            self.sanitizer.discard()


def _pipeline_config():
    """Settings and encryption key from the app config, or the environment outside an app"""
    if has_app_context():
        return current_app.config['PIPELINE_SETTINGS'], current_app.config['CONTENT_ENCRYPTION_KEY']
    return PipelineSettings.from_env(), os.environ.get('CONTENT_ENCRYPTION_KEY', '')


@celery.task(bind=True)
def process_message_upload(self, job_id: str):
    """
    Process an uploaded message export

    Args:
        job_id: ID of the upload job to process

    Returns:
        dict: Processing outcome; failures are reported, never raised
    """
    settings, encryption_key = _pipeline_config()
    task_handler = BaseProcessingTask()
    task_manager = UploadProcessingTaskManager(self.request.id, job_id, settings, encryption_key)

    return task_handler.execute_with_error_handling(task_manager.run)


@celery.task
def sweep_expired_uploads():
    """Expire uploads past their retention window"""
    _, encryption_key = _pipeline_config()
    result = CleanupService(encryption_key).sweep_expired()
    logger.info(f"Retention sweep finished: {result}")
    return result
