"""
Retention sweep expiring uploads past their retention window
"""
from datetime import UTC, datetime

from message_trust.repositories.transient_content_repository import TransientContentRepository
from message_trust.repositories.upload_job_repository import UploadJobRepository
from message_trust.services.base_service import BaseService
from message_trust.services.exceptions import handle_service_exceptions
from message_trust.services.upload_state import UploadStateMachine, UploadStatus


class CleanupService(BaseService):
    """Expire stale upload jobs and purge any content they still hold"""

    def __init__(self, encryption_key: str, db_session=None):
        super().__init__(db_session)
        self.jobs = UploadJobRepository(db_session)
        self.contents = TransientContentRepository(encryption_key, db_session)

    @handle_service_exceptions()
    def sweep_expired(self, now: datetime | None = None) -> dict:
        """
        Expire every job whose retention window has passed

        Jobs still processing are flagged for cancellation as well, so the
        worker stops at its next checkpoint.

        Returns:
            dict: counts of expired jobs, purged contents and failures
        """
        now = now or datetime.now(UTC)
        expired = purged = failed = 0

        for job in self.jobs.get_expired(now):
            try:
                if job.status == UploadStatus.PROCESSING.value:
                    job.cancel_requested = True
                UploadStateMachine(job).expire()
                if self.contents.purge(job.id):
                    purged += 1
                self.jobs.commit()
                expired += 1
                self.logger.info(f"Expired upload {job.id}")
            except Exception as e:
                self.jobs.db_session.rollback()
                failed += 1
                self.logger.error(f"Failed to expire upload {job.id}: {e}", exc_info=True)

        if expired or failed:
            self.logger.info(f"Retention sweep: {expired} expired, {purged} purged, {failed} failed")
        return {'expired': expired, 'purged': purged, 'failed': failed}
