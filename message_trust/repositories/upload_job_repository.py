"""
Repository for upload job rows
"""

import uuid
from datetime import datetime

from message_trust.database import db
from message_trust.database.models import UploadJob
from message_trust.repositories.base_repository import ModelRepository
from message_trust.services.upload_state import UploadStatus


def parse_job_id(job_id) -> uuid.UUID | None:
    """Return a UUID for a job id given as string or UUID, None when malformed"""
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except (TypeError, ValueError):
        return None


class UploadJobRepository(ModelRepository[UploadJob]):
    """Data access for upload jobs"""

    def __init__(self, db_session=None):
        super().__init__(UploadJob, db_session)

    def get_job(self, job_id) -> UploadJob | None:
        parsed = parse_job_id(job_id)
        if parsed is None:
            return None
        return self.get_by_id(parsed)

    def get_for_owner(self, job_id, owner_id: str) -> UploadJob | None:
        """Get a job only when it belongs to ``owner_id``"""
        job = self.get_job(job_id)
        if job is None or job.owner_id != owner_id:
            return None
        return job

    def list_for_owner(self, owner_id: str) -> list[UploadJob]:
        def _list():
            return self.db_session.execute(
                db.select(UploadJob)
                .where(UploadJob.owner_id == owner_id)
                .order_by(UploadJob.created_at.desc())
            ).scalars().all()

        return self.safe_query(_list, f"list jobs for owner {owner_id}")

    def lock_for_processing(self, job_id) -> UploadJob | None:
        """Load a job holding a row lock until the transaction ends"""
        parsed = parse_job_id(job_id)
        if parsed is None:
            return None

        def _lock():
            return self.db_session.execute(
                db.select(UploadJob).where(UploadJob.id == parsed).with_for_update()
            ).scalars().first()

        return self.safe_query(_lock, f"lock job {parsed}")

    def refresh(self, job: UploadJob, lock: bool = False) -> UploadJob:
        """Reload a job from the database, optionally holding its row lock until the transaction ends"""
        self.db_session.refresh(job, with_for_update=True if lock else None)
        return job

    def get_expired(self, now: datetime) -> list[UploadJob]:
        """Jobs past their retention window that have not been expired yet"""
        def _expired():
            return self.db_session.execute(
                db.select(UploadJob)
                .where(UploadJob.expires_at <= now)
                .where(UploadJob.status != UploadStatus.EXPIRED.value)
            ).scalars().all()

        return self.safe_query(_expired, "get expired jobs")

    def count_by_status(self) -> dict:
        def _count():
            rows = self.db_session.execute(
                db.select(UploadJob.status, db.func.count()).group_by(UploadJob.status)
            ).all()
            return {status: count for status, count in rows}

        return self.safe_query(_count, "count jobs by status")
