"""
Tests for the retention sweep
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from message_trust.database.models import UploadJob
from message_trust.repositories import TransientContentRepository, UploadJobRepository
from message_trust.services.cleanup_service import CleanupService


def _create_job(db, encryption_key, status, expires_in, with_content=True):
    job = UploadJob(
        owner_id='owner-1',
        original_filename='chat.json',
        mime_type='application/json',
        file_size=4,
        status=status,
        expires_at=datetime.now(UTC) + expires_in,
    )
    db.session.add(job)
    db.session.flush()
    if with_content:
        TransientContentRepository(encryption_key, db.session).store(job.id, b'data')
    db.session.commit()
    return job


class TestCleanupService:
    """Jobs past their retention window are expired and their content purged"""

    def test_sweep_expires_stale_jobs(self, db, encryption_key):
        stale = _create_job(db, encryption_key, 'validating', timedelta(hours=-1))
        fresh = _create_job(db, encryption_key, 'validating', timedelta(hours=1))
        done = _create_job(db, encryption_key, 'completed', timedelta(hours=-1), with_content=False)

        result = CleanupService(encryption_key, db.session).sweep_expired()

        assert result == {'expired': 2, 'purged': 1, 'failed': 0}
        jobs = UploadJobRepository(db.session)
        assert jobs.get_job(stale.id).status == 'expired'
        assert jobs.get_job(done.id).status == 'expired'
        assert jobs.get_job(fresh.id).status == 'validating'
        contents = TransientContentRepository(encryption_key, db.session)
        assert not contents.exists(stale.id)
        assert contents.exists(fresh.id)

    def test_processing_job_is_flagged_for_cancellation(self, db, encryption_key):
        job = _create_job(db, encryption_key, 'processing', timedelta(minutes=-5))

        CleanupService(encryption_key, db.session).sweep_expired()

        job = UploadJobRepository(db.session).get_job(job.id)
        assert job.status == 'expired'
        assert job.cancel_requested is True

    def test_sweep_uses_given_clock(self, db, encryption_key):
        _create_job(db, encryption_key, 'validating', timedelta(hours=2))

        result = CleanupService(encryption_key, db.session).sweep_expired(
            now=datetime.now(UTC) + timedelta(hours=3)
        )

        assert result['expired'] == 1

    def test_expired_jobs_are_not_swept_twice(self, db, encryption_key):
        _create_job(db, encryption_key, 'failed', timedelta(hours=-1))
        service = CleanupService(encryption_key, db.session)

        service.sweep_expired()

        assert service.sweep_expired() == {'expired': 0, 'purged': 0, 'failed': 0}

    def test_one_failure_does_not_stop_the_sweep(self, db, encryption_key):
        _create_job(db, encryption_key, 'validating', timedelta(hours=-1))
        _create_job(db, encryption_key, 'validating', timedelta(hours=-1))
        service = CleanupService(encryption_key, db.session)
        original_purge = service.contents.purge
        calls = []

        def flaky_purge(job_id):
            calls.append(job_id)
            if len(calls) == 1:
                raise OSError('storage unavailable')
            return original_purge(job_id)

        with patch.object(service.contents, 'purge', side_effect=flaky_purge):
            result = service.sweep_expired()

        assert result == {'expired': 1, 'purged': 1, 'failed': 1}
