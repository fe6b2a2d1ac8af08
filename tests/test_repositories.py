"""
Tests for the repository layer
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from message_trust.database.models import TransientContent, UploadJob
from message_trust.repositories import AnalysisRepository, TransientContentRepository, UploadJobRepository
from message_trust.repositories.upload_job_repository import parse_job_id
from message_trust.services.bias_auditor import BiasAuditor
from message_trust.services.exceptions import NotFoundError
from message_trust.services.trust_score_engine import compute_trust_score
from message_trust.shared.models import PersonalityTraits


def _create_job(db, owner_id='owner-1', status='validating', expires_in=timedelta(hours=24)):
    job = UploadJob(
        owner_id=owner_id,
        original_filename='chat.json',
        mime_type='application/json',
        file_size=100,
        status=status,
        expires_at=datetime.now(UTC) + expires_in,
    )
    db.session.add(job)
    db.session.commit()
    return job


def _outcome(traits):
    return BiasAuditor().audit(compute_trust_score(traits), traits)


class TestUploadJobRepository:
    """Test upload job data access"""

    def test_get_for_owner(self, db):
        job = _create_job(db)
        repo = UploadJobRepository(db.session)

        assert repo.get_for_owner(str(job.id), 'owner-1') is job
        assert repo.get_for_owner(job.id, 'someone-else') is None
        assert repo.get_for_owner('not-a-uuid', 'owner-1') is None

    def test_list_for_owner(self, db):
        _create_job(db)
        _create_job(db)
        _create_job(db, owner_id='owner-2')

        assert len(UploadJobRepository(db.session).list_for_owner('owner-1')) == 2

    def test_get_expired(self, db):
        stale = _create_job(db, expires_in=timedelta(hours=-1))
        _create_job(db)
        _create_job(db, status='expired', expires_in=timedelta(hours=-2))

        expired = UploadJobRepository(db.session).get_expired(datetime.now(UTC))

        assert [job.id for job in expired] == [stale.id]

    def test_count_by_status(self, db):
        _create_job(db)
        _create_job(db, status='completed')
        _create_job(db, status='completed')

        assert UploadJobRepository(db.session).count_by_status() == {'validating': 1, 'completed': 2}

    def test_lock_for_processing(self, db):
        job = _create_job(db)

        assert UploadJobRepository(db.session).lock_for_processing(str(job.id)) is job

    def test_parse_job_id(self):
        job_id = uuid.uuid4()

        assert parse_job_id(job_id) is job_id
        assert parse_job_id(str(job_id)) == job_id
        assert parse_job_id('../etc/passwd') is None
        assert parse_job_id(None) is None


class TestTransientContentRepository:
    """Raw uploads are stored encrypted and purged on demand"""

    def test_store_and_load(self, db, encryption_key):
        job = _create_job(db)
        repo = TransientContentRepository(encryption_key, db.session)

        repo.store(job.id, b'{"raw": "export"}')
        db.session.commit()

        stored = db.session.execute(db.select(TransientContent)).scalars().one()
        assert b'raw' not in stored.encrypted_data
        assert stored.byte_size == 17
        assert repo.load(str(job.id)) == b'{"raw": "export"}'
        assert repo.exists(job.id)

    def test_purge(self, db, encryption_key):
        job = _create_job(db)
        repo = TransientContentRepository(encryption_key, db.session)
        repo.store(job.id, b'data')
        db.session.commit()

        assert repo.purge(job.id) is True
        db.session.commit()

        assert repo.purge(job.id) is False
        with pytest.raises(NotFoundError):
            repo.load(job.id)

    def test_wrong_key_cannot_read_content(self, db, encryption_key):
        job = _create_job(db)
        TransientContentRepository(encryption_key, db.session).store(job.id, b'data')
        db.session.commit()

        with pytest.raises(NotFoundError, match='cannot be decrypted'):
            TransientContentRepository('another-key', db.session).load(job.id)

    def test_missing_key_is_a_configuration_error(self, db):
        with pytest.raises(RuntimeError, match='CONTENT_ENCRYPTION_KEY'):
            TransientContentRepository('', db.session)


class TestAnalysisRepository:
    """At most one active analysis per job"""

    def test_save_analysis(self, db, reliable_traits):
        job = _create_job(db, status='processing')
        repo = AnalysisRepository(db.session)

        analysis = repo.save_analysis(job, reliable_traits, _outcome(reliable_traits), model_version='test-model')
        db.session.commit()

        stored = repo.get_active(job.id)
        assert stored.id == analysis.id
        assert stored.score == 75
        assert stored.original_score == 75
        assert stored.risk_tier == 'low'
        assert stored.owner_id == 'owner-1'
        assert stored.to_dict()['traits']['conscientiousness'] == 85

    def test_new_analysis_supersedes_previous(self, db, reliable_traits, unreliable_traits):
        job = _create_job(db, status='processing')
        repo = AnalysisRepository(db.session)

        repo.save_analysis(job, reliable_traits, _outcome(reliable_traits))
        db.session.commit()
        latest = repo.save_analysis(job, unreliable_traits, _outcome(unreliable_traits))
        db.session.commit()

        assert repo.get_active(job.id).id == latest.id
        assert repo.count() == 2
        assert sum(1 for a in repo.get_all() if a.is_active) == 1

    def test_bias_flags_are_stored(self, db):
        traits = PersonalityTraits(
            conscientiousness=100, neuroticism=0, agreeableness=100,
            openness=100, extraversion=100, confidence=20,
        )
        job = _create_job(db, status='processing')

        AnalysisRepository(db.session).save_analysis(job, traits, _outcome(traits))
        db.session.commit()

        analysis = AnalysisRepository(db.session).get_active(job.id).to_dict()
        assert analysis['trust_score']['score'] == 85
        assert analysis['trust_score']['original_score'] == 100
        assert sorted(f['mitigation_applied'] for f in analysis['bias_flags']) == [False, True]

    def test_cohort_rows_exclude_owner(self, db, reliable_traits):
        repo = AnalysisRepository(db.session)
        for owner_id in ('owner-1', 'owner-2', 'owner-3'):
            repo.save_analysis(_create_job(db, owner_id=owner_id), reliable_traits, _outcome(reliable_traits))
        db.session.commit()

        rows = repo.cohort_rows(exclude_owner='owner-1')

        assert sorted(row.owner_id for row in rows) == ['owner-2', 'owner-3']
