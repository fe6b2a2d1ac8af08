"""
SQLAlchemy models for upload jobs, transient content and trust analyses
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy.dialects.postgresql import UUID as POSTGRESQL_UUID
from sqlalchemy.types import CHAR, TypeDecorator

from . import db


class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise uses CHAR(36)
    to store the UUID string.
    """
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(POSTGRESQL_UUID())
        else:
            return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return str(value)
        else:
            if not isinstance(value, uuid.UUID):
                return str(uuid.UUID(value))
            return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        else:
            if not isinstance(value, uuid.UUID):
                return uuid.UUID(value)
            return value


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to datetimes read back from backends that drop the zone"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class UploadJob(db.Model):
    """One uploaded message export and its processing lifecycle"""
    __tablename__ = 'upload_jobs'

    id = db.Column(UUID(), primary_key=True, default=uuid.uuid4)
    owner_id = db.Column(db.String(255), nullable=False, index=True)

    # Upload metadata
    original_filename = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)
    format_hint = db.Column(db.String(50))
    detected_format = db.Column(db.String(50))
    file_size = db.Column(db.Integer, nullable=False)

    # Lifecycle
    status = db.Column(db.String(20), nullable=False, default='pending')  # see UploadStatus
    progress = db.Column(db.Integer, nullable=False, default=0)
    current_step = db.Column(db.String(100))
    error_message = db.Column(db.Text)
    cancel_requested = db.Column(db.Boolean, nullable=False, default=False)
    task_id = db.Column(db.String(36))  # Celery task ID

    # Results (metadata only, never content)
    message_count = db.Column(db.Integer)
    sanitized_content_hash = db.Column(db.String(64))

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(UTC))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))
    completed_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime, nullable=False)

    # Relationships
    content = db.relationship('TransientContent', back_populates='job', uselist=False,
                              cascade='all, delete-orphan')
    analyses = db.relationship('TrustAnalysis', back_populates='job', cascade='all, delete-orphan',
                               order_by='TrustAnalysis.created_at')

    __table_args__ = (
        db.Index('idx_upload_jobs_status_expires', 'status', 'expires_at'),
    )

    def to_dict(self) -> dict:
        return {
            'upload_id': str(self.id),
            'filename': self.original_filename,
            'mime_type': self.mime_type,
            'format': self.detected_format,
            'file_size': self.file_size,
            'status': self.status,
            'progress': self.progress,
            'current_step': self.current_step,
            'error_message': self.error_message,
            'message_count': self.message_count,
            'created_at': _isoformat(self.created_at),
            'completed_at': _isoformat(self.completed_at),
            'expires_at': _isoformat(self.expires_at),
        }

    def __repr__(self):
        return f'<UploadJob {self.id} ({self.status})>'


class TransientContent(db.Model):
    """Encrypted raw upload bytes, kept only while the job needs them"""
    __tablename__ = 'transient_contents'

    id = db.Column(UUID(), primary_key=True, default=uuid.uuid4)
    job_id = db.Column(UUID(), db.ForeignKey('upload_jobs.id', ondelete='CASCADE'), nullable=False, unique=True)
    encrypted_data = db.Column(db.LargeBinary, nullable=False)
    byte_size = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(UTC))

    job = db.relationship('UploadJob', back_populates='content')

    def __repr__(self):
        return f'<TransientContent job={self.job_id} ({self.byte_size} bytes)>'


class TrustAnalysis(db.Model):
    """Persisted traits and trust score for a completed job"""
    __tablename__ = 'trust_analyses'

    id = db.Column(UUID(), primary_key=True, default=uuid.uuid4)
    job_id = db.Column(UUID(), db.ForeignKey('upload_jobs.id', ondelete='CASCADE'), nullable=False, index=True)
    owner_id = db.Column(db.String(255), nullable=False, index=True)

    # Traits
    conscientiousness = db.Column(db.Float, nullable=False)
    neuroticism = db.Column(db.Float, nullable=False)
    agreeableness = db.Column(db.Float, nullable=False)
    openness = db.Column(db.Float, nullable=False)
    extraversion = db.Column(db.Float, nullable=False)
    confidence = db.Column(db.Float, nullable=False)

    # Score
    score = db.Column(db.Integer, nullable=False)
    original_score = db.Column(db.Integer, nullable=False)
    traditional_score = db.Column(db.Integer, nullable=False)
    risk_tier = db.Column(db.String(10), nullable=False)
    model_version = db.Column(db.String(100))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    withheld = db.Column(db.Boolean, nullable=False, default=False)

    computed_at = db.Column(db.DateTime, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(UTC))

    job = db.relationship('UploadJob', back_populates='analyses')
    bias_flags = db.relationship('BiasFlagRecord', back_populates='analysis', cascade='all, delete-orphan',
                                 order_by='BiasFlagRecord.flagged_at')

    __table_args__ = (
        # At most one active analysis per job
        db.Index('uq_trust_analyses_active_job', 'job_id', unique=True,
                 postgresql_where=db.text('is_active'), sqlite_where=db.text('is_active')),
    )

    def traits_dict(self) -> dict:
        return {
            'conscientiousness': self.conscientiousness,
            'neuroticism': self.neuroticism,
            'agreeableness': self.agreeableness,
            'openness': self.openness,
            'extraversion': self.extraversion,
            'confidence': self.confidence,
        }

    def to_dict(self) -> dict:
        return {
            'analysis_id': str(self.id),
            'upload_id': str(self.job_id),
            'traits': self.traits_dict(),
            'trust_score': {
                'score': self.score,
                'original_score': self.original_score,
                'traditional_score': self.traditional_score,
                'risk_tier': self.risk_tier,
                'confidence': self.confidence,
                'computed_at': _isoformat(self.computed_at),
                'expires_at': _isoformat(self.expires_at),
            },
            'model_version': self.model_version,
            'withheld': self.withheld,
            'bias_flags': [flag.to_dict() for flag in self.bias_flags],
        }

    def __repr__(self):
        return f'<TrustAnalysis {self.id} score={self.score} active={self.is_active}>'


class BiasFlagRecord(db.Model):
    """Bias flag raised while auditing an analysis"""
    __tablename__ = 'bias_flags'

    id = db.Column(UUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = db.Column(UUID(), db.ForeignKey('trust_analyses.id', ondelete='CASCADE'), nullable=False,
                            index=True)
    type = db.Column(db.String(30), nullable=False)
    severity = db.Column(db.String(10), nullable=False)
    description = db.Column(db.Text, nullable=False)
    mitigation_applied = db.Column(db.Boolean, nullable=False, default=False)
    flagged_at = db.Column(db.DateTime, nullable=False)
    resolved_at = db.Column(db.DateTime)

    analysis = db.relationship('TrustAnalysis', back_populates='bias_flags')

    def to_dict(self) -> dict:
        return {
            'type': self.type,
            'severity': self.severity,
            'description': self.description,
            'mitigation_applied': self.mitigation_applied,
            'flagged_at': _isoformat(self.flagged_at),
            'resolved_at': _isoformat(self.resolved_at),
        }

    def __repr__(self):
        return f'<BiasFlagRecord {self.type} ({self.severity})>'


def _isoformat(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None
