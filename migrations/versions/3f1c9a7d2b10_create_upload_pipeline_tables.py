"""Create upload job, transient content, trust analysis and bias flag tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '3f1c9a7d2b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'upload_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('original_filename', sa.String(length=255), nullable=False),
        sa.Column('mime_type', sa.String(length=100), nullable=False),
        sa.Column('format_hint', sa.String(length=50), nullable=True),
        sa.Column('detected_format', sa.String(length=50), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('current_step', sa.String(length=100), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False),
        sa.Column('task_id', sa.String(length=36), nullable=True),
        sa.Column('message_count', sa.Integer(), nullable=True),
        sa.Column('sanitized_content_hash', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('upload_jobs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_upload_jobs_owner_id'), ['owner_id'], unique=False)
        batch_op.create_index('idx_upload_jobs_status_expires', ['status', 'expires_at'], unique=False)

    # Raw uploads, Fernet-encrypted, removed as soon as processing ends
    op.create_table(
        'transient_contents',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('encrypted_data', sa.LargeBinary(), nullable=False),
        sa.Column('byte_size', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['upload_jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id')
    )

    op.create_table(
        'trust_analyses',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('conscientiousness', sa.Float(), nullable=False),
        sa.Column('neuroticism', sa.Float(), nullable=False),
        sa.Column('agreeableness', sa.Float(), nullable=False),
        sa.Column('openness', sa.Float(), nullable=False),
        sa.Column('extraversion', sa.Float(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('original_score', sa.Integer(), nullable=False),
        sa.Column('traditional_score', sa.Integer(), nullable=False),
        sa.Column('risk_tier', sa.String(length=10), nullable=False),
        sa.Column('model_version', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('withheld', sa.Boolean(), nullable=False),
        sa.Column('computed_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['upload_jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('trust_analyses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_trust_analyses_job_id'), ['job_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_trust_analyses_owner_id'), ['owner_id'], unique=False)

    # At most one active analysis per job
    op.create_index(
        'uq_trust_analyses_active_job',
        'trust_analyses',
        ['job_id'],
        unique=True,
        postgresql_where=sa.text('is_active')
    )

    op.create_table(
        'bias_flags',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('analysis_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('severity', sa.String(length=10), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('mitigation_applied', sa.Boolean(), nullable=False),
        sa.Column('flagged_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['analysis_id'], ['trust_analyses.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('bias_flags', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bias_flags_analysis_id'), ['analysis_id'], unique=False)


def downgrade():
    with op.batch_alter_table('bias_flags', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_bias_flags_analysis_id'))
    op.drop_table('bias_flags')

    op.drop_index('uq_trust_analyses_active_job', table_name='trust_analyses')
    with op.batch_alter_table('trust_analyses', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_trust_analyses_owner_id'))
        batch_op.drop_index(batch_op.f('ix_trust_analyses_job_id'))
    op.drop_table('trust_analyses')

    op.drop_table('transient_contents')

    with op.batch_alter_table('upload_jobs', schema=None) as batch_op:
        batch_op.drop_index('idx_upload_jobs_status_expires')
        batch_op.drop_index(batch_op.f('ix_upload_jobs_owner_id'))
    op.drop_table('upload_jobs')
