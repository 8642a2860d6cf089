"""Create exam normalization, ranking and job schema.

Revision ID: create_normalization_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'create_normalization_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


normalizationmethod = postgresql.ENUM(
    'z_score', 'raw', 'percentile', 'modified_z', 'equating', 'custom',
    name='normalizationmethod',
)
confidencelevel = postgresql.ENUM('low', 'medium', 'high', name='confidencelevel')
jobstatus = postgresql.ENUM('pending', 'running', 'success', 'failed', name='jobstatus')
jobtype = postgresql.ENUM(
    'normalization', 'rank_calculation', 'cutoff_prediction', 'batch_processing',
    name='jobtype',
)


def timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    """Create all tables."""
    bind = op.get_bind()
    for enum_type in (normalizationmethod, confidencelevel, jobstatus, jobtype):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'exams',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('agency', sa.String(length=50), nullable=True),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('tier', sa.String(length=50), nullable=True),
        sa.Column('total_marks', sa.Float(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('default_positive', sa.Float(), nullable=False),
        sa.Column('default_negative', sa.Float(), nullable=False),
        sa.Column('has_normalization', sa.Boolean(), nullable=False),
        sa.Column(
            'normalization_method',
            postgresql.ENUM(name='normalizationmethod', create_type=False),
            nullable=False,
        ),
        sa.Column('normalization_config', postgresql.JSONB(), nullable=True),
        sa.Column('selection_ratios', postgresql.JSONB(), nullable=True),
        sa.Column('re_norm_threshold', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_normalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subs_at_last_normalization', sa.Integer(), nullable=False),
        sa.Column('normalization_version', sa.Integer(), nullable=False),
        sa.Column('global_mean_raw', sa.Float(), nullable=True),
        sa.Column('global_std_dev_raw', sa.Float(), nullable=True),
        sa.Column('global_distribution', postgresql.JSONB(), nullable=True),
        *timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
        sa.UniqueConstraint('name', 'year', 'tier', name='uq_exam_name_year_tier'),
    )
    op.create_index('ix_exams_is_active', 'exams', ['is_active'])

    op.create_table(
        'shifts',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('exam_id', sa.BigInteger(), nullable=False),
        sa.Column('shift_code', sa.String(length=100), nullable=False),
        sa.Column('date', sa.String(length=20), nullable=False),
        sa.Column('shift_number', sa.Integer(), nullable=False),
        sa.Column('time_slot', sa.String(length=50), nullable=True),
        sa.Column('candidate_count', sa.Integer(), nullable=False),
        sa.Column('avg_raw_score', sa.Float(), nullable=True),
        sa.Column('median_raw_score', sa.Float(), nullable=True),
        sa.Column('std_dev', sa.Float(), nullable=True),
        sa.Column('max_raw_score', sa.Float(), nullable=True),
        sa.Column('min_raw_score', sa.Float(), nullable=True),
        sa.Column('difficulty_index', sa.Float(), nullable=True),
        sa.Column('difficulty_label', sa.String(length=20), nullable=True),
        sa.Column('normalization_factor', sa.Float(), nullable=True),
        sa.Column('stats_updated_at', sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shift_code'),
        sa.UniqueConstraint('exam_id', 'date', 'shift_number', name='uq_shift_exam_date_number'),
    )
    op.create_index('ix_shifts_exam_id', 'shifts', ['exam_id'])
    op.create_index('ix_shifts_difficulty_index', 'shifts', ['difficulty_index'])

    op.create_table(
        'submissions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('exam_id', sa.BigInteger(), nullable=False),
        sa.Column('shift_id', sa.BigInteger(), nullable=False),
        sa.Column('roll_number', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('dob', sa.String(length=10), nullable=True),
        sa.Column('category', sa.String(length=10), nullable=False),
        sa.Column('gender', sa.String(length=1), nullable=False),
        sa.Column('state', sa.String(length=100), nullable=True),
        sa.Column('section_performance', postgresql.JSONB(), nullable=True),
        sa.Column('raw_score', sa.Float(), nullable=False),
        sa.Column('normalized_score', sa.Float(), nullable=True),
        sa.Column('overall_rank', sa.Integer(), nullable=True),
        sa.Column('category_rank', sa.Integer(), nullable=True),
        sa.Column('shift_rank', sa.Integer(), nullable=True),
        sa.Column('state_rank', sa.Integer(), nullable=True),
        sa.Column('overall_percentile', sa.Float(), nullable=True),
        sa.Column('category_percentile', sa.Float(), nullable=True),
        sa.Column('shift_percentile', sa.Float(), nullable=True),
        sa.Column('state_percentile', sa.Float(), nullable=True),
        *timestamps(),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('roll_number', 'exam_id', name='uq_submission_roll_exam'),
    )
    op.create_index('ix_submissions_exam_id', 'submissions', ['exam_id'])
    op.create_index('ix_submissions_shift_id', 'submissions', ['shift_id'])
    op.create_index('ix_submission_exam_shift', 'submissions', ['exam_id', 'shift_id'])
    op.create_index('ix_submission_exam_normalized', 'submissions', ['exam_id', 'normalized_score'])
    op.create_index('ix_submission_exam_category', 'submissions', ['exam_id', 'category'])

    op.create_table(
        'cutoffs',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('exam_id', sa.BigInteger(), nullable=False),
        sa.Column('category', sa.String(length=10), nullable=False),
        sa.Column('post_code', sa.String(length=50), nullable=False),
        sa.Column('post_name', sa.String(length=255), nullable=True),
        sa.Column('expected_cutoff', sa.Float(), nullable=False),
        sa.Column('safe_score', sa.Float(), nullable=True),
        sa.Column('minimum_score', sa.Float(), nullable=True),
        sa.Column(
            'confidence_level',
            postgresql.ENUM(name='confidencelevel', create_type=False),
            nullable=True,
        ),
        sa.Column('prediction_basis', postgresql.JSONB(), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=False),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('exam_id', 'category', 'post_code', name='uq_cutoff_exam_category_post'),
    )
    op.create_index('ix_cutoffs_exam_id', 'cutoffs', ['exam_id'])

    op.create_table(
        'job_runs',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('job_name', sa.String(length=255), nullable=False),
        sa.Column('job_type', postgresql.ENUM(name='jobtype', create_type=False), nullable=False),
        sa.Column('status', postgresql.ENUM(name='jobstatus', create_type=False), nullable=False),
        sa.Column('triggered_by', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_records', sa.Integer(), nullable=True),
        sa.Column('records_processed', sa.Integer(), nullable=False),
        sa.Column('progress_percent', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_stack', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_job_runs_job_type', 'job_runs', ['job_type'])
    op.create_index('ix_job_runs_status', 'job_runs', ['status'])

    op.create_table(
        'scheduled_jobs',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('job_type', postgresql.ENUM(name='jobtype', create_type=False), nullable=False),
        sa.Column('cron_expression', sa.String(length=100), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('config', postgresql.JSONB(), nullable=True),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_run_at', sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table('scheduled_jobs')
    op.drop_index('ix_job_runs_status', table_name='job_runs')
    op.drop_index('ix_job_runs_job_type', table_name='job_runs')
    op.drop_table('job_runs')
    op.drop_index('ix_cutoffs_exam_id', table_name='cutoffs')
    op.drop_table('cutoffs')
    op.drop_table('submissions')
    op.drop_table('shifts')
    op.drop_table('exams')

    bind = op.get_bind()
    for enum_type in (jobtype, jobstatus, confidencelevel, normalizationmethod):
        enum_type.drop(bind, checkfirst=True)
