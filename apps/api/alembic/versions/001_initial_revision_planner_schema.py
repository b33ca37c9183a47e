"""initial revision planner schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'student',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.Text(), nullable=True, unique=True),
        sa.Column('display_name', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'topic',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('subject', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('parent_id', sa.Uuid(), sa.ForeignKey('topic.id'), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('exam_date', sa.Date(), nullable=True),
        sa.CheckConstraint('level BETWEEN 1 AND 3', name='ck_topic_level'),
    )
    op.create_index('ix_topic_subject', 'topic', ['subject'])
    op.create_index('ix_topic_subject_level_order', 'topic', ['subject', 'level', 'order_index'])

    op.create_table(
        'confidence_rating',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('student.id'), nullable=False),
        sa.Column('topic_id', sa.Uuid(), sa.ForeignKey('topic.id'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('student_id', 'topic_id', name='uq_confidence_rating_student_topic'),
        sa.CheckConstraint('rating BETWEEN -2 AND 5', name='ck_confidence_rating_range'),
    )
    op.create_index('ix_confidence_rating_student_id', 'confidence_rating', ['student_id'])

    op.create_table(
        'block',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('student.id'), nullable=False),
        sa.Column('topic_id', sa.Uuid(), sa.ForeignKey('topic.id'), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('status', sa.Text(), nullable=False, server_default='scheduled'),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('session_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('session_total', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('session_kind', sa.Text(), nullable=False, server_default='revision'),
        sa.Column('cycle_rating', sa.Integer(), nullable=True),
        sa.Column('rerating_score', sa.Integer(), nullable=True),
        sa.Column('rationale', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("status IN ('scheduled', 'done', 'skipped', 'missed')", name='ck_block_status'),
        sa.CheckConstraint(
            'session_number >= 1 AND session_number <= session_total',
            name='ck_block_session_number',
        ),
    )
    op.create_index('ix_block_student_scheduled_at', 'block', ['student_id', 'scheduled_at'])
    op.create_index('ix_block_student_topic_created', 'block', ['student_id', 'topic_id', 'created_at'])
    op.create_index('ix_block_status_scheduled_at', 'block', ['status', 'scheduled_at'])

    op.create_table(
        'availability_profile',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('student.id'), nullable=False, unique=True),
        sa.Column('weekday_earliest', sa.Time(), nullable=False),
        sa.Column('weekday_latest', sa.Time(), nullable=False),
        sa.Column('weekend_earliest', sa.Time(), nullable=True),
        sa.Column('weekend_latest', sa.Time(), nullable=True),
        sa.Column('use_same_weekend_times', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'unavailable_interval',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('student.id'), nullable=False),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('source', sa.Text(), nullable=False, server_default='explicit'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('end_at > start_at', name='ck_unavailable_interval_order'),
    )
    op.create_index('ix_unavailable_interval_student_start', 'unavailable_interval', ['student_id', 'start_at'])

    op.create_table(
        'recurring_event',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('student.id'), nullable=False),
        sa.Column('label', sa.Text(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('days_of_week', sa.JSON(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_recurring_event_student_id', 'recurring_event', ['student_id'])

    op.create_table(
        'week_confirmation',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('student.id'), nullable=False),
        sa.Column('week_start_date', sa.Date(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('student_id', 'week_start_date', name='uq_week_confirmation_student_week'),
    )

    op.create_table(
        'plan_event',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('student.id'), nullable=False),
        sa.Column('kind', sa.Text(), nullable=False),
        sa.Column('topic_id', sa.Uuid(), nullable=True),
        sa.Column('block_id', sa.Uuid(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_plan_event_student_kind_created', 'plan_event', ['student_id', 'kind', 'created_at'])
    op.create_index('ix_plan_event_student_topic_created', 'plan_event', ['student_id', 'topic_id', 'created_at'])
    op.create_index('ix_plan_event_block', 'plan_event', ['block_id'])


def downgrade() -> None:
    op.drop_table('plan_event')
    op.drop_table('week_confirmation')
    op.drop_table('recurring_event')
    op.drop_table('unavailable_interval')
    op.drop_table('availability_profile')
    op.drop_table('block')
    op.drop_table('confidence_rating')
    op.drop_table('topic')
    op.drop_table('student')
