"""Create lesson tables

Revision ID: 3c7e1a9b5d20
Revises:
Create Date: 2026-10-19

Tables:
- lessons: lesson definitions and their recurrence patterns
- lesson_participants: ordered teachers and pupils of each lesson
- lesson_exceptions: stored deviations from a lesson's pattern,
  unique per (lesson_id, original_date)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from lesson_scheduler.models.base import GUID


# revision identifiers, used by Alembic.
revision: str = '3c7e1a9b5d20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json_type():
    return sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _audit_columns() -> list:
    return [
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'lessons',
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('recurrence', _json_type(), nullable=True),
        sa.Column('series_end', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('lessons', schema=None) as batch_op:
        batch_op.create_index('idx_lesson_start_time', ['start_time'], unique=False)
        batch_op.create_index('idx_lesson_series_end', ['series_end'], unique=False)
        batch_op.create_index('idx_lesson_deleted', ['deleted_at'], unique=False)
        batch_op.create_index('idx_lesson_time_range', ['start_time', 'series_end'], unique=False)

    op.create_table(
        'lesson_participants',
        sa.Column('lesson_id', GUID(), nullable=False),
        sa.Column('user_id', GUID(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['lesson_id'], ['lessons.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lesson_id', 'user_id', 'role', name='uq_lesson_participant'),
    )
    with op.batch_alter_table('lesson_participants', schema=None) as batch_op:
        batch_op.create_index('idx_participant_lesson', ['lesson_id'], unique=False)
        batch_op.create_index('idx_participant_user_role', ['user_id', 'role'], unique=False)

    op.create_table(
        'lesson_exceptions',
        sa.Column('lesson_id', GUID(), nullable=False),
        sa.Column('original_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('exception_type', sa.String(length=20), nullable=False),
        sa.Column('new_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('modifications', _json_type(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['lesson_id'], ['lessons.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lesson_id', 'original_date', name='uq_lesson_exception_original_date'),
    )
    with op.batch_alter_table('lesson_exceptions', schema=None) as batch_op:
        batch_op.create_index('idx_lesson_exception_lesson', ['lesson_id'], unique=False)
        batch_op.create_index('idx_lesson_exception_original_date', ['original_date'], unique=False)


def downgrade() -> None:
    # Drop in reverse order due to foreign key constraints
    with op.batch_alter_table('lesson_exceptions', schema=None) as batch_op:
        batch_op.drop_index('idx_lesson_exception_original_date')
        batch_op.drop_index('idx_lesson_exception_lesson')
    op.drop_table('lesson_exceptions')

    with op.batch_alter_table('lesson_participants', schema=None) as batch_op:
        batch_op.drop_index('idx_participant_user_role')
        batch_op.drop_index('idx_participant_lesson')
    op.drop_table('lesson_participants')

    with op.batch_alter_table('lessons', schema=None) as batch_op:
        batch_op.drop_index('idx_lesson_time_range')
        batch_op.drop_index('idx_lesson_deleted')
        batch_op.drop_index('idx_lesson_series_end')
        batch_op.drop_index('idx_lesson_start_time')
    op.drop_table('lessons')
