"""create_classes_and_class_enrollments

Revision ID: 5b1f0c3a9d21
Revises:
Create Date: 2026-10-17 09:12:44.318207

Creates the class catalog mirror and the enrollment ledger:
- classes: offering type, seat count and overflow link
- class_enrollments: one record per seat or waitlist slot, never deleted
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5b1f0c3a9d21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_STATUS_CLAUSE = sa.text("status IN ('enrolled', 'waitlisted')")


def upgrade() -> None:
    """Create classes and class_enrollments."""
    op.create_table(
        'classes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('offering_type', sa.String(50), nullable=False),
        sa.Column('level', sa.String(50), nullable=True),
        sa.Column('duration_minutes', sa.Integer, nullable=True),
        sa.Column('max_students', sa.Integer, nullable=True),
        sa.Column('price_per_student', sa.Numeric(10, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('teacher_id', sa.String(36), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('overflow_from', sa.String(36), sa.ForeignKey('classes.id'), nullable=True),
        sa.Column('overflow_reason', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_classes_offering_type', 'classes', ['offering_type'])
    op.create_index('ix_classes_teacher_id', 'classes', ['teacher_id'])
    op.create_index('ix_classes_overflow_from', 'classes', ['overflow_from'])

    op.create_table(
        'class_enrollments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('class_id', sa.String(36), sa.ForeignKey('classes.id'), nullable=False),
        sa.Column('student_id', sa.String(36), nullable=False),
        sa.Column(
            'status',
            sa.Enum(
                'enrolled', 'waitlisted', 'dropped', 'completed',
                name='enrollmentstatus',
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('waitlisted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('waitlist_position', sa.Integer, nullable=True),
        sa.Column('dropped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            'waitlist_position IS NULL OR waitlist_position > 0',
            name='ck_class_enrollments_waitlist_position_positive',
        ),
    )
    op.create_index('ix_class_enrollments_class_id', 'class_enrollments', ['class_id'])
    op.create_index('ix_class_enrollments_student_id', 'class_enrollments', ['student_id'])
    op.create_index(
        'ix_class_enrollments_class_status', 'class_enrollments', ['class_id', 'status']
    )

    # At most one open record per student and class
    op.create_index(
        'uq_class_enrollments_open_student',
        'class_enrollments',
        ['class_id', 'student_id'],
        unique=True,
        postgresql_where=OPEN_STATUS_CLAUSE,
        sqlite_where=OPEN_STATUS_CLAUSE,
    )


def downgrade() -> None:
    """Drop class_enrollments and classes."""
    op.drop_index('uq_class_enrollments_open_student', 'class_enrollments')
    op.drop_index('ix_class_enrollments_class_status', 'class_enrollments')
    op.drop_index('ix_class_enrollments_student_id', 'class_enrollments')
    op.drop_index('ix_class_enrollments_class_id', 'class_enrollments')
    op.drop_table('class_enrollments')

    op.drop_index('ix_classes_overflow_from', 'classes')
    op.drop_index('ix_classes_teacher_id', 'classes')
    op.drop_index('ix_classes_offering_type', 'classes')
    op.drop_table('classes')
