"""create visit sessions and clinician availability

Revision ID: 4c1d2e7a9b30
Revises: 
Create Date: 2025-01-06 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1d2e7a9b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    visitpriority_enum = sa.Enum('NORMAL', 'PRIORITY', 'EMERGENCY', name='visitpriority')
    visitstate_enum = sa.Enum('CHECKED_IN', 'QUEUED', 'STARTED', 'COMPLETED', 'CANCELLED', 'TRANSFERRED', name='visitstate')
    availabilitystate_enum = sa.Enum('OFFLINE', 'ONLINE', 'BUSY', name='availabilitystate')
    busyreason_enum = sa.Enum('ASSIGNMENT', 'ADMINISTRATIVE', name='busyreason')

    op.create_table(
        'visit_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('patient_ref', sa.Uuid(), nullable=False),
        sa.Column('service_type', sa.String(length=100), nullable=False),
        sa.Column('priority', visitpriority_enum, nullable=False),
        sa.Column('state', visitstate_enum, nullable=False),
        sa.Column('assigned_clinician_ref', sa.Uuid(), nullable=True),
        sa.Column('check_in_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('service_day', sa.Date(), nullable=False),
        sa.Column('active_day', sa.Date(), nullable=True),
        sa.Column('queued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transferred_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=200), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('patient_ref', 'active_day', name='uq_visit_sessions_active_patient_day'),
    )
    op.create_index(op.f('ix_visit_sessions_patient_ref'), 'visit_sessions', ['patient_ref'], unique=False)
    op.create_index(op.f('ix_visit_sessions_state'), 'visit_sessions', ['state'], unique=False)
    op.create_index(op.f('ix_visit_sessions_assigned_clinician_ref'), 'visit_sessions', ['assigned_clinician_ref'], unique=False)
    op.create_index(op.f('ix_visit_sessions_service_day'), 'visit_sessions', ['service_day'], unique=False)
    op.create_index('ix_visit_sessions_queue', 'visit_sessions', ['state', 'priority', 'queued_at'], unique=False)

    op.create_table(
        'clinician_availability',
        sa.Column('clinician_ref', sa.Uuid(), nullable=False),
        sa.Column('state', availabilitystate_enum, nullable=False),
        sa.Column('login_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_activity_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_visit_ref', sa.Uuid(), nullable=True),
        sa.Column('busy_reason', busyreason_enum, nullable=True),
        sa.Column('logout_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('clinician_ref'),
    )
    op.create_index(op.f('ix_clinician_availability_state'), 'clinician_availability', ['state'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_clinician_availability_state'), table_name='clinician_availability')
    op.drop_table('clinician_availability')

    op.drop_index('ix_visit_sessions_queue', table_name='visit_sessions')
    op.drop_index(op.f('ix_visit_sessions_service_day'), table_name='visit_sessions')
    op.drop_index(op.f('ix_visit_sessions_assigned_clinician_ref'), table_name='visit_sessions')
    op.drop_index(op.f('ix_visit_sessions_state'), table_name='visit_sessions')
    op.drop_index(op.f('ix_visit_sessions_patient_ref'), table_name='visit_sessions')
    op.drop_table('visit_sessions')

    # Drop the enum types
    for name in ('busyreason', 'availabilitystate', 'visitstate', 'visitpriority'):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
