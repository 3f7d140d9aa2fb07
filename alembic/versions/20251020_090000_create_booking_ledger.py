"""create providers, appointments and booking_locks

Revision ID: booking_ledger_001
Revises:
Create Date: 2025-10-20 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'booking_ledger_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_WHERE = sa.text("status IN ('pending', 'confirmed')")


def upgrade() -> None:
    op.create_table(
        'providers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('service_type', sa.String(64), nullable=True),
        sa.Column('hourly_rate', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('available_days', sa.JSON(), nullable=False),
        sa.Column('shift_start', sa.Time(), nullable=False),
        sa.Column('shift_end', sa.Time(), nullable=False),
        sa.Column('slot_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'appointments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider_id', sa.String(36), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='confirmed'),
        sa.Column('booking_group_id', sa.String(36), nullable=False),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name='ck_appointments_status',
        ),
    )
    op.create_index('ix_appointments_provider_date_start', 'appointments',
                    ['provider_id', 'appointment_date', 'start_time'])
    op.create_index('ix_appointments_user_id', 'appointments', ['user_id'])
    op.create_index('ix_appointments_booking_group_id', 'appointments', ['booking_group_id'])
    op.create_index('uq_appointments_active_slot', 'appointments',
                    ['provider_id', 'appointment_date', 'start_time'],
                    unique=True,
                    postgresql_where=ACTIVE_WHERE,
                    sqlite_where=ACTIVE_WHERE)

    op.create_table(
        'booking_locks',
        sa.Column('provider_id', sa.String(36), primary_key=True),
        sa.Column('lock_date', sa.Date(), primary_key=True),
        sa.Column('version', sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('booking_locks')
    op.drop_index('uq_appointments_active_slot', table_name='appointments')
    op.drop_index('ix_appointments_booking_group_id', table_name='appointments')
    op.drop_index('ix_appointments_user_id', table_name='appointments')
    op.drop_index('ix_appointments_provider_date_start', table_name='appointments')
    op.drop_table('appointments')
    op.drop_table('providers')
