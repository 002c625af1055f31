"""Round trip booking groups

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 15:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: str | None = '0001'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Both legs of a round trip share a booking group
    op.add_column('holds', sa.Column('booking_group_id', sa.String(length=32), nullable=True))
    op.create_index(op.f('ix_holds_booking_group_id'), 'holds', ['booking_group_id'], unique=False)

    op.add_column('reservations', sa.Column('booking_group_id', sa.String(length=32), nullable=True))
    op.add_column('reservations', sa.Column('linked_reservation_id', sa.Uuid(), nullable=True))
    op.create_index(op.f('ix_reservations_booking_group_id'), 'reservations', ['booking_group_id'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f('ix_reservations_booking_group_id'), table_name='reservations')
    op.drop_column('reservations', 'linked_reservation_id')
    op.drop_column('reservations', 'booking_group_id')
    op.drop_index(op.f('ix_holds_booking_group_id'), table_name='holds')
    op.drop_column('holds', 'booking_group_id')
