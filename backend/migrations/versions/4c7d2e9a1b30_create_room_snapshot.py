"""create room_snapshot table for the sql room store

Revision ID: 4c7d2e9a1b30
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7d2e9a1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'room_snapshot' in set(insp.get_table_names()):
        return

    op.create_table(
        'room_snapshot',
        sa.Column('room_id', sa.String(length=32), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('room_id'),
    )
    op.create_index(op.f('ix_room_snapshot_status'), 'room_snapshot', ['status'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_room_snapshot_status'), table_name='room_snapshot')
    op.drop_table('room_snapshot')
