"""Create user_connections and invites tables

Revision ID: 3f1a7c2b9d40
Revises:
Create Date: 2026-10-19

One connection row per (planner, user) pair holds the Google tokens and
the life-cycle status. Invites keep their history; the partial unique
index allows only one pending (used_at IS NULL) invite per pair.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from plan2tasks.models.base import GUID


# revision identifiers, used by Alembic.
revision: str = '3f1a7c2b9d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('user_connections',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('planner_email', sa.String(length=320), nullable=False),
        sa.Column('user_email', sa.String(length=320), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False, server_default='google'),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('scope', sa.Text(), nullable=True),
        sa.Column('token_type', sa.String(length=50), nullable=True),
        sa.Column('token_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='invited'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('user_connections', schema=None) as batch_op:
        batch_op.create_index('ix_user_connections_user_email', ['user_email'], unique=False)
        batch_op.create_index('ix_user_connections_planner_user', ['planner_email', 'user_email'], unique=True)
        batch_op.create_index('ix_user_connections_status', ['status'], unique=False)

    op.create_table('invites',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('planner_email', sa.String(length=320), nullable=False),
        sa.Column('user_email', sa.String(length=320), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('invites', schema=None) as batch_op:
        batch_op.create_index('ix_invites_user_email', ['user_email'], unique=False)
        batch_op.create_index('ix_invites_planner_user', ['planner_email', 'user_email'], unique=False)
        batch_op.create_index(
            'uq_invites_pending_pair',
            ['planner_email', 'user_email'],
            unique=True,
            sqlite_where=sa.text('used_at IS NULL'),
            postgresql_where=sa.text('used_at IS NULL'),
        )


def downgrade() -> None:
    with op.batch_alter_table('invites', schema=None) as batch_op:
        batch_op.drop_index('uq_invites_pending_pair')
        batch_op.drop_index('ix_invites_planner_user')
        batch_op.drop_index('ix_invites_user_email')
    op.drop_table('invites')

    with op.batch_alter_table('user_connections', schema=None) as batch_op:
        batch_op.drop_index('ix_user_connections_status')
        batch_op.drop_index('ix_user_connections_planner_user')
        batch_op.drop_index('ix_user_connections_user_email')
    op.drop_table('user_connections')
