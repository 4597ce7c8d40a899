"""create scoreboard_session table

Revision ID: 4c2a9e7b1d30
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7b1d30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'scoreboard_session',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=6), nullable=False),
        sa.Column('document', sa.Text(), nullable=False),
        sa.Column('last_update', sa.BigInteger(), nullable=False),
        sa.Column('host_password_hash', sa.String(length=128), nullable=False),
        sa.Column('host_token', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('scoreboard_session') as batch_op:
        batch_op.create_index(batch_op.f('ix_scoreboard_session_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_scoreboard_session_host_token'), ['host_token'], unique=False)


def downgrade():
    with op.batch_alter_table('scoreboard_session') as batch_op:
        batch_op.drop_index(batch_op.f('ix_scoreboard_session_host_token'))
        batch_op.drop_index(batch_op.f('ix_scoreboard_session_code'))
    op.drop_table('scoreboard_session')
