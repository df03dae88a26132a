"""create user and document tables

Revision ID: 5b7c1d2e9f30
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7c1d2e9f30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=True),
            sa.Column('display_name', sa.String(length=64), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=True),
            sa.Column('password_hash', sa.String(length=256), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    # Game documents (and any other collection) are stored as JSON rows
    if 'document' not in existing_tables:
        op.create_table(
            'document',
            sa.Column('collection', sa.String(length=64), primary_key=True),
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('data', sa.JSON(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
        )


def downgrade():
    op.drop_table('document')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
