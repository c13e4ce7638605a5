"""create user and document tables

Revision ID: 4c7d2e91a0b3
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7d2e91a0b3'
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
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=True),
            sa.Column('email', sa.String(length=120), nullable=True),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'document' not in existing_tables:
        op.create_table(
            'document',
            sa.Column('collection', sa.String(length=255), nullable=False),
            sa.Column('key', sa.String(length=128), nullable=False),
            sa.Column('data', sa.JSON(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.Float(), nullable=False),
            sa.Column('updated_at', sa.Float(), nullable=False),
            sa.PrimaryKeyConstraint('collection', 'key'),
        )
        op.create_index('ix_document_created_at', 'document', ['created_at'], unique=False)


def downgrade():
    op.drop_index('ix_document_created_at', table_name='document')
    op.drop_table('document')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
