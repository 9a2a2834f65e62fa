"""Create storage_buckets table

Revision ID: 001_storage_buckets
Revises:
Create Date: 2026-10-19

This migration:
- Adds storage_buckets, one row per logical bucket
- config_json holds the Fernet-encrypted connection config
- Partial unique indexes keep each default flag on at most one row
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_storage_buckets'
down_revision = None
branch_labels = None
depends_on = None

DEFAULT_FLAGS = ('is_default', 'is_default_chat', 'is_default_forms')


def upgrade() -> None:
    op.create_table(
        'storage_buckets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('is_default', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('is_default_chat', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('is_default_forms', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('config_json', sa.Text, nullable=False),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("provider IN ('native', 'compatible')", name='ck_storage_buckets_provider'),
    )
    op.create_index('ix_storage_buckets_created_at', 'storage_buckets', ['created_at'])

    # Backstop for the registry's clear-then-set: at most one row per flag
    for flag in DEFAULT_FLAGS:
        op.create_index(
            f'uq_storage_buckets_{flag}',
            'storage_buckets',
            [flag],
            unique=True,
            postgresql_where=sa.text(f'{flag}'),
            sqlite_where=sa.text(f'{flag}'),
        )


def downgrade() -> None:
    for flag in DEFAULT_FLAGS:
        op.drop_index(f'uq_storage_buckets_{flag}', table_name='storage_buckets')
    op.drop_index('ix_storage_buckets_created_at', table_name='storage_buckets')
    op.drop_table('storage_buckets')
