"""Create links table

Revision ID: 001_links
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = '001_links'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create the links table:
    - unique index on short_code (active and inactive rows)
    - (original_url, is_active) for deduplication lookups
    - is_active, expires_at, created_at for cleanup queries
    """
    bind = op.get_bind()
    if 'links' in inspect(bind).get_table_names():
        return

    op.create_table(
        'links',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('original_url', sa.String(length=2048), nullable=False),
        sa.Column('short_code', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_links_short_code', 'links', ['short_code'], unique=True)
    op.create_index('ix_links_original_url_is_active', 'links', ['original_url', 'is_active'])
    op.create_index('ix_links_is_active', 'links', ['is_active'])
    op.create_index('ix_links_expires_at', 'links', ['expires_at'])
    op.create_index('ix_links_created_at', 'links', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_links_created_at', table_name='links')
    op.drop_index('ix_links_expires_at', table_name='links')
    op.drop_index('ix_links_is_active', table_name='links')
    op.drop_index('ix_links_original_url_is_active', table_name='links')
    op.drop_index('ix_links_short_code', table_name='links')
    op.drop_table('links')
