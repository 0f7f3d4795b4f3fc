"""initial schema: sandboxes and catalog tables

Revision ID: 5c1d9e7a2b40
Revises:
Create Date: 2026-10-16 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from agentpod.catalog import DEFAULT_ADDONS, DEFAULT_FLAVORS, DEFAULT_RESOURCE_TIERS


# revision identifiers, used by Alembic.
revision: str = '5c1d9e7a2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SANDBOX_STATUS = sa.Enum('created', 'running', 'stopped', 'paused', 'error',
                         name='sandboxstatus')
ADDON_CATEGORY = sa.Enum('interface', 'compute', 'storage', 'devops', name='addoncategory')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'sandboxes',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('user_id', sa.String(100), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('github_url', sa.String(500), nullable=True),
        sa.Column('repo_name', sa.String(300), nullable=True),
        sa.Column('status', SANDBOX_STATUS, nullable=False),
        sa.Column('resource_tier_id', sa.String(50), nullable=False),
        sa.Column('flavor_id', sa.String(50), nullable=False),
        sa.Column('addon_ids', sa.JSON(), nullable=False),
        sa.Column('container_id', sa.String(100), nullable=True),
        sa.Column('container_name', sa.String(200), nullable=True),
        sa.Column('opencode_url', sa.String(500), nullable=True),
        sa.Column('vnc_url', sa.String(500), nullable=True),
        sa.Column('code_server_url', sa.String(500), nullable=True),
        sa.Column('error_message', sa.String(2000), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('last_accessed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'slug', name='uq_sandboxes_user_slug'),
    )
    op.create_index('ix_sandboxes_user_id', 'sandboxes', ['user_id'])

    tiers = op.create_table(
        'resource_tiers',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cpu_cores', sa.Integer(), nullable=False),
        sa.Column('memory_gb', sa.Integer(), nullable=False),
        sa.Column('storage_gb', sa.Integer()),
        sa.Column('is_default', sa.Boolean()),
        sa.Column('sort_order', sa.Integer()),
    )
    flavors = op.create_table(
        'container_flavors',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('languages', sa.JSON()),
        sa.Column('is_default', sa.Boolean()),
        sa.Column('enabled', sa.Boolean()),
        sa.Column('sort_order', sa.Integer()),
    )
    addons = op.create_table(
        'container_addons',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', ADDON_CATEGORY, nullable=False),
        sa.Column('port', sa.Integer(), nullable=True),
        sa.Column('requires_gpu', sa.Boolean()),
        sa.Column('requires_flavor', sa.String(50), nullable=True),
        sa.Column('sort_order', sa.Integer()),
    )

    op.bulk_insert(tiers, DEFAULT_RESOURCE_TIERS)
    op.bulk_insert(flavors, DEFAULT_FLAVORS)
    op.bulk_insert(addons, [{**a, 'category': a['category'].value} for a in DEFAULT_ADDONS])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('container_addons')
    op.drop_table('container_flavors')
    op.drop_table('resource_tiers')
    op.drop_index('ix_sandboxes_user_id', table_name='sandboxes')
    op.drop_table('sandboxes')
    SANDBOX_STATUS.drop(op.get_bind(), checkfirst=True)
    ADDON_CATEGORY.drop(op.get_bind(), checkfirst=True)
