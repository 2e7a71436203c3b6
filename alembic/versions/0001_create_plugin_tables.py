"""create plugin tables

Revision ID: 0001
Revises:
Create Date: 2024-11-26 08:22:09.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create plugins and plugin_migrations."""
    op.create_table(
        'plugins',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'identity',
            sa.String(length=255),
            nullable=False,
            comment='Fully-qualified plugin class (descriptor entry reference)'
        ),
        sa.Column(
            'version',
            sa.String(length=50),
            nullable=True,
            comment='Installed plugin version (dotted triplet)'
        ),
        sa.Column(
            'active',
            sa.Boolean(),
            nullable=False,
            server_default='0',
            comment='Whether the plugin is activated'
        ),
        sa.Column(
            'migrate_status',
            sa.String(length=20),
            nullable=False,
            server_default='pending',
            comment='pending, success, failed or rollback'
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('identity'),
        sa.CheckConstraint(
            "migrate_status IN ('pending', 'success', 'failed', 'rollback')",
            name='check_migrate_status'
        ),
    )

    op.create_table(
        'plugin_migrations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'plugin',
            sa.String(length=100),
            nullable=False,
            comment='Plugin name (descriptor directory name)'
        ),
        sa.Column(
            'migration',
            sa.String(length=255),
            nullable=False,
            comment='Migration unit file name'
        ),
        sa.Column(
            'version',
            sa.String(length=50),
            nullable=False,
            comment='Plugin version under which the unit ran'
        ),
        sa.Column(
            'batch',
            sa.Integer(),
            nullable=False,
            comment='Run number per plugin, rolled back as a unit'
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_index(
        'idx_plugin_migrations_batch',
        'plugin_migrations',
        ['plugin', 'batch']
    )


def downgrade() -> None:
    """Drop plugin tables."""
    op.drop_index('idx_plugin_migrations_batch', table_name='plugin_migrations')
    op.drop_table('plugin_migrations')
    op.drop_table('plugins')
