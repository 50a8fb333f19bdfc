"""create products / articles triple-buffer tables and sync_history

Revision ID: 3a7e5c2b9d10
Revises:
Create Date: 2026-10-17 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '3a7e5c2b9d10'
down_revision = None
branch_labels = None
depends_on = None


JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _content_columns() -> list:
    return [
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('platform', sa.String(32), nullable=False),
        sa.Column('platform_id', sa.String(255), nullable=True),
        sa.Column('store_snapshot_content', JSON_TYPE, nullable=False),
        sa.Column('working_content', JSON_TYPE, nullable=False),
        sa.Column('draft_generated_content', JSON_TYPE, nullable=True),
        sa.Column('dirty_fields_content', JSON_TYPE, nullable=False),
        sa.Column('metadata', JSON_TYPE, nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('content_version', sa.Integer(), nullable=False),
        sa.Column('store_content_updated_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('working_content_updated_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    for table in ('products', 'articles'):
        op.create_table(
            table,
            *_content_columns(),
            sa.PrimaryKeyConstraint('id', name=f'pk_{table}'),
        )
        op.create_index(f'ix_{table}_tenant_id', table, ['tenant_id'])
        op.create_index(f'ix_{table}_tenant_platform_id', table, ['tenant_id', 'platform_id'])

    op.create_table(
        'sync_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=True),
        sa.Column('entity_type', sa.String(16), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('platform_id', sa.String(255), nullable=True),
        sa.Column('outcome', sa.String(16), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('forced', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_sync_history'),
    )
    op.create_index('ix_sync_history_tenant_id', 'sync_history', ['tenant_id'])
    op.create_index('ix_sync_history_entity_id', 'sync_history', ['entity_id'])


def downgrade() -> None:
    op.drop_index('ix_sync_history_entity_id', table_name='sync_history')
    op.drop_index('ix_sync_history_tenant_id', table_name='sync_history')
    op.drop_table('sync_history')
    for table in ('articles', 'products'):
        op.drop_index(f'ix_{table}_tenant_platform_id', table_name=table)
        op.drop_index(f'ix_{table}_tenant_id', table_name=table)
        op.drop_table(table)
