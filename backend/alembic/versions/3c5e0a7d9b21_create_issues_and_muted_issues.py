"""create issues and muted_issues

Revision ID: 3c5e0a7d9b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c5e0a7d9b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'issues',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('title', sa.Text(), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('created', sa.String(40), nullable=False, server_default=''),
        sa.Column('priority', sa.String(50), nullable=False, server_default=''),
        sa.Column('labels', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('issue_type', sa.String(100), nullable=False, server_default=''),
        sa.Column('components', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('project', sa.String(50), nullable=False, server_default=''),
        sa.Column('is_alert', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('alert_signature', sa.Text(), nullable=False, server_default=''),
        sa.Column('cluster_id', sa.String(100), nullable=False, server_default=''),
        sa.Column('tenant_id', sa.String(100), nullable=False, server_default=''),
        sa.Column('biz_type', sa.String(100), nullable=False, server_default=''),
        sa.Column('status', sa.String(100), nullable=False, server_default=''),
        sa.Column('is_subtask', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stability_governance', sa.String(100), nullable=False, server_default=''),
        sa.Column('visibility', sa.String(50), nullable=False, server_default=''),
        sa.Column('component_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('source_component', sa.String(255), nullable=False, server_default=''),
        sa.Column('alert_group', sa.String(255), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_issues_created', 'issues', ['created'])
    op.create_index('ix_issues_is_alert', 'issues', ['is_alert'])
    op.create_index('ix_issues_cluster_id', 'issues', ['cluster_id'])
    op.create_index('ix_issues_tenant_id', 'issues', ['tenant_id'])

    op.create_table(
        'muted_issues',
        sa.Column('issue_id', sa.String(64), nullable=False),
        sa.Column('muted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False, server_default=''),
        sa.PrimaryKeyConstraint('issue_id'),
    )


def downgrade() -> None:
    op.drop_table('muted_issues')
    op.drop_index('ix_issues_tenant_id', table_name='issues')
    op.drop_index('ix_issues_cluster_id', table_name='issues')
    op.drop_index('ix_issues_is_alert', table_name='issues')
    op.drop_index('ix_issues_created', table_name='issues')
    op.drop_table('issues')
