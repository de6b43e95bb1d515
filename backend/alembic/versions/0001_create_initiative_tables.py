"""create initiative tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    """Create initiative_processes and initiative_revisions tables."""
    op.create_table('initiative_processes',
        sa.Column('id', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Draft'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('jira_project_key', sa.String(length=100), nullable=True),
        sa.Column('jira_epic_link', sa.String(length=500), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint(
            "status IN ('Draft', 'Reviewing', 'Approved', 'Uploaded')",
            name='ck_initiative_processes_status'
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_initiative_processes_status', 'initiative_processes', ['status'], unique=False)
    op.create_index('idx_initiative_processes_created_at', 'initiative_processes', ['created_at'], unique=False)

    op.create_table('initiative_revisions',
        sa.Column('id', sa.String(length=50), nullable=False),
        sa.Column('process_id', sa.String(length=50), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('tasks', JSON_TYPE, nullable=False),
        sa.Column('metadata', JSON_TYPE, nullable=False),
        sa.CheckConstraint(
            "type IN ('suggestion', 'user_edit', 'final')",
            name='ck_initiative_revisions_type'
        ),
        sa.ForeignKeyConstraint(['process_id'], ['initiative_processes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_initiative_revisions_process_id', 'initiative_revisions', ['process_id'], unique=False)
    op.create_index('idx_initiative_revisions_type', 'initiative_revisions', ['type'], unique=False)


def downgrade() -> None:
    """Drop initiative tables."""
    op.drop_index('idx_initiative_revisions_type', table_name='initiative_revisions')
    op.drop_index('idx_initiative_revisions_process_id', table_name='initiative_revisions')
    op.drop_table('initiative_revisions')
    op.drop_index('idx_initiative_processes_created_at', table_name='initiative_processes')
    op.drop_index('idx_initiative_processes_status', table_name='initiative_processes')
    op.drop_table('initiative_processes')
