"""Case discussion thread

Revision ID: 20261019_case_comments
Revises: 20261019_case_workflow
Create Date: 2026-10-19

This migration adds:
1. Case comments (public and lab-internal)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_case_comments'
down_revision = '20261019_case_workflow'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('case_comments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('case_id', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.String(length=64), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_internal', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['case_id'], ['cases.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('case_comments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_case_comments_case_id'), ['case_id'], unique=False)
        batch_op.create_index('ix_case_comments_tenant_case', ['tenant_id', 'case_id', 'created_at'], unique=False)


def downgrade():
    op.drop_table('case_comments')
