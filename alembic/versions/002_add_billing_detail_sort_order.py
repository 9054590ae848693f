"""Add sort_order to billing_details

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Line items keep their drag-and-drop order once this column exists.
Databases still on 001 work without it (BILLING_DETAILS_SORT_ORDER=auto).
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column('billing_details', sa.Column('sort_order', sa.Integer(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table('billing_details') as batch_op:
        batch_op.drop_column('sort_order')
