"""Initial database schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19

Creates the property billing tables.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Properties table
    op.create_table('properties',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('property_name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )

    # Master job category catalog
    op.create_table('job_categories',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_job_categories_name_lower', 'job_categories',
                    [sa.text('lower(name)')], unique=True)
    op.create_index('ix_job_categories_sort_order', 'job_categories', ['sort_order'])

    # Unit sizes
    op.create_table('unit_sizes',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('unit_size_label', sa.String(100), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('unit_size_label')
    )

    # Property billing categories
    op.create_table('billing_categories',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('property_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('include_in_work_order', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_extra_charge', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('archived_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now()),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_billing_categories_property', 'billing_categories', ['property_id'])

    # Billing line items
    op.create_table('billing_details',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('property_id', sa.String(36), nullable=False),
        sa.Column('category_id', sa.String(36), nullable=False),
        sa.Column('unit_size_id', sa.String(36), nullable=False),
        sa.Column('bill_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('sub_pay_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('profit_amount', sa.Numeric(10, 2)),
        sa.Column('is_hourly', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now()),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id']),
        sa.ForeignKeyConstraint(['category_id'], ['billing_categories.id']),
        sa.ForeignKeyConstraint(['unit_size_id'], ['unit_sizes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('property_id', 'category_id', 'unit_size_id',
                            name='uq_billing_details_natural_key')
    )
    op.create_index('ix_billing_details_property', 'billing_details', ['property_id'])


def downgrade() -> None:
    op.drop_table('billing_details')
    op.drop_table('billing_categories')
    op.drop_table('unit_sizes')
    op.drop_table('job_categories')
    op.drop_table('properties')
