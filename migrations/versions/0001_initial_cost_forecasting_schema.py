"""
initial cost forecasting schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

Creates organizations, resources, cost_history, cost_predictions and
cost_optimization_suggestions.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_organizations'),
    )

    op.create_table(
        'resources',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', sa.String(100), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('region', sa.String(100), nullable=True),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('tags', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=False),
        sa.Column('cost', sa.Numeric(18, 8), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_resources_organization_id_organizations', ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_resources'),
    )
    op.create_index('ix_resources_organization_id', 'resources', ['organization_id'])

    op.create_table(
        'cost_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('resource_id', sa.Uuid(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(18, 8), nullable=False),
        sa.Column('service_category', sa.String(), nullable=False),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('usage_type', sa.String(), nullable=True),
        sa.Column('usage_amount', sa.Numeric(18, 8), nullable=True),
        sa.Column('usage_unit', sa.String(), nullable=True),
        sa.Column('source_dialect', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_cost_history_amount_non_negative'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_cost_history_organization_id_organizations', ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['resource_id'], ['resources.id'],
            name='fk_cost_history_resource_id_resources', ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_cost_history'),
    )
    op.create_index('ix_cost_history_organization_id', 'cost_history', ['organization_id'])
    op.create_index('ix_cost_history_org_date', 'cost_history', ['organization_id', 'date'])

    op.create_table(
        'cost_predictions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('resource_id', sa.Uuid(), nullable=True),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('predicted_date', sa.Date(), nullable=False),
        sa.Column('predicted_amount', sa.Numeric(18, 8), nullable=False),
        sa.Column('confidence_interval', sa.Numeric(18, 8), nullable=False),
        sa.Column('model', sa.String(50), nullable=False),
        sa.Column('prediction_period', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('predicted_amount >= 0', name='ck_cost_predictions_predicted_amount_non_negative'),
        sa.CheckConstraint('confidence_interval >= 0', name='ck_cost_predictions_confidence_interval_non_negative'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_cost_predictions_organization_id_organizations', ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['resource_id'], ['resources.id'],
            name='fk_cost_predictions_resource_id_resources', ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_cost_predictions'),
    )
    op.create_index('ix_cost_predictions_organization_id', 'cost_predictions', ['organization_id'])
    op.create_index('ix_cost_predictions_batch_id', 'cost_predictions', ['batch_id'])
    op.create_index('ix_cost_predictions_created_at', 'cost_predictions', ['created_at'])

    op.create_table(
        'cost_optimization_suggestions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('resource_id', sa.Uuid(), nullable=True),
        sa.Column('resource_name', sa.String(255), nullable=True),
        sa.Column('resource_type', sa.String(100), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('suggested_action', sa.String(50), nullable=False),
        sa.Column('potential_savings', sa.Numeric(18, 8), nullable=False),
        sa.Column('confidence', sa.Numeric(4, 3), nullable=False),
        sa.Column('implementation_difficulty', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_cost_optimization_suggestions_organization_id_organizations', ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['resource_id'], ['resources.id'],
            name='fk_cost_optimization_suggestions_resource_id_resources', ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_cost_optimization_suggestions'),
    )
    op.create_index(
        'ix_cost_optimization_suggestions_organization_id',
        'cost_optimization_suggestions',
        ['organization_id']
    )
    op.create_index(
        'ix_suggestions_org_status',
        'cost_optimization_suggestions',
        ['organization_id', 'status']
    )


def downgrade() -> None:
    op.drop_table('cost_optimization_suggestions')
    op.drop_table('cost_predictions')
    op.drop_table('cost_history')
    op.drop_table('resources')
    op.drop_table('organizations')
