"""create tenancy, billing, profile and business object tables

Revision ID: 9a1c4e2b7d10
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '9a1c4e2b7d10'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    conn = op.get_bind()
    inspector = inspect(conn)
    tables = inspector.get_table_names()

    # ----- Tenancy and billing -----
    if 'organization' not in tables:
        op.create_table(
            'organization',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('slug', sa.String(length=200), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('slug', name='uq_organization_slug')
        )

    if 'plan' not in tables:
        op.create_table(
            'plan',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=50), nullable=False),
            sa.Column('display_name', sa.String(length=100), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('price_monthly', sa.Integer(), nullable=True),
            sa.Column('lots_limit', sa.Integer(), nullable=True),
            sa.Column('users_limit', sa.Integer(), nullable=True),
            sa.Column('extranet_tenants_limit', sa.Integer(), nullable=True),
            sa.Column('features', sa.JSON(), nullable=False),
            sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name', name='uq_plan_name')
        )

    # ----- Profiles -----
    if 'profile' not in tables:
        op.create_table(
            'profile',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=True),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('is_system_profile', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_profile_organization_id'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('organization_id', 'name', name='uq_profile_org_name')
        )
        op.create_index('ix_profile_organization_id', 'profile', ['organization_id'])

    if 'user' not in tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=True),
            sa.Column('first_name', sa.String(length=80), nullable=False),
            sa.Column('last_name', sa.String(length=80), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=True),
            sa.Column('profile_id', sa.Integer(), nullable=True),
            sa.Column('is_super_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.Column('last_login', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_user_organization_id'),
            sa.ForeignKeyConstraint(['profile_id'], ['profile.id'], name='fk_user_profile_id'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('email', name='uq_user_email')
        )
        op.create_index('ix_user_organization_id', 'user', ['organization_id'])
        op.create_index('ix_user_profile_id', 'user', ['profile_id'])

    if 'subscription' not in tables:
        op.create_table(
            'subscription',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('plan_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
            sa.Column('current_period_start', sa.DateTime(), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('current_period_end', sa.DateTime(), nullable=True),
            sa.Column('end_date', sa.DateTime(), nullable=True),
            sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('canceled_at', sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_subscription_organization_id'),
            sa.ForeignKeyConstraint(['plan_id'], ['plan.id'], name='fk_subscription_plan_id'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('organization_id', name='uq_subscription_organization_id')
        )

    if 'object_permission' not in tables:
        op.create_table(
            'object_permission',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('profile_id', sa.Integer(), nullable=False),
            sa.Column('object_type', sa.String(length=30), nullable=False),
            sa.Column('access_level', sa.String(length=20), nullable=False, server_default='None'),
            sa.Column('can_create', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('can_read', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('can_edit', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('can_delete', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('can_view_all', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['profile_id'], ['profile.id'], name='fk_object_permission_profile_id',
                                    ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('profile_id', 'object_type', name='uq_object_permission_profile_type')
        )
        op.create_index('ix_object_permission_profile_id', 'object_permission', ['profile_id'])

    if 'user_invitation' not in tables:
        op.create_table(
            'user_invitation',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=False),
            sa.Column('profile_id', sa.Integer(), nullable=True),
            sa.Column('token', sa.String(length=64), nullable=False),
            sa.Column('invited_by_id', sa.Integer(), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('accepted_at', sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_user_invitation_organization_id'),
            sa.ForeignKeyConstraint(['profile_id'], ['profile.id'], name='fk_user_invitation_profile_id'),
            sa.ForeignKeyConstraint(['invited_by_id'], ['user.id'], name='fk_user_invitation_invited_by_id'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('token', name='uq_user_invitation_token')
        )
        op.create_index('ix_user_invitation_organization_id', 'user_invitation', ['organization_id'])

    # ----- Business objects -----
    if 'property' not in tables:
        op.create_table(
            'property',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('address', sa.String(length=300), nullable=True),
            sa.Column('created_by_id', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_property_organization_id'),
            sa.ForeignKeyConstraint(['created_by_id'], ['user.id'], name='fk_property_created_by_id'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_property_organization_id', 'property', ['organization_id'])

    if 'unit' not in tables:
        op.create_table(
            'unit',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('property_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(['property_id'], ['property.id'], name='fk_unit_property_id'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_unit_property_id', 'unit', ['property_id'])

    if 'tenant' not in tables:
        op.create_table(
            'tenant',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('first_name', sa.String(length=80), nullable=False),
            sa.Column('last_name', sa.String(length=80), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=True),
            sa.Column('has_extranet_access', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_by_id', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_tenant_organization_id'),
            sa.ForeignKeyConstraint(['created_by_id'], ['user.id'], name='fk_tenant_created_by_id'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_tenant_organization_id', 'tenant', ['organization_id'])

    if 'lease' not in tables:
        op.create_table(
            'lease',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('unit_id', sa.Integer(), nullable=False),
            sa.Column('tenant_id', sa.Integer(), nullable=True),
            sa.Column('start_date', sa.Date(), nullable=True),
            sa.Column('end_date', sa.Date(), nullable=True),
            sa.Column('rent_amount', sa.Numeric(12, 2), nullable=True),
            sa.ForeignKeyConstraint(['unit_id'], ['unit.id'], name='fk_lease_unit_id'),
            sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], name='fk_lease_tenant_id'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_lease_unit_id', 'lease', ['unit_id'])

    if 'payment' not in tables:
        op.create_table(
            'payment',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('lease_id', sa.Integer(), nullable=True),
            sa.Column('tenant_id', sa.Integer(), nullable=True),
            sa.Column('amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('paid_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_payment_organization_id'),
            sa.ForeignKeyConstraint(['lease_id'], ['lease.id'], name='fk_payment_lease_id'),
            sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], name='fk_payment_tenant_id'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_payment_organization_id', 'payment', ['organization_id'])

    if 'task' not in tables:
        op.create_table(
            'task',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(length=200), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
            sa.Column('due_date', sa.DateTime(), nullable=True),
            sa.Column('created_by_id', sa.Integer(), nullable=True),
            sa.Column('assigned_to_id', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_task_organization_id'),
            sa.ForeignKeyConstraint(['created_by_id'], ['user.id'], name='fk_task_created_by_id'),
            sa.ForeignKeyConstraint(['assigned_to_id'], ['user.id'], name='fk_task_assigned_to_id'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_task_organization_id', 'task', ['organization_id'])

    if 'message' not in tables:
        op.create_table(
            'message',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('sender_id', sa.Integer(), nullable=False),
            sa.Column('recipient_id', sa.Integer(), nullable=True),
            sa.Column('tenant_id', sa.Integer(), nullable=True),
            sa.Column('body', sa.Text(), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_message_organization_id'),
            sa.ForeignKeyConstraint(['sender_id'], ['user.id'], name='fk_message_sender_id'),
            sa.ForeignKeyConstraint(['recipient_id'], ['user.id'], name='fk_message_recipient_id'),
            sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], name='fk_message_tenant_id'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_message_organization_id', 'message', ['organization_id'])

    if 'journal_entry' not in tables:
        op.create_table(
            'journal_entry',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=False),
            sa.Column('entry_date', sa.Date(), nullable=False),
            sa.Column('label', sa.String(length=200), nullable=False),
            sa.Column('debit', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('credit', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('created_by_id', sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_journal_entry_organization_id'),
            sa.ForeignKeyConstraint(['created_by_id'], ['user.id'], name='fk_journal_entry_created_by_id'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_journal_entry_organization_id', 'journal_entry', ['organization_id'])

    # ----- Audit -----
    if 'audit_event' not in tables:
        op.create_table(
            'audit_event',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('organization_id', sa.Integer(), nullable=True),
            sa.Column('actor_id', sa.Integer(), nullable=True),
            sa.Column('event_type', sa.String(length=50), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('event_data', sa.JSON(), nullable=False),
            sa.Column('source', sa.String(length=20), nullable=False, server_default='app'),
            sa.Column('ip_address', sa.String(length=45), nullable=True),
            sa.Column('user_agent', sa.String(length=500), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], name='fk_audit_event_organization_id'),
            sa.ForeignKeyConstraint(['actor_id'], ['user.id'], name='fk_audit_event_actor_id', ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_audit_event_organization_id', 'audit_event', ['organization_id'])
        op.create_index('ix_audit_event_event_type', 'audit_event', ['event_type'])


def downgrade():
    op.drop_table('audit_event')
    op.drop_table('journal_entry')
    op.drop_table('message')
    op.drop_table('task')
    op.drop_table('payment')
    op.drop_table('lease')
    op.drop_table('tenant')
    op.drop_table('unit')
    op.drop_table('property')
    op.drop_table('user_invitation')
    op.drop_table('object_permission')
    op.drop_table('subscription')
    op.drop_table('user')
    op.drop_table('profile')
    op.drop_table('plan')
    op.drop_table('organization')
