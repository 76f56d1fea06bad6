"""purchase return approval schema

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema from scratch:
- companies, roles, users, session_tokens: tenancy and authentication
- workflow_config: approval ladder rungs per (company, process)
- system_message_config: runtime status vocabulary
- purchase_returns, purchase_return_items: returns and their lines
- approval_events: append-only approval ledger (unique per return + sequence_no)
- inventory_lines: on-hand stock per (company, purchase order, item)
- system_notifications, system_logs: notification and audit sinks
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1d2e3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # Tenancy and authentication
    # ============================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_roles_company_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_roles_company_id', 'roles', ['company_id'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'username', name='uq_users_company_username'),
        sa.UniqueConstraint('company_id', 'email', name='uq_users_company_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])
    op.create_index('ix_users_role_id', 'users', ['role_id'])
    op.create_index('ix_users_username', 'users', ['username'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _created_at(),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_company_id', 'session_tokens', ['company_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # Workflow configuration and status vocabulary
    # ============================================================================
    op.create_table(
        'workflow_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('process_name', sa.String(length=64), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('override_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'process_name', 'level', name='uq_workflow_company_process_level'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_workflow_config_company_id', 'workflow_config', ['company_id'])
    op.create_index('ix_workflow_company_process', 'workflow_config', ['company_id', 'process_name'])

    op.create_table(
        'system_message_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.String(length=64), nullable=False),
        sa.Column('sub_category_id', sa.String(length=64), nullable=False),
        sa.Column('value', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_system_message_config_company_id', 'system_message_config', ['company_id'])
    op.create_index('ix_system_message_lookup', 'system_message_config',
                    ['company_id', 'category_id', 'sub_category_id'])

    # ============================================================================
    # Purchase returns and the approval ledger
    # ============================================================================
    op.create_table(
        'purchase_returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('return_number', sa.String(length=64), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('supplier_name', sa.String(length=255), nullable=True),
        sa.Column('total_items', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_value', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('remark', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('workflow_id', sa.Integer(), nullable=True),
        sa.Column('next_level_role_id', sa.Integer(), nullable=True),
        sa.Column('return_status_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflow_config.id']),
        sa.ForeignKeyConstraint(['next_level_role_id'], ['roles.id']),
        sa.ForeignKeyConstraint(['return_status_id'], ['system_message_config.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'return_number', name='uq_purchase_returns_company_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_returns_company_id', 'purchase_returns', ['company_id'])
    op.create_index('ix_purchase_returns_purchase_order_id', 'purchase_returns', ['purchase_order_id'])
    op.create_index('ix_purchase_returns_created_by_user_id', 'purchase_returns', ['created_by_user_id'])
    op.create_index('ix_purchase_returns_created_at', 'purchase_returns', ['created_at'])
    op.create_index('ix_purchase_returns_company_status', 'purchase_returns', ['company_id', 'return_status_id'])
    op.create_index('ix_purchase_returns_next_role', 'purchase_returns', ['company_id', 'next_level_role_id'])

    op.create_table(
        'purchase_return_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_return_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('returned_qty', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('order_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('return_reason', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['purchase_return_id'], ['purchase_returns.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('returned_qty > 0', name='ck_purchase_return_items_qty_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_return_items_purchase_return_id', 'purchase_return_items', ['purchase_return_id'])
    op.create_index('ix_purchase_return_items_item_id', 'purchase_return_items', ['item_id'])

    op.create_table(
        'approval_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_return_id', sa.Integer(), nullable=False),
        sa.Column('sequence_no', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('trail', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=128), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=True),
        sa.Column('is_finalized', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('rejected_by_user_id', sa.Integer(), nullable=True),
        sa.Column('rejected_to_user_id', sa.Integer(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('status_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('superseded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('superseded_by_sequence_no', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['purchase_return_id'], ['purchase_returns.id']),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['rejected_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['rejected_to_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['status_id'], ['system_message_config.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_return_id', 'sequence_no', name='uq_approval_events_return_sequence'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_approval_events_purchase_return_id', 'approval_events', ['purchase_return_id'])
    op.create_index('ix_approval_events_trail', 'approval_events', ['trail'])

    op.create_table(
        'inventory_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('item_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_lines_company_id', 'inventory_lines', ['company_id'])
    op.create_index('ix_inventory_lines_po_item', 'inventory_lines', ['company_id', 'purchase_order_id', 'item_id'])

    # ============================================================================
    # Notification and audit sinks
    # ============================================================================
    op.create_table(
        'system_notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('assign_to', sa.Integer(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='New'),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='Medium'),
        sa.Column('alert_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        _created_at(),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['assign_to'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_system_notifications_company_id', 'system_notifications', ['company_id'])
    op.create_index('ix_system_notifications_assignee_status', 'system_notifications', ['assign_to', 'status'])

    op.create_table(
        'system_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('module', sa.String(length=64), nullable=False),
        sa.Column('scope', sa.String(length=16), nullable=False),
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('log', sa.Text(), nullable=False),
        sa.Column('action_by', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['action_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_system_logs_company_id', 'system_logs', ['company_id'])
    op.create_index('ix_system_logs_key', 'system_logs', ['key'])
    op.create_index('ix_system_logs_company_module', 'system_logs', ['company_id', 'module'])


def downgrade():
    for table in (
        'system_logs',
        'system_notifications',
        'inventory_lines',
        'approval_events',
        'purchase_return_items',
        'purchase_returns',
        'system_message_config',
        'workflow_config',
        'session_tokens',
        'users',
        'roles',
        'companies',
    ):
        op.drop_table(table)
