"""initial salesdesk schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema:
- roles, permissions, role_permissions, user_permission_overrides
- users and session_tokens
- prim rates, periods and the prim transaction ledger
- sales and the lookup catalogs
- communication types, daily records, years and penalty records
- announcements, reads and the activity log
- backups
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP'))
        )
    return columns


def upgrade():
    # ============================================================================
    # roles and permissions
    # ============================================================================
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system_role', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_roles_name', 'roles', ['name'], unique=True)
    op.create_index('ix_roles_is_active', 'roles', ['is_active'])

    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_permissions_code', 'permissions', ['code'], unique=True)
    op.create_index('ix_permissions_category', 'permissions', ['category'])

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('granted_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permissions'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'])
    op.create_index('ix_role_permissions_permission_id', 'role_permissions', ['permission_id'])

    # ============================================================================
    # users: accounts, approval, penalty deactivation, entry exemption
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=64), nullable=False),
        sa.Column('last_name', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_virtual', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_penalty_deactivated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('penalty_deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requires_communication_entry', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('communication_exemption_reason', sa.Text(), nullable=True),
        sa.Column('communication_exemption_by_user_id', sa.Integer(), nullable=True),
        sa.Column('communication_exemption_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['communication_exemption_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_name', 'users', ['name'])
    op.create_index('ix_users_role_id', 'users', ['role_id'])
    op.create_index('ix_users_active_approved', 'users', ['is_active', 'is_approved'])

    op.create_table(
        'user_permission_overrides',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('permission_code', sa.String(length=64), nullable=False),
        sa.Column('override_type', sa.String(length=8), nullable=False),
        sa.Column('granted_by_user_id', sa.Integer(), nullable=True),
        sa.Column('granted_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['granted_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'permission_code', name='uq_user_perm_override'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_permission_overrides_user_id', 'user_permission_overrides', ['user_id'])
    op.create_index('ix_user_permission_overrides_permission_code',
                    'user_permission_overrides', ['permission_code'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # prims: rate history, monthly periods, append-only ledger
    # ============================================================================
    op.create_table(
        'prim_rates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rate', sa.Float(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_prim_rates_is_active', 'prim_rates', ['is_active'])

    op.create_table(
        'prim_periods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('month', 'year', name='uq_prim_periods_month_year'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_prim_periods_year', 'prim_periods', ['year'])

    # ============================================================================
    # sales: contracts, pricing, prim snapshot, history
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('block_no', sa.String(length=32), nullable=False),
        sa.Column('apartment_no', sa.String(length=32), nullable=False),
        sa.Column('period_no', sa.String(length=32), nullable=False),
        sa.Column('contract_no', sa.String(length=64), nullable=False),
        sa.Column('sale_type', sa.String(length=64), nullable=False),
        sa.Column('sale_date', sa.Date(), nullable=True),
        sa.Column('kapora_date', sa.Date(), nullable=True),
        sa.Column('entry_date', sa.String(length=5), nullable=True),
        sa.Column('exit_date', sa.String(length=5), nullable=True),
        sa.Column('list_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('original_list_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('discount_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('discounted_list_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('activity_sale_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('payment_type', sa.String(length=64), nullable=True),
        sa.Column('prim_rate', sa.Float(), nullable=True),
        sa.Column('base_prim_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('prim_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('prim_status', sa.String(length=16), nullable=False),
        sa.Column('prim_period_id', sa.Integer(), nullable=True),
        sa.Column('prim_status_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('prim_status_updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('salesperson_id', sa.Integer(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=8), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('notes_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes_updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('transfer_history', sa.JSON(), nullable=False),
        sa.Column('modification_history', sa.JSON(), nullable=False),
        sa.Column('is_imported', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('imported_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('imported_by_user_id', sa.Integer(), nullable=True),
        sa.Column('is_historical', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['prim_period_id'], ['prim_periods.id']),
        sa.ForeignKeyConstraint(['salesperson_id'], ['users.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['notes_updated_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['prim_status_updated_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['imported_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_contract_no', 'sales', ['contract_no'], unique=True)
    op.create_index('ix_sales_customer_name', 'sales', ['customer_name'])
    op.create_index('ix_sales_sale_type', 'sales', ['sale_type'])
    op.create_index('ix_sales_sale_date', 'sales', ['sale_date'])
    op.create_index('ix_sales_kapora_date', 'sales', ['kapora_date'])
    op.create_index('ix_sales_prim_status', 'sales', ['prim_status'])
    op.create_index('ix_sales_prim_period_id', 'sales', ['prim_period_id'])
    op.create_index('ix_sales_salesperson_id', 'sales', ['salesperson_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_is_imported', 'sales', ['is_imported'])
    op.create_index('ix_sales_imported_at', 'sales', ['imported_at'])
    op.create_index('ix_sales_salesperson_date', 'sales', ['salesperson_id', 'sale_date'])
    op.create_index('ix_sales_type_status', 'sales', ['sale_type', 'status'])

    op.create_table(
        'prim_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('salesperson_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('prim_period_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['salesperson_id'], ['users.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['prim_period_id'], ['prim_periods.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_prim_transactions_salesperson_id', 'prim_transactions', ['salesperson_id'])
    op.create_index('ix_prim_transactions_sale_id', 'prim_transactions', ['sale_id'])
    op.create_index('ix_prim_transactions_prim_period_id', 'prim_transactions', ['prim_period_id'])
    op.create_index('ix_prim_transactions_transaction_type', 'prim_transactions', ['transaction_type'])
    op.create_index('ix_prim_transactions_status', 'prim_transactions', ['status'])
    op.create_index('ix_prim_tx_salesperson_period', 'prim_transactions', ['salesperson_id', 'prim_period_id'])

    # ============================================================================
    # lookup catalogs
    # ============================================================================
    for table, has_color in (('sale_types', True), ('payment_types', False), ('payment_methods', False)):
        columns = [
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
        ]
        if has_color:
            columns.append(sa.Column('color', sa.String(length=16), nullable=False, server_default='primary'))
        columns += [
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_by_user_id', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name'),
        ]
        op.create_table(table, *columns, sqlite_autoincrement=True)
        op.create_index(f'ix_{table}_is_active', table, ['is_active'])

    # ============================================================================
    # communications: types, daily records, year settings, penalties
    # ============================================================================
    op.create_table(
        'communication_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=16), nullable=False, server_default='other'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('color', sa.String(length=7), nullable=False, server_default='#007bff'),
        sa.Column('icon', sa.String(length=64), nullable=False, server_default='FiMessageCircle'),
        sa.Column('min_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_communication_types_code', 'communication_types', ['code'], unique=True)
    op.create_index('ix_communication_types_is_active', 'communication_types', ['is_active'])

    op.create_table(
        'communication_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('salesperson_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('day', sa.Integer(), nullable=False),
        sa.Column('whatsapp_incoming', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('call_incoming', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('call_outgoing', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('meeting_new_customer', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('meeting_after_sale', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extra_counts', sa.JSON(), nullable=False),
        sa.Column('total_meetings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_communication', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_entered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('entered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('entered_by_user_id', sa.Integer(), nullable=True),
        sa.Column('penalty_applied', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('penalty_applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_historical_migration', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['salesperson_id'], ['users.id']),
        sa.ForeignKeyConstraint(['entered_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('salesperson_id', 'date', name='uq_communication_records_salesperson_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_communication_records_salesperson_id', 'communication_records', ['salesperson_id'])
    op.create_index('ix_communication_records_date', 'communication_records', ['date'])
    op.create_index('ix_communication_records_is_historical_migration',
                    'communication_records', ['is_historical_migration'])
    op.create_index('ix_communication_records_year_month', 'communication_records', ['year', 'month'])

    op.create_table(
        'communication_years',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('daily_entry_required', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('penalty_system_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('daily_penalty_points', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('max_penalty_points', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('entry_deadline_hour', sa.Integer(), nullable=False, server_default='23'),
        sa.Column('entry_deadline_minute', sa.Integer(), nullable=False, server_default='59'),
        sa.Column('monthly_data', sa.JSON(), nullable=False),
        sa.Column('yearly_sales_data', sa.JSON(), nullable=False),
        sa.Column('yearly_communication_data', sa.JSON(), nullable=False),
        sa.Column('historical_users', sa.JSON(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_communication_years_year', 'communication_years', ['year'], unique=True)
    op.create_index('ix_communication_years_is_active', 'communication_years', ['is_active'])

    op.create_table(
        'penalty_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('penalty_type', sa.String(length=16), nullable=False, server_default='manual'),
        sa.Column('is_cancelled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('is_resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('resolved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['resolved_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_penalty_records_user_id', 'penalty_records', ['user_id'])
    op.create_index('ix_penalty_records_date', 'penalty_records', ['date'])
    op.create_index('ix_penalty_records_user_year', 'penalty_records', ['user_id', 'year'])

    # ============================================================================
    # announcements and activity log
    # ============================================================================
    op.create_table(
        'announcements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='info'),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_announcements_is_active', 'announcements', ['is_active'])

    op.create_table(
        'announcement_targets',
        sa.Column('announcement_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['announcement_id'], ['announcements.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('announcement_id', 'user_id'),
    )

    op.create_table(
        'announcement_reads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('announcement_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['announcement_id'], ['announcements.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('announcement_id', 'user_id', name='uq_announcement_reads'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_announcement_reads_announcement_id', 'announcement_reads', ['announcement_id'])
    op.create_index('ix_announcement_reads_user_id', 'announcement_reads', ['user_id'])

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('related_model', sa.String(length=64), nullable=True),
        sa.Column('related_id', sa.Integer(), nullable=True),
        sa.Column('severity', sa.String(length=16), nullable=False, server_default='low'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_activity_logs_user_id', 'activity_logs', ['user_id'])
    op.create_index('ix_activity_logs_action', 'activity_logs', ['action'])
    op.create_index('ix_activity_logs_severity', 'activity_logs', ['severity'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])
    op.create_index('ix_activity_logs_user_created', 'activity_logs', ['user_id', 'created_at'])

    # ============================================================================
    # backups: JSON snapshots of sales
    # ============================================================================
    op.create_table(
        'backups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('record_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('file_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata_json', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_backups_filename', 'backups', ['filename'], unique=True)
    op.create_index('ix_backups_type', 'backups', ['type'])
    op.create_index('ix_backups_is_active', 'backups', ['is_active'])
    op.create_index('ix_backups_created_at', 'backups', ['created_at'])


def downgrade():
    for table in (
        'backups',
        'activity_logs',
        'announcement_reads',
        'announcement_targets',
        'announcements',
        'penalty_records',
        'communication_years',
        'communication_records',
        'communication_types',
        'payment_methods',
        'payment_types',
        'sale_types',
        'prim_transactions',
        'sales',
        'prim_periods',
        'prim_rates',
        'session_tokens',
        'user_permission_overrides',
        'users',
        'role_permissions',
        'permissions',
        'roles',
    ):
        op.drop_table(table)
