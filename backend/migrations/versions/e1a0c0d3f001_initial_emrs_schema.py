"""initial emrs schema

Revision ID: e1a0c0d3f001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the EMRS schema from scratch:
- departments, users, session_tokens, request_type_departments: org + auth
- requests, request_lines, request_approvals: request workflow and history
- items, item_locations, assets, equipment: inventory master data
- stock_ledger: append-only stock movements
- issues, issue_lines, returns, return_lines: issue/return documents
- activity_logs, maintenance_logs: audit trail and service history
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e1a0c0d3f001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # Organization and authentication
    # ============================================================================
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_department_id', 'users', ['department_id'])
    op.create_index('ix_users_department_role', 'users', ['department_id', 'role'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)

    op.create_table(
        'request_type_departments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_type', sa.String(length=64), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_request_type_departments_department_id', 'request_type_departments', ['department_id'])

    # ============================================================================
    # Inventory master data
    # ============================================================================
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_consumable', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('default_uom', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'item_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('on_hand_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('opening_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_id', 'location_id', name='uq_item_locations_item_location'),
        sa.CheckConstraint('on_hand_qty >= 0', name='ck_item_locations_on_hand_nonnegative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_item_locations_item_id', 'item_locations', ['item_id'])
    op.create_index('ix_item_locations_location_id', 'item_locations', ['location_id'])

    op.create_table(
        'assets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('tag', sa.String(length=64), nullable=True),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='Ready'),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tag'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_assets_item_id', 'assets', ['item_id'])
    op.create_index('ix_assets_item_status', 'assets', ['item_id', 'status'])

    op.create_table(
        'equipment',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='Operational'),
        sa.Column('assigned_to', sa.Integer(), nullable=True),
        sa.Column('added_by', sa.Integer(), nullable=True),
        sa.Column('last_maintained', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['assigned_to'], ['users.id']),
        sa.ForeignKeyConstraint(['added_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_equipment_department_id', 'equipment', ['department_id'])
    op.create_index('ix_equipment_assigned_to', 'equipment', ['assigned_to'])

    # ============================================================================
    # stock_ledger: append-only (enforced in the ORM layer)
    # ============================================================================
    op.create_table(
        'stock_ledger',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('txn_type', sa.String(length=16), nullable=False),
        sa.Column('qty_delta', sa.Integer(), nullable=False),
        sa.Column('ref_table', sa.String(length=64), nullable=False),
        sa.Column('ref_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_ledger_item_location', 'stock_ledger', ['item_id', 'location_id'])
    op.create_index('ix_stock_ledger_ref', 'stock_ledger', ['ref_table', 'ref_id'])
    op.create_index('ix_stock_ledger_txn_type', 'stock_ledger', ['txn_type'])
    op.create_index('ix_stock_ledger_created_at', 'stock_ledger', ['created_at'])

    # ============================================================================
    # Requests
    # ============================================================================
    op.create_table(
        'requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('requested_by', sa.Integer(), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='Medium'),
        sa.Column('request_type', sa.String(length=64), nullable=True),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Pending'),
        sa.Column('equipment_id', sa.Integer(), nullable=True),
        sa.Column('is_new_equipment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('new_equipment_name', sa.String(length=255), nullable=True),
        sa.Column('new_equipment_description', sa.Text(), nullable=True),
        sa.Column('transferred_to_department', sa.Integer(), nullable=True),
        sa.Column('transferred_by', sa.Integer(), nullable=True),
        sa.Column('transferred_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transfer_notes', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['requested_by'], ['users.id']),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['equipment_id'], ['equipment.id']),
        sa.ForeignKeyConstraint(['transferred_to_department'], ['departments.id']),
        sa.ForeignKeyConstraint(['transferred_by'], ['users.id']),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_requests_requested_by', 'requests', ['requested_by'])
    op.create_index('ix_requests_request_type', 'requests', ['request_type'])
    op.create_index('ix_requests_department_id', 'requests', ['department_id'])
    op.create_index('ix_requests_status', 'requests', ['status'])
    op.create_index('ix_requests_created_at', 'requests', ['created_at'])
    op.create_index('ix_requests_department_status', 'requests', ['department_id', 'status'])
    op.create_index('ix_requests_requested_by_created', 'requests', ['requested_by', 'created_at'])

    op.create_table(
        'request_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('item_name', sa.String(length=255), nullable=True),
        sa.Column('requested_qty', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_consumable', sa.Boolean(), nullable=True),
        sa.Column('uom', sa.String(length=32), nullable=True),
        sa.Column('extra_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['request_id'], ['requests.id']),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('requested_qty > 0', name='ck_request_lines_qty_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_request_lines_request_id', 'request_lines', ['request_id'])
    op.create_index('ix_request_lines_item_id', 'request_lines', ['item_id'])

    op.create_table(
        'request_approvals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['request_id'], ['requests.id']),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_request_approvals_request_id', 'request_approvals', ['request_id'])

    # ============================================================================
    # Issue / return documents
    # ============================================================================
    op.create_table(
        'issues',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('issued_by', sa.Integer(), nullable=False),
        sa.Column('waybill_no', sa.String(length=64), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['request_id'], ['requests.id']),
        sa.ForeignKeyConstraint(['issued_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_issues_request_id', 'issues', ['request_id'])
    op.create_index('ix_issues_issued_at', 'issues', ['issued_at'])

    op.create_table(
        'issue_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('issue_id', sa.Integer(), nullable=False),
        sa.Column('request_line_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=True),
        sa.Column('uom', sa.String(length=32), nullable=True),
        sa.Column('asset_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['issue_id'], ['issues.id']),
        sa.ForeignKeyConstraint(['request_line_id'], ['request_lines.id']),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('qty IS NULL OR qty > 0', name='ck_issue_lines_qty_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_issue_lines_issue_id', 'issue_lines', ['issue_id'])
    op.create_index('ix_issue_lines_request_line_id', 'issue_lines', ['request_line_id'])
    op.create_index('ix_issue_lines_asset_id', 'issue_lines', ['asset_id'])

    op.create_table(
        'returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('issue_id', sa.Integer(), nullable=False),
        sa.Column('received_by', sa.Integer(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['issue_id'], ['issues.id']),
        sa.ForeignKeyConstraint(['received_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_returns_issue_id', 'returns', ['issue_id'])
    op.create_index('ix_returns_received_at', 'returns', ['received_at'])

    op.create_table(
        'return_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('issue_line_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=True),
        sa.Column('asset_id', sa.Integer(), nullable=True),
        sa.Column('condition', sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.ForeignKeyConstraint(['issue_line_id'], ['issue_lines.id']),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('qty IS NULL OR qty > 0', name='ck_return_lines_qty_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_return_lines_return_id', 'return_lines', ['return_id'])
    op.create_index('ix_return_lines_issue_line_id', 'return_lines', ['issue_line_id'])

    # ============================================================================
    # Audit trail and service history
    # ============================================================================
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('user_name', sa.String(length=255), nullable=True),
        sa.Column('user_role', sa.String(length=32), nullable=True),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('department_name', sa.String(length=255), nullable=True),
        sa.Column('action_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('entity_name', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_activity_logs_action_type', 'activity_logs', ['action_type'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])
    op.create_index('ix_activity_logs_user_created', 'activity_logs', ['user_id', 'created_at'])
    op.create_index('ix_activity_logs_department_created', 'activity_logs', ['department_id', 'created_at'])

    op.create_table(
        'maintenance_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('equipment_id', sa.Integer(), nullable=False),
        sa.Column('maintenance_type', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('hours_at_service', sa.Integer(), nullable=True),
        sa.Column('performed_by', sa.String(length=255), nullable=True),
        sa.Column('cost', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('parts_used', sa.Text(), nullable=True),
        sa.Column('next_service_hours', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['equipment_id'], ['equipment.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_maintenance_logs_equipment_id', 'maintenance_logs', ['equipment_id'])
    op.create_index('ix_maintenance_logs_maintenance_type', 'maintenance_logs', ['maintenance_type'])
    op.create_index('ix_maintenance_logs_equipment_date', 'maintenance_logs', ['equipment_id', 'date'])


def downgrade():
    op.drop_table('maintenance_logs')
    op.drop_table('activity_logs')
    op.drop_table('return_lines')
    op.drop_table('returns')
    op.drop_table('issue_lines')
    op.drop_table('issues')
    op.drop_table('request_approvals')
    op.drop_table('request_lines')
    op.drop_table('requests')
    op.drop_table('stock_ledger')
    op.drop_table('equipment')
    op.drop_table('assets')
    op.drop_table('item_locations')
    op.drop_table('items')
    op.drop_table('request_type_departments')
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('departments')
