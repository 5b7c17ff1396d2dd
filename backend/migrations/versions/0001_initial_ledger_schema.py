"""initial ledger schema

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the complete store ledger schema:
- users: staff identity, role, grants and active break pointer
- products / stock_movements: quantity on hand plus the cause of every change
- orders / order_items / order_payments: settled and pending orders
- demand_notices / demand_notice_payments: customer demand awaiting stock
- quotations / quotation_items
- suppliers / purchase_orders / po_items / po_attachments
- audits / audit_items / audit_item_counts / audit_evidence
- break_logs
- series_counters: one row per identifier series
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_ledger'
down_revision = None
branch_labels = None
depends_on = None


SERIES = ('invoice', 'quotation', 'demand_notice', 'purchase_order', 'audit')


def upgrade():
    # ============================================================================
    # users (active_break_id FK added after break_logs exists)
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('active_break_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_role_active', 'users', ['role', 'is_active'])

    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('price', sa.Numeric(12, 3), nullable=False),
        sa.Column('quantity_in_stock', sa.Integer(), nullable=False),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=True),
        sa.Column('image_path', sa.String(length=512), nullable=True),
        sa.Column('is_demand_notice_product', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity_in_stock >= 0', name='ck_products_stock_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])

    # ============================================================================
    # series_counters
    # ============================================================================
    series_counters = op.create_table(
        'series_counters',
        sa.Column('series_id', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('series_id'),
    )
    op.bulk_insert(series_counters, [{'series_id': s, 'next_number': 1} for s in SERIES])

    # ============================================================================
    # demand notices
    # ============================================================================
    op.create_table(
        'demand_notices',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('salesperson_id', sa.Integer(), nullable=False),
        sa.Column('customer_contact_number', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('quantity_requested', sa.Integer(), nullable=False),
        sa.Column('quantity_fulfilled', sa.Integer(), nullable=False),
        sa.Column('agreed_price', sa.Numeric(12, 3), nullable=False),
        sa.Column('expected_availability_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('is_new_product', sa.Boolean(), nullable=False),
        sa.Column('linked_order_id', sa.String(length=32), nullable=True),
        sa.Column('source_quotation_id', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'quantity_fulfilled >= 0 AND quantity_fulfilled <= quantity_requested',
            name='ck_demand_notices_fulfilled_range',
        ),
        sa.ForeignKeyConstraint(['salesperson_id'], ['users.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_demand_notices_salesperson_id', 'demand_notices', ['salesperson_id'])
    op.create_index('ix_demand_notices_product_id', 'demand_notices', ['product_id'])
    op.create_index('ix_demand_notices_status', 'demand_notices', ['status'])
    op.create_index('ix_demand_notices_sku_status', 'demand_notices', ['product_sku', 'status'])

    op.create_table(
        'demand_notice_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('notice_id', sa.String(length=32), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(12, 3), nullable=False),
        sa.Column('transaction_id', sa.String(length=128), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['notice_id'], ['demand_notices.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_demand_notice_payments_notice_id', 'demand_notice_payments', ['notice_id'])

    # ============================================================================
    # orders
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('delivery_status', sa.String(length=32), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 3), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 3), nullable=False),
        sa.Column('tax_amount', sa.Numeric(12, 3), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 3), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('linked_demand_notice_id', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['linked_demand_notice_id'], ['demand_notices.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_created_by_user_id', 'orders', ['created_by_user_id'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=32), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 3), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 3), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'order_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=32), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(12, 3), nullable=False),
        sa.Column('transaction_id', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('cashier_id', sa.Integer(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_payments_order_id', 'order_payments', ['order_id'])

    # ============================================================================
    # quotations
    # ============================================================================
    op.create_table(
        'quotations',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('salesperson_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['salesperson_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_quotations_salesperson_id', 'quotations', ['salesperson_id'])
    op.create_index('ix_quotations_status', 'quotations', ['status'])

    op.create_table(
        'quotation_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quotation_id', sa.String(length=32), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 3), nullable=False),
        sa.Column('is_external', sa.Boolean(), nullable=False),
        sa.Column('converted', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['quotation_id'], ['quotations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_quotation_items_quotation_id', 'quotation_items', ['quotation_id'])

    # ============================================================================
    # purchasing
    # ============================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('expected_delivery', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_purchase_orders_supplier_id', 'purchase_orders', ['supplier_id'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_supplier_status', 'purchase_orders', ['supplier_id', 'status'])

    op.create_table(
        'po_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('po_id', sa.String(length=32), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_ordered', sa.Integer(), nullable=False),
        sa.Column('quantity_received', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.CheckConstraint('quantity_ordered > 0', name='ck_po_items_ordered_positive'),
        sa.CheckConstraint(
            'quantity_received >= 0 AND quantity_received <= quantity_ordered',
            name='ck_po_items_received_range',
        ),
        sa.ForeignKeyConstraint(['po_id'], ['purchase_orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_po_items_po_id', 'po_items', ['po_id'])
    op.create_index('ix_po_items_product_id', 'po_items', ['product_id'])

    op.create_table(
        'po_attachments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('po_id', sa.String(length=32), nullable=False),
        sa.Column('file_path', sa.String(length=512), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('uploaded_by_id', sa.Integer(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['po_id'], ['purchase_orders.id']),
        sa.ForeignKeyConstraint(['uploaded_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_po_attachments_po_id', 'po_attachments', ['po_id'])

    # ============================================================================
    # stock_movements: cause of every quantity_in_stock change
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=16), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('quantity_after', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=32), nullable=True),
        sa.Column('po_item_id', sa.Integer(), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['po_item_id'], ['po_items.id']),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_reason', 'stock_movements', ['reason'])
    op.create_index('ix_stock_movements_order_id', 'stock_movements', ['order_id'])
    op.create_index('ix_stock_movements_po_item_id', 'stock_movements', ['po_item_id'])
    op.create_index('ix_stock_movements_product_occurred', 'stock_movements', ['product_id', 'occurred_at'])

    # ============================================================================
    # audits
    # ============================================================================
    op.create_table(
        'audits',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('admin_id', sa.Integer(), nullable=False),
        sa.Column('auditor_id', sa.Integer(), nullable=False),
        sa.Column('store_location', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('selfie_path', sa.String(length=512), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['admin_id'], ['users.id']),
        sa.ForeignKeyConstraint(['auditor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audits_auditor_id', 'audits', ['auditor_id'])
    op.create_index('ix_audits_status', 'audits', ['status'])
    op.create_index('ix_audits_auditor_status', 'audits', ['auditor_id', 'status'])

    op.create_table(
        'audit_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_id', sa.String(length=32), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('final_audited_qty', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['audit_id'], ['audits.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('audit_id', 'product_id', name='uq_audit_items_audit_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_items_audit_id', 'audit_items', ['audit_id'])

    op.create_table(
        'audit_item_counts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_item_id', sa.Integer(), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('counted_by_id', sa.Integer(), nullable=False),
        sa.Column('counted_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('count >= 0', name='ck_audit_item_counts_non_negative'),
        sa.ForeignKeyConstraint(['audit_item_id'], ['audit_items.id']),
        sa.ForeignKeyConstraint(['counted_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_item_counts_audit_item_id', 'audit_item_counts', ['audit_item_id'])

    op.create_table(
        'audit_evidence',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_item_count_id', sa.Integer(), nullable=False),
        sa.Column('file_path', sa.String(length=512), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['audit_item_count_id'], ['audit_item_counts.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_evidence_audit_item_count_id', 'audit_evidence', ['audit_item_count_id'])

    # ============================================================================
    # break_logs + users.active_break_id pointer
    # ============================================================================
    op.create_table(
        'break_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_break_logs_user_id', 'break_logs', ['user_id'])
    op.create_index('ix_break_logs_user_start', 'break_logs', ['user_id', 'start_time'])

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_foreign_key('fk_users_active_break', 'break_logs', ['active_break_id'], ['id'])


def downgrade():
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_constraint('fk_users_active_break', type_='foreignkey')

    for table in (
        'break_logs',
        'audit_evidence',
        'audit_item_counts',
        'audit_items',
        'audits',
        'stock_movements',
        'po_attachments',
        'po_items',
        'purchase_orders',
        'suppliers',
        'quotation_items',
        'quotations',
        'order_payments',
        'order_items',
        'orders',
        'demand_notice_payments',
        'demand_notices',
        'series_counters',
        'products',
        'users',
    ):
        op.drop_table(table)
