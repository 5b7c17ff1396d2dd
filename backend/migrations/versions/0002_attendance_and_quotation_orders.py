"""attendance logs and quotation orders

Revision ID: 0002_attendance_quotation_orders
Revises: 0001_initial_ledger
Create Date: 2026-10-17 12:00:00.000000

- attendance_logs: one clock-in per user per UTC working day
- orders.source_quotation_id: orders created from a quotation's stocked items
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002_attendance_quotation_orders'
down_revision = '0001_initial_ledger'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'attendance_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('clocked_in_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('selfie_path', sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'work_date', name='uq_attendance_user_day'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_attendance_logs_user_id', 'attendance_logs', ['user_id'])

    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.add_column(sa.Column('source_quotation_id', sa.String(length=32), nullable=True))
        batch_op.create_foreign_key('fk_orders_source_quotation', 'quotations', ['source_quotation_id'], ['id'])


def downgrade():
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.drop_constraint('fk_orders_source_quotation', type_='foreignkey')
        batch_op.drop_column('source_quotation_id')

    op.drop_index('ix_attendance_logs_user_id', table_name='attendance_logs')
    op.drop_table('attendance_logs')
