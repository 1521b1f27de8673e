"""Initial migration

Revision ID: 3f9c1a7e2b10
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f9c1a7e2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _status(*values: str) -> sa.Enum:
    # Mirrors the non-native enums on the models (VARCHAR + CHECK)
    return sa.Enum(*values, native_enum=False, length=30, create_constraint=False)


def upgrade() -> None:
    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
    )
    op.create_index(op.f('ix_vendors_id'), 'vendors', ['id'], unique=False)
    op.create_index(op.f('ix_vendors_email'), 'vendors', ['email'], unique=True)

    op.create_table(
        'vendor_bank_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('account_holder_name', sa.String(length=255), nullable=False),
        sa.Column('account_number', sa.String(length=50), nullable=False),
        sa.Column('ifsc_code', sa.String(length=11), nullable=False),
        sa.Column('is_payout_ready', sa.Boolean(), nullable=False),
        sa.Column('is_edited', sa.Boolean(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pending_changes', sa.JSON(), nullable=True),
        sa.Column('admin_approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vendor_id'),
    )
    op.create_index(op.f('ix_vendor_bank_details_id'), 'vendor_bank_details', ['id'], unique=False)

    op.create_table(
        'vendor_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('base_price_single_day', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('base_price_multi_day', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('pricing_unit', _status('PER_DAY', 'PER_SESSION'), nullable=False),
        sa.Column('advance_type', _status('PERCENTAGE', 'FIXED'), nullable=False),
        sa.Column('advance_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
    )
    op.create_index(op.f('ix_vendor_products_id'), 'vendor_products', ['id'], unique=False)
    op.create_index(op.f('ix_vendor_products_vendor_id'), 'vendor_products', ['vendor_id'], unique=False)

    op.create_table(
        'coupon_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('coupon_type', _status('FLAT', 'PERCENT', 'UPTO'), nullable=False),
        sa.Column('value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('min_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('max_discount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
    )
    op.create_index(op.f('ix_coupon_codes_id'), 'coupon_codes', ['id'], unique=False)
    op.create_index(op.f('ix_coupon_codes_code'), 'coupon_codes', ['code'], unique=True)

    op.create_table(
        'vendor_bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('booked_by_vendor_id', sa.Integer(), nullable=False),
        sa.Column('vendor_product_id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=True),
        sa.Column('booking_type', _status('SINGLE_DAY', 'MULTI_DAY'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('total_days', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('coupon_code', sa.String(length=50), nullable=True),
        sa.Column('discount_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('final_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('advance_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('remaining_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('advance_type', _status('PERCENTAGE', 'FIXED'), nullable=True),
        sa.Column('advance_value', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column(
            'status',
            _status('REQUESTED', 'PAYMENT_PENDING', 'CONFIRMED', 'COMPLETED', 'REJECTED', 'EXPIRED', 'CANCELLED'),
            nullable=False
        ),
        sa.Column('approval_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.ForeignKeyConstraint(['booked_by_vendor_id'], ['vendors.id']),
        sa.ForeignKeyConstraint(['vendor_product_id'], ['vendor_products.id']),
        sa.ForeignKeyConstraint(['cancelled_by'], ['vendors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_vendor_bookings_id'), 'vendor_bookings', ['id'], unique=False)
    op.create_index(op.f('ix_vendor_bookings_uuid'), 'vendor_bookings', ['uuid'], unique=True)
    op.create_index(op.f('ix_vendor_bookings_vendor_id'), 'vendor_bookings', ['vendor_id'], unique=False)
    op.create_index(
        op.f('ix_vendor_bookings_booked_by_vendor_id'), 'vendor_bookings', ['booked_by_vendor_id'], unique=False
    )
    op.create_index(
        op.f('ix_vendor_bookings_vendor_product_id'), 'vendor_bookings', ['vendor_product_id'], unique=False
    )
    op.create_index(op.f('ix_vendor_bookings_status'), 'vendor_bookings', ['status'], unique=False)
    op.create_index(
        'ix_vendor_bookings_product_dates', 'vendor_bookings',
        ['vendor_product_id', 'start_date', 'end_date'], unique=False
    )

    op.create_table(
        'vendor_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('vendor_product_id', sa.Integer(), nullable=False),
        sa.Column('purpose', _status('ADVANCE', 'REMAINING'), nullable=False),
        sa.Column('gateway_order_id', sa.String(length=100), nullable=False),
        sa.Column('gateway_payment_id', sa.String(length=100), nullable=True),
        sa.Column('signature', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', _status('CREATED', 'PAID', 'FAILED', 'COMPLETED'), nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['booking_id'], ['vendor_bookings.id']),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.ForeignKeyConstraint(['vendor_product_id'], ['vendor_products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
    )
    op.create_index(op.f('ix_vendor_payments_id'), 'vendor_payments', ['id'], unique=False)
    op.create_index(op.f('ix_vendor_payments_booking_id'), 'vendor_payments', ['booking_id'], unique=False)
    op.create_index(
        op.f('ix_vendor_payments_gateway_order_id'), 'vendor_payments', ['gateway_order_id'], unique=True
    )
    op.create_index(
        'uq_vendor_payments_open_order', 'vendor_payments', ['booking_id', 'purpose'], unique=True,
        postgresql_where=sa.text("status = 'CREATED'"),
        sqlite_where=sa.text("status = 'CREATED'"),
    )

    op.create_table(
        'vendor_calendar_blocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
    )
    op.create_index(op.f('ix_vendor_calendar_blocks_id'), 'vendor_calendar_blocks', ['id'], unique=False)
    op.create_index(
        op.f('ix_vendor_calendar_blocks_vendor_id'), 'vendor_calendar_blocks', ['vendor_id'], unique=False
    )

    op.create_table(
        'payment_webhook_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('event_id', sa.String(length=100), nullable=True),
        sa.Column('event_type', sa.String(length=100), nullable=True),
        sa.Column('gateway_order_id', sa.String(length=100), nullable=True),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('signature', sa.String(length=255), nullable=True),
        sa.Column('status', _status('RECEIVED', 'PROCESSED', 'IGNORED', 'FAILED'), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
    )
    op.create_index(op.f('ix_payment_webhook_events_id'), 'payment_webhook_events', ['id'], unique=False)
    op.create_index(
        op.f('ix_payment_webhook_events_event_id'), 'payment_webhook_events', ['event_id'], unique=False
    )
    op.create_index(
        op.f('ix_payment_webhook_events_gateway_order_id'), 'payment_webhook_events',
        ['gateway_order_id'], unique=False
    )

    # One active booking per product per day, enforced by the database on PostgreSQL
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute("""
            ALTER TABLE vendor_bookings
            ADD CONSTRAINT ex_vendor_bookings_product_dates
            EXCLUDE USING gist (
                vendor_product_id WITH =,
                daterange(start_date, end_date, '[]') WITH &&
            )
            WHERE (status IN ('REQUESTED', 'PAYMENT_PENDING', 'CONFIRMED'))
        """)


def downgrade() -> None:
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("ALTER TABLE vendor_bookings DROP CONSTRAINT IF EXISTS ex_vendor_bookings_product_dates")

    op.drop_table('payment_webhook_events')
    op.drop_table('vendor_calendar_blocks')
    op.drop_table('vendor_payments')
    op.drop_table('vendor_bookings')
    op.drop_table('coupon_codes')
    op.drop_table('vendor_products')
    op.drop_table('vendor_bank_details')
    op.drop_table('vendors')
