"""Initial rentals schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create inventory_items table
    op.create_table('inventory_items',
        sa.Column('item_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('item_type', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('model', sa.String(length=128), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('specifications', sa.JSON(), nullable=False),
        sa.Column('primary_location', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('minimum_rental_days', sa.Integer(), nullable=False),
        sa.Column('base_price', sa.Integer(), nullable=False),
        sa.Column('security_deposit', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('insurance_rate', sa.Numeric(precision=5, scale=4), nullable=False),
        sa.Column('pricing_tiers', sa.JSON(), nullable=False),
        sa.Column('seasonal_multipliers', sa.JSON(), nullable=False),
        sa.Column('total_bookings', sa.Integer(), nullable=False),
        sa.Column('total_revenue', sa.Integer(), nullable=False),
        sa.Column('last_booked_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('base_price >= 0', name='ck_inventory_item_base_price_non_negative'),
        sa.CheckConstraint('security_deposit >= 0', name='ck_inventory_item_deposit_non_negative'),
        sa.CheckConstraint('minimum_rental_days >= 1', name='ck_inventory_item_minimum_rental_positive'),
        sa.CheckConstraint('length(currency) = 3', name='ck_inventory_item_currency_length'),
        sa.PrimaryKeyConstraint('item_id')
    )
    op.create_index(op.f('ix_inventory_items_item_type'), 'inventory_items', ['item_type'], unique=False)
    op.create_index(op.f('ix_inventory_items_primary_location'), 'inventory_items', ['primary_location'], unique=False)

    # Create blackout_periods table
    op.create_table('blackout_periods',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('item_id', sa.String(length=64), nullable=False),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('end_at > start_at', name='ck_blackout_period_end_after_start'),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.item_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_blackout_periods_item_id'), 'blackout_periods', ['item_id'], unique=False)

    # Create customers table
    op.create_table('customers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('tier', sa.String(length=20), nullable=False),
        sa.Column('total_bookings', sa.Integer(), nullable=False),
        sa.Column('total_spent', sa.Integer(), nullable=False),
        sa.Column('average_booking_value', sa.Integer(), nullable=False),
        sa.Column('lifetime_value', sa.Integer(), nullable=False),
        sa.Column('loyalty_points', sa.Integer(), nullable=False),
        sa.Column('last_booking_at', sa.DateTime(), nullable=True),
        sa.Column('booking_reminders_enabled', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('total_spent >= 0', name='ck_customer_total_spent_non_negative'),
        sa.CheckConstraint('loyalty_points >= 0', name='ck_customer_loyalty_points_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_customers_email'), 'customers', ['email'], unique=True)

    # Create staff_members table
    op.create_table('staff_members',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('preferred_locations', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index(op.f('ix_staff_members_role'), 'staff_members', ['role'], unique=False)

    # Create bookings table (temporary holds live here too)
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('item_id', sa.String(length=64), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('item_type', sa.String(length=20), nullable=False),
        sa.Column('item_snapshot', sa.JSON(), nullable=False),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('guest_first_name', sa.String(length=128), nullable=True),
        sa.Column('guest_last_name', sa.String(length=128), nullable=True),
        sa.Column('guest_email', sa.String(length=255), nullable=True),
        sa.Column('guest_phone', sa.String(length=32), nullable=True),
        sa.Column('pickup_location', sa.String(length=64), nullable=True),
        sa.Column('service_tier', sa.String(length=20), nullable=False),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('base_price', sa.Integer(), nullable=False),
        sa.Column('rental_days', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Integer(), nullable=False),
        sa.Column('service_fee', sa.Integer(), nullable=False),
        sa.Column('insurance', sa.Integer(), nullable=False),
        sa.Column('taxes', sa.Integer(), nullable=False),
        sa.Column('security_deposit', sa.Integer(), nullable=False),
        sa.Column('total', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_status', sa.String(length=32), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=128), nullable=True),
        sa.Column('paid_amount', sa.Integer(), nullable=False),
        sa.Column('refunded_amount', sa.Integer(), nullable=False),
        sa.Column('concierge_id', sa.Uuid(), nullable=True),
        sa.Column('tracking_started_at', sa.DateTime(), nullable=True),
        sa.Column('no_show_charge', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('calendar_event_id', sa.String(length=128), nullable=True),
        sa.Column('reminders_sent', sa.JSON(), nullable=False),
        sa.Column('is_temporary', sa.Boolean(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('requester_ref', sa.String(length=128), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('end_at > start_at', name='ck_booking_end_after_start'),
        sa.CheckConstraint('total >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('refunded_amount >= 0', name='ck_booking_refunded_non_negative'),
        sa.CheckConstraint(
            'is_temporary OR ((customer_id IS NOT NULL) <> (guest_email IS NOT NULL))',
            name='ck_booking_single_owner'
        ),
        sa.CheckConstraint('NOT is_temporary OR expires_at IS NOT NULL', name='ck_booking_temporary_has_expiry'),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.item_id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['concierge_id'], ['staff_members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_code'), 'bookings', ['code'], unique=True)
    op.create_index(op.f('ix_bookings_item_id'), 'bookings', ['item_id'], unique=False)
    op.create_index(op.f('ix_bookings_start_at'), 'bookings', ['start_at'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_customer_id'), 'bookings', ['customer_id'], unique=False)
    op.create_index(op.f('ix_bookings_expires_at'), 'bookings', ['expires_at'], unique=False)
    op.create_index('ix_bookings_item_window', 'bookings', ['item_id', 'start_at', 'end_at'], unique=False)

    # Create booking_modifications table
    op.create_table('booking_modifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('field', sa.String(length=64), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('booking_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(actor) > 0', name='ck_booking_modification_actor_not_empty'),
        sa.CheckConstraint('length(field) > 0', name='ck_booking_modification_field_not_empty'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_modifications_booking_id'), 'booking_modifications', ['booking_id'], unique=False)
    op.create_index(op.f('ix_booking_modifications_created_at'), 'booking_modifications', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('booking_modifications')
    op.drop_table('bookings')
    op.drop_table('staff_members')
    op.drop_table('customers')
    op.drop_table('blackout_periods')
    op.drop_table('inventory_items')
