"""Checkout schema - variants, reservations, orders, payments, webhooks, audit

Revision ID: 001_checkout_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_checkout_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('stock >= 0', name='ck_product_variants_stock_non_negative'),
    )
    op.create_index('ix_product_variants_sku', 'product_variants', ['sku'], unique=True)

    op.create_table(
        'inventory_reservations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('variant_id', sa.String(length=36), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reserved_until', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.Column('released_at', sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column('outcome', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.CheckConstraint('quantity > 0', name='ck_inventory_reservations_quantity_positive'),
    )
    op.create_index('ix_inventory_reservations_order_id', 'inventory_reservations', ['order_id'])
    op.create_index('ix_inventory_reservations_variant_id', 'inventory_reservations', ['variant_id'])
    op.create_index('ix_inventory_reservations_reserved_until', 'inventory_reservations', ['reserved_until'])
    op.create_index('ix_inventory_reservations_outcome', 'inventory_reservations', ['outcome'])
    op.create_index(
        'ix_inventory_reservations_active',
        'inventory_reservations',
        ['variant_id', 'released_at', 'reserved_until'],
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_number', sa.String(length=50), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='pending'),
        sa.Column('total', sa.Numeric(12, 2), nullable=True),
        sa.Column('requires_reconciliation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reconciliation_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_requires_reconciliation', 'orders', ['requires_reconciliation'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('gateway', sa.String(length=30), nullable=False, server_default='paystack'),
        sa.Column('reference', sa.String(length=100), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='initialized'),
        sa.Column('authorization_url', sa.Text(), nullable=True),
        sa.Column('raw_response', sa.JSON(), nullable=True),
        sa.Column('requires_reconciliation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('settled_at', sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])
    op.create_index('ix_payments_reference', 'payments', ['reference'], unique=True)
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('gateway', sa.String(length=30), nullable=False, server_default='paystack'),
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='processing'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('claimed_at', sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_webhook_events_event_id', 'webhook_events', ['event_id'], unique=True)
    op.create_index('ix_webhook_events_reference', 'webhook_events', ['reference'])
    op.create_index('ix_webhook_events_status', 'webhook_events', ['status'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.String(length=36), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('entity', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=100), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('webhook_events')
    op.drop_table('payments')
    op.drop_table('orders')
    op.drop_table('inventory_reservations')
    op.drop_table('product_variants')
