"""Initial procurement schema

Revision ID: 001_procurement
Revises:
Create Date: 2026-03-01

Tables:
- sites, vendors (master data)
- requests, request_status_history
- cost_comparisons, cost_comparison_quotes
- purchase_orders
- deliveries
- document_sequences, document_sequence_audit
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_procurement'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create all procurement tables."""

    # ==================== sites ====================
    op.create_table(
        'sites',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(20), nullable=True, unique=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_sites_name', 'sites', ['name'])
    op.create_index('ix_sites_is_active', 'sites', ['is_active'])

    # ==================== vendors ====================
    op.create_table(
        'vendors',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_name', sa.String(200), nullable=False),
        sa.Column('contact_person', sa.String(100), nullable=True),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('gst_number', sa.String(15), nullable=True, comment='GSTIN'),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_vendors_company_name', 'vendors', ['company_name'])
    op.create_index('ix_vendors_is_active', 'vendors', ['is_active'])

    # ==================== requests ====================
    op.create_table(
        'requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('request_number', sa.String(30), nullable=False),
        sa.Column('item_order', sa.Integer(), nullable=False),
        sa.Column('split_sequence', sa.Integer(), nullable=False),
        sa.Column('parent_request_id', sa.Uuid(),
                  sa.ForeignKey('requests.id', ondelete='SET NULL'), nullable=True),
        sa.Column('item_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 6), nullable=False),
        sa.Column('delivered_quantity', sa.Numeric(18, 6), nullable=False),
        sa.Column('unit', sa.String(20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_urgent', sa.Boolean(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('site_id', sa.Uuid(),
                  sa.ForeignKey('sites.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('creator_id', sa.Uuid(), nullable=False),
        sa.Column('required_by', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', sa.Uuid(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by', sa.Uuid(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('delivery_marked_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('request_number', 'item_order', 'split_sequence',
                            name='uq_request_number_item_split'),
        sa.CheckConstraint('quantity > 0', name='ck_request_quantity_positive'),
        sa.CheckConstraint('delivered_quantity >= 0 AND delivered_quantity <= quantity',
                           name='ck_request_delivered_within_quantity'),
    )
    op.create_index('ix_requests_request_number', 'requests', ['request_number'])
    op.create_index('ix_requests_status', 'requests', ['status'])
    op.create_index('ix_requests_creator_id', 'requests', ['creator_id'])
    op.create_index('ix_requests_site_status', 'requests', ['site_id', 'status'])

    op.create_table(
        'request_status_history',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('request_id', sa.Uuid(),
                  sa.ForeignKey('requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String(30), nullable=True),
        sa.Column('to_status', sa.String(30), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_request_status_history_request_id', 'request_status_history', ['request_id'])

    # ==================== cost comparisons ====================
    op.create_table(
        'cost_comparisons',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('request_id', sa.Uuid(),
                  sa.ForeignKey('requests.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('is_direct_delivery', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('selected_vendor_id', sa.Uuid(),
                  sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('manager_notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by', sa.Uuid(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_cost_comparisons_status', 'cost_comparisons', ['status'])

    op.create_table(
        'cost_comparison_quotes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('cost_comparison_id', sa.Uuid(),
                  sa.ForeignKey('cost_comparisons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Uuid(),
                  sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 4), nullable=False),
        sa.Column('quoted_quantity', sa.Numeric(18, 6), nullable=True),
        sa.Column('unit', sa.String(20), nullable=True),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('gst_percent', sa.Numeric(5, 2), nullable=True),
        sa.UniqueConstraint('cost_comparison_id', 'vendor_id', name='uq_cc_quote_vendor'),
    )
    op.create_index('ix_cost_comparison_quotes_cost_comparison_id',
                    'cost_comparison_quotes', ['cost_comparison_id'])

    # ==================== purchase orders ====================
    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('po_number', sa.String(30), nullable=False, unique=True),
        sa.Column('request_id', sa.Uuid(),
                  sa.ForeignKey('requests.id', ondelete='SET NULL'), nullable=True),
        sa.Column('item_description', sa.Text(), nullable=False),
        sa.Column('hsn_sac_code', sa.String(20), nullable=True),
        sa.Column('quantity', sa.Numeric(18, 6), nullable=False),
        sa.Column('unit', sa.String(20), nullable=False),
        sa.Column('vendor_id', sa.Uuid(),
                  sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('delivery_site_id', sa.Uuid(),
                  sa.ForeignKey('sites.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('unit_rate', sa.Numeric(14, 4), nullable=False),
        sa.Column('gst_tax_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('valid_till', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('is_direct', sa.Boolean(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.Column('actual_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Uuid(), nullable=True),
    )
    op.create_index('ix_purchase_orders_po_number', 'purchase_orders', ['po_number'])
    op.create_index('ix_purchase_orders_request_id', 'purchase_orders', ['request_id'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_is_direct', 'purchase_orders', ['is_direct'])
    op.create_index('ix_purchase_orders_vendor_status', 'purchase_orders', ['vendor_id', 'status'])

    # ==================== deliveries ====================
    op.create_table(
        'deliveries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('delivery_number', sa.String(30), nullable=False, unique=True),
        sa.Column('request_id', sa.Uuid(),
                  sa.ForeignKey('requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('purchase_order_id', sa.Uuid(),
                  sa.ForeignKey('purchase_orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('quantity', sa.Numeric(18, 6), nullable=False),
        sa.Column('delivery_type', sa.String(20), nullable=False),
        sa.Column('delivery_person', sa.String(100), nullable=True),
        sa.Column('delivery_contact', sa.String(20), nullable=True),
        sa.Column('vehicle_number', sa.String(20), nullable=True),
        sa.Column('transport_name', sa.String(100), nullable=True),
        sa.Column('transport_id', sa.String(50), nullable=True),
        sa.Column('receiver_name', sa.String(100), nullable=True),
        sa.Column('purchaser_name', sa.String(100), nullable=True),
        sa.Column('loading_photo', sa.JSON(), nullable=True),
        sa.Column('invoice_photo', sa.JSON(), nullable=True),
        sa.Column('receipt_photo', sa.JSON(), nullable=True),
        sa.Column('payment_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='ck_delivery_quantity_positive'),
    )
    op.create_index('ix_deliveries_delivery_number', 'deliveries', ['delivery_number'])
    op.create_index('ix_deliveries_request_id', 'deliveries', ['request_id'])

    # ==================== document sequences ====================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('scope', sa.String(10), nullable=False),
        sa.Column('document_name', sa.String(100), nullable=False),
        sa.Column('period', sa.String(10), nullable=False),
        sa.Column('current_number', sa.Integer(), nullable=False),
        sa.Column('padding_length', sa.Integer(), nullable=False),
        sa.Column('separator', sa.String(5), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('scope', 'period', name='uq_document_sequence_scope_period'),
    )
    op.create_index('ix_document_sequences_scope', 'document_sequences', ['scope'])

    op.create_table(
        'document_sequence_audit',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('scope', sa.String(10), nullable=False),
        sa.Column('period', sa.String(10), nullable=False),
        sa.Column('operation', sa.String(20), nullable=False),
        sa.Column('old_number', sa.Integer(), nullable=True),
        sa.Column('new_number', sa.Integer(), nullable=True),
        sa.Column('document_number', sa.String(50), nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_document_sequence_audit_scope', 'document_sequence_audit', ['scope'])


def downgrade() -> None:
    """Drop all procurement tables."""
    op.drop_table('document_sequence_audit')
    op.drop_table('document_sequences')
    op.drop_table('deliveries')
    op.drop_table('purchase_orders')
    op.drop_table('cost_comparison_quotes')
    op.drop_table('cost_comparisons')
    op.drop_table('request_status_history')
    op.drop_table('requests')
    op.drop_table('vendors')
    op.drop_table('sites')
