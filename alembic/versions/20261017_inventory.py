"""Central store inventory

Revision ID: 002_inventory
Revises: 001_procurement
Create Date: 2026-10-17

Tables:
- inventory_items
- stock_movements
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002_inventory'
down_revision: Union[str, None] = '001_procurement'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create inventory tables."""

    # ==================== inventory items ====================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('item_name', sa.String(200), nullable=False),
        sa.Column('name_key', sa.String(200), nullable=False,
                  comment='Lower-cased item name used for matching'),
        sa.Column('unit', sa.String(20), nullable=False),
        sa.Column('central_stock', sa.Numeric(18, 6), nullable=False),
        sa.Column('vendor_ids', sa.JSON(), nullable=False),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('name_key', name='uq_inventory_item_name'),
        sa.CheckConstraint('central_stock >= 0', name='ck_inventory_stock_non_negative'),
    )
    op.create_index('ix_inventory_items_name_key', 'inventory_items', ['name_key'])
    op.create_index('ix_inventory_items_is_active', 'inventory_items', ['is_active'])

    # ==================== stock movements ====================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('inventory_item_id', sa.Uuid(),
                  sa.ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('movement_type', sa.String(30), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 6), nullable=False),
        sa.Column('balance_before', sa.Numeric(18, 6), nullable=False),
        sa.Column('balance_after', sa.Numeric(18, 6), nullable=False),
        sa.Column('request_id', sa.Uuid(),
                  sa.ForeignKey('requests.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reference_number', sa.String(50), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_stock_movements_inventory_item_id', 'stock_movements', ['inventory_item_id'])
    op.create_index('ix_stock_movements_request_id', 'stock_movements', ['request_id'])


def downgrade() -> None:
    """Drop inventory tables."""
    op.drop_table('stock_movements')
    op.drop_table('inventory_items')
