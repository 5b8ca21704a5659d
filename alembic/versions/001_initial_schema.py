"""Initial schema: workspaces, inventory_items, saved_recipes, inventory_transactions

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "workspaces",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(80), unique=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("workspace_id", sa.String(36), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("storage_category", sa.String(20), nullable=False),
        sa.Column("nutritional_type", sa.String(20), nullable=True),
        sa.Column("location", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False),
        sa.Column("unit", sa.String(40), nullable=True),
        sa.Column("purchase_date", sa.Date, nullable=True),
        sa.Column("expiry_date", sa.Date, nullable=True),
        sa.Column("freshness", sa.String(20), nullable=False),
        sa.Column("confidence", sa.Numeric(3, 2), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("waste_reason", sa.String(20), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_nonneg"),
        sa.CheckConstraint("location IN ('fridge', 'freezer', 'pantry')", name="ck_inventory_items_location"),
    )
    op.create_index("ix_inventory_items_workspace_location", "inventory_items", ["workspace_id", "location"])
    op.create_index("ix_inventory_items_workspace_expiry", "inventory_items", ["workspace_id", "expiry_date"])
    op.create_index(
        "ix_inventory_items_workspace_active",
        "inventory_items",
        ["workspace_id"],
        postgresql_where=sa.text("consumed_at IS NULL"),
    )

    op.create_table(
        "saved_recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("workspace_id", sa.String(36), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("servings", sa.Integer, nullable=True),
        sa.Column("ingredients", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("instructions", sa.Text, nullable=True),
        sa.Column("times_cooked", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_cooked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_saved_recipes_workspace_id", "saved_recipes", ["workspace_id"])

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("workspace_id", sa.String(36), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "inventory_item_id", sa.String(36),
            sa.ForeignKey("inventory_items.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("item_name", sa.String(200), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("ref_type", sa.String(50), nullable=True),
        sa.Column("ref_id", sa.String(64), nullable=True),
        sa.Column("delta_qty", sa.Numeric(10, 2), nullable=True),
        sa.Column("unit", sa.String(40), nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("undone_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_inventory_transactions_workspace_item",
        "inventory_transactions",
        ["workspace_id", "inventory_item_id", sa.text("created_at DESC")],
    )
    op.create_index("ix_inventory_transactions_ref", "inventory_transactions", ["workspace_id", "ref_type", "ref_id"])


def downgrade() -> None:
    op.drop_table("inventory_transactions")
    op.drop_table("saved_recipes")
    op.drop_table("inventory_items")
    op.drop_table("workspaces")
