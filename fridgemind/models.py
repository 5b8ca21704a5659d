"""SQLAlchemy ORM models for FridgeMind.

Tables:
- workspaces: Owner scope. Every inventory row and recipe belongs to one workspace.
- inventory_items: Stock held at one storage location (soft-deleted via consumed_at)
- saved_recipes: Recipes with a JSON ingredient list, cooked counters
- inventory_transactions: Audit log of every stock mutation, used for receipt undo
"""

from __future__ import annotations

import uuid
from datetime import datetime, date, timezone
from typing import Optional

from sqlalchemy import (
    String,
    Date,
    DateTime,
    Text,
    Integer,
    Numeric,
    ForeignKey,
    Index,
    JSON,
    desc,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB

from .db import Base


STORAGE_CATEGORIES = ("produce", "dairy", "protein", "pantry", "beverage", "condiment", "frozen")
NUTRITIONAL_TYPES = ("vegetables", "protein", "carbs", "vitamins", "fats", "other")
LOCATIONS = ("fridge", "freezer", "pantry")
FRESHNESS = ("fresh", "use_soon", "expired")

JSONType = JSON().with_variant(JSONB(), "postgresql")


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Workspace(Base):
    """Owner of inventory and recipes (one per household)."""
    __tablename__ = "workspaces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    slug: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    items: Mapped[list["InventoryItem"]] = relationship(
        "InventoryItem", back_populates="workspace", cascade="all, delete-orphan"
    )
    recipes: Mapped[list["SavedRecipe"]] = relationship(
        "SavedRecipe", back_populates="workspace", cascade="all, delete-orphan"
    )


class InventoryItem(Base):
    """A quantity of one food item held at one storage location.

    (name, location) is the de-duplication key under normalization, not a
    uniqueness constraint. Rows with consumed_at set are logically deleted.
    `version` backs optimistic concurrency on quantity updates.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        Index("ix_inventory_items_workspace_location", "workspace_id", "location"),
        Index("ix_inventory_items_workspace_expiry", "workspace_id", "expiry_date"),
        Index(
            "ix_inventory_items_workspace_active",
            "workspace_id",
            postgresql_where=text("consumed_at IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    storage_category: Mapped[str] = mapped_column(String(20), nullable=False, default="pantry")
    nutritional_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    location: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=False, default=1.0
    )
    unit: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    purchase_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    freshness: Mapped[str] = mapped_column(String(20), nullable=False, default="fresh")
    confidence: Mapped[Optional[float]] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Soft delete (eaten / spoiled) for consumption and waste analytics
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    waste_reason: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    workspace: Mapped["Workspace"] = relationship("Workspace", back_populates="items")

    __mapper_args__ = {"version_id_col": version}


class SavedRecipe(Base):
    """Saved recipe. Ingredients are a JSON list of
    {name, quantity (number or text), unit, optional}."""
    __tablename__ = "saved_recipes"
    __table_args__ = (
        Index("ix_saved_recipes_workspace_id", "workspace_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    servings: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=2)
    ingredients: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    times_cooked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_cooked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    workspace: Mapped["Workspace"] = relationship("Workspace", back_populates="recipes")


class InventoryTransaction(Base):
    """Audit log for inventory changes; receipt undo replays it backwards."""
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("ix_inventory_transactions_workspace_item", "workspace_id", "inventory_item_id", desc("created_at")),
        Index("ix_inventory_transactions_ref", "workspace_id", "ref_type", "ref_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    # Survives hard deletes of the item it describes
    inventory_item_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("inventory_items.id", ondelete="SET NULL"), nullable=True
    )
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)

    action: Mapped[str] = mapped_column(String(20), nullable=False)  # insert | update | delete | deduct | consume
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # scan | receipt | manual | cook | meal | leftover
    ref_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # receipt | recipe
    ref_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    delta_qty: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    undone_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
