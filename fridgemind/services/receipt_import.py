"""Receipt lines -> inventory, and undoing such an import.

Lines go through the reconciler with the `add` policy so a second bag of
apples tops up the apples already in the fridge. Every mutation is logged
as an InventoryTransaction tagged with the receipt id; undo replays those
rows backwards.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import StorageError
from ..models import InventoryItem, InventoryTransaction
from ..settings import settings
from .inference import estimate_storage
from .reconcile import Candidate, reconcile_batch

logger = logging.getLogger("fridgemind.receipts")

# receipt category -> (storage_category, nutritional_type)
CATEGORY_MAPPING = {
    "produce": ("produce", "vegetables"),
    "dairy": ("dairy", "dairy"),
    "protein": ("protein", "protein"),
    "pantry": ("pantry", "carbs"),
    "beverage": ("beverage", "other"),
    "frozen": ("frozen", "other"),
    "snacks": ("pantry", "carbs"),
    "bakery": ("pantry", "carbs"),
    "other": ("pantry", "other"),
}


class ReceiptNotFound(LookupError):
    pass


class UndoWindowExpired(ValueError):
    pass


@dataclass
class ReceiptLine:
    name: str
    quantity: float = 1.0
    unit: Optional[str] = None
    category: str = "other"


def aggregate_lines(lines: list[ReceiptLine]) -> list[ReceiptLine]:
    """Sum quantities of lines with the same name (case-insensitive), first spelling wins."""
    merged: dict[str, ReceiptLine] = {}
    for line in lines:
        key = line.name.strip().lower()
        if key in merged:
            merged[key].quantity += line.quantity
        else:
            merged[key] = ReceiptLine(line.name.strip(), line.quantity, line.unit, line.category)
    return list(merged.values())


async def build_candidates(lines: list[ReceiptLine], receipt_date: date) -> list[Candidate]:
    candidates = []
    for line in aggregate_lines(lines):
        storage_category, nutritional_type = CATEGORY_MAPPING.get(line.category, CATEGORY_MAPPING["other"])
        location, expiry_date = await estimate_storage(line.name, receipt_date)
        candidates.append(Candidate(
            name=line.name,
            location=location,
            quantity=line.quantity,
            storage_category=storage_category,
            nutritional_type=nutritional_type,
            unit=line.unit,
            purchase_date=receipt_date,
            expiry_date=expiry_date,
            freshness="fresh",
            confidence=1.0,
        ))
    return candidates


async def import_receipt(db: Session, workspace_id: str, lines: list[ReceiptLine],
                         receipt_date: date, receipt_id: Optional[str] = None) -> dict:
    receipt_id = receipt_id or str(uuid.uuid4())
    candidates = await build_candidates(lines, receipt_date)
    logger.info(f"Receipt {receipt_id}: {len(lines)} lines aggregated into {len(candidates)} items")

    outcome = reconcile_batch(
        db, workspace_id, candidates, policy="add",
        source="receipt", ref_type="receipt", ref_id=receipt_id,
    )
    return {
        "success": True,
        "receipt_id": receipt_id,
        "inserted": len(outcome.inserted_items),
        "updated": len(outcome.updated_items),
        "items": outcome.inserted_items + outcome.updated_items,
        "errors": outcome.errors,
    }


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _latest_receipt_id(db: Session, workspace_id: str) -> Optional[str]:
    return db.scalar(
        select(InventoryTransaction.ref_id)
        .where(
            InventoryTransaction.workspace_id == workspace_id,
            InventoryTransaction.ref_type == "receipt",
            InventoryTransaction.undone_at.is_(None),
        )
        .order_by(InventoryTransaction.created_at.desc())
        .limit(1)
    )


def undo_receipt_import(db: Session, workspace_id: str, receipt_id: Optional[str] = None,
                        now: Optional[datetime] = None) -> dict:
    """Reverse a receipt import: inserted items go, topped-up quantities come back down.

    Items consumed since the import are left alone. Without a receipt id the
    most recent import is undone.
    """
    now = now or datetime.now(timezone.utc)
    try:
        receipt_id = receipt_id or _latest_receipt_id(db, workspace_id)
        txns = [] if receipt_id is None else db.scalars(
            select(InventoryTransaction)
            .where(
                InventoryTransaction.workspace_id == workspace_id,
                InventoryTransaction.ref_type == "receipt",
                InventoryTransaction.ref_id == receipt_id,
                InventoryTransaction.undone_at.is_(None),
            )
            .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load receipt transactions for workspace {workspace_id}: {e}")
        raise StorageError("Failed to fetch items", detail=str(e)) from e

    if not txns:
        raise ReceiptNotFound("No items found from this receipt, or items have already been undone")

    cutoff = now - timedelta(hours=settings.receipt_undo_window_hours)
    if any(_as_utc(t.created_at) < cutoff for t in txns):
        raise UndoWindowExpired(
            f"Cannot undo: Items were added more than {settings.receipt_undo_window_hours} hours ago"
        )

    deleted: list[str] = []
    restored: list[str] = []
    try:
        for txn in txns:
            item = db.get(InventoryItem, txn.inventory_item_id) if txn.inventory_item_id else None
            if item is not None and item.consumed_at is None and item not in db.deleted:
                if txn.action == "insert":
                    db.delete(item)
                    deleted.append(item.name)
                elif txn.action == "update":
                    remaining = float(item.quantity or 0) - float(txn.delta_qty or 0)
                    if remaining > 0:
                        item.quantity = remaining
                        restored.append(item.name)
                    else:
                        db.delete(item)
                        deleted.append(item.name)
            txn.undone_at = now
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to undo receipt {receipt_id}: {e}")
        raise StorageError("Failed to undo inventory import", detail=str(e)) from e

    logger.info(f"Undid receipt {receipt_id}: {len(deleted)} deleted, {len(restored)} restored")
    return {
        "success": True,
        "receipt_id": receipt_id,
        "deleted": len(deleted),
        "restored": len(restored),
        "items": deleted + restored,
    }
