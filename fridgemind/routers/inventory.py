import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .. import models, schemas
from ..core.errors import StorageError
from ..db import get_db
from ..deps import get_workspace
from ..infra.rate_limit import limiter
from ..services.inference import detect_items
from ..services.reconcile import Candidate, reconcile_batch
from ..settings import settings

logger = logging.getLogger("fridgemind.inventory")

router = APIRouter()


@router.get("/", response_model=list[schemas.InventoryItemOut])
def list_inventory(
    location: Optional[schemas.Location] = None,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Active items (not consumed), soonest expiry first."""
    query = select(models.InventoryItem).where(
        models.InventoryItem.workspace_id == workspace.id,
        models.InventoryItem.consumed_at.is_(None),
    )
    if location:
        query = query.where(models.InventoryItem.location == location)
    query = query.order_by(
        models.InventoryItem.expiry_date.asc().nulls_last(),
        models.InventoryItem.created_at,
    )
    try:
        return db.scalars(query).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch inventory for workspace {workspace.id}: {e}")
        raise StorageError("Failed to fetch inventory", detail=str(e)) from e


@router.post("/", response_model=schemas.MergeOutcomeOut)
def save_inventory(
    req: schemas.ReconcileRequest,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Merge a batch of scanned / entered items into inventory."""
    if not req.items:
        raise HTTPException(status_code=400, detail="No items provided")

    candidates = []
    for item in req.items:
        location = item.location or req.location
        if location is None:
            raise HTTPException(status_code=400, detail=f"Invalid location for item '{item.name}'")
        candidates.append(Candidate(
            name=item.name.strip(),
            location=location,
            quantity=item.quantity,
            storage_category=item.storage_category,
            nutritional_type=item.nutritional_type,
            unit=item.unit,
            purchase_date=item.purchase_date,
            expiry_date=item.expiry_date,
            freshness=item.freshness,
            confidence=item.confidence,
        ))

    outcome = reconcile_batch(db, workspace.id, candidates, req.policy, req.location, source="scan")
    return outcome.as_response()


@router.post("/leftovers", response_model=schemas.InventoryItemOut, status_code=201)
def save_leftover(
    req: schemas.LeftoverCreate,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Store a prepared dish. Leftovers are always a new item, never merged."""
    today = date.today()
    item = models.InventoryItem(
        workspace_id=workspace.id,
        name=req.name.strip(),
        storage_category="prepared",
        nutritional_type=req.nutritional_type,
        location=req.location,
        quantity=req.quantity,
        unit=req.unit,
        purchase_date=today,
        expiry_date=req.expiry_date or today + timedelta(days=settings.leftover_shelf_life_days),
        freshness="fresh",
        confidence=1.0,
    )
    try:
        db.add(item)
        db.flush()
        db.add(models.InventoryTransaction(
            workspace_id=workspace.id,
            inventory_item_id=item.id,
            item_name=item.name,
            action="insert",
            source="leftover",
            ref_type="manual",
            delta_qty=item.quantity,
            unit=item.unit,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save leftover '{req.name}' for workspace {workspace.id}: {e}")
        raise StorageError("Failed to save leftover", detail=str(e)) from e
    db.refresh(item)
    logger.info(f"Saved leftover {item.id} ({item.name}) in {item.location}")
    return item


def _get_item(db: Session, workspace_id: str, item_id: str) -> models.InventoryItem:
    item = db.scalar(select(models.InventoryItem).where(
        models.InventoryItem.id == item_id,
        models.InventoryItem.workspace_id == workspace_id,
        models.InventoryItem.consumed_at.is_(None),
    ))
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


@router.patch("/{item_id}", response_model=schemas.InventoryItemOut)
def update_inventory_item(
    item_id: str,
    item_in: schemas.InventoryItemPatch,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Manual edit of one item."""
    item = _get_item(db, workspace.id, item_id)
    old_qty = float(item.quantity or 0)

    update_data = item_in.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(item, field, value)

    if "quantity" in update_data:
        delta = float(item.quantity or 0) - old_qty
        if abs(delta) > 0.0001:
            db.add(models.InventoryTransaction(
                workspace_id=workspace.id,
                inventory_item_id=item.id,
                item_name=item.name,
                action="update",
                source="manual",
                ref_type="manual",
                delta_qty=delta,
                unit=item.unit,
                note="Manual update",
            ))

    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Item was changed by another request, reload and retry")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update inventory item {item_id}: {e}")
        raise StorageError("Failed to update item", detail=str(e)) from e
    db.refresh(item)
    return item


@router.delete("/{item_id}", response_model=schemas.InventoryRemoveOut)
def remove_inventory_item(
    item_id: str,
    body: Optional[schemas.InventoryRemoveRequest] = None,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Remove an item. Eaten / spoiled items are kept as history, mistakes are deleted."""
    reason = body.reason if body else None
    item = _get_item(db, workspace.id, item_id)

    db.add(models.InventoryTransaction(
        workspace_id=workspace.id,
        inventory_item_id=item.id if reason in ("eaten", "bad") else None,
        item_name=item.name,
        action="consume" if reason in ("eaten", "bad") else "delete",
        source="manual",
        ref_type="manual",
        delta_qty=-float(item.quantity or 0),
        unit=item.unit,
        note=reason,
    ))

    if reason == "eaten":
        item.consumed_at = datetime.now(timezone.utc)
        item.waste_reason = None
    elif reason == "bad":
        item.consumed_at = datetime.now(timezone.utc)
        item.waste_reason = "spoiled"
    else:
        db.delete(item)

    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Item was changed by another request, reload and retry")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to remove inventory item {item_id}: {e}")
        raise StorageError("Failed to delete item", detail=str(e)) from e

    logger.info(f"Removed inventory item {item_id} (reason={reason})")
    return {"success": True, "message": "Item removed", "reason": reason}


@router.post("/scan", response_model=schemas.ScanResponse)
@limiter.limit("10/minute")
async def scan_images(
    request: Request,  # Required for rate limiter
    req: schemas.ScanRequest,
    workspace: models.Workspace = Depends(get_workspace),
):
    """Detect items in photos. The result is a proposal; saving goes through POST /."""
    result = await detect_items(req.images, req.location)
    return {"success": True, "location": req.location, **result}
