import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import models, schemas
from ..db import get_db
from ..deps import get_workspace
from ..services.receipt_import import (
    ReceiptLine,
    ReceiptNotFound,
    UndoWindowExpired,
    import_receipt,
    undo_receipt_import,
)

logger = logging.getLogger("fridgemind.receipts")

router = APIRouter()


@router.post("/to-inventory", response_model=schemas.ReceiptImportOut)
async def receipt_to_inventory(
    req: schemas.ReceiptImportRequest,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Add purchased items; the model (or a shelf-life table) picks location and expiry."""
    if not req.items:
        raise HTTPException(status_code=400, detail="No items provided")
    if not req.receipt_date:
        raise HTTPException(status_code=400, detail="Receipt date is required")

    lines = [ReceiptLine(i.name, i.quantity, i.unit, i.category) for i in req.items]
    return await import_receipt(db, workspace.id, lines, req.receipt_date, req.receipt_id)


@router.post("/undo-inventory", response_model=schemas.ReceiptUndoOut)
def undo_receipt(
    req: schemas.ReceiptUndoRequest,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Reverse a receipt import made within the undo window (latest import if no id)."""
    try:
        return undo_receipt_import(db, workspace.id, req.receipt_id)
    except ReceiptNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UndoWindowExpired as e:
        raise HTTPException(status_code=400, detail=str(e))
