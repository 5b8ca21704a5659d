from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import models, schemas
from ..db import get_db
from ..deps import get_workspace
from ..services.deduction import log_meal

router = APIRouter()


@router.post("/log-meal", response_model=schemas.LogMealOut)
def log_home_meal(
    req: schemas.LogMealRequest,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Record a meal eaten at home: each portion comes off the item it names."""
    if not req.items:
        raise HTTPException(status_code=400, detail="No items provided")
    return log_meal(db, workspace.id, [(p.id, p.quantity) for p in req.items], note=req.note)
