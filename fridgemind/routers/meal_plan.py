from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import models, schemas
from ..db import get_db
from ..deps import get_workspace
from ..services.deduction import check_recipes

router = APIRouter()


@router.post("/check-inventory", response_model=schemas.CheckInventoryResponse)
def check_inventory(
    req: schemas.CheckInventoryRequest,
    workspace: models.Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Would the pantry cover these planned recipes? Nothing is deducted.

    Recipes draw from one shared stock in request order, so two recipes
    needing the same eggs are not both reported as covered.
    """
    if not req.recipes:
        raise HTTPException(status_code=400, detail="No recipes provided")
    return check_recipes(db, workspace.id, [(r.recipe_id, r.servings) for r in req.recipes])
