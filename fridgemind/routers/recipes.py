"""Saved recipes and cooking them.

Endpoints:
- GET /api/recipes/ - List recipes in workspace
- POST /api/recipes/ - Save a recipe
- GET /api/recipes/{id} - Get one recipe
- DELETE /api/recipes/{id} - Delete a recipe
- POST /api/recipes/{id}/cook - Deduct ingredients from inventory
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_workspace
from ..infra.idempotency import idempotency_precheck, idempotency_store_result, idempotency_clear_key
from ..models import SavedRecipe, Workspace
from ..schemas import CookRequest, CookResponse, RecipeCreate, RecipeOut
from ..services.deduction import cook_recipe
from ..settings import settings

router = APIRouter()
logger = logging.getLogger("fridgemind.recipes")


def _get_recipe(db: Session, workspace_id: str, recipe_id: str) -> SavedRecipe:
    recipe = db.scalar(select(SavedRecipe).where(
        SavedRecipe.id == recipe_id,
        SavedRecipe.workspace_id == workspace_id,
    ))
    if not recipe:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return recipe


@router.get("/", response_model=list[RecipeOut])
def list_recipes(
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    return db.scalars(
        select(SavedRecipe)
        .where(SavedRecipe.workspace_id == workspace.id)
        .order_by(SavedRecipe.created_at.desc())
    ).all()


@router.post("/", response_model=RecipeOut, status_code=201)
def create_recipe(
    payload: RecipeCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    recipe = SavedRecipe(
        workspace_id=workspace.id,
        name=payload.name.strip(),
        description=payload.description,
        servings=payload.servings,
        ingredients=[i.model_dump() for i in payload.ingredients],
        instructions=payload.instructions,
    )
    db.add(recipe)
    db.commit()
    db.refresh(recipe)
    return recipe


@router.get("/{recipe_id}", response_model=RecipeOut)
def get_recipe(
    recipe_id: str,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    return _get_recipe(db, workspace.id, recipe_id)


@router.delete("/{recipe_id}", status_code=204)
def delete_recipe(
    recipe_id: str,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    recipe = _get_recipe(db, workspace.id, recipe_id)
    db.delete(recipe)
    db.commit()
    return None


@router.post("/{recipe_id}/cook", response_model=CookResponse)
async def cook(
    recipe_id: str,
    request: Request,
    body: Optional[CookRequest] = None,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    """Mark a recipe as cooked and take its ingredients out of inventory.

    Send an Idempotency-Key header to make client retries safe: a repeat
    gets the first response back instead of deducting twice.
    """
    pre = await idempotency_precheck(request, workspace_id=str(workspace.id), route_key=f"cook:{recipe_id}")
    if isinstance(pre, JSONResponse):
        return pre

    try:
        recipe = _get_recipe(db, workspace.id, recipe_id)
        servings = (body.servings_cooked if body else None) or settings.default_cooked_servings
        result = cook_recipe(db, workspace.id, recipe, servings)
        resp = CookResponse.model_validate(result)
        await idempotency_store_result(pre, status=200, body=resp.model_dump(mode="json"))
        return resp
    except Exception:
        await idempotency_clear_key(pre)
        raise
