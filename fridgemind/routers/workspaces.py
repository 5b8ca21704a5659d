import re
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Workspace
from ..schemas import WorkspaceCreate, WorkspaceOut

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


def generate_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "household"


@router.get("/", response_model=List[WorkspaceOut])
def list_workspaces(db: Session = Depends(get_db)):
    """List all workspaces, oldest first."""
    return db.scalars(select(Workspace).order_by(Workspace.created_at)).all()


@router.post("/", response_model=WorkspaceOut, status_code=201)
def create_workspace(data: WorkspaceCreate, db: Session = Depends(get_db)):
    """Create a workspace; the slug gets a numeric suffix when taken."""
    slug_base = generate_slug(data.name)
    slug = slug_base

    counter = 1
    while db.scalar(select(Workspace.id).where(Workspace.slug == slug)):
        slug = f"{slug_base}-{counter}"
        counter += 1

    workspace = Workspace(name=data.name, slug=slug)
    try:
        db.add(workspace)
        db.commit()
        db.refresh(workspace)
        return workspace
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Could not create workspace")
