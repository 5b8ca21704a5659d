"""FastAPI dependencies.

Every inventory / recipe route works inside one workspace (the owner of
the data). Resolution order: X-Workspace-Id header, configured default
slug, oldest workspace.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_db
from .models import Workspace
from .settings import settings


def get_workspace(
    db: Session = Depends(get_db),
    x_workspace_id: Optional[str] = Header(None, alias="X-Workspace-Id"),
) -> Workspace:
    """Resolve the workspace for this request.

    A header that names no workspace is a 404 rather than a silent
    fallback to the default one.
    """
    workspace: Optional[Workspace] = None

    if x_workspace_id:
        try:
            workspace = db.get(Workspace, str(uuid.UUID(x_workspace_id)))
        except ValueError:
            workspace = db.scalar(select(Workspace).where(Workspace.slug == x_workspace_id))

        if workspace:
            return workspace
        raise HTTPException(status_code=404, detail=f"Workspace '{x_workspace_id}' not found")

    if settings.default_workspace_slug:
        workspace = db.scalar(select(Workspace).where(Workspace.slug == settings.default_workspace_slug))
        if workspace:
            return workspace

    workspace = db.scalar(select(Workspace).order_by(Workspace.created_at).limit(1))
    if workspace:
        return workspace

    raise HTTPException(status_code=404, detail="No workspace found. Create one with POST /api/workspaces/.")
