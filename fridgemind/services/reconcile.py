"""Merge a batch of detected / purchased items into a workspace's inventory.

Planning is pure (`plan_reconcile`): it decides, per incoming item, whether
to insert, update, delete or skip, against a snapshot of active items.
Applying (`apply_plan`) performs one storage mutation per action and commits
each independently, so a failing item is reported without undoing the rest.

Policies:
- replace: full re-scan of a location. Matched items take every incoming
  field, quantity 0 means "remove this", and active items at the synced
  location(s) that nothing matched are deleted.
- add: matched quantity is increased; nothing is deleted.
- skip: existing items win; only new items are inserted.
- legacy: default for callers that send no policy. Overwrites quantity,
  expiry and freshness of matched items; no deletions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import StorageError
from ..core.matching import creation_order_key, find_merge_match
from ..models import InventoryItem, InventoryTransaction

logger = logging.getLogger("fridgemind.reconcile")

Policy = Literal["replace", "add", "skip", "legacy"]
POLICIES = ("replace", "add", "skip", "legacy")


@dataclass
class Candidate:
    name: str
    location: str
    quantity: float = 1.0
    storage_category: str = "pantry"
    nutritional_type: Optional[str] = None
    unit: Optional[str] = None
    purchase_date: Optional[date] = None
    expiry_date: Optional[date] = None
    freshness: str = "fresh"
    confidence: Optional[float] = None

    def insert_fields(self) -> dict:
        return {
            "name": self.name,
            "storage_category": self.storage_category,
            "nutritional_type": self.nutritional_type,
            "location": self.location,
            "quantity": self.quantity,
            "unit": self.unit,
            "purchase_date": self.purchase_date,
            "expiry_date": self.expiry_date,
            "freshness": self.freshness,
            "confidence": self.confidence,
        }


@dataclass
class PendingItem:
    """Stand-in for an item inserted earlier in the same batch."""
    id: str
    name: str
    location: str
    created_at: Optional[datetime] = None
    consumed_at: Optional[datetime] = None


@dataclass
class ReconcileAction:
    kind: Literal["insert", "update", "delete", "skip"]
    name: str
    target: Optional[object] = None  # existing InventoryItem for update / delete
    fields: dict = field(default_factory=dict)
    delta: float = 0.0


@dataclass
class MergeOutcome:
    inserted_items: list[str] = field(default_factory=list)
    updated_items: list[str] = field(default_factory=list)
    deleted_items: list[str] = field(default_factory=list)
    skipped_items: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def message(self) -> str:
        parts = [
            f"Added {len(self.inserted_items)} new items",
            f"updated {len(self.updated_items)} existing items",
        ]
        if self.deleted_items:
            parts.append(f"removed {len(self.deleted_items)}")
        if self.skipped_items:
            parts.append(f"skipped {len(self.skipped_items)}")
        if self.errors:
            parts.append(f"{len(self.errors)} failed")
        return ", ".join(parts)

    def as_response(self) -> dict:
        return {
            "success": True,
            "inserted": len(self.inserted_items),
            "updated": len(self.updated_items),
            "deleted": len(self.deleted_items),
            "skipped": len(self.skipped_items),
            "inserted_items": self.inserted_items,
            "updated_items": self.updated_items,
            "deleted_items": self.deleted_items,
            "skipped_items": self.skipped_items,
            "errors": self.errors,
            "message": self.message,
        }


def _matched_fields(policy: str, candidate: Candidate, current_qty: float) -> tuple[dict, float]:
    """Fields to write on a matched item and the resulting quantity delta."""
    if policy == "replace":
        fields = candidate.insert_fields()
        if candidate.purchase_date is None:
            fields.pop("purchase_date")
        return fields, candidate.quantity - current_qty

    if policy == "add":
        new_qty = current_qty + candidate.quantity
    else:  # legacy
        new_qty = candidate.quantity

    fields = {"quantity": new_qty, "freshness": candidate.freshness}
    if candidate.expiry_date is not None:
        fields["expiry_date"] = candidate.expiry_date
    return fields, new_qty - current_qty


def plan_reconcile(
    existing: list,
    candidates: list[Candidate],
    policy: str = "legacy",
    location: Optional[str] = None,
) -> list[ReconcileAction]:
    """Decide what to do with each candidate against an active-items snapshot.

    Candidates that repeat an earlier one in the same batch (same normalized
    name and location) merge into it rather than producing a second insert.
    """
    if policy not in POLICIES:
        raise ValueError(f"Unknown merge policy: {policy}")

    pool: list = [i for i in existing if getattr(i, "consumed_at", None) is None]
    actions: list[ReconcileAction] = []
    planned: dict[str, ReconcileAction] = {}  # item id (existing or pending) -> its action
    touched_ids: set[str] = set()
    removed_ids: set[str] = set()

    for candidate in candidates:
        live = [i for i in pool if i.id not in removed_ids]
        match = find_merge_match(candidate.name, candidate.location, live)

        if match is None:
            if policy == "replace" and candidate.quantity == 0:
                # "Remove this" for something we never had
                actions.append(ReconcileAction("skip", candidate.name))
                continue
            placeholder = PendingItem(
                id=f"pending-{len(actions)}",
                name=candidate.name,
                location=candidate.location,
                created_at=datetime.max,
            )
            insert = ReconcileAction("insert", candidate.name, fields=candidate.insert_fields(), delta=candidate.quantity)
            actions.append(insert)
            planned[placeholder.id] = insert
            pool.append(placeholder)
            continue

        touched_ids.add(match.id)
        if policy == "skip":
            actions.append(ReconcileAction("skip", candidate.name, target=match))
            continue

        previous = planned.get(match.id)

        if policy == "replace" and candidate.quantity == 0:
            removed_ids.add(match.id)
            if previous is not None and previous.kind == "insert":
                previous.kind = "skip"
                continue
            stored_qty = float(match.quantity or 0)
            if previous is not None:
                previous.kind, previous.name, previous.fields, previous.delta = "delete", match.name, {}, -stored_qty
                continue
            actions.append(ReconcileAction("delete", match.name, target=match, delta=-stored_qty))
            continue

        if previous is None:
            fields, delta = _matched_fields(policy, candidate, float(match.quantity or 0))
            update = ReconcileAction("update", candidate.name, target=match, fields=fields, delta=delta)
            actions.append(update)
            planned[match.id] = update
        else:
            fields, delta = _matched_fields(policy, candidate, float(previous.fields["quantity"]))
            previous.fields.update(fields)
            previous.delta += delta

    if policy == "replace":
        synced = {location} if location else {c.location for c in candidates}
        orphans = [
            i for i in pool
            if not isinstance(i, PendingItem)
            and i.location in synced
            and i.id not in touched_ids
        ]
        for item in sorted(orphans, key=creation_order_key):
            actions.append(ReconcileAction("delete", item.name, target=item, delta=-float(item.quantity or 0)))

    return actions


def _record(db: Session, workspace_id: str, item_id: Optional[str], name: str, action: str,
            delta: float, unit: Optional[str], source: str, ref_type: Optional[str], ref_id: Optional[str]) -> None:
    db.add(InventoryTransaction(
        workspace_id=workspace_id,
        inventory_item_id=item_id,
        item_name=name,
        action=action,
        source=source,
        ref_type=ref_type,
        ref_id=ref_id,
        delta_qty=delta,
        unit=unit,
    ))


def _apply_action(db: Session, workspace_id: str, action: ReconcileAction, *,
                  source: str, ref_type: Optional[str], ref_id: Optional[str]) -> None:
    if action.kind == "insert":
        item = InventoryItem(workspace_id=workspace_id, **action.fields)
        db.add(item)
        db.flush()
        _record(db, workspace_id, item.id, item.name, "insert", action.delta, item.unit, source, ref_type, ref_id)

    elif action.kind == "update":
        item = action.target
        for key, value in action.fields.items():
            setattr(item, key, value)
        db.flush()
        _record(db, workspace_id, item.id, item.name, "update", action.delta, item.unit, source, ref_type, ref_id)

    elif action.kind == "delete":
        item = action.target
        name, unit = item.name, item.unit
        db.delete(item)
        db.flush()
        _record(db, workspace_id, None, name, "delete", action.delta, unit, source, ref_type, ref_id)


def apply_plan(
    db: Session,
    workspace_id: str,
    actions: list[ReconcileAction],
    *,
    source: str = "scan",
    ref_type: Optional[str] = None,
    ref_id: Optional[str] = None,
) -> MergeOutcome:
    """Execute planned actions one at a time. Partial success is expected."""
    outcome = MergeOutcome()
    buckets = {
        "insert": outcome.inserted_items,
        "update": outcome.updated_items,
        "delete": outcome.deleted_items,
    }

    for action in actions:
        if action.kind == "skip":
            outcome.skipped_items.append(action.name)
            continue

        try:
            _apply_action(db, workspace_id, action, source=source, ref_type=ref_type, ref_id=ref_id)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to {action.kind} inventory item '{action.name}': {e}")
            outcome.errors.append({"item": action.name, "error": f"Failed to {action.kind} item"})
            continue

        buckets[action.kind].append(action.name)

    logger.info(
        f"Reconciled workspace {workspace_id}: +{len(outcome.inserted_items)} "
        f"~{len(outcome.updated_items)} -{len(outcome.deleted_items)} "
        f"skip {len(outcome.skipped_items)} err {len(outcome.errors)}"
    )
    return outcome


def load_active_items(db: Session, workspace_id: str) -> list[InventoryItem]:
    try:
        return list(db.scalars(
            select(InventoryItem)
            .where(
                InventoryItem.workspace_id == workspace_id,
                InventoryItem.consumed_at.is_(None),
            )
            .order_by(InventoryItem.created_at, InventoryItem.id)
        ).all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to load inventory for workspace {workspace_id}: {e}")
        raise StorageError("Failed to check existing inventory", detail=str(e)) from e


def reconcile_batch(
    db: Session,
    workspace_id: str,
    candidates: list[Candidate],
    policy: Optional[str] = None,
    location: Optional[str] = None,
    *,
    source: str = "scan",
    ref_type: Optional[str] = None,
    ref_id: Optional[str] = None,
) -> MergeOutcome:
    existing = load_active_items(db, workspace_id)
    actions = plan_reconcile(existing, candidates, policy or "legacy", location)
    return apply_plan(db, workspace_id, actions, source=source, ref_type=ref_type, ref_id=ref_id)
