"""Recipe ingredient deduction against inventory.

One evaluation routine serves both entry points:

- check_recipes: dry run over an in-memory copy of stock, shared by all the
  requested recipes so the second recipe sees what the first one used up.
  Shortages are summed into one shopping list.
- cook_recipe: same evaluation, then each deduction is written on its own.
  Inventory rows are versioned; when a concurrent request changed a row
  first, that ingredient is re-read and recomputed against fresh stock.

log_meal takes eaten amounts from named items through the same per-item
write (deduct_item) without any matching.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.errors import StorageError
from ..core.matching import find_ingredient_match
from ..core.quantity import parse_quantity, round_display
from ..models import InventoryItem, InventoryTransaction, SavedRecipe
from ..settings import settings
from .reconcile import load_active_items

logger = logging.getLogger("fridgemind.deduction")


@dataclass
class Ingredient:
    name: str
    quantity: Any = None
    unit: Optional[str] = None
    optional: bool = False

    @classmethod
    def from_json(cls, raw: dict) -> "Ingredient":
        return cls(
            name=str(raw.get("name") or "").strip(),
            quantity=raw.get("quantity"),
            unit=raw.get("unit") or None,
            optional=bool(raw.get("optional", False)),
        )


@dataclass
class StockEntry:
    """Working copy of one inventory row for a deduction pass."""
    id: str
    name: str
    location: str
    quantity: float
    unit: Optional[str] = None
    created_at: Optional[datetime] = None
    consumed_at: Optional[datetime] = None


class StockPool:
    """Quantities that a single pass draws down cumulatively."""

    def __init__(self, items):
        self.entries = [
            StockEntry(
                id=i.id,
                name=i.name,
                location=i.location,
                quantity=float(i.quantity or 0),
                unit=i.unit,
                created_at=i.created_at,
            )
            for i in items
            if getattr(i, "consumed_at", None) is None
        ]

    def match(self, ingredient_name: str) -> Optional[StockEntry]:
        return find_ingredient_match(ingredient_name, self.entries)


@dataclass
class IngredientStatus:
    name: str
    required: float
    available: float
    unit: Optional[str]
    status: str  # available | partial | missing
    shortage: float
    deducted: float = 0.0
    item_id: Optional[str] = None
    item_name: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "matched_item": self.item_name,
            "required_qty": round_display(self.required),
            "available_qty": round_display(self.available),
            "unit": self.unit,
            "status": self.status,
            "shortage": round_display(self.shortage),
        }


def servings_ratio(target_servings: float, base_servings: Optional[float]) -> float:
    base = base_servings or settings.default_recipe_servings
    return float(target_servings) / float(base)


def required_quantity(ingredient: Ingredient, ratio: float) -> float:
    parsed = parse_quantity(ingredient.quantity)
    return (parsed if parsed is not None else 1.0) * ratio


def evaluate_ingredients(ingredients: list[Ingredient], ratio: float, pool: StockPool) -> list[IngredientStatus]:
    """Match and draw down each required ingredient. Optional ones are skipped."""
    results: list[IngredientStatus] = []

    for ingredient in ingredients:
        if ingredient.optional or not ingredient.name:
            continue

        required = required_quantity(ingredient, ratio)
        entry = pool.match(ingredient.name)
        available = entry.quantity if entry else 0.0

        if entry is not None and available >= required:
            entry.quantity = available - required
            results.append(IngredientStatus(
                ingredient.name, required, available, ingredient.unit, "available", 0.0,
                deducted=required, item_id=entry.id, item_name=entry.name,
            ))
        elif entry is not None and available > 0:
            entry.quantity = 0.0
            results.append(IngredientStatus(
                ingredient.name, required, available, ingredient.unit, "partial", required - available,
                deducted=available, item_id=entry.id, item_name=entry.name,
            ))
        else:
            results.append(IngredientStatus(
                ingredient.name, required, available, ingredient.unit, "missing", required,
                item_id=entry.id if entry else None, item_name=entry.name if entry else None,
            ))

    return results


def recipe_ingredients(recipe: SavedRecipe) -> list[Ingredient]:
    return [Ingredient.from_json(raw) for raw in (recipe.ingredients or []) if isinstance(raw, dict)]


# --- Dry run ---

def check_recipes(db: Session, workspace_id: str, planned: list[tuple[str, float]]) -> dict:
    """Availability for a set of (recipe_id, servings) against current stock."""
    recipe_ids = [rid for rid, _ in planned]
    try:
        recipes = {
            r.id: r for r in db.scalars(
                select(SavedRecipe).where(
                    SavedRecipe.workspace_id == workspace_id,
                    SavedRecipe.id.in_(recipe_ids),
                )
            ).all()
        }
    except SQLAlchemyError as e:
        logger.error(f"Error fetching recipes for workspace {workspace_id}: {e}")
        raise StorageError("Failed to fetch recipes", detail=str(e)) from e

    pool = StockPool(load_active_items(db, workspace_id))

    recipe_results = []
    unknown: list[str] = []
    shortages: dict[str, dict] = {}

    for recipe_id, servings in planned:
        recipe = recipes.get(recipe_id)
        if recipe is None:
            logger.warning(f"Recipe {recipe_id} not found in workspace {workspace_id}, skipping")
            unknown.append(recipe_id)
            continue

        statuses = evaluate_ingredients(recipe_ingredients(recipe), servings_ratio(servings, recipe.servings), pool)

        for s in statuses:
            if s.shortage <= 0:
                continue
            key = s.name.lower()
            if key in shortages:
                shortages[key]["quantity"] += s.shortage
            else:
                shortages[key] = {"name": s.name, "quantity": s.shortage, "unit": s.unit}

        recipe_results.append({
            "recipe_id": recipe.id,
            "recipe_name": recipe.name,
            "ingredients": [s.as_dict() for s in statuses],
        })

    total_shortages = [
        {**s, "quantity": round_display(s["quantity"])} for s in shortages.values()
    ]
    return {
        "recipes": recipe_results,
        "total_shortages": total_shortages,
        "has_shortages": len(total_shortages) > 0,
        "unknown_recipe_ids": unknown,
    }


# --- Commit ---

def _downgrade(status: IngredientStatus, planned: float, planned_shortage: float, taken: float) -> None:
    """Stock turned out lower than the snapshot said; report what was really taken."""
    status.shortage = planned_shortage + (planned - taken)
    status.available = taken
    status.deducted = taken
    status.status = "partial" if taken > 0 else "missing"


def deduct_item(db: Session, workspace_id: str, item_id: str, amount: float, *, source: str,
                ref_type: Optional[str] = None, ref_id: Optional[str] = None, note: Optional[str] = None,
                max_attempts: Optional[int] = None) -> float:
    """Take up to `amount` from one inventory item and log it. Returns what was committed.

    An item that runs out is deleted. A version conflict re-reads the row and
    recomputes against fresh stock; after `max_attempts` lost races the
    StaleDataError propagates, as does any other SQLAlchemyError.
    """
    max_attempts = max_attempts or settings.deduction_max_retries

    for attempt in range(1, max_attempts + 1):
        item = db.get(InventoryItem, item_id, populate_existing=attempt > 1)
        if item is None or item.consumed_at is not None or item.workspace_id != workspace_id:
            return 0.0

        current = float(item.quantity or 0)
        taken = min(amount, current)
        if taken <= 0:
            return 0.0

        remaining = current - taken
        name, unit = item.name, item.unit
        try:
            if remaining <= 0:
                db.delete(item)
            else:
                item.quantity = remaining
            db.flush()
            db.add(InventoryTransaction(
                workspace_id=workspace_id,
                inventory_item_id=item_id if remaining > 0 else None,
                item_name=name,
                action="delete" if remaining <= 0 else "deduct",
                source=source,
                ref_type=ref_type,
                ref_id=ref_id,
                delta_qty=-taken,
                unit=unit,
                note=note,
            ))
            db.commit()
            return taken
        except StaleDataError:
            db.rollback()
            logger.warning(
                f"Concurrent change on inventory item {item_id} while deducting "
                f"(attempt {attempt}/{max_attempts})"
            )

    raise StaleDataError(f"Inventory item {item_id} kept changing; gave up after {max_attempts} attempts")


def cook_recipe(db: Session, workspace_id: str, recipe: SavedRecipe, servings_cooked: float) -> dict:
    """Deduct a cooked recipe's ingredients and bump its cooked counter.

    The report reflects what was committed: an ingredient whose write failed
    shows nothing deducted and is listed under `errors`.
    """
    pool = StockPool(load_active_items(db, workspace_id))
    statuses = evaluate_ingredients(recipe_ingredients(recipe), servings_ratio(servings_cooked, recipe.servings), pool)

    errors: list[dict] = []
    failed: set[int] = set()
    for index, status in enumerate(statuses):
        if status.deducted <= 0:
            continue
        planned, planned_shortage = status.deducted, status.shortage
        try:
            taken = deduct_item(
                db, workspace_id, status.item_id, planned,
                source="cook", ref_type="recipe", ref_id=recipe.id,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to deduct '{status.name}' for recipe {recipe.id}: {e}")
            errors.append({"item": status.name, "error": "Failed to update inventory"})
            failed.add(index)
            taken = 0.0
        if taken < planned:
            _downgrade(status, planned, planned_shortage, taken)

    deducted = [
        f"{s.name} ({round_display(s.deducted)} from {s.item_name})"
        for s in statuses if s.deducted > 0
    ]
    not_found = [s.name for i, s in enumerate(statuses) if s.status == "missing" and i not in failed]

    try:
        db.execute(
            update(SavedRecipe)
            .where(SavedRecipe.id == recipe.id, SavedRecipe.workspace_id == workspace_id)
            .values(
                times_cooked=SavedRecipe.times_cooked + 1,
                last_cooked_at=datetime.now(timezone.utc),
            )
        )
        db.commit()
        times_cooked = db.scalar(select(SavedRecipe.times_cooked).where(SavedRecipe.id == recipe.id))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update cooked counter for recipe {recipe.id}: {e}")
        raise StorageError("Failed to mark recipe as cooked", detail=str(e)) from e

    logger.info(
        f"Recipe {recipe.id} cooked in workspace {workspace_id}: "
        f"{len(deducted)} deducted, {len(not_found)} not found, {len(errors)} errors"
    )
    return {
        "success": True,
        "message": "Recipe marked as cooked",
        "times_cooked": times_cooked,
        "inventory_updated": {"deducted": deducted, "not_found": not_found},
        "ingredients": [s.as_dict() for s in statuses],
        "errors": errors,
    }


# --- Eating from stock ---

def log_meal(db: Session, workspace_id: str, portions: list[tuple[str, float]], note: Optional[str] = None) -> dict:
    """Deduct amounts eaten straight from specific items, e.g. a home meal.

    Unknown or already consumed items are reported, not raised; an item is
    deleted once nothing is left of it.
    """
    meal_id = str(uuid.uuid4())
    deducted: list[dict] = []
    not_found: list[str] = []
    errors: list[dict] = []

    for item_id, amount in portions:
        try:
            taken = deduct_item(
                db, workspace_id, item_id, amount,
                source="meal", ref_type="meal", ref_id=meal_id, note=note,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to deduct item {item_id} for meal {meal_id}: {e}")
            errors.append({"item": item_id, "error": "Failed to update inventory"})
            continue
        if taken > 0:
            deducted.append({"item_id": item_id, "quantity": round_display(taken)})
        else:
            not_found.append(item_id)

    logger.info(
        f"Meal {meal_id} logged in workspace {workspace_id}: "
        f"{len(deducted)} deducted, {len(not_found)} not found, {len(errors)} errors"
    )
    return {
        "success": True,
        "meal_id": meal_id,
        "items_deducted": len(deducted),
        "deducted": deducted,
        "not_found": not_found,
        "errors": errors,
    }
