"""Model-backed detection and storage estimates.

Scanning needs a live model; storage estimation for receipt lines falls
back to a shelf-life table and then to the configured default.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from ..core.ai_client import ai_client
from ..core.errors import InferenceError, InferenceUnavailable
from ..core.matching import normalize_item_name
from ..settings import settings

logger = logging.getLogger("fridgemind.inference")

VISION_PROMPT = """You are a food inventory assistant. Identify every food item clearly visible
in the image(s) of a refrigerator, freezer or pantry.

For each item give:
- name: specific ("2% milk", "cheddar cheese")
- storage_category: produce, dairy, protein, pantry, beverage, condiment or frozen
- nutritional_type: protein, carbs, fibre or misc (fibre for fruit and vegetables)
- quantity: estimated count or amount, 1 if unsure
- unit: piece, pack, bottle, carton, lb, oz, gallon, bunch, bag, container, can or jar
- estimated_expiry_days: typical days until expiry for this kind of item
- confidence: 0.0-1.0
- freshness: fresh, use_soon or expired, judged from appearance

Only include items you can identify. Lower the confidence of partially visible items."""

STORAGE_PROMPT = """Where should "{name}", bought on {purchase_date}, be stored at home
(fridge, freezer or pantry), and for how many days will it keep there?"""

# Typical household shelf life: normalized name -> (location, days)
SHELF_LIFE = {
    "milk": ("fridge", 7),
    "cream": ("fridge", 14),
    "yogurt": ("fridge", 7),
    "butter": ("fridge", 90),
    "cheese": ("fridge", 30),
    "egg": ("fridge", 21),
    "chicken": ("fridge", 2),
    "beef": ("fridge", 3),
    "ground beef": ("fridge", 2),
    "pork": ("fridge", 3),
    "bacon": ("fridge", 7),
    "fish": ("fridge", 2),
    "salmon": ("fridge", 2),
    "tofu": ("fridge", 7),
    "lettuce": ("fridge", 7),
    "spinach": ("fridge", 5),
    "tomato": ("pantry", 7),
    "berry": ("fridge", 5),
    "apple": ("fridge", 30),
    "banana": ("pantry", 5),
    "potato": ("pantry", 30),
    "onion": ("pantry", 30),
    "bread": ("pantry", 5),
    "rice": ("pantry", 365),
    "pasta": ("pantry", 365),
    "flour": ("pantry", 180),
    "cereal": ("pantry", 180),
    "juice": ("fridge", 10),
    "ice cream": ("freezer", 60),
    "frozen": ("freezer", 180),
}


class DetectedItem(BaseModel):
    name: str
    storage_category: str = "pantry"
    nutritional_type: Optional[str] = None
    quantity: float = Field(1.0, ge=0)
    unit: Optional[str] = None
    estimated_expiry_days: int = Field(7, ge=0)
    confidence: Optional[float] = Field(None, ge=0, le=1)
    freshness: str = "fresh"


class VisionResult(BaseModel):
    items: list[DetectedItem] = Field(default_factory=list)


class StorageEstimate(BaseModel):
    location: str
    shelf_life_days: int = Field(..., ge=0)


def _require_model() -> None:
    if not ai_client.is_available():
        raise InferenceUnavailable("Image scanning is not available (AI disabled)")


async def detect_items(images: list[str], location: str, today: Optional[date] = None) -> dict:
    """Items visible in the images, dated from today. Nothing is stored."""
    _require_model()
    result = await ai_client.generate_structured(VISION_PROMPT, VisionResult, images=images)
    if result is None:
        raise InferenceError("Failed to process images", detail=ai_client.last_error)

    today = today or date.today()
    items = [
        {
            "name": d.name,
            "storage_category": d.storage_category,
            "nutritional_type": d.nutritional_type,
            "location": location,
            "quantity": d.quantity,
            "unit": d.unit,
            "purchase_date": today,
            "expiry_date": today + timedelta(days=d.estimated_expiry_days),
            "freshness": d.freshness,
            "confidence": d.confidence,
        }
        for d in result.items
        if d.name.strip()
    ]
    high = sum(1 for d in result.items if (d.confidence or 0) >= 0.8)
    logger.info(f"Detected {len(items)} items in {len(images)} image(s) for {location}")
    return {
        "items": items,
        "summary": {
            "total_detected": len(items),
            "high_confidence": high,
            "needs_review": len(items) - high,
        },
    }


def shelf_life_lookup(name: str) -> Optional[tuple[str, int]]:
    """Table entry for the longest known name contained in `name`."""
    key = normalize_item_name(name)
    if key.startswith("frozen "):
        return SHELF_LIFE["frozen"]
    if key in SHELF_LIFE:
        return SHELF_LIFE[key]
    hits = [k for k in SHELF_LIFE if k in key]
    if not hits:
        return None
    return SHELF_LIFE[max(hits, key=len)]


async def estimate_storage(name: str, purchase_date: date) -> tuple[str, date]:
    """(location, expiry_date) for a purchased item. Never raises."""
    if ai_client.is_available():
        estimate = await ai_client.generate_structured(
            STORAGE_PROMPT.format(name=name, purchase_date=purchase_date.isoformat()),
            StorageEstimate,
        )
        if estimate is not None and estimate.location in ("fridge", "freezer", "pantry"):
            return estimate.location, purchase_date + timedelta(days=estimate.shelf_life_days)
        logger.warning(f"Storage estimate failed for '{name}', using fallback")

    known = shelf_life_lookup(name)
    if known:
        location, days = known
    else:
        location, days = settings.receipt_fallback_location, settings.receipt_fallback_shelf_life_days
    return location, purchase_date + timedelta(days=days)
