"""Pydantic schemas for FridgeMind API.

Request/response models for:
- Workspaces
- Inventory (reconcile batches, manual edits, removal, scan)
- Saved recipes, cooking and meal-plan inventory checks
- Meals eaten from stock
- Receipt import / undo
"""

from datetime import datetime, date
from typing import Optional, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


Location = Literal["fridge", "freezer", "pantry"]
StorageCategory = Literal["produce", "dairy", "protein", "pantry", "beverage", "condiment", "frozen", "prepared"]
Freshness = Literal["fresh", "use_soon", "expired"]
MergePolicy = Literal["replace", "add", "skip", "legacy"]
IngredientState = Literal["available", "partial", "missing"]


# --- Workspace ---

class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class WorkspaceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    name: str
    created_at: datetime


# --- Inventory ---

class InventoryItemIn(BaseModel):
    """One detected / purchased item offered to the reconciler."""
    name: str = Field(..., min_length=1, max_length=200)
    storage_category: StorageCategory = "pantry"
    nutritional_type: Optional[str] = None
    location: Optional[Location] = None  # falls back to the batch location
    quantity: float = Field(1.0, ge=0)
    unit: Optional[str] = Field(None, max_length=40)
    purchase_date: Optional[date] = None
    expiry_date: Optional[date] = None
    freshness: Freshness = "fresh"
    confidence: Optional[float] = Field(None, ge=0, le=1)


class ReconcileRequest(BaseModel):
    items: list[InventoryItemIn]
    location: Optional[Location] = None
    policy: Optional[MergePolicy] = None  # None -> legacy


class ItemError(BaseModel):
    item: str
    error: str


class MergeOutcomeOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    inserted: int
    updated: int
    deleted: int
    skipped: int
    inserted_items: list[str] = Field(default_factory=list, alias="insertedItems")
    updated_items: list[str] = Field(default_factory=list, alias="updatedItems")
    deleted_items: list[str] = Field(default_factory=list, alias="deletedItems")
    skipped_items: list[str] = Field(default_factory=list, alias="skippedItems")
    errors: list[ItemError] = Field(default_factory=list)
    message: str


class InventoryItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    name: str
    storage_category: str
    nutritional_type: Optional[str]
    location: str
    quantity: float
    unit: Optional[str]
    purchase_date: Optional[date]
    expiry_date: Optional[date]
    freshness: str
    confidence: Optional[float]
    notes: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime] = None


class InventoryItemPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    storage_category: Optional[StorageCategory] = None
    nutritional_type: Optional[str] = None
    location: Optional[Location] = None
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=40)
    purchase_date: Optional[date] = None
    expiry_date: Optional[date] = None
    freshness: Optional[Freshness] = None
    notes: Optional[str] = None


class InventoryRemoveRequest(BaseModel):
    reason: Optional[Literal["eaten", "bad", "wrong"]] = None


class InventoryRemoveOut(BaseModel):
    success: bool = True
    message: str
    reason: Optional[str] = None


class LeftoverCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    location: Location = "fridge"
    expiry_date: Optional[date] = None  # defaults to a few days from today
    nutritional_type: Optional[str] = "misc"
    quantity: float = Field(1.0, gt=0)
    unit: Optional[str] = Field("container", max_length=40)


# --- Scan ---

class ScanRequest(BaseModel):
    images: list[str] = Field(..., min_length=1)  # base64 (optionally data: URLs)
    location: Location


class ScanItemOut(BaseModel):
    name: str
    storage_category: str
    nutritional_type: Optional[str]
    location: Location
    quantity: float
    unit: Optional[str]
    purchase_date: date
    expiry_date: date
    freshness: str
    confidence: Optional[float]


class ScanSummary(BaseModel):
    total_detected: int
    high_confidence: int
    needs_review: int


class ScanResponse(BaseModel):
    success: bool = True
    items: list[ScanItemOut]
    summary: ScanSummary
    location: Location


# --- Recipes ---

class RecipeIngredientIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    quantity: Optional[Union[float, str]] = None
    unit: Optional[str] = None
    optional: bool = False


class RecipeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    servings: Optional[int] = Field(2, ge=1)
    ingredients: list[RecipeIngredientIn] = Field(default_factory=list)
    instructions: Optional[str] = None


class RecipeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    name: str
    description: Optional[str]
    servings: Optional[int]
    ingredients: list[RecipeIngredientIn]
    instructions: Optional[str]
    times_cooked: int
    last_cooked_at: Optional[datetime]
    created_at: datetime


class IngredientStatusOut(BaseModel):
    name: str
    matched_item: Optional[str] = None
    required_qty: float
    available_qty: float
    unit: Optional[str]
    status: IngredientState
    shortage: float


class CookRequest(BaseModel):
    servings_cooked: Optional[float] = Field(None, gt=0)


class InventoryUpdateOut(BaseModel):
    deducted: list[str] = Field(default_factory=list)
    not_found: list[str] = Field(default_factory=list)


class CookResponse(BaseModel):
    success: bool = True
    message: str
    times_cooked: int
    inventory_updated: InventoryUpdateOut
    ingredients: list[IngredientStatusOut] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)


# --- Meal plan check ---

class PlannedRecipe(BaseModel):
    recipe_id: str
    servings: float = Field(..., gt=0)


class CheckInventoryRequest(BaseModel):
    recipes: list[PlannedRecipe]


class RecipeCheckOut(BaseModel):
    recipe_id: str
    recipe_name: str
    ingredients: list[IngredientStatusOut]


class ShortageOut(BaseModel):
    name: str
    quantity: float
    unit: Optional[str]


class CheckInventoryResponse(BaseModel):
    recipes: list[RecipeCheckOut]
    total_shortages: list[ShortageOut]
    has_shortages: bool
    unknown_recipe_ids: list[str] = Field(default_factory=list)


# --- Meals ---

class MealPortionIn(BaseModel):
    id: str
    quantity: float = Field(..., gt=0)
    name: Optional[str] = None


class LogMealRequest(BaseModel):
    items: list[MealPortionIn]
    note: Optional[str] = Field(None, max_length=200)


class MealDeductionOut(BaseModel):
    item_id: str
    quantity: float


class LogMealOut(BaseModel):
    success: bool = True
    meal_id: str
    items_deducted: int
    deducted: list[MealDeductionOut] = Field(default_factory=list)
    not_found: list[str] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)


# --- Receipts ---

class ReceiptItemIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    quantity: float = Field(1.0, ge=0)
    unit: Optional[str] = None
    category: str = "other"


class ReceiptImportRequest(BaseModel):
    items: list[ReceiptItemIn]
    receipt_date: Optional[date] = None
    receipt_id: Optional[str] = Field(None, max_length=64)


class ReceiptImportOut(BaseModel):
    success: bool = True
    receipt_id: str
    inserted: int
    updated: int
    items: list[str]
    errors: list[ItemError] = Field(default_factory=list)


class ReceiptUndoRequest(BaseModel):
    receipt_id: Optional[str] = None


class ReceiptUndoOut(BaseModel):
    success: bool = True
    receipt_id: str
    deleted: int
    restored: int
    items: list[str]
