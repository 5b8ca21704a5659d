"""Item name normalization and matching strategies.

Two strictness levels are used across the app:

- merge matching (scan / receipt reconciliation): normalized names equal
  AND same storage location
- ingredient matching (recipe deduction): substring in either direction,
  location ignored

Both are pure functions over the snapshot they are given. When several
items qualify, the earliest created one wins (ties broken by id) so the
result never depends on query row order.
"""

import re
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol, TypeVar


class MatchableItem(Protocol):
    id: str
    name: str
    location: str
    created_at: Optional[datetime]
    consumed_at: Optional[datetime]


T = TypeVar("T", bound=MatchableItem)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

# Suffix rules only fire on the tail of a word ("bus s" and "glass" are left alone)
_IES_SUFFIX = re.compile(r"(?<=\S)ies$")
_S_SUFFIX = re.compile(r"(?<=[^\ss])s$")


def normalize_item_name(name: str) -> str:
    """Canonical form used for merge matching.

    Lowercase + trim, then collapse simple English plurals:
    "ies" -> "y" ("berries" -> "berry"), then one trailing "s" is dropped
    ("eggs" -> "egg"). Irregular plurals are not handled: "tomatoes"
    becomes "tomatoe". Words ending in "ss" keep it ("glass").
    """
    if not name:
        return ""
    s = name.lower().strip()
    if _IES_SUFFIX.search(s):
        return _IES_SUFFIX.sub("y", s)
    return _S_SUFFIX.sub("", s)


def strip_plural_s(name: str) -> str:
    """Lowercase + trim + drop exactly one trailing "s"."""
    s = (name or "").lower().strip()
    if s.endswith("s"):
        s = s[:-1]
    return s


def merge_key_matches(name: str, location: Optional[str], existing: MatchableItem) -> bool:
    return (
        normalize_item_name(name) == normalize_item_name(existing.name)
        and location == existing.location
    )


def ingredient_matches(ingredient_name: str, item_name: str) -> bool:
    ing = (ingredient_name or "").lower().strip()
    item = (item_name or "").lower().strip()
    if not ing or not item:
        return False

    if item in ing or ing in item:
        return True

    ing_stem = strip_plural_s(ing)
    item_stem = strip_plural_s(item)
    if ing_stem and ing_stem in item:
        return True
    if item_stem and item_stem in ing:
        return True
    return False


def creation_order_key(item: MatchableItem) -> tuple:
    created = item.created_at
    if created is not None and created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (created or _EPOCH, str(item.id))


def _first_by_creation(candidates: Iterable[T]) -> Optional[T]:
    ordered = sorted(candidates, key=creation_order_key)
    return ordered[0] if ordered else None


def _active(items: Iterable[T]) -> list[T]:
    return [i for i in items if getattr(i, "consumed_at", None) is None]


def find_merge_match(name: str, location: Optional[str], items: Iterable[T]) -> Optional[T]:
    """Existing active item with the same normalized name at the same location."""
    return _first_by_creation(
        i for i in _active(items) if merge_key_matches(name, location, i)
    )


def find_ingredient_match(ingredient_name: str, items: Iterable[T]) -> Optional[T]:
    """Existing active item whose name overlaps the ingredient name, any location."""
    return _first_by_creation(
        i for i in _active(items) if ingredient_matches(ingredient_name, i.name)
    )
