from .matching import (
    normalize_item_name,
    strip_plural_s,
    merge_key_matches,
    ingredient_matches,
    find_merge_match,
    find_ingredient_match,
)
from .quantity import parse_quantity, round_display

__all__ = [
    "normalize_item_name",
    "strip_plural_s",
    "merge_key_matches",
    "ingredient_matches",
    "find_merge_match",
    "find_ingredient_match",
    "parse_quantity",
    "round_display",
]
