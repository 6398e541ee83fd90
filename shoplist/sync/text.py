"""Name normalization and the list/item filters used by views."""

import unicodedata
from typing import Iterable, Optional

from shoplist.models.shopping import ShoppingItem, ShoppingList


def normalize_name(value: str) -> str:
    """Strip diacritics, case-fold and trim: "  Café " -> "cafe"."""
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.casefold().strip()


def find_duplicate(name: str, items: Iterable[ShoppingItem], exclude_id: str = "") -> Optional[ShoppingItem]:
    """First item whose normalized name matches, ignoring `exclude_id`."""
    wanted = normalize_name(name)
    for item in items:
        if item.id and item.id == exclude_id:
            continue
        if normalize_name(item.name) == wanted:
            return item
    return None


def item_sort_key(item: ShoppingItem) -> tuple:
    # Pending first, then by normalized name
    return (not item.in_shopping_list, normalize_name(item.name), item.id)


def sort_items(items: Iterable[ShoppingItem]) -> list[ShoppingItem]:
    return sorted(items, key=item_sort_key)


def sort_lists(lists: Iterable[ShoppingList]) -> list[ShoppingList]:
    return sorted(lists, key=lambda l: (normalize_name(l.name), l.id))


def filter_lists(lists: Iterable[ShoppingList], query: str = "") -> list[ShoppingList]:
    """Lists whose normalized name contains the normalized query, sorted by name."""
    wanted = normalize_name(query)
    return sort_lists(l for l in lists if not wanted or wanted in normalize_name(l.name))


def split_items(
    items: Iterable[ShoppingItem], query: str = ""
) -> tuple[list[ShoppingItem], list[ShoppingItem]]:
    """
    Filter items by the search box and split them into (pending, purchased).

    Each group is sorted by normalized name.
    """
    wanted = normalize_name(query)
    matched = [i for i in items if not wanted or wanted in normalize_name(i.name)]
    ordered = sorted(matched, key=lambda i: (normalize_name(i.name), i.id))
    pending = [i for i in ordered if i.in_shopping_list]
    purchased = [i for i in ordered if not i.in_shopping_list]
    return pending, purchased
