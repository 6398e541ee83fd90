from .lists import ListRepository, merge_lists
from .items import ItemRepository

__all__ = ["ListRepository", "ItemRepository", "merge_lists"]
