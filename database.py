"""
In-memory document store.

One ``Collection`` per entity type, each with its own lock and id counter.
Callers never lock: every read returns a snapshot and every write is atomic.
The store is created once per app and handed to the services.
"""

import itertools
import threading
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")

COLLECTIONS = ("patient", "medication", "notification", "record")


class Collection(Generic[T]):
    def __init__(self, name: str):
        self.name = name
        self._items: Dict[int, T] = {}
        self._lock = threading.RLock()
        self._ids: Iterator[int] = itertools.count(1)

    def insert(self, item: T) -> int:
        """Store ``item``, assigning an id on first insert. Returns the id."""
        with self._lock:
            if getattr(item, "id", None) is None:
                item.id = next(self._ids)
            self._items[item.id] = item
            return item.id

    def get(self, item_id: int) -> Optional[T]:
        with self._lock:
            return self._items.get(item_id)

    def remove(self, item_id: int) -> Optional[T]:
        with self._lock:
            return self._items.pop(item_id, None)

    def remove_where(self, predicate: Callable[[T], bool]) -> List[T]:
        with self._lock:
            doomed = [item_id for item_id, item in self._items.items() if predicate(item)]
            return [self._items.pop(item_id) for item_id in doomed]

    def find(self, predicate: Optional[Callable[[T], bool]] = None, limit: Optional[int] = None) -> List[T]:
        with self._lock:
            items = list(self._items.values())
        if predicate is not None:
            items = [item for item in items if predicate(item)]
        return items[:limit] if limit is not None else items

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class Database:
    def __init__(self, name: str = "chronicare"):
        self.name = name
        self._collections: Dict[str, Collection[Any]] = {c: Collection(c) for c in COLLECTIONS}

    def __getitem__(self, collection_name: str) -> Collection[Any]:
        return self._collections[collection_name]

    def list_collection_names(self) -> List[str]:
        return list(self._collections)

    def create_document(self, collection_name: str, entity: Any) -> int:
        return self[collection_name].insert(entity)

    def get_documents(
        self,
        collection_name: str,
        predicate: Optional[Callable[[Any], bool]] = None,
        limit: Optional[int] = None,
    ) -> List[Any]:
        return self[collection_name].find(predicate, limit=limit)

    def stats(self) -> Dict[str, int]:
        return {name: len(collection) for name, collection in self._collections.items()}
