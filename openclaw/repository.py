"""
Generic indexed repository.

Every manager in the platform stores its entities the same way:

- a primary ``dict[id, entity]`` (insertion ordered)
- any number of secondary indexes ``dict[key, set[id]]``
- linear-scan queries for anything not covered by an index

Index key functions return a single key, an iterable of keys, or None.
Indexes are recomputed on ``add`` / ``update`` / ``remove``, so callers that
mutate an entity in place must call ``update()`` afterwards.

Usage::

    teams = IndexedRepository[Team](
        "Team",
        key=lambda t: t.id,
        indexes={
            "organization": lambda t: t.organization_id,
            "member": lambda t: t.member_ids,
        },
    )
    teams.add(team)
    teams.find("member", "agent-1")
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Hashable, Iterable, Iterator, TypeVar

from openclaw.errors import AlreadyExistsError, NotFoundError

T = TypeVar("T")

KeyFunc = Callable[[Any], Any]


def _keys_of(value: Any) -> set[Hashable]:
    if value is None:
        return set()
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return {value}
    return {v for v in value if v is not None}


class IndexedRepository(Generic[T]):
    """In-memory store of entities keyed by id with secondary indexes."""

    def __init__(
        self,
        name: str,
        key: Callable[[T], str] = lambda e: e.id,  # type: ignore[attr-defined]
        indexes: dict[str, KeyFunc] | None = None,
    ) -> None:
        self.name = name
        self._key = key
        self._items: dict[str, T] = {}
        self._index_funcs: dict[str, KeyFunc] = dict(indexes or {})
        self._indexes: dict[str, dict[Hashable, set[str]]] = {
            n: {} for n in self._index_funcs
        }
        # Keys each entity was indexed under at its last (re)index
        self._indexed_keys: dict[str, dict[str, set[Hashable]]] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, entity: T) -> T:
        entity_id = self._key(entity)
        if entity_id in self._items:
            raise AlreadyExistsError(f'{self.name} with ID "{entity_id}" already exists')
        self._items[entity_id] = entity
        self._index(entity_id, entity)
        return entity

    def update(self, entity: T) -> T:
        entity_id = self._key(entity)
        if entity_id not in self._items:
            raise NotFoundError(f"{self.name} not found: {entity_id}")
        self._unindex(entity_id)
        self._items[entity_id] = entity
        self._index(entity_id, entity)
        return entity

    def remove(self, entity_id: str) -> T | None:
        entity = self._items.pop(entity_id, None)
        if entity is not None:
            self._unindex(entity_id)
        return entity

    def clear(self) -> None:
        self._items.clear()
        self._indexed_keys.clear()
        for index in self._indexes.values():
            index.clear()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, entity_id: str | None) -> T | None:
        if entity_id is None:
            return None
        return self._items.get(entity_id)

    def require(self, entity_id: str) -> T:
        entity = self._items.get(entity_id)
        if entity is None:
            raise NotFoundError(f"{self.name} not found: {entity_id}")
        return entity

    def ids(self, index: str, key: Hashable) -> set[str]:
        return set(self._indexes[index].get(key, ()))

    def find(self, index: str, key: Hashable) -> list[T]:
        """Entities whose index key matches, in insertion order."""
        bucket = self._indexes[index].get(key)
        if not bucket:
            return []
        return [e for eid, e in self._items.items() if eid in bucket]

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [e for e in self._items.values() if predicate(e)]

    def all(self) -> list[T]:
        return list(self._items.values())

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def _index(self, entity_id: str, entity: T) -> None:
        recorded: dict[str, set[Hashable]] = {}
        for name, func in self._index_funcs.items():
            keys = _keys_of(func(entity))
            bucket_map = self._indexes[name]
            for k in keys:
                bucket_map.setdefault(k, set()).add(entity_id)
            recorded[name] = keys
        self._indexed_keys[entity_id] = recorded

    def _unindex(self, entity_id: str) -> None:
        recorded = self._indexed_keys.pop(entity_id, {})
        for name, keys in recorded.items():
            bucket_map = self._indexes[name]
            for k in keys:
                bucket = bucket_map.get(k)
                if bucket is None:
                    continue
                bucket.discard(entity_id)
                if not bucket:
                    del bucket_map[k]

    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._items

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))

    def __repr__(self) -> str:
        return f"IndexedRepository(name={self.name!r}, items={len(self._items)}, indexes={list(self._indexes)})"
