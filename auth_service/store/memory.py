"""
In-memory versioned store.

Used for local development and tests. Every method completes without
suspending, so each call is atomic with respect to other asyncio tasks.
"""
import copy
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import EntityAlreadyExists, VersionConflictError
from .base import INITIAL_VERSION, VERSION_ATTRIBUTE, VersionedStore

logger = logging.getLogger("store.memory")


class InMemoryVersionedStore(VersionedStore):
    """Dict-backed versioned store. Records are deep-copied in and out."""

    def __init__(self, entity_name: str, key_fields: Sequence[str] = ("id",)):
        super().__init__(entity_name, key_fields)
        self._items: Dict[Tuple[Any, ...], Dict[str, Any]] = {}

    def _slot(self, key: Dict[str, Any]) -> Tuple[Any, ...]:
        return tuple(key[field] for field in self.key_fields)

    async def get(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        item = self._items.get(self._slot(key))
        return copy.deepcopy(item) if item is not None else None

    async def conditional_patch(
        self,
        key: Dict[str, Any],
        changes: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        slot = self._slot(key)
        current = self._items.get(slot)
        if current is None or current.get(VERSION_ATTRIBUTE) != expected_version:
            raise VersionConflictError(self.entity_name, key, expected_version)

        updated = {**current, **copy.deepcopy(changes)}
        # Key fields are immutable
        updated.update(key)
        self._items[slot] = updated
        logger.debug(
            f"Patched {self.entity_name} {slot} "
            f"(version {expected_version} -> {updated.get(VERSION_ATTRIBUTE)})"
        )
        return copy.deepcopy(updated)

    async def create(self, item: Dict[str, Any]) -> Dict[str, Any]:
        key = self.key_of(item)
        slot = self._slot(key)
        if slot in self._items:
            raise EntityAlreadyExists(self.entity_name, key)

        record = copy.deepcopy(item)
        record.setdefault(VERSION_ATTRIBUTE, INITIAL_VERSION)
        self._items[slot] = record
        return copy.deepcopy(record)

    async def delete(self, key: Dict[str, Any]) -> None:
        self._items.pop(self._slot(key), None)

    async def find_by(self, attribute: str, value: Any) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(item)
            for item in self._items.values()
            if item.get(attribute) == value
        ]

    def __len__(self) -> int:
        return len(self._items)
