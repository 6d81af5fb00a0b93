"""Base versioned store abstraction.

A versioned store holds records that carry an integer ``version`` attribute
and supports a conditional patch (compare-and-swap on that version). It is
the only concurrency token used for entity mutation; no locks are taken.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

VERSION_ATTRIBUTE = "version"
INITIAL_VERSION = 1


class VersionedStore(ABC):
    """
    Abstract async store with compare-and-swap updates.

    Records are plain dicts. A record is identified by the values of
    ``key_fields``; keys are passed around as ``{field: value}`` dicts.

    Implementations must raise VersionConflictError from conditional_patch
    when the stored version differs from ``expected_version`` or the record
    has disappeared. Any other failure is raised as-is.
    """

    def __init__(self, entity_name: str, key_fields: Sequence[str] = ("id",)):
        self.entity_name = entity_name
        self.key_fields = tuple(key_fields)

    def key_of(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Extract the key dict from a full record."""
        missing = [field for field in self.key_fields if item.get(field) is None]
        if missing:
            raise ValueError(f"{self.entity_name} record is missing key fields: {missing}")
        return {field: item[field] for field in self.key_fields}

    @abstractmethod
    async def get(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Fetch a record by key.

        Returns:
            The record, or None if it does not exist
        """
        pass

    @abstractmethod
    async def conditional_patch(
        self,
        key: Dict[str, Any],
        changes: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        """
        Apply ``changes`` only if the stored version equals ``expected_version``.

        Args:
            key: Record key
            changes: Attributes to set (normally including the new version)
            expected_version: Version the caller read before computing changes

        Returns:
            The full record as stored after the write

        Raises:
            VersionConflictError: If the version no longer matches
        """
        pass

    @abstractmethod
    async def create(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a new record, starting at version 1 unless one is given.

        Raises:
            EntityAlreadyExists: If a record with the same key exists
        """
        pass

    @abstractmethod
    async def delete(self, key: Dict[str, Any]) -> None:
        """Delete a record. Deleting a missing record is not an error."""
        pass

    @abstractmethod
    async def find_by(self, attribute: str, value: Any) -> List[Dict[str, Any]]:
        """Return all records whose ``attribute`` equals ``value``."""
        pass
