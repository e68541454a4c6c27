"""
Repository interface for the planning hierarchy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class BaseRepository(ABC, Generic[T]):
    """
    Async store for one planning entity type, keyed by string ID.

    Backends only implement the four primitives; lookups built on top of
    them live here.
    """

    entity_name = "entity"

    @abstractmethod
    async def get(self, id: str) -> Optional[T]:
        ...

    @abstractmethod
    async def save(self, entity: T) -> T:
        """Insert or replace an entity."""
        ...

    @abstractmethod
    async def delete(self, id: str) -> bool:
        ...

    @abstractmethod
    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[T]:
        """List entities whose attributes equal every value in ``filters``."""
        ...

    async def exists(self, id: str) -> bool:
        return await self.get(id) is not None

    async def count(self, filters: Optional[dict[str, Any]] = None) -> int:
        total = 0
        offset = 0
        while True:
            page = await self.list(filters, limit=100, offset=offset)
            total += len(page)
            if len(page) < 100:
                return total
            offset += 100
