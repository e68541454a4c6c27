"""
In-memory repositories for the planning hierarchy.
"""

from __future__ import annotations

import builtins
import re
from datetime import datetime
from typing import Any, Optional, TypeVar

from pydantic import BaseModel

from pm_tracker.core.logging import get_logger
from pm_tracker.domain.planning import Epic, Feature, Project, UserStory
from pm_tracker.repositories.base import BaseRepository

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class InMemoryRepository(BaseRepository[M]):
    """
    Dict-backed repository for development/testing.

    Entities must expose ``id`` and ``updated_at``.
    """

    def __init__(self) -> None:
        self._items: dict[str, M] = {}

    async def get(self, id: str) -> Optional[M]:
        return self._items.get(id)

    async def save(self, entity: M) -> M:
        entity.updated_at = datetime.utcnow()
        self._items[entity.id] = entity
        logger.debug(f"{self.entity_name} saved", entity_id=entity.id)
        return entity

    async def delete(self, id: str) -> bool:
        if id in self._items:
            del self._items[id]
            logger.debug(f"{self.entity_name} deleted", entity_id=id)
            return True
        return False

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> builtins.list[M]:
        items = builtins.list(self._items.values())

        if filters:
            items = [
                item for item in items
                if all(getattr(item, key, None) == value for key, value in filters.items())
            ]

        return items[offset : offset + limit]


class InMemoryProjectRepository(InMemoryRepository[Project]):
    entity_name = "Project"


class InMemoryEpicRepository(InMemoryRepository[Epic]):
    entity_name = "Epic"


class InMemoryFeatureRepository(InMemoryRepository[Feature]):
    entity_name = "Feature"

    async def list_for_epic(self, epic_id: str) -> builtins.list[Feature]:
        features = [f for f in self._items.values() if f.epic_id == epic_id]
        return sorted(features, key=lambda f: f.display_order)


class InMemoryUserStoryRepository(InMemoryRepository[UserStory]):
    entity_name = "UserStory"

    _ID_PATTERN = re.compile(r"^US-(\d+)$")

    async def list_for_feature(self, feature_id: str) -> builtins.list[UserStory]:
        stories = [s for s in self._items.values() if s.feature_id == feature_id]
        return sorted(stories, key=lambda s: (s.sort_order, s.created_at))

    def next_id(self) -> str:
        """Generate the next story ID (US-001, US-002, ...)."""
        numbers = []
        for story_id in self._items:
            match = self._ID_PATTERN.match(story_id)
            if match:
                numbers.append(int(match.group(1)))
        return f"US-{max(numbers, default=0) + 1:03d}"

    async def create(self, **fields: Any) -> UserStory:
        """Insert a new story under a generated ID."""
        story = UserStory(id=self.next_id(), **fields)
        return await self.save(story)
