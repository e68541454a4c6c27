"""
Repository implementations for data access.
"""

from pm_tracker.repositories.base import BaseRepository
from pm_tracker.repositories.planning_repo import (
    InMemoryEpicRepository,
    InMemoryFeatureRepository,
    InMemoryProjectRepository,
    InMemoryRepository,
    InMemoryUserStoryRepository,
)

__all__ = [
    "BaseRepository",
    "InMemoryRepository",
    "InMemoryProjectRepository",
    "InMemoryEpicRepository",
    "InMemoryFeatureRepository",
    "InMemoryUserStoryRepository",
]
