"""
Service layer implementations.
"""

from pm_tracker.services.consolidation import StoryConsolidator
from pm_tracker.services.metrics import GenerationMetrics
from pm_tracker.services.spec_service import SpecService
from pm_tracker.services.story_service import StoryService

__all__ = [
    "GenerationMetrics",
    "SpecService",
    "StoryConsolidator",
    "StoryService",
]
