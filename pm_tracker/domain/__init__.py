"""
Domain models.
"""

from pm_tracker.domain.planning import Epic, Feature, HierarchicalContext, Project, UserStory
from pm_tracker.domain.story import (
    CandidateStory,
    CategorizationResult,
    ConsolidationDecision,
    ConsolidationResult,
    ExistingStory,
    GeneratedStories,
)
from pm_tracker.domain.task import GeneratedSpecs, GeneratedTask, TaskWithWave

__all__ = [
    "CandidateStory",
    "CategorizationResult",
    "ConsolidationDecision",
    "ConsolidationResult",
    "Epic",
    "ExistingStory",
    "Feature",
    "GeneratedSpecs",
    "GeneratedStories",
    "GeneratedTask",
    "HierarchicalContext",
    "Project",
    "TaskWithWave",
    "UserStory",
]
