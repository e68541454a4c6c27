"""
Task spec service: generates platform tasks for a user story and organizes
them for display.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Optional

from pm_tracker.core.constants import DEFAULT_PRIORITY_FILTER, PlatformId, Priority
from pm_tracker.core.exceptions import InvalidRequestError, PMTrackerError
from pm_tracker.core.logging import get_logger
from pm_tracker.domain.planning import HierarchicalContext
from pm_tracker.domain.task import GeneratedSpecs, GeneratedTask, OrganizedTasks, ReadinessReport, SpecStory
from pm_tracker.llm.collaborators import TaskSpecGenerator
from pm_tracker.repositories.planning_repo import (
    InMemoryEpicRepository,
    InMemoryFeatureRepository,
    InMemoryProjectRepository,
    InMemoryUserStoryRepository,
)
from pm_tracker.services.readiness import assess_readiness
from pm_tracker.services.task_waves import organize_tasks

logger = get_logger(__name__)


@dataclass
class SpecGenerationResult:
    specs: GeneratedSpecs
    organized: OrganizedTasks
    readiness: ReadinessReport
    hierarchy: Optional[HierarchicalContext] = None


def parse_platforms(selected: Iterable[str]) -> list[PlatformId]:
    """
    Validate platform identifiers, keeping selection order.

    Raises:
        InvalidRequestError: if nothing is selected or an ID is unknown
    """
    selected = list(dict.fromkeys(selected))
    if not selected:
        raise InvalidRequestError("At least one platform must be selected", field="selectedPlatforms")

    valid = {p.value for p in PlatformId}
    invalid = [p for p in selected if p not in valid]
    if invalid:
        raise InvalidRequestError(
            f"Invalid platform IDs: {', '.join(invalid)}", field="selectedPlatforms"
        )
    return [PlatformId(p) for p in selected]


class SpecService:
    """Service wrapping the task spec generator."""

    def __init__(
        self,
        generator: TaskSpecGenerator,
        projects: InMemoryProjectRepository,
        epics: InMemoryEpicRepository,
        features: InMemoryFeatureRepository,
        stories: InMemoryUserStoryRepository,
    ) -> None:
        self.generator = generator
        self.projects = projects
        self.epics = epics
        self.features = features
        self.stories = stories

    async def get_hierarchical_context(self, story_id: str) -> Optional[HierarchicalContext]:
        """Project, epic and feature of a persisted story, if it exists."""
        story = await self.stories.get(story_id)
        if story is None:
            return None

        context = HierarchicalContext()
        if story.feature_id:
            context.feature = await self.features.get(story.feature_id)
        epic_id = story.epic_id or (context.feature.epic_id if context.feature else None)
        if epic_id:
            context.epic = await self.epics.get(epic_id)
        context.project = await self.projects.get(story.project_id)
        return context

    async def generate_specs(
        self,
        story: SpecStory,
        selected_platforms: Sequence[str],
        additional_context: Optional[str] = None,
        priorities: Iterable[Priority] = DEFAULT_PRIORITY_FILTER,
    ) -> SpecGenerationResult:
        """Generate, organize and assess task specs for a story."""
        if not story.narrative.strip():
            raise InvalidRequestError("User story with narrative is required", field="userStory")
        platforms = parse_platforms(selected_platforms)

        hierarchy = None
        if story.is_persisted:
            # Context only enriches the prompt, a failed lookup is not fatal
            try:
                hierarchy = await self.get_hierarchical_context(story.id)
            except PMTrackerError as e:
                logger.warning("Failed to fetch hierarchical context", story_id=story.id, error=e.message)
            else:
                logger.info(
                    "Fetched hierarchical context",
                    story_id=story.id,
                    has_context=hierarchy is not None,
                )

        specs = await self.generator.generate(
            story,
            platforms,
            additional_context=additional_context,
            hierarchy=hierarchy,
        )

        return SpecGenerationResult(
            specs=specs,
            organized=organize_tasks(specs.tasks, priorities),
            readiness=assess_readiness(specs),
            hierarchy=hierarchy,
        )

    def organize(
        self,
        tasks: Sequence[GeneratedTask],
        priorities: Iterable[Priority] = DEFAULT_PRIORITY_FILTER,
    ) -> OrganizedTasks:
        """Wave view of an already generated batch, no LLM call."""
        return organize_tasks(tasks, priorities)
