"""
API dependencies for dependency injection.

The service container is built in the application lifespan and stored on
``app.state``; request handlers reach it through the request, never through
a module-level instance.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from pm_tracker.core.config import Settings
from pm_tracker.core.exceptions import ConfigurationError
from pm_tracker.core.logging import get_logger
from pm_tracker.llm.client import LLMClient
from pm_tracker.llm.collaborators import (
    FeatureGenerator,
    StoryCategorizer,
    StoryClassifier,
    StoryGenerator,
    TaskSpecGenerator,
)
from pm_tracker.repositories.planning_repo import (
    InMemoryEpicRepository,
    InMemoryFeatureRepository,
    InMemoryProjectRepository,
    InMemoryUserStoryRepository,
)
from pm_tracker.services.consolidation import StoryConsolidator
from pm_tracker.services.metrics import GenerationMetrics
from pm_tracker.services.spec_service import SpecService
from pm_tracker.services.story_service import StoryService

logger = get_logger(__name__)


class ServiceContainer:
    """
    Owns every service of one application instance.

    Created at startup, closed at shutdown. Tests build their own container
    around a stub LLM client.
    """

    def __init__(self, settings: Settings, llm_client: Optional[LLMClient] = None) -> None:
        self.settings = settings
        self.llm_client = llm_client or LLMClient(settings.llm)

        self.projects = InMemoryProjectRepository()
        self.epics = InMemoryEpicRepository()
        self.features = InMemoryFeatureRepository()
        self.stories = InMemoryUserStoryRepository()

        self.metrics = GenerationMetrics()

        self.story_generator = StoryGenerator(
            self.llm_client,
            min_stories=settings.story_generation.min_stories,
            max_stories=settings.story_generation.max_stories,
        )
        self.story_classifier = StoryClassifier(self.llm_client)
        self.story_categorizer = StoryCategorizer(self.llm_client)
        self.task_generator = TaskSpecGenerator(self.llm_client)
        self.feature_generator = FeatureGenerator(self.llm_client)

        self.story_service = StoryService(
            projects=self.projects,
            epics=self.epics,
            features=self.features,
            stories=self.stories,
            generator=self.story_generator,
            categorizer=self.story_categorizer,
            consolidator=StoryConsolidator(self.story_classifier),
            feature_generator=self.feature_generator,
            metrics=self.metrics,
        )
        self.spec_service = SpecService(
            generator=self.task_generator,
            projects=self.projects,
            epics=self.epics,
            features=self.features,
            stories=self.stories,
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Release network resources."""
        if self._closed:
            return
        await self.llm_client.close()
        self._closed = True
        logger.info("Service container closed")


def get_container(request: Request) -> ServiceContainer:
    """Get the container of the running application."""
    container: Optional[ServiceContainer] = getattr(request.app.state, "container", None)
    if container is None or container.closed:
        raise ConfigurationError("Service container is not available")
    return container


def get_story_service(request: Request) -> StoryService:
    return get_container(request).story_service


def get_spec_service(request: Request) -> SpecService:
    return get_container(request).spec_service


def get_metrics(request: Request) -> GenerationMetrics:
    return get_container(request).metrics
