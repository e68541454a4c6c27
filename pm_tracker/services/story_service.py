"""
Story service: feature proposals, plus generation, consolidation,
categorization and saving of AI-drafted user stories.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Optional

from pm_tracker.core.constants import NARRATIVE_PREVIEW_LENGTH, Persona
from pm_tracker.core.exceptions import (
    SOFT_FAILURES,
    EpicNotFoundError,
    FeatureNotFoundError,
    InvalidRequestError,
    PMTrackerError,
    ProjectNotFoundError,
)
from pm_tracker.core.logging import LogContext, get_logger
from pm_tracker.domain.planning import Epic, Feature, FeatureGenerationResult, Project
from pm_tracker.domain.story import (
    BatchSaveReport,
    CandidateStory,
    CategorizationResult,
    ConsolidationResult,
    GeneratedStories,
    StorySaveOutcome,
)
from pm_tracker.llm.collaborators import FeatureGenerator, StoryCategorizer, StoryGenerator
from pm_tracker.repositories.planning_repo import (
    InMemoryEpicRepository,
    InMemoryFeatureRepository,
    InMemoryProjectRepository,
    InMemoryUserStoryRepository,
)
from pm_tracker.services.consolidation import StoryConsolidator
from pm_tracker.services.features import fallback_features, has_feature_context
from pm_tracker.services.metrics import GenerationMetrics

logger = get_logger(__name__)


class StoryService:
    """
    Service for the AI planning workflow of an epic and its features.

    Propose features, draft stories, check them against what the feature
    already has, then persist the ones the user keeps.
    """

    def __init__(
        self,
        projects: InMemoryProjectRepository,
        epics: InMemoryEpicRepository,
        features: InMemoryFeatureRepository,
        stories: InMemoryUserStoryRepository,
        generator: StoryGenerator,
        categorizer: StoryCategorizer,
        consolidator: StoryConsolidator,
        feature_generator: FeatureGenerator,
        metrics: GenerationMetrics,
    ) -> None:
        self.projects = projects
        self.epics = epics
        self.features = features
        self.stories = stories
        self.generator = generator
        self.categorizer = categorizer
        self.consolidator = consolidator
        self.feature_generator = feature_generator
        self.metrics = metrics

    async def _require_feature(self, feature_id: str) -> Feature:
        feature = await self.features.get(feature_id)
        if feature is None:
            raise FeatureNotFoundError(feature_id)
        return feature

    async def _require_epic(self, epic_id: str) -> Epic:
        epic = await self.epics.get(epic_id)
        if epic is None:
            raise EpicNotFoundError(epic_id)
        return epic

    async def _require_project(self, project_id: str) -> Project:
        project = await self.projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def generate_features(self, epic_id: str) -> tuple[FeatureGenerationResult, dict[str, Any]]:
        """
        Propose features for an epic.

        An epic with no description, feature areas or objectives skips the
        generator. Generator failures fall back to features derived from the
        epic's checklist, flagged with ``used_fallback``.
        """
        epic = await self._require_epic(epic_id)

        with LogContext(epic_id=epic_id):
            logger.info(
                "Generating features",
                epic_name=epic.name,
                feature_areas=len(epic.feature_areas),
            )
            if not has_feature_context(epic):
                result = fallback_features(epic)
            else:
                try:
                    result = await self.feature_generator.generate(epic)
                except SOFT_FAILURES as e:
                    logger.warning(
                        "Feature generation failed, deriving from checklist",
                        error_code=e.code,
                        error=str(e),
                    )
                    result = fallback_features(epic)

        metadata = {
            "epic_id": epic_id,
            "epic_name": epic.name,
            "feature_areas_analyzed": len(epic.feature_areas),
        }
        return result, metadata

    async def generate_stories(
        self,
        feature_id: str,
        additional_instructions: Optional[str] = None,
    ) -> tuple[GeneratedStories, dict[str, Any]]:
        """
        Draft stories for a feature.

        When the feature already has stories the generator runs in diff mode
        and is asked to fill gaps only. Collaborator failures propagate.

        Returns:
            Generated stories and response metadata
        """
        feature = await self._require_feature(feature_id)
        epic = await self._require_epic(feature.epic_id)
        project = await self._require_project(epic.project_id)

        existing = [s.to_existing_story() for s in await self.stories.list_for_feature(feature_id)]
        mode = "diff" if existing else "full"

        with LogContext(feature_id=feature_id):
            logger.info(
                "Generating stories",
                feature_name=feature.name,
                epic_name=epic.name,
                existing_story_count=len(existing),
                mode=mode,
            )
            result = await self.generator.generate(
                feature,
                epic,
                project,
                existing=existing or None,
                additional_instructions=additional_instructions,
            )

        metadata = {
            "feature_id": feature_id,
            "feature_name": feature.name,
            "epic_name": epic.name,
            "project_name": project.name,
            "stories_generated": len(result.stories),
            "existing_story_count": len(existing),
            "generation_mode": mode,
        }
        return result, metadata

    async def consolidate_stories(
        self,
        feature_id: str,
        candidates: Sequence[CandidateStory],
    ) -> tuple[ConsolidationResult, dict[str, Any]]:
        """Compare drafted stories with the feature's existing stories."""
        if not candidates:
            raise InvalidRequestError("generatedStories must not be empty", field="generatedStories")

        feature = await self._require_feature(feature_id)
        existing = [s.to_existing_story() for s in await self.stories.list_for_feature(feature_id)]

        with LogContext(feature_id=feature_id):
            result = await self.consolidator.consolidate(feature, candidates, existing)

        metadata = {
            "feature_id": feature_id,
            "feature_name": feature.name,
            "existing_story_count": len(existing),
            "generated_story_count": len(candidates),
        }
        return result, metadata

    async def categorize_story(
        self,
        epic_id: str,
        narrative: str,
        persona: Persona = Persona.MEMBER,
        acceptance_criteria: Optional[Sequence[str]] = None,
    ) -> tuple[CategorizationResult, dict[str, Any]]:
        """Suggest the feature of an epic a story belongs to."""
        if not narrative.strip():
            raise InvalidRequestError("Story narrative is required", field="narrative")

        epic = await self._require_epic(epic_id)
        features = await self.features.list_for_epic(epic_id)

        logger.info(
            "Categorizing story",
            epic_id=epic_id,
            epic_name=epic.name,
            feature_count=len(features),
            narrative_preview=narrative[:NARRATIVE_PREVIEW_LENGTH],
        )
        result = await self.categorizer.categorize(
            epic, features, narrative, persona.value, acceptance_criteria
        )

        metadata = {
            "epic_id": epic_id,
            "epic_name": epic.name,
            "features_analyzed": len(features),
        }
        return result, metadata

    async def save_stories(
        self,
        feature_id: str,
        candidates: Sequence[CandidateStory],
        selected_indices: Sequence[int],
        total_generated: Optional[int] = None,
        tokens_used: int = 0,
    ) -> BatchSaveReport:
        """
        Persist the selected candidates as user stories of a feature.

        Each story is written on its own; a failed write is recorded in the
        report and the remaining stories are still attempted.
        """
        feature = await self._require_feature(feature_id)

        indices = list(dict.fromkeys(selected_indices))
        if not indices:
            raise InvalidRequestError("No stories selected", field="selected_indices")
        out_of_range = [i for i in indices if not 0 <= i < len(candidates)]
        if out_of_range:
            raise InvalidRequestError(
                f"Selected indices out of range: {out_of_range}", field="selected_indices"
            )

        report = BatchSaveReport(feature_id=feature_id, requested=len(indices))
        for index in indices:
            candidate = candidates[index]
            try:
                story = await self.stories.create(
                    project_id=feature.project_id,
                    epic_id=feature.epic_id,
                    feature_id=feature.id,
                    narrative=candidate.narrative,
                    persona=candidate.persona,
                    feature_area=feature.name,
                    priority=candidate.priority,
                    acceptance_criteria=list(candidate.acceptance_criteria),
                )
            except PMTrackerError as e:
                logger.error(
                    "Failed to save story",
                    feature_id=feature_id,
                    index=index,
                    error=e.message,
                )
                report.outcomes.append(
                    StorySaveOutcome(index=index, narrative=candidate.narrative, error=e.message)
                )
                continue

            report.outcomes.append(
                StorySaveOutcome(index=index, narrative=candidate.narrative, story_id=story.id)
            )

        generated = total_generated if total_generated is not None else len(candidates)
        self.metrics.record_generation(
            stories_generated=max(generated, len(report.created_ids)),
            stories_accepted=len(report.created_ids),
            tokens_used=tokens_used,
        )

        logger.info(
            "Stories saved",
            feature_id=feature_id,
            requested=report.requested,
            created=len(report.created_ids),
            failed=len(report.failures),
        )
        return report
