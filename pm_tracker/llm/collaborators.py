"""
LLM-backed collaborators used by the AI endpoints.

Each collaborator renders its prompts, makes its completion calls and
checks the answers against the contract the rest of the service relies on.
A response that parses but breaks the contract raises
``MalformedResponseError``.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Sequence
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from pm_tracker.core.constants import (
    INTEGRATION_DOD_CHECKS,
    NARRATIVE_REQUIRED_PHRASES,
    PLATFORM_CONFIG,
    TASK_CONFIDENCE_SCORES,
    CategorizationRecommendation,
    PlatformId,
)
from pm_tracker.core.exceptions import SOFT_FAILURES, MalformedResponseError
from pm_tracker.core.logging import get_logger
from pm_tracker.domain.planning import Epic, Feature, FeatureGenerationResult, HierarchicalContext, Project
from pm_tracker.domain.story import (
    CandidateStory,
    CategorizationResult,
    ClassifierVerdict,
    ExistingStory,
    GeneratedStories,
)
from pm_tracker.domain.task import (
    DefinitionOfDone,
    GeneratedSpecs,
    GeneratedTask,
    IntegrationDefinitionOfDone,
    IntegrationStrategy,
    PlatformDefinitionOfDone,
    PlatformSpecs,
    SpecStory,
)
from pm_tracker.llm import prompts
from pm_tracker.llm.client import LLMClient

logger = get_logger(__name__)


def _bullets(lines: Sequence[str]) -> str:
    return "\n".join(f"- {line}" for line in lines)


def _criteria_section(criteria: Optional[Sequence[str]]) -> str:
    if not criteria:
        return ""
    return f"Acceptance criteria:\n{_bullets(criteria)}\n"


def _require_object(data: Any, collaborator: str, key: str) -> dict[str, Any]:
    if not isinstance(data, dict) or key not in data:
        raise MalformedResponseError(collaborator, f"expected an object with '{key}'")
    return data


def _validation_details(error: PydanticValidationError) -> dict[str, Any]:
    return {"errors": [
        {"loc": ".".join(str(p) for p in e["loc"]), "msg": e["msg"]}
        for e in error.errors()
    ]}


class StoryGenerator:
    """Drafts user stories for a feature."""

    name = "story generator"

    def __init__(self, client: LLMClient, min_stories: int = 3, max_stories: int = 7) -> None:
        self.client = client
        self.min_stories = min_stories
        self.max_stories = max_stories

    def build_prompt(
        self,
        feature: Feature,
        epic: Epic,
        project: Project,
        existing: Optional[Sequence[ExistingStory]] = None,
        additional_instructions: Optional[str] = None,
    ) -> str:
        if existing:
            existing_section = "Existing stories:\n" + _bullets([s.narrative for s in existing]) + "\n"
            mode = prompts.DIFF_MODE_INSTRUCTIONS
        else:
            existing_section = ""
            mode = prompts.FULL_MODE_INSTRUCTIONS

        return prompts.STORY_GENERATOR_PROMPT.format(
            project_name=project.name,
            project_description=project.description or "",
            epic_name=epic.name,
            epic_description=epic.description or "",
            feature_name=feature.name,
            feature_description=feature.description or "",
            existing_section=existing_section,
            min_stories=self.min_stories,
            max_stories=self.max_stories,
            mode_instructions=mode,
            additional_instructions=(
                f"Additional instructions: {additional_instructions}\n" if additional_instructions else ""
            ),
        )

    def parse(self, data: Any) -> GeneratedStories:
        """Validate a generator payload."""
        _require_object(data, self.name, "stories")
        try:
            result = GeneratedStories.model_validate(data)
        except PydanticValidationError as e:
            raise MalformedResponseError(self.name, "stories do not match the schema", _validation_details(e)) from e

        count = len(result.stories)
        if not self.min_stories <= count <= self.max_stories:
            raise MalformedResponseError(
                self.name,
                f"expected {self.min_stories}-{self.max_stories} stories, got {count}",
            )

        for i, story in enumerate(result.stories):
            lowered = story.narrative.lower()
            missing = [phrase for phrase in NARRATIVE_REQUIRED_PHRASES if phrase not in lowered]
            if missing:
                raise MalformedResponseError(
                    self.name,
                    f"story {i} is not in 'As a ..., I want ...' form",
                    {"missing": missing},
                )
        return result

    async def generate(
        self,
        feature: Feature,
        epic: Epic,
        project: Project,
        existing: Optional[Sequence[ExistingStory]] = None,
        additional_instructions: Optional[str] = None,
    ) -> GeneratedStories:
        prompt = self.build_prompt(feature, epic, project, existing, additional_instructions)
        data, response = await self.client.complete_json(
            prompts.STORY_GENERATOR_SYSTEM, prompt, collaborator=self.name
        )
        result = self.parse(data)
        result.tokens_used = response.total_tokens
        return result


class StoryClassifier:
    """Judges drafted stories against a feature's existing stories."""

    name = "story classifier"

    def __init__(self, client: LLMClient) -> None:
        self.client = client

    def build_prompt(
        self,
        feature: Feature,
        candidates: Sequence[CandidateStory],
        existing: Sequence[ExistingStory],
    ) -> str:
        return prompts.STORY_CLASSIFIER_PROMPT.format(
            feature_name=feature.name,
            feature_description=feature.description or "",
            existing_stories="\n".join(f"[{s.id}] {s.narrative}" for s in existing),
            candidate_stories="\n".join(f"[{i}] {c.narrative}" for i, c in enumerate(candidates)),
        )

    def parse(self, data: Any) -> list[ClassifierVerdict]:
        """Shape-only parse; whether the verdicts make sense is checked by consolidation."""
        if isinstance(data, dict):
            data = _require_object(data, self.name, "verdicts")["verdicts"]
        if not isinstance(data, list):
            raise MalformedResponseError(self.name, "expected a list of verdicts")
        try:
            return [ClassifierVerdict.model_validate(item) for item in data]
        except PydanticValidationError as e:
            raise MalformedResponseError(self.name, "verdicts do not match the schema", _validation_details(e)) from e

    async def classify(
        self,
        feature: Feature,
        candidates: Sequence[CandidateStory],
        existing: Sequence[ExistingStory],
    ) -> list[ClassifierVerdict]:
        prompt = self.build_prompt(feature, candidates, existing)
        data, _ = await self.client.complete_json(
            prompts.STORY_CLASSIFIER_SYSTEM, prompt, collaborator=self.name
        )
        return self.parse(data)


class StoryCategorizer:
    """Suggests which feature of an epic a story belongs to."""

    name = "story categorizer"

    def __init__(self, client: LLMClient) -> None:
        self.client = client

    def build_prompt(
        self,
        epic: Epic,
        features: Sequence[Feature],
        narrative: str,
        persona: str,
        acceptance_criteria: Optional[Sequence[str]] = None,
    ) -> str:
        feature_lines = [
            f"[{f.id}] {f.name}: {f.description or 'no description'}" for f in features
        ] or ["(no features yet)"]
        return prompts.STORY_CATEGORIZER_PROMPT.format(
            epic_name=epic.name,
            epic_description=epic.description or "",
            features="\n".join(feature_lines),
            persona=persona,
            narrative=narrative,
            acceptance_criteria=_criteria_section(acceptance_criteria),
        )

    def parse(self, data: Any, features: Sequence[Feature]) -> CategorizationResult:
        _require_object(data, self.name, "recommendation")
        try:
            result = CategorizationResult.model_validate(data)
        except PydanticValidationError as e:
            raise MalformedResponseError(self.name, "result does not match the schema", _validation_details(e)) from e

        names = {f.id: f.name for f in features}
        if result.recommendation == CategorizationRecommendation.EXISTING:
            if result.suggested_feature_id not in names:
                raise MalformedResponseError(
                    self.name,
                    f"suggested feature '{result.suggested_feature_id}' is not part of the epic",
                )
            result.suggested_feature_name = names[result.suggested_feature_id]

        # Alternatives pointing outside the epic are dropped rather than rejected
        result.alternatives = [a for a in result.alternatives if a.feature_id in names]
        return result

    async def categorize(
        self,
        epic: Epic,
        features: Sequence[Feature],
        narrative: str,
        persona: str,
        acceptance_criteria: Optional[Sequence[str]] = None,
    ) -> CategorizationResult:
        prompt = self.build_prompt(epic, features, narrative, persona, acceptance_criteria)
        data, _ = await self.client.complete_json(
            prompts.STORY_CATEGORIZER_SYSTEM, prompt, collaborator=self.name
        )
        return self.parse(data, features)


def merge_definitions_of_done(
    platform_specs: Sequence[tuple[PlatformId, PlatformSpecs]],
    strategy: Optional[IntegrationStrategy] = None,
) -> DefinitionOfDone:
    """
    One deduplicated checklist per platform, plus a cross-platform checklist
    when an integration strategy exists for more than one platform.
    """
    platform_dod = [
        PlatformDefinitionOfDone(
            platform=platform,
            platform_name=PLATFORM_CONFIG[platform]["name"],
            checklist=list(dict.fromkeys(item for task in specs.tasks for item in task.definition_of_done)),
        )
        for platform, specs in platform_specs
    ]

    integration_dod = None
    if strategy is not None and len(platform_specs) > 1:
        names = " ↔ ".join(PLATFORM_CONFIG[platform]["name"] for platform, _ in platform_specs)
        integration_dod = IntegrationDefinitionOfDone(
            description=f"Cross-platform verification ({names})",
            checklist=[f"E2E: {test.name}" for test in strategy.integration_tests] + list(INTEGRATION_DOD_CHECKS),
        )

    return DefinitionOfDone(platform_dod=platform_dod, integration_dod=integration_dod)


def overall_confidence(tasks: Sequence[GeneratedTask]) -> int:
    """Rounded mean of the per-task confidence scores, 0 without tasks."""
    if not tasks:
        return 0
    total = sum(TASK_CONFIDENCE_SCORES[task.confidence] for task in tasks)
    return math.floor(total / len(tasks) + 0.5)


class TaskSpecGenerator:
    """
    Turns a user story into platform-specific implementation tasks.

    Every selected platform gets its own completion call and the calls run
    concurrently; a failed platform fails the whole generation. With more
    than one platform a follow-up call proposes how the platforms integrate.
    That call is best effort: if it fails the specs carry no strategy.
    """

    name = "task generator"
    integration_name = "integration strategist"

    def __init__(self, client: LLMClient) -> None:
        self.client = client

    def build_prompt(
        self,
        story: SpecStory,
        platform: PlatformId,
        additional_context: Optional[str] = None,
        hierarchy: Optional[HierarchicalContext] = None,
    ) -> str:
        hierarchy_lines = []
        if hierarchy is not None:
            if hierarchy.project:
                hierarchy_lines.append(f"Project: {hierarchy.project.name}")
            if hierarchy.epic:
                hierarchy_lines.append(f"Epic: {hierarchy.epic.name}")
            if hierarchy.feature:
                hierarchy_lines.append(f"Feature: {hierarchy.feature.name}")

        config = PLATFORM_CONFIG[platform]
        return prompts.TASK_SPEC_PROMPT.format(
            hierarchy="\n".join(hierarchy_lines),
            persona=story.persona.value,
            priority=story.priority.value,
            feature_area=story.feature_area,
            narrative=story.narrative,
            acceptance_criteria=_criteria_section(story.acceptance_criteria),
            platform=f"{platform.value}: {config['name']} ({config['description']})",
            platform_id=platform.value,
            additional_context=f"Additional context: {additional_context}\n" if additional_context else "",
        )

    def parse(self, data: Any, platform: PlatformId) -> PlatformSpecs:
        """Validate one platform's answer. Every task is pinned to ``platform``."""
        _require_object(data, self.name, "tasks")
        tasks = data["tasks"]
        if isinstance(tasks, list):
            data = {
                **data,
                "tasks": [{**t, "platform": platform.value} if isinstance(t, dict) else t for t in tasks],
            }
        try:
            return PlatformSpecs.model_validate(data)
        except PydanticValidationError as e:
            raise MalformedResponseError(
                self.name,
                f"specs for platform {platform.value} do not match the schema",
                _validation_details(e),
            ) from e

    async def generate_platform(
        self,
        story: SpecStory,
        platform: PlatformId,
        additional_context: Optional[str] = None,
        hierarchy: Optional[HierarchicalContext] = None,
    ) -> tuple[PlatformSpecs, int]:
        prompt = self.build_prompt(story, platform, additional_context, hierarchy)
        data, response = await self.client.complete_json(
            prompts.TASK_SPEC_SYSTEM, prompt, collaborator=self.name
        )
        specs = self.parse(data, platform)
        if not specs.tasks:
            logger.warning("No tasks returned for platform", story_id=story.id, platform=platform.value)
        return specs, response.total_tokens

    def build_integration_prompt(
        self,
        story: SpecStory,
        platform_specs: Sequence[tuple[PlatformId, PlatformSpecs]],
    ) -> str:
        sections = []
        for platform, specs in platform_specs:
            outputs = [output for task in specs.tasks for output in task.outputs]
            sections.append(
                f"## {PLATFORM_CONFIG[platform]['name']} ({platform.value})\n"
                f"Tasks:\n{_bullets([f'{t.name}: {t.objective}' for t in specs.tasks])}\n"
                f"Outputs:\n{_bullets(outputs)}\n"
            )
        return prompts.INTEGRATION_STRATEGY_PROMPT.format(
            narrative=story.narrative,
            platform_summary="\n".join(sections),
        )

    def parse_integration(self, data: Any) -> IntegrationStrategy:
        if not isinstance(data, dict):
            raise MalformedResponseError(self.integration_name, "expected an object")
        try:
            return IntegrationStrategy.model_validate(data)
        except PydanticValidationError as e:
            raise MalformedResponseError(
                self.integration_name, "strategy does not match the schema", _validation_details(e)
            ) from e

    async def generate_integration_strategy(
        self,
        story: SpecStory,
        platform_specs: Sequence[tuple[PlatformId, PlatformSpecs]],
    ) -> tuple[Optional[IntegrationStrategy], int]:
        """Strategy and tokens spent; ``None`` for a single platform or a failed call."""
        if len(platform_specs) < 2:
            return None, 0

        prompt = self.build_integration_prompt(story, platform_specs)
        try:
            data, response = await self.client.complete_json(
                prompts.INTEGRATION_STRATEGY_SYSTEM, prompt, collaborator=self.integration_name
            )
            return self.parse_integration(data), response.total_tokens
        except SOFT_FAILURES as e:
            logger.warning(
                "Integration strategy unavailable",
                story_id=story.id,
                error_code=e.code,
                error=str(e),
            )
            return None, 0

    async def generate(
        self,
        story: SpecStory,
        platforms: Sequence[PlatformId],
        additional_context: Optional[str] = None,
        hierarchy: Optional[HierarchicalContext] = None,
    ) -> GeneratedSpecs:
        if not platforms:
            return GeneratedSpecs()

        results = await asyncio.gather(*(
            self.generate_platform(story, platform, additional_context, hierarchy)
            for platform in platforms
        ))
        platform_specs = [(platform, specs) for platform, (specs, _) in zip(platforms, results)]
        tokens_used = sum(tokens for _, tokens in results)

        strategy, strategy_tokens = await self.generate_integration_strategy(story, platform_specs)

        tasks = [task for _, specs in platform_specs for task in specs.tasks]
        specs = GeneratedSpecs(
            tasks=tasks,
            integration_strategy=strategy,
            definition_of_done=merge_definitions_of_done(platform_specs, strategy),
            assumptions=[a for _, s in platform_specs for a in s.assumptions],
            overall_confidence=overall_confidence(tasks),
            tokens_used=tokens_used + strategy_tokens,
        )
        logger.info(
            "Task specs generated",
            story_id=story.id,
            platforms=[p.value for p in platforms],
            tasks=len(specs.tasks),
            assumptions=len(specs.assumptions),
            has_integration_strategy=strategy is not None,
            overall_confidence=specs.overall_confidence,
        )
        return specs


class FeatureGenerator:
    """Breaks an epic down into proposed features."""

    name = "feature generator"

    def __init__(self, client: LLMClient) -> None:
        self.client = client

    def build_prompt(self, epic: Epic) -> str:
        sections = []
        if epic.description:
            sections.append(f"Description:\n{epic.description}")
        if epic.feature_areas:
            sections.append(f"Feature areas:\n{_bullets(epic.feature_areas)}")
        if epic.business_objectives:
            sections.append(f"Business objectives:\n{_bullets(epic.business_objectives)}")
        if epic.user_value:
            sections.append(f"User value:\n{epic.user_value}")
        if epic.success_metrics:
            sections.append(f"Success metrics:\n{_bullets(epic.success_metrics)}")
        if epic.technical_context:
            sections.append(f"Technical context:\n{epic.technical_context}")

        return prompts.FEATURE_GENERATOR_PROMPT.format(
            epic_name=epic.name,
            epic_context="\n\n".join(sections) + "\n" if sections else "",
        )

    def parse(self, data: Any) -> FeatureGenerationResult:
        _require_object(data, self.name, "features")
        try:
            result = FeatureGenerationResult.model_validate(data)
        except PydanticValidationError as e:
            raise MalformedResponseError(self.name, "features do not match the schema", _validation_details(e)) from e

        if not result.features:
            raise MalformedResponseError(self.name, "no features were proposed")
        result.used_fallback = False
        return result

    async def generate(self, epic: Epic) -> FeatureGenerationResult:
        data, response = await self.client.complete_json(
            prompts.FEATURE_GENERATOR_SYSTEM, self.build_prompt(epic), collaborator=self.name
        )
        result = self.parse(data)
        result.tokens_used = response.total_tokens
        logger.info("Features generated", epic_id=epic.id, count=len(result.features))
        return result
