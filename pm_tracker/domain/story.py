"""
Story domain models used by generation, consolidation and categorization.

Candidate stories are request-scoped: they come back from the story
generator, get compared against the feature's existing stories, and only
the subset the user accepts is ever persisted.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pm_tracker.core.constants import (
    CategorizationRecommendation,
    ConsolidationAction,
    ConsolidationStatus,
    Persona,
    Priority,
)


class CandidateStory(BaseModel):
    """A user story draft produced by the story generator."""

    model_config = ConfigDict(frozen=True)

    narrative: str = Field(..., min_length=1)
    persona: Persona = Persona.MEMBER
    priority: Priority = Priority.P1
    acceptance_criteria: tuple[str, ...] = ()
    rationale: str = ""


class ExistingStory(BaseModel):
    """Read-only view of a story already attached to the target feature."""

    id: str
    narrative: str
    feature_id: Optional[str] = None
    persona: Optional[Persona] = None
    acceptance_criteria: Optional[list[str]] = None


class GeneratedStories(BaseModel):
    """Story generator response."""

    stories: list[CandidateStory]
    feature_context: str = ""
    generation_notes: list[str] = Field(default_factory=list)
    tokens_used: int = 0


# =============================================================================
# Consolidation
# =============================================================================


class ClassifierVerdict(BaseModel):
    """The semantic classifier's raw answer for one candidate."""

    index: int
    action: str
    existing_story_id: Optional[str] = None
    merged_narrative: Optional[str] = None
    reason: str = ""


class SimilarStory(BaseModel):
    """An existing story whose wording overlaps a candidate's."""

    story_id: str
    narrative: str
    similarity_score: int = Field(..., ge=0, le=100)


class ConsolidationDecision(BaseModel):
    """Validated decision for one candidate story."""

    index: int
    narrative: str
    action: ConsolidationAction
    duplicate_of: Optional[str] = None
    merged_with: Optional[str] = None
    merged_narrative: Optional[str] = None
    reason: str = ""
    similar_to: list[SimilarStory] = Field(
        default_factory=list,
        description="Keyword matches offered for review when the duplicate check was unavailable",
    )


class ConsolidationInfo(BaseModel):
    action: ConsolidationAction = ConsolidationAction.CREATE_NEW
    merged_with: list[str] = Field(default_factory=list)


class StoryToCreate(BaseModel):
    """A candidate that should be created as a brand new story."""

    index: int
    narrative: str
    persona: Persona
    priority: Priority
    acceptance_criteria: list[str] = Field(default_factory=list)
    rationale: str = ""
    consolidation_info: ConsolidationInfo = Field(default_factory=ConsolidationInfo)


class StoryMerge(BaseModel):
    """A candidate that overlaps an existing story and could be folded into it."""

    index: int
    generated_narrative: str
    existing_story_id: str
    existing_narrative: str
    merged_narrative: str
    reason: str = ""


class StorySkip(BaseModel):
    """A candidate that duplicates an existing story."""

    index: int
    narrative: str
    duplicate_of: str
    duplicate_narrative: str
    reason: str = ""


class ConsolidationSummary(BaseModel):
    total_generated: int = 0
    new_stories: int = 0
    merges_suggested: int = 0
    duplicates_found: int = 0


class ConsolidationResult(BaseModel):
    """UI-facing outcome of one consolidation pass.

    ``status`` is ``fallback`` when the comparison could not be performed and
    every candidate was defaulted to ``create_new``; callers should warn the
    user that duplicates were not checked.
    """

    status: ConsolidationStatus = ConsolidationStatus.SUCCESS
    used_fallback: bool = False
    fallback_reason: Optional[str] = None
    decisions: list[ConsolidationDecision] = Field(default_factory=list)
    stories_to_create: list[StoryToCreate] = Field(default_factory=list)
    stories_to_merge: list[StoryMerge] = Field(default_factory=list)
    stories_to_skip: list[StorySkip] = Field(default_factory=list)
    summary: ConsolidationSummary = Field(default_factory=ConsolidationSummary)
    selected_indices: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_coverage(self) -> "ConsolidationResult":
        summary = self.summary
        if summary.new_stories + summary.merges_suggested + summary.duplicates_found != summary.total_generated:
            raise ValueError("summary counts must add up to total_generated")
        if len(self.decisions) != summary.total_generated:
            raise ValueError("exactly one decision per generated story is required")
        if self.used_fallback != (self.status == ConsolidationStatus.FALLBACK):
            raise ValueError("used_fallback must match a fallback status")
        return self


# =============================================================================
# Categorization
# =============================================================================


class NewFeatureSuggestion(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    priority: Priority = Priority.P1


class FeatureAlternative(BaseModel):
    feature_id: str
    feature_name: str = ""
    confidence: int = Field(default=0, ge=0, le=100)
    reasoning: str = ""


class CategorizationResult(BaseModel):
    """Which feature (existing or new) a story belongs to."""

    recommendation: CategorizationRecommendation
    confidence: int = Field(..., ge=0, le=100)
    reasoning: str = ""
    suggested_feature_id: Optional[str] = None
    suggested_feature_name: Optional[str] = None
    new_feature_suggestion: Optional[NewFeatureSuggestion] = None
    alternatives: list[FeatureAlternative] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_recommendation_payload(self) -> "CategorizationResult":
        if self.recommendation == CategorizationRecommendation.EXISTING and not self.suggested_feature_id:
            raise ValueError("an 'existing' recommendation requires suggested_feature_id")
        if self.recommendation == CategorizationRecommendation.NEW and self.new_feature_suggestion is None:
            raise ValueError("a 'new' recommendation requires new_feature_suggestion")
        return self


# =============================================================================
# Saving
# =============================================================================


class StorySaveOutcome(BaseModel):
    """Result of writing one selected candidate."""

    index: int
    narrative: str
    story_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchSaveReport(BaseModel):
    """Per-item results of a multi-story save."""

    feature_id: str
    requested: int = 0
    outcomes: list[StorySaveOutcome] = Field(default_factory=list)

    @property
    def created_ids(self) -> list[str]:
        return [o.story_id for o in self.outcomes if o.ok and o.story_id]

    @property
    def failures(self) -> list[StorySaveOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def all_saved(self) -> bool:
        return not self.failures and len(self.outcomes) == self.requested

    @property
    def partial(self) -> bool:
        return bool(self.created_ids) and bool(self.failures)
