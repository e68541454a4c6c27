"""
Planning hierarchy domain models: Project > Epic > Feature > UserStory.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from pm_tracker.core.constants import Persona, Priority, StoryStatus, WorkStatus
from pm_tracker.domain.story import ExistingStory


class Project(BaseModel):
    """Top-level project."""

    id: str
    name: str
    description: Optional[str] = None
    status: str = "active"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Epic(BaseModel):
    """Large body of work inside a project."""

    id: str
    project_id: str
    name: str
    description: Optional[str] = None
    feature_areas: list[str] = Field(default_factory=list)
    business_objectives: Optional[list[str]] = None
    user_value: Optional[str] = None
    success_metrics: Optional[list[str]] = None
    technical_context: Optional[str] = None
    priority: Priority = Priority.P1
    status: WorkStatus = WorkStatus.NOT_STARTED
    display_order: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Feature(BaseModel):
    """Feature sits between Epic and UserStory in the hierarchy."""

    id: str
    project_id: str
    epic_id: str
    milestone_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    priority: Priority = Priority.P1
    status: WorkStatus = WorkStatus.NOT_STARTED
    display_order: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class UserStory(BaseModel):
    """A persisted user story."""

    id: str
    project_id: str
    epic_id: Optional[str] = None
    feature_id: Optional[str] = None
    milestone_id: Optional[str] = None
    narrative: str
    persona: Persona = Persona.MEMBER
    feature_area: str = "general"
    status: StoryStatus = StoryStatus.NOT_STARTED
    priority: Priority = Priority.P1
    owner_id: Optional[str] = None
    acceptance_criteria: Optional[list[str]] = None
    sort_order: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def to_existing_story(self) -> ExistingStory:
        """Project onto the read-only view used by consolidation."""
        return ExistingStory(
            id=self.id,
            narrative=self.narrative,
            feature_id=self.feature_id,
            persona=self.persona,
            acceptance_criteria=self.acceptance_criteria,
        )


class HierarchicalContext(BaseModel):
    """Project, epic and feature a story lives under."""

    project: Optional[Project] = None
    epic: Optional[Epic] = None
    feature: Optional[Feature] = None


class GeneratedFeature(BaseModel):
    """A feature proposed for an epic, not yet persisted."""

    name: str = Field(..., min_length=1)
    description: str = ""
    priority: Priority = Priority.P1
    rationale: str = ""


class FeatureGenerationResult(BaseModel):
    """Feature generator response, or the checklist-derived fallback."""

    features: list[GeneratedFeature] = Field(default_factory=list)
    reasoning: str = ""
    used_fallback: bool = False
    tokens_used: int = 0
