"""
Implementation task domain models produced by the task spec generator.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from pm_tracker.core.constants import (
    AssumptionCategory,
    AssumptionConfidence,
    Persona,
    PlatformId,
    Priority,
    ReadinessStatus,
    Wave,
)


class SpecStory(BaseModel):
    """The user story task specs are generated for."""

    id: str = "NEW"
    narrative: str = ""
    persona: Persona = Persona.MEMBER
    feature_area: str = "general"
    acceptance_criteria: Optional[list[str]] = None
    priority: Priority = Priority.P1

    @property
    def is_persisted(self) -> bool:
        return bool(self.id) and self.id != "NEW"


class GeneratedTask(BaseModel):
    """One platform-specific implementation task."""

    name: str = Field(..., min_length=1)
    platform: PlatformId
    priority: Priority = Priority.P1
    dependencies: list[str] = Field(
        default_factory=list,
        description="Names of other tasks in the same batch this task waits on",
    )
    estimate: str = ""
    confidence: AssumptionConfidence = AssumptionConfidence.MEDIUM
    objective: str = ""
    implementation_steps: list[str] = Field(default_factory=list)
    outputs: list[str] = Field(default_factory=list)
    definition_of_done: list[str] = Field(default_factory=list)
    files_to_modify: list[str] = Field(default_factory=list)
    testing_notes: Optional[str] = None

    @field_validator(
        "dependencies",
        "implementation_steps",
        "outputs",
        "definition_of_done",
        "files_to_modify",
        mode="before",
    )
    @classmethod
    def null_list_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class TaskWithWave(GeneratedTask):
    """A generated task annotated with its readiness tier."""

    wave: Wave
    wave_number: int = Field(..., ge=1, le=3)


class Assumption(BaseModel):
    """An assumption the generator made while writing the specs."""

    category: AssumptionCategory = AssumptionCategory.ARCHITECTURE
    assumption: str
    confidence: AssumptionConfidence = AssumptionConfidence.MEDIUM
    rationale: str = ""
    alternatives: list[str] = Field(default_factory=list)


# =============================================================================
# Integration
# =============================================================================


class ApiContract(BaseModel):
    """An endpoint two or more platforms must agree on."""

    endpoint: str
    method: str = "GET"
    platforms: list[PlatformId] = Field(default_factory=list)
    request_schema: Optional[str] = None
    response_schema: Optional[str] = None


class SharedType(BaseModel):
    name: str
    definition: str = ""
    used_by: list[PlatformId] = Field(default_factory=list)


class IntegrationStep(BaseModel):
    """One step of the order in which platforms come online."""

    order: int
    platform: PlatformId
    dependency: Optional[PlatformId] = None
    deliverable: str = ""


class IntegrationTest(BaseModel):
    name: str
    platforms_involved: list[PlatformId] = Field(default_factory=list)
    test_scenario: str = ""


class IntegrationStrategy(BaseModel):
    """How separately generated platform tasks fit together."""

    api_contracts: list[ApiContract] = Field(default_factory=list)
    shared_types: list[SharedType] = Field(default_factory=list)
    integration_sequence: list[IntegrationStep] = Field(default_factory=list)
    integration_tests: list[IntegrationTest] = Field(default_factory=list)


class PlatformDefinitionOfDone(BaseModel):
    platform: PlatformId
    platform_name: str
    checklist: list[str] = Field(default_factory=list)


class IntegrationDefinitionOfDone(BaseModel):
    description: str
    checklist: list[str] = Field(default_factory=list)


class DefinitionOfDone(BaseModel):
    """Per-platform checklists plus the cross-platform one, if any."""

    platform_dod: list[PlatformDefinitionOfDone] = Field(default_factory=list)
    integration_dod: Optional[IntegrationDefinitionOfDone] = None


class PlatformSpecs(BaseModel):
    """Task spec generator response for a single platform."""

    tasks: list[GeneratedTask] = Field(default_factory=list)
    assumptions: list[Assumption] = Field(default_factory=list)

    @field_validator("tasks", "assumptions", mode="before")
    @classmethod
    def null_list_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class GeneratedSpecs(BaseModel):
    """Task specs for every selected platform."""

    tasks: list[GeneratedTask] = Field(default_factory=list)
    integration_strategy: Optional[IntegrationStrategy] = None
    definition_of_done: DefinitionOfDone = Field(default_factory=DefinitionOfDone)
    assumptions: list[Assumption] = Field(default_factory=list)
    overall_confidence: int = Field(default=0, ge=0, le=100)
    tokens_used: int = 0


class PlatformGroup(BaseModel):
    """Tasks of one platform, bucketed by wave in display order."""

    platform: PlatformId
    platform_name: str
    waves: dict[Wave, list[TaskWithWave]] = Field(default_factory=dict)

    @property
    def task_count(self) -> int:
        return sum(len(tasks) for tasks in self.waves.values())


class OrganizedTasks(BaseModel):
    """Progressive-disclosure view of a task batch."""

    groups: list[PlatformGroup] = Field(default_factory=list)
    priority_filter: list[Priority] = Field(default_factory=list)
    priority_counts: dict[Priority, int] = Field(default_factory=dict)
    wave_counts: dict[Wave, int] = Field(default_factory=dict)
    shown: int = 0
    total: int = 0


class ReadinessReport(BaseModel):
    """How ready a spec set is to be picked up."""

    status: ReadinessStatus
    overall_confidence: int
    blockers: list[Assumption] = Field(default_factory=list)
