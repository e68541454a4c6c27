"""
AI task spec endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from pm_tracker.api.deps import get_spec_service
from pm_tracker.core.constants import DEFAULT_PRIORITY_FILTER, PRIORITY_ORDER, Priority
from pm_tracker.domain.task import GeneratedTask, SpecStory
from pm_tracker.services.spec_service import SpecService

router = APIRouter(prefix="/ai")


def _default_priorities() -> list[Priority]:
    return [p for p in PRIORITY_ORDER if p in DEFAULT_PRIORITY_FILTER]


class GenerateSpecsRequest(BaseModel):
    """Request to generate platform task specs from a user story."""

    model_config = ConfigDict(populate_by_name=True)

    user_story: SpecStory = Field(..., alias="userStory")
    selected_platforms: list[str] = Field(default_factory=list, alias="selectedPlatforms")
    additional_context: Optional[str] = Field(default=None, alias="additionalContext")
    priorities: list[Priority] = Field(default_factory=_default_priorities)


class OrganizeTasksRequest(BaseModel):
    """Request to organize an existing task batch into waves."""

    tasks: list[GeneratedTask]
    priorities: list[Priority] = Field(default_factory=_default_priorities)


@router.post("/generate-specs")
async def generate_specs(
    request: GenerateSpecsRequest,
    service: SpecService = Depends(get_spec_service),
) -> dict[str, Any]:
    """Generate platform-specific task specs from a user story."""
    result = await service.generate_specs(
        request.user_story,
        request.selected_platforms,
        additional_context=request.additional_context,
        priorities=request.priorities,
    )
    specs = result.specs
    return {
        "success": True,
        "data": specs.model_dump(mode="json"),
        "organized": result.organized.model_dump(mode="json"),
        "readiness": result.readiness.model_dump(mode="json"),
        "metadata": {
            "platforms_generated": len(set(request.selected_platforms)),
            "tasks_generated": len(specs.tasks),
            "has_integration_strategy": specs.integration_strategy is not None,
            "assumptions_count": len(specs.assumptions),
            "overall_confidence": specs.overall_confidence,
            "has_hierarchical_context": result.hierarchy is not None,
        },
    }


@router.post("/organize-tasks")
async def organize_tasks(
    request: OrganizeTasksRequest,
    service: SpecService = Depends(get_spec_service),
) -> dict[str, Any]:
    """Group a task batch by platform and readiness wave."""
    organized = service.organize(request.tasks, request.priorities)
    return {"success": True, "data": organized.model_dump(mode="json")}

