"""
AI user story endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from pm_tracker.api.deps import get_metrics, get_story_service
from pm_tracker.core.constants import Persona
from pm_tracker.domain.story import CandidateStory
from pm_tracker.services.metrics import GenerationMetrics
from pm_tracker.services.story_service import StoryService

router = APIRouter(prefix="/ai")


# Request models
class GenerateFeaturesRequest(BaseModel):
    """Request to propose features for an epic."""

    model_config = ConfigDict(populate_by_name=True)

    epic_id: str = Field(..., alias="epicId", min_length=1)


class GenerateStoriesRequest(BaseModel):
    """Request to draft stories for a feature."""

    model_config = ConfigDict(populate_by_name=True)

    feature_id: str = Field(..., alias="featureId", min_length=1)
    additional_instructions: Optional[str] = Field(default=None, alias="additionalInstructions")


class ConsolidateStoriesRequest(BaseModel):
    """Request to check drafted stories against a feature's stories."""

    model_config = ConfigDict(populate_by_name=True)

    feature_id: str = Field(..., alias="featureId", min_length=1)
    generated_stories: list[CandidateStory] = Field(..., alias="generatedStories")


class CategorizeStoryRequest(BaseModel):
    """Request to find the feature a story belongs to."""

    model_config = ConfigDict(populate_by_name=True)

    epic_id: str = Field(..., alias="epicId", min_length=1)
    narrative: str
    persona: Persona = Persona.MEMBER
    acceptance_criteria: Optional[list[str]] = None


class SaveStoriesRequest(BaseModel):
    """Request to persist the drafted stories the user kept."""

    model_config = ConfigDict(populate_by_name=True)

    feature_id: str = Field(..., alias="featureId", min_length=1)
    stories: list[CandidateStory]
    selected_indices: list[int] = Field(..., alias="selectedIndices")
    total_generated: Optional[int] = Field(default=None, alias="totalGenerated", ge=0)
    tokens_used: int = Field(default=0, alias="tokensUsed", ge=0)


def _envelope(data: Any, metadata: dict[str, Any]) -> dict[str, Any]:
    return {"success": True, "data": data, "metadata": metadata}


@router.post("/generate-features")
async def generate_features(
    request: GenerateFeaturesRequest,
    service: StoryService = Depends(get_story_service),
) -> dict[str, Any]:
    """Propose features for an Epic using AI, with a checklist fallback."""
    result, metadata = await service.generate_features(request.epic_id)
    return _envelope(result.model_dump(mode="json"), metadata)


@router.post("/generate-stories")
async def generate_stories(
    request: GenerateStoriesRequest,
    service: StoryService = Depends(get_story_service),
) -> dict[str, Any]:
    """Generate user stories for a Feature using AI."""
    result, metadata = await service.generate_stories(
        request.feature_id, request.additional_instructions
    )
    return _envelope(result.model_dump(mode="json"), metadata)


@router.post("/consolidate-stories")
async def consolidate_stories(
    request: ConsolidateStoriesRequest,
    service: StoryService = Depends(get_story_service),
) -> dict[str, Any]:
    """
    Analyze generated stories against existing ones for duplicates and overlap.

    A comparison that could not run still answers 200, with
    ``used_fallback`` set and every story selected.
    """
    result, metadata = await service.consolidate_stories(
        request.feature_id, request.generated_stories
    )
    return _envelope(result.model_dump(mode="json"), metadata)


@router.post("/categorize-story")
async def categorize_story(
    request: CategorizeStoryRequest,
    service: StoryService = Depends(get_story_service),
) -> dict[str, Any]:
    """Suggest which Feature of an Epic a story belongs to."""
    result, metadata = await service.categorize_story(
        request.epic_id,
        request.narrative,
        request.persona,
        request.acceptance_criteria,
    )
    return _envelope(result.model_dump(mode="json"), metadata)


@router.post("/save-stories")
async def save_stories(
    request: SaveStoriesRequest,
    service: StoryService = Depends(get_story_service),
) -> JSONResponse:
    """
    Save the selected drafted stories.

    Answers 207 when only some of the stories could be written.
    """
    report = await service.save_stories(
        request.feature_id,
        request.stories,
        request.selected_indices,
        total_generated=request.total_generated,
        tokens_used=request.tokens_used,
    )
    data = {
        "created_ids": report.created_ids,
        "failures": [f.model_dump(mode="json") for f in report.failures],
        "requested": report.requested,
        "all_saved": report.all_saved,
        "partial": report.partial,
    }
    return JSONResponse(
        status_code=200 if report.all_saved else 207,
        content={
            "success": report.all_saved,
            "data": data,
            "metadata": {"feature_id": request.feature_id},
        },
    )


@router.get("/metrics")
async def generation_metrics(
    metrics: GenerationMetrics = Depends(get_metrics),
) -> dict[str, Any]:
    """AI story generation usage statistics."""
    return {"success": True, "data": metrics.snapshot()}
