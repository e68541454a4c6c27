"""
Pytest configuration and fixtures.
"""

from typing import Any, AsyncGenerator, Callable
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from pm_tracker.api.deps import ServiceContainer
from pm_tracker.core.config import LLMSettings, Settings
from pm_tracker.core.constants import Persona, Priority
from pm_tracker.domain.planning import Epic, Feature, Project
from pm_tracker.domain.story import CandidateStory
from pm_tracker.llm.client import LLMClient, LLMResponse
from pm_tracker.main import app


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a dummy LLM key."""
    return Settings(llm=LLMSettings(api_key="test-key"))


@pytest.fixture
def mock_llm() -> AsyncMock:
    """LLM client whose completions are scripted per test."""
    return AsyncMock(spec=LLMClient)


@pytest.fixture
def llm_reply() -> Callable[..., tuple[Any, LLMResponse]]:
    """Build a ``complete_json`` return value."""

    def _reply(data: Any, input_tokens: int = 100, output_tokens: int = 50) -> tuple[Any, LLMResponse]:
        return data, LLMResponse(
            text="",
            model="test-model",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    return _reply


@pytest.fixture
async def container(test_settings: Settings, mock_llm: AsyncMock) -> ServiceContainer:
    """
    Container seeded with one project, one epic and two features.

    ``feat-1`` holds stories US-001 and US-002, ``feat-2`` has none.
    """
    c = ServiceContainer(test_settings, llm_client=mock_llm)

    await c.projects.save(Project(id="proj-1", name="Member Portal", description="Gym member app"))
    await c.epics.save(
        Epic(id="epic-1", project_id="proj-1", name="Payments", description="Paying for things")
    )
    await c.features.save(
        Feature(
            id="feat-1",
            project_id="proj-1",
            epic_id="epic-1",
            name="Checkout",
            description="Pay for a membership",
            display_order=1,
        )
    )
    await c.features.save(
        Feature(
            id="feat-2",
            project_id="proj-1",
            epic_id="epic-1",
            name="Refunds",
            description="Get money back",
            display_order=2,
        )
    )
    await c.stories.create(
        project_id="proj-1",
        epic_id="epic-1",
        feature_id="feat-1",
        narrative="As a member, I want to pay by card so that I can renew online",
        sort_order=1,
    )
    await c.stories.create(
        project_id="proj-1",
        epic_id="epic-1",
        feature_id="feat-1",
        narrative="As a member, I want a receipt by email so that I can track spending",
        sort_order=2,
    )
    return c


@pytest.fixture
async def async_client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    app.state.container = container
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.state.container = None


@pytest.fixture
def candidates() -> list[CandidateStory]:
    """Three drafted stories for the Checkout feature."""
    return [
        CandidateStory(
            narrative="As a member, I want to pay with Apple Pay so that checkout is faster",
            priority=Priority.P0,
            acceptance_criteria=("Apple Pay button is shown on supported devices",),
        ),
        CandidateStory(
            narrative="As a member, I want to pay by credit card so that I can renew online",
            priority=Priority.P1,
        ),
        CandidateStory(
            narrative="As an admin, I want to see failed payments so that I can follow up",
            persona=Persona.ADMIN,
            priority=Priority.P2,
        ),
    ]
