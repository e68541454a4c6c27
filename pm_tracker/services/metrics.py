"""
AI generation metrics.

Counts how many stories the generator produced and how many of them users
actually kept. The tracker is owned by the service container, so it lives
and dies with the application rather than with the module.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from pm_tracker.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DailyGenerationStats:
    count: int = 0
    stories: int = 0
    accepted: int = 0


@dataclass
class GenerationMetrics:
    """Running totals for story generation."""

    total_generations: int = 0
    total_stories_generated: int = 0
    total_stories_accepted: int = 0
    total_stories_rejected: int = 0
    total_tokens_used: int = 0
    last_generation_at: Optional[datetime] = None
    generations_by_date: dict[str, DailyGenerationStats] = field(default_factory=dict)

    def record_generation(
        self,
        stories_generated: int,
        stories_accepted: int,
        tokens_used: int = 0,
        at: Optional[datetime] = None,
    ) -> None:
        """Record one generate-then-save round."""
        if stories_generated < 0 or stories_accepted < 0:
            raise ValueError("story counts must not be negative")
        if stories_accepted > stories_generated:
            raise ValueError("cannot accept more stories than were generated")

        at = at or datetime.utcnow()
        day = at.date().isoformat()

        self.total_generations += 1
        self.total_stories_generated += stories_generated
        self.total_stories_accepted += stories_accepted
        self.total_stories_rejected += stories_generated - stories_accepted
        self.total_tokens_used += tokens_used
        self.last_generation_at = at

        daily = self.generations_by_date.setdefault(day, DailyGenerationStats())
        daily.count += 1
        daily.stories += stories_generated
        daily.accepted += stories_accepted

        logger.debug(
            "Generation recorded",
            stories_generated=stories_generated,
            stories_accepted=stories_accepted,
        )

    @property
    def acceptance_rate(self) -> float:
        """Share of generated stories that were saved, as a percentage."""
        if self.total_stories_generated == 0:
            return 0.0
        return round(self.total_stories_accepted / self.total_stories_generated * 100, 1)

    def snapshot(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_generation_at"] = (
            self.last_generation_at.isoformat() if self.last_generation_at else None
        )
        data["acceptance_rate"] = self.acceptance_rate
        return data

    def reset(self) -> None:
        self.total_generations = 0
        self.total_stories_generated = 0
        self.total_stories_accepted = 0
        self.total_stories_rejected = 0
        self.total_tokens_used = 0
        self.last_generation_at = None
        self.generations_by_date = {}
