"""
Tests for AI generation metrics.
"""

from datetime import datetime

import pytest

from pm_tracker.services.metrics import GenerationMetrics


@pytest.fixture
def metrics():
    return GenerationMetrics()


def test_record_generation(metrics):
    metrics.record_generation(stories_generated=5, stories_accepted=3, tokens_used=1200)
    metrics.record_generation(stories_generated=4, stories_accepted=4)

    assert metrics.total_generations == 2
    assert metrics.total_stories_generated == 9
    assert metrics.total_stories_accepted == 7
    assert metrics.total_stories_rejected == 2
    assert metrics.total_tokens_used == 1200
    assert metrics.acceptance_rate == 77.8


def test_generations_are_bucketed_by_day(metrics):
    metrics.record_generation(5, 2, at=datetime(2026, 3, 1, 9, 0))
    metrics.record_generation(3, 3, at=datetime(2026, 3, 1, 17, 30))
    metrics.record_generation(4, 1, at=datetime(2026, 3, 2, 8, 0))

    day = metrics.generations_by_date["2026-03-01"]
    assert (day.count, day.stories, day.accepted) == (2, 8, 5)
    assert metrics.generations_by_date["2026-03-02"].count == 1
    assert metrics.last_generation_at == datetime(2026, 3, 2, 8, 0)


def test_acceptance_rate_without_generations(metrics):
    assert metrics.acceptance_rate == 0.0


@pytest.mark.parametrize("generated,accepted", [(-1, 0), (2, -1), (2, 3)])
def test_invalid_counts_are_rejected(metrics, generated, accepted):
    with pytest.raises(ValueError):
        metrics.record_generation(generated, accepted)

    assert metrics.total_generations == 0


def test_snapshot(metrics):
    metrics.record_generation(4, 2, tokens_used=500, at=datetime(2026, 3, 1, 12, 0))

    snapshot = metrics.snapshot()

    assert snapshot["acceptance_rate"] == 50.0
    assert snapshot["last_generation_at"] == "2026-03-01T12:00:00"
    assert snapshot["generations_by_date"]["2026-03-01"] == {"count": 1, "stories": 4, "accepted": 2}


def test_reset(metrics):
    metrics.record_generation(4, 2)

    metrics.reset()

    assert metrics.snapshot() == GenerationMetrics().snapshot()
