"""
Tests for candidate story consolidation.
"""

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from pm_tracker.core.constants import ConsolidationAction, ConsolidationStatus
from pm_tracker.core.exceptions import ConfigurationError, LLMError, MalformedResponseError, TimeoutError
from pm_tracker.domain.planning import Feature
from pm_tracker.domain.story import (
    ClassifierVerdict,
    ConsolidationResult,
    ConsolidationSummary,
    ExistingStory,
)
from pm_tracker.services.consolidation import (
    StoryConsolidator,
    build_consolidation,
    detect_similar_stories,
    fallback_consolidation,
    merge_narratives,
    quick_similarity_score,
)


@pytest.fixture
def feature():
    return Feature(id="feat-1", project_id="proj-1", epic_id="epic-1", name="Checkout")


@pytest.fixture
def existing():
    return [
        ExistingStory(id="US-001", narrative="As a member, I want to pay by card so that I can renew online"),
        ExistingStory(id="US-002", narrative="As a member, I want a receipt so that I can track spending"),
    ]


@pytest.fixture
def verdicts():
    return [
        ClassifierVerdict(index=0, action="create_new", reason="Apple Pay is not covered"),
        ClassifierVerdict(index=1, action="skip", existing_story_id="US-001", reason="Same as card payment"),
        ClassifierVerdict(
            index=2,
            action="merge_with_existing",
            existing_story_id="US-002",
            merged_narrative="As a member, I want receipts and failed payment alerts",
            reason="Both cover payment follow-up",
        ),
    ]


def assert_covers_every_candidate(result, total):
    summary = result.summary
    assert summary.total_generated == total
    assert summary.new_stories + summary.merges_suggested + summary.duplicates_found == total
    assert sorted(d.index for d in result.decisions) == list(range(total))


class TestBuildConsolidation:

    def test_mixed_verdicts(self, candidates, existing, verdicts):
        result = build_consolidation(candidates, existing, verdicts)

        assert result.status == ConsolidationStatus.SUCCESS
        assert result.used_fallback is False
        assert_covers_every_candidate(result, 3)
        assert [s.index for s in result.stories_to_create] == [0]
        assert result.stories_to_skip[0].duplicate_of == "US-001"
        assert result.stories_to_skip[0].duplicate_narrative == existing[0].narrative

        merge = result.stories_to_merge[0]
        assert merge.existing_story_id == "US-002"
        assert merge.existing_narrative == existing[1].narrative
        assert merge.generated_narrative == candidates[2].narrative
        assert merge.merged_narrative.startswith("As a member, I want receipts")

    def test_skipped_stories_are_not_selected(self, candidates, existing, verdicts):
        result = build_consolidation(candidates, existing, verdicts)

        assert result.selected_indices == [0, 2]

    def test_verdict_order_does_not_matter(self, candidates, existing, verdicts):
        result = build_consolidation(candidates, existing, list(reversed(verdicts)))

        assert [d.index for d in result.decisions] == [0, 1, 2]

    def test_no_existing_stories_creates_everything(self, candidates):
        result = build_consolidation(candidates, [], [])

        assert result.status == ConsolidationStatus.SUCCESS
        assert all(d.action == ConsolidationAction.CREATE_NEW for d in result.decisions)
        assert result.selected_indices == [0, 1, 2]

    def test_create_keeps_candidate_fields(self, candidates, existing, verdicts):
        result = build_consolidation(candidates, existing, verdicts)

        created = result.stories_to_create[0]
        assert created.priority == candidates[0].priority
        assert created.acceptance_criteria == list(candidates[0].acceptance_criteria)
        assert created.consolidation_info.action == ConsolidationAction.CREATE_NEW

    @pytest.mark.parametrize(
        "bad_verdict",
        [
            ClassifierVerdict(index=5, action="create_new"),
            ClassifierVerdict(index=-1, action="create_new"),
            ClassifierVerdict(index=0, action="create_new"),
            ClassifierVerdict(index=2, action="rewrite"),
            ClassifierVerdict(index=2, action="skip", existing_story_id="US-999"),
            ClassifierVerdict(index=2, action="skip"),
            ClassifierVerdict(index=2, action="merge_with_existing", existing_story_id="US-999"),
        ],
        ids=[
            "index-too-high",
            "negative-index",
            "duplicate-index",
            "unknown-action",
            "unknown-story",
            "skip-without-story",
            "merge-with-unknown-story",
        ],
    )
    def test_malformed_verdicts(self, candidates, existing, verdicts, bad_verdict):
        with pytest.raises(MalformedResponseError):
            build_consolidation(candidates, existing, verdicts[:2] + [bad_verdict])

    @pytest.mark.parametrize("merged_narrative", [None, "  "])
    def test_merge_without_narrative_is_composed(self, candidates, existing, verdicts, merged_narrative):
        verdict = ClassifierVerdict(
            index=2,
            action="merge_with_existing",
            existing_story_id="US-002",
            merged_narrative=merged_narrative,
        )

        result = build_consolidation(candidates, existing, verdicts[:2] + [verdict])

        assert result.stories_to_merge[0].merged_narrative == (
            "As a member, I want a receipt so that I can track spending "
            "Additionally, i want to see failed payments so that i can follow up"
        )

    def test_missing_verdict(self, candidates, existing, verdicts):
        with pytest.raises(MalformedResponseError) as exc_info:
            build_consolidation(candidates, existing, verdicts[:2])

        assert exc_info.value.details["missing"] == [2]


class TestFallbackConsolidation:

    def test_everything_is_created_and_selected(self, candidates):
        result = fallback_consolidation(candidates, reason="LLM error: HTTP 500")

        assert result.status == ConsolidationStatus.FALLBACK
        assert result.used_fallback is True
        assert result.fallback_reason == "LLM error: HTTP 500"
        assert_covers_every_candidate(result, 3)
        assert result.summary.new_stories == 3
        assert result.selected_indices == [0, 1, 2]

    def test_keyword_matches_are_offered_for_review(self, candidates, existing):
        result = fallback_consolidation(candidates, reason="LLM error: HTTP 500", existing=existing)

        assert result.decisions[0].similar_to == []
        assert [m.story_id for m in result.decisions[1].similar_to] == ["US-001"]
        assert result.decisions[1].similar_to[0].similarity_score == 75
        assert result.decisions[2].similar_to == []
        assert result.selected_indices == [0, 1, 2]


class TestSimilarity:

    def test_quick_similarity_score(self):
        score = quick_similarity_score(
            "As a member, I want to pay by credit card so that I can renew online",
            "As a member, I want to pay by card so that I can renew online",
        )

        assert score == 75

    def test_identical_narratives(self):
        narrative = "As a member, I want to book classes online"

        assert quick_similarity_score(narrative, narrative) == 100

    def test_filler_only_scores_zero(self):
        assert quick_similarity_score("As a member, I want that", "As a user, I want this") == 0

    def test_punctuation_and_case_are_ignored(self):
        assert quick_similarity_score("Cancel BOOKING!", "cancel booking") == 100

    def test_detect_similar_stories_orders_best_first(self, existing):
        more = [
            ExistingStory(id="US-003", narrative="As a member, I want to renew my plan online"),
        ] + existing

        matches = detect_similar_stories(
            "As a member, I want to pay by card so that I can renew online", more
        )

        assert [m.story_id for m in matches] == ["US-001", "US-003"]
        assert matches[0].similarity_score == 100

    def test_detect_similar_stories_respects_threshold(self, existing):
        narrative = "As a member, I want to pay by credit card so that I can renew online"

        assert detect_similar_stories(narrative, existing, threshold=80) == []
        assert len(detect_similar_stories(narrative, existing, threshold=75)) == 1

    def test_merge_narratives_drops_persona_prefix(self):
        merged = merge_narratives(
            "As a member, I want to cancel a booking",
            "As an admin, I want a cancellation email sent",
        )

        assert merged == "As a member, I want to cancel a booking Additionally, i want a cancellation email sent"


class TestConsolidationResultInvariants:

    def test_counts_must_add_up(self):
        with pytest.raises(PydanticValidationError):
            ConsolidationResult(summary=ConsolidationSummary(total_generated=2, new_stories=1))

    def test_fallback_flag_must_match_status(self):
        with pytest.raises(PydanticValidationError):
            ConsolidationResult(status=ConsolidationStatus.FALLBACK, used_fallback=False)


class TestStoryConsolidator:

    @pytest.fixture
    def classifier(self):
        return AsyncMock()

    @pytest.fixture
    def consolidator(self, classifier):
        return StoryConsolidator(classifier)

    @pytest.mark.asyncio
    async def test_uses_classifier_verdicts(self, consolidator, classifier, feature, candidates, existing, verdicts):
        classifier.classify.return_value = verdicts

        result = await consolidator.consolidate(feature, candidates, existing)

        classifier.classify.assert_awaited_once_with(feature, candidates, existing)
        assert result.used_fallback is False
        assert result.summary.duplicates_found == 1

    @pytest.mark.asyncio
    async def test_no_existing_stories_skips_classifier(self, consolidator, classifier, feature, candidates):
        result = await consolidator.consolidate(feature, candidates, [])

        classifier.classify.assert_not_awaited()
        assert result.used_fallback is False
        assert result.summary.new_stories == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            LLMError("HTTP 500"),
            TimeoutError("llm_completion", 120),
            MalformedResponseError("story classifier", "invalid JSON"),
            ConfigurationError("LLM_API_KEY is not set"),
        ],
    )
    async def test_classifier_failure_falls_back(self, consolidator, classifier, feature, candidates, existing, error):
        classifier.classify.side_effect = error

        result = await consolidator.consolidate(feature, candidates, existing)

        assert result.used_fallback is True
        assert result.status == ConsolidationStatus.FALLBACK
        assert result.selected_indices == [0, 1, 2]
        assert classifier.classify.await_count == 1

    @pytest.mark.asyncio
    async def test_invalid_verdicts_fall_back(self, consolidator, classifier, feature, candidates, existing):
        classifier.classify.return_value = [ClassifierVerdict(index=0, action="create_new")]

        result = await consolidator.consolidate(feature, candidates, existing)

        assert result.used_fallback is True
        assert "verdict" in result.fallback_reason

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, consolidator, classifier, feature, candidates, existing):
        classifier.classify.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await consolidator.consolidate(feature, candidates, existing)


def test_single_candidate_without_existing_stories(candidates):
    result = build_consolidation(candidates[:1], [], [])

    assert len(result.decisions) == 1
    assert result.decisions[0].action == ConsolidationAction.CREATE_NEW
    assert result.summary.model_dump() == {
        "total_generated": 1,
        "new_stories": 1,
        "merges_suggested": 0,
        "duplicates_found": 0,
    }
    assert result.selected_indices == [0]
