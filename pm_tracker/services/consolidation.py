"""
Candidate story consolidation.

Freshly generated stories are compared against the stories already attached
to a feature. Every candidate ends up with exactly one decision:

- create_new: nothing similar exists
- merge_with_existing: overlaps an existing story; a merged narrative is proposed,
  composed from both narratives when the classifier leaves it out
- skip: duplicates an existing story

The semantic judgement itself comes from the story classifier. This module
validates what the classifier says, assembles the UI-facing result and
falls back to "create everything" whenever the comparison cannot be trusted.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from typing import Optional

from pm_tracker.core.constants import (
    NARRATIVE_PREVIEW_LENGTH,
    SIMILAR_STORY_THRESHOLD,
    SIMILARITY_MIN_WORD_LENGTH,
    SIMILARITY_STOPWORDS,
    ConsolidationAction,
    ConsolidationStatus,
)
from pm_tracker.core.exceptions import SOFT_FAILURES, MalformedResponseError
from pm_tracker.core.logging import get_logger
from pm_tracker.domain.planning import Feature
from pm_tracker.domain.story import (
    CandidateStory,
    ClassifierVerdict,
    ConsolidationDecision,
    ConsolidationInfo,
    ConsolidationResult,
    ConsolidationSummary,
    ExistingStory,
    SimilarStory,
    StoryMerge,
    StorySkip,
    StoryToCreate,
)
from pm_tracker.llm.collaborators import StoryClassifier

logger = get_logger(__name__)

COLLABORATOR = "story classifier"

_NON_WORD = re.compile(r"[^a-z0-9\s]")
_PERSONA_PREFIX = re.compile(r"^as an? \w+,?\s*")


def default_selection(decisions: Sequence[ConsolidationDecision]) -> list[int]:
    """Indices pre-selected for saving: everything that is not a duplicate."""
    return [d.index for d in decisions if d.action != ConsolidationAction.SKIP]


def _keywords(narrative: str) -> set[str]:
    cleaned = _NON_WORD.sub("", narrative.lower())
    return {
        word for word in cleaned.split()
        if len(word) >= SIMILARITY_MIN_WORD_LENGTH and word not in SIMILARITY_STOPWORDS
    }


def quick_similarity_score(first: str, second: str) -> int:
    """
    Keyword overlap of two narratives as a 0-100 score.

    Shared meaningful words over all meaningful words of both narratives;
    persona words and filler such as "want" or "that" are ignored.
    """
    words_first = _keywords(first)
    words_second = _keywords(second)
    total = len(words_first | words_second)
    if total == 0:
        return 0
    return math.floor(len(words_first & words_second) * 100 / total + 0.5)


def detect_similar_stories(
    narrative: str,
    existing: Sequence[ExistingStory],
    threshold: int = SIMILAR_STORY_THRESHOLD,
) -> list[SimilarStory]:
    """Existing stories scoring at least ``threshold``, best match first."""
    matches = []
    for story in existing:
        score = quick_similarity_score(narrative, story.narrative)
        if score >= threshold:
            matches.append(SimilarStory(story_id=story.id, narrative=story.narrative, similarity_score=score))
    matches.sort(key=lambda m: m.similarity_score, reverse=True)
    return matches


def merge_narratives(primary: str, secondary: str) -> str:
    """
    Fold ``secondary`` into ``primary`` without asking the classifier.

    The persona prefix of ``secondary`` is dropped so the result reads as
    one story: "<primary> Additionally, i want ...".
    """
    addition = _PERSONA_PREFIX.sub("", secondary.strip().lower())
    return f"{primary.strip()} Additionally, {addition}"


def create_all_new(candidates: Sequence[CandidateStory]) -> ConsolidationResult:
    """Result for a feature with no stories yet; nothing to compare against."""
    decisions = [
        ConsolidationDecision(
            index=i,
            narrative=candidate.narrative,
            action=ConsolidationAction.CREATE_NEW,
            reason="Feature has no existing stories",
        )
        for i, candidate in enumerate(candidates)
    ]
    return _assemble(candidates, decisions, {})


def fallback_consolidation(
    candidates: Sequence[CandidateStory],
    reason: str,
    existing: Sequence[ExistingStory] = (),
) -> ConsolidationResult:
    """
    Every candidate becomes ``create_new`` because the comparison was skipped.

    Keyword matches against ``existing`` are attached to each decision so
    likely duplicates can still be reviewed by hand.
    """
    decisions = [
        ConsolidationDecision(
            index=i,
            narrative=candidate.narrative,
            action=ConsolidationAction.CREATE_NEW,
            reason="Duplicate check unavailable",
            similar_to=detect_similar_stories(candidate.narrative, existing),
        )
        for i, candidate in enumerate(candidates)
    ]
    return _assemble(
        candidates,
        decisions,
        {},
        status=ConsolidationStatus.FALLBACK,
        fallback_reason=reason,
    )


def build_consolidation(
    candidates: Sequence[CandidateStory],
    existing: Sequence[ExistingStory],
    verdicts: Sequence[ClassifierVerdict],
) -> ConsolidationResult:
    """Validate classifier verdicts and build the consolidation result.

    Raises:
        MalformedResponseError: if any verdict is out of range, repeated,
            missing, carries an unknown action, or points at a story that is
            not among ``existing``.
    """
    if not existing:
        return create_all_new(candidates)

    existing_by_id = {story.id: story for story in existing}

    by_index: dict[int, ClassifierVerdict] = {}
    for verdict in verdicts:
        if not 0 <= verdict.index < len(candidates):
            raise MalformedResponseError(
                COLLABORATOR,
                f"verdict index {verdict.index} is out of range",
                {"candidates": len(candidates)},
            )
        if verdict.index in by_index:
            raise MalformedResponseError(
                COLLABORATOR, f"more than one verdict for candidate {verdict.index}"
            )
        by_index[verdict.index] = verdict

    missing = [i for i in range(len(candidates)) if i not in by_index]
    if missing:
        raise MalformedResponseError(
            COLLABORATOR, "not every candidate received a verdict", {"missing": missing}
        )

    decisions = [
        _to_decision(i, candidates[i], by_index[i], existing_by_id)
        for i in range(len(candidates))
    ]
    return _assemble(candidates, decisions, existing_by_id)


def _to_decision(
    index: int,
    candidate: CandidateStory,
    verdict: ClassifierVerdict,
    existing_by_id: dict[str, ExistingStory],
) -> ConsolidationDecision:
    try:
        action = ConsolidationAction(verdict.action)
    except ValueError:
        raise MalformedResponseError(
            COLLABORATOR,
            f"unknown action '{verdict.action}' for candidate {index}",
        ) from None

    if action == ConsolidationAction.CREATE_NEW:
        return ConsolidationDecision(
            index=index,
            narrative=candidate.narrative,
            action=action,
            reason=verdict.reason,
        )

    if verdict.existing_story_id not in existing_by_id:
        raise MalformedResponseError(
            COLLABORATOR,
            f"candidate {index} references unknown story '{verdict.existing_story_id}'",
        )

    if action == ConsolidationAction.SKIP:
        return ConsolidationDecision(
            index=index,
            narrative=candidate.narrative,
            action=action,
            duplicate_of=verdict.existing_story_id,
            reason=verdict.reason,
        )

    merged = (verdict.merged_narrative or "").strip()
    if not merged:
        merged = merge_narratives(existing_by_id[verdict.existing_story_id].narrative, candidate.narrative)
    return ConsolidationDecision(
        index=index,
        narrative=candidate.narrative,
        action=action,
        merged_with=verdict.existing_story_id,
        merged_narrative=merged,
        reason=verdict.reason,
    )


def _assemble(
    candidates: Sequence[CandidateStory],
    decisions: list[ConsolidationDecision],
    existing_by_id: dict[str, ExistingStory],
    status: ConsolidationStatus = ConsolidationStatus.SUCCESS,
    fallback_reason: Optional[str] = None,
) -> ConsolidationResult:
    to_create: list[StoryToCreate] = []
    to_merge: list[StoryMerge] = []
    to_skip: list[StorySkip] = []

    for decision in decisions:
        candidate = candidates[decision.index]
        if decision.action == ConsolidationAction.CREATE_NEW:
            to_create.append(
                StoryToCreate(
                    index=decision.index,
                    narrative=candidate.narrative,
                    persona=candidate.persona,
                    priority=candidate.priority,
                    acceptance_criteria=list(candidate.acceptance_criteria),
                    rationale=candidate.rationale,
                    consolidation_info=ConsolidationInfo(action=decision.action),
                )
            )
        elif decision.action == ConsolidationAction.MERGE_WITH_EXISTING:
            target = existing_by_id[decision.merged_with]
            to_merge.append(
                StoryMerge(
                    index=decision.index,
                    generated_narrative=candidate.narrative,
                    existing_story_id=target.id,
                    existing_narrative=target.narrative,
                    merged_narrative=decision.merged_narrative,
                    reason=decision.reason,
                )
            )
        else:
            original = existing_by_id[decision.duplicate_of]
            to_skip.append(
                StorySkip(
                    index=decision.index,
                    narrative=candidate.narrative,
                    duplicate_of=original.id,
                    duplicate_narrative=original.narrative,
                    reason=decision.reason,
                )
            )

    return ConsolidationResult(
        status=status,
        used_fallback=status == ConsolidationStatus.FALLBACK,
        fallback_reason=fallback_reason,
        decisions=decisions,
        stories_to_create=to_create,
        stories_to_merge=to_merge,
        stories_to_skip=to_skip,
        summary=ConsolidationSummary(
            total_generated=len(candidates),
            new_stories=len(to_create),
            merges_suggested=len(to_merge),
            duplicates_found=len(to_skip),
        ),
        selected_indices=default_selection(decisions),
    )


class StoryConsolidator:
    """
    Runs one consolidation pass for a feature.

    Makes a single classifier call per pass. If that call fails or its
    answer does not validate, the pass degrades to the fallback result
    instead of raising, so saving stories is never blocked by the
    duplicate check.
    """

    def __init__(self, classifier: StoryClassifier) -> None:
        self.classifier = classifier

    async def consolidate(
        self,
        feature: Feature,
        candidates: Sequence[CandidateStory],
        existing: Sequence[ExistingStory],
    ) -> ConsolidationResult:
        if not existing:
            logger.info(
                "No existing stories, creating all candidates",
                feature_id=feature.id,
                candidates=len(candidates),
            )
            return create_all_new(candidates)

        try:
            verdicts = await self.classifier.classify(feature, candidates, existing)
            result = build_consolidation(candidates, existing, verdicts)
        except SOFT_FAILURES as e:
            logger.warning(
                "Story consolidation failed, selecting all candidates",
                feature_id=feature.id,
                error_code=e.code,
                error=str(e),
            )
            return fallback_consolidation(candidates, reason=str(e), existing=existing)

        logger.info(
            "Stories consolidated",
            feature_id=feature.id,
            new_stories=result.summary.new_stories,
            merges_suggested=result.summary.merges_suggested,
            duplicates_found=result.summary.duplicates_found,
        )
        for skip in result.stories_to_skip:
            logger.debug(
                "Duplicate story skipped",
                narrative=skip.narrative[:NARRATIVE_PREVIEW_LENGTH],
                duplicate_of=skip.duplicate_of,
            )
        return result
