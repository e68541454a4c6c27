"""
Readiness assessment for generated task specs.
"""

from collections.abc import Iterable

from pm_tracker.core.constants import READINESS_THRESHOLDS, AssumptionConfidence, ReadinessStatus
from pm_tracker.domain.task import Assumption, GeneratedSpecs, ReadinessReport


def readiness_status(overall_confidence: int) -> ReadinessStatus:
    """Bucket an overall confidence score (0-100)."""
    for lower_bound, status in READINESS_THRESHOLDS:
        if overall_confidence >= lower_bound:
            return status
    return ReadinessStatus.NOT_READY


def find_blockers(assumptions: Iterable[Assumption]) -> list[Assumption]:
    """Assumptions someone should confirm before work starts."""
    return [a for a in assumptions if a.confidence != AssumptionConfidence.HIGH]


def assess_readiness(specs: GeneratedSpecs) -> ReadinessReport:
    return ReadinessReport(
        status=readiness_status(specs.overall_confidence),
        overall_confidence=specs.overall_confidence,
        blockers=find_blockers(specs.assumptions),
    )
