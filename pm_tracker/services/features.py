"""
Feature planning helpers for epics.

When the feature generator cannot be used, features are derived from the
epic's own checklist so the user always has something to edit.
"""

from __future__ import annotations

from pm_tracker.core.constants import FALLBACK_FEATURE_REASONING, Priority
from pm_tracker.domain.planning import Epic, FeatureGenerationResult, GeneratedFeature


def has_feature_context(epic: Epic) -> bool:
    """Whether the epic says enough for the generator to work with."""
    return bool(epic.feature_areas or epic.description or epic.business_objectives)


def fallback_priority(position: int, total: int) -> Priority:
    """The first area is P0, the last two are P2, the rest P1."""
    if position == 0:
        return Priority.P0
    if position >= total - 2:
        return Priority.P2
    return Priority.P1


def fallback_features(epic: Epic) -> FeatureGenerationResult:
    """One feature per feature area, or a single feature named after the epic."""
    areas = [area.strip() for area in epic.feature_areas if area.strip()]
    if areas:
        features = [
            GeneratedFeature(
                name=area,
                description=f"Feature for {area.lower()} functionality",
                priority=fallback_priority(i, len(areas)),
                rationale="Derived from epic feature checklist",
            )
            for i, area in enumerate(areas)
        ]
    elif epic.name:
        features = [
            GeneratedFeature(
                name=epic.name,
                description=epic.description or f"Core functionality for {epic.name}",
                priority=Priority.P1,
                rationale="Created from epic name as no feature areas were specified",
            )
        ]
    else:
        features = []

    return FeatureGenerationResult(
        features=features,
        reasoning=FALLBACK_FEATURE_REASONING,
        used_fallback=True,
    )
