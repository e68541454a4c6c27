"""
Task wave classification and grouping.

A wave is a coarse execution-order tier for one batch of generated tasks:

- ready (1): none of the task's dependencies name another task in the batch
- blocked (2): one or two dependencies name tasks in the batch
- later (3): more than two do

Only the raw count of in-batch dependency names matters. A dependency name
that is not in the batch (already shipped, other story, typo) counts as
satisfied, and a task's wave never depends on the waves of the tasks it waits
on. A task listing its own name counts that entry like any other.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from pm_tracker.core.constants import (
    BLOCKED_MAX_DEPENDENCIES,
    DEFAULT_PRIORITY_FILTER,
    PLATFORM_CONFIG,
    PLATFORM_ORDER,
    PRIORITY_ORDER,
    WAVE_NUMBERS,
    WAVE_ORDER,
    PlatformId,
    Priority,
    Wave,
)
from pm_tracker.core.exceptions import InvalidRequestError
from pm_tracker.domain.task import GeneratedTask, OrganizedTasks, PlatformGroup, TaskWithWave


def classify_wave(unresolved_count: int) -> Wave:
    """Map a count of in-batch dependencies to a wave."""
    if unresolved_count == 0:
        return Wave.READY
    if unresolved_count <= BLOCKED_MAX_DEPENDENCIES:
        return Wave.BLOCKED
    return Wave.LATER


def unresolved_dependencies(task: GeneratedTask, batch_names: set[str]) -> list[str]:
    """Dependencies of ``task`` that name a task in the same batch."""
    return [name for name in task.dependencies if name in batch_names]


def calculate_waves(tasks: Sequence[GeneratedTask]) -> list[TaskWithWave]:
    """Annotate every task in the batch with its wave.

    Returns new objects in input order; the input tasks are left untouched.
    """
    batch_names = {task.name for task in tasks}

    annotated = []
    for task in tasks:
        wave = classify_wave(len(unresolved_dependencies(task, batch_names)))
        annotated.append(
            TaskWithWave(
                **task.model_dump(),
                wave=wave,
                wave_number=WAVE_NUMBERS[wave],
            )
        )
    return annotated


def group_tasks(tasks: Iterable[TaskWithWave]) -> list[PlatformGroup]:
    """Group tasks by platform, then by wave, both in fixed display order.

    Platforms and waves without tasks are omitted. Task order inside a bucket
    follows the input order.
    """
    buckets: dict[PlatformId, dict[Wave, list[TaskWithWave]]] = {}
    for task in tasks:
        buckets.setdefault(task.platform, {}).setdefault(task.wave, []).append(task)

    groups = []
    for platform in PLATFORM_ORDER:
        if platform not in buckets:
            continue
        by_wave = buckets[platform]
        groups.append(
            PlatformGroup(
                platform=platform,
                platform_name=PLATFORM_CONFIG[platform]["name"],
                waves={wave: by_wave[wave] for wave in WAVE_ORDER if wave in by_wave},
            )
        )
    return groups


def filter_by_priority(
    tasks: Iterable[TaskWithWave],
    priorities: Iterable[Priority] = DEFAULT_PRIORITY_FILTER,
) -> list[TaskWithWave]:
    """Keep tasks whose priority is in ``priorities``.

    An empty filter would hide every task, so it is rejected.
    """
    wanted = set(priorities)
    if not wanted:
        raise InvalidRequestError("At least one priority must be selected", field="priorities")
    return [task for task in tasks if task.priority in wanted]


def count_by_priority(tasks: Iterable[GeneratedTask]) -> dict[Priority, int]:
    counts = Counter(task.priority for task in tasks)
    return {priority: counts.get(priority, 0) for priority in PRIORITY_ORDER}


def count_by_wave(tasks: Iterable[TaskWithWave]) -> dict[Wave, int]:
    counts = Counter(task.wave for task in tasks)
    return {wave: counts.get(wave, 0) for wave in WAVE_ORDER}


def organize_tasks(
    tasks: Sequence[GeneratedTask],
    priorities: Iterable[Priority] = DEFAULT_PRIORITY_FILTER,
) -> OrganizedTasks:
    """Build the grouped, priority-filtered view of a task batch.

    Waves are computed over the whole batch before filtering, so hiding a
    priority never changes another task's wave. Priority counts are taken
    over the unfiltered batch.
    """
    wanted = set(priorities)
    selected = [p for p in PRIORITY_ORDER if p in wanted]
    with_waves = calculate_waves(tasks)
    shown = filter_by_priority(with_waves, selected)

    return OrganizedTasks(
        groups=group_tasks(shown),
        priority_filter=selected,
        priority_counts=count_by_priority(tasks),
        wave_counts=count_by_wave(shown),
        shown=len(shown),
        total=len(tasks),
    )
