"""
Compactness constraints for school schedules.

This module provides:
- First-hour entry: a class that attends a day starts it at hour 1
- Class contiguity: a class's day is one block without holes
- Teacher gap minimization: soft penalty on idle hours between lessons
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Collection

if TYPE_CHECKING:
    from schedule_engine.model_builder import ScheduleModelBuilder


@dataclass
class GapStats:
    """Statistics about compactness constraints added."""
    first_hour_constraints: int = 0
    first_hour_skipped: int = 0
    contiguity_constraints: int = 0
    teacher_gap_penalties: int = 0
    teachers_with_gap_tracking: int = 0


def add_first_hour_entry(
    builder: ScheduleModelBuilder,
    stats: GapStats,
    skip: Collection[tuple[str, int]] = (),
) -> int:
    """
    If a class has any lesson on a day, it has one at hour 1.

    Args:
        builder: The model builder with created variables
        stats: Stats to update
        skip: (class name, day index) pairs whose start is governed by a
            class start-hour constraint instead

    Returns:
        Number of implications added
    """
    added = 0
    for class_name in builder.activities_by_class:
        for d in range(builder.num_days):
            if (class_name, d) in skip:
                stats.first_hour_skipped += 1
                continue
            attends = builder.class_attends(class_name, d)
            first = builder.class_occupancy(class_name, d, 1)
            if attends is None or first is None:
                continue
            builder.model.add_implication(attends, first)
            added += 1
    stats.first_hour_constraints = added
    return added


def add_class_contiguity(builder: ScheduleModelBuilder, stats: GapStats) -> int:
    """
    A class's occupied hours on a day form one contiguous block.

    For every hour h followed by a free hour h + 1, no later hour may be
    occupied: occ[h] and not occ[h+1] imply not occ[k] for k > h + 1. With
    k = h + 2 this is the interior-hour rule (occupied neighbours force the
    hour between them); larger k closes holes longer than one hour.

    Returns:
        Number of clauses added
    """
    added = 0
    hours = builder.max_hours
    for class_name in builder.activities_by_class:
        for d in range(builder.num_days):
            occ = {h: builder.class_occupancy(class_name, d, h) for h in range(1, hours + 1)}
            for h in range(1, hours - 1):
                if occ[h] is None:
                    continue
                for k in range(h + 2, hours + 1):
                    if occ[k] is None:
                        continue
                    clause = [occ[h].negated(), occ[k].negated()]
                    if occ[h + 1] is not None:
                        clause.append(occ[h + 1])
                    builder.model.add_bool_or(clause)
                    added += 1
    stats.contiguity_constraints = added
    return added


def add_teacher_gap_minimization(
    builder: ScheduleModelBuilder,
    stats: GapStats,
    weight: int = 1,
) -> int:
    """
    Penalize teacher idle hours between the first and last lesson of a day.

    Uses the builder's per-day gap variable, shared with the max-weekly-gaps
    user constraint.

    Returns:
        Number of penalty variables added
    """
    added = 0
    for teacher_name, activities in builder.activities_by_teacher.items():
        # A single block per week leaves no gaps
        if len(activities) < 2:
            continue
        stats.teachers_with_gap_tracking += 1
        for d in range(builder.num_days):
            gap = builder.teacher_day_gaps(teacher_name, d)
            builder.add_penalty(
                name=f"teacher_gap_{teacher_name}_d{d}",
                var=gap,
                weight=weight,
                description=f"Idle hours for {teacher_name} on {builder.days[d].label}",
            )
            added += 1
    stats.teacher_gap_penalties = added
    return added
