"""
No-overlap constraints for school schedules.

This module provides constraints that prevent double-booking of:
- Teachers (cannot teach two lessons at the same time)
- Classes (cannot have two lessons at the same time, except for
  articulated sub-group lessons meant to run in parallel)

It also places parallel articulation blocks together and spreads repeated
(teacher, class, subject) activities over distinct days.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from schedule_engine.data.models import Activity, articulation_blocks

if TYPE_CHECKING:
    from schedule_engine.model_builder import ScheduleModelBuilder


@dataclass
class NoOverlapStats:
    """Statistics about no-overlap constraints added."""
    teacher_constraints: int = 0
    class_constraints: int = 0
    articulation_blocks: int = 0
    alignment_constraints: int = 0
    spreading_groups: int = 0
    spreading_constraints: int = 0


def add_teacher_no_overlap(builder: ScheduleModelBuilder) -> int:
    """
    A teacher cannot teach two lessons at the same time.

    For each teacher and each (day, hour), at most one covering start
    variable among the teacher's activities can be true.

    Returns:
        Number of AtMostOne constraints added
    """
    added = 0
    for activities in builder.activities_by_teacher.values():
        if len(activities) < 2:
            continue
        for d in range(builder.num_days):
            for h in range(1, builder.max_hours + 1):
                terms = builder.occupancy_vars(activities, d, h)
                if len(terms) > 1:
                    builder.model.add_at_most_one(terms)
                    added += 1
    return added


def add_class_no_overlap(builder: ScheduleModelBuilder) -> int:
    """
    A class cannot have two lessons at the same time.

    Activities without an articulation tag are mutually exclusive per
    (day, hour). Each articulation tag then takes part as a single unit:
    its lessons may coincide with one another, but not with the class's
    other lessons or with a different tag.

    Returns:
        Number of AtMostOne constraints added
    """
    added = 0
    for class_name, activities in builder.activities_by_class.items():
        plain = [a for a in activities if not a.is_articulated]
        tagged: dict[str, list[Activity]] = defaultdict(list)
        for activity in activities:
            if activity.is_articulated:
                tagged[activity.articulation_group].append(activity)

        for d in range(builder.num_days):
            for h in range(1, builder.max_hours + 1):
                terms = builder.occupancy_vars(plain, d, h)
                for tag in sorted(tagged):
                    unit = builder.occupancy_literal(
                        builder.occupancy_vars(tagged[tag], d, h),
                        f"tag_occ_{class_name}_{tag}_d{d}_h{h}",
                    )
                    if unit is not None:
                        terms.append(unit)
                if len(terms) > 1:
                    builder.model.add_at_most_one(terms)
                    added += 1
    return added


def add_articulation_alignment(builder: ScheduleModelBuilder, stats: NoOverlapStats) -> int:
    """
    Activities of one parallel block start at the same (day, hour).

    Blocks come from ``articulation_blocks``: the k-th activity of every
    sub-group sharing a tag. Start variables are matched position by
    position; a start one member cannot take is forbidden for the others.

    Returns:
        Number of alignment constraints added
    """
    added = 0
    for activities in builder.activities_by_class.values():
        for block in articulation_blocks(activities):
            if len(block) < 2:
                continue
            stats.articulation_blocks += 1
            anchor = block[0]
            anchor_starts = builder.start_vars[anchor.id]
            for other in block[1:]:
                other_starts = builder.start_vars[other.id]
                for position in set(anchor_starts) | set(other_starts):
                    a = anchor_starts.get(position)
                    b = other_starts.get(position)
                    if a is not None and b is not None:
                        builder.model.add(a == b)
                    elif a is not None:
                        builder.model.add(a == 0)
                    else:
                        builder.model.add(b == 0)
                    added += 1
    return added


def add_distinct_day_spreading(builder: ScheduleModelBuilder, stats: NoOverlapStats) -> int:
    """
    Repeated (teacher, class, subject) activities land on different days.

    Returns:
        Number of per-day AtMostOne constraints added
    """
    groups: dict[tuple[str, str, str], list[Activity]] = defaultdict(list)
    for activity in builder.activities:
        groups[activity.key].append(activity)

    added = 0
    for activities in groups.values():
        if len(activities) < 2:
            continue
        stats.spreading_groups += 1
        for d in range(builder.num_days):
            terms = [v for a in activities for v in builder.day_start_vars(a, d)]
            if len(terms) > 1:
                builder.model.add_at_most_one(terms)
                added += 1
    return added


def add_all_no_overlap_constraints(builder: ScheduleModelBuilder) -> NoOverlapStats:
    """
    Add teacher and class no-overlap, articulation alignment and spreading.

    Returns:
        NoOverlapStats with counts of constraints added
    """
    stats = NoOverlapStats()
    stats.teacher_constraints = add_teacher_no_overlap(builder)
    stats.class_constraints = add_class_no_overlap(builder)
    stats.alignment_constraints = add_articulation_alignment(builder, stats)
    stats.spreading_constraints = add_distinct_day_spreading(builder, stats)
    return stats
