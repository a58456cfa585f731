"""
Daily limit constraints for school schedules.

This module provides band constraints: a day's total is either zero or
inside a closed [min, max] interval.
- Class daily band, with per-class overrides and exact hours per weekday
- Class weekly total
- Teacher daily band, with per-teacher overrides
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from schedule_engine.data.models import attendance_hours

if TYPE_CHECKING:
    from schedule_engine.model_builder import ScheduleModelBuilder


logger = logging.getLogger(__name__)


# =============================================================================
# Statistics
# =============================================================================

@dataclass
class DailyLimitStats:
    """Statistics about daily limit constraints added."""
    classes_with_limits: int = 0
    class_day_constraints: int = 0
    class_exact_days: int = 0
    class_weekly_totals: int = 0
    teachers_with_limits: int = 0
    teacher_day_constraints: int = 0
    teacher_overrides_applied: int = 0
    indicator_variables_created: int = 0


# =============================================================================
# Class Limits
# =============================================================================

def add_class_daily_band(builder: ScheduleModelBuilder, stats: DailyLimitStats) -> int:
    """
    Class hours per day are 0 or within the class's [min, max] band.

    The "attends" indicator is the OR of the class's occupancy literals;
    when it is true the day's hours must reach the minimum. Exact hours
    configured for a weekday in ``ClassConfiguration.daily_hours`` are
    added as equalities.

    Returns:
        Number of constraints added
    """
    config = builder.configuration
    added = 0

    for class_name in builder.activities_by_class:
        low, high = config.class_band(class_name)
        override = config.class_overrides.get(class_name)
        stats.classes_with_limits += 1

        for d, day in enumerate(builder.days):
            attends = builder.class_attends(class_name, d)
            if attends is None:
                continue
            stats.indicator_variables_created += 1
            hours = builder.class_day_hours(class_name, d)

            builder.model.add(hours <= high)
            added += 1
            if low > 0:
                builder.model.add(hours >= low).only_enforce_if(attends)
                added += 1

            if override is not None and day in override.daily_hours:
                builder.model.add(hours == override.daily_hours[day])
                stats.class_exact_days += 1
                added += 1

    stats.class_day_constraints = added
    return added


def add_class_weekly_total(builder: ScheduleModelBuilder, stats: DailyLimitStats) -> int:
    """
    A class's hours over the week equal its attendance hours.

    Attendance counts each parallel articulation block once.

    Returns:
        Number of constraints added
    """
    added = 0
    for class_name, activities in builder.activities_by_class.items():
        total = attendance_hours(activities)
        week = sum(builder.class_day_hours(class_name, d) for d in range(builder.num_days))
        builder.model.add(week == total)
        added += 1
    stats.class_weekly_totals = added
    return added


# =============================================================================
# Teacher Limits
# =============================================================================

def add_teacher_daily_band(builder: ScheduleModelBuilder, stats: DailyLimitStats) -> int:
    """
    Teacher hours per day are 0 or within the teacher's [min, max] band.

    Defaults come from ``teacher_min_daily_hours`` and
    ``teacher_max_daily_hours``; ``Configuration.teacher_overrides`` replaces
    them per teacher, including exemption from the minimum.

    Returns:
        Number of constraints added
    """
    config = builder.configuration
    added = 0

    for teacher_name, activities in builder.activities_by_teacher.items():
        low, high = config.teacher_band(teacher_name)
        if teacher_name in config.teacher_overrides:
            stats.teacher_overrides_applied += 1
            logger.debug("Teacher %s uses band [%d, %d]", teacher_name, low, high)
        stats.teachers_with_limits += 1

        for d in range(builder.num_days):
            starts = [v for a in activities for v in builder.day_start_vars(a, d)]
            if not starts:
                continue
            hours = builder.hours_on_day(activities, d)

            builder.model.add(hours <= high)
            added += 1
            if low > 1:
                works = builder.model.new_bool_var(f"teacher_works_{teacher_name}_d{d}")
                builder.model.add_max_equality(works, starts)
                builder.model.add(hours >= low).only_enforce_if(works)
                stats.indicator_variables_created += 1
                added += 1

    stats.teacher_day_constraints = added
    return added


def add_all_daily_limit_constraints(builder: ScheduleModelBuilder) -> DailyLimitStats:
    """
    Add class and teacher daily bands plus the class weekly total.

    Returns:
        DailyLimitStats with counts of constraints added
    """
    stats = DailyLimitStats()
    add_class_daily_band(builder, stats)
    add_class_weekly_total(builder, stats)
    add_teacher_daily_band(builder, stats)
    return stats
