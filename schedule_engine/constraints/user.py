"""
Model encodings of user constraints from the constraint catalog.

Each catalog variant has one encoder, looked up by its ``kind``. Encoders
receive an optional enforcement literal: None means the constraint is hard;
otherwise every posted constraint is only enforced when the literal is true,
and the caller penalizes the literal being false.

An encoder raises ConstraintApplicationError when a constraint cannot be
encoded. The failure is logged and the remaining constraints still apply.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from ortools.sat.python import cp_model

from schedule_engine.data.constraints import (
    TEACHER_CONSTRAINTS,
    ClassExactDailyHours,
    ClassStartHour,
    ClassWeeklyDistribution,
    Constraint,
    ConstraintPriority,
    TeacherDayOff,
    TeacherMaxDailyHours,
    TeacherMaxWeeklyGaps,
    TeacherUnavailableSlots,
)
from schedule_engine.data.models import Activity, Weekday
from schedule_engine.exceptions import ConstraintApplicationError

if TYPE_CHECKING:
    from schedule_engine.model_builder import ScheduleModelBuilder


logger = logging.getLogger(__name__)

Encoder = Callable[["ScheduleModelBuilder", Constraint, Optional[cp_model.IntVar]], int]


@dataclass
class UserConstraintStats:
    """Statistics about user constraints applied."""
    applied: int = 0
    skipped_inactive: int = 0
    skipped_empty: int = 0
    failed: int = 0
    soft: int = 0
    model_constraints: int = 0
    failures: list[str] = field(default_factory=list)
    start_hour_days: set[tuple[str, int]] = field(default_factory=set)


# =============================================================================
# Helpers
# =============================================================================

def _post(ct: cp_model.Constraint, enforcement: Optional[cp_model.IntVar]) -> None:
    if enforcement is not None:
        ct.only_enforce_if(enforcement)


def _schoolday_index(builder: ScheduleModelBuilder, constraint: Constraint, day: Weekday) -> int:
    d = builder.configuration.day_index(day)
    if d is None:
        raise ConstraintApplicationError(constraint.name, f"{day.label} is not a schoolday")
    return d


def _check_hours(builder: ScheduleModelBuilder, constraint: Constraint, hours: int) -> None:
    if hours > builder.max_hours:
        raise ConstraintApplicationError(
            constraint.name,
            f"{hours}h exceeds the {builder.max_hours}-hour day",
        )


def target_activities(builder: ScheduleModelBuilder, constraint: Constraint) -> list[Activity]:
    """Activities a constraint is about: its teacher's or its class's."""
    if isinstance(constraint, TEACHER_CONSTRAINTS):
        return builder.activities_by_teacher.get(constraint.target, [])
    return builder.activities_by_class.get(constraint.target, [])


def start_hour_days(
    builder: ScheduleModelBuilder, constraints: Iterable[Constraint]
) -> set[tuple[str, int]]:
    """(class name, day index) pairs covered by an active class start-hour constraint."""
    covered: set[tuple[str, int]] = set()
    for constraint in constraints:
        if isinstance(constraint, ClassStartHour) and constraint.is_active:
            for day in constraint.applies_to(builder.configuration):
                d = builder.configuration.day_index(day)
                if d is not None:
                    covered.add((constraint.class_name, d))
    return covered


# =============================================================================
# Teacher Encoders
# =============================================================================

def encode_teacher_unavailable_slots(
    builder: ScheduleModelBuilder,
    constraint: TeacherUnavailableSlots,
    enforcement: Optional[cp_model.IntVar] = None,
) -> int:
    """Force every start variable covering a blocked cell to 0."""
    activities = builder.activities_by_teacher.get(constraint.teacher_name, [])
    added = 0
    for slot in constraint.unavailable_slots:
        d = builder.configuration.day_index(slot.day)
        if d is None or slot.hour > builder.max_hours:
            logger.debug("%s: %s is outside the grid", constraint.name, slot)
            continue
        for var in builder.occupancy_vars(activities, d, slot.hour):
            _post(builder.model.add(var == 0), enforcement)
            added += 1
    return added


def encode_teacher_max_daily_hours(
    builder: ScheduleModelBuilder,
    constraint: TeacherMaxDailyHours,
    enforcement: Optional[cp_model.IntVar] = None,
) -> int:
    """Per-day hour sum of the teacher's blocks stays under the bound."""
    activities = builder.activities_by_teacher.get(constraint.teacher_name, [])
    added = 0
    for d in range(builder.num_days):
        if not any(builder.day_start_vars(a, d) for a in activities):
            continue
        hours = builder.hours_on_day(activities, d)
        _post(builder.model.add(hours <= constraint.max_hours), enforcement)
        added += 1
    return added


def encode_teacher_max_weekly_gaps(
    builder: ScheduleModelBuilder,
    constraint: TeacherMaxWeeklyGaps,
    enforcement: Optional[cp_model.IntVar] = None,
) -> int:
    """Sum of per-day (span - hours) stays under the bound."""
    gaps = [
        builder.teacher_day_gaps(constraint.teacher_name, d) for d in range(builder.num_days)
    ]
    _post(builder.model.add(sum(gaps) <= constraint.max_gaps), enforcement)
    return 1


def encode_teacher_day_off(
    builder: ScheduleModelBuilder,
    constraint: TeacherDayOff,
    enforcement: Optional[cp_model.IntVar] = None,
) -> int:
    """Force every start variable of the teacher on the free day to 0."""
    d = builder.configuration.day_index(constraint.day_off)
    if d is None:
        logger.debug("%s: %s is not a schoolday", constraint.name, constraint.day_off.label)
        return 0
    added = 0
    for activity in builder.activities_by_teacher.get(constraint.teacher_name, []):
        for var in builder.day_start_vars(activity, d):
            _post(builder.model.add(var == 0), enforcement)
            added += 1
    return added


# =============================================================================
# Class Encoders
# =============================================================================

def _exact_day_hours(
    builder: ScheduleModelBuilder,
    class_name: str,
    plan: dict[int, int],
    enforcement: Optional[cp_model.IntVar],
) -> int:
    for d, hours in plan.items():
        _post(builder.model.add(builder.class_day_hours(class_name, d) == hours), enforcement)
    return len(plan)


def encode_class_exact_daily_hours(
    builder: ScheduleModelBuilder,
    constraint: ClassExactDailyHours,
    enforcement: Optional[cp_model.IntVar] = None,
) -> int:
    """Class day hours equal the required count."""
    _check_hours(builder, constraint, constraint.hours)
    d = _schoolday_index(builder, constraint, constraint.day)
    return _exact_day_hours(builder, constraint.class_name, {d: constraint.hours}, enforcement)


def encode_class_weekly_distribution(
    builder: ScheduleModelBuilder,
    constraint: ClassWeeklyDistribution,
    enforcement: Optional[cp_model.IntVar] = None,
) -> int:
    """Class day hours equal the required count on every listed day."""
    plan: dict[int, int] = {}
    for day, hours in sorted(constraint.daily_hours.items()):
        _check_hours(builder, constraint, hours)
        plan[_schoolday_index(builder, constraint, day)] = hours
    return _exact_day_hours(builder, constraint.class_name, plan, enforcement)


def encode_class_start_hour(
    builder: ScheduleModelBuilder,
    constraint: ClassStartHour,
    enforcement: Optional[cp_model.IntVar] = None,
) -> int:
    """
    Class days begin at ``start_hour``.

    No lesson before the start hour, and a lesson at the start hour
    whenever the class attends. This replaces the first-hour entry rule on
    the covered days; when enforced softly, first-hour entry still holds
    whenever the constraint is given up.
    """
    _check_hours(builder, constraint, constraint.start_hour)
    class_name = constraint.class_name
    added = 0

    for day in constraint.applies_to(builder.configuration):
        d = builder.configuration.day_index(day)
        attends = builder.class_attends(class_name, d)
        if attends is None:
            continue

        for h in range(1, constraint.start_hour):
            occupied = builder.class_occupancy(class_name, d, h)
            if occupied is not None:
                _post(builder.model.add(occupied == 0), enforcement)
                added += 1

        at_start = builder.class_occupancy(class_name, d, constraint.start_hour)
        if at_start is None:
            _post(builder.model.add(attends == 0), enforcement)
        else:
            _post(builder.model.add_implication(attends, at_start), enforcement)
        added += 1

        if enforcement is not None:
            first = builder.class_occupancy(class_name, d, 1)
            if first is not None:
                builder.model.add_implication(attends, first).only_enforce_if(
                    enforcement.negated()
                )
                added += 1
    return added


ENCODERS: dict[str, Encoder] = {
    "teacher_unavailable_slots": encode_teacher_unavailable_slots,
    "teacher_max_daily_hours": encode_teacher_max_daily_hours,
    "teacher_max_weekly_gaps": encode_teacher_max_weekly_gaps,
    "teacher_day_off": encode_teacher_day_off,
    "class_exact_daily_hours": encode_class_exact_daily_hours,
    "class_weekly_distribution": encode_class_weekly_distribution,
    "class_start_hour": encode_class_start_hour,
}


# =============================================================================
# Application
# =============================================================================

def apply_user_constraints(
    builder: ScheduleModelBuilder,
    constraints: Iterable[Constraint],
    soft_priorities: bool = False,
    priority_weights: Optional[dict[ConstraintPriority, int]] = None,
) -> UserConstraintStats:
    """
    Encode every active user constraint.

    Args:
        builder: The model builder with created variables
        constraints: Constraints to encode
        soft_priorities: Encode non-mandatory constraints behind an
            enforcement literal whose negation is penalized
        priority_weights: Penalty weight per priority (priority value if
            missing)

    Returns:
        UserConstraintStats, including one message per failed constraint
        and the (class, day) pairs now governed by a class start hour
    """
    stats = UserConstraintStats()
    weights = priority_weights or {}

    for constraint in constraints:
        if not constraint.is_active:
            stats.skipped_inactive += 1
            continue

        if not target_activities(builder, constraint):
            logger.debug("Skipping %s: no activities for %s", constraint.name, constraint.target)
            stats.skipped_empty += 1
            continue

        soft = soft_priorities and not constraint.is_mandatory
        violated = None
        enforcement = None
        if soft:
            violated = builder.model.new_bool_var(f"violated_{constraint.kind}_{stats.applied}")
            enforcement = violated.negated()

        try:
            added = ENCODERS[constraint.kind](builder, constraint, enforcement)
        except (ConstraintApplicationError, ValueError, TypeError) as exc:
            message = f"Constraint '{constraint.name}' could not be applied: {exc}"
            logger.warning(message)
            stats.failed += 1
            stats.failures.append(message)
            if violated is not None:
                builder.model.add(violated == 1)
            continue

        stats.applied += 1
        stats.model_constraints += added
        if isinstance(constraint, ClassStartHour):
            stats.start_hour_days |= start_hour_days(builder, [constraint])
        if violated is not None:
            stats.soft += 1
            builder.add_penalty(
                name=f"violated_{constraint.kind}_{stats.applied}",
                var=violated,
                weight=weights.get(constraint.priority, constraint.priority.value),
                description=str(constraint),
            )
    return stats
