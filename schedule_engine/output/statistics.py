"""
Schedule statistics: teacher gaps, daily maxima and constraint satisfaction.

Everything here is a pure function of its inputs, so computing statistics
twice on the same schedule yields identical numbers.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional, Sequence

from schedule_engine.data.constraints import (
    Constraint,
    ScheduleContext,
    ValidationReport,
    validate_schedule,
)
from schedule_engine.data.models import (
    Configuration,
    ScheduleSlot,
    ScheduleStatistics,
    Teacher,
    Weekday,
)


# =============================================================================
# Constants
# =============================================================================

# Score lost per average idle hour per teacher
GAP_SCORE_PENALTY = 10.0


# =============================================================================
# Gap Counting
# =============================================================================

def day_gaps(hours: Sequence[int]) -> int:
    """
    Idle hours in one day: sum of (h[i] - h[i-1] - 1) over sorted hours.

    Examples:
        >>> day_gaps([1, 2, 3])
        0
        >>> day_gaps([1, 4, 5])
        2
    """
    ordered = sorted(set(hours))
    return sum(ordered[i] - ordered[i - 1] - 1 for i in range(1, len(ordered)))


def teacher_hours_by_day(
    slots: Iterable[ScheduleSlot], teacher_name: str
) -> dict[Weekday, list[int]]:
    result: dict[Weekday, list[int]] = defaultdict(list)
    for slot in slots:
        if slot.teacher_name == teacher_name:
            result[slot.day].append(slot.hour)
    return dict(result)


def teacher_gaps(slots: Iterable[ScheduleSlot], teacher_name: str) -> int:
    """Weekly idle hours of one teacher, counting only days they work."""
    return sum(
        day_gaps(hours)
        for hours in teacher_hours_by_day(slots, teacher_name).values()
        if len(hours) >= 2
    )


def teacher_daily_max(slots: Iterable[ScheduleSlot], teacher_name: str) -> int:
    per_day = teacher_hours_by_day(slots, teacher_name)
    return max((len(set(hours)) for hours in per_day.values()), default=0)


def optimization_score(total_gaps: int, teacher_count: int) -> float:
    """max(0, 100 - 10 x average gaps per teacher); 0 without teachers."""
    if teacher_count <= 0:
        return 0.0
    average = total_gaps / teacher_count
    return round(max(0.0, 100.0 - GAP_SCORE_PENALTY * average), 2)


# =============================================================================
# Statistics Calculator
# =============================================================================

class StatisticsCalculator:
    """
    Folds a finished schedule into ScheduleStatistics.

    Usage:
        calculator = StatisticsCalculator(configuration)
        stats = calculator.calculate(slots, teachers, constraints)
    """

    def __init__(self, configuration: Optional[Configuration] = None):
        self.configuration = configuration or Configuration()

    def calculate(
        self,
        slots: Sequence[ScheduleSlot],
        teachers: Iterable[Teacher],
        constraints: Iterable[Constraint] = (),
    ) -> ScheduleStatistics:
        """
        Compute gap, load and constraint statistics.

        Args:
            slots: Schedule slots
            teachers: Teachers to report on
            constraints: Constraints to check (inactive ones are ignored)

        Returns:
            ScheduleStatistics
        """
        names = [t.full_name for t in teachers]
        gaps = {name: teacher_gaps(slots, name) for name in names}
        daily_max = {name: teacher_daily_max(slots, name) for name in names}
        total = sum(gaps.values())

        report = self.check_constraints(slots, constraints)

        return ScheduleStatistics(
            total_slots=len(slots),
            total_teacher_gaps=total,
            teacher_gaps=gaps,
            teacher_daily_max=daily_max,
            constraints_satisfied=len(report.satisfied),
            constraints_violated=len(report.violated),
            violated_constraints=list(report.violated),
            optimization_score=optimization_score(total, len(names)),
        )

    def check_constraints(
        self, slots: Sequence[ScheduleSlot], constraints: Iterable[Constraint]
    ) -> ValidationReport:
        context = ScheduleContext(slots=list(slots), configuration=self.configuration)
        return validate_schedule(constraints, context)


def calculate_statistics(
    slots: Sequence[ScheduleSlot],
    teachers: Iterable[Teacher],
    constraints: Iterable[Constraint] = (),
    configuration: Optional[Configuration] = None,
) -> ScheduleStatistics:
    """Convenience wrapper around StatisticsCalculator.calculate."""
    return StatisticsCalculator(configuration).calculate(slots, teachers, constraints)
