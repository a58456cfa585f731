"""Tests for schedule statistics and solution extraction."""

from __future__ import annotations

import pytest

from schedule_engine.data.constraints import ScheduleContext, TeacherDayOff, TeacherMaxWeeklyGaps
from schedule_engine.data.models import (
    Activity,
    Configuration,
    ScheduleSlot,
    Weekday,
    derive_teachers,
)
from schedule_engine.output.extractor import (
    SolutionExtractor,
    group_by_class,
    group_by_day,
    group_by_teacher,
    materialize,
    sort_slots,
)
from schedule_engine.output.statistics import (
    StatisticsCalculator,
    calculate_statistics,
    day_gaps,
    optimization_score,
    teacher_daily_max,
    teacher_gaps,
)
from schedule_engine.model_builder import ScheduleModelBuilder


def slot(day, hour, teacher="Rossi Mario", class_name="1A", subject="Math"):
    return ScheduleSlot(
        day=day, hour=hour, class_name=class_name, teacher_name=teacher, subject=subject
    )


@pytest.fixture
def slots() -> list[ScheduleSlot]:
    """Rossi: Monday h1, h4 (2 gaps) and Tuesday h2 alone; Verdi: Monday h2, h3."""
    return [
        slot(Weekday.MONDAY, 1),
        slot(Weekday.MONDAY, 4, class_name="1B"),
        slot(Weekday.TUESDAY, 2),
        slot(Weekday.MONDAY, 2, teacher="Verdi Anna", subject="Art"),
        slot(Weekday.MONDAY, 3, teacher="Verdi Anna", subject="Art"),
    ]


class TestGapCounting:
    def test_day_gaps(self):
        assert day_gaps([1, 2, 3]) == 0
        assert day_gaps([1, 4, 5]) == 2
        assert day_gaps([5, 1]) == 3
        assert day_gaps([2]) == 0
        assert day_gaps([]) == 0

    def test_duplicate_hours_counted_once(self):
        assert day_gaps([1, 1, 3]) == 1

    def test_teacher_gaps(self, slots):
        assert teacher_gaps(slots, "Rossi Mario") == 2
        assert teacher_gaps(slots, "Verdi Anna") == 0
        assert teacher_gaps(slots, "Nobody") == 0

    def test_teacher_daily_max(self, slots):
        assert teacher_daily_max(slots, "Rossi Mario") == 2
        assert teacher_daily_max(slots, "Nobody") == 0

    def test_agrees_with_span_formula(self, slots):
        context = ScheduleContext(slots=slots)
        constraint = TeacherMaxWeeklyGaps(teacher_name="Rossi Mario", max_gaps=0)
        assert constraint.weekly_gaps(context) == teacher_gaps(slots, "Rossi Mario")


class TestOptimizationScore:
    def test_no_gaps(self):
        assert optimization_score(0, 3) == 100.0

    def test_average_penalized(self):
        assert optimization_score(3, 2) == 85.0

    def test_floor_at_zero(self):
        assert optimization_score(50, 1) == 0.0

    def test_no_teachers(self):
        assert optimization_score(0, 0) == 0.0


class TestStatisticsCalculator:
    """Tests for full statistics."""

    def test_calculate(self, slots):
        activities = [
            Activity(id=1, teacher_full_name="Rossi Mario", class_name="1A", subject="Math", weekly_hours=2),
            Activity(id=2, teacher_full_name="Verdi Anna", class_name="1A", subject="Art", weekly_hours=2),
        ]
        teachers = derive_teachers(activities)
        constraints = [
            TeacherDayOff(teacher_name="Rossi Mario", day_off=Weekday.FRIDAY),
            TeacherDayOff(teacher_name="Verdi Anna", day_off=Weekday.MONDAY),
        ]
        stats = StatisticsCalculator(Configuration()).calculate(slots, teachers, constraints)

        assert stats.total_slots == 5
        assert stats.total_teacher_gaps == 2
        assert stats.teacher_gaps == {"Rossi Mario": 2, "Verdi Anna": 0}
        assert stats.teacher_daily_max == {"Rossi Mario": 2, "Verdi Anna": 2}
        assert stats.constraints_satisfied == 1
        assert stats.constraints_violated == 1
        assert stats.violated_constraints == ["[High] Verdi Anna is free on Monday"]
        assert stats.optimization_score == 90.0

    def test_idempotent(self, slots):
        teachers = derive_teachers([
            Activity(id=1, teacher_full_name="Rossi Mario", class_name="1A", subject="Math", weekly_hours=1),
        ])
        first = calculate_statistics(slots, teachers)
        second = calculate_statistics(slots, teachers)
        assert first == second

    def test_empty_schedule(self):
        stats = calculate_statistics([], [])
        assert stats.total_slots == 0
        assert stats.optimization_score == 0.0


class TestExtractorHelpers:
    """Tests for extraction helpers."""

    def test_materialize(self):
        activity = Activity(
            id=7, teacher_full_name="Rossi Mario", class_name="2B", subject="Religion",
            weekly_hours=3, articulation_group="REL",
        )
        result = materialize(activity, Weekday.THURSDAY, 2)

        assert [s.hour for s in result] == [2, 3, 4]
        assert all(s.day == Weekday.THURSDAY for s in result)
        assert all(s.articulation_group == "REL" for s in result)
        assert result[0].teacher_name == "Rossi Mario"

    def test_sort_and_group(self, slots):
        ordered = sort_slots(slots)
        assert [(s.day, s.hour) for s in ordered][:2] == [(Weekday.MONDAY, 1), (Weekday.MONDAY, 2)]
        assert set(group_by_teacher(slots)) == {"Rossi Mario", "Verdi Anna"}
        assert set(group_by_class(slots)) == {"1A", "1B"}
        assert len(group_by_day(slots)[Weekday.MONDAY]) == 4


class FixedValues:
    """Stand-in for a solved CpSolver: a fixed set of true variables."""

    def __init__(self, true_vars):
        self._true = {v.index for v in true_vars}

    def boolean_value(self, literal) -> bool:
        return literal.index in self._true


class TestSolutionExtractor:
    @pytest.fixture
    def builder(self) -> ScheduleModelBuilder:
        activities = [
            Activity(id=1, teacher_full_name="Rossi Mario", class_name="1A", subject="Math", weekly_hours=2),
            Activity(id=2, teacher_full_name="Verdi Anna", class_name="1A", subject="Art", weekly_hours=1),
        ]
        builder = ScheduleModelBuilder(activities, Configuration(max_daily_hours=4, min_daily_hours=1))
        builder.create_variables()
        return builder

    def test_extract(self, builder):
        values = FixedValues([builder.start_vars[1][(2, 1)], builder.start_vars[2][(0, 3)]])
        slots = SolutionExtractor().extract(values, builder)

        assert [(s.day, s.hour, s.subject) for s in slots] == [
            (Weekday.MONDAY, 3, "Art"),
            (Weekday.WEDNESDAY, 1, "Math"),
            (Weekday.WEDNESDAY, 2, "Math"),
        ]

    def test_missing_placement_rejected(self, builder):
        values = FixedValues([builder.start_vars[1][(2, 1)]])
        with pytest.raises(ValueError, match="Activity 2 has 0 true start variables"):
            SolutionExtractor().extract(values, builder)

    def test_double_placement_rejected(self, builder):
        values = FixedValues([
            builder.start_vars[1][(2, 1)],
            builder.start_vars[1][(3, 1)],
            builder.start_vars[2][(0, 1)],
        ])
        with pytest.raises(ValueError, match="Activity 1 has 2"):
            SolutionExtractor().placements(values, builder)
