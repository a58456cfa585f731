"""Tests for model encodings of user constraints."""

from __future__ import annotations

import pytest
from ortools.sat.python import cp_model

from schedule_engine.constraints import ConstraintManager
from schedule_engine.constraints.core import add_assignment_constraints
from schedule_engine.constraints.gaps import GapStats, add_first_hour_entry
from schedule_engine.constraints.user import (
    ENCODERS,
    apply_user_constraints,
    start_hour_days,
    target_activities,
)
from schedule_engine.data.constraints import (
    ClassExactDailyHours,
    ClassStartHour,
    ClassWeeklyDistribution,
    ConstraintPriority,
    TeacherDayOff,
    TeacherMaxDailyHours,
    TeacherMaxWeeklyGaps,
    TeacherUnavailableSlots,
)
from schedule_engine.data.models import Activity, Configuration, TimeSlot, Weekday
from schedule_engine.model_builder import ScheduleModelBuilder
from schedule_engine.output.extractor import SolutionExtractor


def make_activity(id, teacher="Rossi Mario", class_name="1A", subject="Math", hours=1):
    return Activity(
        id=id,
        teacher_full_name=teacher,
        class_name=class_name,
        subject=subject,
        weekly_hours=hours,
    )


def build(activities, config) -> ScheduleModelBuilder:
    builder = ScheduleModelBuilder(activities, config)
    builder.create_variables()
    add_assignment_constraints(builder)
    return builder


def place(builder, activity_id, day, start):
    builder.model.add(builder.start_vars[activity_id][(day, start)] == 1)


def solve(builder) -> tuple[cp_model.CpSolver, int]:
    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = 10.0
    solver.parameters.num_workers = 1
    return solver, solver.solve(builder.model)


def placements(solver, builder):
    return SolutionExtractor().placements(solver, builder)


@pytest.fixture
def config() -> Configuration:
    return Configuration(
        max_daily_hours=4,
        min_daily_hours=1,
        teacher_min_daily_hours=1,
        teacher_max_daily_hours=4,
    )


def all_cells(day: Weekday, hours: int = 4) -> list[TimeSlot]:
    return [TimeSlot(day=day, hour=h) for h in range(1, hours + 1)]


class TestEncoderRegistry:
    def test_every_kind_has_an_encoder(self):
        assert set(ENCODERS) == {
            "teacher_unavailable_slots",
            "teacher_max_daily_hours",
            "teacher_max_weekly_gaps",
            "teacher_day_off",
            "class_exact_daily_hours",
            "class_weekly_distribution",
            "class_start_hour",
        }

    def test_target_activities(self, config):
        builder = build([make_activity(1), make_activity(2, teacher="Verdi Anna", class_name="1B")], config)
        assert target_activities(builder, TeacherDayOff(teacher_name="Verdi Anna", day_off=0))[0].id == 2
        assert target_activities(builder, ClassStartHour(class_name="1A"))[0].id == 1


class TestTeacherEncodings:
    """Tests for teacher constraint encodings."""

    def test_unavailable_slots(self, config):
        builder = build([make_activity(1, hours=2)], config)
        constraint = TeacherUnavailableSlots(
            teacher_name="Rossi Mario",
            unavailable_slots=[TimeSlot(day=Weekday.MONDAY, hour=2)],
        )
        stats = apply_user_constraints(builder, [constraint])
        # Monday h2 is inside blocks starting at h1 or h2
        place(builder, 1, 0, 1)

        _, status = solve(builder)

        assert stats.applied == 1
        assert status == cp_model.INFEASIBLE

    def test_unavailable_day_moves_lesson(self, config):
        builder = build([make_activity(1)], config)
        constraint = TeacherUnavailableSlots(
            teacher_name="Rossi Mario",
            unavailable_slots=all_cells(Weekday.MONDAY)
            + all_cells(Weekday.TUESDAY)
            + all_cells(Weekday.WEDNESDAY)
            + all_cells(Weekday.THURSDAY),
        )
        apply_user_constraints(builder, [constraint])

        solver, status = solve(builder)

        assert status == cp_model.OPTIMAL
        assert placements(solver, builder)[1][0] == Weekday.FRIDAY

    def test_slots_outside_grid_ignored(self, config):
        builder = build([make_activity(1)], config)
        constraint = TeacherUnavailableSlots(
            teacher_name="Rossi Mario",
            unavailable_slots=[
                TimeSlot(day=Weekday.SATURDAY, hour=1),
                TimeSlot(day=Weekday.MONDAY, hour=6),
            ],
        )
        stats = apply_user_constraints(builder, [constraint])

        assert stats.applied == 1
        assert stats.model_constraints == 0

    def test_max_daily_hours(self, config):
        activities = [make_activity(1), make_activity(2, class_name="1B")]
        builder = build(activities, config)
        apply_user_constraints(
            builder, [TeacherMaxDailyHours(teacher_name="Rossi Mario", max_hours=1)]
        )
        place(builder, 1, 2, 1)

        solver, status = solve(builder)

        assert status == cp_model.OPTIMAL
        assert placements(solver, builder)[2][0] != Weekday.WEDNESDAY

    def test_max_weekly_gaps(self, config):
        activities = [make_activity(1), make_activity(2, class_name="1B")]
        builder = build(activities, config)
        apply_user_constraints(
            builder, [TeacherMaxWeeklyGaps(teacher_name="Rossi Mario", max_gaps=1)]
        )
        place(builder, 1, 0, 1)
        place(builder, 2, 0, 4)

        _, status = solve(builder)
        assert status == cp_model.INFEASIBLE

    def test_max_weekly_gaps_allows_bound(self, config):
        activities = [make_activity(1), make_activity(2, class_name="1B")]
        builder = build(activities, config)
        apply_user_constraints(
            builder, [TeacherMaxWeeklyGaps(teacher_name="Rossi Mario", max_gaps=1)]
        )
        place(builder, 1, 0, 1)
        place(builder, 2, 0, 3)

        _, status = solve(builder)
        assert status == cp_model.OPTIMAL

    def test_max_weekly_gaps_ignores_free_days(self):
        config = Configuration(
            max_daily_hours=1,
            min_daily_hours=1,
            teacher_min_daily_hours=1,
            teacher_max_daily_hours=1,
        )
        builder = build([make_activity(1), make_activity(2, class_name="1B")], config)
        apply_user_constraints(
            builder, [TeacherMaxWeeklyGaps(teacher_name="Rossi Mario", max_gaps=0)]
        )

        solver, status = solve(builder)

        assert status == cp_model.OPTIMAL
        assert set(placements(solver, builder)) == {1, 2}

    def test_day_off(self, config):
        builder = build([make_activity(1)], config)
        for day in (Weekday.MONDAY, Weekday.TUESDAY, Weekday.THURSDAY, Weekday.FRIDAY):
            apply_user_constraints(builder, [TeacherDayOff(teacher_name="Rossi Mario", day_off=day)])

        solver, status = solve(builder)

        assert status == cp_model.OPTIMAL
        assert placements(solver, builder)[1][0] == Weekday.WEDNESDAY

    def test_day_off_on_non_schoolday(self, config):
        builder = build([make_activity(1)], config)
        stats = apply_user_constraints(
            builder, [TeacherDayOff(teacher_name="Rossi Mario", day_off=Weekday.SATURDAY)]
        )
        assert stats.applied == 1
        assert stats.model_constraints == 0


class TestClassEncodings:
    """Tests for class constraint encodings."""

    @pytest.fixture
    def lessons(self) -> list[Activity]:
        return [
            make_activity(1),
            make_activity(2, teacher="Verdi Anna", subject="Art"),
            make_activity(3, teacher="Bianchi Luca", subject="Music"),
        ]

    def test_exact_daily_hours(self, config, lessons):
        builder = build(lessons, config)
        apply_user_constraints(
            builder, [ClassExactDailyHours(class_name="1A", day=Weekday.THURSDAY, hours=2)]
        )

        solver, status = solve(builder)

        assert status == cp_model.OPTIMAL
        cells = {(d, s) for d, s in placements(solver, builder).values() if d == Weekday.THURSDAY}
        assert len(cells) == 2

    def test_weekly_distribution(self, config, lessons):
        builder = build(lessons, config)
        apply_user_constraints(
            builder,
            [
                ClassWeeklyDistribution(
                    class_name="1A",
                    daily_hours={Weekday.MONDAY: 2, Weekday.TUESDAY: 1, Weekday.FRIDAY: 0},
                )
            ],
        )

        solver, status = solve(builder)

        assert status == cp_model.OPTIMAL
        days = sorted(d for d, _ in placements(solver, builder).values())
        assert days == [Weekday.MONDAY, Weekday.MONDAY, Weekday.TUESDAY]

    def test_start_hour(self, config):
        builder = build([make_activity(1, hours=2)], config)
        constraint = ClassStartHour(class_name="1A", start_hour=2)
        stats = GapStats()
        add_first_hour_entry(builder, stats, skip=start_hour_days(builder, [constraint]))
        apply_user_constraints(builder, [constraint])

        solver, status = solve(builder)

        assert status == cp_model.OPTIMAL
        assert stats.first_hour_skipped == 5
        assert placements(solver, builder)[1][1] == 2

    def test_start_hour_specific_day(self, config):
        builder = build([make_activity(1)], config)
        constraint = ClassStartHour(class_name="1A", start_hour=3, specific_day=Weekday.TUESDAY)
        skip = start_hour_days(builder, [constraint])
        add_first_hour_entry(builder, GapStats(), skip=skip)
        apply_user_constraints(builder, [constraint])
        place(builder, 1, 1, 3)

        _, status = solve(builder)

        assert skip == {("1A", 1)}
        assert status == cp_model.OPTIMAL

    def test_start_hour_days_ignores_inactive(self, config):
        builder = build([make_activity(1)], config)
        constraint = ClassStartHour(class_name="1A", start_hour=2, is_active=False)
        assert start_hour_days(builder, [constraint]) == set()


class TestApplication:
    """Tests for skipping, failures and soft encoding."""

    def test_inactive_and_empty_skipped(self, config):
        builder = build([make_activity(1)], config)
        stats = apply_user_constraints(
            builder,
            [
                TeacherDayOff(teacher_name="Rossi Mario", day_off=0, is_active=False),
                TeacherDayOff(teacher_name="Nobody", day_off=0),
            ],
        )
        assert stats.skipped_inactive == 1
        assert stats.skipped_empty == 1
        assert stats.applied == 0

    def test_non_schoolday_fails_without_aborting(self, config):
        builder = build([make_activity(1)], config)
        stats = apply_user_constraints(
            builder,
            [
                ClassExactDailyHours(class_name="1A", day=Weekday.SATURDAY, hours=1),
                TeacherDayOff(teacher_name="Rossi Mario", day_off=Weekday.MONDAY),
            ],
        )

        assert stats.failed == 1
        assert stats.applied == 1
        assert "could not be applied" in stats.failures[0]
        assert "not a schoolday" in stats.failures[0]

        _, status = solve(builder)
        assert status == cp_model.OPTIMAL

    def test_hours_above_grid_fail(self, config):
        builder = build([make_activity(1)], config)
        stats = apply_user_constraints(
            builder, [ClassExactDailyHours(class_name="1A", day=Weekday.MONDAY, hours=9)]
        )
        assert stats.failed == 1
        assert "4-hour day" in stats.failures[0]

    def test_soft_constraint_can_be_violated(self, config):
        builder = build([make_activity(1)], config)
        constraints = [
            TeacherDayOff(teacher_name="Rossi Mario", day_off=day, priority=ConstraintPriority.LOW)
            for day in (Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY,
                        Weekday.THURSDAY, Weekday.FRIDAY)
        ]
        stats = apply_user_constraints(builder, constraints, soft_priorities=True)
        builder.set_objective()

        solver, status = solve(builder)

        assert stats.soft == 5
        assert len(builder.penalty_vars) == 5
        assert status == cp_model.OPTIMAL
        assert solver.objective_value == ConstraintPriority.LOW.value

    def test_soft_weights_follow_priority(self, config):
        builder = build([make_activity(1)], config)
        constraints = [
            TeacherDayOff(teacher_name="Rossi Mario", day_off=day, priority=ConstraintPriority.HIGH)
            for day in (Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY)
        ] + [
            TeacherDayOff(
                teacher_name="Rossi Mario", day_off=Weekday.FRIDAY, priority=ConstraintPriority.LOW
            )
        ]
        apply_user_constraints(builder, constraints, soft_priorities=True)
        builder.set_objective()

        solver, status = solve(builder)

        assert status == cp_model.OPTIMAL
        assert placements(solver, builder)[1][0] == Weekday.FRIDAY

    def test_mandatory_stays_hard(self, config):
        builder = build([make_activity(1)], config)
        cells = []
        for day in (Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY,
                    Weekday.THURSDAY, Weekday.FRIDAY):
            cells.extend(all_cells(day))
        constraint = TeacherUnavailableSlots(teacher_name="Rossi Mario", unavailable_slots=cells)
        stats = apply_user_constraints(builder, [constraint], soft_priorities=True)

        _, status = solve(builder)

        assert stats.soft == 0
        assert status == cp_model.INFEASIBLE

    def test_soft_failure_is_disabled(self, config):
        builder = build([make_activity(1)], config)
        stats = apply_user_constraints(
            builder,
            [ClassWeeklyDistribution(
                class_name="1A",
                daily_hours={Weekday.MONDAY: 1, Weekday.SATURDAY: 1},
                priority=ConstraintPriority.HIGH,
            )],
            soft_priorities=True,
        )

        _, status = solve(builder)

        assert stats.failed == 1
        assert stats.soft == 0
        assert status == cp_model.OPTIMAL


class TestConstraintManager:
    def test_apply_all(self, config):
        builder = ScheduleModelBuilder(
            [make_activity(1), make_activity(2, class_name="1B")], config
        )
        builder.create_variables()
        manager = ConstraintManager(optimize_gaps=True)
        stats = manager.apply_all_constraints(
            builder,
            [
                TeacherDayOff(teacher_name="Rossi Mario", day_off=Weekday.MONDAY),
                ClassExactDailyHours(class_name="1A", day=Weekday.SATURDAY, hours=1),
            ],
        )

        assert stats.assignment_constraints == 2
        assert stats.user.applied == 1
        assert len(stats.failures) == 1
        assert stats.total_soft_penalties == 5

    def test_skip_soft(self, config):
        builder = ScheduleModelBuilder(
            [make_activity(1), make_activity(2, class_name="1B")], config
        )
        builder.create_variables()
        stats = ConstraintManager().apply_all_constraints(builder, skip_soft=True)

        assert stats.total_soft_penalties == 0
        assert builder.penalty_vars == []

    def test_start_hour_replaces_first_hour_entry(self, config):
        builder = ScheduleModelBuilder([make_activity(1, hours=2)], config)
        builder.create_variables()
        stats = ConstraintManager().apply_all_constraints(
            builder, [ClassStartHour(class_name="1A", start_hour=3, specific_day=Weekday.MONDAY)]
        )
        place(builder, 1, 0, 3)

        _, status = solve(builder)

        assert stats.gaps.first_hour_skipped == 1
        assert stats.user.start_hour_days == {("1A", 0)}
        assert status == cp_model.OPTIMAL

    def test_failed_start_hour_keeps_first_hour_entry(self, config):
        builder = ScheduleModelBuilder([make_activity(1, hours=2)], config)
        builder.create_variables()
        first_hours = [
            TimeSlot(day=day, hour=1)
            for day in (Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY,
                        Weekday.THURSDAY, Weekday.FRIDAY)
        ]
        stats = ConstraintManager().apply_all_constraints(
            builder,
            [
                ClassStartHour(class_name="1A", start_hour=9, priority=ConstraintPriority.MANDATORY),
                TeacherUnavailableSlots(teacher_name="Rossi Mario", unavailable_slots=first_hours),
            ],
        )

        _, status = solve(builder)

        assert len(stats.failures) == 1
        assert stats.user.start_hour_days == set()
        assert stats.gaps.first_hour_skipped == 0
        assert status == cp_model.INFEASIBLE

    def test_failed_soft_start_hour_keeps_first_hour_entry(self, config):
        builder = ScheduleModelBuilder([make_activity(1, hours=2)], config)
        builder.create_variables()
        stats = ConstraintManager(soft_priorities=True).apply_all_constraints(
            builder, [ClassStartHour(class_name="1A", start_hour=9)]
        )

        solver, status = solve(builder)

        assert stats.gaps.first_hour_skipped == 0
        assert status == cp_model.OPTIMAL
        assert placements(solver, builder)[1][1] == 1
