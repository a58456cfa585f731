"""
Constraint catalog for the schedule engine.

Every user constraint is one variant of a closed, tagged union keyed on
``kind``. Each variant can:
- check a finished schedule on its own (``is_satisfied``), re-deriving the
  slots it cares about instead of trusting how the model encoded it
- describe itself in one line (``describe``)

The model-side encoding of each variant lives in
``schedule_engine.constraints.user``.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator

from .models import Configuration, GeneratedSchedule, ScheduleSlot, TimeSlot, Weekday


# =============================================================================
# Priorities
# =============================================================================

class ConstraintPriority(int, Enum):
    """Constraint importance; the value doubles as the default penalty weight."""
    MANDATORY = 1000
    HIGH = 100
    MEDIUM = 10
    LOW = 1
    WISH = 0

    @property
    def label(self) -> str:
        return self.name.capitalize()


# =============================================================================
# Validation Context
# =============================================================================

def hours_by_day(slots: Iterable[ScheduleSlot]) -> dict[Weekday, list[int]]:
    """Sorted distinct occupied hours per day."""
    grouped: dict[Weekday, set[int]] = defaultdict(set)
    for slot in slots:
        grouped[slot.day].add(slot.hour)
    return {day: sorted(hours) for day, hours in grouped.items()}


@dataclass
class ScheduleContext:
    """A candidate schedule together with the grid it was built for."""
    slots: list[ScheduleSlot]
    configuration: Configuration = field(default_factory=Configuration)

    @classmethod
    def from_schedule(
        cls, schedule: GeneratedSchedule, configuration: Configuration
    ) -> "ScheduleContext":
        return cls(slots=list(schedule.slots), configuration=configuration)

    def teacher_slots(self, teacher_name: str) -> list[ScheduleSlot]:
        return [s for s in self.slots if s.teacher_name == teacher_name]

    def class_slots(self, class_name: str) -> list[ScheduleSlot]:
        return [s for s in self.slots if s.class_name == class_name]


# =============================================================================
# Constraint Variants
# =============================================================================

class ConstraintBase(BaseModel):
    """Fields shared by every constraint variant."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="", description="Short label")
    description: str = Field(default="", description="Free text")
    priority: ConstraintPriority = Field(default=ConstraintPriority.MEDIUM)
    is_active: bool = Field(default=True, description="Whether the constraint is applied")

    @property
    def is_mandatory(self) -> bool:
        return self.priority == ConstraintPriority.MANDATORY

    @property
    def target(self) -> str:
        """Teacher or class name the constraint is about."""
        raise NotImplementedError

    @model_validator(mode="after")
    def fill_name(self) -> "ConstraintBase":
        if not self.name:
            self.name = self.describe()
        return self

    def is_satisfied(self, context: ScheduleContext) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return f"[{self.priority.label}] {self.describe()}"


class TeacherUnavailableSlots(ConstraintBase):
    """Teacher cannot teach in the listed (day, hour) cells."""
    kind: Literal["teacher_unavailable_slots"] = "teacher_unavailable_slots"
    teacher_name: str = Field(min_length=1)
    unavailable_slots: list[TimeSlot] = Field(default_factory=list)
    priority: ConstraintPriority = ConstraintPriority.MANDATORY

    @property
    def target(self) -> str:
        return self.teacher_name

    def is_satisfied(self, context: ScheduleContext) -> bool:
        blocked = {(s.day, s.hour) for s in self.unavailable_slots}
        return not any(
            (s.day, s.hour) in blocked for s in context.teacher_slots(self.teacher_name)
        )

    def describe(self) -> str:
        cells = ", ".join(str(s) for s in self.unavailable_slots) or "no slots"
        return f"{self.teacher_name} unavailable: {cells}"


class TeacherMaxDailyHours(ConstraintBase):
    """Teacher teaches at most ``max_hours`` on any day."""
    kind: Literal["teacher_max_daily_hours"] = "teacher_max_daily_hours"
    teacher_name: str = Field(min_length=1)
    max_hours: int = Field(ge=0)
    priority: ConstraintPriority = ConstraintPriority.HIGH

    @property
    def target(self) -> str:
        return self.teacher_name

    def is_satisfied(self, context: ScheduleContext) -> bool:
        per_day = hours_by_day(context.teacher_slots(self.teacher_name))
        return all(len(hours) <= self.max_hours for hours in per_day.values())

    def describe(self) -> str:
        return f"{self.teacher_name} teaches at most {self.max_hours}h per day"


class TeacherMaxWeeklyGaps(ConstraintBase):
    """Teacher has at most ``max_gaps`` idle hours in the week."""
    kind: Literal["teacher_max_weekly_gaps"] = "teacher_max_weekly_gaps"
    teacher_name: str = Field(min_length=1)
    max_gaps: int = Field(ge=0)
    priority: ConstraintPriority = ConstraintPriority.MEDIUM

    @property
    def target(self) -> str:
        return self.teacher_name

    def weekly_gaps(self, context: ScheduleContext) -> int:
        """Sum over worked days of (last - first + 1 - hours)."""
        per_day = hours_by_day(context.teacher_slots(self.teacher_name))
        return sum(hours[-1] - hours[0] + 1 - len(hours) for hours in per_day.values())

    def is_satisfied(self, context: ScheduleContext) -> bool:
        return self.weekly_gaps(context) <= self.max_gaps

    def describe(self) -> str:
        return f"{self.teacher_name} has at most {self.max_gaps} idle hours per week"


class TeacherDayOff(ConstraintBase):
    """Teacher has no lessons on ``day_off``."""
    kind: Literal["teacher_day_off"] = "teacher_day_off"
    teacher_name: str = Field(min_length=1)
    day_off: Weekday
    priority: ConstraintPriority = ConstraintPriority.HIGH

    @property
    def target(self) -> str:
        return self.teacher_name

    def is_satisfied(self, context: ScheduleContext) -> bool:
        return not any(s.day == self.day_off for s in context.teacher_slots(self.teacher_name))

    def describe(self) -> str:
        return f"{self.teacher_name} is free on {self.day_off.label}"


class ClassExactDailyHours(ConstraintBase):
    """Class attends exactly ``hours`` lessons on ``day``."""
    kind: Literal["class_exact_daily_hours"] = "class_exact_daily_hours"
    class_name: str = Field(min_length=1)
    day: Weekday
    hours: int = Field(ge=0)
    priority: ConstraintPriority = ConstraintPriority.MANDATORY

    @property
    def target(self) -> str:
        return self.class_name

    def is_satisfied(self, context: ScheduleContext) -> bool:
        per_day = hours_by_day(context.class_slots(self.class_name))
        return len(per_day.get(self.day, [])) == self.hours

    def describe(self) -> str:
        return f"{self.class_name} has exactly {self.hours}h on {self.day.label}"


class ClassWeeklyDistribution(ConstraintBase):
    """Class attends an exact number of hours on each listed day."""
    kind: Literal["class_weekly_distribution"] = "class_weekly_distribution"
    class_name: str = Field(min_length=1)
    daily_hours: dict[Weekday, int] = Field(default_factory=dict)
    priority: ConstraintPriority = ConstraintPriority.HIGH

    @property
    def target(self) -> str:
        return self.class_name

    def is_satisfied(self, context: ScheduleContext) -> bool:
        per_day = hours_by_day(context.class_slots(self.class_name))
        return all(
            len(per_day.get(day, [])) == hours for day, hours in self.daily_hours.items()
        )

    def describe(self) -> str:
        plan = ", ".join(
            f"{day.label} {hours}h" for day, hours in sorted(self.daily_hours.items())
        )
        return f"{self.class_name} weekly distribution: {plan or 'empty'}"


class ClassStartHour(ConstraintBase):
    """Class starts its day at ``start_hour``, every day or on one day."""
    kind: Literal["class_start_hour"] = "class_start_hour"
    class_name: str = Field(min_length=1)
    start_hour: int = Field(default=1, ge=1)
    specific_day: Optional[Weekday] = None
    priority: ConstraintPriority = ConstraintPriority.HIGH

    @property
    def target(self) -> str:
        return self.class_name

    def applies_to(self, configuration: Configuration) -> list[Weekday]:
        """Schooldays this constraint covers."""
        days = configuration.active_days()
        if self.specific_day is None:
            return days
        return [self.specific_day] if self.specific_day in days else []

    def is_satisfied(self, context: ScheduleContext) -> bool:
        per_day = hours_by_day(context.class_slots(self.class_name))
        for day in self.applies_to(context.configuration):
            hours = per_day.get(day)
            if hours and hours[0] != self.start_hour:
                return False
        return True

    def describe(self) -> str:
        when = self.specific_day.label if self.specific_day is not None else "every day"
        return f"{self.class_name} starts at hour {self.start_hour} ({when})"


Constraint = Annotated[
    Union[
        TeacherUnavailableSlots,
        TeacherMaxDailyHours,
        TeacherMaxWeeklyGaps,
        TeacherDayOff,
        ClassExactDailyHours,
        ClassWeeklyDistribution,
        ClassStartHour,
    ],
    Field(discriminator="kind"),
]

TEACHER_CONSTRAINTS = (
    TeacherUnavailableSlots,
    TeacherMaxDailyHours,
    TeacherMaxWeeklyGaps,
    TeacherDayOff,
)
CLASS_CONSTRAINTS = (ClassExactDailyHours, ClassWeeklyDistribution, ClassStartHour)


class ConstraintSet(RootModel[list[Constraint]]):
    """JSON-capable list of constraints."""
    root: list[Constraint] = Field(default_factory=list)

    def active(self) -> list[Constraint]:
        return [c for c in self.root if c.is_active]

    def __iter__(self):
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)


# =============================================================================
# Schedule Validation
# =============================================================================

@dataclass
class ValidationReport:
    """Outcome of checking a schedule against a constraint list."""
    satisfied: list[str] = field(default_factory=list)
    violated: list[str] = field(default_factory=list)
    mandatory_violated: list[str] = field(default_factory=list)

    @property
    def all_mandatory_satisfied(self) -> bool:
        return not self.mandatory_violated

    @property
    def is_valid(self) -> bool:
        return not self.violated


def validate_schedule(
    constraints: Iterable[Constraint], context: ScheduleContext
) -> ValidationReport:
    """
    Check every active constraint against a candidate schedule.

    Works on any slot list, generated or hand-built.
    """
    report = ValidationReport()
    for constraint in constraints:
        if not constraint.is_active:
            continue
        if constraint.is_satisfied(context):
            report.satisfied.append(str(constraint))
        else:
            report.violated.append(str(constraint))
            if constraint.is_mandatory:
                report.mandatory_violated.append(str(constraint))
    return report


# =============================================================================
# Factory Functions
# =============================================================================
# Each factory appends to the caller's list and returns the new constraint.

def teacher_not_available(
    constraints: list[Constraint],
    teacher_name: str,
    day: Weekday,
    hour: int,
    priority: ConstraintPriority = ConstraintPriority.MANDATORY,
) -> TeacherUnavailableSlots:
    """Block one (day, hour) for a teacher, merging into an existing entry."""
    slot = TimeSlot(day=day, hour=hour)
    for existing in constraints:
        if (
            isinstance(existing, TeacherUnavailableSlots)
            and existing.teacher_name == teacher_name
            and existing.priority == priority
            and existing.is_active
        ):
            if slot not in existing.unavailable_slots:
                auto_named = existing.name == existing.describe()
                existing.unavailable_slots.append(slot)
                if auto_named:
                    existing.name = existing.describe()
            return existing

    constraint = TeacherUnavailableSlots(
        teacher_name=teacher_name, unavailable_slots=[slot], priority=priority
    )
    constraints.append(constraint)
    return constraint


def teacher_max_daily_hours(
    constraints: list[Constraint],
    teacher_name: str,
    max_hours: int,
    priority: ConstraintPriority = ConstraintPriority.HIGH,
) -> TeacherMaxDailyHours:
    constraint = TeacherMaxDailyHours(
        teacher_name=teacher_name, max_hours=max_hours, priority=priority
    )
    constraints.append(constraint)
    return constraint


def teacher_max_weekly_gaps(
    constraints: list[Constraint],
    teacher_name: str,
    max_gaps: int,
    priority: ConstraintPriority = ConstraintPriority.MEDIUM,
) -> TeacherMaxWeeklyGaps:
    constraint = TeacherMaxWeeklyGaps(
        teacher_name=teacher_name, max_gaps=max_gaps, priority=priority
    )
    constraints.append(constraint)
    return constraint


def teacher_day_off(
    constraints: list[Constraint],
    teacher_name: str,
    day_off: Weekday,
    priority: ConstraintPriority = ConstraintPriority.HIGH,
) -> TeacherDayOff:
    constraint = TeacherDayOff(teacher_name=teacher_name, day_off=day_off, priority=priority)
    constraints.append(constraint)
    return constraint


def class_exact_daily_hours(
    constraints: list[Constraint],
    class_name: str,
    day: Weekday,
    hours: int,
    priority: ConstraintPriority = ConstraintPriority.MANDATORY,
) -> ClassExactDailyHours:
    constraint = ClassExactDailyHours(
        class_name=class_name, day=day, hours=hours, priority=priority
    )
    constraints.append(constraint)
    return constraint


def class_weekly_distribution(
    constraints: list[Constraint],
    class_name: str,
    daily_hours: dict[Weekday, int],
    priority: ConstraintPriority = ConstraintPriority.HIGH,
) -> ClassWeeklyDistribution:
    constraint = ClassWeeklyDistribution(
        class_name=class_name, daily_hours=dict(daily_hours), priority=priority
    )
    constraints.append(constraint)
    return constraint


def class_start_hour(
    constraints: list[Constraint],
    class_name: str,
    start_hour: int = 1,
    specific_day: Optional[Weekday] = None,
    priority: ConstraintPriority = ConstraintPriority.HIGH,
) -> ClassStartHour:
    constraint = ClassStartHour(
        class_name=class_name,
        start_hour=start_hour,
        specific_day=specific_day,
        priority=priority,
    )
    constraints.append(constraint)
    return constraint
