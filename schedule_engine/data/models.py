"""
Pydantic models for the school schedule engine.

Time conventions:
- A schedule is a weekly grid of (day, hour) cells
- Days are Weekday values, Monday through Saturday
- Hours are 1-based lesson positions within a school day (1 = first lesson)

The active schooldays of a Configuration define the canonical day index
0..D-1 used by the model builder.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# Constants and Enums
# =============================================================================

class Weekday(int, Enum):
    """Schoolday of the week: 0=Monday through 5=Saturday."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()


class GenerationState(str, Enum):
    """Lifecycle state of a generation run."""
    IDLE = "IDLE"
    BUILDING_VARIABLES = "BUILDING_VARIABLES"
    ENCODING_CONSTRAINTS = "ENCODING_CONSTRAINTS"
    SOLVING = "SOLVING"
    SOLVED = "SOLVED"
    INFEASIBLE = "INFEASIBLE"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (
            GenerationState.SOLVED,
            GenerationState.INFEASIBLE,
            GenerationState.CANCELLED,
            GenerationState.FAILED,
        )


# =============================================================================
# Helper Functions
# =============================================================================

def time_to_minutes(time_str: str) -> int:
    """Convert HH:MM format to minutes from midnight."""
    h, m = map(int, time_str.split(":"))
    return h * 60 + m


def minutes_to_time(minutes: int) -> str:
    """Convert minutes from midnight to HH:MM format."""
    h, m = divmod(minutes, 60)
    return f"{h:02d}:{m:02d}"


def articulation_blocks(activities: Iterable[Activity]) -> list[list[Activity]]:
    """
    Group one class's articulated activities into parallel blocks.

    Activities sharing an articulation tag are taught to different sub-groups
    at the same time. Within a tag, each (teacher, class, subject) key may
    recur; the k-th occurrence of every key (ordered by activity id) forms
    one block that must be placed in parallel.

    Args:
        activities: Activities of a single class

    Returns:
        List of blocks, each a list of activities to align
    """
    by_tag: dict[str, dict[tuple[str, str, str], list[Activity]]] = defaultdict(
        lambda: defaultdict(list)
    )
    for activity in activities:
        if activity.is_articulated:
            by_tag[activity.articulation_group][activity.key].append(activity)

    blocks: list[list[Activity]] = []
    for tag in sorted(by_tag):
        keyed = [sorted(group, key=lambda a: a.id) for group in by_tag[tag].values()]
        depth = max(len(group) for group in keyed)
        for rank in range(depth):
            blocks.append([group[rank] for group in keyed if rank < len(group)])
    return blocks


def attendance_hours(activities: Iterable[Activity]) -> int:
    """
    Hours a class actually sits in school per week.

    Non-articulated activities count in full; each parallel articulation
    block counts once, with the length of its longest member.
    """
    activities = list(activities)
    plain = sum(a.weekly_hours for a in activities if not a.is_articulated)
    parallel = sum(
        max(a.weekly_hours for a in block) for block in articulation_blocks(activities)
    )
    return plain + parallel


# =============================================================================
# Core Entity Models
# =============================================================================

class TimeSlot(BaseModel):
    """A single (day, hour) cell of the weekly grid."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    day: Weekday = Field(description="Schoolday")
    hour: int = Field(ge=1, le=12, description="1-based lesson hour")

    def __str__(self) -> str:
        return f"{self.day.label} h{self.hour}"


class Activity(BaseModel):
    """
    One teaching assignment: an indivisible block of ``weekly_hours``
    consecutive lesson hours to be placed once in the week.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int = Field(ge=0, description="Unique identifier")
    teacher_full_name: str = Field(min_length=1, description="Teacher full name")
    teacher_surname: str = Field(default="", description="Teacher surname")
    teacher_name: str = Field(default="", description="Teacher first name")
    class_code: str = Field(default="", description="Class code")
    class_name: str = Field(min_length=1, description="Class name")
    subject: str = Field(min_length=1, description="Subject taught")
    weekly_hours: int = Field(ge=1, le=12, description="Block length in lesson hours")
    articulation_group: str = Field(default="", description="Parallel sub-group tag")

    @property
    def is_articulated(self) -> bool:
        return bool(self.articulation_group.strip())

    @property
    def key(self) -> tuple[str, str, str]:
        """Identity key: (teacher full name, class name, subject)."""
        return (self.teacher_full_name, self.class_name, self.subject)

    def __str__(self) -> str:
        return (
            f"Activity {self.id}: {self.subject} "
            f"({self.teacher_full_name} / {self.class_name}, {self.weekly_hours}h)"
        )


class Teacher(BaseModel):
    """Teacher with the activities they teach."""
    model_config = ConfigDict(extra="forbid")

    id: int = Field(default=0, description="Identifier")
    surname: str = Field(min_length=1, description="Surname")
    name: str = Field(default="", description="First name")
    class_codes: set[str] = Field(default_factory=set, description="Classes taught")
    total_weekly_hours: int = Field(default=0, ge=0, description="Declared weekly hours")
    activities: list[Activity] = Field(default_factory=list, description="Assigned activities")

    @property
    def full_name(self) -> str:
        return f"{self.surname} {self.name}".strip()

    @property
    def derived_weekly_hours(self) -> int:
        return sum(a.weekly_hours for a in self.activities)

    def __str__(self) -> str:
        return self.full_name


class ArticulationGroup(BaseModel):
    """Activities of one class sharing an articulation tag."""
    model_config = ConfigDict(extra="forbid")

    id: int = Field(default=0, description="Identifier")
    name: str = Field(min_length=1, description="Articulation tag")
    activities: list[Activity] = Field(default_factory=list, description="Parallel activities")


class SchoolClass(BaseModel):
    """Class (student group) with all activities it receives."""
    model_config = ConfigDict(extra="forbid")

    id: int = Field(default=0, description="Identifier")
    name: str = Field(min_length=1, description="Class name (e.g., '1A')")
    total_weekly_hours: int = Field(default=0, ge=0, description="Declared weekly hours")
    activities: list[Activity] = Field(default_factory=list, description="Activities received")
    articulation_groups: list[ArticulationGroup] = Field(
        default_factory=list, description="Parallel sub-group partitions"
    )

    @property
    def has_articulation(self) -> bool:
        return bool(self.articulation_groups)

    @property
    def derived_weekly_hours(self) -> int:
        return sum(a.weekly_hours for a in self.activities)

    @property
    def attendance_hours(self) -> int:
        return attendance_hours(self.activities)

    def __str__(self) -> str:
        return self.name


# =============================================================================
# Configuration
# =============================================================================

class BreakConfiguration(BaseModel):
    """A break after a given lesson hour. Presentation only."""
    model_config = ConfigDict(extra="forbid")

    after_hour: int = Field(ge=1, description="Break follows this lesson hour")
    duration_minutes: int = Field(default=10, ge=1, description="Break length")
    description: str = Field(default="Break", description="Label")


class ClassConfiguration(BaseModel):
    """Per-class override of the global configuration."""
    model_config = ConfigDict(extra="forbid")

    class_name: str = Field(min_length=1, description="Class the override applies to")
    start_time: Optional[str] = Field(default=None, description="Start time HH:MM")
    daily_hours: dict[Weekday, int] = Field(
        default_factory=dict, description="Exact hours required on given days"
    )
    min_daily_hours: Optional[int] = Field(default=None, ge=0, description="Daily minimum override")
    max_daily_hours: Optional[int] = Field(default=None, ge=1, description="Daily maximum override")

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            time_to_minutes(v)
        return v


class TeacherConfiguration(BaseModel):
    """Per-teacher override of the teacher daily band."""
    model_config = ConfigDict(extra="forbid")

    teacher_name: str = Field(min_length=1, description="Teacher full name")
    min_daily_hours: Optional[int] = Field(default=None, ge=0, description="Daily minimum override")
    max_daily_hours: Optional[int] = Field(default=None, ge=1, description="Daily maximum override")
    exempt_from_min_daily_hours: bool = Field(
        default=False, description="Allow days with fewer hours than the minimum"
    )


class Configuration(BaseModel):
    """Weekly grid shape and daily load bands."""
    model_config = ConfigDict(extra="forbid")

    school_days: int = Field(default=5, ge=5, le=6, description="Schooldays per week")
    excluded_day: Optional[Weekday] = Field(
        default=Weekday.SATURDAY, description="Day off in a 5-day week"
    )
    default_start_time: str = Field(default="08:00", description="First lesson start HH:MM")
    lesson_duration_minutes: int = Field(default=60, ge=10, le=180, description="Lesson length")
    max_daily_hours: int = Field(default=6, ge=1, le=12, description="Class daily maximum")
    min_daily_hours: int = Field(default=4, ge=0, le=12, description="Class daily minimum")
    teacher_max_daily_hours: int = Field(default=5, ge=1, le=12, description="Teacher daily maximum")
    teacher_min_daily_hours: int = Field(default=2, ge=0, le=12, description="Teacher daily minimum")
    breaks: list[BreakConfiguration] = Field(default_factory=list, description="Breaks")
    class_overrides: dict[str, ClassConfiguration] = Field(
        default_factory=dict, description="Per-class overrides keyed by class name"
    )
    teacher_overrides: dict[str, TeacherConfiguration] = Field(
        default_factory=dict, description="Per-teacher overrides keyed by full name"
    )

    @field_validator("default_start_time")
    @classmethod
    def validate_start_time(cls, v: str) -> str:
        minutes = time_to_minutes(v)
        if not 0 <= minutes < 24 * 60:
            raise ValueError(f"default_start_time out of range: {v}")
        return v

    @model_validator(mode="after")
    def validate_bands(self) -> "Configuration":
        """Ensure every band is well formed and fits the grid."""
        errors: list[str] = []

        if self.school_days == 5 and self.excluded_day is None:
            errors.append("a 5-day week needs an excluded_day")
        if self.min_daily_hours > self.max_daily_hours:
            errors.append(
                f"min_daily_hours ({self.min_daily_hours}) exceeds "
                f"max_daily_hours ({self.max_daily_hours})"
            )
        if self.teacher_min_daily_hours > self.teacher_max_daily_hours:
            errors.append(
                f"teacher_min_daily_hours ({self.teacher_min_daily_hours}) exceeds "
                f"teacher_max_daily_hours ({self.teacher_max_daily_hours})"
            )

        for name, override in self.class_overrides.items():
            low, high = self.class_band(name)
            if low > high:
                errors.append(f"class override '{name}': min {low} exceeds max {high}")
            if high > self.max_daily_hours:
                errors.append(
                    f"class override '{name}': max {high} exceeds grid height "
                    f"{self.max_daily_hours}"
                )
            for day, hours in override.daily_hours.items():
                if hours > high:
                    errors.append(
                        f"class override '{name}': {hours}h on {day.label} exceeds max {high}"
                    )

        for name in self.teacher_overrides:
            low, high = self.teacher_band(name)
            if low > high:
                errors.append(f"teacher override '{name}': min {low} exceeds max {high}")

        if errors:
            raise ValueError("Invalid configuration:\n" + "\n".join(f"  - {e}" for e in errors))
        return self

    # -------------------------------------------------------------------------
    # Derived Values
    # -------------------------------------------------------------------------

    def active_days(self) -> list[Weekday]:
        """Ordered schooldays; the list index is the canonical day index."""
        days = list(Weekday)
        if self.school_days == 6:
            return days
        return [d for d in days if d != self.excluded_day][: self.school_days]

    def day_index(self, day: Weekday) -> Optional[int]:
        """Canonical index of a weekday, or None if it is not a schoolday."""
        days = self.active_days()
        return days.index(day) if day in days else None

    def class_band(self, class_name: str) -> tuple[int, int]:
        """(min, max) daily hours for a class, overrides applied."""
        override = self.class_overrides.get(class_name)
        low, high = self.min_daily_hours, self.max_daily_hours
        if override is not None:
            if override.min_daily_hours is not None:
                low = override.min_daily_hours
            if override.max_daily_hours is not None:
                high = override.max_daily_hours
        return low, high

    def teacher_band(self, teacher_name: str) -> tuple[int, int]:
        """(min, max) daily hours for a teacher, overrides applied."""
        override = self.teacher_overrides.get(teacher_name)
        low, high = self.teacher_min_daily_hours, self.teacher_max_daily_hours
        if override is not None:
            if override.min_daily_hours is not None:
                low = override.min_daily_hours
            if override.max_daily_hours is not None:
                high = override.max_daily_hours
            if override.exempt_from_min_daily_hours:
                low = 0
        return low, high

    def class_start_time(self, class_name: str) -> str:
        override = self.class_overrides.get(class_name)
        if override is not None and override.start_time:
            return override.start_time
        return self.default_start_time

    def lesson_start_time(self, hour: int, class_name: Optional[str] = None) -> str:
        """Wall-clock start of a lesson hour, breaks included."""
        start = self.class_start_time(class_name) if class_name else self.default_start_time
        minutes = time_to_minutes(start) + (hour - 1) * self.lesson_duration_minutes
        minutes += sum(b.duration_minutes for b in self.breaks if b.after_hour < hour)
        return minutes_to_time(minutes)


# =============================================================================
# Schedule Output
# =============================================================================

class ScheduleSlot(BaseModel):
    """One occupied (day, hour) cell of a generated schedule."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    day: Weekday = Field(description="Schoolday")
    hour: int = Field(ge=1, description="1-based lesson hour")
    class_name: str = Field(description="Class name")
    teacher_name: str = Field(description="Teacher full name")
    subject: str = Field(description="Subject")
    room: str = Field(default="", description="Room, if assigned")
    articulation_group: str = Field(default="", description="Parallel sub-group tag")

    @property
    def time_slot(self) -> TimeSlot:
        return TimeSlot(day=self.day, hour=self.hour)

    def __str__(self) -> str:
        return f"{self.day.label} h{self.hour}: {self.class_name} {self.subject} ({self.teacher_name})"


class ScheduleStatistics(BaseModel):
    """Quality aggregates derived from a finished schedule."""
    model_config = ConfigDict(extra="forbid")

    total_slots: int = 0
    total_teacher_gaps: int = 0
    teacher_gaps: dict[str, int] = Field(default_factory=dict)
    teacher_daily_max: dict[str, int] = Field(default_factory=dict)
    constraints_satisfied: int = 0
    constraints_violated: int = 0
    violated_constraints: list[str] = Field(default_factory=list)
    optimization_score: float = Field(default=0.0, ge=0.0, le=100.0)


class GeneratedSchedule(BaseModel):
    """Result of one generation run."""
    model_config = ConfigDict(extra="forbid")

    slots: list[ScheduleSlot] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.now)
    generation_time_seconds: float = 0.0
    statistics: ScheduleStatistics = Field(default_factory=ScheduleStatistics)
    is_valid: bool = False
    warnings: list[str] = Field(default_factory=list)
    status: GenerationState = GenerationState.IDLE
    solver_status: str = ""

    def get_class_schedule(self, class_name: str) -> list[ScheduleSlot]:
        """Slots of one class, ordered by day then hour."""
        return sorted(
            (s for s in self.slots if s.class_name == class_name),
            key=lambda s: (s.day, s.hour),
        )

    def get_teacher_schedule(self, teacher_name: str) -> list[ScheduleSlot]:
        """Slots of one teacher, ordered by day then hour."""
        return sorted(
            (s for s in self.slots if s.teacher_name == teacher_name),
            key=lambda s: (s.day, s.hour),
        )

    def get_class_matrix(
        self, class_name: str, configuration: Configuration
    ) -> list[list[list[ScheduleSlot]]]:
        """
        Grid of a class's week: ``matrix[hour - 1][day_index]``.

        Each cell is a list because articulated lessons share a cell.
        """
        days = configuration.active_days()
        matrix: list[list[list[ScheduleSlot]]] = [
            [[] for _ in days] for _ in range(configuration.max_daily_hours)
        ]
        for slot in self.get_class_schedule(class_name):
            index = configuration.day_index(slot.day)
            if index is not None and slot.hour <= configuration.max_daily_hours:
                matrix[slot.hour - 1][index].append(slot)
        return matrix

    def summary(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "solver_status": self.solver_status,
            "is_valid": self.is_valid,
            "slots": len(self.slots),
            "teacher_gaps": self.statistics.total_teacher_gaps,
            "score": self.statistics.optimization_score,
            "warnings": len(self.warnings),
            "seconds": round(self.generation_time_seconds, 2),
        }


# =============================================================================
# Aggregation Helpers
# =============================================================================

def derive_teachers(activities: Iterable[Activity]) -> list[Teacher]:
    """
    Build Teacher entities from activities, keyed by teacher full name.

    Names are used as given; callers normalize before construction.
    """
    grouped: dict[str, list[Activity]] = defaultdict(list)
    for activity in activities:
        grouped[activity.teacher_full_name].append(activity)

    teachers: list[Teacher] = []
    for index, full_name in enumerate(sorted(grouped), start=1):
        items = grouped[full_name]
        first = items[0]
        surname, name = first.teacher_surname, first.teacher_name
        if f"{surname} {name}".strip() != full_name:
            surname, name = full_name, ""
        teachers.append(
            Teacher(
                id=index,
                surname=surname,
                name=name,
                class_codes={a.class_code or a.class_name for a in items},
                total_weekly_hours=sum(a.weekly_hours for a in items),
                activities=items,
            )
        )
    return teachers


def derive_classes(activities: Iterable[Activity]) -> list[SchoolClass]:
    """Build SchoolClass entities from activities, identifying articulation groups."""
    grouped: dict[str, list[Activity]] = defaultdict(list)
    for activity in activities:
        grouped[activity.class_name].append(activity)

    classes: list[SchoolClass] = []
    group_id = 0
    for index, class_name in enumerate(sorted(grouped), start=1):
        items = grouped[class_name]
        by_tag: dict[str, list[Activity]] = defaultdict(list)
        for activity in items:
            if activity.is_articulated:
                by_tag[activity.articulation_group].append(activity)

        groups: list[ArticulationGroup] = []
        for tag in sorted(by_tag):
            # Groups need at least two activities
            if len(by_tag[tag]) < 2:
                continue
            group_id += 1
            groups.append(ArticulationGroup(id=group_id, name=tag, activities=by_tag[tag]))

        classes.append(
            SchoolClass(
                id=index,
                name=class_name,
                total_weekly_hours=sum(a.weekly_hours for a in items),
                activities=items,
                articulation_groups=groups,
            )
        )
    return classes

