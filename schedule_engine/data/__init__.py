"""Data models, constraint catalog and input loading."""

from .models import (
    Activity,
    ArticulationGroup,
    BreakConfiguration,
    ClassConfiguration,
    Configuration,
    GeneratedSchedule,
    GenerationState,
    ScheduleSlot,
    ScheduleStatistics,
    SchoolClass,
    Teacher,
    TeacherConfiguration,
    TimeSlot,
    Weekday,
    articulation_blocks,
    attendance_hours,
    derive_classes,
    derive_teachers,
)
from .constraints import (
    ClassExactDailyHours,
    ClassStartHour,
    ClassWeeklyDistribution,
    Constraint,
    ConstraintPriority,
    ConstraintSet,
    ScheduleContext,
    TeacherDayOff,
    TeacherMaxDailyHours,
    TeacherMaxWeeklyGaps,
    TeacherUnavailableSlots,
    ValidationReport,
    validate_schedule,
)
from .inputs import EngineInput, load_engine_input

__all__ = [
    "Activity",
    "ArticulationGroup",
    "BreakConfiguration",
    "ClassConfiguration",
    "Configuration",
    "GeneratedSchedule",
    "GenerationState",
    "ScheduleSlot",
    "ScheduleStatistics",
    "SchoolClass",
    "Teacher",
    "TeacherConfiguration",
    "TimeSlot",
    "Weekday",
    "articulation_blocks",
    "attendance_hours",
    "derive_classes",
    "derive_teachers",
    "ClassExactDailyHours",
    "ClassStartHour",
    "ClassWeeklyDistribution",
    "Constraint",
    "ConstraintPriority",
    "ConstraintSet",
    "ScheduleContext",
    "TeacherDayOff",
    "TeacherMaxDailyHours",
    "TeacherMaxWeeklyGaps",
    "TeacherUnavailableSlots",
    "ValidationReport",
    "validate_schedule",
    "EngineInput",
    "load_engine_input",
]
