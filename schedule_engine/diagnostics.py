"""
Input diagnostics, callable independently of generation.

Two reports:
- Data consistency: declared vs derived weekly hours per class and teacher,
  classes that cannot fit in the week, articulation groups whose members
  differ in length
- Infeasibility: arithmetic reasons the model cannot have a solution,
  found without running the solver

Issues with ERROR severity are certain contradictions; the generator uses
them to report an infeasible input without searching.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from .data.models import (
    Activity,
    Configuration,
    SchoolClass,
    Teacher,
    articulation_blocks,
    attendance_hours,
)
from .exceptions import EngineConfigurationError


logger = logging.getLogger(__name__)

# Longest block a class can reasonably sit through in one go
PRACTICAL_BLOCK_HOURS = 3


# =============================================================================
# Report Types
# =============================================================================

class DiagnosticSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class DiagnosticIssue:
    """One finding about the input."""
    severity: DiagnosticSeverity
    category: str
    subject: str
    message: str

    def __str__(self) -> str:
        return f"[{self.severity.value.upper()}] {self.subject}: {self.message}"


@dataclass
class DiagnosticReport:
    """Ordered list of issues with severity helpers."""
    title: str
    issues: list[DiagnosticIssue] = field(default_factory=list)

    def add(self, severity: DiagnosticSeverity, category: str, subject: str, message: str) -> None:
        self.issues.append(DiagnosticIssue(severity, category, subject, message))

    @property
    def errors(self) -> list[DiagnosticIssue]:
        return [i for i in self.issues if i.severity == DiagnosticSeverity.ERROR]

    @property
    def warnings(self) -> list[DiagnosticIssue]:
        return [i for i in self.issues if i.severity == DiagnosticSeverity.WARNING]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def about(self, subject: str) -> list[DiagnosticIssue]:
        return [i for i in self.issues if i.subject == subject]

    def messages(self, min_severity: DiagnosticSeverity = DiagnosticSeverity.WARNING) -> list[str]:
        order = list(DiagnosticSeverity)
        return [str(i) for i in self.issues if order.index(i.severity) >= order.index(min_severity)]

    def to_text(self) -> str:
        if not self.issues:
            return f"{self.title}: no issues"
        return "\n".join([f"{self.title}:"] + [f"  {issue}" for issue in self.issues])


def _group(activities: Iterable[Activity], attr: str) -> dict[str, list[Activity]]:
    grouped: dict[str, list[Activity]] = defaultdict(list)
    for activity in activities:
        grouped[getattr(activity, attr)].append(activity)
    return grouped


def _feasible_day_counts(total: int, low: int, high: int, days: int) -> list[int]:
    """Numbers of worked days k with k x low <= total <= k x high."""
    return [k for k in range(1, days + 1) if k * low <= total <= k * high]


# =============================================================================
# Data Consistency
# =============================================================================

def check_data_consistency(
    activities: Sequence[Activity],
    teachers: Sequence[Teacher],
    classes: Sequence[SchoolClass],
    configuration: Configuration,
) -> DiagnosticReport:
    """
    Compare declared totals with what the activities add up to.

    Mismatches are warnings; they never abort generation.
    """
    if configuration is None:
        raise EngineConfigurationError("configuration is required")

    report = DiagnosticReport("Data consistency")
    by_class = _group(activities, "class_name")
    by_teacher = _group(activities, "teacher_full_name")
    days = len(configuration.active_days())

    for school_class in classes:
        derived = sum(a.weekly_hours for a in by_class.get(school_class.name, []))
        declared = school_class.total_weekly_hours
        if declared and declared != derived:
            report.add(
                DiagnosticSeverity.WARNING, "class_hours", school_class.name,
                f"declared {declared}h per week, activities add up to {derived}h",
            )

    for teacher in teachers:
        derived = sum(a.weekly_hours for a in by_teacher.get(teacher.full_name, []))
        declared = teacher.total_weekly_hours
        if declared and declared != derived:
            report.add(
                DiagnosticSeverity.WARNING, "teacher_hours", teacher.full_name,
                f"declared {declared}h per week, activities add up to {derived}h",
            )

    for class_name, items in sorted(by_class.items()):
        _, high = configuration.class_band(class_name)
        total = attendance_hours(items)
        if total > days * high:
            report.add(
                DiagnosticSeverity.WARNING, "class_capacity", class_name,
                f"{total}h per week do not fit in {days} days x {high}h",
            )
        for block in articulation_blocks(items):
            lengths = {a.weekly_hours for a in block}
            if len(lengths) > 1:
                report.add(
                    DiagnosticSeverity.WARNING, "articulation", class_name,
                    f"articulation group '{block[0].articulation_group}' mixes block "
                    f"lengths {sorted(lengths)}",
                )

    known_classes = {c.name for c in classes}
    known_teachers = {t.full_name for t in teachers}
    for class_name in sorted(set(by_class) - known_classes):
        if known_classes:
            report.add(
                DiagnosticSeverity.INFO, "unknown_class", class_name,
                "activities refer to a class that is not in the class list",
            )
    for teacher_name in sorted(set(by_teacher) - known_teachers):
        if known_teachers:
            report.add(
                DiagnosticSeverity.INFO, "unknown_teacher", teacher_name,
                "activities refer to a teacher who is not in the teacher list",
            )

    logger.debug("Data consistency: %d issues", len(report.issues))
    return report


# =============================================================================
# Infeasibility
# =============================================================================

def diagnose_infeasibility(
    activities: Sequence[Activity],
    configuration: Configuration,
) -> DiagnosticReport:
    """
    Find arithmetic reasons why no schedule can exist.

    Checks:
    - Class weekly hours against days x [min, max]
    - Teacher distinct-day spreading against the number of days and the
      teacher's daily minimum
    - Teacher weekly hours against days x teacher maximum
    - Block lengths against the day length and a practical bound

    Args:
        activities: Activities to place
        configuration: Grid shape and bands

    Returns:
        DiagnosticReport; ERROR issues are certain contradictions
    """
    if configuration is None:
        raise EngineConfigurationError("configuration is required")

    report = DiagnosticReport("Infeasibility analysis")
    days = len(configuration.active_days())
    grid = configuration.max_daily_hours

    # Classes
    for class_name, items in sorted(_group(activities, "class_name").items()):
        low, high = configuration.class_band(class_name)
        total = attendance_hours(items)
        if total > days * high:
            report.add(
                DiagnosticSeverity.ERROR, "class_capacity", class_name,
                f"{total}h per week exceed the maximum of {days} days x {high}h = {days * high}h",
            )
        elif not _feasible_day_counts(total, max(low, 1), high, days):
            report.add(
                DiagnosticSeverity.ERROR, "class_band", class_name,
                f"{total}h per week cannot be split into days of {low}-{high}h",
            )
        elif total < days * low:
            report.add(
                DiagnosticSeverity.WARNING, "class_band", class_name,
                f"{total}h per week are below {days} days x {low}h; "
                f"the class will not attend every day",
            )

    # Teachers
    for teacher_name, items in sorted(_group(activities, "teacher_full_name").items()):
        low, high = configuration.teacher_band(teacher_name)
        total = sum(a.weekly_hours for a in items)
        groups = _group_keys(items)
        spread = max(len(group) for group in groups.values())

        if total > days * high:
            report.add(
                DiagnosticSeverity.ERROR, "teacher_capacity", teacher_name,
                f"{total}h per week exceed {days} days x {high}h",
            )
        if spread > days:
            report.add(
                DiagnosticSeverity.ERROR, "teacher_spreading", teacher_name,
                f"{spread} repeated activities need distinct days but only {days} exist",
            )
        elif low > 0 and spread > total // low:
            report.add(
                DiagnosticSeverity.ERROR, "teacher_min_hours", teacher_name,
                f"spreading forces {spread} working days, but {total}h per week "
                f"sustain at most {total // low} days of at least {low}h "
                f"({_spread_breakdown(groups)})",
            )

    # Activities
    for activity in activities:
        _, class_high = configuration.class_band(activity.class_name)
        limit = min(grid, class_high)
        if activity.weekly_hours > limit:
            report.add(
                DiagnosticSeverity.ERROR, "block_length", f"activity {activity.id}",
                f"{activity.weekly_hours}h block of {activity.subject} for "
                f"{activity.class_name} exceeds the {limit}-hour day",
            )
        elif activity.weekly_hours > PRACTICAL_BLOCK_HOURS:
            report.add(
                DiagnosticSeverity.WARNING, "block_length", f"activity {activity.id}",
                f"{activity.weekly_hours}h block of {activity.subject} for "
                f"{activity.class_name} is longer than {PRACTICAL_BLOCK_HOURS} consecutive hours",
            )

    logger.debug("Infeasibility analysis: %d issues", len(report.issues))
    return report


def _group_keys(activities: Iterable[Activity]) -> dict[tuple[str, str, str], list[Activity]]:
    grouped: dict[tuple[str, str, str], list[Activity]] = defaultdict(list)
    for activity in activities:
        grouped[activity.key].append(activity)
    return grouped


def _spread_breakdown(groups: dict[tuple[str, str, str], list[Activity]]) -> str:
    """Per-key summary, largest group first: 'Math 1A: 3 x 1h, Art 1B: 1 x 2h'."""
    ordered = sorted(groups.items(), key=lambda item: (-len(item[1]), item[0]))
    return ", ".join(
        f"{subject} {class_name}: {len(group)} x "
        + "/".join(f"{h}h" for h in sorted({a.weekly_hours for a in group}))
        for (_, class_name, subject), group in ordered
    )
