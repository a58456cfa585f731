"""
CP-SAT Model Builder for school schedules.

This module builds a CP-SAT model over start variables: one boolean per
(activity, day, start hour) telling whether the activity's block begins
there.

Grid representation:
- Days are canonical indices 0..D-1 into Configuration.active_days()
- Hours are 1-based lesson positions 1..max_daily_hours
- An activity of n hours may start at 1..max_daily_hours - n + 1, so its
  block always fits in the day and is contiguous by construction

Occupancy of hour h on day d by an activity is the disjunction of its start
variables with s <= h < s + n. Conflict, band and gap rules are all built
from these occupancy terms.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Optional, Sequence

from ortools.sat.python import cp_model

from .data.models import Activity, Configuration, SchoolClass, Teacher, Weekday
from .exceptions import EngineConfigurationError

if TYPE_CHECKING:
    from .constraints import ConstraintManager, ConstraintManagerStats
    from .data.constraints import Constraint


logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class PenaltyVar:
    """A soft objective term: ``weight * var`` is minimized."""
    name: str
    var: cp_model.IntVar
    weight: int
    description: str


# =============================================================================
# Main Model Builder
# =============================================================================

class ScheduleModelBuilder:
    """
    Builds a CP-SAT model for weekly school scheduling.

    Usage:
        builder = ScheduleModelBuilder(activities, configuration)
        builder.create_variables()
        builder.add_constraints(user_constraints)
        builder.set_objective()
        # solve builder.model with a cp_model.CpSolver
    """

    def __init__(
        self,
        activities: Iterable[Activity],
        configuration: Configuration,
        teachers: Optional[Sequence[Teacher]] = None,
        classes: Optional[Sequence[SchoolClass]] = None,
    ):
        """
        Initialize the model builder.

        Args:
            activities: Activities to place
            configuration: Grid shape and daily bands
            teachers: Teacher entities (informational)
            classes: Class entities (informational)

        Raises:
            EngineConfigurationError: If configuration is missing or
                activity IDs are not unique
        """
        if configuration is None:
            raise EngineConfigurationError("configuration is required")

        self.activities: list[Activity] = list(activities)
        self.configuration = configuration
        self.teachers = list(teachers or [])
        self.classes = list(classes or [])

        self.days: list[Weekday] = configuration.active_days()
        self.num_days = len(self.days)
        self.max_hours = configuration.max_daily_hours

        self._activity_map: dict[int, Activity] = {}
        for activity in self.activities:
            if activity.id in self._activity_map:
                raise EngineConfigurationError(f"duplicate activity id {activity.id}")
            self._activity_map[activity.id] = activity

        self.activities_by_teacher: dict[str, list[Activity]] = defaultdict(list)
        self.activities_by_class: dict[str, list[Activity]] = defaultdict(list)
        for activity in self.activities:
            self.activities_by_teacher[activity.teacher_full_name].append(activity)
            self.activities_by_class[activity.class_name].append(activity)

        self.model = cp_model.CpModel()

        # start_vars[activity_id][(day_index, start_hour)]
        self.start_vars: dict[int, dict[tuple[int, int], cp_model.IntVar]] = {}
        self.penalty_vars: list[PenaltyVar] = []

        self._class_occupancy: dict[tuple[str, int, int], Optional[cp_model.IntVar]] = {}
        self._teacher_occupancy: dict[tuple[str, int, int], Optional[cp_model.IntVar]] = {}
        self._class_attends: dict[tuple[str, int], Optional[cp_model.IntVar]] = {}
        self._teacher_gaps: dict[tuple[str, int], cp_model.IntVar] = {}

        self._variables_created = False
        self._constraints_added = False

    # -------------------------------------------------------------------------
    # Variable Creation
    # -------------------------------------------------------------------------

    def valid_starts(self, activity: Activity) -> range:
        """Start hours that keep the activity's block inside the day."""
        return range(1, self.max_hours - activity.weekly_hours + 2)

    def create_variables(self) -> int:
        """
        Create one start variable per (activity, day, valid start hour).

        Returns:
            Number of start variables created
        """
        if self._variables_created:
            return self.num_start_vars

        for activity in self.activities:
            starts: dict[tuple[int, int], cp_model.IntVar] = {}
            for d in range(self.num_days):
                for s in self.valid_starts(activity):
                    starts[(d, s)] = self.model.new_bool_var(f"start_a{activity.id}_d{d}_s{s}")
            if not starts:
                logger.warning(
                    "Activity %s (%dh) cannot fit in a %d-hour day",
                    activity.id, activity.weekly_hours, self.max_hours,
                )
            self.start_vars[activity.id] = starts

        self._variables_created = True
        logger.debug("Created %d start variables", self.num_start_vars)
        return self.num_start_vars

    @property
    def num_start_vars(self) -> int:
        return sum(len(v) for v in self.start_vars.values())

    def get_activity(self, activity_id: int) -> Optional[Activity]:
        return self._activity_map.get(activity_id)

    # -------------------------------------------------------------------------
    # Occupancy Helpers
    # -------------------------------------------------------------------------

    def day_start_vars(self, activity: Activity, d: int) -> list[cp_model.IntVar]:
        """Start variables of an activity on one day."""
        return [v for (day, _), v in self.start_vars[activity.id].items() if day == d]

    def covering_vars(self, activity: Activity, d: int, h: int) -> list[cp_model.IntVar]:
        """Start variables whose block would occupy hour h of day d."""
        n = activity.weekly_hours
        starts = self.start_vars[activity.id]
        return [
            starts[(d, s)]
            for s in range(max(1, h - n + 1), h + 1)
            if (d, s) in starts
        ]

    def occupancy_vars(
        self, activities: Iterable[Activity], d: int, h: int
    ) -> list[cp_model.IntVar]:
        """All covering start variables of several activities at (d, h)."""
        result: list[cp_model.IntVar] = []
        for activity in activities:
            result.extend(self.covering_vars(activity, d, h))
        return result

    def hours_on_day(self, activities: Iterable[Activity], d: int) -> cp_model.LinearExprT:
        """Sum of block lengths placed on day d."""
        return sum(
            activity.weekly_hours * var
            for activity in activities
            for var in self.day_start_vars(activity, d)
        )

    def occupancy_literal(
        self, terms: list[cp_model.IntVar], name: str
    ) -> Optional[cp_model.IntVar]:
        """
        Boolean equal to the OR of ``terms``.

        Returns the single term itself when there is only one, and None when
        nothing can occupy the cell.
        """
        if not terms:
            return None
        if len(terms) == 1:
            return terms[0]
        literal = self.model.new_bool_var(name)
        self.model.add_max_equality(literal, terms)
        return literal

    def class_occupancy(self, class_name: str, d: int, h: int) -> Optional[cp_model.IntVar]:
        """Cached literal: the class has a lesson at (d, h)."""
        key = (class_name, d, h)
        if key not in self._class_occupancy:
            terms = self.occupancy_vars(self.activities_by_class.get(class_name, []), d, h)
            self._class_occupancy[key] = self.occupancy_literal(
                terms, f"class_occ_{class_name}_d{d}_h{h}"
            )
        return self._class_occupancy[key]

    def teacher_occupancy(self, teacher_name: str, d: int, h: int) -> Optional[cp_model.IntVar]:
        """Cached literal: the teacher has a lesson at (d, h)."""
        key = (teacher_name, d, h)
        if key not in self._teacher_occupancy:
            terms = self.occupancy_vars(self.activities_by_teacher.get(teacher_name, []), d, h)
            self._teacher_occupancy[key] = self.occupancy_literal(
                terms, f"teacher_occ_{teacher_name}_d{d}_h{h}"
            )
        return self._teacher_occupancy[key]

    def class_day_literals(self, class_name: str, d: int) -> list[cp_model.IntVar]:
        """Occupancy literals of a class over the hours of day d."""
        literals = []
        for h in range(1, self.max_hours + 1):
            literal = self.class_occupancy(class_name, d, h)
            if literal is not None:
                literals.append(literal)
        return literals

    def class_day_hours(self, class_name: str, d: int) -> cp_model.LinearExprT:
        """
        Hours the class sits in school on day d.

        Counted from occupancy literals, so parallel articulated lessons
        count once.
        """
        return sum(self.class_day_literals(class_name, d))

    def class_attends(self, class_name: str, d: int) -> Optional[cp_model.IntVar]:
        """Cached literal: the class has any lesson on day d."""
        key = (class_name, d)
        if key not in self._class_attends:
            literals = self.class_day_literals(class_name, d)
            attends = None
            if literals:
                attends = self.model.new_bool_var(f"class_attends_{class_name}_d{d}")
                self.model.add_max_equality(attends, literals)
            self._class_attends[key] = attends
        return self._class_attends[key]

    def teacher_day_gaps(self, teacher_name: str, d: int) -> cp_model.IntVar:
        """
        Cached integer bounded below by the teacher's idle hours on day d.

        On a worked day gap >= last - first + 1 - hours, where first/last are
        pushed to cover every occupied hour. Minimizing or upper-bounding the
        gap makes first/last settle on the true first and last lesson. On a
        free day the gap is unconstrained and settles at 0.
        """
        key = (teacher_name, d)
        if key in self._teacher_gaps:
            return self._teacher_gaps[key]

        first = self.model.new_int_var(1, self.max_hours, f"first_{teacher_name}_d{d}")
        last = self.model.new_int_var(1, self.max_hours, f"last_{teacher_name}_d{d}")
        gap = self.model.new_int_var(0, self.max_hours, f"gap_{teacher_name}_d{d}")

        occupied_hours = []
        for h in range(1, self.max_hours + 1):
            occupied = self.teacher_occupancy(teacher_name, d, h)
            if occupied is None:
                continue
            occupied_hours.append(occupied)
            self.model.add(first <= h).only_enforce_if(occupied)
            self.model.add(last >= h).only_enforce_if(occupied)

        works = self.occupancy_literal(occupied_hours, f"teacher_works_{teacher_name}_d{d}")
        if works is None:
            self.model.add(gap == 0)
        else:
            hours = self.hours_on_day(self.activities_by_teacher.get(teacher_name, []), d)
            self.model.add(gap >= last - first + 1 - hours).only_enforce_if(works)

        self._teacher_gaps[key] = gap
        return gap

    # -------------------------------------------------------------------------
    # Constraints and Objective
    # -------------------------------------------------------------------------

    def add_penalty(self, name: str, var: cp_model.IntVar, weight: int, description: str) -> None:
        self.penalty_vars.append(PenaltyVar(name=name, var=var, weight=weight, description=description))

    def add_constraints(
        self,
        constraints: Iterable[Constraint] = (),
        manager: Optional[ConstraintManager] = None,
    ) -> ConstraintManagerStats:
        """
        Apply built-in rules and user constraints through a ConstraintManager.

        Args:
            constraints: User constraints (inactive ones are ignored)
            manager: Manager to use (default settings if None)

        Returns:
            ConstraintManagerStats for the applied constraints
        """
        from .constraints import ConstraintManager

        if not self._variables_created:
            self.create_variables()
        manager = manager or ConstraintManager()
        return manager.apply_all_constraints(self, constraints)

    def set_objective(self) -> None:
        """Minimize the weighted sum of penalty variables, if any."""
        terms = [p.weight * p.var for p in self.penalty_vars if p.weight > 0]
        if terms:
            self.model.minimize(sum(terms))
            logger.debug("Objective over %d penalty terms", len(terms))

    def get_statistics(self) -> dict[str, Any]:
        """Get model statistics."""
        proto = self.model.proto
        return {
            "num_activities": len(self.activities),
            "num_days": self.num_days,
            "max_daily_hours": self.max_hours,
            "num_start_vars": self.num_start_vars,
            "num_variables": len(proto.variables),
            "num_constraints": len(proto.constraints),
            "num_penalty_vars": len(self.penalty_vars),
        }
