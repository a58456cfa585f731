"""
Constraint modules for the schedule engine.

This package contains the built-in scheduling rules and the encoders for
user constraints, all added to the builder's CP-SAT model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from schedule_engine.data.constraints import Constraint, ConstraintPriority

if TYPE_CHECKING:
    from schedule_engine.model_builder import ScheduleModelBuilder

from .core import add_assignment_constraints

from .no_overlap import (
    add_teacher_no_overlap,
    add_class_no_overlap,
    add_articulation_alignment,
    add_distinct_day_spreading,
    add_all_no_overlap_constraints,
    NoOverlapStats,
)

from .daily_limits import (
    add_class_daily_band,
    add_class_weekly_total,
    add_teacher_daily_band,
    add_all_daily_limit_constraints,
    DailyLimitStats,
)

from .gaps import (
    add_first_hour_entry,
    add_class_contiguity,
    add_teacher_gap_minimization,
    GapStats,
)

from .user import (
    ENCODERS,
    apply_user_constraints,
    start_hour_days,
    target_activities,
    UserConstraintStats,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Constraint Manager Configuration
# =============================================================================

def _default_priority_weights() -> dict[ConstraintPriority, int]:
    return {priority: priority.value for priority in ConstraintPriority}


@dataclass
class ConstraintWeights:
    """Penalty weights for soft objective terms."""
    teacher_gap: int = 1  # Per idle teacher hour
    priorities: dict[ConstraintPriority, int] = field(default_factory=_default_priority_weights)


@dataclass
class ConstraintManagerStats:
    """Statistics about all constraints applied."""
    assignment_constraints: int = 0
    no_overlap: NoOverlapStats = field(default_factory=NoOverlapStats)
    daily_limits: DailyLimitStats = field(default_factory=DailyLimitStats)
    gaps: GapStats = field(default_factory=GapStats)
    user: UserConstraintStats = field(default_factory=UserConstraintStats)

    total_hard_constraints: int = 0
    total_soft_penalties: int = 0

    @property
    def failures(self) -> list[str]:
        return self.user.failures


# =============================================================================
# Constraint Manager
# =============================================================================

class ConstraintManager:
    """
    Centralized manager for applying all scheduling constraints.

    Hard rules are always applied: assignment, no-overlap, articulation
    alignment, distinct-day spreading, class and teacher bands, first-hour
    entry, class contiguity, and the user constraints. Soft terms are the
    teacher gap penalty (``optimize_gaps``) and, with ``soft_priorities``,
    one violation penalty per non-mandatory user constraint.

    Usage:
        builder = ScheduleModelBuilder(activities, configuration)
        builder.create_variables()

        manager = ConstraintManager(optimize_gaps=True)
        stats = manager.apply_all_constraints(builder, constraints)

        builder.set_objective()
    """

    def __init__(
        self,
        weights: Optional[ConstraintWeights] = None,
        optimize_gaps: bool = True,
        soft_priorities: bool = False,
    ):
        """
        Initialize the constraint manager.

        Args:
            weights: Penalty weights (uses defaults if None)
            optimize_gaps: Add the teacher gap penalty to the objective
            soft_priorities: Encode non-mandatory user constraints softly
        """
        self.weights = weights or ConstraintWeights()
        self.optimize_gaps = optimize_gaps
        self.soft_priorities = soft_priorities

    def apply_all_constraints(
        self,
        builder: ScheduleModelBuilder,
        constraints: Iterable[Constraint] = (),
        skip_hard: bool = False,
        skip_soft: bool = False,
    ) -> ConstraintManagerStats:
        """
        Apply all constraints to the model.

        Args:
            builder: The model builder with created variables
            constraints: User constraints
            skip_hard: Skip built-in hard rules (for testing)
            skip_soft: Skip the gap objective

        Returns:
            ConstraintManagerStats with counts of applied constraints
        """
        constraints = list(constraints)
        stats = ConstraintManagerStats()

        if not skip_hard:
            self._apply_hard_constraints(builder, stats)

        stats.user = apply_user_constraints(
            builder,
            constraints,
            soft_priorities=self.soft_priorities,
            priority_weights=self.weights.priorities,
        )
        stats.total_hard_constraints += stats.user.model_constraints
        stats.total_soft_penalties += stats.user.soft

        # First-hour entry yields only to start-hour constraints that were encoded
        if not skip_hard:
            self._apply_compactness(builder, stats)

        if not skip_soft and self.optimize_gaps:
            stats.total_soft_penalties += add_teacher_gap_minimization(
                builder, stats.gaps, weight=self.weights.teacher_gap
            )

        builder._constraints_added = True
        logger.info(
            "Applied %d hard constraints, %d soft penalties, %d user constraint failures",
            stats.total_hard_constraints,
            stats.total_soft_penalties,
            stats.user.failed,
        )
        return stats

    def _apply_hard_constraints(
        self,
        builder: ScheduleModelBuilder,
        stats: ConstraintManagerStats,
    ) -> None:
        """Apply the built-in placement and load rules."""
        # 1. Every activity placed exactly once
        stats.assignment_constraints = add_assignment_constraints(builder)
        stats.total_hard_constraints += stats.assignment_constraints

        # 2. No double-booking, parallel articulation, distinct days
        stats.no_overlap = add_all_no_overlap_constraints(builder)
        stats.total_hard_constraints += (
            stats.no_overlap.teacher_constraints
            + stats.no_overlap.class_constraints
            + stats.no_overlap.alignment_constraints
            + stats.no_overlap.spreading_constraints
        )

        # 3. Class and teacher daily bands
        stats.daily_limits = add_all_daily_limit_constraints(builder)
        stats.total_hard_constraints += (
            stats.daily_limits.class_day_constraints
            + stats.daily_limits.class_weekly_totals
            + stats.daily_limits.teacher_day_constraints
        )

    def _apply_compactness(self, builder: ScheduleModelBuilder, stats: ConstraintManagerStats) -> None:
        """Compact class days: first-hour entry and contiguity."""
        skip = stats.user.start_hour_days
        stats.total_hard_constraints += add_first_hour_entry(builder, stats.gaps, skip=skip)
        stats.total_hard_constraints += add_class_contiguity(builder, stats.gaps)


__all__ = [
    "ConstraintManager",
    "ConstraintManagerStats",
    "ConstraintWeights",
    # Core
    "add_assignment_constraints",
    # No-overlap constraints
    "add_teacher_no_overlap",
    "add_class_no_overlap",
    "add_articulation_alignment",
    "add_distinct_day_spreading",
    "add_all_no_overlap_constraints",
    "NoOverlapStats",
    # Daily limit constraints
    "add_class_daily_band",
    "add_class_weekly_total",
    "add_teacher_daily_band",
    "add_all_daily_limit_constraints",
    "DailyLimitStats",
    # Compactness constraints
    "add_first_hour_entry",
    "add_class_contiguity",
    "add_teacher_gap_minimization",
    "GapStats",
    # User constraints
    "ENCODERS",
    "apply_user_constraints",
    "start_hour_days",
    "target_activities",
    "UserConstraintStats",
]
