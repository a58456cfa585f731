"""
Solution extractor for turning solved start variables into schedule slots.

For every activity, the unique true start variable (day d, start s) is
materialized as ``weekly_hours`` consecutive ScheduleSlots on that day.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Protocol

from schedule_engine.data.models import Activity, ScheduleSlot, Weekday

if TYPE_CHECKING:
    from schedule_engine.model_builder import ScheduleModelBuilder


logger = logging.getLogger(__name__)


class SupportsBooleanValue(Protocol):
    """CpSolver or a solution callback: anything that can read a literal."""

    def boolean_value(self, literal) -> bool: ...


# =============================================================================
# Helper Functions
# =============================================================================

def group_by_teacher(slots: list[ScheduleSlot]) -> dict[str, list[ScheduleSlot]]:
    """Group slots by teacher name."""
    result: dict[str, list[ScheduleSlot]] = defaultdict(list)
    for slot in slots:
        result[slot.teacher_name].append(slot)
    return dict(result)


def group_by_class(slots: list[ScheduleSlot]) -> dict[str, list[ScheduleSlot]]:
    """Group slots by class name."""
    result: dict[str, list[ScheduleSlot]] = defaultdict(list)
    for slot in slots:
        result[slot.class_name].append(slot)
    return dict(result)


def group_by_day(slots: list[ScheduleSlot]) -> dict[Weekday, list[ScheduleSlot]]:
    """Group slots by day."""
    result: dict[Weekday, list[ScheduleSlot]] = defaultdict(list)
    for slot in slots:
        result[slot.day].append(slot)
    return dict(result)


def sort_slots(slots: list[ScheduleSlot]) -> list[ScheduleSlot]:
    """Sort slots by day, hour, class, then teacher."""
    return sorted(slots, key=lambda s: (s.day, s.hour, s.class_name, s.teacher_name))


def materialize(activity: Activity, day: Weekday, start: int) -> list[ScheduleSlot]:
    """The ``weekly_hours`` consecutive slots of one placed activity."""
    return [
        ScheduleSlot(
            day=day,
            hour=hour,
            class_name=activity.class_name,
            teacher_name=activity.teacher_full_name,
            subject=activity.subject,
            articulation_group=activity.articulation_group,
        )
        for hour in range(start, start + activity.weekly_hours)
    ]


# =============================================================================
# Solution Extractor
# =============================================================================

class SolutionExtractor:
    """
    Extracts schedule slots from a solved model.

    Usage:
        extractor = SolutionExtractor()
        slots = extractor.extract(solver, builder)
    """

    def placements(
        self, values: SupportsBooleanValue, builder: ScheduleModelBuilder
    ) -> dict[int, tuple[Weekday, int]]:
        """
        Chosen (day, start hour) per activity id.

        Raises:
            ValueError: If an activity does not have exactly one true start
        """
        result: dict[int, tuple[Weekday, int]] = {}
        for activity in builder.activities:
            chosen = [
                (d, s)
                for (d, s), var in builder.start_vars[activity.id].items()
                if values.boolean_value(var)
            ]
            if len(chosen) != 1:
                raise ValueError(
                    f"Activity {activity.id} has {len(chosen)} true start variables"
                )
            d, s = chosen[0]
            result[activity.id] = (builder.days[d], s)
        return result

    def extract(
        self, values: SupportsBooleanValue, builder: ScheduleModelBuilder
    ) -> list[ScheduleSlot]:
        """
        Materialize every activity's block as consecutive slots.

        Args:
            values: Solved CpSolver (or solution callback)
            builder: Builder whose model was solved

        Returns:
            Slots sorted by day and hour
        """
        slots: list[ScheduleSlot] = []
        for activity_id, (day, start) in self.placements(values, builder).items():
            activity = builder.get_activity(activity_id)
            slots.extend(materialize(activity, day, start))
        logger.debug("Extracted %d slots for %d activities", len(slots), len(builder.activities))
        return sort_slots(slots)


def extract_slots(values: SupportsBooleanValue, builder: ScheduleModelBuilder) -> list[ScheduleSlot]:
    """Convenience wrapper around SolutionExtractor.extract."""
    return SolutionExtractor().extract(values, builder)
