"""Core constraint that every schedule must satisfy."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from schedule_engine.model_builder import ScheduleModelBuilder


logger = logging.getLogger(__name__)


def add_assignment_constraints(builder: ScheduleModelBuilder) -> int:
    """
    Each activity starts exactly once in the week.

    An activity with no valid start (block longer than the day) gets an
    empty exactly-one, which makes the model infeasible rather than
    silently dropping the activity.

    Returns:
        Number of constraints added
    """
    added = 0
    for activity in builder.activities:
        starts = list(builder.start_vars[activity.id].values())
        if not starts:
            logger.warning("Activity %s has no valid start position", activity.id)
        builder.model.add_exactly_one(starts)
        added += 1
    return added
