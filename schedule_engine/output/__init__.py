"""Output modules: solution extraction and schedule statistics."""

from .extractor import (
    SolutionExtractor,
    extract_slots,
    group_by_class,
    group_by_day,
    group_by_teacher,
    materialize,
    sort_slots,
)
from .statistics import (
    StatisticsCalculator,
    calculate_statistics,
    day_gaps,
    optimization_score,
    teacher_daily_max,
    teacher_gaps,
)

__all__ = [
    "SolutionExtractor",
    "extract_slots",
    "group_by_class",
    "group_by_day",
    "group_by_teacher",
    "materialize",
    "sort_slots",
    "StatisticsCalculator",
    "calculate_statistics",
    "day_gaps",
    "optimization_score",
    "teacher_daily_max",
    "teacher_gaps",
]
