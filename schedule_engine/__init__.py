"""Schedule Engine - CP-SAT based weekly school scheduling."""

from .generator import (
    CancellationToken,
    GenerationOptions,
    GenerationProgress,
    ScheduleGenerator,
)
from .model_builder import ScheduleModelBuilder
from .diagnostics import check_data_consistency, diagnose_infeasibility
from .cli import app as cli_app

__all__ = [
    # Generation
    "ScheduleGenerator",
    "GenerationOptions",
    "GenerationProgress",
    "CancellationToken",
    # Model
    "ScheduleModelBuilder",
    # Diagnostics
    "check_data_consistency",
    "diagnose_infeasibility",
    # CLI
    "cli_app",
]
