"""
Solver driver: runs one schedule generation from input to GeneratedSchedule.

State machine:
    IDLE -> BUILDING_VARIABLES -> ENCODING_CONSTRAINTS -> SOLVING
         -> SOLVED | INFEASIBLE | CANCELLED | FAILED

Progress is delivered as GenerationProgress events with non-decreasing
percentages, ending in exactly one event with ``is_completed=True``.
Cancellation is cooperative: the token is polled at every phase boundary and
during the search, and a cancelled run returns no slots.

Expected failures (infeasible input, time limit, a constraint that cannot be
encoded) are reported in the result; only a missing or invalid configuration
raises.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from ortools.sat.python import cp_model
from pydantic import BaseModel, ConfigDict, Field

from .constraints import ConstraintManager, ConstraintWeights
from .data.constraints import Constraint, ConstraintPriority
from .data.inputs import EngineInput
from .data.models import (
    Activity,
    Configuration,
    GeneratedSchedule,
    GenerationState,
    ScheduleSlot,
    ScheduleStatistics,
    SchoolClass,
    Teacher,
    derive_classes,
    derive_teachers,
)
from .diagnostics import DiagnosticSeverity, check_data_consistency, diagnose_infeasibility
from .exceptions import EngineConfigurationError
from .model_builder import ScheduleModelBuilder
from .output.extractor import extract_slots
from .output.statistics import calculate_statistics


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PROGRESS_START = 0
PROGRESS_VARIABLES = 20
PROGRESS_CONSTRAINTS = 40
PROGRESS_OBJECTIVE = 60
PROGRESS_SOLVING = 70
PROGRESS_SOLUTIONS_CEILING = 80
PROGRESS_EXTRACTING = 85
PROGRESS_DONE = 100

CANCEL_POLL_SECONDS = 0.05


# =============================================================================
# Options, Progress and Cancellation
# =============================================================================

class GenerationOptions(BaseModel):
    """Knobs for one generation run."""
    model_config = ConfigDict(extra="forbid")

    max_seconds: float = Field(default=30.0, gt=0, description="Wall-clock search limit")
    optimize_gaps: bool = Field(default=True, description="Minimize teacher idle hours")
    use_parallel_processing: bool = Field(default=True, description="Use several search workers")
    num_workers: int = Field(default=4, ge=1, le=64, description="Search workers when parallel")
    verbose_logging: bool = Field(default=False, description="Log the CP-SAT search")
    soft_priorities: bool = Field(
        default=False, description="Encode non-mandatory user constraints as penalties"
    )
    priority_weights: dict[ConstraintPriority, int] = Field(
        default_factory=dict, description="Penalty per violated constraint, by priority"
    )
    precheck_infeasibility: bool = Field(
        default=True, description="Report certain contradictions without searching"
    )

    @property
    def effective_workers(self) -> int:
        return self.num_workers if self.use_parallel_processing else 1

    def constraint_weights(self) -> ConstraintWeights:
        weights = ConstraintWeights()
        weights.priorities.update(self.priority_weights)
        return weights


@dataclass(frozen=True)
class GenerationProgress:
    """One progress notification."""
    percentage: int
    message: str
    is_completed: bool = False
    has_errors: bool = False


ProgressCallback = Callable[[GenerationProgress], None]


class ProgressReporter:
    """
    Delivers progress events to an optional callback.

    Percentages never decrease and only the first completion event is sent.
    Safe to call from the search thread.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._lock = threading.RLock()
        self._last = 0
        self._completed = False
        self.events: list[GenerationProgress] = []

    @property
    def is_completed(self) -> bool:
        return self._completed

    @property
    def percentage(self) -> int:
        return self._last

    def report(self, percentage: int, message: str, has_errors: bool = False) -> None:
        with self._lock:
            if self._completed:
                return
            self._last = max(self._last, min(int(percentage), PROGRESS_DONE - 1))
            self._emit(GenerationProgress(self._last, message, False, has_errors))

    def complete(self, message: str, has_errors: bool = False) -> None:
        with self._lock:
            if self._completed:
                return
            self._completed = True
            self._last = PROGRESS_DONE
            self._emit(GenerationProgress(PROGRESS_DONE, message, True, has_errors))

    def _emit(self, event: GenerationProgress) -> None:
        self.events.append(event)
        if event.has_errors:
            logger.warning("[%3d%%] %s", event.percentage, event.message)
        else:
            logger.info("[%3d%%] %s", event.percentage, event.message)
        if self._callback is not None:
            try:
                self._callback(event)
            except Exception:
                logger.exception("Progress callback raised")


class CancellationToken:
    """Cooperative cancellation flag shared between caller and driver."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class SolutionProgressCallback(cp_model.CpSolverSolutionCallback):
    """Reports improving solutions and stops the search on cancellation."""

    def __init__(self, reporter: ProgressReporter, token: CancellationToken):
        super().__init__()
        self._reporter = reporter
        self._token = token
        self._solution_count = 0
        self._start_time = time.time()

    def on_solution_callback(self) -> None:
        if self._token.is_cancelled:
            self.stop_search()
            return
        self._solution_count += 1
        elapsed = time.time() - self._start_time
        self._reporter.report(
            min(PROGRESS_SOLUTIONS_CEILING, PROGRESS_SOLVING + self._solution_count),
            f"Solution #{self._solution_count} | time {elapsed:.1f}s | "
            f"objective {self.objective_value:.0f}",
        )

    @property
    def solution_count(self) -> int:
        return self._solution_count


def _watch_cancellation(
    token: CancellationToken, solver: cp_model.CpSolver, done: threading.Event
) -> None:
    while not done.wait(CANCEL_POLL_SECONDS):
        if token.is_cancelled:
            logger.info("Cancellation requested, stopping search")
            solver.stop_search()
            return


# =============================================================================
# Generator
# =============================================================================

class ScheduleGenerator:
    """
    Generates a weekly schedule with CP-SAT.

    Each call to ``generate`` owns its builder, model and variables, so
    separate generators may run in parallel. Calling ``generate`` twice at
    once on the same generator is not supported.

    Usage:
        generator = ScheduleGenerator(activities, teachers, classes, constraints, config)
        schedule = generator.generate(GenerationOptions(max_seconds=60))
    """

    def __init__(
        self,
        activities: Iterable[Activity],
        teachers: Optional[Sequence[Teacher]],
        classes: Optional[Sequence[SchoolClass]],
        constraints: Optional[Iterable[Constraint]],
        configuration: Configuration,
    ):
        """
        Args:
            activities: Activities to place
            teachers: Teachers (derived from activities if None or empty)
            classes: Classes (derived from activities if None or empty)
            constraints: User constraints; inactive ones are ignored
            configuration: Grid shape and bands

        Raises:
            EngineConfigurationError: If configuration is missing
        """
        if configuration is None:
            raise EngineConfigurationError("configuration is required")
        if not isinstance(configuration, Configuration):
            raise EngineConfigurationError(
                f"configuration must be a Configuration, got {type(configuration).__name__}"
            )

        self.activities: list[Activity] = list(activities or [])
        self.teachers: list[Teacher] = list(teachers or []) or derive_teachers(self.activities)
        self.classes: list[SchoolClass] = list(classes or []) or derive_classes(self.activities)
        self.constraints: list[Constraint] = list(constraints or [])
        self.configuration = configuration
        self._state = GenerationState.IDLE

    @classmethod
    def from_input(cls, engine_input: EngineInput) -> "ScheduleGenerator":
        return cls(
            engine_input.activities,
            engine_input.teachers,
            engine_input.classes,
            engine_input.constraints,
            engine_input.configuration,
        )

    @property
    def state(self) -> GenerationState:
        return self._state

    def _set_state(self, state: GenerationState) -> None:
        logger.debug("Generation state %s -> %s", self._state.value, state.value)
        self._state = state

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def generate(
        self,
        options: Optional[GenerationOptions] = None,
        cancellation: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> GeneratedSchedule:
        """
        Run one generation.

        Args:
            options: Generation options (defaults if None)
            cancellation: Token the caller may cancel at any time
            progress: Callback receiving GenerationProgress events

        Returns:
            GeneratedSchedule; ``status`` tells how the run ended
        """
        options = options or GenerationOptions()
        token = cancellation or CancellationToken()
        reporter = ProgressReporter(progress)
        started = time.perf_counter()
        warnings: list[str] = []

        self._set_state(GenerationState.IDLE)
        try:
            return self._generate(options, token, reporter, warnings, started)
        except EngineConfigurationError:
            self._set_state(GenerationState.FAILED)
            reporter.complete("Invalid engine configuration", has_errors=True)
            raise
        except Exception as exc:
            logger.exception("Schedule generation failed")
            message = f"Generation failed: {exc}"
            warnings.append(message)
            return self._finish(
                GenerationState.FAILED, reporter, message, started, warnings, has_errors=True
            )

    def generate_async(
        self,
        options: Optional[GenerationOptions] = None,
        cancellation: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> Future[GeneratedSchedule]:
        """
        Run ``generate`` off the calling thread.

        Args:
            executor: Executor to submit to (a private one-thread executor if None)

        Returns:
            Future resolving to the GeneratedSchedule
        """
        if executor is not None:
            return executor.submit(self.generate, options, cancellation, progress)

        own = ThreadPoolExecutor(max_workers=1, thread_name_prefix="schedule-generator")
        future = own.submit(self.generate, options, cancellation, progress)
        own.shutdown(wait=False)
        return future

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _generate(
        self,
        options: GenerationOptions,
        token: CancellationToken,
        reporter: ProgressReporter,
        warnings: list[str],
        started: float,
    ) -> GeneratedSchedule:
        reporter.report(PROGRESS_START, f"Starting generation for {len(self.activities)} activities")

        consistency = check_data_consistency(
            self.activities, self.teachers, self.classes, self.configuration
        )
        for message in consistency.messages(DiagnosticSeverity.WARNING):
            warnings.append(message)
            reporter.report(PROGRESS_START, message)

        if options.precheck_infeasibility:
            analysis = diagnose_infeasibility(self.activities, self.configuration)
            if analysis.has_errors:
                warnings.append("Input is infeasible; no schedule can satisfy it")
                warnings.extend(str(issue) for issue in analysis.errors)
                return self._finish(
                    GenerationState.INFEASIBLE, reporter,
                    "No schedule exists for this input", started, warnings,
                    has_errors=True, solver_status="NOT_SOLVED",
                )

        if token.is_cancelled:
            return self._cancelled(reporter, started, warnings)

        # Variables
        self._set_state(GenerationState.BUILDING_VARIABLES)
        reporter.report(PROGRESS_VARIABLES, "Creating start variables")
        builder = ScheduleModelBuilder(
            self.activities, self.configuration, self.teachers, self.classes
        )
        num_vars = builder.create_variables()
        logger.info("Created %d start variables", num_vars)

        if token.is_cancelled:
            return self._cancelled(reporter, started, warnings)

        # Constraints
        self._set_state(GenerationState.ENCODING_CONSTRAINTS)
        reporter.report(PROGRESS_CONSTRAINTS, "Encoding constraints")
        manager = ConstraintManager(
            weights=options.constraint_weights(),
            optimize_gaps=options.optimize_gaps,
            soft_priorities=options.soft_priorities,
        )
        stats = builder.add_constraints(self.constraints, manager)
        for failure in stats.failures:
            warnings.append(failure)
            reporter.report(PROGRESS_CONSTRAINTS, failure, has_errors=True)

        reporter.report(PROGRESS_OBJECTIVE, "Setting objective")
        builder.set_objective()

        if token.is_cancelled:
            return self._cancelled(reporter, started, warnings)

        # Search
        self._set_state(GenerationState.SOLVING)
        reporter.report(PROGRESS_SOLVING, f"Solving (time limit {options.max_seconds:g}s)")
        solver, status = self._solve(builder, options, token, reporter)

        if token.is_cancelled:
            return self._cancelled(reporter, started, warnings)

        status_name = solver.status_name(status)
        logger.info("Solver finished with status %s in %.2fs", status_name, solver.wall_time)

        if status in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            return self._solved(builder, solver, status, options, reporter, started, warnings)

        if status == cp_model.MODEL_INVALID:
            message = f"Model invalid: {builder.model.validate()}"
            warnings.append(message)
            return self._finish(
                GenerationState.FAILED, reporter, message, started, warnings,
                has_errors=True, solver_status=status_name,
            )

        if status == cp_model.UNKNOWN:
            warnings.append(
                f"Time limit of {options.max_seconds:g}s exceeded without finding a schedule"
            )
        else:
            warnings.append("No schedule satisfies all hard constraints")
        analysis = diagnose_infeasibility(self.activities, self.configuration)
        warnings.extend(analysis.messages(DiagnosticSeverity.WARNING))
        return self._finish(
            GenerationState.INFEASIBLE, reporter, f"No schedule found ({status_name})",
            started, warnings, has_errors=True, solver_status=status_name,
        )

    def _solve(
        self,
        builder: ScheduleModelBuilder,
        options: GenerationOptions,
        token: CancellationToken,
        reporter: ProgressReporter,
    ) -> tuple[cp_model.CpSolver, int]:
        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = options.max_seconds
        solver.parameters.num_workers = options.effective_workers
        solver.parameters.log_search_progress = options.verbose_logging

        callback = SolutionProgressCallback(reporter, token)
        done = threading.Event()
        watcher = threading.Thread(
            target=_watch_cancellation,
            args=(token, solver, done),
            name="schedule-cancel-watcher",
            daemon=True,
        )
        watcher.start()
        try:
            status = solver.solve(builder.model, callback)
        finally:
            done.set()
            watcher.join()
        logger.debug("%d solutions reported", callback.solution_count)
        return solver, status

    def _solved(
        self,
        builder: ScheduleModelBuilder,
        solver: cp_model.CpSolver,
        status: int,
        options: GenerationOptions,
        reporter: ProgressReporter,
        started: float,
        warnings: list[str],
    ) -> GeneratedSchedule:
        reporter.report(PROGRESS_EXTRACTING, "Extracting solution")
        slots = extract_slots(solver, builder)
        statistics = calculate_statistics(
            slots, self.teachers, self.constraints, self.configuration
        )

        if status == cp_model.FEASIBLE:
            warnings.append(
                f"Search stopped after {solver.wall_time:.1f}s of {options.max_seconds:g}s: "
                f"best schedule found is not proven optimal"
            )
        for violated in statistics.violated_constraints:
            warnings.append(f"Constraint not satisfied: {violated}")

        return self._finish(
            GenerationState.SOLVED, reporter,
            f"Schedule generated: {len(slots)} slots, "
            f"{statistics.total_teacher_gaps} teacher gaps",
            started, warnings,
            slots=slots, statistics=statistics, is_valid=True,
            solver_status=solver.status_name(status),
        )

    def _cancelled(
        self, reporter: ProgressReporter, started: float, warnings: list[str]
    ) -> GeneratedSchedule:
        warnings.append("Generation cancelled")
        return self._finish(GenerationState.CANCELLED, reporter, "Generation cancelled", started, warnings)

    def _finish(
        self,
        state: GenerationState,
        reporter: ProgressReporter,
        message: str,
        started: float,
        warnings: list[str],
        has_errors: bool = False,
        slots: Optional[list[ScheduleSlot]] = None,
        statistics: Optional[ScheduleStatistics] = None,
        is_valid: bool = False,
        solver_status: str = "",
    ) -> GeneratedSchedule:
        self._set_state(state)
        reporter.complete(message, has_errors=has_errors)
        return GeneratedSchedule(
            slots=slots or [],
            generation_time_seconds=time.perf_counter() - started,
            statistics=statistics or ScheduleStatistics(),
            is_valid=is_valid,
            warnings=list(warnings),
            status=state,
            solver_status=solver_status,
        )
