"""
Command-line interface for the schedule engine.

Usage:
    python -m schedule_engine solve input.json -o schedule.json --timeout 60
    python -m schedule_engine diagnose input.json
    python -m schedule_engine check input.json schedule.json
    python -m schedule_engine view input.json schedule.json --class 1A
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table
from rich.text import Text

from .data.constraints import ScheduleContext, validate_schedule
from .data.inputs import EngineInput, load_engine_input
from .data.models import GeneratedSchedule, GenerationState
from .diagnostics import DiagnosticReport, DiagnosticSeverity, check_data_consistency, diagnose_infeasibility
from .generator import GenerationOptions, GenerationProgress, ScheduleGenerator
from .logging_config import configure_logging

# Create Typer app
app = typer.Typer(
    name="schedule-engine",
    help="Weekly school schedule generator using CP-SAT constraint programming.",
    add_completion=False,
)

# Rich console for pretty output
console = Console()

SEVERITY_STYLES = {
    DiagnosticSeverity.INFO: "cyan",
    DiagnosticSeverity.WARNING: "yellow",
    DiagnosticSeverity.ERROR: "red",
}


# =============================================================================
# Helper Functions
# =============================================================================

def load_input(input_path: Path) -> EngineInput:
    """Load and validate engine input."""
    if not input_path.exists():
        console.print(f"[red]Error:[/red] Input file not found: {input_path}")
        raise typer.Exit(code=1)

    try:
        return load_engine_input(input_path)
    except (OSError, ValidationError) as e:
        console.print(f"[red]Error loading input:[/red] {e}")
        raise typer.Exit(code=1)


def load_schedule(schedule_path: Path) -> GeneratedSchedule:
    """Load a GeneratedSchedule JSON file."""
    if not schedule_path.exists():
        console.print(f"[red]Error:[/red] Schedule file not found: {schedule_path}")
        raise typer.Exit(code=1)

    try:
        return GeneratedSchedule.model_validate_json(schedule_path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        console.print(f"[red]Error loading schedule:[/red] {e}")
        raise typer.Exit(code=1)


def print_summary(schedule: GeneratedSchedule) -> None:
    """Print generation summary to console."""
    color = "green" if schedule.is_valid else "red"
    status_text = Text(schedule.status.value, style=f"bold {color}")

    console.print(Panel(
        status_text,
        title="Generation Status",
        subtitle=f"{schedule.solver_status or 'not solved'} in {schedule.generation_time_seconds:.2f}s",
    ))

    stats = schedule.statistics
    table = Table(title="Summary", show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Slots", str(stats.total_slots))
    table.add_row("Teacher gaps", str(stats.total_teacher_gaps))
    table.add_row("Optimization score", f"{stats.optimization_score:.1f}")
    table.add_row("Constraints satisfied", str(stats.constraints_satisfied))
    table.add_row("Constraints violated", str(stats.constraints_violated))
    console.print(table)

    if schedule.warnings:
        console.print("\n[yellow]Warnings:[/yellow]")
        for warning in schedule.warnings:
            console.print(f"  - {warning}")


def print_report(report: DiagnosticReport) -> None:
    """Print a diagnostic report as a table."""
    if not report.issues:
        console.print(f"[green]{report.title}: no issues[/green]")
        return

    table = Table(title=report.title)
    table.add_column("Severity")
    table.add_column("Subject", style="cyan")
    table.add_column("Category")
    table.add_column("Message")
    for issue in report.issues:
        style = SEVERITY_STYLES[issue.severity]
        table.add_row(
            f"[{style}]{issue.severity.value}[/{style}]",
            issue.subject,
            issue.category,
            issue.message,
        )
    console.print(table)


# =============================================================================
# Commands
# =============================================================================

@app.command()
def solve(
    input_file: Path = typer.Argument(
        ...,
        help="Path to input JSON file (activities, constraints, configuration)",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Path to write the generated schedule JSON",
    ),
    timeout: float = typer.Option(
        30.0,
        "--timeout", "-t",
        help="Maximum solving time in seconds",
        min=0.1,
        max=3600,
    ),
    workers: int = typer.Option(
        4,
        "--workers", "-w",
        help="Parallel search workers",
        min=1,
        max=64,
    ),
    optimize_gaps: bool = typer.Option(
        True,
        "--optimize-gaps/--no-optimize-gaps",
        help="Minimize teacher idle hours",
    ),
    soft_priorities: bool = typer.Option(
        False,
        "--soft-priorities",
        help="Treat non-mandatory constraints as weighted penalties",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
) -> None:
    """
    Generate a weekly schedule.

    Example:
        python -m schedule_engine solve input.json -o schedule.json --timeout 60
    """
    configure_logging(verbose)
    console.print(f"\n[bold]Loading input from:[/bold] {input_file}")
    engine_input = load_input(input_file)

    summary = engine_input.summary()
    console.print(
        f"[green]Loaded:[/green] {summary['activities']} activities, "
        f"{summary['teachers']} teachers, {summary['classes']} classes, "
        f"{summary['active_constraints']} active constraints"
    )

    options = GenerationOptions(
        max_seconds=timeout,
        num_workers=workers,
        use_parallel_processing=workers > 1,
        optimize_gaps=optimize_gaps,
        soft_priorities=soft_priorities,
        verbose_logging=verbose,
    )
    generator = ScheduleGenerator.from_input(engine_input)

    console.print(f"\n[bold]Generating (timeout: {timeout:g}s)...[/bold]")
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=100)

        def on_progress(event: GenerationProgress) -> None:
            progress.update(task, completed=event.percentage, description=event.message)

        schedule = generator.generate(options, progress=on_progress)

    console.print()
    print_summary(schedule)

    if schedule.status != GenerationState.SOLVED:
        console.print("\n[red]No schedule generated.[/red]")
        raise typer.Exit(code=1)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(schedule.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"\n[green]Schedule saved to:[/green] {output}")

    console.print()


@app.command()
def diagnose(
    input_file: Path = typer.Argument(
        ...,
        help="Path to input JSON file to analyze",
    ),
) -> None:
    """
    Report data inconsistencies and certain reasons for infeasibility.

    Exits with code 1 if any error-level issue is found.

    Example:
        python -m schedule_engine diagnose input.json
    """
    engine_input = load_input(input_file)
    config = engine_input.configuration

    consistency = check_data_consistency(
        engine_input.activities, engine_input.teachers, engine_input.classes, config
    )
    infeasibility = diagnose_infeasibility(engine_input.activities, config)

    print_report(consistency)
    print_report(infeasibility)

    if consistency.has_errors or infeasibility.has_errors:
        console.print("\n[red]Input cannot be scheduled.[/red]")
        raise typer.Exit(code=1)
    console.print("\n[green]No blocking issues found.[/green]")


@app.command()
def check(
    input_file: Path = typer.Argument(
        ...,
        help="Path to input JSON file with the constraints to check",
    ),
    schedule_file: Path = typer.Argument(
        ...,
        help="Path to a schedule JSON file (generated or hand-edited)",
    ),
) -> None:
    """
    Check a schedule against the input's active constraints.

    Exits with code 1 if a mandatory constraint is violated.

    Example:
        python -m schedule_engine check input.json schedule.json
    """
    engine_input = load_input(input_file)
    schedule = load_schedule(schedule_file)

    context = ScheduleContext.from_schedule(schedule, engine_input.configuration)
    report = validate_schedule(engine_input.constraints, context)

    table = Table(title="Constraint Check")
    table.add_column("Result")
    table.add_column("Constraint")
    for description in report.satisfied:
        table.add_row("[green]satisfied[/green]", description)
    for description in report.violated:
        table.add_row("[red]violated[/red]", description)
    console.print(table)

    if not report.all_mandatory_satisfied:
        console.print(
            f"\n[red]{len(report.mandatory_violated)} mandatory constraint(s) violated.[/red]"
        )
        raise typer.Exit(code=1)
    console.print("\n[green]All mandatory constraints satisfied.[/green]")


@app.command()
def view(
    input_file: Path = typer.Argument(
        ...,
        help="Path to input JSON file (for the grid configuration)",
    ),
    schedule_file: Path = typer.Argument(
        ...,
        help="Path to schedule JSON file",
    ),
    class_name: Optional[str] = typer.Option(
        None,
        "--class", "-c",
        help="Show the weekly grid of one class",
    ),
    teacher: Optional[str] = typer.Option(
        None,
        "--teacher", "-t",
        help="Show the lessons of one teacher",
    ),
) -> None:
    """
    View a schedule by class grid or teacher list.

    Example:
        python -m schedule_engine view input.json schedule.json --class 1A
    """
    engine_input = load_input(input_file)
    schedule = load_schedule(schedule_file)

    if class_name:
        _show_class_grid(schedule, class_name, engine_input)
    elif teacher:
        _show_teacher(schedule, teacher)
    else:
        for school_class in engine_input.classes:
            _show_class_grid(schedule, school_class.name, engine_input)


def _show_class_grid(schedule: GeneratedSchedule, class_name: str, engine_input: EngineInput) -> None:
    config = engine_input.configuration
    days = config.active_days()
    matrix = schedule.get_class_matrix(class_name, config)

    table = Table(title=f"Class {class_name}")
    table.add_column("Hour", style="cyan")
    for day in days:
        table.add_column(day.label)

    for index, row in enumerate(matrix):
        hour = index + 1
        cells = []
        for slots in row:
            cells.append("\n".join(
                f"{s.subject} ({s.teacher_name})"
                + (f" [{s.articulation_group}]" if s.articulation_group else "")
                for s in slots
            ))
        table.add_row(f"{hour} {config.lesson_start_time(hour, class_name)}", *cells)
    console.print(table)


def _show_teacher(schedule: GeneratedSchedule, teacher_name: str) -> None:
    slots = schedule.get_teacher_schedule(teacher_name)
    if not slots:
        console.print(f"[yellow]No lessons for teacher:[/yellow] {teacher_name}")
        return

    table = Table(title=f"Teacher {teacher_name}")
    table.add_column("Day", style="cyan")
    table.add_column("Hour")
    table.add_column("Class")
    table.add_column("Subject")
    for slot in slots:
        table.add_row(slot.day.label, str(slot.hour), slot.class_name, slot.subject)
    console.print(table)

    gaps = schedule.statistics.teacher_gaps.get(teacher_name)
    if gaps is not None:
        console.print(f"Idle hours this week: {gaps}")


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
