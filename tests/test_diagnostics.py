"""Tests for input diagnostics."""

from __future__ import annotations

import pytest

from schedule_engine.data.models import (
    Activity,
    Configuration,
    SchoolClass,
    Teacher,
    TeacherConfiguration,
    derive_classes,
    derive_teachers,
)
from schedule_engine.diagnostics import (
    DiagnosticReport,
    DiagnosticSeverity,
    check_data_consistency,
    diagnose_infeasibility,
)
from schedule_engine.exceptions import EngineConfigurationError


def make_activity(id, teacher="Rossi Mario", class_name="1A", subject="Math", hours=1, tag=""):
    return Activity(
        id=id,
        teacher_full_name=teacher,
        class_name=class_name,
        subject=subject,
        weekly_hours=hours,
        articulation_group=tag,
    )


def categories(report: DiagnosticReport, severity: DiagnosticSeverity) -> set[str]:
    return {i.category for i in report.issues if i.severity == severity}


class TestDiagnosticReport:
    def test_severity_helpers(self):
        report = DiagnosticReport("Test")
        report.add(DiagnosticSeverity.INFO, "note", "1A", "fine")
        report.add(DiagnosticSeverity.WARNING, "hours", "1A", "odd")
        report.add(DiagnosticSeverity.ERROR, "capacity", "1B", "too many")

        assert report.has_errors
        assert len(report.errors) == 1
        assert len(report.warnings) == 1
        assert [i.category for i in report.about("1A")] == ["note", "hours"]
        assert report.messages() == ["[WARNING] 1A: odd", "[ERROR] 1B: too many"]
        assert report.messages(DiagnosticSeverity.ERROR) == ["[ERROR] 1B: too many"]

    def test_to_text(self):
        report = DiagnosticReport("Test")
        assert report.to_text() == "Test: no issues"
        report.add(DiagnosticSeverity.ERROR, "capacity", "1B", "too many")
        assert report.to_text() == "Test:\n  [ERROR] 1B: too many"


class TestDataConsistency:
    """Tests for declared vs derived totals."""

    def test_consistent_input(self):
        activities = [make_activity(1, hours=3), make_activity(2, teacher="Verdi Anna", subject="Art", hours=2)]
        report = check_data_consistency(
            activities, derive_teachers(activities), derive_classes(activities), Configuration()
        )
        assert report.issues == []

    def test_declared_hours_mismatch(self):
        activities = [make_activity(1, hours=3)]
        teachers = [Teacher(surname="Rossi", name="Mario", total_weekly_hours=18)]
        classes = [SchoolClass(name="1A", total_weekly_hours=30)]
        report = check_data_consistency(activities, teachers, classes, Configuration())

        assert categories(report, DiagnosticSeverity.WARNING) == {"class_hours", "teacher_hours"}
        assert not report.has_errors
        assert "activities add up to 3h" in report.about("Rossi Mario")[0].message

    def test_class_over_capacity(self):
        activities = [
            make_activity(i, teacher=f"T{i}", subject=f"S{i}", hours=6) for i in range(1, 7)
        ]
        report = check_data_consistency(activities, [], [], Configuration())
        assert "class_capacity" in categories(report, DiagnosticSeverity.WARNING)

    def test_mixed_articulation_lengths(self):
        activities = [
            make_activity(1, teacher="Rossi", subject="Religion", hours=1, tag="REL"),
            make_activity(2, teacher="Verdi", subject="Alternative", hours=2, tag="REL"),
        ]
        report = check_data_consistency(activities, [], [], Configuration())
        assert "articulation" in categories(report, DiagnosticSeverity.WARNING)

    def test_unknown_entities(self):
        activities = [make_activity(1), make_activity(2, teacher="Verdi Anna", class_name="1B")]
        teachers = [Teacher(surname="Rossi", name="Mario")]
        classes = [SchoolClass(name="1A")]
        report = check_data_consistency(activities, teachers, classes, Configuration())

        assert categories(report, DiagnosticSeverity.INFO) == {"unknown_class", "unknown_teacher"}

    def test_missing_configuration(self):
        with pytest.raises(EngineConfigurationError):
            check_data_consistency([], [], [], None)


class TestInfeasibility:
    """Tests for arithmetic infeasibility checks."""

    def test_feasible_input(self):
        activities = [
            make_activity(1, hours=2),
            make_activity(2, teacher="Verdi Anna", subject="Art", hours=2),
        ]
        config = Configuration(max_daily_hours=4, min_daily_hours=1, teacher_min_daily_hours=1)
        report = diagnose_infeasibility(activities, config)
        assert not report.has_errors

    def test_class_capacity(self):
        activities = [
            make_activity(i, teacher=f"T{i}", subject=f"S{i}", hours=4) for i in range(1, 8)
        ]
        config = Configuration(max_daily_hours=4, min_daily_hours=1, teacher_min_daily_hours=1)
        report = diagnose_infeasibility(activities, config)

        assert "class_capacity" in categories(report, DiagnosticSeverity.ERROR)
        assert report.about("1A")[0].message.startswith("28h per week exceed")

    def test_class_band_split(self):
        # 3h cannot fill any day with the default minimum of 4h
        activities = [make_activity(1, hours=3)]
        report = diagnose_infeasibility(activities, Configuration(teacher_min_daily_hours=1))
        assert "class_band" in categories(report, DiagnosticSeverity.ERROR)

    def test_class_below_weekly_minimum_warns(self):
        activities = [
            make_activity(i, teacher=f"T{i}", subject=f"S{i}", hours=2) for i in range(1, 5)
        ]
        config = Configuration(max_daily_hours=4, min_daily_hours=2, teacher_min_daily_hours=1)
        report = diagnose_infeasibility(activities, config)

        assert not report.has_errors
        assert "class_band" in categories(report, DiagnosticSeverity.WARNING)

    def test_teacher_capacity(self):
        activities = [
            make_activity(i, class_name=f"C{i}", subject="Math", hours=3) for i in range(1, 10)
        ]
        config = Configuration(teacher_max_daily_hours=5, min_daily_hours=1, teacher_min_daily_hours=1)
        report = diagnose_infeasibility(activities, config)
        assert "teacher_capacity" in categories(report, DiagnosticSeverity.ERROR)

    def test_teacher_spreading(self):
        activities = [make_activity(i) for i in range(1, 7)]
        config = Configuration(min_daily_hours=1, teacher_min_daily_hours=1)
        report = diagnose_infeasibility(activities, config)
        assert "teacher_spreading" in categories(report, DiagnosticSeverity.ERROR)

    def test_teacher_min_hours(self):
        # Three spread lessons force three days of 1h, below the minimum of 2h
        activities = [make_activity(i) for i in range(1, 4)]
        config = Configuration(min_daily_hours=1, teacher_min_daily_hours=2)
        report = diagnose_infeasibility(activities, config)
        assert "teacher_min_hours" in categories(report, DiagnosticSeverity.ERROR)

    def test_teacher_min_hours_breakdown(self):
        activities = [make_activity(i) for i in range(1, 4)]
        activities.append(make_activity(4, class_name="1B", subject="Art"))
        config = Configuration(min_daily_hours=1, teacher_min_daily_hours=2)
        report = diagnose_infeasibility(activities, config)

        [issue] = [i for i in report.errors if i.category == "teacher_min_hours"]
        assert issue.subject == "Rossi Mario"
        assert issue.message.endswith("(Math 1A: 3 x 1h, Art 1B: 1 x 1h)")

    def test_teacher_min_hours_exempt(self):
        activities = [make_activity(i) for i in range(1, 4)]
        config = Configuration(
            min_daily_hours=1,
            teacher_min_daily_hours=2,
            teacher_overrides={
                "Rossi Mario": TeacherConfiguration(
                    teacher_name="Rossi Mario", exempt_from_min_daily_hours=True
                )
            },
        )
        report = diagnose_infeasibility(activities, config)
        assert not report.has_errors

    def test_block_length(self):
        activities = [make_activity(1, hours=5), make_activity(2, teacher="Verdi", subject="Art", hours=4)]
        config = Configuration(max_daily_hours=4, min_daily_hours=1, teacher_min_daily_hours=1)
        report = diagnose_infeasibility(activities, config)

        assert [i.severity for i in report.about("activity 1")] == [DiagnosticSeverity.ERROR]
        assert [i.severity for i in report.about("activity 2")] == [DiagnosticSeverity.WARNING]
