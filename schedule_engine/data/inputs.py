"""Input bundle for one generation run, loadable from JSON."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constraints import Constraint, ConstraintSet
from .models import (
    Activity,
    Configuration,
    SchoolClass,
    Teacher,
    derive_classes,
    derive_teachers,
)


class EngineInput(BaseModel):
    """
    Everything a generation run needs, as a single document.

    Teachers and classes are derived from the activities when omitted.
    """
    model_config = ConfigDict(extra="forbid")

    activities: list[Activity] = Field(default_factory=list)
    teachers: list[Teacher] = Field(default_factory=list)
    classes: list[SchoolClass] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)
    configuration: Configuration = Field(default_factory=Configuration)

    @model_validator(mode="after")
    def validate_no_duplicate_ids(self) -> "EngineInput":
        """Ensure activity IDs are unique."""
        seen: set[int] = set()
        duplicates: set[int] = set()
        for activity in self.activities:
            if activity.id in seen:
                duplicates.add(activity.id)
            seen.add(activity.id)
        if duplicates:
            raise ValueError(f"Duplicate activity IDs: {sorted(duplicates)}")
        return self

    @model_validator(mode="after")
    def fill_derived_entities(self) -> "EngineInput":
        if not self.teachers:
            self.teachers = derive_teachers(self.activities)
        if not self.classes:
            self.classes = derive_classes(self.activities)
        return self

    def active_constraints(self) -> list[Constraint]:
        return ConstraintSet(self.constraints).active()

    def summary(self) -> dict[str, Any]:
        """Get a summary of the input data."""
        return {
            "activities": len(self.activities),
            "teachers": len(self.teachers),
            "classes": len(self.classes),
            "constraints": len(self.constraints),
            "active_constraints": len(self.active_constraints()),
            "school_days": len(self.configuration.active_days()),
            "total_hours": sum(a.weekly_hours for a in self.activities),
        }


def load_engine_input(path: str | Path) -> EngineInput:
    """
    Load and validate engine input from a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        pydantic.ValidationError: If validation fails
    """
    return EngineInput.model_validate_json(Path(path).read_text(encoding="utf-8"))
