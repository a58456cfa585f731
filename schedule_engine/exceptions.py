"""Exception types raised by the schedule engine."""


class ScheduleEngineError(Exception):
    """Base class for all schedule engine errors."""

    pass


class EngineConfigurationError(ScheduleEngineError, ValueError):
    """Raised when the engine is called with a missing or invalid configuration."""

    pass


class ConstraintApplicationError(ScheduleEngineError):
    """Raised when a single user constraint cannot be encoded into the model."""

    def __init__(self, constraint_name: str, reason: str):
        self.constraint_name = constraint_name
        self.reason = reason
        super().__init__(f"{constraint_name}: {reason}")
