"""Exceptions raised by chain generation and planning."""


class SchedulingError(Exception):
    """Base class for all planner errors."""


class CollaboratorTimeoutError(SchedulingError):
    """An external collaborator did not answer within its time bound."""


class PlanValidationError(SchedulingError):
    """A generated plan broke an ordering or overlap invariant.

    No partial plan is persisted when this is raised.
    """

    def __init__(self, message: str, violations: list[str] | None = None):
        super().__init__(message)
        self.violations = violations or []


class IllegalStateTransitionError(SchedulingError):
    """A status change was requested from a state that does not allow it."""


class PlanNotFoundError(SchedulingError):
    """No stored plan has the requested id."""
