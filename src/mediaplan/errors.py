"""Exception taxonomy for mediaplan.

Every failure path in the planning engine surfaces as one of these exceptions
(or as a rejected plan outcome). Nothing here is retried automatically:
- PlanValidationError: a task set failed path-safety admission checks.
- InvalidTransitionError: a plan status change that the lifecycle forbids.
- ConfirmationTimeoutError / ConfirmationAbortedError: no decision was made.
- PartialExecutionError: some renames were applied, some failed.
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from mediaplan.models.core import TaskResult


class MediaPlanError(Exception):
    """Base class for all mediaplan errors."""


class PlanValidationError(MediaPlanError):
    """Raised when a plan's paths fail admission checks."""

    def __init__(self, violations: List[str], plan_id: Optional[str] = None) -> None:
        """Initialize the error with the list of violation descriptions."""
        self.violations = list(violations)
        self.plan_id = plan_id
        summary = "; ".join(self.violations) or "unknown violation"
        super().__init__(f"Plan validation failed: {summary}")


class PlanNotFoundError(MediaPlanError):
    """Raised when no persisted plan has the requested id."""

    def __init__(self, plan_id: str) -> None:
        """Initialize the error with the missing plan id."""
        self.plan_id = plan_id
        super().__init__(f'Plan with id "{plan_id}" not found')


class InvalidTransitionError(MediaPlanError):
    """Raised when a plan status change is not allowed by the lifecycle."""

    def __init__(self, plan_id: str, current: str, target: str) -> None:
        """Initialize the error with the offending transition."""
        self.plan_id = plan_id
        self.current = current
        self.target = target
        super().__init__(
            f'Plan "{plan_id}" cannot move from "{current}" to "{target}"'
        )


class ConfirmationTimeoutError(MediaPlanError, TimeoutError):
    """Raised when no confirmation response arrives within the timeout."""

    def __init__(self, event: str, timeout_ms: int) -> None:
        """Initialize the error with the request event and the timeout used."""
        self.event = event
        self.timeout_ms = timeout_ms
        super().__init__(f'No response to "{event}" within {timeout_ms}ms')


class ConfirmationAbortedError(MediaPlanError):
    """Raised when the caller cancels a confirmation before it resolves."""

    def __init__(self, event: str) -> None:
        """Initialize the error with the request event."""
        self.event = event
        super().__init__(f'Confirmation "{event}" was aborted')


class PartialExecutionError(MediaPlanError):
    """Raised when a confirmed plan was only partly applied.

    The plan stays pending ("needs follow-up") and nothing is rolled back; the
    per-task results tell the caller exactly which renames happened.
    """

    def __init__(self, plan_id: str, results: List["TaskResult"]) -> None:
        """Initialize the error with the plan id and per-task results."""
        self.plan_id = plan_id
        self.results = list(results)
        super().__init__(
            f'Plan "{plan_id}" partially applied: '
            f"{len(self.failures)} of {len(self.results)} task(s) failed"
        )

    @property
    def failures(self) -> List["TaskResult"]:
        """Results for the tasks that failed."""
        return [r for r in self.results if not r.success]
