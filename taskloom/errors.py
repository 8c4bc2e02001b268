"""Exception hierarchy for taskloom.

Workflow-level errors are raised to the caller before anything runs. Task-level
errors are contained: they end up in ``task.result`` and only affect the final
tally of the run.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence


class TaskloomError(Exception):
    """Base class for every error raised by the engine."""


# ---------------------------------------------------------------------------
# Validation


class WorkflowValidationError(TaskloomError):
    """The workflow definition cannot be executed."""


class DuplicateTaskError(WorkflowValidationError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Duplicate task ID: {task_id}")
        self.task_id = task_id


class DependencyCycleError(WorkflowValidationError):
    """Dependencies cannot be resolved into an execution order."""

    def __init__(
        self,
        message: str = "Circular dependency detected or missing dependency",
        cycle: Optional[Sequence[str]] = None,
        unresolved: Optional[Iterable[str]] = None,
    ) -> None:
        super().__init__(message)
        self.cycle = list(cycle or [])
        self.unresolved = sorted(unresolved or [])


class MissingDependencyError(DependencyCycleError):
    """A task depends on an id that is not part of the workflow.

    Reported as a :class:`DependencyCycleError` because an unknown dependency
    can never be satisfied, exactly like a cycle.
    """

    def __init__(self, task_id: str, dependency_id: str) -> None:
        super().__init__(
            f"Task {task_id} depends on non-existent task: {dependency_id}",
            unresolved=[task_id],
        )
        self.task_id = task_id
        self.dependency_id = dependency_id


class SharedStateConflictError(WorkflowValidationError):
    """Two tasks of the same batch declare a write to the same state key."""

    def __init__(self, key: str, task_ids: Sequence[str]) -> None:
        joined = ", ".join(task_ids)
        super().__init__(
            f"Tasks {joined} run concurrently and all write shared state key '{key}'"
        )
        self.key = key
        self.task_ids = list(task_ids)


# ---------------------------------------------------------------------------
# Task execution


class TaskExecutionError(TaskloomError):
    """A single task failed. Never aborts sibling tasks."""

    def __init__(self, task_id: str, message: str) -> None:
        super().__init__(message)
        self.task_id = task_id


class TaskTimeoutError(TaskExecutionError):
    def __init__(self, task_id: str, timeout_ms: int) -> None:
        super().__init__(task_id, f"Task {task_id} timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class TaskInterruptedError(TaskExecutionError):
    """The work function was interrupted by a pause or a cancel."""

    def __init__(self, task_id: str) -> None:
        super().__init__(task_id, f"Task {task_id} was interrupted")


class DependencyFailedError(TaskExecutionError):
    def __init__(self, task_id: str, dependency_ids: Sequence[str]) -> None:
        joined = ", ".join(dependency_ids)
        super().__init__(
            task_id, f"Task {task_id} skipped: dependencies did not complete ({joined})"
        )
        self.dependency_ids = list(dependency_ids)


# ---------------------------------------------------------------------------
# Caller errors


class TaskNotFoundError(TaskloomError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found in current workflow")
        self.task_id = task_id


class RetryError(TaskloomError):
    """A retry request was refused."""


class RetryNotEligibleError(RetryError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} is not retryable")
        self.task_id = task_id


class RetriesExhaustedError(RetryError):
    def __init__(self, task_id: str, max_retries: int) -> None:
        super().__init__(
            f"Task {task_id} has exceeded maximum retry attempts ({max_retries})"
        )
        self.task_id = task_id
        self.max_retries = max_retries


class RetryBlockedError(RetryError):
    def __init__(self, task_id: str, dependency_ids: Sequence[str]) -> None:
        joined = ", ".join(dependency_ids)
        super().__init__(
            f"Task {task_id} cannot be retried: dependencies did not complete ({joined})"
        )
        self.task_id = task_id
        self.dependency_ids = list(dependency_ids)


class NoActiveWorkflowError(TaskloomError):
    def __init__(self, action: str = "control") -> None:
        super().__init__(f"No active workflow to {action}")
        self.action = action


class EngineBusyError(TaskloomError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            f"Another workflow is already executing (current: {workflow_id})"
        )
        self.workflow_id = workflow_id


class WorkflowLoadError(TaskloomError):
    """A workflow target given by import path cannot be resolved."""


class InvalidStateError(TaskloomError):
    """A lifecycle transition was requested from the wrong workflow status."""

    def __init__(self, action: str, status: str) -> None:
        super().__init__(f"Cannot {action} while workflow is {status}")
        self.action = action
        self.status = status


__all__ = [
    "TaskloomError",
    "WorkflowValidationError",
    "DuplicateTaskError",
    "DependencyCycleError",
    "MissingDependencyError",
    "SharedStateConflictError",
    "TaskExecutionError",
    "TaskTimeoutError",
    "TaskInterruptedError",
    "DependencyFailedError",
    "TaskNotFoundError",
    "RetryError",
    "RetryNotEligibleError",
    "RetriesExhaustedError",
    "RetryBlockedError",
    "NoActiveWorkflowError",
    "EngineBusyError",
    "InvalidStateError",
    "WorkflowLoadError",
]
