"""Core data contracts for taskloom workflows."""

from __future__ import annotations

import os
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    """Informational only; batches are never reordered by priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class WorkflowStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class CancellationToken:
    """Flag a work function can poll to stop early.

    Backed by a ``threading.Event`` so work running in a worker thread sees
    the same signal as coroutines on the event loop.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    def reset(self) -> None:
        self.reason = None
        self._event.clear()

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"CancellationToken(cancelled={self.cancelled}, reason={self.reason!r})"


class ExecutionContext(BaseModel):
    """State visible to every task's work function.

    ``shared_state`` is shared and unsynchronized. Tasks scheduled in the same
    batch must not write the same key; declare writes on :attr:`Task.writes`
    to have collisions rejected before the run starts.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    working_directory: str = Field(default_factory=os.getcwd)
    environment: Dict[str, str] = Field(default_factory=lambda: dict(os.environ))
    shared_state: Dict[str, Any] = Field(default_factory=dict)
    cancellation: CancellationToken = Field(
        default_factory=CancellationToken, exclude=True
    )

    def with_overrides(
        self, overrides: Union["ExecutionContext", Dict[str, Any], None] = None
    ) -> "ExecutionContext":
        """Return a copy layered with ``overrides``.

        The environment is merged, ``shared_state`` entries are written into
        the existing mapping so the returned context shares it with ``self``.
        """
        if isinstance(overrides, ExecutionContext):
            overrides = overrides.model_dump(exclude_unset=True)
        overrides = dict(overrides or {})
        unknown = set(overrides) - {"working_directory", "environment", "shared_state"}
        if unknown:
            raise ValueError(
                f"Unknown execution context fields: {', '.join(sorted(unknown))}"
            )

        layered = self.model_copy()
        if "working_directory" in overrides:
            layered.working_directory = str(overrides.pop("working_directory"))
        if "environment" in overrides:
            layered.environment = {
                **self.environment,
                **(overrides.pop("environment") or {}),
            }
        if "shared_state" in overrides:
            self.shared_state.update(overrides.pop("shared_state") or {})
        layered.cancellation = CancellationToken()
        return layered


class TaskResult(BaseModel):
    """Outcome of the last attempt of a task."""

    success: bool
    error: Optional[str] = None
    output: Any = None


WorkFunction = Callable[[ExecutionContext], Any]


class Task(BaseModel):
    """One unit of work inside a workflow."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str = ""
    description: str = ""
    category: str = "general"

    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.NORMAL
    dependencies: Set[str] = Field(default_factory=set)
    progress: int = Field(default=0, ge=0, le=100)

    cancellable: bool = True
    retryable: bool = True
    max_retries: Optional[int] = None
    retry_count: int = 0
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    writes: Set[str] = Field(
        default_factory=set, description="Shared state keys this task writes"
    )

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    result: Optional[TaskResult] = None

    work: Optional[WorkFunction] = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _default_name(self) -> "Task":
        if not self.name:
            self.name = self.id
        return self

    @property
    def is_settled(self) -> bool:
        return self.status in (
            TaskStatus.COMPLETED,
            TaskStatus.FAILED,
            TaskStatus.CANCELLED,
        )

    def reset(self) -> None:
        """Bring the task back to a fresh ``pending`` state for a new run."""
        self.status = TaskStatus.PENDING
        self.progress = 0
        self.retry_count = 0
        self.start_time = None
        self.end_time = None
        self.result = None


class Workflow(BaseModel):
    """A named, ordered collection of tasks plus their shared context."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    description: str = ""
    tasks: List[Task] = Field(default_factory=list)
    context: ExecutionContext = Field(default_factory=ExecutionContext)
    status: WorkflowStatus = WorkflowStatus.IDLE
    progress: int = Field(default=0, ge=0, le=100)

    def get_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def tasks_with_status(self, *statuses: TaskStatus) -> List[Task]:
        return [t for t in self.tasks if t.status in statuses]

    @property
    def tasks_completed(self) -> int:
        return len(self.tasks_with_status(TaskStatus.COMPLETED))

    def update_progress(self) -> int:
        """Recompute ``progress`` as the percentage of completed tasks."""
        total = len(self.tasks)
        self.progress = round(self.tasks_completed / total * 100) if total else 100
        return self.progress


class ExecutionResult(BaseModel):
    """Structured outcome of one execution pass, returned even on failure."""

    workflow_id: str
    success: bool
    status: WorkflowStatus
    duration_ms: int
    tasks_completed: int
    tasks_total: int
    error: Optional[str] = None


class HistoryEntry(BaseModel):
    """Record of one finished workflow run."""

    workflow_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool
    duration_ms: int
    error_message: Optional[str] = None
