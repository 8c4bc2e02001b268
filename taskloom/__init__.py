"""taskloom: dependency-aware workflow execution."""

from .config import EngineConfig, load_config
from .contracts import (
    CancellationToken,
    ExecutionContext,
    ExecutionResult,
    HistoryEntry,
    Task,
    TaskPriority,
    TaskResult,
    TaskStatus,
    Workflow,
    WorkflowStatus,
)
from .engine import WorkflowEngine, WorkflowSupervisor
from .execute import WorkflowExecutor
from .handle import ExecutionHandle
from .history import ExecutionHistory
from .observers import WorkflowObserver
from .planning import ExecutionPlan, build_batches, plan_workflow

__version__ = "0.1.0"
__all__ = [
    "CancellationToken",
    "EngineConfig",
    "ExecutionContext",
    "ExecutionHandle",
    "ExecutionHistory",
    "ExecutionPlan",
    "ExecutionResult",
    "HistoryEntry",
    "Task",
    "TaskPriority",
    "TaskResult",
    "TaskStatus",
    "Workflow",
    "WorkflowEngine",
    "WorkflowExecutor",
    "WorkflowObserver",
    "WorkflowStatus",
    "WorkflowSupervisor",
    "build_batches",
    "load_config",
    "plan_workflow",
]
