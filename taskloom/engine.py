"""Entry points for submitting workflows."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from .config import EngineConfig, load_config
from .contracts import (
    ExecutionContext,
    ExecutionResult,
    HistoryEntry,
    Workflow,
    WorkflowStatus,
)
from .errors import EngineBusyError, NoActiveWorkflowError, WorkflowValidationError
from .execute import WorkflowExecutor
from .handle import ExecutionHandle
from .history import ExecutionHistory
from .observers import ObserverGroup, WorkflowObserver
from .planning import plan_workflow

logger = logging.getLogger(__name__)

ContextOverrides = Union[ExecutionContext, Dict[str, Any], None]


class WorkflowSupervisor:
    """Runs any number of independent workflows, one handle per run."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        observers: Iterable[WorkflowObserver] = (),
    ) -> None:
        self.config = config or load_config()
        self._observers = ObserverGroup(observers)
        self._history = ExecutionHistory(self.config.history_size)
        self.executor = WorkflowExecutor(self.config, self._observers)
        self._handles: Dict[str, ExecutionHandle] = {}
        logger.debug(f"Workflow engine initialized with config: {self.config}")

    def add_observer(self, observer: WorkflowObserver) -> None:
        self._observers.add(observer)

    def start(
        self, workflow: Workflow, context_overrides: ContextOverrides = None
    ) -> ExecutionHandle:
        """Validate ``workflow`` and schedule its first pass.

        Must be called from a running event loop. Validation happens before
        anything is scheduled so dependency errors reach the caller directly.

        Raises:
            EngineBusyError: ``workflow`` is already running on this engine.
            WorkflowValidationError: The task graph cannot be executed; the
                workflow is marked failed and its tasks are left untouched.
        """
        if workflow.id in self._handles:
            raise EngineBusyError(workflow.id)

        logger.info(
            f"Starting workflow execution: {workflow.name or workflow.id} "
            f"({workflow.id}, {len(workflow.tasks)} tasks)"
        )
        handle = ExecutionHandle(
            workflow,
            workflow.context,
            self.executor,
            self._history,
            self._observers,
            on_finish=self._release,
        )
        workflow.status = WorkflowStatus.RUNNING
        try:
            plan_workflow(workflow)
            context = workflow.context.with_overrides(context_overrides)
        except (WorkflowValidationError, ValueError) as e:
            workflow.status = WorkflowStatus.FAILED
            logger.error(f"Workflow {workflow.id} rejected: {e}")
            handle.reject(str(e))
            raise

        handle.context = context
        for task in workflow.tasks:
            task.reset()
        workflow.progress = 0

        self._handles[workflow.id] = handle
        self._observers.notify("on_workflow_started", workflow)
        handle.launch()
        return handle

    async def run(
        self, workflow: Workflow, context_overrides: ContextOverrides = None
    ) -> ExecutionResult:
        """Start ``workflow`` and wait for its first pass to end.

        Returns a ``paused`` result if the run is paused before it finishes.
        """
        handle = self.start(workflow, context_overrides)
        return await handle.wait()

    def _release(self, handle: ExecutionHandle) -> None:
        if self._handles.get(handle.workflow_id) is handle:
            del self._handles[handle.workflow_id]

    def handles(self) -> List[ExecutionHandle]:
        """Return the handles of runs that have not finished yet."""
        return list(self._handles.values())

    def get_handle(self, workflow_id: str) -> Optional[ExecutionHandle]:
        return self._handles.get(workflow_id)

    def history(self) -> List[HistoryEntry]:
        """Return past runs, oldest first."""
        return self._history.list()

    def last_execution(self) -> Optional[HistoryEntry]:
        return self._history.last()

    def clear_history(self) -> None:
        self._history.clear()


class WorkflowEngine(WorkflowSupervisor):
    """Engine that runs a single workflow at a time.

    While a run is active (a paused one included) further ``run`` calls fail
    with :class:`EngineBusyError`, and the lifecycle methods act on it.
    """

    def start(
        self, workflow: Workflow, context_overrides: ContextOverrides = None
    ) -> ExecutionHandle:
        current = self.current_handle()
        if current is not None:
            raise EngineBusyError(current.workflow_id)
        return super().start(workflow, context_overrides)

    def current_handle(self) -> Optional[ExecutionHandle]:
        return next(iter(self._handles.values()), None)

    def current_workflow(self) -> Optional[Workflow]:
        handle = self.current_handle()
        return handle.workflow if handle else None

    def is_executing(self) -> bool:
        return self.current_handle() is not None

    def _require_current(self, action: str) -> ExecutionHandle:
        handle = self.current_handle()
        if handle is None:
            raise NoActiveWorkflowError(action)
        return handle

    def pause(self) -> None:
        self._require_current("pause").pause()

    async def resume(self) -> ExecutionResult:
        return await self._require_current("resume").resume()

    def cancel(self) -> None:
        self._require_current("cancel").cancel()

    async def retry_task(self, task_id: str) -> None:
        await self._require_current("retry task in").retry_task(task_id)
