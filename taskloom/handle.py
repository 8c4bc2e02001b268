"""Per-run lifecycle control: pause, resume, cancel and manual retry."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable, Dict, Optional

from .contracts import (
    ExecutionContext,
    ExecutionResult,
    HistoryEntry,
    TaskResult,
    TaskStatus,
    Workflow,
    WorkflowStatus,
    utcnow,
)
from .errors import (
    InvalidStateError,
    NoActiveWorkflowError,
    RetryBlockedError,
    TaskNotFoundError,
    WorkflowValidationError,
)
from .history import ExecutionHistory
from .observers import ObserverGroup
from .utils.retry import schedule_retry

if TYPE_CHECKING:
    from .execute import WorkflowExecutor

logger = logging.getLogger(__name__)


class ExecutionHandle:
    """Tracks one in-flight workflow run.

    The handle owns the run's lifecycle state. Lifecycle calls mutate the
    workflow and its tasks in place; the executor observes those changes
    between batches and before starting each task.
    """

    def __init__(
        self,
        workflow: Workflow,
        context: ExecutionContext,
        executor: "WorkflowExecutor",
        history: ExecutionHistory,
        observers: Optional[ObserverGroup] = None,
        on_finish: Optional[Callable[["ExecutionHandle"], None]] = None,
    ) -> None:
        self.workflow = workflow
        self.context = context
        self.started_at = utcnow()
        self.cancelled = False
        self.finished = False
        self.result: Optional[ExecutionResult] = None
        self._executor = executor
        self._history = history
        self._observers = observers or ObserverGroup()
        self._on_finish = on_finish
        self._started = time.monotonic()
        self._pass: Optional["asyncio.Future[ExecutionResult]"] = None
        self._inflight: Dict[str, asyncio.Future] = {}
        self._attempts: Dict[str, object] = {}

    # ------------------------------------------------------------------
    @property
    def workflow_id(self) -> str:
        return self.workflow.id

    @property
    def status(self) -> WorkflowStatus:
        return self.workflow.status

    @property
    def is_active(self) -> bool:
        return not self.finished

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    # ------------------------------------------------------------------
    # Attempt bookkeeping used by the executor

    def begin_attempt(self, task_id: str) -> object:
        attempt = object()
        self._attempts[task_id] = attempt
        return attempt

    def track(self, task_id: str, inner: asyncio.Future) -> None:
        self._inflight[task_id] = inner

    def end_attempt(self, task_id: str, attempt: object) -> bool:
        """Close an attempt; ``False`` means its outcome must be discarded."""
        self._inflight.pop(task_id, None)
        if self._attempts.get(task_id) is not attempt:
            return False
        del self._attempts[task_id]
        return True

    def _interrupt(self, task_id: str) -> None:
        self._attempts.pop(task_id, None)
        inner = self._inflight.pop(task_id, None)
        if inner is not None and not inner.done():
            inner.cancel()

    # ------------------------------------------------------------------
    # Passes

    def launch(self) -> "asyncio.Future[ExecutionResult]":
        """Schedule an execution pass on the running event loop."""
        self._pass = asyncio.ensure_future(self._run_pass())
        return self._pass

    async def wait(self) -> ExecutionResult:
        """Wait for the current pass; returns a ``paused`` result on pause."""
        if self._pass is None:
            if self.result is not None:
                return self.result
            raise NoActiveWorkflowError("wait for")
        return await self._pass

    async def _run_pass(self) -> ExecutionResult:
        try:
            result = await self._executor.execute(self)
        except WorkflowValidationError as e:
            self._finish(self._failure_result(str(e)))
            raise
        except asyncio.CancelledError:
            self._abort("Execution was cancelled by the caller")
            raise

        if result.status is not WorkflowStatus.PAUSED:
            self._finish(result)
        return result

    def _failure_result(self, error: str) -> ExecutionResult:
        return ExecutionResult(
            workflow_id=self.workflow.id,
            success=False,
            status=self.workflow.status,
            duration_ms=self.elapsed_ms(),
            tasks_completed=self.workflow.tasks_completed,
            tasks_total=len(self.workflow.tasks),
            error=error,
        )

    def reject(self, error: str) -> None:
        """Finish a run that never started, recording it as failed."""
        self._finish(self._failure_result(error))

    def _abort(self, reason: str) -> None:
        if self.finished:
            return
        self.cancelled = True
        self._cancel_tasks(reason)
        self._finish(self._failure_result(reason))

    def _finish(self, result: ExecutionResult) -> None:
        if self.finished:
            return
        self.finished = True
        self.result = result
        self._history.record(
            HistoryEntry(
                workflow_id=self.workflow.id,
                timestamp=self.started_at,
                success=result.success,
                duration_ms=result.duration_ms,
                error_message=result.error,
            )
        )
        if result.success:
            logger.info(
                f"Workflow execution completed: {self.workflow.id} "
                f"({result.tasks_completed}/{result.tasks_total} tasks, "
                f"{result.duration_ms}ms)"
            )
        else:
            logger.error(
                f"Workflow execution failed: {self.workflow.id}: {result.error}"
            )
            self._observers.notify("on_error", self.workflow, result.error or "")
        self._observers.notify("on_workflow_completed", self.workflow, result)
        if self._on_finish is not None:
            self._on_finish(self)

    # ------------------------------------------------------------------
    # Lifecycle

    def pause(self) -> None:
        """Pause a running workflow.

        In-progress tasks go back to ``pending`` and whatever they had done is
        discarded. The current pass stops at the next batch boundary.
        """
        if self.workflow.status is not WorkflowStatus.RUNNING:
            raise InvalidStateError("pause", self.workflow.status.value)

        logger.info(f"Pausing workflow execution: {self.workflow.id}")
        self.workflow.status = WorkflowStatus.PAUSED
        self.context.cancellation.cancel("paused")
        for task in self.workflow.tasks_with_status(TaskStatus.IN_PROGRESS):
            task.status = TaskStatus.PENDING
            task.progress = 0
            task.start_time = None
            if task.cancellable:
                self._interrupt(task.id)
            else:
                self._attempts.pop(task.id, None)
        self._observers.notify("on_workflow_paused", self.workflow)

    async def resume(self) -> ExecutionResult:
        """Resume a paused workflow and wait for the new pass.

        The plan is rebuilt from the full task list; tasks that already
        completed are not run again.
        """
        if self.workflow.status is not WorkflowStatus.PAUSED:
            raise InvalidStateError("resume", self.workflow.status.value)
        if self._pass is not None and not self._pass.done():
            await asyncio.shield(self._pass)
        if self.workflow.status is not WorkflowStatus.PAUSED:
            raise InvalidStateError("resume", self.workflow.status.value)

        logger.info(f"Resuming workflow execution: {self.workflow.id}")
        self.context.cancellation.reset()
        self.workflow.status = WorkflowStatus.RUNNING
        self._observers.notify("on_workflow_resumed", self.workflow)
        self.launch()
        return await self.wait()

    def cancel(self) -> None:
        """Cancel a running or paused workflow.

        Pending and in-progress tasks become ``cancelled`` when cancellable and
        ``failed`` otherwise. Cancellable work in flight is interrupted; other
        work may keep running but its outcome is ignored.
        """
        if self.workflow.status not in (WorkflowStatus.RUNNING, WorkflowStatus.PAUSED):
            raise InvalidStateError("cancel", self.workflow.status.value)

        logger.info(f"Cancelling workflow execution: {self.workflow.id}")
        pass_running = self._pass is not None and not self._pass.done()
        self.cancelled = True
        self._cancel_tasks("Workflow cancelled")
        self._observers.notify("on_workflow_cancelled", self.workflow)

        if not pass_running:
            self._finish(self._failure_result("Workflow cancelled"))

    def _cancel_tasks(self, reason: str) -> None:
        self.workflow.status = WorkflowStatus.FAILED
        self.context.cancellation.cancel(reason)
        for task in self.workflow.tasks_with_status(
            TaskStatus.PENDING, TaskStatus.IN_PROGRESS
        ):
            if task.cancellable:
                task.status = TaskStatus.CANCELLED
                self._interrupt(task.id)
            else:
                task.status = TaskStatus.FAILED
                task.result = TaskResult(success=False, error=reason)
                self._attempts.pop(task.id, None)
            task.end_time = utcnow()

    async def retry_task(self, task_id: str) -> None:
        """Re-run one task of this workflow after a linear backoff.

        Raises:
            NoActiveWorkflowError: The run has already finished.
            TaskNotFoundError: ``task_id`` is not part of the workflow.
            RetryNotEligibleError: The task is not retryable.
            RetriesExhaustedError: The task used up its retries.
            RetryBlockedError: A dependency of the task has not completed.
            TaskExecutionError: The retried attempt failed.
        """
        if self.finished:
            raise NoActiveWorkflowError("retry task in")
        task = self.workflow.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.status is TaskStatus.IN_PROGRESS:
            raise InvalidStateError(f"retry task {task_id}", "running it")
        blocked = self._executor.blocking_dependencies(task, self)
        if blocked:
            raise RetryBlockedError(task_id, blocked)

        self._executor.prepare_retry(task)
        logger.info(f"Retrying task {task_id} (attempt {task.retry_count})")
        self._observers.notify("on_task_retrying", self.workflow, task)
        await schedule_retry(task.retry_count, self._executor.config.retry_delay_ms)
        try:
            await self._executor.run_task(task, self)
            logger.info(f"Task retry successful: {task_id}")
        finally:
            self.workflow.update_progress()
