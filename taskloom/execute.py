"""Batch execution engine for taskloom workflows."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, List, Optional

from .config import EngineConfig
from .contracts import (
    ExecutionContext,
    ExecutionResult,
    Task,
    TaskResult,
    TaskStatus,
    WorkFunction,
    WorkflowStatus,
    utcnow,
)
from .errors import (
    DependencyFailedError,
    RetryError,
    TaskExecutionError,
    WorkflowValidationError,
)
from .observers import ObserverGroup
from .planning import plan_workflow
from .utils.retry import check_retry_eligible, execute_with_timeout, schedule_retry

if TYPE_CHECKING:
    from .handle import ExecutionHandle

logger = logging.getLogger(__name__)


async def invoke_work(work: WorkFunction, context: ExecutionContext) -> Any:
    """Call a work function, running plain callables in a worker thread."""
    if inspect.iscoroutinefunction(work):
        return await work(context)
    result = await asyncio.to_thread(work, context)
    if inspect.isawaitable(result):
        result = await result
    return result


class WorkflowExecutor:
    """Runs the batches of a workflow and keeps task state up to date."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        observers: Optional[ObserverGroup] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._observers = observers or ObserverGroup()

    async def execute(self, handle: "ExecutionHandle") -> ExecutionResult:
        """Execute one pass over ``handle.workflow``.

        Batches run in order, tasks inside a batch run concurrently. The pass
        stops early at a batch boundary when the workflow is paused or
        cancelled. Tasks already completed by an earlier pass are skipped.

        Raises:
            WorkflowValidationError: If the task graph cannot be planned. The
                workflow is marked failed and no task is touched.
        """
        workflow = handle.workflow
        workflow.status = WorkflowStatus.RUNNING

        try:
            plan = plan_workflow(workflow)
        except WorkflowValidationError as e:
            workflow.status = WorkflowStatus.FAILED
            logger.error(f"Workflow {workflow.id} rejected: {e}")
            raise

        logger.debug(
            f"Execution plan for {workflow.id} created with {len(plan)} batches"
        )
        for index, batch in enumerate(plan.batches, start=1):
            if workflow.status is not WorkflowStatus.RUNNING:
                logger.info(
                    f"Stopping workflow {workflow.id} before batch {index}: "
                    f"status is {workflow.status.value}"
                )
                break
            logger.debug(
                f"Executing batch {index}/{len(plan)} with {len(batch)} tasks"
            )
            limit = self.config.max_concurrency or max(len(batch), 1)
            semaphore = asyncio.Semaphore(limit)
            await asyncio.gather(
                *(self._settle(task, handle, semaphore) for task in batch)
            )
            workflow.update_progress()

        return self._finalize(handle)

    def _finalize(self, handle: "ExecutionHandle") -> ExecutionResult:
        workflow = handle.workflow
        total = len(workflow.tasks)
        completed = workflow.tasks_completed
        workflow.update_progress()
        error: Optional[str] = None

        if handle.cancelled:
            workflow.status = WorkflowStatus.FAILED
            error = "Workflow cancelled"
        elif workflow.status is WorkflowStatus.PAUSED:
            pass
        elif completed == total:
            workflow.status = WorkflowStatus.COMPLETED
        else:
            workflow.status = WorkflowStatus.FAILED
            error = f"{total - completed} of {total} tasks did not complete"

        return ExecutionResult(
            workflow_id=workflow.id,
            success=workflow.status is WorkflowStatus.COMPLETED,
            status=workflow.status,
            duration_ms=handle.elapsed_ms(),
            tasks_completed=completed,
            tasks_total=total,
            error=error,
        )

    def blocking_dependencies(self, task: Task, handle: "ExecutionHandle") -> List[str]:
        blocked = []
        for dep_id in sorted(task.dependencies):
            dep = handle.workflow.get_task(dep_id)
            if dep is None or dep.status is not TaskStatus.COMPLETED:
                blocked.append(dep_id)
        return blocked

    async def _settle(
        self, task: Task, handle: "ExecutionHandle", semaphore: asyncio.Semaphore
    ) -> None:
        """Drive one task of a batch to a final state without raising."""
        if task.status is not TaskStatus.PENDING:
            # completed in an earlier pass, or failed/cancelled already
            return

        blocked = self.blocking_dependencies(task, handle)
        if blocked:
            if self.config.skip_dependents:
                self._record_failure(task, handle, DependencyFailedError(task.id, blocked))
                return
            logger.warning(
                f"Running task {task.id} although dependencies did not complete: "
                f"{', '.join(blocked)}"
            )

        async with semaphore:
            if (
                handle.workflow.status is not WorkflowStatus.RUNNING
                or task.status is not TaskStatus.PENDING
            ):
                return
            try:
                await self.run_task(task, handle)
            except TaskExecutionError as e:
                logger.error(f"Task execution failed: {task.id}: {e}")
                if self.config.auto_retry:
                    await self._auto_retry(task, handle)

    async def run_task(self, task: Task, handle: "ExecutionHandle") -> None:
        """Execute ``task`` once under its timeout.

        Raises:
            TaskExecutionError: After the failure has been recorded on the
                task. Outcomes arriving after a pause or cancel reset the task
                are discarded and nothing is raised.
        """
        workflow = handle.workflow
        task.status = TaskStatus.IN_PROGRESS
        task.start_time = utcnow()
        task.end_time = None
        task.progress = 0
        attempt = handle.begin_attempt(task.id)
        self._observers.notify("on_task_started", workflow, task)
        logger.debug(f"Executing task: {task.name} ({task.id})")

        if task.work is None:
            error = TaskExecutionError(task.id, f"Task {task.id} has no work function")
            handle.end_attempt(task.id, attempt)
            self._record_failure(task, handle, error)
            raise error

        timeout_ms = task.timeout_ms or self.config.default_timeout_ms
        try:
            output = await execute_with_timeout(
                invoke_work(task.work, handle.context),
                timeout_ms,
                task_id=task.id,
                on_start=lambda inner: handle.track(task.id, inner),
            )
        except TaskExecutionError as e:
            error = e
        except Exception as e:
            error = TaskExecutionError(task.id, str(e) or type(e).__name__)
            error.__cause__ = e
        else:
            if not handle.end_attempt(task.id, attempt):
                logger.debug(f"Discarding late result of task {task.id}")
                return
            task.status = TaskStatus.COMPLETED
            task.end_time = utcnow()
            task.progress = 100
            task.result = TaskResult(success=True, output=output)
            logger.debug(f"Task completed: {task.name} ({task.id})")
            self._observers.notify("on_task_completed", workflow, task)
            return

        if not handle.end_attempt(task.id, attempt):
            logger.debug(f"Discarding late failure of task {task.id}: {error}")
            return
        self._record_failure(task, handle, error)
        raise error

    def _record_failure(
        self, task: Task, handle: "ExecutionHandle", error: TaskExecutionError
    ) -> None:
        task.status = TaskStatus.FAILED
        task.end_time = utcnow()
        task.result = TaskResult(success=False, error=str(error))
        self._observers.notify("on_task_failed", handle.workflow, task, str(error))

    def prepare_retry(self, task: Task) -> None:
        """Check eligibility and reset ``task`` for another attempt.

        Raises:
            RetryNotEligibleError: The task is not retryable.
            RetriesExhaustedError: ``retry_count`` reached the limit.
        """
        check_retry_eligible(task, self.config.default_max_retries)
        task.retry_count += 1
        task.status = TaskStatus.PENDING
        task.progress = 0

    async def _auto_retry(self, task: Task, handle: "ExecutionHandle") -> None:
        workflow = handle.workflow
        while workflow.status is WorkflowStatus.RUNNING:
            try:
                self.prepare_retry(task)
            except RetryError as e:
                logger.debug(f"Not retrying task {task.id}: {e}")
                return
            logger.warning(
                f"Retrying task {task.id} (attempt {task.retry_count}) "
                f"after failure: {task.result.error if task.result else ''}"
            )
            self._observers.notify("on_task_retrying", workflow, task)
            await schedule_retry(task.retry_count, self.config.retry_delay_ms)
            if (
                workflow.status is not WorkflowStatus.RUNNING
                or task.status is not TaskStatus.PENDING
            ):
                return
            try:
                await self.run_task(task, handle)
                return
            except TaskExecutionError as e:
                logger.error(f"Retry of task {task.id} failed: {e}")
