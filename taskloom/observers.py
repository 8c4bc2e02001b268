"""Observer hooks fired while workflows run."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, List

if TYPE_CHECKING:
    from .contracts import ExecutionResult, Task, Workflow

logger = logging.getLogger(__name__)


class WorkflowObserver:
    """Base class for receiving engine events.

    Every hook is a no-op; override the ones you need. Hooks run on the event
    loop and should return quickly.
    """

    def on_workflow_started(self, workflow: "Workflow") -> None:
        pass

    def on_task_started(self, workflow: "Workflow", task: "Task") -> None:
        pass

    def on_task_completed(self, workflow: "Workflow", task: "Task") -> None:
        pass

    def on_task_failed(self, workflow: "Workflow", task: "Task", error: str) -> None:
        pass

    def on_task_retrying(self, workflow: "Workflow", task: "Task") -> None:
        pass

    def on_workflow_paused(self, workflow: "Workflow") -> None:
        pass

    def on_workflow_resumed(self, workflow: "Workflow") -> None:
        pass

    def on_workflow_cancelled(self, workflow: "Workflow") -> None:
        pass

    def on_workflow_completed(
        self, workflow: "Workflow", result: "ExecutionResult"
    ) -> None:
        pass

    def on_error(self, workflow: "Workflow", message: str) -> None:
        pass


class ObserverGroup:
    """Fan an event out to several observers.

    A failing observer is logged and skipped; it never changes the outcome
    of the run.
    """

    def __init__(self, observers: Iterable[WorkflowObserver] = ()) -> None:
        self._observers: List[WorkflowObserver] = list(observers)

    def add(self, observer: WorkflowObserver) -> None:
        self._observers.append(observer)

    def notify(self, event: str, *args: Any) -> None:
        for observer in self._observers:
            hook = getattr(observer, event, None)
            if hook is None:
                continue
            try:
                hook(*args)
            except Exception as e:
                logger.error(
                    f"Observer {type(observer).__name__}.{event} raised: {e}"
                )
