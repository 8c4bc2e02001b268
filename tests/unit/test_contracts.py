import pytest
from pydantic import ValidationError

from taskloom.contracts import (
    CancellationToken,
    ExecutionContext,
    Task,
    TaskStatus,
    TaskResult,
    Workflow,
    WorkflowStatus,
)


def test_task_defaults():
    task = Task(id="fetch")
    assert task.name == "fetch"
    assert task.status is TaskStatus.PENDING
    assert task.progress == 0
    assert task.dependencies == set()
    assert task.cancellable and task.retryable
    assert task.max_retries is None
    assert task.timeout_ms is None


def test_task_rejects_invalid_values():
    with pytest.raises(ValidationError):
        Task(id="t", progress=101)
    with pytest.raises(ValidationError):
        Task(id="t", timeout_ms=0)


def test_task_reset_clears_run_state():
    task = Task(
        id="t",
        status=TaskStatus.FAILED,
        progress=40,
        retry_count=2,
        result=TaskResult(success=False, error="boom"),
    )
    task.reset()
    assert task.status is TaskStatus.PENDING
    assert task.progress == 0
    assert task.retry_count == 0
    assert task.result is None


def test_workflow_progress():
    workflow = Workflow(
        tasks=[
            Task(id="a", status=TaskStatus.COMPLETED),
            Task(id="b", status=TaskStatus.FAILED),
            Task(id="c"),
        ]
    )
    assert workflow.status is WorkflowStatus.IDLE
    assert workflow.update_progress() == 33
    assert workflow.tasks_completed == 1
    assert [t.id for t in workflow.tasks_with_status(TaskStatus.PENDING)] == ["c"]
    assert workflow.get_task("b").status is TaskStatus.FAILED
    assert workflow.get_task("missing") is None


def test_empty_workflow_progress_is_complete():
    assert Workflow().update_progress() == 100


def test_workflow_ids_are_unique():
    assert Workflow().id != Workflow().id


def test_context_overrides_layer_on_copy():
    base = ExecutionContext(
        working_directory="/srv", environment={"A": "1", "B": "2"}
    )
    layered = base.with_overrides(
        {
            "working_directory": "/tmp/run",
            "environment": {"B": "3", "C": "4"},
            "shared_state": {"seed": 1},
        }
    )
    assert layered.working_directory == "/tmp/run"
    assert layered.environment == {"A": "1", "B": "3", "C": "4"}
    assert base.working_directory == "/srv"
    assert base.environment == {"A": "1", "B": "2"}
    assert layered.shared_state is base.shared_state
    assert base.shared_state == {"seed": 1}
    assert layered.cancellation is not base.cancellation


def test_context_overrides_reject_unknown_fields():
    base = ExecutionContext(environment={})
    with pytest.raises(ValueError, match="timeout"):
        base.with_overrides({"timeout": 5, "shared_state": {"x": 1}})
    assert base.shared_state == {}


def test_context_overrides_accept_context():
    base = ExecutionContext(environment={"A": "1"})
    layered = base.with_overrides(ExecutionContext(environment={"B": "2"}))
    assert layered.environment == {"A": "1", "B": "2"}
    assert layered.working_directory == base.working_directory


def test_cancellation_token():
    token = CancellationToken()
    assert not token.cancelled
    token.cancel("paused")
    assert token.cancelled
    assert token.reason == "paused"
    token.reset()
    assert not token.cancelled
    assert token.reason is None
