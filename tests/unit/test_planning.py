"""Tests for dependency validation and batch planning."""

import random

import pytest

from taskloom.contracts import Task, TaskPriority, TaskStatus, Workflow
from taskloom.errors import (
    DependencyCycleError,
    DuplicateTaskError,
    MissingDependencyError,
    SharedStateConflictError,
)
from taskloom.planning import build_batches, find_cycle, plan_workflow


def _ids(batches):
    return [[task.id for task in batch] for batch in batches]


def _random_dag(seed: int, size: int = 12) -> list[Task]:
    rng = random.Random(seed)
    tasks = []
    for index in range(size):
        candidates = [f"t{i}" for i in range(index)]
        deps = set(rng.sample(candidates, k=rng.randint(0, min(3, len(candidates)))))
        tasks.append(Task(id=f"t{index}", dependencies=deps))
    rng.shuffle(tasks)
    return tasks


def test_fan_out_batches():
    tasks = [
        Task(id="T1"),
        Task(id="T2", dependencies={"T1"}),
        Task(id="T3", dependencies={"T1"}),
    ]
    assert _ids(build_batches(tasks)) == [["T1"], ["T2", "T3"]]


def test_batches_keep_declaration_order():
    tasks = [
        Task(id="c", dependencies={"a"}),
        Task(id="b"),
        Task(id="a"),
        Task(id="d", dependencies={"b", "c"}),
    ]
    assert _ids(build_batches(tasks)) == [["b", "a"], ["c"], ["d"]]


def test_empty_task_list_has_no_batches():
    assert build_batches([]) == []


@pytest.mark.parametrize("seed", range(20))
def test_batches_form_a_topological_order(seed):
    tasks = _random_dag(seed)
    batches = build_batches(tasks)

    placed_in = {task.id: index for index, batch in enumerate(batches) for task in batch}
    assert sorted(placed_in) == sorted(task.id for task in tasks)
    assert sum(len(batch) for batch in batches) == len(tasks)

    for task in tasks:
        for dep_id in task.dependencies:
            assert placed_in[dep_id] < placed_in[task.id]

    # every task sits in the earliest batch its dependencies allow
    for task in tasks:
        earliest = max((placed_in[d] + 1 for d in task.dependencies), default=0)
        assert placed_in[task.id] == earliest


def test_priority_does_not_reorder_batches():
    tasks = [
        Task(id="low", priority=TaskPriority.LOW),
        Task(id="critical", priority=TaskPriority.CRITICAL),
    ]
    assert _ids(build_batches(tasks)) == [["low", "critical"]]


def test_build_batches_rejects_cycles():
    tasks = [Task(id="a", dependencies={"b"}), Task(id="b", dependencies={"a"})]
    with pytest.raises(DependencyCycleError) as exc_info:
        build_batches(tasks)
    assert exc_info.value.unresolved == ["a", "b"]


def test_build_batches_rejects_missing_dependency():
    tasks = [Task(id="a"), Task(id="b", dependencies={"ghost"})]
    with pytest.raises(DependencyCycleError):
        build_batches(tasks)


def test_find_cycle_reports_path():
    tasks = [
        Task(id="a", dependencies={"c"}),
        Task(id="b", dependencies={"a"}),
        Task(id="c", dependencies={"b"}),
    ]
    cycle = find_cycle(tasks)
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}


def test_find_cycle_none_for_dag():
    assert find_cycle(_random_dag(7)) is None


@pytest.mark.parametrize(
    "tasks",
    [
        [Task(id="solo", dependencies={"solo"})],
        [Task(id="a", dependencies={"b"}), Task(id="b", dependencies={"a"})],
        [
            Task(id="root"),
            Task(id="x", dependencies={"root", "z"}),
            Task(id="y", dependencies={"x"}),
            Task(id="z", dependencies={"y"}),
        ],
    ],
)
def test_plan_rejects_cycles_without_touching_tasks(tasks):
    workflow = Workflow(tasks=tasks)
    with pytest.raises(DependencyCycleError) as exc_info:
        plan_workflow(workflow)
    assert "Circular dependencies detected" in str(exc_info.value)
    assert all(task.status is TaskStatus.PENDING for task in tasks)
    assert all(task.start_time is None for task in tasks)


def test_plan_rejects_missing_dependency():
    workflow = Workflow(tasks=[Task(id="a", dependencies={"ghost"})])
    with pytest.raises(MissingDependencyError) as exc_info:
        plan_workflow(workflow)
    assert exc_info.value.dependency_id == "ghost"
    assert isinstance(exc_info.value, DependencyCycleError)


def test_plan_rejects_duplicate_ids():
    workflow = Workflow(tasks=[Task(id="a"), Task(id="a")])
    with pytest.raises(DuplicateTaskError):
        plan_workflow(workflow)


def test_plan_rejects_colliding_writes_in_one_batch():
    workflow = Workflow(
        tasks=[
            Task(id="left", writes={"report"}),
            Task(id="right", writes={"report", "other"}),
        ]
    )
    with pytest.raises(SharedStateConflictError) as exc_info:
        plan_workflow(workflow)
    assert exc_info.value.key == "report"
    assert exc_info.value.task_ids == ["left", "right"]


def test_plan_allows_same_key_in_different_batches():
    workflow = Workflow(
        tasks=[
            Task(id="draft", writes={"report"}),
            Task(id="final", dependencies={"draft"}, writes={"report"}),
        ]
    )
    plan = plan_workflow(workflow)
    assert plan.describe() == [["draft"], ["final"]]
    assert plan.task_ids() == ["draft", "final"]


def _chain(length: int) -> list[Task]:
    tasks = [Task(id="t0")]
    tasks += [Task(id=f"t{i}", dependencies={f"t{i - 1}"}) for i in range(1, length)]
    return tasks


def test_long_chain_declared_dependents_first():
    tasks = list(reversed(_chain(5000)))

    plan = plan_workflow(Workflow(tasks=tasks))

    assert len(plan) == 5000
    assert plan.task_ids() == [f"t{i}" for i in range(5000)]
    assert find_cycle(tasks) is None


def test_cycle_at_end_of_long_chain_is_reported():
    tasks = _chain(3000)
    tasks[0] = Task(id="t0", dependencies={"t2999"})

    with pytest.raises(DependencyCycleError) as exc_info:
        plan_workflow(Workflow(tasks=list(reversed(tasks))))
    assert len(exc_info.value.cycle) == 3001
    assert exc_info.value.cycle[0] == exc_info.value.cycle[-1]
