"""Dependency validation and batch planning.

A plan is an ordered list of batches. Every task sits in exactly one batch,
all of its dependencies sit in strictly earlier batches, and each batch holds
every task whose dependencies were placed before it. A dependency counts as
satisfied once it has been *placed*, regardless of how it later runs; the
executor decides what to do with dependents of failed tasks.

Nothing in this module mutates a task.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .contracts import Task, Workflow
from .errors import (
    DependencyCycleError,
    DuplicateTaskError,
    MissingDependencyError,
    SharedStateConflictError,
)

logger = logging.getLogger(__name__)

Batch = List[Task]


class ExecutionPlan:
    """Ordered batches for one workflow."""

    def __init__(self, batches: List[Batch]) -> None:
        self.batches = batches

    def __iter__(self):
        return iter(self.batches)

    def __len__(self) -> int:
        return len(self.batches)

    def task_ids(self) -> List[str]:
        """Return ids in execution order (a valid topological order)."""
        return [task.id for batch in self.batches for task in batch]

    def describe(self) -> List[List[str]]:
        return [[task.id for task in batch] for batch in self.batches]


def _index_tasks(tasks: Iterable[Task]) -> Dict[str, Task]:
    index: Dict[str, Task] = {}
    for task in tasks:
        if task.id in index:
            raise DuplicateTaskError(task.id)
        index[task.id] = task
    return index


def find_cycle(tasks: Sequence[Task]) -> Optional[List[str]]:
    """Return the first dependency cycle as a path ``[a, b, ..., a]``.

    Depth-first search with an explicit stack, so long chains do not hit the
    interpreter recursion limit.
    """

    index = {task.id: task for task in tasks}
    visited: set[str] = set()

    for task in tasks:
        if task.id in visited:
            continue
        visited.add(task.id)
        path: List[str] = [task.id]
        on_path = {task.id}
        stack: List[Iterator[str]] = [iter(sorted(task.dependencies))]

        while stack:
            dep_id = next(stack[-1], None)
            if dep_id is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if dep_id in on_path:
                return path[path.index(dep_id):] + [dep_id]
            if dep_id in visited or dep_id not in index:
                continue
            visited.add(dep_id)
            path.append(dep_id)
            on_path.add(dep_id)
            stack.append(iter(sorted(index[dep_id].dependencies)))
    return None


def build_batches(tasks: Sequence[Task]) -> List[Batch]:
    """Group ``tasks`` into dependency-ordered batches.

    A task joins the batch after the one that places its last dependency.
    Order inside a batch follows declaration order.

    Raises:
        DependencyCycleError: When tasks remain that can never be placed,
            i.e. they form a cycle or depend on unknown ids.
    """

    waiting = [len(task.dependencies) for task in tasks]
    dependents: Dict[str, List[int]] = defaultdict(list)
    for position, task in enumerate(tasks):
        for dep_id in task.dependencies:
            dependents[dep_id].append(position)

    batches: List[Batch] = []
    ready = [position for position, count in enumerate(waiting) if count == 0]
    while ready:
        batches.append([tasks[position] for position in ready])
        unlocked = []
        for position in ready:
            for dependent in dependents.get(tasks[position].id, ()):
                waiting[dependent] -= 1
                if waiting[dependent] == 0:
                    unlocked.append(dependent)
        ready = sorted(unlocked)

    unresolved = [task.id for task, count in zip(tasks, waiting) if count > 0]
    if unresolved:
        raise DependencyCycleError(unresolved=unresolved)
    return batches


def check_shared_state_writes(batches: Sequence[Batch]) -> None:
    """Reject batches where two tasks declare a write to the same key."""

    for batch in batches:
        writers: Dict[str, List[str]] = defaultdict(list)
        for task in batch:
            for key in task.writes:
                writers[key].append(task.id)
        for key in sorted(writers):
            if len(writers[key]) > 1:
                raise SharedStateConflictError(key, writers[key])


def validate_tasks(tasks: Sequence[Task]) -> None:
    """Check ids and dependency references without planning."""

    index = _index_tasks(tasks)
    for task in tasks:
        for dep_id in sorted(task.dependencies):
            if dep_id not in index:
                raise MissingDependencyError(task.id, dep_id)

    cycle = find_cycle(tasks)
    if cycle:
        path = " -> ".join(cycle)
        raise DependencyCycleError(
            f"Circular dependencies detected: {path}", cycle=cycle
        )


def plan_tasks(tasks: Sequence[Task]) -> ExecutionPlan:
    validate_tasks(tasks)
    batches = build_batches(tasks)
    check_shared_state_writes(batches)
    logger.debug(f"Planned {len(tasks)} tasks into {len(batches)} batches")
    return ExecutionPlan(batches)


def plan_workflow(workflow: Workflow) -> ExecutionPlan:
    """Validate ``workflow`` and return its batch plan.

    Raises:
        WorkflowValidationError: For duplicate ids, unknown or circular
            dependencies, and colliding shared state writes.
    """

    return plan_tasks(workflow.tasks)
