import asyncio

import pytest

from taskloom import Task, TaskStatus, Workflow, WorkflowStatus, WorkflowSupervisor


def _work(name):
    async def work(context):
        await asyncio.sleep(0.01)
        return name

    return work


@pytest.mark.asyncio
async def test_supervisor_runs_workflows_concurrently(config):
    supervisor = WorkflowSupervisor(config=config)
    first = Workflow(id="first", tasks=[Task(id="a", work=_work("a"))])
    second = Workflow(id="second", tasks=[Task(id="b", work=_work("b"))])

    results = await asyncio.gather(supervisor.run(first), supervisor.run(second))

    assert [r.workflow_id for r in results] == ["first", "second"]
    assert all(r.success for r in results)
    assert sorted(e.workflow_id for e in supervisor.history()) == ["first", "second"]
    assert supervisor.handles() == []


@pytest.mark.asyncio
async def test_handles_are_controlled_independently(config, wait_until):
    release = asyncio.Event()
    attempts = {"slow": 0}

    async def slow(context):
        attempts["slow"] += 1
        if attempts["slow"] == 1:
            await release.wait()
        return "slow"

    supervisor = WorkflowSupervisor(config=config)
    paused_flow = Workflow(id="paused", tasks=[Task(id="slow", work=slow)])
    other_flow = Workflow(id="other", tasks=[Task(id="quick", work=_work("quick"))])

    paused_handle = supervisor.start(paused_flow)
    other_handle = supervisor.start(other_flow)
    assert {h.workflow_id for h in supervisor.handles()} == {"paused", "other"}

    await wait_until(lambda: paused_flow.tasks[0].status is TaskStatus.IN_PROGRESS)
    paused_handle.pause()

    assert (await other_handle.wait()).success
    assert (await paused_handle.wait()).status is WorkflowStatus.PAUSED
    assert supervisor.get_handle("paused") is paused_handle
    assert supervisor.get_handle("other") is None

    result = await paused_handle.resume()
    assert result.success
    assert attempts["slow"] == 2
    assert supervisor.handles() == []
