"""Example showing pause, resume and manual retry on a running workflow."""

import asyncio
import logging

from taskloom import EngineConfig, Task, Workflow, WorkflowEngine
from taskloom.errors import TaskExecutionError

attempts = {"upload": 0}


async def crunch(context):
    for _ in range(20):
        if context.cancellation.cancelled:
            return "stopped early"
        await asyncio.sleep(0.05)
    return "crunched"


async def upload(context):
    attempts["upload"] += 1
    if attempts["upload"] == 1:
        raise ConnectionError("upload endpoint unavailable")
    return "uploaded"


async def main():
    workflow = Workflow(
        name="nightly",
        tasks=[
            Task(id="crunch", work=crunch),
            Task(id="upload", work=upload),
            Task(id="notify", dependencies={"crunch", "upload"}, work=crunch),
        ],
    )
    engine = WorkflowEngine(config=EngineConfig(retry_delay_ms=200))
    handle = engine.start(workflow)

    await asyncio.sleep(0.2)
    engine.pause()
    paused = await handle.wait()
    print(f"Paused: {paused.tasks_completed}/{paused.tasks_total} tasks done")

    resumed = asyncio.ensure_future(engine.resume())
    await asyncio.sleep(0.1)
    try:
        await engine.retry_task("upload")
    except TaskExecutionError as e:
        print(f"Retry failed: {e}")

    result = await resumed
    print(f"Finished with status {result.status.value}")
    for task in workflow.tasks:
        print(f"- {task.id}: {task.status.value} (retries: {task.retry_count})")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
