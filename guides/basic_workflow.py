"""Example workflow: fetch rows, then summarize and archive them in parallel.

Run it through the CLI:

    taskloom plan guides/basic_workflow.py:build_workflow
    taskloom run guides/basic_workflow.py:build_workflow --env REGION=eu

or directly with ``python guides/basic_workflow.py``.
"""

import asyncio
import logging

from taskloom import Task, Workflow, WorkflowEngine, WorkflowObserver


async def fetch(context):
    await asyncio.sleep(0.1)
    context.shared_state["rows"] = list(range(1, 11))


async def summarize(context):
    rows = context.shared_state["rows"]
    context.shared_state["total"] = sum(rows)
    return context.shared_state["total"]


def archive(context):
    # Plain functions run in a worker thread
    region = context.environment.get("REGION", "local")
    return f"archived {len(context.shared_state['rows'])} rows in {region}"


def build_workflow() -> Workflow:
    return Workflow(
        name="build-report",
        description="Fetch rows and produce a report",
        tasks=[
            Task(id="fetch", work=fetch, writes={"rows"}),
            Task(
                id="summarize",
                dependencies={"fetch"},
                work=summarize,
                writes={"total"},
            ),
            Task(id="archive", dependencies={"fetch"}, work=archive, timeout_ms=5_000),
        ],
    )


class PrintingObserver(WorkflowObserver):
    def on_task_completed(self, workflow, task):
        print(f"{task.id} -> {task.result.output}")

    def on_task_failed(self, workflow, task, error):
        print(f"{task.id} failed: {error}")


async def main():
    engine = WorkflowEngine(observers=[PrintingObserver()])
    result = await engine.run(build_workflow(), {"environment": {"REGION": "eu"}})
    print(f"Finished with status {result.status.value} in {result.duration_ms}ms")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
