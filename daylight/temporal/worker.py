"""Temporal worker for journal extraction.

Run with ``python -m daylight.temporal.worker``. Serves a small health check
app next to the workers.
"""

import asyncio
import os
from typing import Dict, List

import uvicorn
from fastapi import FastAPI
from temporalio.client import Client
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner, SandboxRestrictions

from daylight.core.config import settings
from daylight.temporal.core.activity_registry import ActivityRegistry
from daylight.temporal.core.discovery import discover_all
from daylight.temporal.core.workflow_registry import WorkflowRegistry
from daylight.utils.logging import get_logger

logger = get_logger(__name__)

app = FastAPI(title="Temporal Worker Health Check")


@app.get("/health")
async def health():
    return {"status": "ok", "service": "temporal-worker"}


async def run_health_check_server():
    port = int(os.getenv("WORKER_HEALTH_PORT", 8001))
    logger.info(f"Starting health check server on port {port}")
    config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(config)
    await server.serve()


async def connect_client(max_retries: int = 5, retry_delay: float = 5) -> Client:
    """Connect to Temporal, retrying while the server comes up."""
    target = f"{settings.temporal_host}:{settings.temporal_port}"
    for attempt in range(max_retries):
        try:
            logger.info(f"Connecting to Temporal server at {target} (Attempt {attempt + 1}/{max_retries})")
            return await Client.connect(target, namespace=settings.temporal_namespace)
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(f"Connection attempt {attempt + 1} failed: {e}. Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to Temporal server after {max_retries} attempts: {e}")
                raise
    raise RuntimeError("unreachable")


def group_workflows_by_queue() -> Dict[str, List[type]]:
    queues: Dict[str, List[type]] = {}
    for wf_name, metadata in WorkflowRegistry.get_all_workflows().items():
        queue = metadata.task_queue or settings.temporal_task_queue
        queues.setdefault(queue, []).append(metadata.workflow_class)
        logger.debug(f"Workflow '{wf_name}' assigned to queue '{queue}'")
    return queues


async def run_workers():
    discover_all()
    client = await connect_client()

    activities = list(ActivityRegistry.get_all_activities().values())
    queues = group_workflows_by_queue()
    logger.info(f"Registered {sum(len(w) for w in queues.values())} workflows and {len(activities)} activities")

    workers = []
    for queue_name, workflows in queues.items():
        worker = Worker(
            client,
            task_queue=queue_name,
            workflows=workflows,
            activities=activities,
            max_concurrent_activities=10,
            max_concurrent_workflow_tasks=20,
            workflow_runner=SandboxedWorkflowRunner(
                restrictions=SandboxRestrictions.default.with_passthrough_all_modules()
            ),
        )
        workers.append(worker.run())

    logger.info(f"Workers polling queues: {list(queues.keys())}")
    await asyncio.gather(*workers)


async def main():
    await asyncio.gather(run_health_check_server(), run_workers())


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Workers stopped by user")
