"""Detached execution of generation workflows.

Route handlers create a job, call ``JobRunner.launch`` and return at once.
The workflow runs as its own asyncio task, independent of the request that
started it; closing the SSE stream does not stop it.
"""
import asyncio
import logging
from typing import Any

from fossgen.jobs.store import JobStore

logger = logging.getLogger(__name__)


def safe_error_message(e: BaseException, fallback: str = "Generation interrupted") -> str:
    """Extract a meaningful error message from an exception.

    Some exceptions (timeouts, cancellation races) produce an empty str(e).
    This helper falls back to the exception class name.
    """
    msg = str(e).strip()
    if not msg:
        msg = f"{type(e).__name__}: {fallback}"
    return msg


# Workflow registry - add new job types here
WORKFLOWS = {}


def register_workflow(job_type: str):
    """Decorator to register a workflow coroutine ``(job_id, params, ctx)``."""
    def decorator(func):
        WORKFLOWS[job_type] = func
        return func
    return decorator


class JobRunner:
    """Spawns workflows as background tasks and guarantees a terminal state."""

    def __init__(self, store: JobStore, context: Any):
        self.store = store
        self.context = context
        # Strong references; the loop only keeps weak ones to running tasks
        self._tasks: set[asyncio.Task] = set()

    def launch(self, job_type: str, job_id: str, params: Any) -> asyncio.Task:
        handler = WORKFLOWS.get(job_type)
        if handler is None:
            raise ValueError(f"Unknown job type: {job_type}")
        task = asyncio.create_task(
            self._run(handler, job_id, params), name=f"{job_type}:{job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, handler, job_id: str, params: Any) -> None:
        try:
            await handler(job_id, params, self.context)
        except asyncio.CancelledError:
            logger.warning(f"Job {job_id} cancelled during shutdown")
            self.store.complete_job(job_id, False, {"errors": ["Generation cancelled (server shutting down)"]})
            raise
        except Exception as e:
            logger.exception(f"Job {job_id} crashed")
            self.store.complete_job(
                job_id, False, {"errors": [f"Unexpected error: {safe_error_message(e)}"]},
            )
        else:
            job = self.store.get_job(job_id)
            if job is not None and job.is_running:
                logger.error(f"Job {job_id} workflow returned without completing the job")
                self.store.complete_job(job_id, False, {"errors": ["Generation ended without a result"]})

    @property
    def active(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every workflow launched so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
