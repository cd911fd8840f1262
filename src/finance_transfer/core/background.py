"""Background task runner abstraction.

Operations are executed by one asyncio task each, decoupled from the
request that submitted them. The runner only tracks the task handle;
durable lifecycle state lives in the operation registry.
"""

import asyncio
import enum
import uuid
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger


class JobStatus(enum.StrEnum):
    """Status of a background task as seen by the runner."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, coro: Coroutine[Any, Any, Any], job_id: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            job_id: Optional identifier to track the task under.

        Returns:
            A job ID string for tracking.
        """
        ...

    def get_status(self, job_id: str) -> JobStatus:
        """Get the current status of a background job.

        Args:
            job_id: The job ID returned by submit_task.

        Returns:
            The current job status.
        """
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.

    Tasks run in the same process as the API server using
    asyncio.create_task(). Finished task handles are released as soon as
    they complete; only their final status is remembered.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, JobStatus] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def submit_task(self, coro: Coroutine[Any, Any, Any], job_id: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            job_id: Optional identifier (the operation id); a UUID is
                generated when omitted.

        Returns:
            A job ID string for tracking.
        """
        job_id = job_id or str(uuid.uuid4())
        self._jobs[job_id] = JobStatus.PENDING

        async def _run() -> None:
            self._jobs[job_id] = JobStatus.RUNNING
            try:
                await coro
                self._jobs[job_id] = JobStatus.COMPLETED
            except asyncio.CancelledError:
                self._jobs[job_id] = JobStatus.CANCELLED
                raise
            except Exception:
                self._jobs[job_id] = JobStatus.FAILED
                logger.exception(f"Background task {job_id} failed")

        task = asyncio.create_task(_run(), name=f"job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job_id, None))
        return job_id

    def get_status(self, job_id: str) -> JobStatus:
        """Get the current status of a background job.

        Args:
            job_id: The job ID returned by submit_task.

        Returns:
            The current job status.

        Raises:
            KeyError: If the job ID is not found.
        """
        return self._jobs[job_id]

    @property
    def active_count(self) -> int:
        """Number of tasks that have not finished yet."""
        return len(self._tasks)

    async def wait(self, job_id: str) -> None:
        """Wait for a submitted task to finish, if it is still running."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every unfinished task and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} background task(s) on shutdown")


# Singleton instance for the application
task_runner = InProcessTaskRunner()
