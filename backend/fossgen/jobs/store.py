"""Process-local registry of generation jobs.

Jobs live only in memory: they are lost on restart and are not shared between
server processes. Everything runs on one event loop, so mutations never
interleave and no lock is taken. Completed jobs expire after ``ttl_seconds``
(see ``sweep``); running jobs never expire.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from fossgen.jobs.phases import TERMINAL_PHASES, TerminalPhase, phase_value
from fossgen.jobs.pubsub import ProgressBroker
from fossgen.schemas.base import camelize
from fossgen.schemas.progress import ProgressMessage

logger = logging.getLogger(__name__)

# (phase, message, detail) -> None, handed down into service wrappers
ProgressCallback = Callable[..., None]


class JobStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Job:
    id: str
    label: str
    status: JobStatus = JobStatus.RUNNING
    messages: list[ProgressMessage] = field(default_factory=list)
    result: Optional[dict[str, Any]] = None
    dwg_buffer: Optional[bytes] = None
    png_buffer: Optional[bytes] = None
    started_at: float = 0.0
    completed_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.status == JobStatus.RUNNING


class JobStore:
    """Create, mutate and expose job records; publishes progress to a broker."""

    def __init__(
        self,
        broker: Optional[ProgressBroker] = None,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.broker = broker or ProgressBroker()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._jobs: dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    @staticmethod
    def generate_job_id() -> str:
        """128 random bits. Job IDs double as bearer tokens for downloads."""
        return f"job-{uuid.uuid4().hex}"

    def create_job(self, job_id: str, label: str) -> Job:
        if job_id in self._jobs:
            logger.warning(f"Job {job_id} already exists, replacing it")
        job = Job(id=job_id, label=label, started_at=self._clock())
        self._jobs[job_id] = job
        logger.info(f"Created job {job_id} ({label})")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def add_progress(
        self, job_id: str, phase, message: str,
        detail: Optional[str] = None, step: Optional[str] = None,
    ) -> None:
        """Append a progress message and publish it. Never raises."""
        phase = phase_value(phase)
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning(f"Progress for unknown job {job_id} dropped: [{phase}] {message}")
            return
        if phase in TERMINAL_PHASES:
            logger.warning(
                f"Job {job_id}: phase '{phase}' is reserved for completion, message dropped: {message}"
            )
            return
        if not job.is_running:
            logger.warning(f"Progress for finished job {job_id} dropped: [{phase}] {message}")
            return
        self._append(job, ProgressMessage(
            phase=phase, message=message, detail=detail, step=step,
            timestamp=_utc_now(), elapsed=self._elapsed(job),
        ))

    def complete_job(
        self, job_id: str, success: bool,
        result: Optional[dict[str, Any]] = None,
        detail: Optional[str] = None,
        *,
        dwg_buffer: Optional[bytes] = None,
        png_buffer: Optional[bytes] = None,
    ) -> None:
        """Move a running job to its terminal state and emit the terminal event.

        Buffers are kept on the job for download, never inside ``result``.
        A failed job always carries at least one error string. Completing an
        already finished job is a logged no-op.
        """
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning(f"Completion for unknown job {job_id} dropped (expired?)")
            return
        if not job.is_running:
            logger.warning(f"Job {job_id} already {job.status.value}, ignoring second completion")
            return

        payload = dict(result or {})
        if not success and not payload.get("errors"):
            payload["errors"] = ["Generation failed"]
        job.result = {
            "success": success,
            **payload,
            "has_dwg_buffer": dwg_buffer is not None,
            "has_png_buffer": png_buffer is not None,
        }
        if success:
            job.dwg_buffer = dwg_buffer
            job.png_buffer = png_buffer
        job.status = JobStatus.SUCCEEDED if success else JobStatus.FAILED
        job.completed_at = self._clock()

        elapsed = self._elapsed(job)
        self._append(job, ProgressMessage(
            phase=TerminalPhase.COMPLETE.value if success else TerminalPhase.ERROR.value,
            message="Generation complete!" if success else "Generation failed",
            detail=detail or f"Total time: {elapsed}",
            timestamp=_utc_now(),
            elapsed=elapsed,
            result=camelize(job.result),
        ))
        log = logger.info if success else logger.warning
        log(f"Job {job_id} {job.status.value} after {elapsed}")

    def reporter(self, job_id: str, step: Optional[str] = None) -> ProgressCallback:
        """Bind a job (and optionally a step label) into a narrow progress callback."""
        def report(phase, message: str, detail: Optional[str] = None) -> None:
            self.add_progress(job_id, phase, message, detail, step)
        return report

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop jobs completed more than ``ttl_seconds`` ago. Returns the count."""
        now = self._clock() if now is None else now
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.completed_at is not None and now - job.completed_at >= self.ttl_seconds
        ]
        for job_id in expired:
            del self._jobs[job_id]
            self.broker.drop(job_id)
        if expired:
            logger.info(f"Expired {len(expired)} finished job(s)")
        return len(expired)

    def _append(self, job: Job, message: ProgressMessage) -> None:
        job.messages.append(message)
        self.broker.publish(job.id, message)

    def _elapsed(self, job: Job) -> str:
        return f"{self._clock() - job.started_at:.1f}s"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
