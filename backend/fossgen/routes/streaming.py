"""Shared plumbing for job routes: store/runner lookup, SSE progress stream, downloads."""
import asyncio
import logging
from urllib.parse import quote

from fastapi import HTTPException, Request
from fastapi.responses import Response, StreamingResponse

from fossgen.jobs.phases import TERMINAL_PHASES
from fossgen.jobs.runner import JobRunner
from fossgen.jobs.store import Job, JobStore
from fossgen.schemas.progress import ProgressMessage, StreamDone

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_job_runner(request: Request) -> JobRunner:
    return request.app.state.job_runner


def progress_stream(store: JobStore, job_id: str) -> StreamingResponse:
    """SSE stream: backlog first, then live messages, then ``event: done``.

    Raises 404 before any subscription exists when the job is unknown.
    """
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(404, "Job not found")
    return StreamingResponse(
        _events(store, job), media_type="text/event-stream", headers=SSE_HEADERS,
    )


async def _events(store: JobStore, job: Job):
    # Snapshot and subscribe without yielding in between, so no message
    # can land after the snapshot but before the subscription.
    backlog = list(job.messages)
    if not job.is_running:
        for message in backlog:
            yield message.to_sse()
        yield StreamDone(status=job.status.value).to_sse()
        return

    queue: asyncio.Queue[ProgressMessage] = asyncio.Queue()
    unsubscribe = store.broker.subscribe(job.id, queue.put_nowait)
    try:
        for message in backlog:
            yield message.to_sse()
        while True:
            message = await queue.get()
            yield message.to_sse()
            if message.phase in TERMINAL_PHASES:
                yield StreamDone(status=job.status.value).to_sse()
                break
    finally:
        unsubscribe()
        logger.debug(f"SSE stream for job {job.id} closed")


def content_disposition(filename: str) -> str:
    """Attachment header safe for latin-1 transport.

    Non-ASCII names get an underscore fallback in ``filename`` and the real
    name in ``filename*`` (RFC 6266).
    """
    fallback = "".join(c if 32 <= ord(c) < 127 and c not in '"\\' else "_" for c in filename)
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def binary_download(data: bytes, filename: str, media_type: str = "application/octet-stream") -> Response:
    return Response(
        content=data,
        media_type=media_type,
        headers={
            "Content-Disposition": content_disposition(filename),
            "Content-Length": str(len(data)),
        },
    )


def job_or_404(store: JobStore, job_id: str) -> Job:
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(404, "Job not found or expired")
    return job
