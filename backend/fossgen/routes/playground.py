"""Playground API - natural-language drawing generation with model escalation."""
from fastapi import APIRouter, Depends, HTTPException

from fossgen.jobs.runner import JobRunner
from fossgen.jobs.store import JobStore
from fossgen.routes.streaming import (
    binary_download, get_job_runner, get_job_store, job_or_404, progress_stream,
)
from fossgen.schemas.generation import GenerateResponse, PlaygroundRequest
from fossgen.security import get_current_user_email, rate_limited
from fossgen.services.rate_limiter import PLAYGROUND_BUCKET
from fossgen.workflows.playground import PlaygroundParams

router = APIRouter(prefix="/api/playground", tags=["playground"])

LABEL_CHARS = 50


@router.post("/generate", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate_playground(
    body: PlaygroundRequest,
    email: str = Depends(rate_limited(PLAYGROUND_BUCKET, "playground generations")),
    store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_job_runner),
):
    """Start a playground generation. Up to 3 LLM -> AutoCAD attempts run in the background."""
    description = body.description.strip()
    if not description:
        raise HTTPException(400, "Description is required")
    output_filename = body.output_filename.strip() or "Playground.dwg"
    if not output_filename.lower().endswith(".dwg"):
        output_filename += ".dwg"

    job_id = store.generate_job_id()
    store.create_job(job_id, f"Playground: {description[:LABEL_CHARS]}...")
    runner.launch("playground", job_id, PlaygroundParams(description, output_filename))
    return GenerateResponse(job_id=job_id, message="Generation started")


@router.get("/stream/{job_id}")
async def stream_playground_progress(job_id: str, store: JobStore = Depends(get_job_store)):
    return progress_stream(store, job_id)


@router.get("/download/{job_id}")
async def download_playground(
    job_id: str,
    email: str = Depends(get_current_user_email),
    store: JobStore = Depends(get_job_store),
):
    job = job_or_404(store, job_id)
    if job.dwg_buffer is None:
        raise HTTPException(404, "DWG file not available")
    return binary_download(job.dwg_buffer, "Playground.dwg")
