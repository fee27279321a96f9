"""Symbol generator API - turn a vision-analysis spec into DWG + PNG symbol files."""
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from fossgen.jobs.runner import JobRunner
from fossgen.jobs.store import JobStore
from fossgen.routes.streaming import (
    binary_download, get_job_runner, get_job_store, job_or_404, progress_stream,
)
from fossgen.schemas.generation import GenerateResponse, SymbolRequest
from fossgen.security import get_current_user_email, rate_limited
from fossgen.services.rate_limiter import SYMBOLS_BUCKET
from fossgen.workflows.symbols import SymbolParams

router = APIRouter(prefix="/api/symbols", tags=["symbols"])


@router.post("/generate", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate_symbol(
    body: SymbolRequest,
    email: str = Depends(rate_limited(SYMBOLS_BUCKET, "symbol generations")),
    store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_job_runner),
):
    if not body.spec.strip():
        raise HTTPException(400, "Symbol specification is required")
    if body.product is None or not body.product.foss_pid:
        raise HTTPException(400, "Product info is required")

    foss_pid = body.product.foss_pid
    job_id = store.generate_job_id()
    store.create_job(job_id, f"Symbol: {foss_pid}")
    runner.launch("symbols", job_id, SymbolParams(spec=body.spec, foss_pid=foss_pid))
    return GenerateResponse(job_id=job_id, message="Symbol generation started")


@router.get("/stream/{job_id}")
async def stream_symbol_progress(job_id: str, store: JobStore = Depends(get_job_store)):
    return progress_stream(store, job_id)


@router.get("/download/{job_id}")
async def download_symbol(
    job_id: str,
    file_type: Literal["dwg", "png"] = Query("dwg", alias="type"),
    email: str = Depends(get_current_user_email),
    store: JobStore = Depends(get_job_store),
):
    """Download the generated symbol DWG (default) or its PNG preview."""
    job = job_or_404(store, job_id)
    if file_type == "png":
        if job.png_buffer is None:
            raise HTTPException(404, "PNG file not available")
        return binary_download(job.png_buffer, "Symbol.png", media_type="image/png")
    if job.dwg_buffer is None:
        raise HTTPException(404, "DWG file not available")
    return binary_download(job.dwg_buffer, "Symbol.dwg")
