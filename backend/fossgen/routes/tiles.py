"""Tile sheet generation API - start a job, stream its progress, download the DWG or a drive copy."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from fossgen.jobs.runner import JobRunner
from fossgen.jobs.store import JobStore
from fossgen.routes.streaming import (
    binary_download, get_job_runner, get_job_store, job_or_404, progress_stream,
)
from fossgen.schemas.generation import GenerateResponse, TileRequest
from fossgen.security import get_current_user_email, rate_limited
from fossgen.services.file_storage import FileStorageService
from fossgen.services.rate_limiter import TILES_BUCKET

router = APIRouter(prefix="/api/tiles", tags=["tiles"])


@router.post("/generate", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate_tile(
    body: TileRequest,
    email: str = Depends(rate_limited(TILES_BUCKET, "tile generations")),
    store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_job_runner),
):
    """Start tile generation in the background and return its job id."""
    if not body.tile.strip():
        raise HTTPException(400, "Tile name is required")
    if not body.members:
        raise HTTPException(400, "Tile has no members")

    job_id = store.generate_job_id()
    store.create_job(job_id, body.tile)
    runner.launch("tiles", job_id, body)
    return GenerateResponse(job_id=job_id, message="Tile generation started")


@router.get("/stream/{job_id}")
async def stream_tile_progress(job_id: str, store: JobStore = Depends(get_job_store)):
    return progress_stream(store, job_id)


@router.get("/download/{job_id}")
async def download_tile(
    job_id: str,
    email: str = Depends(get_current_user_email),
    store: JobStore = Depends(get_job_store),
):
    job = job_or_404(store, job_id)
    if job.dwg_buffer is None:
        raise HTTPException(404, "DWG file not available")
    return binary_download(job.dwg_buffer, f"{job.label}.dwg")


def get_file_storage(request: Request) -> FileStorageService:
    return request.app.state.job_runner.context.storage


@router.get("/drive-download")
async def download_from_drive(
    folder: Optional[str] = Query(None),
    name: Optional[str] = Query(None),
    email: str = Depends(get_current_user_email),
    storage: FileStorageService = Depends(get_file_storage),
):
    """Fetch a previously uploaded tile file (DWG, script or image) from the shared drive."""
    if not folder or not name:
        raise HTTPException(400, "folder and name parameters are required")
    try:
        data = await storage.read(folder, name)
    except (FileNotFoundError, IsADirectoryError):
        raise HTTPException(404, "File not found on drive")
    return binary_download(data, name)
