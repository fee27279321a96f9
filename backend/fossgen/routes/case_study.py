"""Case study API - generate an XREF drawing of an area revision's symbol placements."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from fossgen.jobs.runner import JobRunner
from fossgen.jobs.store import JobStore
from fossgen.routes.streaming import (
    binary_download, get_job_runner, get_job_store, job_or_404, progress_stream,
)
from fossgen.schemas.generation import CaseStudyRequest, GenerateResponse
from fossgen.security import get_current_user_email, rate_limited
from fossgen.services.case_study_repository import CaseStudyRepository
from fossgen.services.rate_limiter import CASE_STUDY_BUCKET
from fossgen.workflows.case_study import output_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/case-study", tags=["case-study"])


def get_case_study_repository(request: Request) -> CaseStudyRepository:
    return request.app.state.job_runner.context.case_studies


@router.post("/generate", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate_case_study(
    body: CaseStudyRequest,
    email: str = Depends(rate_limited(CASE_STUDY_BUCKET, "XREF generations")),
    repo: CaseStudyRepository = Depends(get_case_study_repository),
    store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_job_runner),
):
    """Validate the revision synchronously, then generate the XREF drawing in the background."""
    if not body.area_revision_id:
        raise HTTPException(400, "Missing areaRevisionId")

    revision = await repo.get_revision(body.area_revision_id)
    if revision is None:
        raise HTTPException(404, "Area revision not found")
    if not revision.floor_plan_urn:
        raise HTTPException(400, "No floor plan uploaded for this area revision")
    if not revision.oss_bucket:
        raise HTTPException(400, "Project OSS bucket not configured")

    job_id = store.generate_job_id()
    store.create_job(job_id, f"XREF: {revision.area_code} v{revision.revision_number}")
    runner.launch("case-study", job_id, revision)
    logger.info(f"{email} started XREF generation {output_filename(revision)} as {job_id}")
    return GenerateResponse(
        job_id=job_id,
        message="XREF generation started",
        area_code=revision.area_code,
        revision_number=revision.revision_number,
    )


@router.get("/stream/{job_id}")
async def stream_case_study_progress(job_id: str, store: JobStore = Depends(get_job_store)):
    return progress_stream(store, job_id)


@router.get("/download/{job_id}")
async def download_case_study(
    job_id: str,
    email: str = Depends(get_current_user_email),
    store: JobStore = Depends(get_job_store),
):
    job = job_or_404(store, job_id)
    if job.dwg_buffer is None:
        raise HTTPException(404, "DWG file not available")
    filename = (job.result or {}).get("output_filename") or "CaseStudy.dwg"
    return binary_download(job.dwg_buffer, filename)
