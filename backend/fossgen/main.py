"""FastAPI application entry point."""
import asyncio
import logging
from contextlib import asynccontextmanager
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

import fossgen.workflows  # noqa: F401  registers the workflows with the runner
from fossgen.config import settings
from fossgen.database import async_session, engine, get_db
from fossgen.jobs.pubsub import ProgressBroker
from fossgen.jobs.runner import JobRunner
from fossgen.jobs.store import JobStore
from fossgen.services.cad_automation import CadAutomationClient
from fossgen.services.case_study_repository import CaseStudyRepository
from fossgen.services.currency import CurrencyConverter
from fossgen.services.file_storage import FileStorageService
from fossgen.services.image_processor import ImageProcessor
from fossgen.services.llm_base import create_llm_provider
from fossgen.services.prompts import PLAYGROUND_SYSTEM_PROMPT, SYMBOL_SYSTEM_PROMPT
from fossgen.services.rate_limiter import (
    CASE_STUDY_BUCKET, PLAYGROUND_BUCKET, SYMBOLS_BUCKET, TILES_BUCKET, RateLimiter,
)
from fossgen.services.script_llm import ScriptGenerator
from fossgen.workflows.context import WorkflowContext

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _llm_provider(model: str):
    api_key = settings.GEMINI_API_KEY if settings.LLM_PROVIDER == "gemini" else settings.OPENROUTER_API_KEY
    return create_llm_provider(
        settings.LLM_PROVIDER, model, api_key,
        base_url=settings.OPENROUTER_BASE_URL,
        app_url=settings.OPENROUTER_APP_URL,
        max_tokens=settings.LLM_MAX_TOKENS,
        timeout=settings.LLM_TIMEOUT_SECONDS,
    )


def _script_generator(system_prompt: str) -> ScriptGenerator:
    return ScriptGenerator(
        _llm_provider, system_prompt,
        base_model=settings.LLM_BASE_MODEL,
        escalation_model=settings.LLM_ESCALATION_MODEL,
    )


def build_job_runner(store: JobStore) -> JobRunner:
    """Wire every workflow collaborator from settings."""
    context = WorkflowContext(
        store=store,
        playground_scripts=_script_generator(PLAYGROUND_SYSTEM_PROMPT),
        symbol_scripts=_script_generator(SYMBOL_SYSTEM_PROMPT),
        cad=CadAutomationClient(
            settings.CAD_AUTOMATION_URL, settings.CAD_AUTOMATION_TOKEN,
            poll_interval=settings.CAD_POLL_INTERVAL_SECONDS,
            max_poll_attempts=settings.CAD_MAX_POLL_ATTEMPTS,
            timeout=settings.CAD_REQUEST_TIMEOUT_SECONDS,
        ),
        images=ImageProcessor(),
        storage=FileStorageService(settings.FILE_STORAGE_PATH),
        currency=CurrencyConverter(
            settings.CURRENCY_API_URL,
            fallback_rate=settings.CURRENCY_FALLBACK_RATE,
            cache_seconds=settings.CURRENCY_CACHE_SECONDS,
            fallback_cache_seconds=settings.CURRENCY_FALLBACK_CACHE_SECONDS,
            timeout=settings.CURRENCY_TIMEOUT_SECONDS,
        ),
        case_studies=CaseStudyRepository(async_session),
        drive_hub_path=settings.DRIVE_HUB_PATH,
        symbol_storage_url=settings.SYMBOL_STORAGE_URL,
    )
    return JobRunner(store, context)


def build_rate_limiter() -> RateLimiter:
    return RateLimiter(
        {
            TILES_BUCKET: settings.RATE_LIMIT_TILES,
            PLAYGROUND_BUCKET: settings.RATE_LIMIT_PLAYGROUND,
            CASE_STUDY_BUCKET: settings.RATE_LIMIT_CASE_STUDY,
            SYMBOLS_BUCKET: settings.RATE_LIMIT_SYMBOLS,
        },
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )


async def sweep_loop(store: JobStore, interval: float):
    """Expire finished jobs every `interval` seconds."""
    logger.info("Job sweeper started")
    while True:
        await asyncio.sleep(interval)
        store.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the job sweeper; on shutdown stop it and any still-running workflow."""
    sweeper_task = asyncio.create_task(
        sweep_loop(app.state.job_store, settings.JOB_SWEEP_INTERVAL_SECONDS)
    )

    yield

    # Cleanup
    sweeper_task.cancel()
    await app.state.job_runner.shutdown()
    await engine.dispose()


app = FastAPI(
    title="FOSSAPP Generation API",
    version="1.0.0",
    description="Background CAD drawing generation with live progress streaming.",
    lifespan=lifespan,
)

app.state.job_store = JobStore(ProgressBroker(), ttl_seconds=settings.JOB_TTL_SECONDS)
app.state.job_runner = build_job_runner(app.state.job_store)
app.state.rate_limiter = build_rate_limiter()

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    jobs = len(app.state.job_store)
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected", "jobs": jobs}
    except Exception as e:
        return {"status": "error", "database": str(e), "jobs": jobs}


# Register routers
from fossgen.routes.tiles import router as tiles_router
from fossgen.routes.playground import router as playground_router
from fossgen.routes.case_study import router as case_study_router
from fossgen.routes.symbols import router as symbols_router
app.include_router(tiles_router)
app.include_router(playground_router)
app.include_router(case_study_router)
app.include_router(symbols_router)


def run():
    """Console entry point: serve the API with uvicorn on API_HOST:API_PORT."""
    uvicorn.run("fossgen.main:app", host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    run()
