import os

import pytest
from httpx import ASGITransport, AsyncClient

# Settings are read at import time; give the app a signing secret first.
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["CURRENCY_API_URL"] = "http://currency.invalid/usd.json"

from fossgen.jobs.pubsub import ProgressBroker  # noqa: E402
from fossgen.jobs.runner import JobRunner  # noqa: E402
from fossgen.jobs.store import JobStore  # noqa: E402
from fossgen.main import app  # noqa: E402
from fossgen.routes.case_study import get_case_study_repository  # noqa: E402
from fossgen.routes.streaming import get_job_runner, get_job_store  # noqa: E402
from fossgen.security import get_current_user_email, get_rate_limiter  # noqa: E402
from fossgen.services.cad_automation import CadResult  # noqa: E402
from fossgen.services.case_study_repository import PlacementRow, RevisionInfo  # noqa: E402
from fossgen.services.file_storage import UploadResult  # noqa: E402
from fossgen.services.llm_base import ChatCompletion  # noqa: E402
from fossgen.services.rate_limiter import RateLimiter  # noqa: E402
from fossgen.services.script_llm import ScriptGenerator  # noqa: E402
from fossgen.workflows.context import WorkflowContext  # noqa: E402

BASE_MODEL = "anthropic/claude-sonnet-4"
ESCALATION_MODEL = "anthropic/claude-opus-4"
GOOD_SCRIPT = '(setvar "cmdecho" 0)\n(command "CIRCLE" "0,0" 10)\n(command "SAVEAS" "2018" "Playground.dwg")'


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Chat provider returning a canned completion and recording every request."""

    def __init__(self, model: str, log: list, text: str = f"```lisp\n{GOOD_SCRIPT}\n```"):
        self.model_name = model
        self.log = log
        self.text = text

    async def chat(self, messages):
        self.log.append((self.model_name, list(messages)))
        return ChatCompletion(text=self.text, tokens_in=1000, tokens_out=500, model=self.model_name)


class FakeCad:
    """CAD gateway replaying scripted results in order."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    async def execute(self, script, *, output_name, assets=(), on_progress=None, want_png=False, bucket=None):
        self.calls.append({
            "script": script, "output_name": output_name, "assets": list(assets),
            "want_png": want_png, "bucket": bucket,
        })
        if on_progress:
            on_progress("aps", "AutoCAD inprogress...", "2s elapsed")
        return self.results.pop(0)


class FakeImages:
    def __init__(self, error=None):
        self.error = error

    async def process_members(self, members, on_progress=None):
        if self.error:
            raise self.error
        from fossgen.services.cad_automation import CadAsset
        return [CadAsset(name=f"{m.product_id}.png", data=b"png") for m in members]


class FakeStorage:
    def __init__(self, result=None):
        self.result = result or UploadResult(success=True, links={})
        self.uploads = []

    async def upload(self, folder, files):
        self.uploads.append((folder, dict(files)))
        if self.result.success:
            return UploadResult(success=True, links={name: f"file:///drive/{folder}/{name}" for name in files})
        return self.result


class FixedRateCurrency:
    async def convert(self, amount_usd):
        return round(amount_usd * 0.9, 4)


class FakeCaseStudies:
    def __init__(self, revision=None, placements=(), symbols=None):
        self.revision = revision
        self.placements = list(placements)
        self.symbols = symbols or {}

    async def get_revision(self, revision_id):
        if self.revision and self.revision.revision_id == revision_id:
            return self.revision
        return None

    async def list_placements(self, revision_id):
        return self.placements

    async def symbol_dwg_paths(self, foss_pids):
        return {pid: path for pid, path in self.symbols.items() if pid in foss_pids}


def cad_success(dwg=b"DWG-BYTES", png=None) -> CadResult:
    return CadResult(
        success=True, dwg_buffer=dwg, png_buffer=png,
        dwg_url="https://cad.example/out.dwg", viewer_urn="urn:abc", work_item_id="wi-1",
    )


def cad_failure(report="; error: bad argument type: numberp: nil") -> CadResult:
    return CadResult(
        success=False, work_item_id="wi-x",
        errors=["Work item wi-x ended with status 'failedInstructions'"], report=report,
    )


def make_revision(**overrides) -> RevisionInfo:
    values = dict(
        revision_id="2f1c3a4e-0000-4000-8000-000000000001",
        revision_number=3,
        area_code="F1-LOBBY",
        project_id="p-1",
        project_code="2501",
        oss_bucket="fossapp-2501",
        floor_plan_urn="urn:floorplan",
        drive_folder_id="drive-1",
    )
    values.update(overrides)
    return RevisionInfo(**values)


def make_placements() -> list[PlacementRow]:
    return [
        PlacementRow(foss_pid="DT123", world_x=1000.0, world_y=2000.0, rotation=90.0, symbol="A1"),
        PlacementRow(foss_pid="DT456", world_x=1500.25, world_y=2000.0, mirror_x=True, symbol="B2"),
    ]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return JobStore(ProgressBroker(), ttl_seconds=300, clock=clock)


@pytest.fixture
def llm_log():
    return []


@pytest.fixture
def scripts(llm_log):
    return ScriptGenerator(
        lambda model: FakeProvider(model, llm_log), "system prompt",
        base_model=BASE_MODEL, escalation_model=ESCALATION_MODEL,
    )


@pytest.fixture
def cad():
    return FakeCad([cad_success()])


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def case_studies():
    return FakeCaseStudies(make_revision(), make_placements(), {"DT123": "DT123/DT123-SYMBOL.dwg"})


@pytest.fixture
def context(store, scripts, cad, storage, case_studies):
    return WorkflowContext(
        store=store,
        playground_scripts=scripts,
        symbol_scripts=scripts,
        cad=cad,
        images=FakeImages(),
        storage=storage,
        currency=FixedRateCurrency(),
        case_studies=case_studies,
        drive_hub_path="F:/Shared drives/HUB",
        symbol_storage_url="https://storage.example/product-symbols",
    )


@pytest.fixture
def runner(store, context):
    return JobRunner(store, context)


@pytest.fixture
def limiter(clock):
    return RateLimiter({
        "tiles-generate": 5, "playground-generate": 10,
        "case-study-generate": 3, "symbol-generator-dwg": 10,
    }, window_seconds=60, clock=clock)


@pytest.fixture
async def client(store, runner, limiter, case_studies):
    app.dependency_overrides[get_job_store] = lambda: store
    app.dependency_overrides[get_job_runner] = lambda: runner
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_case_study_repository] = lambda: case_studies
    app.dependency_overrides[get_current_user_email] = lambda: "designer@foss.gr"
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
