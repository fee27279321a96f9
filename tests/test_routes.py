import json
import time
from urllib.parse import quote

import jwt
import pytest

from conftest import cad_success
from fossgen.main import app
from fossgen.routes.tiles import get_file_storage
from fossgen.security import get_current_user_email
from fossgen.services.file_storage import FileStorageService

TILE_BODY = {
    "tile": "DT-SPOTS",
    "tileId": "t-1",
    "members": [{"productId": "P1", "imageFilename": "p1.jpg", "tileText": "Recessed spot"}],
}


def token(email="designer@foss.gr", secret="test-secret", expires_in=300, **claims):
    payload = {"email": email, "exp": int(time.time()) + expires_in, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def real_auth(client):
    app.dependency_overrides.pop(get_current_user_email)


@pytest.mark.anyio
async def test_generate_requires_a_bearer_token(client, real_auth, store):
    response = await client.post("/api/tiles/generate", json=TILE_BODY)
    assert response.status_code == 401
    assert len(store) == 0


@pytest.mark.anyio
@pytest.mark.parametrize("bad_token", [
    token(secret="wrong-secret"),
    token(expires_in=-10),
    token(email=""),
])
async def test_invalid_tokens_are_rejected(client, real_auth, bad_token):
    response = await client.post(
        "/api/tiles/generate", json=TILE_BODY, headers={"Authorization": f"Bearer {bad_token}"},
    )
    assert response.status_code == 401


@pytest.mark.anyio
async def test_valid_token_starts_a_job(client, real_auth, store, runner):
    response = await client.post(
        "/api/tiles/generate", json=TILE_BODY, headers={"Authorization": f"Bearer {token()}"},
    )
    assert response.status_code == 200
    job_id = response.json()["jobId"]
    assert job_id.startswith("job-")
    assert store.get_job(job_id).label == "DT-SPOTS"
    await runner.drain()


@pytest.mark.anyio
async def test_rate_limit_rejects_without_creating_a_job(client, store, runner, context):
    context.cad.results = [cad_success() for _ in range(5)]
    for _ in range(5):
        response = await client.post("/api/tiles/generate", json=TILE_BODY)
        assert response.status_code == 200
    assert len(store) == 5

    response = await client.post("/api/tiles/generate", json=TILE_BODY)
    assert response.status_code == 429
    assert response.json()["detail"] == "Rate limit exceeded. Max 5 tile generations per minute."
    assert response.headers["x-ratelimit-limit"] == "5"
    assert response.headers["x-ratelimit-remaining"] == "0"
    assert response.headers["retry-after"] == "60"
    assert len(store) == 5
    await runner.drain()


@pytest.mark.anyio
async def test_rate_limit_buckets_are_independent(client, runner, context):
    context.cad.results = [cad_success() for _ in range(6)]
    for _ in range(5):
        await client.post("/api/tiles/generate", json=TILE_BODY)
    response = await client.post("/api/playground/generate", json={"description": "a circle"})
    assert response.status_code == 200
    await runner.drain()


@pytest.mark.anyio
@pytest.mark.parametrize("path, body, detail", [
    ("/api/tiles/generate", {"tile": " ", "members": TILE_BODY["members"]}, "Tile name is required"),
    ("/api/tiles/generate", {"tile": "DT-SPOTS", "members": []}, "Tile has no members"),
    ("/api/playground/generate", {"description": "   "}, "Description is required"),
    ("/api/symbols/generate", {"spec": "", "product": {"fossPid": "DT1"}}, "Symbol specification is required"),
    ("/api/symbols/generate", {"spec": "BOUNDARY"}, "Product info is required"),
])
async def test_generate_validation_errors(client, store, path, body, detail):
    response = await client.post(path, json=body)
    assert response.status_code == 400
    assert response.json()["detail"] == detail
    assert len(store) == 0


@pytest.mark.anyio
@pytest.mark.parametrize("prefix", ["tiles", "playground", "case-study", "symbols"])
async def test_unknown_job_is_404(client, prefix):
    response = await client.get(f"/api/{prefix}/stream/job-missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Job not found"

    response = await client.get(f"/api/{prefix}/download/job-missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Job not found or expired"


@pytest.mark.anyio
async def test_stream_of_finished_job_replays_and_closes(client, store):
    store.create_job("job-1", "DT-SPOTS")
    store.add_progress("job-1", "images", "Starting tile generation")
    store.complete_job("job-1", True, {"dwg_url": "u"}, dwg_buffer=b"dwg")

    response = await client.get("/api/tiles/stream/job-1")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    frames = [f for f in response.text.split("\n\n") if f]
    events = [json.loads(f[len("data: "):]) for f in frames if f.startswith("data: ")]
    assert [e["phase"] for e in events] == ["images", "complete"]
    assert events[-1]["result"]["dwgUrl"] == "u"
    assert events[-1]["result"]["hasDwgBuffer"] is True
    assert frames[-1] == 'event: done\ndata: {"status":"succeeded"}'


@pytest.mark.anyio
async def test_download_of_failed_job_is_404(client, store):
    store.create_job("job-1", "DT-SPOTS")
    store.complete_job("job-1", False, {"errors": ["boom"]})

    response = await client.get("/api/tiles/download/job-1")
    assert response.status_code == 404
    assert response.json()["detail"] == "DWG file not available"


@pytest.mark.anyio
async def test_download_requires_auth(client, real_auth, store):
    store.create_job("job-1", "DT-SPOTS")
    store.complete_job("job-1", True, dwg_buffer=b"dwg")

    response = await client.get("/api/tiles/download/job-1")
    assert response.status_code == 401


@pytest.mark.anyio
async def test_tile_download_headers(client, store):
    store.create_job("job-1", "DT-SPOTS")
    store.complete_job("job-1", True, dwg_buffer=b"0123456789")

    response = await client.get("/api/tiles/download/job-1")

    assert response.status_code == 200
    assert response.content == b"0123456789"
    assert response.headers["content-type"] == "application/octet-stream"
    assert response.headers["content-disposition"] == 'attachment; filename="DT-SPOTS.dwg"'
    assert response.headers["content-length"] == "10"


@pytest.mark.anyio
async def test_symbol_download_dwg_and_png(client, store):
    store.create_job("job-1", "Symbol: DT123")
    store.complete_job("job-1", True, dwg_buffer=b"dwg", png_buffer=b"png")

    dwg = await client.get("/api/symbols/download/job-1")
    png = await client.get("/api/symbols/download/job-1", params={"type": "png"})

    assert dwg.content == b"dwg"
    assert dwg.headers["content-disposition"] == 'attachment; filename="Symbol.dwg"'
    assert png.content == b"png"
    assert png.headers["content-type"] == "image/png"
    assert png.headers["content-disposition"] == 'attachment; filename="Symbol.png"'

    bad = await client.get("/api/symbols/download/job-1", params={"type": "svg"})
    assert bad.status_code == 422


@pytest.mark.anyio
async def test_playground_job_runs_to_completion(client, store, runner):
    response = await client.post("/api/playground/generate", json={"description": "a 10mm circle"})
    job_id = response.json()["jobId"]
    assert store.get_job(job_id).label == "Playground: a 10mm circle..."

    await runner.drain()
    job = store.get_job(job_id)
    assert job.result["attempts"] == 1

    download = await client.get(f"/api/playground/download/{job_id}")
    assert download.headers["content-disposition"] == 'attachment; filename="Playground.dwg"'


@pytest.mark.anyio
async def test_download_with_non_ascii_tile_name(client, store):
    store.create_job("job-1", "Φωτιστικά")
    store.complete_job("job-1", True, dwg_buffer=b"dwg")

    response = await client.get("/api/tiles/download/job-1")

    assert response.status_code == 200
    assert response.content == b"dwg"
    disposition = response.headers["content-disposition"]
    fallback = "_" * len("Φωτιστικά") + ".dwg"
    assert disposition.startswith(f'attachment; filename="{fallback}"')
    assert f"filename*=UTF-8''{quote('Φωτιστικά.dwg')}" in disposition


@pytest.mark.anyio
async def test_download_with_quote_in_tile_name(client, store):
    store.create_job("job-1", 'Spot "A"')
    store.complete_job("job-1", True, dwg_buffer=b"dwg")

    response = await client.get("/api/tiles/download/job-1")

    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="Spot _A_.dwg"; ')
    assert "filename*=UTF-8''Spot%20%22A%22.dwg" in disposition


@pytest.fixture
def drive(client, tmp_path):
    storage = FileStorageService(str(tmp_path))
    app.dependency_overrides[get_file_storage] = lambda: storage
    return storage


@pytest.mark.anyio
async def test_drive_download_returns_uploaded_file(client, drive):
    await drive.upload("DT-SPOTS", {"DT-SPOTS.dwg": b"drive-dwg"})

    response = await client.get("/api/tiles/drive-download", params={"folder": "DT-SPOTS", "name": "DT-SPOTS.dwg"})

    assert response.status_code == 200
    assert response.content == b"drive-dwg"
    assert response.headers["content-disposition"] == 'attachment; filename="DT-SPOTS.dwg"'


@pytest.mark.anyio
@pytest.mark.parametrize("params", [{}, {"folder": "DT-SPOTS"}, {"name": "DT-SPOTS.dwg"}])
async def test_drive_download_requires_folder_and_name(client, drive, params):
    response = await client.get("/api/tiles/drive-download", params=params)
    assert response.status_code == 400
    assert response.json()["detail"] == "folder and name parameters are required"


@pytest.mark.anyio
async def test_drive_download_of_missing_file_is_404(client, drive):
    response = await client.get("/api/tiles/drive-download", params={"folder": "DT-SPOTS", "name": "nope.dwg"})
    assert response.status_code == 404
    assert response.json()["detail"] == "File not found on drive"


@pytest.mark.anyio
async def test_drive_download_requires_auth(client, real_auth, drive):
    response = await client.get("/api/tiles/drive-download", params={"folder": "DT-SPOTS", "name": "a.dwg"})
    assert response.status_code == 401
