import pytest
from unittest.mock import AsyncMock

from src.api.dependencies import get_pipeline_service
from src.core.exceptions import UploadError
from src.main import app
from src.pipeline.controller import PipelineController
from src.pipeline.poller import JobPoller
from src.pipeline.runner import StageRunner
from src.pipeline.service import ChildPipelineService
from tests.fakes import FakeSleep, ScriptedProvider, processing, succeeded, failed


def install_service(provider, pipeline_config):
    storage = AsyncMock()
    storage.backend_name = "memory"
    storage.upload.side_effect = lambda data, content_type="image/png", folder="uploads": (
        f"https://cdn.test/{folder}/{len(storage.upload.call_args_list)}.png"
    )
    controller = PipelineController(StageRunner(provider, JobPoller(provider, sleep=FakeSleep())))
    service = ChildPipelineService(controller, storage, pipeline_config)
    app.dependency_overrides[get_pipeline_service] = lambda: service
    return storage


def parent_files(png_bytes):
    return {
        "father_image": ("father.png", png_bytes, "image/png"),
        "mother_image": ("mother.png", png_bytes, "image/png"),
    }


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_root_lists_entry_points(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["api_v1"] == "/api/v1"


@pytest.mark.asyncio
async def test_child_endpoint_returns_synthesized_face(client, pipeline_config, png_bytes):
    provider = ScriptedProvider({"synth": processing(2) + [succeeded("https://cdn.test/a1.png")]})
    storage = install_service(provider, pipeline_config)

    response = await client.post("/api/v1/child", files=parent_files(png_bytes), data={"gender": "boy"})

    assert response.status_code == 200
    data = response.json()
    assert data["output"] == "https://cdn.test/a1.png"
    assert data["stage"] == "synthesis"
    assert data["run_id"]
    assert storage.upload.await_count == 2
    assert provider.submissions[0][1]["gender"] == "boy"


@pytest.mark.asyncio
async def test_child_endpoint_rejects_missing_gender(client, pipeline_config, png_bytes):
    provider = ScriptedProvider({})
    storage = install_service(provider, pipeline_config)

    response = await client.post("/api/v1/child", files=parent_files(png_bytes))

    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
    storage.upload.assert_not_called()
    assert provider.submissions == []


@pytest.mark.asyncio
async def test_child_endpoint_rejects_missing_image(client, pipeline_config, png_bytes):
    install_service(ScriptedProvider({}), pipeline_config)

    response = await client.post(
        "/api/v1/child",
        files={"father_image": ("father.png", png_bytes, "image/png")},
        data={"gender": "girl"}
    )

    assert response.status_code == 400
    assert "mother_image" in response.json()["error"]


@pytest.mark.asyncio
async def test_timeout_maps_to_504_without_provider_detail(client, pipeline_config):
    install_service(ScriptedProvider({"restore": processing(1)}), pipeline_config)

    response = await client.post("/api/v1/codeformer", json={"image_url": "https://cdn.test/a1.png"})

    assert response.status_code == 504
    data = response.json()
    assert data["kind"] == "timeout"
    assert data["stage"] == "restoration"
    assert data["run_id"]
    assert "provider.test" not in response.text


@pytest.mark.asyncio
async def test_provider_failure_maps_to_502(client, pipeline_config):
    install_service(ScriptedProvider({"style": [failed("NSFW content detected")]}), pipeline_config)

    response = await client.post("/api/v1/flux", json={"image_url": "https://cdn.test/a2.png"})

    assert response.status_code == 502
    data = response.json()
    assert data["kind"] == "provider_failure"
    assert data["stage"] == "stylization"
    assert "NSFW" not in response.text


@pytest.mark.asyncio
async def test_codeformer_rejects_missing_url(client, pipeline_config):
    provider = ScriptedProvider({})
    install_service(provider, pipeline_config)

    response = await client.post("/api/v1/codeformer", json={})

    assert response.status_code == 400
    assert provider.submissions == []


@pytest.mark.asyncio
async def test_full_pipeline_endpoint(client, pipeline_config, png_bytes):
    provider = ScriptedProvider({
        "synth": processing(1) + [succeeded("https://cdn.test/a1.png")],
        "restore": [succeeded("https://cdn.test/a2.png")],
        "style": processing(2) + [succeeded("https://cdn.test/a3.png")],
    })
    install_service(provider, pipeline_config)

    response = await client.post("/api/v1/pipeline", files=parent_files(png_bytes), data={"gender": "girl"})

    assert response.status_code == 200
    data = response.json()
    assert data["output"] == "https://cdn.test/a3.png"
    assert [s["stage"] for s in data["stages"]] == ["synthesis", "restoration", "stylization"]
    assert provider.submissions[1][1]["image"] == "https://cdn.test/a1.png"
    assert provider.submissions[2][1]["input_image"] == "https://cdn.test/a2.png"


@pytest.mark.asyncio
async def test_legacy_routes_still_served(client, pipeline_config):
    install_service(ScriptedProvider({"restore": [succeeded("https://cdn.test/a2.png")]}), pipeline_config)

    response = await client.post("/api/codeformer", json={"image_url": "https://cdn.test/a1.png"})

    assert response.status_code == 200
    assert response.json()["output"] == "https://cdn.test/a2.png"


@pytest.mark.asyncio
async def test_metrics_endpoint(client, pipeline_config):
    install_service(ScriptedProvider({"restore": [succeeded("https://cdn.test/a2.png")]}), pipeline_config)
    await client.post("/api/v1/codeformer", json={"image_url": "https://cdn.test/a1.png"})

    response = await client.get("/api/v1/metrics")

    assert response.status_code == 200
    assert "pipeline_runs_total" in response.text
    assert "pipeline_stage_latency_seconds" in response.text


@pytest.mark.asyncio
async def test_storage_failure_maps_to_502_with_generic_body(client, pipeline_config, png_bytes):
    provider = ScriptedProvider({})
    storage = install_service(provider, pipeline_config)
    storage.upload.side_effect = UploadError(
        "Cloudinary upload failed: Invalid Signature for api_key k-secret-key", backend="cloudinary"
    )

    response = await client.post("/api/v1/pipeline", files=parent_files(png_bytes), data={"gender": "boy"})

    assert response.status_code == 502
    data = response.json()
    assert data["kind"] == "upload"
    assert data["error"] == "Failed to upload image"
    assert data["run_id"]
    assert "Invalid Signature" not in response.text
    assert "k-secret-key" not in response.text
    assert provider.submissions == []
