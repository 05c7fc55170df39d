import io
import os
import tempfile
from typing import AsyncGenerator

os.environ.setdefault("LOCAL_STORAGE_PATH", tempfile.mkdtemp(prefix="child-pipeline-storage-"))
os.environ.setdefault("LOG_FORMAT_JSON", "false")

import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image

from src.api.dependencies import reset_singletons
from src.core.config import Settings
from src.core.storage import StorageFactory
from src.main import app
from src.pipeline.config import build_pipeline_config
from tests.fakes import FakeSleep


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def test_settings():
    return Settings(
        SYNTHESIS_MODEL="synth",
        RESTORATION_MODEL="restore",
        STYLIZATION_MODEL="style",
        POLL_INTERVAL_SECONDS=4.0,
        SYNTHESIS_MAX_POLL_ATTEMPTS=75,
        RESTORATION_MAX_POLL_ATTEMPTS=60,
        STYLIZATION_MAX_POLL_ATTEMPTS=60,
    )


@pytest.fixture
def pipeline_config(test_settings):
    return build_pipeline_config(test_settings)


@pytest.fixture
def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color=(200, 120, 80)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    # Trigger lifespan events (startup/shutdown)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()
    reset_singletons()
    StorageFactory.reset()
