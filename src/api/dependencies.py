"""
FastAPI Dependencies for the Pipeline Service

Provides dependency injection for:
- ProviderClient (singleton, immutable config)
- PipelineConfig (singleton, built from settings)
- ChildPipelineService (per-request, cheap to build)
- A cancellation event that fires when the HTTP client disconnects
"""

import asyncio
from typing import AsyncGenerator, Optional

from fastapi import Depends, Request

from src.core.config import settings
from src.core.logging import get_logger
from src.core.storage import get_storage, IStorage
from src.pipeline.config import PipelineConfig, build_pipeline_config
from src.pipeline.controller import PipelineController
from src.pipeline.provider import ProviderClient, ProviderConfig
from src.pipeline.runner import StageRunner
from src.pipeline.service import ChildPipelineService

logger = get_logger(__name__)

DISCONNECT_CHECK_INTERVAL_SECONDS = 1.0


# =============================================================================
# Global Singletons - configuration is read once per process
# =============================================================================

_provider_client: Optional[ProviderClient] = None
_pipeline_config: Optional[PipelineConfig] = None


def get_provider_client() -> ProviderClient:
    global _provider_client
    if _provider_client is None:
        _provider_client = ProviderClient(ProviderConfig.from_settings(settings))
    return _provider_client


def get_pipeline_config() -> PipelineConfig:
    global _pipeline_config
    if _pipeline_config is None:
        _pipeline_config = build_pipeline_config(settings)
    return _pipeline_config


def reset_singletons():
    """Drop cached singletons (useful for testing)."""
    global _provider_client, _pipeline_config
    _provider_client = None
    _pipeline_config = None


def get_pipeline_service(
    storage: IStorage = Depends(get_storage),
    client: ProviderClient = Depends(get_provider_client),
    pipeline_config: PipelineConfig = Depends(get_pipeline_config)
) -> ChildPipelineService:
    controller = PipelineController(StageRunner(client))
    return ChildPipelineService(
        controller=controller,
        storage=storage,
        pipeline_config=pipeline_config,
        max_image_size_bytes=settings.MAX_IMAGE_SIZE_BYTES
    )


# =============================================================================
# Client Disconnect -> Cancellation
# =============================================================================

async def _watch_disconnect(request: Request, event: asyncio.Event):
    while not event.is_set():
        if await request.is_disconnected():
            logger.info("client_disconnected", path=str(request.url.path))
            event.set()
            return
        await asyncio.sleep(DISCONNECT_CHECK_INTERVAL_SECONDS)


async def get_cancel_event(request: Request) -> AsyncGenerator[asyncio.Event, None]:
    """Yield an event that is set once the caller goes away."""
    event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, event))
    try:
        yield event
    finally:
        watcher.cancel()
