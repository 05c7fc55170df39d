"""
Child Pipeline Service

Entry surface used by the HTTP layer:
- run_stage_1: parent photos + category -> synthesized face
- run_stage_2: image URL -> restored face
- run_stage_3: image URL -> stylized face
- run_full_pipeline: all three in sequence

Input validation and blob uploads happen here, before any provider job is
submitted. ValidationError and UploadError are raised; stage failures come
back as the run's StageError outcome.
"""

import io
import asyncio
from typing import Optional, Sequence
from urllib.parse import urlparse

from PIL import Image, UnidentifiedImageError

from src.core.exceptions import ValidationError
from src.core.logging import get_logger, LogContext
from src.core.storage import IStorage
from src.pipeline.config import (
    PipelineConfig,
    SYNTHESIS,
    RESTORATION,
    STYLIZATION,
)
from src.pipeline.controller import PipelineController
from src.pipeline.models import PipelineRun, StageConfig

logger = get_logger(__name__)

CATEGORIES = ("boy", "girl")


def validate_category(category: Optional[str]) -> str:
    value = (category or "").strip().lower()
    if value not in CATEGORIES:
        raise ValidationError(f"gender must be one of: {', '.join(CATEGORIES)}")
    return value


def validate_image(data: Optional[bytes], field: str, max_size_bytes: int) -> str:
    """
    Check that an uploaded file is a readable image within the size limit.

    Returns:
        The image's MIME type as detected by Pillow
    """
    if not data:
        raise ValidationError(f"{field} is required")

    if len(data) > max_size_bytes:
        raise ValidationError(
            f"{field} size ({len(data) / (1024 * 1024):.2f}MB) exceeds maximum allowed size "
            f"({max_size_bytes / (1024 * 1024):.0f}MB)"
        )

    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError(f"{field} is not a valid image") from e

    return Image.MIME.get(image_format, "application/octet-stream")


def validate_artifact_url(url: Optional[str]) -> str:
    value = (url or "").strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("image_url must be an absolute http(s) URL")
    return value


class ChildPipelineService:
    """Validates inputs, uploads parent photos and drives the controller."""

    def __init__(
        self,
        controller: PipelineController,
        storage: IStorage,
        pipeline_config: PipelineConfig,
        max_image_size_bytes: int = 10485760
    ):
        self.controller = controller
        self.storage = storage
        self.pipeline_config = pipeline_config
        self.max_image_size_bytes = max_image_size_bytes

    async def _upload_parents(self, father_image: bytes, mother_image: bytes, category: str) -> dict:
        category = validate_category(category)
        father_type = validate_image(father_image, "father_image", self.max_image_size_bytes)
        mother_type = validate_image(mother_image, "mother_image", self.max_image_size_bytes)

        father_url = await self.storage.upload(father_image, content_type=father_type, folder="parents")
        mother_url = await self.storage.upload(mother_image, content_type=mother_type, folder="parents")

        logger.info("parent_images_uploaded", backend=self.storage.backend_name, gender=category)

        return {
            "father_image": father_url,
            "mother_image": mother_url,
            "gender": category,
        }

    async def _execute(
        self,
        stages: Sequence[StageConfig],
        initial_input,
        cancel_event: Optional[asyncio.Event],
        run: Optional[PipelineRun] = None
    ) -> PipelineRun:
        return await self.controller.execute_run(
            stages,
            initial_input,
            cancel_event=cancel_event,
            run=run
        )

    async def run_stage_1(
        self,
        father_image: bytes,
        mother_image: bytes,
        category: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> PipelineRun:
        """Upload parent photos and run the synthesis stage."""
        run = PipelineRun()
        with LogContext(run_id=run.run_id):
            inputs = await self._upload_parents(father_image, mother_image, category)
        return await self._execute([self.pipeline_config.stage(SYNTHESIS)], inputs, cancel_event, run)

    async def run_stage_2(
        self,
        artifact_url: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> PipelineRun:
        """Run the restoration stage on an existing image URL."""
        artifact_url = validate_artifact_url(artifact_url)
        return await self._execute([self.pipeline_config.stage(RESTORATION)], artifact_url, cancel_event)

    async def run_stage_3(
        self,
        artifact_url: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> PipelineRun:
        """Run the stylization stage on an existing image URL."""
        artifact_url = validate_artifact_url(artifact_url)
        return await self._execute([self.pipeline_config.stage(STYLIZATION)], artifact_url, cancel_event)

    async def run_full_pipeline(
        self,
        father_image: bytes,
        mother_image: bytes,
        category: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> PipelineRun:
        """Upload parent photos and run synthesis, restoration and stylization."""
        run = PipelineRun()
        with LogContext(run_id=run.run_id):
            inputs = await self._upload_parents(father_image, mother_image, category)
        return await self._execute(self.pipeline_config.stages, inputs, cancel_event, run)
