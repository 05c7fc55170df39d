"""
Pipeline Endpoints

POST /api/v1/child       - parent photos + gender -> synthesized face
POST /api/v1/codeformer  - image URL -> restored face
POST /api/v1/flux        - image URL -> stylized face
POST /api/v1/pipeline    - parent photos + gender -> final image (all stages)

Each call blocks until its stages finish; the response carries the artifact
URL. Failures come back as {"error", "kind", "stage", "run_id"} without any
provider detail.
"""

import asyncio
from typing import Optional, List

from fastapi import APIRouter, Depends, UploadFile, File, Form
from pydantic import BaseModel, Field

from src.api.dependencies import get_pipeline_service, get_cancel_event
from src.core.exceptions import StageFailedError
from src.core.logging import get_logger
from src.pipeline.models import Artifact, PipelineRun, StageError
from src.pipeline.service import ChildPipelineService

logger = get_logger(__name__)
router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ImageUrlRequest(BaseModel):
    """Request carrying the artifact of a previous stage."""
    image_url: Optional[str] = Field(None, description="Public URL of the input image")


class StageOutput(BaseModel):
    stage: str
    output: str


class StageResponse(BaseModel):
    """Response of a single-stage endpoint."""
    output: str
    stage: str
    run_id: str


class PipelineResponse(BaseModel):
    """Response of the full pipeline endpoint."""
    output: str
    run_id: str
    stages: List[StageOutput]


def artifact_or_raise(run: PipelineRun) -> Artifact:
    """Return the run's artifact or raise the public error for its StageError."""
    outcome = run.outcome
    if isinstance(outcome, StageError):
        raise StageFailedError(
            outcome.detail or outcome.kind.value,
            kind=outcome.kind.value,
            stage=outcome.stage,
            run_id=run.run_id
        )
    return outcome


async def _read(upload: Optional[UploadFile]) -> Optional[bytes]:
    if upload is None:
        return None
    return await upload.read()


def _stage_response(run: PipelineRun) -> StageResponse:
    artifact = artifact_or_raise(run)
    return StageResponse(output=artifact.value, stage=artifact.stage, run_id=run.run_id)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/child", response_model=StageResponse)
async def generate_child(
    father_image: Optional[UploadFile] = File(None),
    mother_image: Optional[UploadFile] = File(None),
    gender: Optional[str] = Form(None),
    service: ChildPipelineService = Depends(get_pipeline_service),
    cancel_event: asyncio.Event = Depends(get_cancel_event)
):
    """Upload both parent photos and run the synthesis stage."""
    run = await service.run_stage_1(
        await _read(father_image),
        await _read(mother_image),
        gender,
        cancel_event=cancel_event
    )
    return _stage_response(run)


@router.post("/codeformer", response_model=StageResponse)
async def restore_face(
    request: ImageUrlRequest,
    service: ChildPipelineService = Depends(get_pipeline_service),
    cancel_event: asyncio.Event = Depends(get_cancel_event)
):
    """Run face restoration on the synthesized image."""
    run = await service.run_stage_2(request.image_url, cancel_event=cancel_event)
    return _stage_response(run)


@router.post("/flux", response_model=StageResponse)
async def stylize_face(
    request: ImageUrlRequest,
    service: ChildPipelineService = Depends(get_pipeline_service),
    cancel_event: asyncio.Event = Depends(get_cancel_event)
):
    """Run the child-look stylization on the restored image."""
    run = await service.run_stage_3(request.image_url, cancel_event=cancel_event)
    return _stage_response(run)


@router.post("/pipeline", response_model=PipelineResponse)
async def run_pipeline(
    father_image: Optional[UploadFile] = File(None),
    mother_image: Optional[UploadFile] = File(None),
    gender: Optional[str] = Form(None),
    service: ChildPipelineService = Depends(get_pipeline_service),
    cancel_event: asyncio.Event = Depends(get_cancel_event)
):
    """Run synthesis, restoration and stylization in one call."""
    run = await service.run_full_pipeline(
        await _read(father_image),
        await _read(mother_image),
        gender,
        cancel_event=cancel_event
    )
    artifact = artifact_or_raise(run)

    return PipelineResponse(
        output=artifact.value,
        run_id=run.run_id,
        stages=[StageOutput(stage=a.stage, output=a.value) for a in run.artifacts]
    )
