"""
Pipeline Configuration

Declarative description of the three stages:
1. synthesis    - custom child-face model (father + mother + gender)
2. restoration  - CodeFormer face restoration
3. stylization  - FLUX Kontext child-look edit
"""

from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict

from src.core.config import settings, Settings
from src.pipeline.models import StageConfig, InputMapping

SYNTHESIS = "synthesis"
RESTORATION = "restoration"
STYLIZATION = "stylization"

SYNTHESIS_UPLOAD_FIELDS = ("father_image", "mother_image", "gender")


class PipelineConfig(BaseModel):
    """Ordered, immutable stage list."""
    model_config = ConfigDict(frozen=True)

    stages: Tuple[StageConfig, ...]

    def stage(self, name: str) -> StageConfig:
        for config in self.stages:
            if config.name == name:
                return config
        raise KeyError(f"Unknown stage: {name}")

    @property
    def by_name(self) -> Dict[str, StageConfig]:
        return {config.name: config for config in self.stages}


def build_pipeline_config(config: Settings = settings) -> PipelineConfig:
    """Build the three-stage pipeline from application settings."""
    synthesis = StageConfig(
        name=SYNTHESIS,
        provider_endpoint=config.SYNTHESIS_MODEL,
        job_parameters={},
        input_mapping=InputMapping(upload_fields=SYNTHESIS_UPLOAD_FIELDS),
        poll_interval=config.POLL_INTERVAL_SECONDS,
        max_poll_attempts=config.SYNTHESIS_MAX_POLL_ATTEMPTS,
    )

    restoration = StageConfig(
        name=RESTORATION,
        provider_endpoint=config.RESTORATION_MODEL,
        job_parameters={
            "upscale": config.RESTORATION_UPSCALE,
            "face_upsample": True,
            "background_enhance": True,
            "codeformer_fidelity": config.RESTORATION_FIDELITY,
        },
        input_mapping=InputMapping(artifact_field="image"),
        poll_interval=config.POLL_INTERVAL_SECONDS,
        max_poll_attempts=config.RESTORATION_MAX_POLL_ATTEMPTS,
    )

    stylization = StageConfig(
        name=STYLIZATION,
        provider_endpoint=config.STYLIZATION_MODEL,
        job_parameters={
            "prompt": config.STYLIZATION_PROMPT,
            "aspect_ratio": "1:1",
            "output_format": "png",
            "safety_tolerance": 2,
            "prompt_upsampling": True,
            "seed": config.STYLIZATION_SEED,
        },
        input_mapping=InputMapping(artifact_field="input_image"),
        poll_interval=config.POLL_INTERVAL_SECONDS,
        max_poll_attempts=config.STYLIZATION_MAX_POLL_ATTEMPTS,
    )

    return PipelineConfig(stages=(synthesis, restoration, stylization))
