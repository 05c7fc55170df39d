import pytest

from src.core.config import Settings, DEFAULT_STYLIZATION_PROMPT
from src.pipeline.config import (
    build_pipeline_config,
    SYNTHESIS,
    RESTORATION,
    STYLIZATION,
    SYNTHESIS_UPLOAD_FIELDS,
)


def test_stage_order_and_budgets(pipeline_config):
    assert [stage.name for stage in pipeline_config.stages] == [SYNTHESIS, RESTORATION, STYLIZATION]
    assert [stage.max_poll_attempts for stage in pipeline_config.stages] == [75, 60, 60]
    assert all(stage.poll_interval == 4.0 for stage in pipeline_config.stages)
    assert pipeline_config.stage(SYNTHESIS).max_wait_seconds == 300.0


def test_input_mappings(pipeline_config):
    assert pipeline_config.stage(SYNTHESIS).input_mapping.upload_fields == SYNTHESIS_UPLOAD_FIELDS
    assert pipeline_config.stage(RESTORATION).input_mapping.artifact_field == "image"
    assert pipeline_config.stage(STYLIZATION).input_mapping.artifact_field == "input_image"


def test_stylization_parameters(pipeline_config):
    params = pipeline_config.stage(STYLIZATION).job_parameters

    assert params["prompt"] == DEFAULT_STYLIZATION_PROMPT
    assert params["aspect_ratio"] == "1:1"
    assert params["output_format"] == "png"
    assert params["seed"] == 42


def test_endpoints_and_parameters_follow_settings():
    config = build_pipeline_config(Settings(
        RESTORATION_MODEL="sczhou/codeformer:abc",
        RESTORATION_UPSCALE=4,
        STYLIZATION_SEED=7,
        POLL_INTERVAL_SECONDS=1.5,
    ))

    restoration = config.stage(RESTORATION)
    assert restoration.provider_endpoint == "sczhou/codeformer:abc"
    assert restoration.job_parameters["upscale"] == 4
    assert restoration.poll_interval == 1.5
    assert config.by_name[STYLIZATION].job_parameters["seed"] == 7


def test_unknown_stage_lookup(pipeline_config):
    with pytest.raises(KeyError):
        pipeline_config.stage("upscaling")
