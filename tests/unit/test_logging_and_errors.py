import pytest

from src.core.exceptions import (
    StageFailedError,
    SubmissionError,
    UploadError,
    ValidationError,
    error_body,
)
from src.core.logging import (
    LogContext,
    add_pipeline_context,
    job_id_var,
    run_id_var,
    scrub_sensitive_fields,
    stage_index_var,
    stage_var,
)


def test_log_context_nests_and_restores():
    with LogContext(run_id="run-1"):
        with LogContext(stage="restoration", stage_index=1):
            with LogContext(job_id="pred-9"):
                event = add_pipeline_context(None, "info", {"event": "stage_submitted"})
            assert job_id_var.get() is None
        assert stage_var.get() is None
        assert run_id_var.get() == "run-1"
    assert run_id_var.get() is None

    assert event == {
        "event": "stage_submitted",
        "run_id": "run-1",
        "stage": "restoration",
        "stage_index": 1,
        "job_id": "pred-9",
    }


def test_first_stage_index_is_bound():
    with LogContext(stage_index=0):
        assert stage_index_var.get() == 0
        assert add_pipeline_context(None, "info", {})["stage_index"] == 0


def test_explicit_event_fields_win_over_context():
    with LogContext(run_id="run-1", stage="synthesis"):
        event = add_pipeline_context(None, "info", {"event": "stage_started", "stage": "restoration"})

    assert event["stage"] == "restoration"
    assert event["run_id"] == "run-1"


def test_unknown_coordinate_is_rejected():
    with pytest.raises(TypeError):
        LogContext(request_id="abc")


def test_status_urls_and_credentials_are_scrubbed_from_routine_events():
    event = {"event": "job_submitted", "status_url": "https://api.replicate.test/v1/predictions/p1", "api_token": "r8"}

    assert scrub_sensitive_fields(None, "info", dict(event)) == {"event": "job_submitted"}
    assert scrub_sensitive_fields(None, "error", dict(event)) == event


def test_errors_pick_up_current_run_id():
    with LogContext(run_id="run-3"):
        error = SubmissionError("401 from https://api.replicate.test/v1/predictions", http_status=401)

    assert error.run_id == "run-3"
    assert error.code == 502


def test_stage_failure_codes_by_kind():
    assert StageFailedError("x", kind="timeout", stage="synthesis").code == 504
    assert StageFailedError("x", kind="cancelled", stage="synthesis").code == 499
    assert StageFailedError("x", kind="validation", stage="synthesis").code == 400
    assert StageFailedError("x", kind="provider_failure", stage="synthesis").code == 502
    assert StageFailedError("x", kind="transport", stage="synthesis").code == 502


def test_error_body_hides_internal_detail():
    body = error_body(StageFailedError(
        "CUDA out of memory at https://api.replicate.test/v1/predictions/p1",
        kind="provider_failure",
        stage="restoration",
        run_id="run-4"
    ))

    assert body["error"] == "Pipeline failed at stage 'restoration'"
    assert body["kind"] == "provider_failure"
    assert body["run_id"] == "run-4"
    assert "replicate" not in str(body)
    assert "CUDA" not in str(body)


def test_validation_and_upload_bodies():
    assert error_body(ValidationError("gender must be one of: boy, girl"))["error"] == "gender must be one of: boy, girl"

    upload = error_body(UploadError("disk full at /var/data", backend="local"))
    assert upload["kind"] == "upload"
    assert "/var/data" not in upload["error"]
