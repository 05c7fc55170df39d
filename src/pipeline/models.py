"""
Pipeline Domain Models

Stage configuration, provider job handles, stage results and the transient
per-request run record.
"""

import uuid
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobStatus(str, Enum):
    """Provider job status, normalized from provider labels."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


PROVIDER_STATUS_MAP = {
    "starting": JobStatus.PENDING,
    "queued": JobStatus.PENDING,
    "processing": JobStatus.PROCESSING,
    "succeeded": JobStatus.SUCCEEDED,
    "failed": JobStatus.FAILED,
    "canceled": JobStatus.FAILED,
    "cancelled": JobStatus.FAILED,
}


def normalize_status(label: Optional[str]) -> JobStatus:
    """Map a provider status label; unknown labels count as still processing."""
    return PROVIDER_STATUS_MAP.get((label or "").lower(), JobStatus.PROCESSING)


def select_output(output: Any) -> Optional[str]:
    """Pick the single artifact out of a provider output field.

    Lists yield their first element. Empty values yield None.
    """
    if isinstance(output, (list, tuple)):
        output = output[0] if output else None
    if output is None:
        return None
    value = str(output).strip()
    return value or None


class StageErrorKind(str, Enum):
    """Why a stage failed."""
    VALIDATION = "validation"
    SUBMISSION = "submission"
    PROVIDER_FAILURE = "provider_failure"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    UPLOAD = "upload"
    CANCELLED = "cancelled"


class InputMapping(BaseModel):
    """How a stage's dynamic input is merged into its job parameters.

    Exactly one of the two forms is set:
    - artifact_field: parameter that receives the previous stage's artifact
    - upload_fields: parameters filled from a caller-supplied mapping
    """
    model_config = ConfigDict(frozen=True)

    artifact_field: Optional[str] = None
    upload_fields: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def check_exclusive(self):
        if bool(self.artifact_field) == bool(self.upload_fields):
            raise ValueError("InputMapping needs exactly one of artifact_field or upload_fields")
        return self

    @property
    def required_fields(self) -> Tuple[str, ...]:
        if self.artifact_field:
            return (self.artifact_field,)
        return self.upload_fields


class StageConfig(BaseModel):
    """Immutable description of one pipeline stage."""
    model_config = ConfigDict(frozen=True)

    name: str
    provider_endpoint: str
    job_parameters: Dict[str, Any] = Field(default_factory=dict)
    input_mapping: InputMapping
    poll_interval: float = Field(4.0, gt=0)
    max_poll_attempts: int = Field(60, ge=1)

    @property
    def max_wait_seconds(self) -> float:
        return self.poll_interval * self.max_poll_attempts


class JobHandle(BaseModel):
    """Reference to a submitted provider job."""
    model_config = ConfigDict(frozen=True)

    job_id: Optional[str] = None
    status_url: str
    initial_status: str = "starting"


class StatusReport(BaseModel):
    """One status query result."""
    model_config = ConfigDict(frozen=True)

    raw_status: str
    output: Optional[str] = None
    detail: Optional[str] = None

    @property
    def status(self) -> JobStatus:
        status = normalize_status(self.raw_status)
        # Providers may flag success one poll before the output is attached
        if status == JobStatus.SUCCEEDED and not self.output:
            return JobStatus.PROCESSING
        return status


class Artifact(BaseModel):
    """Successful stage output: a single reference string, usually a URL."""
    model_config = ConfigDict(frozen=True)

    value: str
    stage: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


class StageError(BaseModel):
    """Failed stage outcome."""
    model_config = ConfigDict(frozen=True)

    kind: StageErrorKind
    stage: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


StageResult = Union[Artifact, StageError]


class RunState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class PipelineRun(BaseModel):
    """Transient record of one orchestration call. Never persisted."""

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    state: RunState = RunState.NOT_STARTED
    stage_index: Optional[int] = None
    stage_names: List[str] = Field(default_factory=list)
    results: List[StageResult] = Field(default_factory=list)
    outcome: Optional[StageResult] = None

    def start(self, stage_index: int):
        self.state = RunState.RUNNING
        self.stage_index = stage_index

    def record(self, result: StageResult):
        self.results.append(result)

    def succeed(self, artifact: Artifact):
        self.state = RunState.SUCCEEDED
        self.outcome = artifact

    def fail(self, error: StageError):
        self.state = RunState.FAILED
        self.outcome = error

    @property
    def artifacts(self) -> List[Artifact]:
        return [r for r in self.results if isinstance(r, Artifact)]

    @property
    def current_stage(self) -> Optional[str]:
        if self.stage_index is None or self.stage_index >= len(self.stage_names):
            return None
        return self.stage_names[self.stage_index]
