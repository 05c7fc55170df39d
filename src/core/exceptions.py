"""
Global Exception Handling

Provides the error taxonomy of the pipeline and structured error responses.
Callers only ever see a stage identity and an error kind; provider detail
(status URLs, response bodies) stays in the logs.
"""

from typing import Optional, Dict, Any
from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.core.logging import get_logger, run_id_var

logger = get_logger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class ChildGenBaseException(Exception):
    """Base exception for the child face pipeline."""

    kind = "internal"
    public_message = "Internal server error"

    def __init__(
        self,
        message: str,
        code: int = 500,
        run_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.run_id = run_id or run_id_var.get()
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ChildGenBaseException):
    """Raised when required input is missing or malformed before submission."""

    kind = "validation"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=400, **kwargs)

    @property
    def public_message(self) -> str:
        # Validation messages describe the caller's own input
        return self.message


class UploadError(ChildGenBaseException):
    """Raised when the blob store rejects or cannot receive an upload."""

    kind = "upload"
    public_message = "Failed to upload image"

    def __init__(self, message: str, backend: Optional[str] = None, **kwargs):
        super().__init__(message, code=502, **kwargs)
        self.details["backend"] = backend


class ProviderError(ChildGenBaseException):
    """Raised when a call to the inference provider fails."""

    kind = "provider"
    public_message = "Inference provider request failed"

    def __init__(self, message: str, http_status: Optional[int] = None, **kwargs):
        super().__init__(message, code=502, **kwargs)
        self.http_status = http_status
        self.details["http_status"] = http_status


class SubmissionError(ProviderError):
    """Provider rejected the job or was unreachable at submit time."""

    kind = "submission"
    public_message = "Failed to submit job to inference provider"


class StatusQueryError(ProviderError):
    """Transport or protocol failure while polling a submitted job."""

    kind = "transport"
    public_message = "Lost contact with inference provider"


class StageFailedError(ChildGenBaseException):
    """Raised at the HTTP boundary when a pipeline run ends in a StageError."""

    STATUS_CODES = {
        "timeout": 504,
        "cancelled": 499,
        "validation": 400,
    }

    def __init__(self, message: str, kind: str, stage: str, **kwargs):
        super().__init__(
            message,
            code=self.STATUS_CODES.get(kind, 502),
            stage=stage,
            **kwargs
        )
        self.kind = kind

    @property
    def public_message(self) -> str:
        return f"Pipeline failed at stage '{self.stage}'"


# =============================================================================
# Exception Handlers
# =============================================================================

def error_body(exc: ChildGenBaseException) -> Dict[str, Any]:
    """Build the public error body for an exception."""
    return {
        "error": exc.public_message,
        "kind": exc.kind,
        "stage": exc.stage,
        "run_id": exc.run_id or run_id_var.get(),
        "code": exc.code,
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }


def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(ChildGenBaseException)
    async def pipeline_exception_handler(request: Request, exc: ChildGenBaseException):
        logger.error(
            "pipeline_exception",
            error=exc.message,
            kind=exc.kind,
            code=exc.code,
            stage=exc.stage,
            details=exc.details,
            path=str(request.url.path)
        )

        return JSONResponse(
            status_code=exc.code,
            content=error_body(exc)
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path)
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "kind": "internal",
                "stage": None,
                "run_id": run_id_var.get(),
                "code": 500,
                "timestamp": datetime.utcnow().isoformat() + "Z"
            }
        )
