"""
Inference Provider Client

Thin async client for a Replicate-style prediction API:
- POST a job (model version + input map) and get back a status URL
- GET the status URL for {status, output, error}

No retries at this layer; every failure raises immediately.
"""

from typing import Optional, Dict, Any, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, SecretStr

from src.core.config import Settings
from src.core.exceptions import SubmissionError, StatusQueryError
from src.core.logging import get_logger
from src.core.metrics import record_provider_call
from src.pipeline.models import JobHandle, StatusReport, select_output

logger = get_logger(__name__)


class ProviderConfig(BaseModel):
    """Immutable provider connection settings, shared read-only by all runs."""
    model_config = ConfigDict(frozen=True)

    api_url: str = "https://api.replicate.com/v1"
    api_token: Optional[SecretStr] = None
    timeout: float = 60.0

    @classmethod
    def from_settings(cls, config: Settings) -> "ProviderConfig":
        return cls(
            api_url=config.REPLICATE_API_URL.rstrip("/"),
            api_token=config.REPLICATE_API_TOKEN,
            timeout=config.PROVIDER_HTTP_TIMEOUT_SECONDS
        )


def resolve_endpoint(api_url: str, endpoint_identity: str) -> Tuple[str, Optional[str]]:
    """
    Map a model identity to (submit URL, version).

    - "<hash>"               -> POST /predictions with version=<hash>
    - "owner/model:<hash>"   -> POST /predictions with version=<hash>
    - "owner/model"          -> POST /models/owner/model/predictions (latest version)
    """
    if ":" in endpoint_identity:
        return f"{api_url}/predictions", endpoint_identity.split(":", 1)[1]
    if "/" in endpoint_identity:
        return f"{api_url}/models/{endpoint_identity}/predictions", None
    return f"{api_url}/predictions", endpoint_identity


class ProviderClient:
    """Submits jobs to the inference provider and queries their status."""

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token.get_secret_value()}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport)

    async def submit(self, endpoint_identity: str, parameters: Dict[str, Any]) -> JobHandle:
        """
        Submit one job.

        Args:
            endpoint_identity: Model version hash or "owner/model[:version]"
            parameters: Fully resolved model input

        Returns:
            JobHandle with the status URL and initial status label

        Raises:
            SubmissionError: transport failure, non-2xx status or malformed response
        """
        url, version = resolve_endpoint(self.config.api_url, endpoint_identity)
        payload: Dict[str, Any] = {"input": parameters}
        if version:
            payload["version"] = version

        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            record_provider_call("submit", "error")
            raise SubmissionError(f"Provider unreachable at submit: {e}") from e

        if not response.is_success:
            record_provider_call("submit", "error", response.status_code)
            raise SubmissionError(
                f"Provider rejected job ({response.status_code}): {response.text}",
                http_status=response.status_code
            )

        try:
            data = response.json()
            status_url = data["urls"]["get"]
        except (ValueError, KeyError, TypeError) as e:
            record_provider_call("submit", "error", response.status_code)
            raise SubmissionError(
                "Provider response missing status reference",
                http_status=response.status_code
            ) from e

        if not status_url:
            record_provider_call("submit", "error", response.status_code)
            raise SubmissionError("Provider response missing status reference", http_status=response.status_code)

        record_provider_call("submit", "success", response.status_code)
        handle = JobHandle(
            job_id=data.get("id"),
            status_url=status_url,
            initial_status=data.get("status") or "starting"
        )
        logger.info("job_submitted", job_id=handle.job_id, initial_status=handle.initial_status)

        return handle

    async def get_status(self, handle: JobHandle) -> StatusReport:
        """
        Query the current state of a submitted job.

        Raises:
            StatusQueryError: transport failure, non-2xx status or malformed response
        """
        try:
            async with self._client() as client:
                response = await client.get(handle.status_url, headers=self._headers())
        except httpx.HTTPError as e:
            record_provider_call("status", "error")
            raise StatusQueryError(f"Status query failed for job {handle.job_id}: {e}") from e

        if not response.is_success:
            record_provider_call("status", "error", response.status_code)
            raise StatusQueryError(
                f"Status query rejected ({response.status_code}): {response.text}",
                http_status=response.status_code
            )

        try:
            data = response.json()
            raw_status = data["status"]
        except (ValueError, KeyError, TypeError) as e:
            record_provider_call("status", "error", response.status_code)
            raise StatusQueryError("Status response missing status field", http_status=response.status_code) from e

        record_provider_call("status", "success", response.status_code)

        error = data.get("error")
        return StatusReport(
            raw_status=str(raw_status),
            output=select_output(data.get("output")),
            detail=str(error) if error else None
        )
