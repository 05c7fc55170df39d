"""
Stage Runner

Submit, then poll to completion, for a single stage.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional, Union

from src.core.exceptions import ValidationError
from src.core.logging import get_logger, LogContext
from src.pipeline.models import StageConfig, StageResult
from src.pipeline.poller import JobPoller
from src.pipeline.provider import ProviderClient

logger = get_logger(__name__)

DynamicInput = Union[str, Mapping[str, Any]]


def build_job_parameters(config: StageConfig, dynamic_input: DynamicInput) -> Dict[str, Any]:
    """
    Merge the dynamic input into a copy of the stage's fixed parameters.

    Artifact stages take a single string placed under artifact_field; upload
    stages take a mapping from which every upload field is copied.

    Raises:
        ValidationError: a mapped field is missing or empty
    """
    mapping = config.input_mapping
    parameters = dict(config.job_parameters)

    if mapping.artifact_field:
        if not isinstance(dynamic_input, str) or not dynamic_input.strip():
            raise ValidationError(
                f"Stage '{config.name}' requires a non-empty artifact for '{mapping.artifact_field}'",
                stage=config.name
            )
        parameters[mapping.artifact_field] = dynamic_input
        return parameters

    if not isinstance(dynamic_input, Mapping):
        raise ValidationError(
            f"Stage '{config.name}' requires the fields {', '.join(mapping.upload_fields)}",
            stage=config.name
        )

    missing = [field for field in mapping.upload_fields if dynamic_input.get(field) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing inputs for stage '{config.name}': {', '.join(missing)}",
            stage=config.name
        )

    for field in mapping.upload_fields:
        parameters[field] = dynamic_input[field]
    return parameters


class StageRunner:
    """Composes ProviderClient and JobPoller for one stage. Stateless."""

    def __init__(self, client: ProviderClient, poller: Optional[JobPoller] = None):
        self.client = client
        self.poller = poller or JobPoller(client)

    async def run(
        self,
        config: StageConfig,
        dynamic_input: DynamicInput,
        cancel_event: Optional[asyncio.Event] = None
    ) -> StageResult:
        """
        Run one stage to a terminal result.

        Raises:
            ValidationError: before any network call if inputs are incomplete
            SubmissionError: the provider did not accept the job
            StatusQueryError: a poll failed at the transport level
        """
        with LogContext(stage=config.name):
            parameters = build_job_parameters(config, dynamic_input)

            handle = await self.client.submit(config.provider_endpoint, parameters)

            with LogContext(job_id=handle.job_id):
                logger.info(
                    "stage_submitted",
                    poll_interval=config.poll_interval,
                    max_poll_attempts=config.max_poll_attempts
                )

                return await self.poller.poll_to_terminal(
                    handle,
                    poll_interval=config.poll_interval,
                    max_attempts=config.max_poll_attempts,
                    stage=config.name,
                    cancel_event=cancel_event
                )
