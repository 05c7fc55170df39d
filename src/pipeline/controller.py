"""
Pipeline Controller

Runs an ordered list of stages strictly in sequence. Stage i+1 receives the
artifact value produced by stage i, untouched. The first StageError ends the
run; jobs already submitted to the provider are left alone and nothing is
retried.

    NOT_STARTED -> RUNNING(i) -> SUCCEEDED | FAILED
"""

import asyncio
from datetime import datetime
from typing import Optional, Sequence

from src.core.exceptions import ValidationError, SubmissionError, StatusQueryError
from src.core.logging import get_logger, LogContext
from src.core.metrics import (
    track_stage_latency,
    track_active_run,
    record_run_completion,
)
from src.pipeline.models import (
    PipelineRun,
    StageConfig,
    StageError,
    StageErrorKind,
    StageResult,
)
from src.pipeline.runner import StageRunner, DynamicInput

logger = get_logger(__name__)


class PipelineController:
    """Sequential multi-stage orchestrator."""

    def __init__(self, runner: StageRunner):
        self.runner = runner

    async def _run_stage(
        self,
        config: StageConfig,
        dynamic_input: DynamicInput,
        cancel_event: Optional[asyncio.Event]
    ) -> StageResult:
        """Run one stage, folding collaborator exceptions into a StageError."""
        with track_stage_latency(config.name) as timing:
            try:
                result = await self.runner.run(config, dynamic_input, cancel_event=cancel_event)
            except ValidationError as e:
                result = StageError(kind=StageErrorKind.VALIDATION, stage=config.name, detail=e.message)
            except SubmissionError as e:
                result = StageError(kind=StageErrorKind.SUBMISSION, stage=config.name, detail=e.message)
            except StatusQueryError as e:
                result = StageError(kind=StageErrorKind.TRANSPORT, stage=config.name, detail=e.message)

            if isinstance(result, StageError):
                timing["status"] = result.kind.value
            return result

    async def execute_run(
        self,
        stage_configs: Sequence[StageConfig],
        initial_input: DynamicInput,
        cancel_event: Optional[asyncio.Event] = None,
        run: Optional[PipelineRun] = None
    ) -> PipelineRun:
        """
        Execute all stages and return the full run record.

        Args:
            stage_configs: Ordered stage list (at least one)
            initial_input: Dynamic input of the first stage
            cancel_event: Optional signal that stops polling between attempts
            run: Pre-created run record (lets callers pick the run_id)
        """
        if not stage_configs:
            raise ValueError("PipelineController needs at least one stage")

        run = run or PipelineRun()
        run.stage_names = [config.name for config in stage_configs]
        start_time = datetime.utcnow()

        with track_active_run(), LogContext(run_id=run.run_id):
            logger.info("pipeline_started", stages=run.stage_names)

            dynamic_input = initial_input
            for index, config in enumerate(stage_configs):
                run.start(index)

                with LogContext(stage=config.name, stage_index=index):
                    logger.info("stage_started")
                    try:
                        result = await self._run_stage(config, dynamic_input, cancel_event)
                    except Exception as e:
                        logger.exception("pipeline_crashed", error=str(e))
                        record_run_completion("error", failure_stage=config.name, kind="internal")
                        raise
                    run.record(result)

                    if isinstance(result, StageError):
                        run.fail(result)
                        duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
                        logger.error(
                            "pipeline_failed",
                            kind=result.kind.value,
                            detail=result.detail,
                            duration_ms=duration_ms
                        )
                        record_run_completion("failed", failure_stage=config.name, kind=result.kind.value)
                        return run

                    logger.info("stage_succeeded")
                dynamic_input = result.value

            run.succeed(result)
            duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
            logger.info("pipeline_succeeded", duration_ms=duration_ms)
            record_run_completion("completed")

        return run

    async def execute(
        self,
        stage_configs: Sequence[StageConfig],
        initial_input: DynamicInput,
        cancel_event: Optional[asyncio.Event] = None
    ) -> StageResult:
        """Execute all stages and return the final Artifact or the first StageError."""
        run = await self.execute_run(stage_configs, initial_input, cancel_event=cancel_event)
        return run.outcome
