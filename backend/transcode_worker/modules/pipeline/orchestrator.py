"""Pipeline orchestrator.

Sequences locate, fetch, probe, transcode, publish and notify for one
storage event, turns the first failure into a tagged result and always
cleans up the run's temporary files.
"""

import logging
from typing import Any, Callable, Optional

from transcode_worker.core.logging import (
    clear_correlation_id,
    log_error,
    log_info,
    set_correlation_id,
)
from transcode_worker.modules.pipeline.cleanup import cleanup_run
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.errors import PipelineError
from transcode_worker.modules.pipeline.fetcher import ContentFetcher
from transcode_worker.modules.pipeline.locator import SourceLocator
from transcode_worker.modules.pipeline.models import (
    ErrorKind,
    PipelineStage,
    RunContext,
    SourceRef,
    new_correlation_id,
)
from transcode_worker.modules.pipeline.notifier import Notifier, build_payload
from transcode_worker.modules.pipeline.prober import Prober
from transcode_worker.modules.pipeline.publisher import Publisher
from transcode_worker.modules.pipeline.schemas import PipelineResult
from transcode_worker.modules.pipeline.state import PipelineStateMachine
from transcode_worker.modules.pipeline.transcoder import Transcoder, reported_duration

logger = logging.getLogger(__name__)

STATUS_OK = 200
STATUS_REJECTED = 400
STATUS_FAILED = 500


class PipelineOrchestrator:
    """Runs one pipeline per storage event."""

    def __init__(
        self,
        config: PipelineConfig,
        locator: SourceLocator,
        fetcher: ContentFetcher,
        prober: Prober,
        transcoder: Transcoder,
        publisher: Publisher,
        notifier: Notifier,
        cleanup: Callable[[RunContext], Any] = cleanup_run,
    ):
        self.config = config
        self.locator = locator
        self.fetcher = fetcher
        self.prober = prober
        self.transcoder = transcoder
        self.publisher = publisher
        self.notifier = notifier
        self.cleanup = cleanup

    async def run(self, event: dict[str, Any], correlation_id: Optional[str] = None) -> PipelineResult:
        """Process one storage event to a terminal result.

        Never raises for pipeline failures; they are reported in the result.
        """
        correlation_id = correlation_id or new_correlation_id()
        set_correlation_id(correlation_id)
        machine = PipelineStateMachine()
        ctx: Optional[RunContext] = None
        source: Optional[SourceRef] = None
        stage = PipelineStage.LOCATE

        try:
            source = self.locator.locate(event)
            self._advance(machine, stage)

            stage = PipelineStage.FETCH
            ctx = RunContext.create(source, self.config.work_dir, correlation_id)
            fetched = await self.fetcher.fetch(ctx)
            self._advance(machine, stage)

            stage = PipelineStage.PROBE
            probe = await self.prober.probe(fetched.input_ref)
            self._advance(machine, stage)

            stage = PipelineStage.TRANSCODE
            outcome = await self.transcoder.transcode(ctx, fetched, probe)
            self._advance(machine, stage)

            stage = PipelineStage.PUBLISH
            published = await self.publisher.publish(ctx, outcome)
            self._advance(machine, stage)

            stage = PipelineStage.NOTIFY
            payload = build_payload(
                self.config, source, published, reported_duration(probe, self.config)
            )
            await self.notifier.notify(payload)
            self._advance(machine, stage)

            log_info(logger, "Pipeline completed", key=source.key, clipped=outcome.clipped)
            return PipelineResult(
                status_code=STATUS_OK,
                state=machine.state,
                message="Renditions published and metadata service notified",
                correlation_id=correlation_id,
                source_key=source.key,
                payload=payload.to_body(),
            )
        except PipelineError as e:
            return self._failed(machine, stage, e.kind, e, source, correlation_id)
        except Exception as e:
            return self._failed(machine, stage, ErrorKind.INTERNAL, e, source, correlation_id)
        finally:
            if ctx is not None:
                self.cleanup(ctx)
            clear_correlation_id()

    def _advance(self, machine: PipelineStateMachine, stage: PipelineStage) -> None:
        state = machine.advance(stage)
        log_info(logger, "Stage completed", stage=stage.value, state=state.value)

    def _failed(
        self,
        machine: PipelineStateMachine,
        stage: PipelineStage,
        kind: ErrorKind,
        error: Exception,
        source: Optional[SourceRef],
        correlation_id: str,
    ) -> PipelineResult:
        machine.fail(kind, stage)
        is_pipeline_error = isinstance(error, PipelineError)
        rendition = error.rendition if is_pipeline_error else None
        detail = error.detail if is_pipeline_error else None
        message = error.message if is_pipeline_error else f"Unexpected error: {error}"

        log_error(
            logger,
            f"Pipeline failed at {stage.value}: {message}",
            exception=None if is_pipeline_error else error,
            stage=stage.value,
            error_kind=kind.value,
            rendition=rendition,
            diagnostic=detail,
        )

        return PipelineResult(
            status_code=STATUS_REJECTED if kind == ErrorKind.INVALID_SOURCE else STATUS_FAILED,
            state=machine.state,
            message=message,
            correlation_id=correlation_id,
            error_kind=kind,
            failed_stage=stage,
            rendition=rendition,
            detail=detail,
            retryable=error.retryable if is_pipeline_error else True,
            source_key=source.key if source else None,
        )
