"""Celery tasks running the pipeline for storage events.

A failed run is redelivered with exponential backoff unless its failure
cannot succeed on retry (an invalid source).
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

from celery import Task

from transcode_worker.core.celery_app import celery_app
from transcode_worker.core.config import Settings, get_settings
from transcode_worker.core.logging import log_error, log_warning
from transcode_worker.modules.pipeline.schemas import PipelineResult
from transcode_worker.modules.pipeline.service import run_pipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff for redelivering a failed run."""
    max_attempts: int = 3
    initial_delay: float = 10.0
    max_delay: float = 120.0
    backoff_multiplier: float = 2.0

    def calculate_delay(self, attempt: int) -> float:
        """Delay before the attempt after ``attempt`` (1-indexed), capped."""
        if attempt < 1:
            return self.initial_delay
        delay = self.initial_delay * math.pow(self.backoff_multiplier, attempt - 1)
        return min(delay, self.max_delay)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.TASK_MAX_ATTEMPTS,
            initial_delay=settings.TASK_RETRY_INITIAL_DELAY,
            max_delay=settings.TASK_RETRY_MAX_DELAY,
            backoff_multiplier=settings.TASK_RETRY_BACKOFF_MULTIPLIER,
        )


class PipelineRunFailed(Exception):
    """Carries a failed result through Celery's retry machinery."""

    def __init__(self, result: PipelineResult):
        self.result = result
        kind = result.error_kind.value if result.error_kind else "Unknown"
        super().__init__(f"{kind}: {result.message}")


class PipelineTask(Task):
    """Base task deciding whether a failed result is redelivered."""

    abstract = True
    # Attempts are bounded by RetryConfig, not by Celery's counter
    max_retries = None

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig.from_settings(get_settings())

    def should_retry(self, result: PipelineResult, attempt: int) -> bool:
        if result.succeeded or not result.retryable:
            return False
        return attempt < self.retry_config.max_attempts

    def retry_with_backoff(self, result: PipelineResult, attempt: int) -> None:
        """Schedule the next attempt.

        Raises:
            celery.exceptions.Retry: Always, to hand control back to Celery
        """
        delay = self.retry_config.calculate_delay(attempt)
        log_warning(
            logger,
            "Pipeline run will be retried",
            attempt=attempt,
            countdown=delay,
            error_kind=result.error_kind.value if result.error_kind else None,
        )
        raise self.retry(exc=PipelineRunFailed(result), countdown=delay)


@celery_app.task(bind=True, base=PipelineTask, name="pipeline.process_storage_event")
def process_storage_event(self: PipelineTask, event: dict[str, Any]) -> dict[str, Any]:
    """Run the pipeline for one storage event.

    Args:
        event: Storage notification with a single record

    Returns:
        Serialized PipelineResult of the final attempt
    """
    result = run_pipeline(event)
    attempt = self.request.retries + 1

    if self.should_retry(result, attempt):
        self.retry_with_backoff(result, attempt)

    if not result.succeeded:
        log_error(
            logger,
            "Pipeline run failed permanently",
            attempt=attempt,
            error_kind=result.error_kind.value if result.error_kind else None,
            source_key=result.source_key,
        )
    return result.model_dump(mode="json")
