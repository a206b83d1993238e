"""Pipeline failure taxonomy.

Each component translates its lower-level errors (storage, subprocess,
HTTP) into exactly one of these at its boundary. All of them end the run.
"""

from typing import Optional

from transcode_worker.modules.pipeline.models import ErrorKind, PipelineStage


class PipelineError(Exception):
    """Base class for taxonomy-tagged pipeline failures."""

    kind: ErrorKind = ErrorKind.INTERNAL
    stage: Optional[PipelineStage] = None
    # Whether redelivering the same event could succeed
    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        rendition: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.rendition = rendition
        self.detail = detail

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "stage": self.stage.value if self.stage else None,
            "rendition": self.rendition,
            "message": self.message,
            "detail": self.detail,
        }

    def __str__(self) -> str:
        if self.rendition:
            return f"{self.kind.value}[{self.rendition}]: {self.message}"
        return f"{self.kind.value}: {self.message}"


class InvalidSourceError(PipelineError):
    """The event does not name a processable object under the input prefix."""
    kind = ErrorKind.INVALID_SOURCE
    stage = PipelineStage.LOCATE
    retryable = False


class FetchFailedError(PipelineError):
    kind = ErrorKind.FETCH_FAILED
    stage = PipelineStage.FETCH


class TranscodeFailedError(PipelineError):
    kind = ErrorKind.TRANSCODE_FAILED
    stage = PipelineStage.TRANSCODE


class PublishFailedError(PipelineError):
    kind = ErrorKind.PUBLISH_FAILED
    stage = PipelineStage.PUBLISH


class PublishTimeoutError(PipelineError):
    """Remote job outputs did not appear within the polling budget."""
    kind = ErrorKind.PUBLISH_TIMEOUT
    stage = PipelineStage.PUBLISH


class NotifyFailedError(PipelineError):
    kind = ErrorKind.NOTIFY_FAILED
    stage = PipelineStage.NOTIFY
