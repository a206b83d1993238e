"""Pydantic schemas for pipeline events, notifications and results."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from transcode_worker.modules.pipeline.models import ErrorKind, PipelineStage, PipelineState


# ==================== Inbound storage notification ====================

class S3Bucket(BaseModel):
    """Bucket part of an S3 notification record."""
    model_config = ConfigDict(extra="ignore")

    name: str = ""


class S3Object(BaseModel):
    """Object part of an S3 notification record; the key is URL-encoded."""
    model_config = ConfigDict(extra="ignore")

    key: str
    size: Optional[int] = None


class S3Entity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bucket: S3Bucket = Field(default_factory=S3Bucket)
    object: S3Object


class S3EventRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_name: Optional[str] = Field(None, alias="eventName")
    s3: S3Entity


class StorageEvent(BaseModel):
    """Storage change notification as delivered by S3."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    records: list[S3EventRecord] = Field(..., alias="Records", min_length=1)


# ==================== Outbound notification ====================

class NotificationMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_code: str = Field(..., alias="videoCode")
    duration: int = Field(..., ge=0)
    thumbnail: Optional[str] = None


class NotificationPayload(BaseModel):
    """Completion payload posted once to the metadata callback.

    ``asset_urls`` maps payload field names (``highResolutionUrl``,
    ``videoUrl``, ...) to published URLs; they are flattened into the body.
    """
    asset_urls: dict[str, str]
    metadata: NotificationMetadata

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = dict(self.asset_urls)
        body["metadata"] = self.metadata.model_dump(by_alias=True, exclude_none=True)
        return body


# ==================== Run result ====================

class PipelineResult(BaseModel):
    """Terminal result of one run, shaped for the invoking trigger."""
    status_code: int
    state: PipelineState
    message: str
    correlation_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    failed_stage: Optional[PipelineStage] = None
    rendition: Optional[str] = None
    detail: Optional[str] = None
    retryable: bool = False
    source_key: Optional[str] = None
    payload: Optional[dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.NOTIFIED

    def to_response(self) -> dict[str, Any]:
        """Lambda-style ``{statusCode, body}`` response."""
        if self.succeeded:
            body: dict[str, Any] = {"message": self.message, "payload": self.payload}
        else:
            body = {
                "message": self.message,
                "error": self.error_kind.value if self.error_kind else None,
                "stage": self.failed_stage.value if self.failed_stage else None,
                "rendition": self.rendition,
            }
        return {"statusCode": self.status_code, "body": body}


# ==================== Ingest API ====================

class StorageEventAccepted(BaseModel):
    """Response for an accepted storage notification."""
    task_ids: list[str]
    records: int
