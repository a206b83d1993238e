"""Completion notification to the metadata service."""

import logging
from typing import Optional

import httpx

from transcode_worker.core.logging import log_info
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.errors import NotifyFailedError
from transcode_worker.modules.pipeline.locator import derive_video_code
from transcode_worker.modules.pipeline.models import PipelineMode, PublishedArtifacts, SourceRef
from transcode_worker.modules.pipeline.schemas import NotificationMetadata, NotificationPayload

logger = logging.getLogger(__name__)

# Characters of a failed response body kept for diagnostics
RESPONSE_TAIL_CHARS = 500


def build_payload(
    config: PipelineConfig,
    source: SourceRef,
    published: PublishedArtifacts,
    duration: int,
) -> NotificationPayload:
    """Build the payload for a finished run.

    Local mode carries one URL field per rendition, remote mode a single
    ``videoUrl`` pointing at the HLS manifest.
    """
    if config.mode == PipelineMode.REMOTE:
        asset_urls = {"videoUrl": published.manifest_url or ""}
    else:
        asset_urls = {
            rendition.spec.notification_field: rendition.url
            for rendition in published.renditions
        }

    return NotificationPayload(
        asset_urls=asset_urls,
        metadata=NotificationMetadata(
            video_code=derive_video_code(source.key, config.input_prefix, config.pipeline_suffixes),
            duration=duration,
            thumbnail=published.thumbnail_url,
        ),
    )


class Notifier:
    """Posts the completion payload exactly once; no retry within a run."""

    def __init__(
        self,
        callback_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.callback_url = callback_url
        self.timeout = timeout
        self.transport = transport

    async def notify(self, payload: NotificationPayload) -> int:
        """Send the payload.

        Returns:
            HTTP status code of the callback response

        Raises:
            NotifyFailedError: On a non-2xx response or a transport error
        """
        if not self.callback_url:
            raise NotifyFailedError("No callback URL configured")

        body = payload.to_body()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.callback_url, json=body)
        except httpx.TimeoutException as e:
            raise NotifyFailedError(f"Callback timed out after {self.timeout:g}s", detail=str(e)) from e
        except httpx.RequestError as e:
            raise NotifyFailedError(f"Callback request failed: {e}", detail=str(e)) from e

        if not 200 <= response.status_code < 300:
            raise NotifyFailedError(
                f"Callback returned HTTP {response.status_code}",
                detail=response.text[:RESPONSE_TAIL_CHARS],
            )

        log_info(logger, "Completion notified", status_code=response.status_code)
        return response.status_code
