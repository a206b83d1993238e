"""Tests for building and posting the completion payload."""

import dataclasses
import json
from pathlib import Path

import httpx
import pytest

from transcode_worker.modules.pipeline.errors import NotifyFailedError
from transcode_worker.modules.pipeline.models import (
    DEFAULT_RENDITIONS,
    PipelineMode,
    PublishedArtifacts,
    RenditionResult,
    SourceRef,
)
from transcode_worker.modules.pipeline.notifier import Notifier, build_payload
from transcode_worker.modules.pipeline.schemas import NotificationMetadata, NotificationPayload

CALLBACK = "https://metadata.test/api/videos"


def published_renditions() -> PublishedArtifacts:
    return PublishedArtifacts(
        renditions=tuple(
            RenditionResult(
                spec=spec,
                local_path=Path(f"/tmp/{spec.label}.ts"),
                byte_size=188,
                destination_key=spec.output_key("clip"),
                url=f"https://cdn.example.com/{spec.output_key('clip')}",
            )
            for spec in DEFAULT_RENDITIONS
        )
    )


class TestBuildPayload:
    def test_local_mode_fields(self, pipeline_config) -> None:
        source = SourceRef(bucket="media-in", key="uploads/clip_cfr.mp4", basename="clip")

        body = build_payload(pipeline_config, source, published_renditions(), 10).to_body()

        assert body == {
            "highResolutionUrl": "https://cdn.example.com/high/clip_720p.ts",
            "lowResolutionUrl": "https://cdn.example.com/low/clip_360p.ts",
            "metadata": {"videoCode": "uploads/clip", "duration": 10},
        }

    def test_remote_mode_fields(self, pipeline_config) -> None:
        config = dataclasses.replace(pipeline_config, mode=PipelineMode.REMOTE)
        source = SourceRef(bucket="media-in", key="uploads/demo.mp4", basename="demo")
        published = PublishedArtifacts(
            manifest_url="https://cdn.example.com/demo/demo.m3u8",
            thumbnail_url="https://cdn.example.com/demo/demothumbnail.jpg",
            poll_attempts=2,
        )

        body = build_payload(config, source, published, 7).to_body()

        assert body == {
            "videoUrl": "https://cdn.example.com/demo/demo.m3u8",
            "metadata": {
                "videoCode": "uploads/demo",
                "duration": 7,
                "thumbnail": "https://cdn.example.com/demo/demothumbnail.jpg",
            },
        }


def payload() -> NotificationPayload:
    return NotificationPayload(
        asset_urls={"highResolutionUrl": "https://cdn/high.ts"},
        metadata=NotificationMetadata(video_code="uploads/demo", duration=10),
    )


class TestNotifier:
    @pytest.mark.asyncio
    async def test_posts_json_once(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"ok": True})

        status = await Notifier(CALLBACK, transport=httpx.MockTransport(handler)).notify(payload())

        assert status == 201
        assert len(requests) == 1
        assert requests[0].method == "POST"
        assert json.loads(requests[0].content) == payload().to_body()

    @pytest.mark.asyncio
    async def test_server_error_is_notify_failure(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500, text="database unavailable" + "!" * 1000)

        with pytest.raises(NotifyFailedError) as exc_info:
            await Notifier(CALLBACK, transport=httpx.MockTransport(handler)).notify(payload())

        assert "500" in exc_info.value.message
        assert exc_info.value.detail.startswith("database unavailable")
        assert len(exc_info.value.detail) == 500
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error_is_notify_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NotifyFailedError):
            await Notifier(CALLBACK, transport=httpx.MockTransport(handler)).notify(payload())

    @pytest.mark.asyncio
    async def test_timeout_is_notify_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NotifyFailedError) as exc_info:
            await Notifier(CALLBACK, timeout=2, transport=httpx.MockTransport(handler)).notify(payload())

        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_callback_url(self) -> None:
        with pytest.raises(NotifyFailedError):
            await Notifier("").notify(payload())
