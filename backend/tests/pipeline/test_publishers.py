"""Tests for uploading renditions and polling for remote outputs.

**Polling: five attempts at most, no wait after the last one.**
"""

import asyncio
import dataclasses
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from hypothesis import given, settings, strategies as st

from transcode_worker.core.storage import StorageError, StorageResult
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.errors import PublishFailedError, PublishTimeoutError
from transcode_worker.modules.pipeline.models import (
    DEFAULT_RENDITIONS,
    PipelineMode,
    THUMBNAIL_SPEC,
    RenditionArtifact,
    RunContext,
    SourceRef,
    TranscodeOutcome,
)
from transcode_worker.modules.pipeline.publisher import PollingPublisher, UploadPublisher


def artifact(tmp_path: Path, spec, size: int = 188) -> RenditionArtifact:
    path = tmp_path / spec.local_filename("demo")
    path.write_bytes(b"\x47" * size)
    return RenditionArtifact(spec=spec, local_path=path, byte_size=size)


def make_context(config) -> RunContext:
    source = SourceRef(bucket="media-in", key="uploads/demo.mp4", basename="demo")
    return RunContext.create(source, config.work_dir, "publish-run")


class TestUploadPublisher:
    @pytest.mark.asyncio
    async def test_uploads_each_rendition(self, tmp_path, pipeline_config, local_storage) -> None:
        outcome = TranscodeOutcome(artifacts=tuple(artifact(tmp_path, spec) for spec in DEFAULT_RENDITIONS))

        published = await UploadPublisher(local_storage, pipeline_config).publish(
            make_context(pipeline_config), outcome
        )

        keys = [r.destination_key for r in published.renditions]
        assert keys == ["high/demo_720p.ts", "low/demo_360p.ts"]
        for key in keys:
            assert local_storage.exists("media-out", key)

    @pytest.mark.asyncio
    async def test_content_type_follows_container(self, tmp_path, pipeline_config) -> None:
        storage = MagicMock()
        storage.upload.return_value = StorageResult(success=True, key="k", url="https://cdn/k")
        outcome = TranscodeOutcome(artifacts=(artifact(tmp_path, DEFAULT_RENDITIONS[0]),))

        await UploadPublisher(storage, pipeline_config).publish(make_context(pipeline_config), outcome)

        args = storage.upload.call_args.args
        assert args[1:] == ("media-out", "high/demo_720p.ts", "video/mp2t")

    @pytest.mark.asyncio
    async def test_zero_byte_artifact_is_refused(self, tmp_path, pipeline_config, local_storage) -> None:
        outcome = TranscodeOutcome(artifacts=(artifact(tmp_path, DEFAULT_RENDITIONS[1], size=0),))

        with pytest.raises(PublishFailedError) as exc_info:
            await UploadPublisher(local_storage, pipeline_config).publish(make_context(pipeline_config), outcome)

        assert exc_info.value.rendition == "low"
        assert not local_storage.exists("media-out", "low/demo_360p.ts")

    @pytest.mark.asyncio
    async def test_failed_upload_does_not_cancel_siblings(self, tmp_path, pipeline_config) -> None:
        storage = MagicMock()

        def upload(file_path, bucket, key, content_type):
            if key.startswith("high/"):
                return StorageResult(success=False, key=key, url="", error_message="SlowDown")
            return StorageResult(success=True, key=key, url=f"https://cdn/{key}")

        storage.upload.side_effect = upload
        outcome = TranscodeOutcome(artifacts=tuple(artifact(tmp_path, spec) for spec in DEFAULT_RENDITIONS))

        with pytest.raises(PublishFailedError) as exc_info:
            await UploadPublisher(storage, pipeline_config).publish(make_context(pipeline_config), outcome)

        assert exc_info.value.rendition == "high"
        assert exc_info.value.detail == "SlowDown"
        assert storage.upload.call_count == 2


class ScriptedStorage:
    """Reports objects as present from a given attempt on."""

    def __init__(self, present_from: int = 0, error_on: int = 0):
        self.present_from = present_from
        self.error_on = error_on
        self.checks: list[str] = []
        self.uploads: list[str] = []

    @property
    def attempt(self) -> int:
        # Two keys are checked per attempt
        return (len(self.checks) + 1) // 2

    def exists(self, bucket: str, key: str) -> bool:
        self.checks.append(key)
        if self.error_on and self.attempt == self.error_on:
            raise StorageError("AccessDenied")
        return bool(self.present_from) and self.attempt >= self.present_from

    def upload(self, file_path, bucket, key, content_type):
        self.uploads.append(key)
        return StorageResult(success=True, key=key, url=f"https://cdn/{key}")

    def public_url(self, bucket: str, key: str) -> str:
        return f"https://cdn.example.com/{key}"


def polling_publisher(pipeline_config, storage, sleeps: list):
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    config = dataclasses.replace(
        pipeline_config, mode=PipelineMode.REMOTE, poll_interval_seconds=10, poll_max_attempts=5
    )
    return PollingPublisher(storage, config, sleep=fake_sleep)


class TestPollingPublisher:
    @pytest.mark.asyncio
    async def test_outputs_present_on_third_attempt(self, pipeline_config) -> None:
        storage = ScriptedStorage(present_from=3)
        sleeps: list = []

        attempts = await polling_publisher(pipeline_config, storage, sleeps).wait_for_objects(
            ["demo/demo.m3u8", "demo/demothumbnail.jpg"]
        )

        assert attempts == 3
        assert len(storage.checks) == 6
        assert sleeps == [10, 10]

    @pytest.mark.asyncio
    async def test_outputs_never_present(self, pipeline_config) -> None:
        storage = ScriptedStorage()
        sleeps: list = []

        with pytest.raises(PublishTimeoutError):
            await polling_publisher(pipeline_config, storage, sleeps).wait_for_objects(
                ["demo/demo.m3u8", "demo/demothumbnail.jpg"]
            )

        assert storage.attempt == 5
        assert sleeps == [10, 10, 10, 10]

    @pytest.mark.asyncio
    async def test_storage_error_fails_immediately(self, pipeline_config) -> None:
        storage = ScriptedStorage(error_on=2)
        sleeps: list = []

        with pytest.raises(PublishFailedError):
            await polling_publisher(pipeline_config, storage, sleeps).wait_for_objects(
                ["demo/demo.m3u8", "demo/demothumbnail.jpg"]
            )

        assert sleeps == [10]

    @pytest.mark.asyncio
    async def test_publish_uploads_thumbnail_then_polls(self, tmp_path, pipeline_config) -> None:
        storage = ScriptedStorage(present_from=1)
        outcome = TranscodeOutcome(thumbnail=artifact(tmp_path, THUMBNAIL_SPEC), job_id="job-1")
        publisher = polling_publisher(pipeline_config, storage, [])

        published = await publisher.publish(make_context(pipeline_config), outcome)

        assert storage.uploads == ["demo/demothumbnail.jpg"]
        assert published.manifest_url == "https://cdn.example.com/demo/demo.m3u8"
        assert published.thumbnail_url == "https://cdn.example.com/demo/demothumbnail.jpg"
        assert published.poll_attempts == 1

    @given(present_from=st.integers(min_value=1, max_value=8))
    @settings(max_examples=20, deadline=None)
    def test_attempts_never_exceed_budget(self, present_from: int) -> None:
        config = PipelineConfig(source_bucket="in", destination_bucket="out")
        storage = ScriptedStorage(present_from=present_from)
        sleeps: list = []
        publisher = polling_publisher(config, storage, sleeps)

        try:
            attempts = asyncio.run(publisher.wait_for_objects(["a/a.m3u8", "a/athumbnail.jpg"]))
        except PublishTimeoutError:
            assert present_from > 5
            assert storage.attempt == 5
            assert len(sleeps) == 4
        else:
            assert attempts == present_from
            assert len(sleeps) == present_from - 1
