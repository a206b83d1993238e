"""Publishers: upload local renditions or wait for remote job outputs."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Sequence

from transcode_worker.core.logging import log_info
from transcode_worker.core.storage import StorageBackend, StorageError
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.errors import PublishFailedError, PublishTimeoutError
from transcode_worker.modules.pipeline.models import (
    PublishedArtifacts,
    RenditionArtifact,
    RenditionResult,
    RunContext,
    TranscodeOutcome,
    remote_manifest_key,
    remote_thumbnail_key,
)
from transcode_worker.modules.pipeline.transcoder import first_failure

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class Publisher(ABC):
    """Makes a run's outputs visible in the destination bucket."""

    @abstractmethod
    async def publish(self, ctx: RunContext, outcome: TranscodeOutcome) -> PublishedArtifacts:
        pass


async def upload_artifact(
    storage: StorageBackend,
    bucket: str,
    artifact: RenditionArtifact,
    key: str,
) -> RenditionResult:
    """Upload one verified artifact.

    Raises:
        PublishFailedError: If the artifact is empty or the upload fails
    """
    label = artifact.spec.label
    if artifact.byte_size <= 0:
        raise PublishFailedError(f"Refusing to publish empty artifact {key}", rendition=label)

    result = await asyncio.to_thread(
        storage.upload, str(artifact.local_path), bucket, key, artifact.spec.content_type
    )
    if not result.success:
        raise PublishFailedError(f"Upload of {key} failed", rendition=label, detail=result.error_message)

    log_info(logger, "Artifact uploaded", rendition=label, key=key, byte_size=artifact.byte_size)
    return RenditionResult(
        spec=artifact.spec,
        local_path=artifact.local_path,
        byte_size=artifact.byte_size,
        destination_key=key,
        url=result.url or storage.public_url(bucket, key),
    )


class UploadPublisher(Publisher):
    """Uploads local renditions concurrently.

    Every upload is awaited even when a sibling fails; the first failure in
    rendition order is raised afterwards.
    """

    def __init__(self, storage: StorageBackend, config: PipelineConfig):
        self.storage = storage
        self.config = config

    async def publish(self, ctx: RunContext, outcome: TranscodeOutcome) -> PublishedArtifacts:
        basename = ctx.source.basename
        bucket = self.config.destination_bucket
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def bounded(artifact: RenditionArtifact) -> RenditionResult:
            async with semaphore:
                return await upload_artifact(
                    self.storage, bucket, artifact, artifact.spec.output_key(basename)
                )

        results = await asyncio.gather(
            *(bounded(artifact) for artifact in outcome.artifacts),
            return_exceptions=True,
        )
        failure = first_failure(results)
        if failure is not None:
            raise failure

        thumbnail_url = None
        if outcome.thumbnail is not None:
            thumbnail = await upload_artifact(
                self.storage,
                bucket,
                outcome.thumbnail,
                outcome.thumbnail.spec.output_key(basename),
            )
            thumbnail_url = thumbnail.url

        return PublishedArtifacts(renditions=tuple(results), thumbnail_url=thumbnail_url)


class PollingPublisher(Publisher):
    """Waits for a remote job's manifest and thumbnail to become visible."""

    def __init__(
        self,
        storage: StorageBackend,
        config: PipelineConfig,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.storage = storage
        self.config = config
        self.sleep = sleep

    async def wait_for_objects(self, keys: Sequence[str]) -> int:
        """Poll until every key exists.

        Returns:
            Number of polling attempts made

        Raises:
            PublishFailedError: On a storage error other than not-found
            PublishTimeoutError: If the keys are still missing after the
                last attempt
        """
        bucket = self.config.destination_bucket
        max_attempts = self.config.poll_max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                found = await asyncio.gather(
                    *(asyncio.to_thread(self.storage.exists, bucket, key) for key in keys)
                )
            except StorageError as e:
                raise PublishFailedError("Checking job outputs failed", detail=str(e)) from e

            if all(found):
                log_info(logger, "Job outputs available", attempts=attempt, keys=list(keys))
                return attempt

            missing = [key for key, present in zip(keys, found) if not present]
            log_info(logger, "Job outputs not ready", attempt=attempt, missing=missing)
            if attempt < max_attempts:
                await self.sleep(self.config.poll_interval_seconds)

        raise PublishTimeoutError(
            f"Job outputs missing after {max_attempts} attempts",
            detail=", ".join(keys),
        )

    async def publish(self, ctx: RunContext, outcome: TranscodeOutcome) -> PublishedArtifacts:
        basename = ctx.source.basename
        bucket = self.config.destination_bucket
        manifest_key = remote_manifest_key(basename)
        thumbnail_key = remote_thumbnail_key(basename)

        if outcome.thumbnail is not None:
            await upload_artifact(self.storage, bucket, outcome.thumbnail, thumbnail_key)

        attempts = await self.wait_for_objects([manifest_key, thumbnail_key])
        return PublishedArtifacts(
            manifest_url=self.storage.public_url(bucket, manifest_key),
            thumbnail_url=self.storage.public_url(bucket, thumbnail_key),
            poll_attempts=attempts,
        )
