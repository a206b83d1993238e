"""Transcoders turning a fetched source into verified rendition files.

The local transcoder runs ffmpeg once per rendition; see ``mediaconvert``
for the remote job variant.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from transcode_worker.core.logging import log_info
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.errors import TranscodeFailedError
from transcode_worker.modules.pipeline.ffmpeg import (
    FFmpegCommandBuilder,
    FFmpegError,
    FFmpegTimeout,
    ProcessRunner,
    run_process,
)
from transcode_worker.modules.pipeline.models import (
    THUMBNAIL_SPEC,
    FetchedSource,
    ProbeResult,
    RenditionArtifact,
    RenditionSpec,
    RunContext,
    TranscodeOutcome,
)

logger = logging.getLogger(__name__)


def should_clip(duration: Optional[float], config: PipelineConfig) -> bool:
    """A clip is cut only for a known duration above the threshold."""
    if not config.clip_enabled or duration is None:
        return False
    return duration > config.clip_threshold_seconds


def effective_duration(probe: ProbeResult, config: PipelineConfig) -> float:
    """Duration of what the renditions actually contain."""
    if should_clip(probe.duration_seconds, config):
        return config.clip_threshold_seconds
    if probe.duration_seconds is None:
        return config.default_duration_seconds
    return probe.duration_seconds


def reported_duration(probe: ProbeResult, config: PipelineConfig) -> int:
    """Whole seconds reported to the metadata service."""
    return int(math.floor(effective_duration(probe, config)))


def verify_output(path: Path, rendition: str) -> int:
    """Return the size of an output file.

    Raises:
        TranscodeFailedError: If the file is missing or empty
    """
    try:
        byte_size = path.stat().st_size
    except FileNotFoundError:
        raise TranscodeFailedError(f"Output file was not created: {path.name}", rendition=rendition)
    if byte_size <= 0:
        raise TranscodeFailedError(f"Output file is empty: {path.name}", rendition=rendition)
    return byte_size


def first_failure(results: list) -> Optional[BaseException]:
    """First exception in submission order from ``gather(return_exceptions=True)``."""
    for result in results:
        if isinstance(result, BaseException):
            return result
    return None


class Transcoder(ABC):
    """Produces renditions for one run."""

    @abstractmethod
    async def transcode(
        self,
        ctx: RunContext,
        fetched: FetchedSource,
        probe: ProbeResult,
    ) -> TranscodeOutcome:
        """Produce every configured output.

        Raises:
            TranscodeFailedError: If any output cannot be produced
        """
        pass


class FFmpegStepRunner:
    """Runs one ffmpeg step and maps process failures to TranscodeFailed."""

    def __init__(self, commands: FFmpegCommandBuilder, timeout: float, runner: ProcessRunner = run_process):
        self.commands = commands
        self.timeout = timeout
        self.runner = runner

    async def ensure_available(self, timeout: float) -> None:
        try:
            output = await self.runner(self.commands.build_version_command(), timeout)
        except FFmpegError as e:
            raise TranscodeFailedError("ffmpeg is not available", detail=str(e)) from e
        if not output.ok:
            raise TranscodeFailedError("ffmpeg is not available", detail=output.stderr_tail())

    async def run(self, cmd: list[str], rendition: str) -> None:
        try:
            output = await self.runner(cmd, self.timeout)
        except FFmpegTimeout as e:
            raise TranscodeFailedError(
                f"ffmpeg timed out after {self.timeout:g}s", rendition=rendition, detail=str(e)
            ) from e
        except FFmpegError as e:
            raise TranscodeFailedError("ffmpeg could not be started", rendition=rendition, detail=str(e)) from e

        if not output.ok:
            raise TranscodeFailedError(
                f"ffmpeg exited with code {output.returncode}",
                rendition=rendition,
                detail=output.stderr_tail(),
            )

    async def thumbnail(self, ctx: RunContext, input_ref: str, offset: str) -> RenditionArtifact:
        """Extract one frame at ``offset`` into the run directory."""
        path = ctx.path_for(THUMBNAIL_SPEC.local_filename(ctx.source.basename))
        await self.run(
            self.commands.build_thumbnail_command(input_ref, str(path), offset),
            rendition=THUMBNAIL_SPEC.label,
        )
        byte_size = verify_output(path, THUMBNAIL_SPEC.label)
        return RenditionArtifact(spec=THUMBNAIL_SPEC, local_path=path, byte_size=byte_size)


class LocalTranscoder(Transcoder):
    """Produces renditions with local ffmpeg processes.

    A long source is cut once into a stream-copied clip and every rendition
    reads the clip. Renditions run concurrently up to ``max_concurrency``.
    """

    def __init__(
        self,
        config: PipelineConfig,
        commands: FFmpegCommandBuilder,
        runner: ProcessRunner = run_process,
    ):
        self.config = config
        self.commands = commands
        self.steps = FFmpegStepRunner(commands, config.transcode_timeout, runner)

    async def transcode(
        self,
        ctx: RunContext,
        fetched: FetchedSource,
        probe: ProbeResult,
    ) -> TranscodeOutcome:
        await self.steps.ensure_available(self.config.probe_timeout)

        input_ref = fetched.input_ref
        clip_path = None
        if should_clip(probe.duration_seconds, self.config):
            clip_path = await self._clip(ctx, input_ref)
            input_ref = str(clip_path)

        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        results = await asyncio.gather(
            *(self._render(semaphore, ctx, spec, input_ref) for spec in self.config.renditions),
            return_exceptions=True,
        )
        failure = first_failure(results)
        if failure is not None:
            raise failure

        thumbnail = None
        if self.config.generate_thumbnail:
            thumbnail = await self.steps.thumbnail(ctx, input_ref, self.config.thumbnail_offset)

        return TranscodeOutcome(
            artifacts=tuple(results),
            clipped=clip_path is not None,
            clip_path=clip_path,
            thumbnail=thumbnail,
        )

    async def _clip(self, ctx: RunContext, input_ref: str) -> Path:
        clip_path = ctx.path_for(f"trimmed_{ctx.source.basename}.ts")
        await self.steps.run(
            self.commands.build_clip_command(
                input_ref, str(clip_path), self.config.clip_threshold_seconds
            ),
            rendition="clip",
        )
        byte_size = verify_output(clip_path, "clip")
        log_info(
            logger,
            "Source clipped",
            clip_seconds=self.config.clip_threshold_seconds,
            byte_size=byte_size,
        )
        return clip_path

    async def _render(
        self,
        semaphore: asyncio.Semaphore,
        ctx: RunContext,
        spec: RenditionSpec,
        input_ref: str,
    ) -> RenditionArtifact:
        output_path = ctx.path_for(spec.local_filename(ctx.source.basename))
        async with semaphore:
            await self.steps.run(
                self.commands.build_rendition_command(spec, input_ref, str(output_path)),
                rendition=spec.label,
            )
        byte_size = verify_output(output_path, spec.label)
        log_info(
            logger,
            "Rendition produced",
            rendition=spec.label,
            dimensions=spec.dimensions,
            byte_size=byte_size,
        )
        return RenditionArtifact(spec=spec, local_path=output_path, byte_size=byte_size)
