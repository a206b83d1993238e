"""Wiring of pipeline components from configuration."""

import asyncio
from typing import Any, Optional

import httpx

from transcode_worker.core.config import get_settings
from transcode_worker.core.storage import StorageBackend, StorageConfig, create_storage
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.fetcher import ContentFetcher
from transcode_worker.modules.pipeline.ffmpeg import FFmpegCommandBuilder, ProcessRunner, run_process
from transcode_worker.modules.pipeline.locator import SourceLocator, split_records
from transcode_worker.modules.pipeline.mediaconvert import RemoteJobTranscoder
from transcode_worker.modules.pipeline.models import PipelineMode
from transcode_worker.modules.pipeline.notifier import Notifier
from transcode_worker.modules.pipeline.orchestrator import PipelineOrchestrator
from transcode_worker.modules.pipeline.prober import Prober
from transcode_worker.modules.pipeline.publisher import PollingPublisher, Sleeper, UploadPublisher
from transcode_worker.modules.pipeline.schemas import PipelineResult
from transcode_worker.modules.pipeline.transcoder import LocalTranscoder


def build_orchestrator(
    config: PipelineConfig,
    storage: StorageBackend,
    runner: ProcessRunner = run_process,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Sleeper = asyncio.sleep,
    **transcoder_kwargs: Any,
) -> PipelineOrchestrator:
    """Assemble an orchestrator for the configured mode.

    Local mode pairs the ffmpeg transcoder with the upload publisher, remote
    mode the MediaConvert transcoder with the polling publisher.
    """
    commands = FFmpegCommandBuilder(config.ffmpeg_path, config.ffprobe_path)

    if config.mode == PipelineMode.REMOTE:
        transcoder = RemoteJobTranscoder(config, commands, runner, **transcoder_kwargs)
        publisher = PollingPublisher(storage, config, sleep=sleep)
    else:
        transcoder = LocalTranscoder(config, commands, runner)
        publisher = UploadPublisher(storage, config)

    return PipelineOrchestrator(
        config=config,
        locator=SourceLocator(config.input_prefix, config.pipeline_suffixes, config.source_bucket),
        fetcher=ContentFetcher(storage, config.fetch_mode, config.presigned_url_expires),
        prober=Prober(commands, config.probe_tool, config.probe_timeout, runner),
        transcoder=transcoder,
        publisher=publisher,
        notifier=Notifier(config.callback_url, config.notify_timeout, transport=transport),
    )


def run_pipeline(
    event: dict[str, Any],
    config: Optional[PipelineConfig] = None,
    storage: Optional[StorageBackend] = None,
) -> PipelineResult:
    """Run one pipeline synchronously with settings-derived defaults."""
    settings = get_settings()
    config = config or PipelineConfig.from_settings(settings)
    storage = storage or create_storage(StorageConfig.from_settings(settings))
    orchestrator = build_orchestrator(config, storage)
    return asyncio.run(orchestrator.run(event))


def handle_event(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Function-style entry point returning ``{statusCode, body}``.

    Each record of the notification is processed as its own run. With
    several records the worst status code is returned with every body.
    """
    records = split_records(event) or [event]
    responses = [run_pipeline(record).to_response() for record in records]
    if len(responses) == 1:
        return responses[0]
    return {
        "statusCode": max(response["statusCode"] for response in responses),
        "body": {"results": [response["body"] for response in responses]},
    }
