"""Immutable pipeline configuration passed into the orchestrator."""

from dataclasses import dataclass
from typing import Optional

from transcode_worker.core.config import Settings
from transcode_worker.modules.pipeline.models import (
    DEFAULT_RENDITIONS,
    FFMPEG_FORMATS,
    FetchMode,
    PipelineMode,
    ProbeTool,
    RenditionSpec,
)


@dataclass(frozen=True)
class PipelineConfig:
    """Everything one pipeline run needs to know about its deployment."""
    source_bucket: str
    destination_bucket: str
    mode: PipelineMode = PipelineMode.LOCAL
    input_prefix: str = "uploads/"
    pipeline_suffixes: tuple[str, ...] = ("_cfr",)
    fetch_mode: FetchMode = FetchMode.PRESIGNED
    presigned_url_expires: int = 60
    work_dir: str = "/tmp"
    max_concurrency: int = 2

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    probe_tool: ProbeTool = ProbeTool.FFPROBE
    probe_timeout: float = 30.0
    transcode_timeout: float = 600.0
    default_duration_seconds: float = 10.0

    clip_enabled: bool = True
    clip_threshold_seconds: float = 10.0
    renditions: tuple[RenditionSpec, ...] = DEFAULT_RENDITIONS
    generate_thumbnail: bool = False
    thumbnail_offset: str = "00:00:01"

    mediaconvert_role_arn: str = ""
    mediaconvert_endpoint: Optional[str] = None
    mediaconvert_template_path: Optional[str] = None
    storage_region: str = "us-east-1"
    poll_interval_seconds: float = 10.0
    poll_max_attempts: int = 5

    callback_url: str = ""
    notify_timeout: float = 30.0

    def __post_init__(self):
        if not self.renditions:
            raise ValueError("At least one rendition must be configured")
        labels = [spec.label for spec in self.renditions]
        if len(set(labels)) != len(labels):
            raise ValueError(f"Rendition labels must be unique: {labels}")
        keys = [spec.output_key("x") for spec in self.renditions]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Rendition output keys must be unique: {keys}")
        for spec in self.renditions:
            if spec.container not in FFMPEG_FORMATS:
                raise ValueError(
                    f"Rendition {spec.label!r} uses container {spec.container.value!r}, which ffmpeg cannot write"
                )
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.poll_max_attempts < 1:
            raise ValueError("poll_max_attempts must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        """Build the pipeline configuration from worker settings."""
        renditions = (
            tuple(RenditionSpec.from_dict(entry) for entry in settings.RENDITIONS)
            if settings.RENDITIONS
            else DEFAULT_RENDITIONS
        )
        return cls(
            source_bucket=settings.SOURCE_BUCKET,
            destination_bucket=settings.DESTINATION_BUCKET,
            mode=PipelineMode(settings.PIPELINE_MODE.lower()),
            input_prefix=settings.INPUT_PREFIX,
            pipeline_suffixes=tuple(settings.PIPELINE_SUFFIXES),
            fetch_mode=FetchMode(settings.FETCH_MODE.lower()),
            presigned_url_expires=settings.PRESIGNED_URL_EXPIRES,
            work_dir=settings.WORK_DIR,
            max_concurrency=settings.MAX_CONCURRENCY,
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH,
            probe_tool=ProbeTool(settings.PROBE_TOOL.lower()),
            probe_timeout=settings.PROBE_TIMEOUT_SECONDS,
            transcode_timeout=settings.TRANSCODE_TIMEOUT_SECONDS,
            default_duration_seconds=settings.DEFAULT_DURATION_SECONDS,
            clip_enabled=settings.CLIP_ENABLED,
            clip_threshold_seconds=settings.CLIP_THRESHOLD_SECONDS,
            renditions=renditions,
            generate_thumbnail=settings.GENERATE_THUMBNAIL,
            thumbnail_offset=settings.THUMBNAIL_OFFSET,
            mediaconvert_role_arn=settings.MEDIACONVERT_ROLE_ARN,
            mediaconvert_endpoint=settings.MEDIACONVERT_ENDPOINT,
            mediaconvert_template_path=settings.MEDIACONVERT_TEMPLATE_PATH,
            storage_region=settings.STORAGE_REGION,
            poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
            poll_max_attempts=settings.POLL_MAX_ATTEMPTS,
            callback_url=settings.CALLBACK_URL,
            notify_timeout=settings.NOTIFY_TIMEOUT_SECONDS,
        )
