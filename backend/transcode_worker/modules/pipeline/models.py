"""Domain models for the transcode pipeline.

Plain enums and dataclasses: nothing here is persisted, every instance lives
at most as long as one pipeline run.
"""

import tempfile
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Optional


class PipelineMode(str, Enum):
    """How renditions are produced."""
    LOCAL = "local"  # ffmpeg subprocess per rendition
    REMOTE = "remote"  # managed MediaConvert job


class FetchMode(str, Enum):
    """How the source is handed to the external process."""
    DOWNLOAD = "download"
    PRESIGNED = "presigned"


class ProbeTool(str, Enum):
    """External inspection process used to read the duration."""
    FFPROBE = "ffprobe"
    FFMPEG = "ffmpeg"


class OutputContainer(str, Enum):
    """Output containers with their file extension as value."""
    TS = "ts"
    MP4 = "mp4"
    JPG = "jpg"
    M3U8 = "m3u8"


CONTENT_TYPES = {
    OutputContainer.TS: "video/mp2t",
    OutputContainer.MP4: "video/mp4",
    OutputContainer.JPG: "image/jpeg",
    OutputContainer.M3U8: "application/vnd.apple.mpegurl",
}

# ffmpeg muxer names passed to -f
FFMPEG_FORMATS = {
    OutputContainer.TS: "mpegts",
    OutputContainer.MP4: "mp4",
    OutputContainer.JPG: "image2",
}


class PipelineState(str, Enum):
    """States of one pipeline run, in transition order."""
    RECEIVED = "received"
    LOCATED = "located"
    FETCHED = "fetched"
    PROBED = "probed"
    TRANSCODED = "transcoded"
    PUBLISHED = "published"
    NOTIFIED = "notified"
    FAILED = "failed"


class PipelineStage(str, Enum):
    """Steps of the pipeline; each one moves the run to its target state."""
    LOCATE = "locate"
    FETCH = "fetch"
    PROBE = "probe"
    TRANSCODE = "transcode"
    PUBLISH = "publish"
    NOTIFY = "notify"


STAGE_TARGETS = {
    PipelineStage.LOCATE: PipelineState.LOCATED,
    PipelineStage.FETCH: PipelineState.FETCHED,
    PipelineStage.PROBE: PipelineState.PROBED,
    PipelineStage.TRANSCODE: PipelineState.TRANSCODED,
    PipelineStage.PUBLISH: PipelineState.PUBLISHED,
    PipelineStage.NOTIFY: PipelineState.NOTIFIED,
}


class ErrorKind(str, Enum):
    """Failure taxonomy reported in pipeline results."""
    INVALID_SOURCE = "InvalidSource"
    FETCH_FAILED = "FetchFailed"
    TRANSCODE_FAILED = "TranscodeFailed"
    PUBLISH_FAILED = "PublishFailed"
    PUBLISH_TIMEOUT = "PublishTimeout"
    NOTIFY_FAILED = "NotifyFailed"
    INTERNAL = "Internal"


@dataclass(frozen=True)
class SourceRef:
    """Identity of the stored object that triggered a run."""
    bucket: str
    key: str
    basename: str

    @property
    def filename(self) -> str:
        """File name part of the key, extension included."""
        return PurePosixPath(self.key).name

    @property
    def uri(self) -> str:
        """s3:// URI of the source object."""
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True)
class RenditionSpec:
    """One configured output variant.

    ``folder`` defaults to the label and ``suffix`` to ``<height>p`` so the
    default pair produces ``high/<name>_720p.ts`` and ``low/<name>_360p.ts``.
    """
    label: str
    width: int
    height: int
    crf: int = 23
    folder: str = ""
    suffix: str = ""
    container: OutputContainer = OutputContainer.TS
    preset: str = "fast"
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    audio_filter: Optional[str] = None
    copy_video: bool = False
    payload_field: str = ""

    @property
    def output_folder(self) -> str:
        return self.folder or self.label

    @property
    def output_suffix(self) -> str:
        return self.suffix or f"{self.height}p"

    @property
    def dimensions(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def scale_filter(self) -> str:
        return f"scale={self.width}:{self.height}"

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self.container]

    @property
    def notification_field(self) -> str:
        """Payload field carrying this rendition's URL."""
        return self.payload_field or f"{self.label}ResolutionUrl"

    def output_key(self, basename: str) -> str:
        """Destination key: ``<folder>/<basename>_<suffix>.<ext>``."""
        return f"{self.output_folder}/{basename}_{self.output_suffix}.{self.container.value}"

    def local_filename(self, basename: str) -> str:
        return f"{self.label}_{basename}_{self.output_suffix}.{self.container.value}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RenditionSpec":
        """Build a spec from a settings entry such as
        ``{"label": "high", "width": 1280, "height": 720, "crf": 20}``."""
        values = dict(data)
        if "container" in values:
            values["container"] = OutputContainer(values["container"])
        return cls(**values)


DEFAULT_RENDITIONS = (
    RenditionSpec(label="high", width=1280, height=720, crf=20, suffix="720p"),
    RenditionSpec(label="low", width=640, height=360, crf=23, suffix="360p"),
)

THUMBNAIL_SPEC = RenditionSpec(
    label="thumbnail",
    width=0,
    height=0,
    folder="thumbnails",
    suffix="thumbnail",
    container=OutputContainer.JPG,
)


def remote_manifest_key(basename: str) -> str:
    """HLS master manifest key written by the remote job."""
    return f"{basename}/{basename}.m3u8"


def remote_thumbnail_key(basename: str) -> str:
    """Thumbnail key expected next to the remote job's manifest."""
    return f"{basename}/{basename}thumbnail.jpg"


@dataclass
class RunContext:
    """Per-event scratch state owned by exactly one orchestrator run.

    Every local file a component creates is registered here so cleanup can
    remove it whatever the outcome.
    """
    source: SourceRef
    work_dir: Path
    correlation_id: str
    started_at: datetime = field(default_factory=datetime.utcnow)
    temp_paths: list[Path] = field(default_factory=list)

    @classmethod
    def create(cls, source: SourceRef, base_dir: str, correlation_id: str) -> "RunContext":
        Path(base_dir).mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix=f"run-{correlation_id}-", dir=base_dir))
        return cls(source=source, work_dir=work_dir, correlation_id=correlation_id)

    def register(self, path: Path) -> Path:
        if path not in self.temp_paths:
            self.temp_paths.append(path)
        return path

    def path_for(self, filename: str) -> Path:
        """Reserve a file path inside the run's working directory."""
        return self.register(self.work_dir / filename)


def new_correlation_id() -> str:
    """Correlation id prefixed with the receipt time in epoch seconds."""
    return f"{int(time.time())}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ProbeResult:
    duration_seconds: Optional[float] = None
    tool: str = ""
    diagnostic: Optional[str] = None

    @property
    def known(self) -> bool:
        return self.duration_seconds is not None


@dataclass(frozen=True)
class FetchedSource:
    """What the external process reads: a local path or a presigned URL."""
    input_ref: str
    storage_uri: str
    local_path: Optional[Path] = None

    @property
    def is_local(self) -> bool:
        return self.local_path is not None


@dataclass(frozen=True)
class RenditionArtifact:
    """A verified local output file, not yet published."""
    spec: RenditionSpec
    local_path: Path
    byte_size: int


@dataclass(frozen=True)
class TranscodeOutcome:
    artifacts: tuple[RenditionArtifact, ...] = ()
    clipped: bool = False
    clip_path: Optional[Path] = None
    thumbnail: Optional[RenditionArtifact] = None
    job_id: Optional[str] = None


@dataclass(frozen=True)
class RenditionResult:
    """A rendition that passed verification and was published."""
    spec: RenditionSpec
    local_path: Optional[Path]
    byte_size: int
    destination_key: str
    url: str


@dataclass(frozen=True)
class PublishedArtifacts:
    renditions: tuple[RenditionResult, ...] = ()
    manifest_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    poll_attempts: int = 0
