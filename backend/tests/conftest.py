"""Shared fixtures: storage events, local storage and a fake ffmpeg."""

from pathlib import Path
from typing import Optional

import pytest

from transcode_worker.core.storage import LocalStorage, StorageConfig
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.ffmpeg import FFmpegError, ProcessOutput

SOURCE_BUCKET = "media-in"
DESTINATION_BUCKET = "media-out"
CALLBACK_URL = "https://metadata.test/api/videos"


class FakeRunner:
    """Stands in for ``run_process``: records commands and fakes their output.

    Output files are written for ffmpeg commands unless their path contains
    one of ``fail_outputs`` (non-zero exit) or ``empty_outputs`` (zero bytes).
    """

    def __init__(
        self,
        duration: Optional[float] = None,
        probe_fails: bool = False,
        missing_binary: bool = False,
        fail_outputs: tuple = (),
        empty_outputs: tuple = (),
        ffprobe_path: str = "ffprobe",
    ):
        self.duration = duration
        self.probe_fails = probe_fails
        self.missing_binary = missing_binary
        self.fail_outputs = fail_outputs
        self.empty_outputs = empty_outputs
        self.ffprobe_path = ffprobe_path
        self.commands: list[list[str]] = []

    async def __call__(self, cmd: list[str], timeout: float) -> ProcessOutput:
        self.commands.append(list(cmd))
        if self.missing_binary:
            raise FFmpegError(f"Cannot start {cmd[0]}: not found")

        if cmd[0] == self.ffprobe_path:
            if self.probe_fails or self.duration is None:
                return ProcessOutput(1, "", "Invalid data found when processing input")
            return ProcessOutput(0, f"{self.duration}\n", "")

        if "-hide_banner" in cmd:
            if self.probe_fails or self.duration is None:
                return ProcessOutput(1, "", "Invalid data found when processing input")
            minutes, seconds = divmod(self.duration, 60)
            return ProcessOutput(1, "", f"  Duration: 00:{int(minutes):02d}:{seconds:05.2f}, start: 0.0")

        if cmd[1:] == ["-version"]:
            return ProcessOutput(0, "ffmpeg version 6.1", "")

        output = cmd[-1]
        name = Path(output).name
        if any(marker in name for marker in self.fail_outputs):
            return ProcessOutput(1, "", "Conversion failed!\n" + "x" * 3000)

        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        if any(marker in name for marker in self.empty_outputs):
            path.write_bytes(b"")
        else:
            path.write_bytes(b"\x47" * 188)
        return ProcessOutput(0, "", "")

    def commands_with(self, flag: str) -> list[list[str]]:
        return [cmd for cmd in self.commands if flag in cmd]

    @property
    def rendition_commands(self) -> list[list[str]]:
        # Only rendition commands name an output format
        return self.commands_with("-f")


def storage_event(key: str, bucket: str = SOURCE_BUCKET) -> dict:
    return {
        "Records": [
            {
                "eventName": "ObjectCreated:Put",
                "s3": {"bucket": {"name": bucket}, "object": {"key": key, "size": 1024}},
            }
        ]
    }


@pytest.fixture
def make_event():
    return storage_event


@pytest.fixture
def make_runner():
    return FakeRunner


@pytest.fixture
def local_storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(StorageConfig(backend="local", local_path=str(tmp_path / "storage")))


@pytest.fixture
def stored_source(local_storage: LocalStorage):
    """Put a source object into the local source bucket and return its key."""

    def _store(key: str = "uploads/demo.mp4", data: bytes = b"\x00" * 2048) -> str:
        path = local_storage.base_path / SOURCE_BUCKET / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return key

    return _store


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        source_bucket=SOURCE_BUCKET,
        destination_bucket=DESTINATION_BUCKET,
        work_dir=str(tmp_path / "work"),
        callback_url=CALLBACK_URL,
        poll_interval_seconds=0.0,
    )
