"""FFmpeg process utilities.

Command builders for renditions, clips, thumbnails and duration probes, and
an asyncio runner that enforces a timeout and kills runaway processes.
"""

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from transcode_worker.modules.pipeline.models import FFMPEG_FORMATS, RenditionSpec

logger = logging.getLogger(__name__)

# Characters of stderr kept for diagnostics
STDERR_TAIL_CHARS = 2000

_DURATION_PATTERN = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


class FFmpegError(Exception):
    """Raised when an external media process cannot be run."""
    pass


class FFmpegTimeout(FFmpegError):
    """Raised when an external media process exceeds its timeout."""
    pass


@dataclass(frozen=True)
class ProcessOutput:
    """Exit status and captured output of a finished process."""
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, limit: int = STDERR_TAIL_CHARS) -> str:
        return self.stderr[-limit:] if len(self.stderr) > limit else self.stderr


# Signature of run_process; tests substitute a fake
ProcessRunner = Callable[[list[str], float], Awaitable[ProcessOutput]]


async def run_process(cmd: list[str], timeout: float) -> ProcessOutput:
    """Run a command to completion with a hard timeout.

    Args:
        cmd: Command and arguments
        timeout: Maximum runtime in seconds

    Returns:
        ProcessOutput with exit code, stdout and stderr

    Raises:
        FFmpegError: If the binary cannot be started
        FFmpegTimeout: If the process exceeds the timeout; it is killed first
    """
    logger.debug("Running process: %s", " ".join(cmd))
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise FFmpegError(f"Cannot start {cmd[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise FFmpegTimeout(f"{cmd[0]} exceeded timeout of {timeout} seconds")

    return ProcessOutput(
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _format_seconds(value: float) -> str:
    """Render seconds without a trailing ``.0`` (``10.0`` -> ``10``)."""
    return f"{value:g}"


class FFmpegCommandBuilder:
    """Builds argument lists for ffmpeg and ffprobe."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def build_version_command(self) -> list[str]:
        return [self.ffmpeg_path, "-version"]

    def build_rendition_command(
        self,
        spec: RenditionSpec,
        input_ref: str,
        output_path: str,
    ) -> list[str]:
        """Build the command producing one rendition.

        Args:
            spec: Rendition to produce
            input_ref: Local path or presigned URL of the input
            output_path: Local output file

        Returns:
            FFmpeg command as list of arguments
        """
        cmd = [self.ffmpeg_path, "-y", "-i", input_ref]

        if spec.copy_video:
            cmd.extend(["-c:v", "copy"])
        else:
            cmd.extend([
                "-vf", spec.scale_filter,
                "-c:v", spec.video_codec,
                "-preset", spec.preset,
                "-crf", str(spec.crf),
            ])

        cmd.extend(["-c:a", spec.audio_codec])
        if spec.audio_filter:
            cmd.extend(["-af", spec.audio_filter])

        cmd.extend(["-f", FFMPEG_FORMATS[spec.container], output_path])
        return cmd

    def build_clip_command(self, input_ref: str, output_path: str, seconds: float) -> list[str]:
        """Build a stream-copy command keeping the first ``seconds`` of input."""
        return [
            self.ffmpeg_path,
            "-y",
            "-i", input_ref,
            "-t", _format_seconds(seconds),
            "-c:v", "copy",
            "-c:a", "copy",
            output_path,
        ]

    def build_thumbnail_command(self, input_ref: str, output_path: str, offset: str = "00:00:01") -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-ss", offset,
            "-i", input_ref,
            "-vframes", "1",
            output_path,
        ]

    def build_ffprobe_command(self, input_ref: str) -> list[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            input_ref,
        ]

    def build_ffmpeg_probe_command(self, input_ref: str) -> list[str]:
        """``ffmpeg -i`` with no output: exits non-zero but prints the header."""
        return [self.ffmpeg_path, "-hide_banner", "-i", input_ref]


def parse_ffprobe_duration(stdout: str) -> Optional[float]:
    """Parse the single float ffprobe prints for ``format=duration``."""
    text = stdout.strip()
    if not text:
        return None
    try:
        value = float(text.splitlines()[0])
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value) or value < 0:
        return None
    return value


def parse_ffmpeg_duration(stderr: str) -> Optional[float]:
    """Parse ``Duration: HH:MM:SS.hh`` from ffmpeg's input header.

    Returns None for ``Duration: N/A`` or when no header is present.
    """
    match = _DURATION_PATTERN.search(stderr)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
