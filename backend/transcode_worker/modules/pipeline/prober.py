"""Duration probing with ffprobe or ``ffmpeg -i``."""

import logging

from transcode_worker.core.logging import log_info, log_warning
from transcode_worker.modules.pipeline.ffmpeg import (
    FFmpegCommandBuilder,
    FFmpegError,
    ProcessRunner,
    parse_ffmpeg_duration,
    parse_ffprobe_duration,
    run_process,
)
from transcode_worker.modules.pipeline.models import ProbeResult, ProbeTool

logger = logging.getLogger(__name__)


class Prober:
    """Reads the source duration; a failed probe is never fatal."""

    def __init__(
        self,
        commands: FFmpegCommandBuilder,
        tool: ProbeTool = ProbeTool.FFPROBE,
        timeout: float = 30.0,
        runner: ProcessRunner = run_process,
    ):
        self.commands = commands
        self.tool = tool
        self.timeout = timeout
        self.runner = runner

    async def probe(self, input_ref: str) -> ProbeResult:
        """Probe the input and return its duration, or None with a diagnostic.

        Args:
            input_ref: Local path or presigned URL

        Returns:
            ProbeResult; ``duration_seconds`` is None when unknown
        """
        if self.tool == ProbeTool.FFPROBE:
            cmd = self.commands.build_ffprobe_command(input_ref)
        else:
            cmd = self.commands.build_ffmpeg_probe_command(input_ref)

        try:
            output = await self.runner(cmd, self.timeout)
        except FFmpegError as e:
            return self._unknown(str(e))

        if self.tool == ProbeTool.FFPROBE:
            if not output.ok:
                return self._unknown(
                    f"ffprobe exited with code {output.returncode}: {output.stderr_tail(500)}"
                )
            duration = parse_ffprobe_duration(output.stdout)
        else:
            # ffmpeg -i without an output always exits non-zero
            duration = parse_ffmpeg_duration(output.stderr)

        if duration is None:
            return self._unknown(f"No duration in {self.tool.value} output")

        log_info(logger, "Source probed", duration_seconds=duration, tool=self.tool.value)
        return ProbeResult(duration_seconds=duration, tool=self.tool.value)

    def _unknown(self, diagnostic: str) -> ProbeResult:
        log_warning(logger, "Duration probe failed", tool=self.tool.value, diagnostic=diagnostic)
        return ProbeResult(duration_seconds=None, tool=self.tool.value, diagnostic=diagnostic)
