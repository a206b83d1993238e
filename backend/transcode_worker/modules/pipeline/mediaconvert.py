"""Remote transcoding with an AWS MediaConvert job.

The job packages the source into an HLS set next to a thumbnail extracted
locally with ffmpeg; ``PollingPublisher`` waits for both to appear.
"""

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from transcode_worker.core.logging import log_info
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.errors import TranscodeFailedError
from transcode_worker.modules.pipeline.ffmpeg import FFmpegCommandBuilder, ProcessRunner, run_process
from transcode_worker.modules.pipeline.models import (
    FetchedSource,
    ProbeResult,
    RenditionSpec,
    RunContext,
    TranscodeOutcome,
)
from transcode_worker.modules.pipeline.transcoder import FFmpegStepRunner, Transcoder, should_clip

logger = logging.getLogger(__name__)

HLS_RENDITION = "hls"

# Minimal job: an HLS group whose single output is the prototype for each
# configured rendition, plus a frame capture of the first seconds
DEFAULT_JOB_TEMPLATE: dict[str, Any] = {
    "TimecodeConfig": {"Source": "ZEROBASED"},
    "Inputs": [
        {
            "FileInput": "",
            "TimecodeSource": "ZEROBASED",
            "AudioSelectors": {"Audio Selector 1": {"DefaultSelection": "DEFAULT"}},
            "VideoSelector": {},
            "InputClippings": [],
        }
    ],
    "OutputGroups": [
        {
            "Name": "Apple HLS",
            "OutputGroupSettings": {
                "Type": "HLS_GROUP_SETTINGS",
                "HlsGroupSettings": {
                    "SegmentLength": 6,
                    "MinSegmentLength": 0,
                    "Destination": "",
                },
            },
            "Outputs": [
                {
                    "NameModifier": "_720p",
                    "ContainerSettings": {"Container": "M3U8", "M3u8Settings": {}},
                    "VideoDescription": {
                        "Width": 1280,
                        "Height": 720,
                        "CodecSettings": {
                            "Codec": "H_264",
                            "H264Settings": {
                                "RateControlMode": "QVBR",
                                "MaxBitrate": 5000000,
                                "SceneChangeDetect": "TRANSITION_DETECTION",
                            },
                        },
                    },
                    "AudioDescriptions": [
                        {
                            "CodecSettings": {
                                "Codec": "AAC",
                                "AacSettings": {
                                    "Bitrate": 96000,
                                    "CodingMode": "CODING_MODE_2_0",
                                    "SampleRate": 48000,
                                },
                            }
                        }
                    ],
                    "OutputSettings": {"HlsSettings": {}},
                }
            ],
        },
        {
            "Name": "File Group",
            "OutputGroupSettings": {
                "Type": "FILE_GROUP_SETTINGS",
                "FileGroupSettings": {"Destination": ""},
            },
            "Outputs": [
                {
                    "NameModifier": "_frame",
                    "ContainerSettings": {"Container": "RAW"},
                    "VideoDescription": {
                        "CodecSettings": {
                            "Codec": "FRAME_CAPTURE",
                            "FrameCaptureSettings": {
                                "FramerateNumerator": 1,
                                "FramerateDenominator": 1,
                                "MaxCaptures": 1,
                                "Quality": 80,
                            },
                        }
                    },
                }
            ],
        },
    ],
}


def load_job_template(path: Optional[str] = None) -> dict[str, Any]:
    """Load job settings from a JSON file, or copy the built-in default.

    A file exported from the MediaConvert console wraps the settings in a
    top-level ``Settings`` key; both shapes are accepted.
    """
    if not path:
        return copy.deepcopy(DEFAULT_JOB_TEMPLATE)
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if "Settings" in data and "Inputs" not in data:
        data = data["Settings"]
    if not data.get("Inputs"):
        raise ValueError(f"Job template has no inputs: {path}")
    return data


def format_timecode(seconds: float) -> str:
    """Format whole seconds as a ``HH:MM:SS:FF`` timecode with zero frames."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}:00"


def hls_output(prototype: dict[str, Any], spec: RenditionSpec) -> dict[str, Any]:
    """Clone an HLS output for one rendition."""
    output = copy.deepcopy(prototype)
    output["NameModifier"] = f"_{spec.output_suffix}"
    video = output.setdefault("VideoDescription", {})
    video["Width"] = spec.width
    video["Height"] = spec.height
    return output


def build_job_settings(
    template: dict[str, Any],
    source_uri: str,
    destination: str,
    clip_seconds: Optional[float] = None,
    renditions: Sequence[RenditionSpec] = (),
) -> dict[str, Any]:
    """Fill a job template for one source.

    Args:
        template: Job settings template; not modified
        source_uri: ``s3://bucket/key`` of the source
        destination: ``s3://`` prefix every output group writes under
        clip_seconds: Keep only this many leading seconds, or None for all
        renditions: When given, the HLS group gets one output per rendition,
            cloned from the group's first output with the rendition's size
            and name modifier. Empty keeps the template's outputs as written.

    Returns:
        Settings for ``create_job``
    """
    settings = copy.deepcopy(template)
    job_input = settings["Inputs"][0]
    job_input["FileInput"] = source_uri
    if clip_seconds is not None:
        job_input["InputClippings"] = [
            {
                "StartTimecode": format_timecode(0),
                "EndTimecode": format_timecode(clip_seconds),
            }
        ]
    else:
        job_input["InputClippings"] = []

    for group in settings.get("OutputGroups", []):
        group_settings = group.get("OutputGroupSettings", {})
        if "HlsGroupSettings" in group_settings:
            group_settings["HlsGroupSettings"]["Destination"] = destination
            if renditions and group.get("Outputs"):
                group["Outputs"] = [hls_output(group["Outputs"][0], spec) for spec in renditions]
        if "FileGroupSettings" in group_settings:
            group_settings["FileGroupSettings"]["Destination"] = destination
    return settings


class RemoteJobTranscoder(Transcoder):
    """Submits a MediaConvert job and returns without waiting for it."""

    def __init__(
        self,
        config: PipelineConfig,
        commands: FFmpegCommandBuilder,
        runner: ProcessRunner = run_process,
        client_factory: Callable[..., Any] = boto3.client,
    ):
        self.config = config
        self.steps = FFmpegStepRunner(commands, config.transcode_timeout, runner)
        self.client_factory = client_factory

    def _resolve_endpoint(self) -> str:
        if self.config.mediaconvert_endpoint:
            return self.config.mediaconvert_endpoint
        client = self.client_factory("mediaconvert", region_name=self.config.storage_region)
        endpoints = client.describe_endpoints().get("Endpoints") or []
        if not endpoints:
            raise TranscodeFailedError("No MediaConvert endpoint available", rendition=HLS_RENDITION)
        return endpoints[0]["Url"]

    def _submit(self, settings: dict[str, Any]) -> str:
        endpoint = self._resolve_endpoint()
        client = self.client_factory(
            "mediaconvert",
            region_name=self.config.storage_region,
            endpoint_url=endpoint,
        )
        response = client.create_job(Role=self.config.mediaconvert_role_arn, Settings=settings)
        return response["Job"]["Id"]

    async def transcode(
        self,
        ctx: RunContext,
        fetched: FetchedSource,
        probe: ProbeResult,
    ) -> TranscodeOutcome:
        basename = ctx.source.basename
        thumbnail = await self.steps.thumbnail(ctx, fetched.input_ref, self.config.thumbnail_offset)

        clipped = should_clip(probe.duration_seconds, self.config)
        try:
            template = load_job_template(self.config.mediaconvert_template_path)
        except (OSError, ValueError) as e:
            raise TranscodeFailedError(
                "Cannot load job template", rendition=HLS_RENDITION, detail=str(e)
            ) from e

        settings = build_job_settings(
            template,
            source_uri=fetched.storage_uri,
            destination=f"s3://{self.config.destination_bucket}/{basename}/",
            clip_seconds=self.config.clip_threshold_seconds if clipped else None,
            # A loaded template describes its own outputs
            renditions=() if self.config.mediaconvert_template_path else self.config.renditions,
        )

        try:
            job_id = await asyncio.to_thread(self._submit, settings)
        except (ClientError, BotoCoreError, KeyError) as e:
            raise TranscodeFailedError(
                "MediaConvert job submission failed", rendition=HLS_RENDITION, detail=str(e)
            ) from e

        log_info(logger, "MediaConvert job created", job_id=job_id, clipped=clipped)
        return TranscodeOutcome(clipped=clipped, thumbnail=thumbnail, job_id=job_id)
