"""Tests for settings, pipeline configuration and rendition naming."""

import pytest

from transcode_worker.core.config import Settings
from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.models import (
    DEFAULT_RENDITIONS,
    FetchMode,
    OutputContainer,
    PipelineMode,
    RenditionSpec,
    RunContext,
    SourceRef,
    new_correlation_id,
)


class TestRenditionSpec:
    def test_default_output_keys(self) -> None:
        high, low = DEFAULT_RENDITIONS
        assert high.output_key("demo") == "high/demo_720p.ts"
        assert low.output_key("demo") == "low/demo_360p.ts"
        assert high.notification_field == "highResolutionUrl"
        assert high.content_type == "video/mp2t"

    def test_from_dict(self) -> None:
        spec = RenditionSpec.from_dict(
            {"label": "web", "width": 854, "height": 480, "container": "mp4", "payload_field": "webUrl"}
        )
        assert spec.container == OutputContainer.MP4
        assert spec.output_key("a") == "web/a_480p.mp4"
        assert spec.content_type == "video/mp4"
        assert spec.notification_field == "webUrl"


class TestPipelineConfig:
    def test_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,
            SOURCE_BUCKET="media-in",
            DESTINATION_BUCKET="media-out",
            PIPELINE_MODE="REMOTE",
            FETCH_MODE="download",
            RENDITIONS=[{"label": "only", "width": 640, "height": 360}],
            MAX_CONCURRENCY=4,
        )
        config = PipelineConfig.from_settings(settings)

        assert config.mode == PipelineMode.REMOTE
        assert config.fetch_mode == FetchMode.DOWNLOAD
        assert [spec.label for spec in config.renditions] == ["only"]
        assert config.max_concurrency == 4
        assert config.pipeline_suffixes == ("_cfr",)

    def test_defaults_to_two_renditions(self) -> None:
        config = PipelineConfig.from_settings(Settings(_env_file=None))
        assert config.renditions == DEFAULT_RENDITIONS
        assert config.presigned_url_expires == 60
        assert config.poll_max_attempts == 5

    @pytest.mark.parametrize(
        "overrides",
        [
            {"renditions": ()},
            {"renditions": (DEFAULT_RENDITIONS[0], DEFAULT_RENDITIONS[0])},
            {"max_concurrency": 0},
            {"poll_max_attempts": 0},
            {"renditions": (RenditionSpec(label="hls", width=1280, height=720, container=OutputContainer.M3U8),)},
            {
                "renditions": (
                    RenditionSpec(label="a", width=1280, height=720, folder="video", suffix="hd"),
                    RenditionSpec(label="b", width=640, height=360, folder="video", suffix="hd"),
                )
            },
        ],
        ids=["no-renditions", "duplicate-label", "no-concurrency", "no-polls", "no-ffmpeg-muxer", "shared-output-key"],
    )
    def test_invalid_configuration(self, overrides: dict) -> None:
        with pytest.raises(ValueError):
            PipelineConfig(source_bucket="in", destination_bucket="out", **overrides)


class TestRunContext:
    def test_paths_live_in_private_directory(self, tmp_path) -> None:
        source = SourceRef(bucket="in", key="uploads/a.mp4", basename="a")
        first = RunContext.create(source, str(tmp_path), new_correlation_id())
        second = RunContext.create(source, str(tmp_path), new_correlation_id())

        assert first.work_dir != second.work_dir
        path = first.path_for("a.mp4")
        assert path.parent == first.work_dir
        assert first.temp_paths == [path]
        first.register(path)
        assert first.temp_paths == [path]


class TestRenditionValidation:
    def test_playlist_container_from_settings_is_rejected(self) -> None:
        settings = Settings(
            _env_file=None,
            RENDITIONS=[{"label": "hls", "width": 1280, "height": 720, "container": "m3u8"}],
        )
        with pytest.raises(ValueError, match="ffmpeg cannot write"):
            PipelineConfig.from_settings(settings)

    def test_same_folder_with_distinct_suffixes_is_accepted(self) -> None:
        config = PipelineConfig(
            source_bucket="in",
            destination_bucket="out",
            renditions=(
                RenditionSpec(label="a", width=1280, height=720, folder="video"),
                RenditionSpec(label="b", width=640, height=360, folder="video"),
            ),
        )
        assert [spec.output_key("x") for spec in config.renditions] == ["video/x_720p.ts", "video/x_360p.ts"]
