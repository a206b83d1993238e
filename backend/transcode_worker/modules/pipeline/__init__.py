"""Transcode pipeline: locate, fetch, probe, transcode, publish, notify."""

from transcode_worker.modules.pipeline.config import PipelineConfig
from transcode_worker.modules.pipeline.errors import PipelineError
from transcode_worker.modules.pipeline.orchestrator import PipelineOrchestrator
from transcode_worker.modules.pipeline.schemas import PipelineResult
from transcode_worker.modules.pipeline.service import build_orchestrator, handle_event, run_pipeline

__all__ = [
    "PipelineConfig",
    "PipelineError",
    "PipelineOrchestrator",
    "PipelineResult",
    "build_orchestrator",
    "handle_event",
    "run_pipeline",
]
