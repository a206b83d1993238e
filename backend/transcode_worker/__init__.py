"""Transcode Worker.

Reacts to newly stored media objects, produces derived renditions with
FFmpeg or AWS MediaConvert, publishes them to object storage and reports
the result to a metadata callback.

Modules:
    - core: Configuration, logging, object storage, Celery setup
    - modules.pipeline: Per-event transcode orchestration pipeline
"""

__version__ = "0.1.0"
