"""Worker modules.

This package contains the feature modules of the transcode worker:
- pipeline: Source location, fetching, probing, transcoding, publishing,
  notification, the orchestrator that sequences them and the Celery task
  that redelivers failed runs
"""
