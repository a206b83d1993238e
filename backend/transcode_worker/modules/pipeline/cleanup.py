"""Removal of a run's temporary files."""

import logging
import shutil

from transcode_worker.core.logging import log_warning
from transcode_worker.modules.pipeline.models import RunContext

logger = logging.getLogger(__name__)


def cleanup_run(ctx: RunContext) -> int:
    """Remove every registered path and the run directory.

    Never raises: a missing file is already clean, any other error is logged.

    Returns:
        Number of files removed
    """
    removed = 0
    for path in ctx.temp_paths:
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            log_warning(logger, "Failed to remove temporary file", path=str(path), error=str(e))

    try:
        shutil.rmtree(ctx.work_dir)
    except FileNotFoundError:
        pass
    except OSError as e:
        log_warning(logger, "Failed to remove run directory", path=str(ctx.work_dir), error=str(e))

    return removed
