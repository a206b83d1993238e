"""Content fetcher: local download or presigned reference."""

import asyncio
import logging

from transcode_worker.core.logging import log_info
from transcode_worker.core.storage import ObjectNotFoundError, StorageBackend, StorageError
from transcode_worker.modules.pipeline.errors import FetchFailedError
from transcode_worker.modules.pipeline.models import FetchedSource, FetchMode, RunContext

logger = logging.getLogger(__name__)


class ContentFetcher:
    """Makes the source readable by an external process."""

    def __init__(
        self,
        storage: StorageBackend,
        mode: FetchMode = FetchMode.PRESIGNED,
        presigned_url_expires: int = 60,
    ):
        self.storage = storage
        self.mode = mode
        self.presigned_url_expires = presigned_url_expires

    async def fetch(self, ctx: RunContext) -> FetchedSource:
        """Download the source or presign it.

        Raises:
            FetchFailedError: On any storage failure or an empty download
        """
        source = ctx.source
        try:
            if self.mode == FetchMode.DOWNLOAD:
                return await self._download(ctx)
            url = await asyncio.to_thread(
                self.storage.presign, source.bucket, source.key, self.presigned_url_expires
            )
        except ObjectNotFoundError as e:
            raise FetchFailedError(f"Source object not found: {source.uri}", detail=str(e)) from e
        except StorageError as e:
            raise FetchFailedError(f"Failed to fetch {source.uri}", detail=str(e)) from e

        log_info(logger, "Source presigned", key=source.key, expires_in=self.presigned_url_expires)
        return FetchedSource(input_ref=url, storage_uri=source.uri)

    async def _download(self, ctx: RunContext) -> FetchedSource:
        source = ctx.source
        destination = ctx.path_for(source.filename)
        byte_size = await asyncio.to_thread(
            self.storage.download, source.bucket, source.key, str(destination)
        )
        if byte_size <= 0:
            raise FetchFailedError(f"Downloaded source is empty: {source.uri}")

        log_info(logger, "Source downloaded", key=source.key, byte_size=byte_size)
        return FetchedSource(
            input_ref=str(destination),
            storage_uri=source.uri,
            local_path=destination,
        )
