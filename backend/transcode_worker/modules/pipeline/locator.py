"""Source locator: storage notification to validated SourceRef."""

import logging
import re
from pathlib import PurePosixPath
from typing import Any, Sequence
from urllib.parse import unquote

from pydantic import ValidationError

from transcode_worker.core.logging import log_info
from transcode_worker.modules.pipeline.errors import InvalidSourceError
from transcode_worker.modules.pipeline.models import SourceRef
from transcode_worker.modules.pipeline.schemas import StorageEvent

logger = logging.getLogger(__name__)

# A '%' that does not start a two-digit hex escape
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def decode_object_key(raw_key: str) -> str:
    """Decode an S3 notification key: '+' is a space, then percent-decode.

    Raises:
        InvalidSourceError: If an escape is malformed or the bytes are not UTF-8
    """
    spaced = raw_key.replace("+", " ")
    if _BAD_ESCAPE.search(spaced):
        raise InvalidSourceError(f"Malformed percent-encoding in key: {raw_key!r}")
    try:
        return unquote(spaced, encoding="utf-8", errors="strict")
    except UnicodeDecodeError as e:
        raise InvalidSourceError(f"Key is not valid UTF-8 once decoded: {raw_key!r}") from e


def strip_pipeline_suffixes(stem: str, suffixes: Sequence[str]) -> str:
    """Remove suffixes the pipeline itself appends (e.g. ``_cfr``).

    Stripping repeats until no suffix matches, so ``a_cfr_cfr`` becomes
    ``a``; a stem that is nothing but a suffix is kept as is.
    """
    stripped = True
    while stripped:
        stripped = False
        for suffix in suffixes:
            if suffix and stem.endswith(suffix) and len(stem) > len(suffix):
                stem = stem[: -len(suffix)]
                stripped = True
    return stem


def derive_basename(key: str, suffixes: Sequence[str]) -> str:
    """File name without extension or pipeline suffixes."""
    return strip_pipeline_suffixes(PurePosixPath(key).stem, suffixes)


def derive_video_code(key: str, input_prefix: str, suffixes: Sequence[str]) -> str:
    """Stable identifier of a source for the metadata service.

    ``uploads/clip_cfr.mp4`` and ``uploads/clip.mp4`` map to the same code
    so reprocessing is idempotent downstream.
    """
    return f"{input_prefix}{derive_basename(key, suffixes)}"


def split_records(event: dict[str, Any]) -> list[dict[str, Any]]:
    """Split a multi-record notification into single-record events."""
    records = event.get("Records") or []
    return [{"Records": [record]} for record in records]


class SourceLocator:
    """Resolves the first record of a storage event into a SourceRef."""

    def __init__(
        self,
        input_prefix: str,
        pipeline_suffixes: Sequence[str] = (),
        default_bucket: str = "",
    ):
        self.input_prefix = input_prefix
        self.pipeline_suffixes = tuple(pipeline_suffixes)
        self.default_bucket = default_bucket

    def locate(self, event: dict[str, Any]) -> SourceRef:
        """Validate the event and return the source identity.

        Raises:
            InvalidSourceError: If the event is malformed, the key has no
                extension, or the key is outside the input prefix
        """
        try:
            notification = StorageEvent.model_validate(event)
        except ValidationError as e:
            raise InvalidSourceError("Event is not a storage notification", detail=str(e)) from e

        record = notification.records[0]
        key = decode_object_key(record.s3.object.key)
        bucket = record.s3.bucket.name or self.default_bucket

        if not bucket:
            raise InvalidSourceError(f"No bucket given for key {key!r}")
        # Rejecting keys outside the input area keeps the pipeline from
        # consuming its own output when both share a bucket.
        if not key.startswith(self.input_prefix):
            raise InvalidSourceError(f"Key {key!r} is not under {self.input_prefix!r}")
        name = PurePosixPath(key)
        if not name.suffix or not name.stem:
            raise InvalidSourceError(f"Key {key!r} has no file extension")

        source = SourceRef(
            bucket=bucket,
            key=key,
            basename=derive_basename(key, self.pipeline_suffixes),
        )
        log_info(logger, "Source located", bucket=bucket, key=key, basename=source.basename)
        return source
