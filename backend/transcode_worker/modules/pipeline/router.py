"""Ingest API for storage notifications."""

from fastapi import APIRouter, status

from transcode_worker.modules.pipeline.locator import split_records
from transcode_worker.modules.pipeline.schemas import StorageEvent, StorageEventAccepted
from transcode_worker.modules.pipeline.tasks import process_storage_event

router = APIRouter(prefix="/events", tags=["events"])


@router.post(
    "/storage",
    response_model=StorageEventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def receive_storage_event(event: StorageEvent) -> StorageEventAccepted:
    """Queue one pipeline run per record of a storage notification."""
    payload = event.model_dump(by_alias=True, exclude_none=True)
    task_ids = [
        process_storage_event.delay(record_event).id
        for record_event in split_records(payload)
    ]
    return StorageEventAccepted(task_ids=task_ids, records=len(task_ids))
