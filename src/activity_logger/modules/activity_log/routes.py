"""Activity log API routes."""

from typing import Annotated

from fastapi import APIRouter, Body, Query, status
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from activity_logger.core.constants import BULK_DELETE_SCOPE
from activity_logger.core.security.confirmation import delete_scope
from activity_logger.modules.activity_log.dependencies import (
    ActivityService,
    Confirmations,
    Deletions,
    Options,
    Recorder,
)
from activity_logger.modules.activity_log.events import EventPayload
from activity_logger.modules.activity_log.export import CSV_MEDIA_TYPE
from activity_logger.modules.activity_log.repos import validate_log_id
from activity_logger.modules.activity_log.schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    ConfirmationResponse,
    LogEntryRead,
    RecorderOptions,
    RecordResponse,
    SearchFilters,
    SearchResponse,
)


router = APIRouter(prefix="/activity-logs", tags=["activity-logs"])


# ============================================================
# Reads
# ============================================================


@router.get(
    "",
    response_model=list[LogEntryRead],
    summary="List log entries",
    description="Every entry, newest first.",
)
async def list_logs(service: ActivityService) -> list[LogEntryRead]:
    return list(await service.list_logs())


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search log entries",
    description="Filter by free text, username, action category and date range.",
)
async def search_logs(
    filters: Annotated[SearchFilters, Query()],
    service: ActivityService,
) -> SearchResponse:
    """Search results together with the username filter options."""
    logs = await service.search(filters)
    usernames = await service.distinct_usernames()
    return SearchResponse(logs=list(logs), usernames=list(usernames))


@router.get(
    "/usernames",
    response_model=list[str],
    summary="List usernames",
    description="Distinct usernames present in the log, ascending.",
)
async def list_usernames(service: ActivityService) -> list[str]:
    return list(await service.distinct_usernames())


@router.get(
    "/export",
    response_class=FileResponse,
    summary="Export CSV",
    description="Download the log (or a filtered subset) as a CSV file.",
)
async def export_logs(
    filters: Annotated[SearchFilters, Query()],
    service: ActivityService,
) -> FileResponse:
    """Stream a fully written CSV artifact, removing it once delivered."""
    artifact = await service.export(filters)
    return FileResponse(
        artifact.path,
        media_type=CSV_MEDIA_TYPE,
        filename=artifact.filename,
        background=BackgroundTask(artifact.discard),
    )


# ============================================================
# Event Ingestion
# ============================================================


@router.post(
    "/events",
    response_model=RecordResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record an event",
    description="Submit a host event. Ineligible or failed events are dropped; "
    "the response is 202 either way.",
)
async def record_event(
    event: Annotated[EventPayload, Body(discriminator="category")],
    recorder: Recorder,
) -> RecordResponse:
    return RecordResponse(id=await recorder.record(event))


# ============================================================
# Settings
# ============================================================


@router.get(
    "/settings",
    response_model=RecorderOptions,
    summary="Get recorder settings",
)
async def get_recorder_settings(options: Options) -> RecorderOptions:
    return await options.load()


@router.put(
    "/settings",
    response_model=RecorderOptions,
    summary="Update recorder settings",
)
async def update_recorder_settings(
    data: RecorderOptions,
    options: Options,
) -> RecorderOptions:
    return await options.save(data)


# ============================================================
# Deletion
# ============================================================


@router.get(
    "/bulk-delete/confirmation",
    response_model=ConfirmationResponse,
    summary="Issue bulk delete confirmation",
)
async def confirm_bulk_delete(confirmations: Confirmations) -> ConfirmationResponse:
    return ConfirmationResponse(
        scope=BULK_DELETE_SCOPE,
        token=confirmations.issue_bulk_delete(),
    )


@router.post(
    "/bulk-delete",
    response_model=BulkDeleteResponse,
    summary="Delete selected entries",
    description="Non-numeric ids are discarded; the remaining ids are deleted together.",
)
async def bulk_delete(
    data: BulkDeleteRequest,
    deletions: Deletions,
) -> BulkDeleteResponse:
    deleted = await deletions.bulk_delete(data.log_ids, data.token)
    return BulkDeleteResponse(deleted_ids=sorted(deleted))


@router.get(
    "/{log_id}/confirmation",
    response_model=ConfirmationResponse,
    summary="Issue delete confirmation",
)
async def confirm_delete(log_id: int, confirmations: Confirmations) -> ConfirmationResponse:
    log_id = validate_log_id(log_id)
    return ConfirmationResponse(
        scope=delete_scope(log_id),
        token=confirmations.issue_delete(log_id),
    )


@router.delete(
    "/{log_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete one entry",
    description="Requires a token from the matching confirmation endpoint. "
    "Deleting an id that does not exist succeeds.",
)
async def delete_log(
    log_id: str,
    deletions: Deletions,
    token: str | None = Query(None),
) -> None:
    await deletions.delete(log_id, token)
