"""Sync job API endpoints.

POST /sync-jobs (create from a locator), POST /sync-jobs/upload (CSV upload),
GET /sync-jobs (history), GET /sync-jobs/{job_id} (status),
POST /sync-jobs/{job_id}/pause|resume|cancel (control),
GET /sync-jobs/{job_id}/events (server-sent progress events).
"""

import asyncio
import json
import math
import uuid
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Annotated

import aiofiles
from fastapi import APIRouter, Depends, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from leadsync.core.background import event_bus
from leadsync.core.config import Settings, get_settings
from leadsync.core.dependencies import get_async_session, require_api_key
from leadsync.lib.sync_engine.errors import (
    InvalidTransitionError,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobSetupError,
    ResumeInconsistencyError,
)
from leadsync.lib.sync_engine.state import TERMINAL_STATUSES
from leadsync.schemas.common import PaginationMeta, PaginationParams
from leadsync.schemas.sync_jobs import (
    JobType,
    PaginatedSyncJobResponse,
    SyncJobCreateRequest,
    SyncJobResponse,
    WriteModeName,
)
from leadsync.services import sync_job_service

sync_jobs_router = APIRouter(prefix="/sync-jobs", tags=["sync-jobs"], dependencies=[Depends(require_api_key)])

_UPLOAD_READ_SIZE = 1024 * 1024
_EVENT_KEEPALIVE_SECONDS = 15.0


@sync_jobs_router.post("", response_model=SyncJobResponse, status_code=202)
async def create_sync_job(
    body: SyncJobCreateRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SyncJobResponse:
    """Create a job and (by default) start it in the background."""
    try:
        job = await sync_job_service.create_sync_job(
            session,
            job_type=body.job_type,
            source_locator=body.source_locator,
            target_descriptor=body.target_descriptor,
            mapping_set_id=body.mapping_set_id,
            batch_size=body.batch_size,
            dry_run=body.dry_run,
            write_mode=body.write_mode,
            conflict_key=body.conflict_key,
            settings=settings,
        )
    except (JobSetupError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    response = SyncJobResponse.model_validate(job)
    if body.start:
        sync_job_service.start_sync_job(job.id, settings=settings)
    return response


@sync_jobs_router.post("/upload", response_model=SyncJobResponse, status_code=202)
async def upload_csv(
    file: UploadFile,
    mapping_set_id: Annotated[uuid.UUID, Form()],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    target_descriptor: Annotated[str, Form()] = "leads",
    batch_size: Annotated[int | None, Form(ge=1, le=5000)] = None,
    dry_run: Annotated[bool, Form()] = False,
    write_mode: Annotated[WriteModeName | None, Form()] = None,
    conflict_key: Annotated[str, Form()] = "id",
) -> SyncJobResponse:
    """Upload a CSV file and import it as a background job.

    The file is kept until the job succeeds so a paused or failed job can
    be resumed or retried against the same bytes.
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    upload_path = upload_dir / f"{uuid.uuid4()}.csv"

    written = 0
    too_large = False
    async with aiofiles.open(upload_path, "wb") as out:
        while chunk := await file.read(_UPLOAD_READ_SIZE):
            written += len(chunk)
            if written > settings.max_upload_bytes:
                too_large = True
                break
            await out.write(chunk)
    if too_large:
        upload_path.unlink(missing_ok=True)
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds maximum size of {settings.max_upload_bytes // (1024 * 1024)} MB",
        )

    try:
        job = await sync_job_service.create_sync_job(
            session,
            job_type="csv_import",
            source_locator={"kind": "csv_file", "path": str(upload_path), "file_name": file.filename},
            target_descriptor=target_descriptor,
            mapping_set_id=mapping_set_id,
            batch_size=batch_size,
            dry_run=dry_run,
            write_mode=write_mode,
            conflict_key=conflict_key,
            settings=settings,
        )
    except (JobSetupError, ValueError) as e:
        upload_path.unlink(missing_ok=True)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    response = SyncJobResponse.model_validate(job)
    sync_job_service.start_sync_job(job.id, settings=settings)
    return response


@sync_jobs_router.get("", response_model=PaginatedSyncJobResponse)
async def list_sync_jobs(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    pagination: Annotated[PaginationParams, Depends()],
    job_status: str | None = None,
    job_type: JobType | None = None,
) -> PaginatedSyncJobResponse:
    """List jobs newest first with optional filters."""
    jobs, total = await sync_job_service.list_sync_jobs(
        session, status=job_status, job_type=job_type, page=pagination.page, page_size=pagination.page_size
    )
    return PaginatedSyncJobResponse(
        items=[SyncJobResponse.model_validate(j) for j in jobs],
        pagination=PaginationMeta(
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=max(1, math.ceil(total / pagination.page_size)),
        ),
    )


@sync_jobs_router.get("/{job_id}", response_model=SyncJobResponse)
async def get_sync_job(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> SyncJobResponse:
    """Get job status by ID."""
    job = await sync_job_service.get_sync_job(session, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync job not found")
    return SyncJobResponse.model_validate(job)


@sync_jobs_router.post("/{job_id}/pause", response_model=SyncJobResponse)
async def pause_sync_job(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> SyncJobResponse:
    """Request a pause at the job's next chunk boundary."""
    try:
        job = await sync_job_service.pause_sync_job(session, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return SyncJobResponse.model_validate(job)


@sync_jobs_router.post("/{job_id}/resume", response_model=SyncJobResponse, status_code=202)
async def resume_sync_job(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SyncJobResponse:
    """Resume a paused job from its persisted cursor."""
    try:
        job = await sync_job_service.resume_sync_job(session, job_id, settings=settings)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except (InvalidTransitionError, JobAlreadyRunningError, ResumeInconsistencyError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return SyncJobResponse.model_validate(job)


@sync_jobs_router.post("/{job_id}/cancel", response_model=SyncJobResponse)
async def cancel_sync_job(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SyncJobResponse:
    """Cancel a job (immediately if idle, else at the next chunk boundary)."""
    try:
        job = await sync_job_service.cancel_sync_job(session, job_id, settings=settings)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return SyncJobResponse.model_validate(job)


def _sse(payload: dict) -> str:
    return f"event: status\ndata: {json.dumps(payload, default=str)}\n\n"


@sync_jobs_router.get("/{job_id}/events")
async def stream_sync_job_events(
    job_id: uuid.UUID,
    request: Request,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> StreamingResponse:
    """Stream the job's status payload as server-sent events.

    The current state is sent first, then one event per heartbeat until
    the job reaches a terminal status or the client disconnects.  Every
    event carries the same fields as ``GET /sync-jobs/{job_id}``.
    """
    # Subscribe before reading so a transition in between is not lost
    queue = event_bus.subscribe(job_id)
    job = await sync_job_service.get_sync_job(session, job_id)
    if job is None:
        event_bus.unsubscribe(job_id, queue)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync job not found")
    initial = SyncJobResponse.model_validate(job).model_dump(mode="json")

    async def _events() -> AsyncIterator[str]:
        try:
            yield _sse(initial)
            if initial["status"] in TERMINAL_STATUSES:
                return
            while not await request.is_disconnected():
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=_EVENT_KEEPALIVE_SECONDS)
                except TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse(payload)
                if payload.get("status") in TERMINAL_STATUSES:
                    break
        finally:
            event_bus.unsubscribe(job_id, queue)

    return StreamingResponse(_events(), media_type="text/event-stream")
