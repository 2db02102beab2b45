"""Sync job Pydantic v2 request/response schemas."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from leadsync.schemas.common import PaginationMeta

JobType = Literal["csv_import", "crm_resync", "export"]
WriteModeName = Literal["insert", "upsert", "sync"]


class SyncJobCreateRequest(BaseModel):
    """Create a job from an existing source (server-side file, CRM filter, or local table)."""

    job_type: JobType
    source_locator: dict[str, Any] = Field(
        description=(
            '{"kind": "csv_file", "path": ...}, {"kind": "crm_api", "filters": {...}}, or '
            '{"kind": "table", "table": ..., "date_from": ..., "date_to": ...}'
        ),
    )
    target_descriptor: str = Field(default="leads", description="Destination table name")
    mapping_set_id: UUID
    batch_size: int | None = Field(default=None, ge=1, le=5000, description="Records per chunk")
    dry_run: bool = Field(default=False, description="Only count the source records")
    write_mode: WriteModeName | None = Field(default=None, description="Defaults per job type")
    conflict_key: str = Field(default="id", description="Column used by upsert/sync")
    start: bool = Field(default=True, description="Start the job immediately")


class SyncJobError(BaseModel):
    """One entry of a job's bounded error log."""

    context: str
    message: str


class SyncJobResponse(BaseModel):
    """Full job state, the contract read by dashboards and tooling."""

    id: UUID
    job_type: str
    status: str
    source_locator: dict[str, Any]
    target_descriptor: str
    mapping_set_id: UUID
    batch_size: int
    dry_run: bool
    write_mode: str
    conflict_key: str
    total_records: int | None = None
    processed: int
    succeeded: int
    failed: int
    skipped: int
    errors: list[SyncJobError] = Field(default_factory=list)
    error_message: str | None = None
    cursor: dict[str, Any] | None = None
    control_request: str | None = None
    pause_reason: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    heartbeat_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def progress_percent(self) -> float | None:
        if not self.total_records:
            return None
        return round(min(100.0, 100.0 * self.processed / self.total_records), 1)


class PaginatedSyncJobResponse(BaseModel):
    """Paginated list of sync jobs."""

    items: list[SyncJobResponse]
    pagination: PaginationMeta
