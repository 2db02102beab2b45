"""SyncJob model — the durable state of one batch import / sync run."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column

from leadsync.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class SyncJob(Base, UUIDMixin, TimestampMixin):
    """Tracks one job: identity, status, counters, cursor, and bounded error log.

    Field names and status values are read by dashboards and operational
    tooling; treat them as a stable contract.
    """

    __tablename__ = "sync_jobs"

    job_type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending", server_default="pending")

    # Source / target / mapping (fixed at creation)
    source_locator: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    target_descriptor: Mapped[str] = mapped_column(String(100), nullable=False)
    mapping_set_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("mapping_sets.id", ondelete="RESTRICT"), nullable=False
    )
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False)
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    write_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="insert", server_default="insert")
    conflict_key: Mapped[str] = mapped_column(String(100), nullable=False, default="id", server_default="id")

    # Counters
    total_records: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # Bounded error log: list of {"context": ..., "message": ...}
    errors: Mapped[list[dict[str, str]]] = mapped_column(JSONType, nullable=False, default=list)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Resumption and cooperative control
    cursor: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    control_request: Mapped[str | None] = mapped_column(String(20), nullable=True)
    pause_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    heartbeat_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_sync_jobs_status", "status"),
        Index("ix_sync_jobs_job_type", "job_type"),
    )
