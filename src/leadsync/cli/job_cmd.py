"""Sync job CLI commands: start, inspect, and control import, resync, and export jobs."""

import asyncio
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import typer

job_app = typer.Typer()


def _print_job(job: Any) -> None:
    """Echo a one-screen summary of a job."""
    typer.echo(f"Job {job.id} ({job.job_type})")
    typer.echo(f"  Status:      {job.status}")
    if job.pause_reason:
        typer.echo(f"  Reason:      {job.pause_reason}")
    typer.echo(f"  Total:       {job.total_records if job.total_records is not None else '?'}")
    typer.echo(f"  Processed:   {job.processed}")
    typer.echo(f"  Succeeded:   {job.succeeded}")
    typer.echo(f"  Failed:      {job.failed}")
    typer.echo(f"  Skipped:     {job.skipped}")
    if job.error_message:
        typer.echo(f"  Error:       {job.error_message}")
    for entry in (job.errors or [])[:10]:
        typer.echo(f"    - {entry.get('context')}: {entry.get('message')}")


async def _resolve_mapping_set_id(session: Any, mapping_set_id: str | None) -> uuid.UUID:
    from leadsync.services.mapping_service import seed_default_mapping

    if mapping_set_id:
        return uuid.UUID(mapping_set_id)
    mapping_set = await seed_default_mapping(session)
    typer.echo(f"Using mapping set {mapping_set.name} v{mapping_set.version}")
    return mapping_set.id


async def _create_and_run(
    *,
    job_type: str,
    source_locator: dict[str, Any],
    mapping_set_id: str | None,
    target: str,
    batch_size: int | None,
    dry_run: bool,
    write_mode: str | None,
    conflict_key: str,
) -> None:
    """Create a job and run it in the foreground until it stops."""
    from leadsync.core.background import supervisor
    from leadsync.core.config import get_settings
    from leadsync.core.database import dispose_engine, get_session_factory, init_engine
    from leadsync.services.sync_job_service import create_sync_job, get_sync_job, start_sync_job

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            job = await create_sync_job(
                session,
                job_type=job_type,
                source_locator=source_locator,
                target_descriptor=target,
                mapping_set_id=await _resolve_mapping_set_id(session, mapping_set_id),
                batch_size=batch_size,
                dry_run=dry_run,
                write_mode=write_mode,
                conflict_key=conflict_key,
                settings=settings,
            )
            typer.echo(f"Sync job created: {job.id}")

        start_sync_job(job.id, settings=settings, session_factory=factory)
        await supervisor.join(job.id)

        async with factory() as session:
            _print_job(await get_sync_job(session, job.id))
    finally:
        await dispose_engine()


@job_app.command("import-csv")
def import_csv(
    file: Path = typer.Argument(..., help="Path to the lead CSV file", exists=True, dir_okay=False),  # noqa: B008
    mapping_set_id: str | None = typer.Option(None, "--mapping-set", help="Mapping set id (default: built-in)"),
    target: str = typer.Option("leads", "--target", help="Destination table"),
    batch_size: int | None = typer.Option(None, "--batch-size", help="Rows per chunk"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count the rows"),
    write_mode: str | None = typer.Option(None, "--write-mode", help="insert, upsert, or sync"),
    conflict_key: str = typer.Option("id", "--conflict-key", help="Column used by upsert/sync"),
) -> None:
    """Import a CSV file as a background job and wait for it.

    The file is copied into the upload directory first; the copy is
    deleted once the job succeeds and the original is left alone.
    """
    from leadsync.core.config import get_settings

    upload_dir = Path(get_settings().upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    staged = upload_dir / f"{uuid.uuid4()}.csv"
    shutil.copyfile(file, staged)

    asyncio.run(
        _create_and_run(
            job_type="csv_import",
            source_locator={"kind": "csv_file", "path": str(staged), "file_name": file.name},
            mapping_set_id=mapping_set_id,
            target=target,
            batch_size=batch_size,
            dry_run=dry_run,
            write_mode=write_mode,
            conflict_key=conflict_key,
        )
    )


@job_app.command("resync-crm")
def resync_crm(
    updated_since: datetime | None = typer.Option(None, "--updated-since", help="Only leads modified since"),  # noqa: B008
    date_from: datetime | None = typer.Option(None, "--date-from", help="Only leads created from"),  # noqa: B008
    date_to: datetime | None = typer.Option(None, "--date-to", help="Only leads created until"),  # noqa: B008
    ids: list[str] | None = typer.Option(None, "--id", help="Lead id (repeatable)"),  # noqa: B008
    base_url: str | None = typer.Option(None, "--base-url", help="CRM webhook base URL"),
    mapping_set_id: str | None = typer.Option(None, "--mapping-set", help="Mapping set id (default: built-in)"),
    target: str = typer.Option("leads", "--target", help="Destination table"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count the matching leads"),
    write_mode: str | None = typer.Option(None, "--write-mode", help="insert, upsert, or sync"),
) -> None:
    """Re-pull leads from the CRM and upsert them into the target."""
    filters: dict[str, Any] = {}
    if updated_since:
        filters["updated_since"] = updated_since.isoformat()
    if date_from:
        filters["date_from"] = date_from.isoformat()
    if date_to:
        filters["date_to"] = date_to.isoformat()
    if ids:
        filters["ids"] = ids
    locator: dict[str, Any] = {"kind": "crm_api", "filters": filters}
    if base_url:
        locator["base_url"] = base_url

    asyncio.run(
        _create_and_run(
            job_type="crm_resync",
            source_locator=locator,
            mapping_set_id=mapping_set_id,
            target=target,
            batch_size=None,
            dry_run=dry_run,
            write_mode=write_mode,
            conflict_key="id",
        )
    )


@job_app.command("export")
def export(
    target: str = typer.Option(..., "--target", help="Destination table"),
    table: str = typer.Option("leads", "--table", help="Table to export from"),
    date_from: datetime | None = typer.Option(None, "--date-from", help="First day modified (UTC)"),  # noqa: B008
    date_to: datetime | None = typer.Option(None, "--date-to", help="Last day modified (UTC)"),  # noqa: B008
    mapping_set_id: str | None = typer.Option(None, "--mapping-set", help="Mapping set id (default: built-in)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count the matching rows"),
    write_mode: str | None = typer.Option(None, "--write-mode", help="insert, upsert, or sync"),
) -> None:
    """Export rows modified in a date window into the target, newest copy wins."""
    locator: dict[str, Any] = {"kind": "table", "table": table}
    if date_from:
        locator["date_from"] = date_from.date().isoformat()
    if date_to:
        locator["date_to"] = date_to.date().isoformat()

    asyncio.run(
        _create_and_run(
            job_type="export",
            source_locator=locator,
            mapping_set_id=mapping_set_id,
            target=target,
            batch_size=None,
            dry_run=dry_run,
            write_mode=write_mode,
            conflict_key="id",
        )
    )


@job_app.command("status")
def status(job_id: str = typer.Argument(..., help="Sync job id")) -> None:
    """Show a job's persisted state."""
    asyncio.run(_status(uuid.UUID(job_id)))


async def _status(job_id: uuid.UUID) -> None:
    from leadsync.core.config import get_settings
    from leadsync.core.database import dispose_engine, get_session_factory, init_engine
    from leadsync.services.sync_job_service import get_sync_job

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        async with get_session_factory()() as session:
            job = await get_sync_job(session, job_id)
        if job is None:
            typer.echo(f"Sync job {job_id} not found", err=True)
            raise typer.Exit(code=1)
        _print_job(job)
    finally:
        await dispose_engine()


@job_app.command("list")
def list_jobs(
    job_status: str | None = typer.Option(None, "--status", help="Filter by status"),
    job_type: str | None = typer.Option(None, "--type", help="Filter by job type"),
    limit: int = typer.Option(20, "--limit", help="Maximum jobs to show"),
) -> None:
    """List recent jobs, newest first."""
    asyncio.run(_list(job_status, job_type, limit))


async def _list(job_status: str | None, job_type: str | None, limit: int) -> None:
    from leadsync.core.config import get_settings
    from leadsync.core.database import dispose_engine, get_session_factory, init_engine
    from leadsync.services.sync_job_service import list_sync_jobs

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        async with get_session_factory()() as session:
            jobs, total = await list_sync_jobs(session, status=job_status, job_type=job_type, page_size=limit)
        typer.echo(f"{len(jobs)} of {total} job(s)")
        for job in jobs:
            typer.echo(
                f"  {job.id}  {job.job_type:<11} {job.status:<21} "
                f"{job.processed}/{job.total_records if job.total_records is not None else '?'}"
            )
    finally:
        await dispose_engine()


async def _control(action: str, job_id: uuid.UUID) -> None:
    """Pause, resume, or cancel a job; resume runs it in the foreground."""
    from leadsync.core.background import supervisor
    from leadsync.core.config import get_settings
    from leadsync.core.database import dispose_engine, get_session_factory, init_engine
    from leadsync.lib.sync_engine.errors import SyncEngineError
    from leadsync.services import sync_job_service

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        factory = get_session_factory()
        async with factory() as session:
            try:
                if action == "pause":
                    job = await sync_job_service.pause_sync_job(session, job_id)
                elif action == "cancel":
                    job = await sync_job_service.cancel_sync_job(session, job_id, settings=settings)
                else:
                    job = await sync_job_service.resume_sync_job(
                        session, job_id, settings=settings, session_factory=factory
                    )
            except SyncEngineError as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e

        if action == "resume":
            await supervisor.join(job_id)
            async with factory() as session:
                job = await sync_job_service.get_sync_job(session, job_id)
        _print_job(job)
    finally:
        await dispose_engine()


@job_app.command("pause")
def pause(job_id: str = typer.Argument(..., help="Sync job id")) -> None:
    """Request a pause of a processing job."""
    asyncio.run(_control("pause", uuid.UUID(job_id)))


@job_app.command("resume")
def resume(job_id: str = typer.Argument(..., help="Sync job id")) -> None:
    """Resume a paused job from its cursor and wait for it."""
    asyncio.run(_control("resume", uuid.UUID(job_id)))


@job_app.command("cancel")
def cancel(job_id: str = typer.Argument(..., help="Sync job id")) -> None:
    """Cancel a job."""
    asyncio.run(_control("cancel", uuid.UUID(job_id)))


@job_app.command("recover-stale")
def recover_stale(
    older_than: int | None = typer.Option(None, "--older-than", help="Heartbeat age in seconds"),
) -> None:
    """Pause processing jobs whose worker has gone away."""
    asyncio.run(_recover_stale(older_than))


async def _recover_stale(older_than: int | None) -> None:
    from leadsync.core.config import get_settings
    from leadsync.core.database import dispose_engine, get_session_factory, init_engine
    from leadsync.services.sync_job_service import recover_stale_jobs

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        async with get_session_factory()() as session:
            recovered = await recover_stale_jobs(session, older_than=older_than or settings.stale_job_timeout)
        typer.echo(f"Paused {len(recovered)} orphaned job(s)")
        for job in recovered:
            typer.echo(f"  {job.id}  cursor={job.cursor}")
    finally:
        await dispose_engine()
