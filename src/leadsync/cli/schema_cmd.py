"""Schema drift CLI commands."""

import asyncio

import typer

schema_app = typer.Typer()


@schema_app.command("diff")
def diff(
    source_url: str = typer.Option(..., "--source-url", help="Async connection string of the source database"),
    table: str = typer.Option("leads", "--table", help="Target table"),
    source_table: str | None = typer.Option(None, "--source-table", help="Source table (default: same name)"),
    apply: bool = typer.Option(False, "--apply", help="Execute the planned DDL"),
) -> None:
    """Compare a source table with the target and add missing columns."""
    asyncio.run(_diff(source_url, table, source_table, apply))


async def _diff(source_url: str, table: str, source_table: str | None, apply: bool) -> None:
    from sqlalchemy.ext.asyncio import create_async_engine

    from leadsync.core.config import get_settings
    from leadsync.core.database import dispose_engine, get_engine, init_engine
    from leadsync.lib.sync_engine.errors import SyncEngineError
    from leadsync.services.schema_drift_service import reconcile_schema

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    source_engine = create_async_engine(source_url)
    try:
        try:
            result = await reconcile_schema(
                get_engine(),
                source_engine,
                table=table,
                source_table=source_table,
                schema=settings.database_schema,
                dry_run=not apply,
            )
        except SyncEngineError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e

        if result.in_sync:
            typer.echo(f"{table} is in sync ({result.target_column_count} columns)")
            return
        for column in result.unsupported:
            typer.echo(f"  unsupported: {column.name} ({column.data_type})")
        for statement in result.all_statements():
            typer.echo(f"  {statement};")
        typer.echo("Applied." if apply else "Dry run; pass --apply to execute.")
    finally:
        await source_engine.dispose()
        await dispose_engine()
