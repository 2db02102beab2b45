"""Mapping set CLI commands."""

import asyncio
import uuid
from pathlib import Path

import typer

mapping_app = typer.Typer()


@mapping_app.command("seed-default")
def seed_default(
    force: bool = typer.Option(False, "--force", help="Create a new version even if one exists"),
) -> None:
    """Create the built-in lead mapping set."""
    asyncio.run(_seed_default(force))


async def _seed_default(force: bool) -> None:
    from leadsync.core.config import get_settings
    from leadsync.core.database import dispose_engine, get_session_factory, init_engine
    from leadsync.services.mapping_service import seed_default_mapping

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        async with get_session_factory()() as session:
            mapping_set = await seed_default_mapping(session, force=force)
        typer.echo(f"Mapping set {mapping_set.name} v{mapping_set.version}: {mapping_set.id}")
    finally:
        await dispose_engine()


@mapping_app.command("show")
def show(mapping_set_id: str = typer.Argument(..., help="Mapping set id")) -> None:
    """Print a mapping set's rules in evaluation order."""
    asyncio.run(_show(uuid.UUID(mapping_set_id)))


async def _show(mapping_set_id: uuid.UUID) -> None:
    from leadsync.core.config import get_settings
    from leadsync.core.database import dispose_engine, get_session_factory, init_engine
    from leadsync.services.mapping_service import get_mapping_set

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        async with get_session_factory()() as session:
            mapping_set = await get_mapping_set(session, mapping_set_id)
        if mapping_set is None:
            typer.echo(f"Mapping set {mapping_set_id} not found", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"{mapping_set.name} v{mapping_set.version}")
        for rule in mapping_set.rules:
            sources = " > ".join(s for s in (rule.primary_source, rule.secondary_source, rule.tertiary_source) if s)
            flag = "" if rule.active else " (inactive)"
            typer.echo(f"  {rule.target_field:<20} <- {sources} [{rule.transform}]{flag}")
    finally:
        await dispose_engine()


@mapping_app.command("suggest")
def suggest(
    file: Path = typer.Argument(..., help="CSV file whose header row is matched", exists=True, dir_okay=False),  # noqa: B008
) -> None:
    """Suggest mapping rules for a CSV file's header row."""
    import pandas as pd

    from leadsync.lib.mapping import suggest_rules
    from leadsync.lib.sources import detect_delimiter, detect_encoding

    encoding = detect_encoding(file)
    header = pd.read_csv(
        file, sep=detect_delimiter(file, encoding), encoding=encoding, nrows=0, dtype=str, keep_default_na=False
    )
    headers = [str(c).strip() for c in header.columns]
    rules = suggest_rules(headers)
    used = {source for rule in rules for source in rule.candidates}
    for rule in rules:
        typer.echo(f"  {rule.target_field:<20} <- {' > '.join(rule.candidates)} [{rule.transform}]")
    unmatched = [h for h in headers if h not in used]
    if unmatched:
        typer.echo(f"Unmatched headers: {', '.join(unmatched)}")
