"""Typer CLI root application with serve command."""

import typer

from leadsync.core.config import get_settings
from leadsync.core.logging import setup_logging

app = typer.Typer(name="leadsync", help="Lead import and CRM sync job CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "leadsync.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from leadsync.cli.db_cmd import db_app
    from leadsync.cli.job_cmd import job_app
    from leadsync.cli.mapping_cmd import mapping_app
    from leadsync.cli.schema_cmd import schema_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(job_app, name="job", help="Sync job commands")
    app.add_typer(mapping_app, name="mapping", help="Mapping set commands")
    app.add_typer(schema_app, name="schema", help="Target schema drift commands")


_register_subcommands()
