"""Command line entry point for zproxy."""

import json
import os
from typing import Annotated

import typer
import uvicorn
from rich.console import Console
from structlog import get_logger

from zproxy._version import __version__
from zproxy.config.settings import ConfigurationError, get_settings
from zproxy.core.logging import setup_logging


app = typer.Typer(
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()
logger = get_logger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"zproxy {__version__}")
        raise typer.Exit()


def validate_port(port: int | None) -> int | None:
    if port is not None and not 1 <= port <= 65535:
        raise typer.BadParameter("Port must be between 1 and 65535")
    return port


def validate_log_level(level: str | None) -> str | None:
    if level is None:
        return None
    level = level.upper()
    if level not in _LOG_LEVELS:
        raise typer.BadParameter(f"Log level must be one of: {', '.join(_LOG_LEVELS)}")
    return level


@app.callback()
def app_main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """zproxy - OpenAI-compatible API server for the Z.ai chat service."""


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Host to bind the server to"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option(
            "--port", "-p", help="Port to run the server on", callback=validate_port
        ),
    ] = None,
    reload: Annotated[
        bool | None,
        typer.Option("--reload/--no-reload", help="Enable auto-reload for development"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
            callback=validate_log_level,
        ),
    ] = None,
) -> None:
    """Run the API server."""
    # The app factory runs in the server process and reads settings from the
    # environment, so command line overrides are passed the same way.
    overrides = {
        "SERVER__HOST": host,
        "SERVER__PORT": str(port) if port is not None else None,
        "SERVER__RELOAD": str(reload).lower() if reload is not None else None,
        "LOGGING__LEVEL": log_level,
    }
    for name, value in overrides.items():
        if value is not None:
            os.environ[name] = value
    get_settings.cache_clear()

    try:
        settings = get_settings()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    setup_logging(
        json_logs=settings.logging.format == "json",
        log_level_name=settings.logging.level,
    )
    logger.info(
        "server_start_requested",
        url=settings.server_url,
        workers=settings.server.workers,
        reload=settings.server.reload,
    )

    uvicorn.run(
        app="zproxy.api.app:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload,
        workers=None if settings.server.reload else settings.server.workers,
        log_config=None,
        access_log=False,
    )


@app.command()
def config() -> None:
    """Show the effective configuration with secrets masked."""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    console.print_json(json.dumps(settings.model_dump_safe()))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
