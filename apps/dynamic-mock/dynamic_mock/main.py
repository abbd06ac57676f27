"""CLI entrypoint for the dynamic mock server."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    __package__ = "dynamic_mock"

from .config import ServerSettings
from .dispatcher import RequestDispatcher
from .logging_utils import configure_logging
from .output_config import get_log_format
from .persistence import SnapshotStore
from .routes import RouteTable
from .server import DynamicMockServer, server_console_summary

app = typer.Typer(help="Serve HTTP mocks registered at runtime through POST /register.")


def _settings(**overrides: object) -> ServerSettings:
    try:
        return ServerSettings.from_env(**overrides)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (env HOST, default 0.0.0.0)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listening port (env PORT, default 8080)."),
    data_file: Optional[Path] = typer.Option(
        None,
        help="Snapshot file holding registered mocks (env DATA_FILE, default ./data.json).",
    ),
    rate_limit_seconds: Optional[int] = typer.Option(
        None,
        help="Cooldown window per client IP in seconds (env RATE_LIMIT_SECONDS, default 10).",
    ),
    exempt: list[str] = typer.Option(
        [],
        "--exempt",
        "-e",
        help="Exact path exempt from rate limiting; repeatable (env RATE_LIMIT_EXEMPT, comma-separated).",
    ),
    log_level: Optional[str] = typer.Option(None, help="Log level (env LOG_LEVEL, default info)."),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        help="Log format: auto, rich, plain or json (env CONSOLE_OUTPUT_FORMAT).",
    ),
) -> None:
    """Load the snapshot and serve mocks until interrupted."""

    settings = _settings(
        host=host,
        port=port,
        data_file=data_file,
        rate_limit_seconds=rate_limit_seconds,
        rate_limit_exempt=exempt or None,
        log_level=log_level,
    )
    configure_logging(settings.log_level, get_log_format(output_format))

    dispatcher = RequestDispatcher.from_settings(settings)
    server = DynamicMockServer(dispatcher, host=settings.host, port=settings.port)
    for line in server_console_summary(dispatcher.table, settings.host, settings.port):
        typer.echo(line)
    server.serve_until_interrupted()


@app.command()
def routes(
    data_file: Optional[Path] = typer.Option(
        None,
        help="Snapshot file to inspect (env DATA_FILE, default ./data.json).",
    ),
) -> None:
    """Print the mocks stored in a snapshot without starting the server."""

    settings = _settings(data_file=data_file)
    table = RouteTable(SnapshotStore(settings.data_file).load())
    if not len(table):
        typer.secho(f"No mocks stored in {settings.data_file}", fg=typer.colors.YELLOW)
        return
    for item in table.list():
        typer.echo(f"{item.method} {item.path} -> {item.status}")


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
