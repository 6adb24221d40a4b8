from __future__ import annotations

import json
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .client import MumbleSession, SessionError, run_bot
from .config import BotConfig, set_password
from .logging import get_logger, setup_logging
from .utils import parse_bool, parse_channel_path

app = typer.Typer(help="Connect Bot: hands out a connect string to everyone joining a Mumble channel")
console = Console()
log = get_logger(__name__)

_SETTABLE = (
    "server.host",
    "server.port",
    "server.insecure",
    "identity.username",
    "identity.self_name",
    "channel.path",
    "channel.default_string",
)


@app.callback()
def main(ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging")):
    ctx.obj = {"verbose": verbose}
    setup_logging(verbose)


@app.command()
def run(ctx: typer.Context):
    """Join the server and serve until disconnected."""
    config = BotConfig.resolve()
    setup_logging(ctx.obj["verbose"], console=True)
    try:
        run_bot(config)
    except SessionError as exc:
        log.error("%s", exc)
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print("Disconnected")


@app.command()
def status():
    """Check connectivity/auth."""
    config = BotConfig.resolve()
    session = MumbleSession(config)
    try:
        session.connect()
    except SessionError as exc:
        session.close()
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    channel = session.self_channel()
    occupants = session.self_channel_occupants()
    session.close()
    table = Table(title=config.server.address)
    table.add_column("Channel")
    table.add_column("Users")
    table.add_row(channel.name if channel else "?", str(occupants))
    console.print(table)


@app.command("config")
def config_cmd(
    set_option: Optional[str] = typer.Option(None, "--set", help="key=value (" + ", ".join(_SETTABLE) + ")"),
):
    """Show or change the stored configuration."""
    config = BotConfig.load()
    if set_option:
        if "=" not in set_option:
            console.print("Use key=value with --set")
            raise typer.Exit(1)
        key, value = set_option.split("=", 1)
        if key == "server.host":
            config.server.host = value
        elif key == "server.port":
            if not value.isdigit():
                console.print(f"Invalid port: {value}")
                raise typer.Exit(1)
            config.server.port = int(value)
        elif key == "server.insecure":
            config.server.insecure = parse_bool(value)
        elif key == "identity.username":
            config.identity.username = value
        elif key == "identity.self_name":
            config.identity.self_name = value
        elif key == "channel.path":
            config.channel.path = parse_channel_path(value)
        elif key == "channel.default_string":
            config.channel.default_string = value
        else:
            console.print(f"Unknown key: {key}")
            raise typer.Exit(1)
        config.save()
    console.print(json.dumps(config.as_dict(), indent=2, ensure_ascii=False), markup=False, highlight=False, soft_wrap=True)


@app.command()
def login(username: str, password: Optional[str] = typer.Option(None, help="Password")):
    """Store the server password for USERNAME in the system keyring."""
    if password is None:
        password = typer.prompt("Password", hide_input=True)
    set_password(username, password)
    console.print(f"Stored password for {username}")
