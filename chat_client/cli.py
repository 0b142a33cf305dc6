#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import os
from typing import Optional

import aioconsole
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shared.errors import SettingsSaveError
from shared.log import configure_root_logging, get_logger
from shared.protocol import split_command
from shared.utils import is_ws_url
from .connection import ConnectionManager
from .render import render
from .session import ChatSession
from .settings import Settings, SettingsStore

app = typer.Typer(help="cybox-chat terminal client")
config_app = typer.Typer(help="Show or change stored preferences")
app.add_typer(config_app, name="config")
console = Console()
logger = get_logger(__name__)

HELP_TEXT = (
    "/name <name>, /status, /users, /ping [token], /ai <question>, "
    "/connect [url], /disconnect, /reconnect, /server <url>, /quit"
)


def _default_server() -> Optional[str]:
    return os.getenv("CYBOX_CHAT_SERVER")


def _print_error(text: str) -> None:
    console.print(f"[red]✗ {escape(text)}[/]")


async def _print_events(session: ChatSession) -> None:
    async for event in session.events():
        for line in render(event):
            console.print(line)


def _handle_local_command(session: ChatSession, line: str) -> bool:
    """Run client-side commands. Returns False when ``line`` is not one."""
    word, arg = split_command(line)
    if word == "/help":
        console.print(HELP_TEXT)
    elif word == "/connect":
        session.connect(arg or None)
    elif word == "/disconnect":
        session.disconnect()
    elif word == "/reconnect":
        session.reconnect()
    elif word == "/server":
        error = session.set_server_url(arg) if arg else None
        if not arg:
            console.print(f"Server: {session.settings.server_url}")
        elif error is not None:
            _print_error(str(error))
        else:
            console.print(f"Server set to {session.settings.server_url} (use /connect)")
    else:
        return False
    return True


@app.command()
def run(
    server: Optional[str] = typer.Option(_default_server(), help="WebSocket URL of the chat server"),
    name: Optional[str] = typer.Option(None, help="Display name to claim after connecting"),
    echo_frames: bool = typer.Option(False, "--echo-frames", help="Show raw frames"),
    log_level: str = typer.Option("WARNING", help="Log level"),
):
    """Start the interactive chat client."""
    configure_root_logging(log_level)
    if server is not None and not is_ws_url(server):
        _print_error(f"Invalid server URL: {server}")
        raise typer.Exit(code=2)

    async def main_loop() -> None:
        session = ChatSession(store=SettingsStore(), manager=ConnectionManager(echo_frames=echo_frames))
        if name and name.strip():
            session.settings.username = name.strip()
        console.print(f"[bold green]cybox-chat[/] connecting to {escape(server or session.settings.server_url)}")
        logger.info(f"Starting client for {server or session.settings.server_url}")
        session.connect(server)
        printer = asyncio.create_task(_print_events(session))

        try:
            while True:
                line = (await aioconsole.ainput(": ")).strip()
                if not line:
                    continue
                if line in {"/quit", "/exit"}:
                    break
                if _handle_local_command(session, line):
                    continue
                error = session.submit(line)
                if error is not None:
                    _print_error(str(error))
        except EOFError:
            logger.debug("Input closed, shutting down")
        finally:
            printer.cancel()
            await session.close()

    asyncio.run(main_loop())


def _save_or_exit(store: SettingsStore, settings: Settings) -> None:
    try:
        store.save(settings)
    except SettingsSaveError as e:
        _print_error(str(e))
        raise typer.Exit(code=1)


@config_app.command("show")
def config_show():
    """Print the stored preferences."""
    store = SettingsStore()
    settings = store.load()
    table = Table(title="cybox-chat settings")
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("server_url", settings.server_url)
    table.add_row("username", settings.username or "-")
    table.add_row("file", str(store.loaded_from or f"{store.path} (not yet written)"))
    console.print(table)


@config_app.command("set-server")
def config_set_server(url: str = typer.Argument(..., help="ws:// or wss:// URL")):
    """Store the server to connect to."""
    if not is_ws_url(url):
        _print_error(f"Invalid server URL: {url}")
        raise typer.Exit(code=2)
    store = SettingsStore()
    settings = store.load()
    settings.server_url = url.strip()
    _save_or_exit(store, settings)
    console.print(f"Saved server {settings.server_url}")


@config_app.command("set-name")
def config_set_name(name: str = typer.Argument(..., help="Preferred display name")):
    """Store the display name re-claimed on every connect."""
    if not name.strip():
        _print_error("missing name")
        raise typer.Exit(code=2)
    store = SettingsStore()
    settings = store.load()
    settings.username = name.strip()
    _save_or_exit(store, settings)
    console.print(f"Saved name {settings.username}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
