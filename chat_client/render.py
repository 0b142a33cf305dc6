"""
Turn session events into rich-markup lines for the terminal front-end.
"""

from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from rich.markup import escape

from shared.protocol import (
    AckName,
    Ai,
    Chat,
    ListUsers,
    Pong,
    ServerError,
    Status,
    System,
    Unrecognized,
)
from .events import (
    ConnectFailed,
    ConnectionLost,
    Event,
    Handshake,
    PingRoundTrip,
    RawFrame,
    SettingsSaveFailed,
    StateChanged,
)
from .state import ConnectionPhase


def format_uptime(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds} sec"
    if seconds < 3600:
        return f"{seconds // 60} min"
    if seconds < 86400:
        return f"{seconds // 3600} h"
    return f"{seconds // 86400} days"


def format_at_prefix(at: Optional[int]) -> str:
    """``[HH:MM:SS] `` in local time for a unix-ms timestamp, or empty."""
    if at is None:
        return ""
    try:
        stamp = datetime.fromtimestamp(at / 1000).strftime("%H:%M:%S")
    except (OverflowError, OSError, ValueError):
        stamp = "??:??:??"
    return f"[{stamp}] "


def status_lines(status: Status) -> List[str]:
    lines = [f"Server Status v{status.version}"]
    if status.os:
        cores = f" ({status.cpu_cores} cores)" if status.cpu_cores is not None else ""
        lines.append(f"Platform: {status.os}{cores}")
    if status.rust_version:
        lines.append(f"Runtime: {status.rust_version}")
    lines.append(f"Uptime: {format_uptime(status.uptime_seconds)}")
    peak = f" (peak: {status.peak_users})" if status.peak_users is not None else ""
    lines.append(f"Users: {status.user_count}{peak}")
    if status.connections_total is not None:
        lines.append(f"Connections: {status.connections_total}")
    lines.append(f"Messages: {status.messages_sent}")
    lines.append(f"Throughput: {status.messages_per_second} msg/s")
    lines.append(f"Memory: {status.memory_mb:.2f} MB")
    if status.ai_enabled is not None:
        ai = (status.ai_model or "enabled") if status.ai_enabled else "disabled"
        lines.append(f"AI: {ai}")
    return lines


def render(event: Event) -> List[str]:
    """Rich-markup lines for one event; events with nothing to show yield []."""
    if isinstance(event, Chat):
        return [f"{format_at_prefix(event.at)}[bold]{escape(event.sender)}:[/] {escape(event.text)}"]
    if isinstance(event, System):
        return [f"[italic yellow]{format_at_prefix(event.at)}* {escape(event.text)}[/]"]
    if isinstance(event, AckName):
        return [f"[italic yellow]* Your name is now: {escape(event.name)}[/]"]
    if isinstance(event, Status):
        return [f"[cyan]{escape(line)}[/]" for line in status_lines(event)]
    if isinstance(event, ListUsers):
        if not event.users:
            return ["[cyan]No users connected[/]"]
        lines = [f"[cyan]Users ({len(event.users)})[/]"]
        lines.extend(f"[cyan]  {escape(u.id)}  {escape(u.name)}  {escape(u.ip)}[/]" for u in event.users)
        return lines
    if isinstance(event, ServerError):
        return [f"[red]✗ {escape(event.message)}[/]"]
    if isinstance(event, Pong):
        token = f" (token: {escape(event.token[:8])}...)" if event.token else ""
        return [f"[cyan]Pong!{token}[/]"]
    if isinstance(event, PingRoundTrip):
        return [f"[cyan]roundtrip: {event.roundtrip_ms:.2f}ms[/]"]
    if isinstance(event, Ai):
        stats = [f"{event.response_ms}ms"]
        if event.tokens is not None:
            stats.append(f"{event.tokens} tokens")
        if event.cost is not None:
            stats.append(f"${event.cost:.4f}")
        return [
            f"[magenta]{format_at_prefix(event.at)}[AI] {escape(event.sender)} asked: {escape(event.prompt)}[/]",
            f"[cyan]{escape(event.response)}[/]",
            f"[dim]{' | '.join(stats)}[/]",
        ]
    if isinstance(event, Unrecognized):
        return [f"[yellow]! Ignored server message ({escape(event.reason)})[/]"]
    if isinstance(event, StateChanged):
        if event.state.phase is ConnectionPhase.CONNECTED:
            return [f"[italic yellow]* Connected to {escape(event.state.url or '')}[/]"]
        if event.state.phase is ConnectionPhase.DISCONNECTED and event.previous.phase is not ConnectionPhase.CONNECTING:
            return ["[italic yellow]* Disconnected[/]"]
        return []
    if isinstance(event, (ConnectFailed, ConnectionLost, SettingsSaveFailed)):
        return [f"[red]✗ {escape(event.message)}[/]"]
    if isinstance(event, Handshake):
        status = f", HTTP {event.http_status}" if event.http_status is not None else ""
        return [f"[dim]{event.transport} (tls={'yes' if event.tls else 'no'}{status})[/]"]
    if isinstance(event, RawFrame):
        return [f"[dim]{event.direction} {escape(event.text)}[/]"]
    return []
