"""Session and usage management commands."""

from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.table import Table

from nexora.chat.rate_limit import RateLimiter
from nexora.chat.schema import Tier
from nexora.config.loader import load_config
from nexora.config.schema import NexoraConfig
from nexora.memory.sessions import SessionStore
from nexora.memory.storage import SQLiteStore

console = Console()


def _format_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _open(config_path: str | None) -> tuple[NexoraConfig, SQLiteStore]:
    config = load_config(Path(config_path) if config_path else None)
    return config, SQLiteStore(config.storage.path)


def _open_sessions(config_path: str | None) -> SessionStore:
    config, store = _open(config_path)
    sessions = SessionStore(store, save_history=config.storage.save_history)
    sessions.load()
    return sessions


def list_sessions(tier: str, config_path: str | None = None) -> None:
    """Print the sessions of a tier."""
    t = Tier(tier)
    sessions = _open_sessions(config_path)
    active_id = sessions.active_id(t)

    items = sessions.sessions(t)
    if not items:
        console.print(f"[yellow]No {t.value} sessions.[/yellow]")
        return

    table = Table(title=f"{t.value} sessions")
    table.add_column("", width=1)
    table.add_column("ID", style="dim", overflow="fold")
    table.add_column("Title", no_wrap=True)
    table.add_column("Messages", justify="right")
    table.add_column("Modified", no_wrap=True)

    for session in items:
        table.add_row(
            "*" if session.id == active_id else "",
            session.id,
            session.title,
            str(len(session.messages)),
            _format_ms(session.last_modified),
        )
    console.print(table)


def delete_session(tier: str, session_id: str, config_path: str | None = None) -> None:
    t = Tier(tier)
    sessions = _open_sessions(config_path)
    if sessions.delete(t, session_id):
        console.print(f"[green]Deleted {session_id}[/green]")
    else:
        console.print(f"[red]No {t.value} session {session_id}[/red]")


def rename_session(tier: str, session_id: str, title: str, config_path: str | None = None) -> None:
    t = Tier(tier)
    sessions = _open_sessions(config_path)
    if sessions.find(t, session_id) is None:
        console.print(f"[red]No {t.value} session {session_id}[/red]")
        return
    sessions.rename(t, session_id, title)
    console.print(f"[green]Renamed {session_id}[/green]")


def clear_sessions(tier: str, config_path: str | None = None) -> None:
    t = Tier(tier)
    sessions = _open_sessions(config_path)
    sessions.clear_all(t)
    console.print(f"[green]Cleared all {t.value} sessions[/green]")


def show_usage(config_path: str | None = None) -> None:
    """Print the pro tier usage window."""
    config, store = _open(config_path)
    limiter = RateLimiter(
        store,
        cap=config.rate_limit.cap,
        window_ms=config.rate_limit.window_ms,
    )
    console.print(f"Pro messages used: {limiter.state.count}/{limiter.cap}")
    console.print(f"Remaining: {limiter.remaining()}")
    if limiter.state.reset_time:
        console.print(f"Window resets: {_format_ms(limiter.state.reset_time)}")
