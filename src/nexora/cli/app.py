"""Main CLI application using Typer."""

import logging
import sys

import typer
from rich.console import Console

from nexora import __version__

# Create Typer app
app = typer.Typer(
    name="nexora",
    help="Nexora - streaming chat assistant with a rate-limited pro tier",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.command()
def version():
    """Show nexora version."""
    console.print(f"nexora version {__version__}")


@app.command()
def chat(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/.nexora/nexora.yaml)",
    ),
    tier: str = typer.Option("standard", "--tier", "-t", help="Tier: standard or pro"),
):
    """Start interactive chat session."""
    from nexora.cli.chat import chat_command

    chat_command(config_path=config_path, tier=tier)


@app.command()
def serve(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
    host: str = typer.Option(None, "--host", help="Bind host"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Start nexora API server."""
    from nexora.cli.server_cmd import serve_command

    serve_command(config_path=config_path, host=host, port=port)


@app.command()
def usage(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
):
    """Show pro tier usage in the current window."""
    from nexora.cli.sessions_cmd import show_usage

    show_usage(config_path=config_path)


# Session commands
sessions_app = typer.Typer(help="Manage saved chat sessions")
app.add_typer(sessions_app, name="sessions")


@sessions_app.command("list")
def sessions_list(
    tier: str = typer.Option("standard", "--tier", "-t", help="Tier: standard or pro"),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """List sessions of a tier."""
    from nexora.cli.sessions_cmd import list_sessions

    list_sessions(tier=tier, config_path=config_path)


@sessions_app.command("delete")
def sessions_delete(
    session_id: str = typer.Argument(..., help="Session ID"),
    tier: str = typer.Option("standard", "--tier", "-t", help="Tier: standard or pro"),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Delete a session."""
    from nexora.cli.sessions_cmd import delete_session

    delete_session(tier=tier, session_id=session_id, config_path=config_path)


@sessions_app.command("rename")
def sessions_rename(
    session_id: str = typer.Argument(..., help="Session ID"),
    title: str = typer.Argument(..., help="New title"),
    tier: str = typer.Option("standard", "--tier", "-t", help="Tier: standard or pro"),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Rename a session."""
    from nexora.cli.sessions_cmd import rename_session

    rename_session(tier=tier, session_id=session_id, title=title, config_path=config_path)


@sessions_app.command("clear")
def sessions_clear(
    tier: str = typer.Option("standard", "--tier", "-t", help="Tier: standard or pro"),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete every session of a tier."""
    from nexora.cli.sessions_cmd import clear_sessions

    if not yes and not typer.confirm(f"Delete all {tier} sessions?"):
        console.print("[yellow]Aborted[/yellow]")
        return
    clear_sessions(tier=tier, config_path=config_path)


def main():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
