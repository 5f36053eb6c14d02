"""Server command."""

from pathlib import Path

from rich.console import Console

console = Console()


def serve_command(config_path: str | None = None, host: str | None = None, port: int | None = None) -> None:
    """Run the nexora API server in the foreground.

    Args:
        config_path: Optional path to config file
        host: Bind address overriding the config
        port: Port overriding the config
    """
    import uvicorn

    from nexora.config.loader import load_config
    from nexora.server.app import create_app

    path = Path(config_path) if config_path else None
    try:
        config = load_config(path)
    except Exception as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        return

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    app = create_app(config)

    console.print(f"[green]Starting nexora server on {bind_host}:{bind_port}[/green]")
    console.print("\nPress Ctrl+C to stop")

    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")
