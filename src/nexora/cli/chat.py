"""Interactive chat REPL command."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from collections.abc import Callable
from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.text import Text

from nexora.chat.engine import ChatEngine
from nexora.chat.schema import Tier
from nexora.config.loader import load_config

if TYPE_CHECKING:
    from nexora.chat.schema import Message
    from nexora.chat.state import AppState
    from nexora.config.schema import NexoraConfig

console = Console()
logger = logging.getLogger(__name__)


def chat_command(config_path: str | None = None, tier: str = "standard") -> None:
    """Start interactive chat session.

    Args:
        config_path: Optional path to config file
        tier: Initial tier ("standard" or "pro")
    """
    path = Path(config_path) if config_path else None
    try:
        config = load_config(path)
    except Exception as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        return

    engine = ChatEngine.from_config(config, dispatcher=_console_dispatcher())
    engine.switch_tier(Tier(tier))

    console.print(
        Panel.fit(
            f"[bold blue]nexora chat[/bold blue]\n"
            f"Tier: {engine.tier.value}\n"
            f"Type /help for commands, /exit to quit",
            border_style="blue",
        )
    )

    # Not asyncio.run: its SIGINT handler cancels the whole REPL task on Ctrl+C.
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(_async_chat(engine, config))
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()


def _console_dispatcher():
    """Dispatcher that shows the action link instead of opening a browser."""
    from nexora.chat.actions import ActionDispatcher

    return ActionDispatcher(opener=lambda uri: console.print(f"[magenta]Action:[/magenta] {uri}"))


def _render(message: Message, state: AppState) -> Group | Markdown:
    """Renderable for the in-flight reply."""
    if state.progress is not None:
        steps = "\n".join(f"- {step}" for step in state.progress.steps)
        header = Text(f"Thinking {state.progress.percentage:.0f}%", style="bold yellow")
        return Group(header, Markdown(steps))
    return Markdown(message.text or "...")


async def _send_interruptible(
    engine: ChatEngine, text: str, on_update: Callable[[Message], None]
) -> tuple[Message | None, bool]:
    """Send one message with Ctrl+C bound to stopping the reply.

    The first Ctrl+C stops reading the stream and keeps the text so far. A
    second one cancels the send outright.

    Returns:
        The reply (None if the send was refused or cancelled) and whether
        Ctrl+C was pressed
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(engine.send(text, on_update=on_update))
    presses = 0

    def on_sigint() -> None:
        nonlocal presses
        presses += 1
        if presses == 1:
            engine.stop()
        else:
            task.cancel()

    previous = signal.getsignal(signal.SIGINT)
    try:
        loop.add_signal_handler(signal.SIGINT, on_sigint)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        logger.debug("Ctrl+C cannot be bound to the event loop here")
        installed = False

    try:
        reply = await task
    except asyncio.CancelledError:
        if not task.cancelled() or presses < 2:
            raise
        reply = None
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
            if previous is not None:
                signal.signal(signal.SIGINT, previous)

    return reply, presses > 0


async def _async_chat(engine: ChatEngine, config: NexoraConfig) -> None:
    """Async chat loop.

    Args:
        engine: Chat engine
        config: Nexora configuration
    """
    while True:
        try:
            user_input = Prompt.ask(f"\n[bold cyan]You[/bold cyan] [dim]({engine.tier.value})[/dim]")

            if not user_input.strip():
                continue

            if user_input.startswith("/"):
                if _handle_slash_command(user_input, engine):
                    break
                continue

            console.print(f"\n[bold green]{config.messages.model_label}[/bold green]")
            with Live(console=console, refresh_per_second=12) as live:

                def on_update(message: Message) -> None:
                    live.update(_render(message, engine.state))

                reply, interrupted = await _send_interruptible(engine, user_input, on_update)

            if interrupted:
                console.print("\n[yellow]Interrupted[/yellow]")
                if Confirm.ask("Exit chat?", default=False):
                    break
                continue

            if reply is None:
                if engine.state.last_notice:
                    console.print(f"[yellow]{engine.state.last_notice}[/yellow]")
                continue

            if reply.grounding_chunks:
                for chunk in reply.grounding_chunks:
                    if chunk.web and chunk.web.uri:
                        console.print(f"[dim]Source: {chunk.web.title or chunk.web.uri} ({chunk.web.uri})[/dim]")
            if len(reply.parts) > 1:
                console.print("[dim][generated image attached][/dim]")
            if not engine.state.api_ready:
                console.print("[red]Update the API key in the config file and restart.[/red]")
                break

        except KeyboardInterrupt:
            engine.stop()
            console.print("\n[yellow]Interrupted[/yellow]")
            if Confirm.ask("Exit chat?", default=False):
                break
        except EOFError:
            break

    console.print("\n[cyan]Goodbye![/cyan]")


def _handle_slash_command(command: str, engine: ChatEngine) -> bool:
    """Handle slash commands.

    Args:
        command: Command string (e.g., "/help")
        engine: Chat engine

    Returns:
        True if should exit, False otherwise
    """
    parts = command.strip().split(maxsplit=1)
    cmd = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""

    if cmd in ("/exit", "/quit", "/q"):
        return True

    if cmd == "/help":
        console.print(
            "\n[bold]Available commands:[/bold]\n"
            "  /help            - Show this help\n"
            "  /new             - Start a new conversation\n"
            "  /tier [name]     - Show or switch tier (standard, pro)\n"
            "  /usage           - Show pro tier usage\n"
            "  /clear           - Clear screen\n"
            "  /exit            - Exit chat\n"
        )
    elif cmd == "/new":
        engine.new_chat()
        console.print("[green]Started a new conversation[/green]")
    elif cmd == "/tier":
        if arg:
            try:
                engine.switch_tier(Tier(arg.lower()))
            except ValueError:
                console.print(f"[red]Unknown tier: {arg}[/red]")
                return False
        console.print(f"Tier: {engine.tier.value}")
    elif cmd == "/usage":
        limiter = engine.rate_limiter
        console.print(f"Pro messages left: {limiter.remaining()}/{limiter.cap}")
    elif cmd == "/clear":
        console.clear()
    else:
        console.print(f"[red]Unknown command: {cmd}[/red]")
        console.print("Type /help for available commands")

    return False
