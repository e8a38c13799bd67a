"""Main CLI application using Typer."""
import asyncio
import signal

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from ..config import HISTORY_DATE_FORMAT, HISTORY_PREVIEW_LENGTH
from ..history import ConversationRecord, HistoryStore
from ..models import Author, Message, SessionIdentity
from ..preferences import STRING_KEYS, load_preferences, save_preferences
from ..session import SessionCoordinator
from .providers import (
    configure_logging,
    get_backend,
    get_history,
    get_model,
    get_preferences,
    get_preferences_store,
    load_backend_model,
)

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="chatsession",
    help="Chat with a local language model, keeping an archive of past conversations",
    no_args_is_help=True,
    add_completion=True,
)
history_app = typer.Typer(help="Browse and manage archived conversations", no_args_is_help=True)
config_app = typer.Typer(help="Show or change preferences", no_args_is_help=True)
app.add_typer(history_app, name="history")
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()

EXIT_COMMANDS = ("/quit", "/exit", "/q")


@app.callback()
def _global_options(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-L",
        help="Log verbosity: debug, info, warning or error"
    )
):
    """Chat with a local language model."""
    configure_logging(log_level)


# ----------------------------------------------------------------------
# Rendering helpers
# ----------------------------------------------------------------------

def _render_message(message: Message, identity: SessionIdentity) -> Text:
    style = "bold yellow" if message.author == Author.USER else "bold cyan"
    text = Text()
    text.append(f"{identity.name_for(message.author)}: ", style=style)
    text.append(message.text)
    return text


def _print_transcript(messages: tuple[Message, ...], identity: SessionIdentity) -> None:
    for message in messages:
        console.print(_render_message(message, identity))


def _history_table(records: list[ConversationRecord]) -> Table:
    table = Table(title="Chat History")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title", style="cyan")
    table.add_column("Date")
    table.add_column("Messages", justify="right")
    table.add_column("First prompt")
    for record in records:
        table.add_row(
            record.id[:8],
            record.title,
            record.created_at.astimezone().strftime(HISTORY_DATE_FORMAT),
            str(len(record.messages)),
            record.preview(HISTORY_PREVIEW_LENGTH),
        )
    return table


def _resolve_chat_id(records: list[ConversationRecord], chat_id: str) -> str | None:
    """Resolve a full id or a unique id prefix."""
    matches = [r.id for r in records if r.id == chat_id]
    if matches:
        return matches[0]
    matches = [r.id for r in records if r.id.startswith(chat_id)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        console.print(f"[yellow]Ambiguous id '{chat_id}' matches {len(matches)} chats[/yellow]")
    return None


async def _find_chat(history: HistoryStore, chat_id: str) -> ConversationRecord | None:
    records = await history.load_all()
    resolved = _resolve_chat_id(records, chat_id)
    if resolved is None:
        return None
    return await history.get(resolved)


# ----------------------------------------------------------------------
# Interactive chat
# ----------------------------------------------------------------------

def _install_pause_handler(loop: asyncio.AbstractEventLoop, coordinator: SessionCoordinator) -> bool:
    """Make Ctrl+C pause generation instead of exiting."""
    pending: set[asyncio.Task] = set()

    def on_interrupt() -> None:
        task = loop.create_task(coordinator.pause())
        pending.add(task)
        task.add_done_callback(pending.discard)

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        return False
    return True


async def _stream_reply(coordinator: SessionCoordinator, task: asyncio.Task) -> None:
    """Render the trailing assistant message live until generation ends."""
    identity = coordinator.identity
    loop = asyncio.get_running_loop()
    placeholder = Text(f"{identity.assistant_name}: ...", style="dim")

    with Live(placeholder, console=console, refresh_per_second=12, transient=True) as live:
        def on_snapshot(snapshot) -> None:
            last = snapshot.messages[-1] if snapshot.messages else None
            if last is not None and last.author == Author.ASSISTANT and last.text:
                live.update(_render_message(last, identity))

        unsubscribe = coordinator.subscribe(on_snapshot)
        pause_installed = _install_pause_handler(loop, coordinator)
        try:
            await asyncio.wait({task})
        finally:
            unsubscribe()
            if pause_installed:
                loop.remove_signal_handler(signal.SIGINT)

    messages = coordinator.messages
    if messages and messages[-1].author == Author.ASSISTANT:
        console.print(_render_message(messages[-1], identity))
    else:
        console.print("[dim](stopped)[/dim]")


async def _handle_command(command: str, coordinator: SessionCoordinator) -> None:
    name, _, argument = command.partition(" ")
    argument = argument.strip()

    if name == "/new":
        record = await coordinator.start_new_chat()
        if record is not None:
            console.print(f"[dim]Saved as '{record.title}' ({record.id[:8]})[/dim]")
        coordinator.open()
        console.rule("New chat")
        _print_transcript(coordinator.messages, coordinator.identity)

    elif name == "/history":
        records = await coordinator.chats()
        if not records:
            console.print("[dim]No saved chats yet.[/dim]")
        else:
            console.print(_history_table(records))

    elif name == "/load":
        records = await coordinator.chats()
        resolved = _resolve_chat_id(records, argument) if argument else None
        if resolved is None or not await coordinator.load_chat(resolved):
            console.print(f"[red]Chat not found: {argument or '(missing id)'}[/red]")
            return
        console.rule(next(r.title for r in records if r.id == resolved))
        _print_transcript(coordinator.messages, coordinator.identity)

    elif name == "/delete":
        records = await coordinator.chats()
        resolved = _resolve_chat_id(records, argument) if argument else None
        was_loaded = resolved is not None and coordinator.snapshot.chat_id == resolved
        if resolved is None or not await coordinator.delete_chat(resolved):
            console.print(f"[red]Chat not found: {argument or '(missing id)'}[/red]")
            return
        console.print(f"[green]Deleted chat {resolved[:8]}[/green]")
        if was_loaded:
            console.rule("New chat")
            _print_transcript(coordinator.messages, coordinator.identity)

    else:
        console.print("[dim]Commands: /new, /history, /load <id>, /delete <id>, /quit[/dim]")


@app.command()
def chat(
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model to load (GGUF path or served model name)"
    ),
    greeting: bool = typer.Option(
        True,
        "--greeting/--no-greeting",
        help="Start with a welcome message"
    )
):
    """Start an interactive chat session."""
    async def _chat():
        prefs = get_preferences()
        backend = get_backend(console)
        if backend is None:
            raise typer.Exit(code=1)

        history = get_history(prefs)
        await history.load_all()
        await load_backend_model(backend, model or get_model(prefs), console)

        coordinator = SessionCoordinator(
            backend,
            history,
            identity=prefs.identity,
            greeting=greeting,
        )
        coordinator.open()

        console.print("[bold cyan]Chat Session[/bold cyan]")
        console.print("[dim]Ctrl+C stops a reply. Type /help for commands, /quit to leave.\n[/dim]")
        _print_transcript(coordinator.messages, coordinator.identity)

        try:
            while True:
                try:
                    user_input = await asyncio.to_thread(
                        console.input, f"[bold yellow]{prefs.identity.user_name}:[/bold yellow] "
                    )
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                stripped = user_input.strip()
                if not stripped:
                    continue
                if stripped.lower() in EXIT_COMMANDS:
                    console.print("[dim]Goodbye![/dim]")
                    break
                if stripped.startswith("/"):
                    await _handle_command(stripped, coordinator)
                    continue

                task = await coordinator.send(user_input)
                if task is None:
                    last = coordinator.messages[-1] if coordinator.messages else None
                    if last is not None and last.author == Author.ASSISTANT:
                        console.print(_render_message(last, coordinator.identity))
                    continue
                await _stream_reply(coordinator, task)

        finally:
            record = await coordinator.close()
            if record is not None:
                console.print(f"[dim]Saved as '{record.title}' ({record.id[:8]})[/dim]")
            await backend.close()

    asyncio.run(_chat())


# ----------------------------------------------------------------------
# History commands
# ----------------------------------------------------------------------

@history_app.command("list")
def history_list():
    """List archived conversations."""
    async def _list():
        history = get_history()
        records = await history.load_all()
        if not records:
            console.print("[dim]No saved chats yet.[/dim]")
            return
        console.print(_history_table(records))

    asyncio.run(_list())


@history_app.command("show")
def history_show(
    chat_id: str = typer.Argument(..., help="Chat id (or a unique prefix)")
):
    """Print an archived conversation."""
    async def _show():
        prefs = get_preferences()
        history = get_history(prefs)
        record = await _find_chat(history, chat_id)
        if record is None:
            console.print(f"[red]Chat not found: {chat_id}[/red]")
            raise typer.Exit(code=1)
        console.rule(record.title)
        _print_transcript(record.messages, prefs.identity)

    asyncio.run(_show())


@history_app.command("delete")
def history_delete(
    chat_id: str = typer.Argument(..., help="Chat id (or a unique prefix)"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt"
    )
):
    """Delete an archived conversation permanently."""
    async def _delete():
        history = get_history()
        record = await _find_chat(history, chat_id)
        if record is None:
            console.print(f"[red]Chat not found: {chat_id}[/red]")
            raise typer.Exit(code=1)

        if not yes:
            confirm = typer.confirm(f"Delete '{record.title}'?")
            if not confirm:
                console.print("[dim]Aborted.[/dim]")
                return

        await history.remove(record.id)
        console.print(f"[green]Deleted chat {record.id[:8]}[/green]")

    asyncio.run(_delete())


# ----------------------------------------------------------------------
# Preferences commands
# ----------------------------------------------------------------------

@app.command()
def setup():
    """Choose display names and the model to chat with."""
    store = get_preferences_store()
    prefs = load_preferences(store)

    if prefs.is_first_launch:
        console.print("[bold cyan]Welcome![/bold cyan] Let's set things up.\n")

    prefs.user_name = typer.prompt("Your name", default=prefs.user_name)
    prefs.assistant_name = typer.prompt("Assistant name", default=prefs.assistant_name)
    prefs.model_path = typer.prompt(
        "Model (GGUF path or served model name)",
        default=prefs.model_path,
        show_default=bool(prefs.model_path),
    )

    save_preferences(store, prefs)
    console.print(f"[green]Preferences saved to {store.path}[/green]")


@config_app.command("show")
def config_show():
    """Show current preferences."""
    store = get_preferences_store()
    prefs = load_preferences(store)

    table = Table(title="Preferences")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("userName", prefs.user_name)
    table.add_row("assistantName", prefs.assistant_name)
    table.add_row("modelPath", prefs.model_path or "[dim](not set)[/dim]")
    table.add_row("historyDir", prefs.history_dir or "[dim](default)[/dim]")
    table.add_row("isFirstLaunch", str(prefs.is_first_launch).lower())
    console.print(table)
    console.print(f"[dim]File: {store.path}[/dim]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help=f"One of: {', '.join(STRING_KEYS)}"),
    value: str = typer.Argument(..., help="New value")
):
    """Change a single preference."""
    if key not in STRING_KEYS:
        console.print(f"[red]Error: Unknown key '{key}'. Valid keys: {', '.join(STRING_KEYS)}[/red]")
        raise typer.Exit(code=1)

    store = get_preferences_store()
    store.set(key, value)
    console.print(f"[green]{key} = {value}[/green]")


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
