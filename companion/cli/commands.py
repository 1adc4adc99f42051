"""CLI commands for companion."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from companion import __logo__, __version__
from companion.agent.archival import ArchivalPipeline
from companion.agent.archive_prompts import get_archive_prompt
from companion.agent.scheduled import ScheduledMessageDispatcher
from companion.agent.turn_runner import ChatTurnRunner
from companion.config.loader import load_config
from companion.config.schema import Config
from companion.errors import ConfigError
from companion.logging import setup_logging
from companion.providers.litellm_provider import LiteLLMProvider
from companion.store.jsonl import ConversationStore
from companion.store.models import ConversationProfile, Message, MessageRole, MessageType

app = typer.Typer(
    name="companion",
    help=f"{__logo__} companion - paced, memory-aware companion chat",
    no_args_is_help=True,
)

console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Path to config.json")


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} companion v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
) -> None:
    """companion - paced, memory-aware companion chat."""


def _load(config_path: Optional[Path]) -> Config:
    try:
        config = load_config(config_path) if config_path else load_config()
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(2)
    setup_logging(json_output=config.logging.json_output, level=config.logging.level)
    return config


def _resolve_profile(
    store: ConversationStore,
    conversation_id: str,
    character: Optional[str],
    user: Optional[str],
) -> ConversationProfile:
    profile = store.load_profile(conversation_id)
    changed = profile is None
    if profile is None:
        profile = ConversationProfile(conversation_id=conversation_id, character_name=character or "Companion")
    if character and character != profile.character_name:
        profile.character_name = character
        changed = True
    if user and user != profile.user_name:
        profile.user_name = user
        changed = True
    if changed:
        store.save_profile(profile)
    return profile


def _describe(msg: Message) -> str:
    if msg.type is MessageType.TEXT:
        text = msg.content
    elif msg.type is MessageType.TRANSFER:
        text = f"[transfer {msg.metadata.get('amount', '?')}]"
    else:
        text = f"[{msg.type.value}] {msg.content}"
    if msg.reply_to is not None:
        text = f"> {msg.reply_to.name}: {msg.reply_to.content}\n{text}"
    return text


def _print_status(text: str) -> None:
    if text:
        console.print(f"[dim]{escape(text)}[/dim]")


@app.command()
def chat(
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    message: str = typer.Argument(..., help="User message to send"),
    character: Optional[str] = typer.Option(None, "--character", help="Character display name"),
    user: Optional[str] = typer.Option(None, "--user", help="User display name"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """Send a user message and run one generation turn."""
    config = _load(config_path)
    store = ConversationStore(config.workspace_path)
    profile = _resolve_profile(store, conversation_id, character, user)
    store.insert_message(Message(
        conversation_id=conversation_id,
        role=MessageRole.USER,
        type=MessageType.TEXT,
        content=message,
    ))

    runner = ChatTurnRunner(
        LiteLLMProvider.from_config(config.provider, config.generation),
        store,
        generation=config.generation,
        delivery=config.delivery,
        emojis=config.emojis,
        toast=lambda text, level: console.print(f"[dim]({level}) {escape(text)}[/dim]"),
        on_status=_print_status,
        publish=lambda msg: console.print(f"[cyan]{profile.character_name}[/cyan]: {escape(_describe(msg))}"),
    )
    result = asyncio.run(runner.run(profile))
    if not result.ok:
        console.print(f"[red]Connection interrupted: {escape(result.error or '')}[/red]")
        raise typer.Exit(1)


@app.command()
def archive(
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    prompt: Optional[str] = typer.Option(None, "--prompt", help="Archive prompt id (preset_rational, preset_diary)"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """Summarise each day of a conversation into memory fragments."""
    config = _load(config_path)
    store = ConversationStore(config.workspace_path)
    profile = _resolve_profile(store, conversation_id, None, None)
    pipeline = ArchivalPipeline(
        LiteLLMProvider.from_config(config.provider, config.generation),
        store,
        config.archive,
        model=config.generation.model,
    )
    template = get_archive_prompt(prompt or config.archive.prompt_id)
    with console.status(f"Archiving {conversation_id}..."):
        report = asyncio.run(pipeline.run(profile, template))

    table = Table(title=f"Archive: {escape(conversation_id)}")
    table.add_column("Date", style="bold")
    table.add_column("Summary")
    for fragment in report.fragments:
        table.add_row(escape(fragment.date), escape(fragment.summary))
    console.print(table)
    console.print(f"Processed {report.processed}/{report.requested} days, {len(report.fragments)} fragments saved.")
    if not report.ok:
        console.print(f"[red]Stopped at {report.failed_date}: {escape(report.error or '')}[/red]")
        raise typer.Exit(1)


@app.command("deliver-due")
def deliver_due(
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """Deliver scheduled messages whose time has come."""
    config = _load(config_path)
    store = ConversationStore(config.workspace_path)
    delivered = ScheduledMessageDispatcher(store).dispatch_due(conversation_id)
    for msg in delivered:
        console.print(f"[cyan]#{msg.id}[/cyan] {escape(msg.content)}")
    console.print(f"{len(delivered)} scheduled message(s) delivered.")


@app.command()
def history(
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of latest messages to show"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """Print the latest messages of a conversation."""
    config = _load(config_path)
    store = ConversationStore(config.workspace_path)
    messages = store.fetch_history(conversation_id)
    if limit > 0:
        messages = messages[-limit:]
    if not messages:
        console.print("No messages.")
        return

    table = Table(title=escape(conversation_id))
    table.add_column("ID", style="bold")
    table.add_column("Time")
    table.add_column("Role")
    table.add_column("Content")
    for msg in messages:
        table.add_row(str(msg.id), msg.timestamp.strftime("%Y-%m-%d %H:%M"), msg.role.value, escape(_describe(msg)))
    console.print(table)


if __name__ == "__main__":
    app()
