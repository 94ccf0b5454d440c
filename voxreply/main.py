"""VoxReply main entry point: CLI interface and component wiring.

Commands:
  voxreply start              Interactive console session
  voxreply transcribe FILE    Transcribe an audio file
  voxreply speak "text"       Synthesize text to a voice note
  voxreply ask "text"         Run one agent turn
  voxreply status             Show configuration and engines
  voxreply chats              List stored chats
  voxreply messages JID       List stored messages of a chat
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from voxreply import __version__
from voxreply.config import VoxConfig, load_config
from voxreply.delivery.deliverer import OutboundDeliverer
from voxreply.delivery.tts import TextToSpeechAdapter
from voxreply.engine.agent import AgentTurnConsumer
from voxreply.engine.pipeline import VoicePipeline
from voxreply.errors import VoxReplyError
from voxreply.gateway.channels.console import ConsoleSession
from voxreply.gateway.classifier import EventClassifier
from voxreply.gateway.session import MessagingSession
from voxreply.memory.history import ConversationLog
from voxreply.memory.store import MessageStore
from voxreply.speech.stt import SpeechToTextAdapter
from voxreply.utils.jid import parse_jid
from voxreply.utils.process import find_binary

console = Console()

# ─── App Core ────────────────────────────────────────────────────


class VoxReplyApp:
    """Wires a messaging session to the classifier and the voice pipeline."""

    def __init__(self, config: VoxConfig, session: MessagingSession) -> None:
        self.config = config
        self.session = session

        self.store = MessageStore(config.database_path)
        self.log = ConversationLog(self.store, session)

        self.stt = SpeechToTextAdapter(config.speech)
        self.agent = AgentTurnConsumer(config.agent)
        self.tts = TextToSpeechAdapter(config.synthesis, config.work_path)
        self.deliverer = OutboundDeliverer(session, self.log, config.delivery)

        self.pipeline = VoicePipeline(
            session=session,
            stt=self.stt,
            agent=self.agent,
            tts=self.tts,
            deliverer=self.deliverer,
            config=config.pipeline,
        )
        self.classifier = EventClassifier(self.log, self.pipeline)

    async def startup(self) -> None:
        await self.store.connect()
        await self.session.start()

    async def shutdown(self) -> None:
        await self.session.stop()
        await self.agent.aclose()
        await self.store.close()


# ─── CLI Commands ────────────────────────────────────────────────


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


@click.group()
@click.version_option(__version__, prog_name="VoxReply")
def cli() -> None:
    """🎙 VoxReply: answers voice notes with voice notes."""
    pass


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def start(verbose: bool) -> None:
    """Start an interactive console session."""
    _setup_logging(verbose)
    asyncio.run(_run_interactive())


@cli.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def transcribe(audio_file: Path, verbose: bool) -> None:
    """Transcribe an audio file to text."""
    _setup_logging(verbose)
    config = load_config()
    try:
        text = asyncio.run(SpeechToTextAdapter(config.speech).transcribe(audio_file))
    except VoxReplyError as e:
        raise click.ClickException(str(e)) from e
    console.print(text)


@cli.command()
@click.argument("text")
@click.option(
    "--out", "-o", type=click.Path(path_type=Path), default=None,
    help="Directory for the generated .ogg file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def speak(text: str, out: Path | None, verbose: bool) -> None:
    """Synthesize TEXT to an Opus voice note."""
    _setup_logging(verbose)
    config = load_config()
    tts = TextToSpeechAdapter(config.synthesis, out or Path.cwd())
    try:
        path = asyncio.run(tts.synthesize(text, "voxreply_speech"))
    except VoxReplyError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"🔊 [green]{path}[/]")


@cli.command()
@click.argument("text")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def ask(text: str, verbose: bool) -> None:
    """Send TEXT to the agent and print its answer."""
    _setup_logging(verbose)
    try:
        answer = asyncio.run(_run_ask(text))
    except VoxReplyError as e:
        raise click.ClickException(str(e)) from e
    console.print(answer)


@cli.command()
def status() -> None:
    """Show configuration and which engines are available."""
    config = load_config()
    console.print("[bold cyan]🎙 VoxReply Status[/]\n")
    console.print(f"  Version: {__version__}")
    console.print(f"  Config: {config.config_dir}")
    console.print(f"  Work dir: {config.work_path}")
    console.print(f"  Database: {config.database_path}")
    console.print(f"  Agent: {config.agent.base_url} ({config.agent.model})")
    console.print(f"  Transcription: {'cloud' if config.speech.cloud_api_key else 'local whisper'}")
    console.print(f"  Debug echo: {'on' if config.pipeline.debug_echo else 'off'}")
    console.print()

    engines = [
        ("whisper", config.speech.whisper_binary),
        ("espeak", config.synthesis.espeak_binary),
        ("ffmpeg", config.synthesis.ffmpeg_binary),
        ("ffprobe", config.delivery.ffprobe_binary),
    ]
    healthy = True
    for name, binary in engines:
        found = find_binary(binary)
        if found:
            console.print(f"  ✅ {name}: [green]{found}[/]")
        elif name == "whisper" and config.speech.cloud_api_key:
            console.print(f"  ➖ {name}: [dim]not needed (cloud transcription)[/]")
        else:
            console.print(f"  ❌ {name}: [red]not found on PATH[/]")
            # durations are estimated without ffprobe
            if name != "ffprobe":
                healthy = False
    console.print()
    if healthy:
        console.print("[green]System healthy ✅[/]")
    else:
        console.print("[yellow]Some engines are missing; voice replies will degrade to text.[/]")


@cli.command()
@click.option("--limit", "-n", default=50, show_default=True, help="Maximum chats to list.")
def chats(limit: int) -> None:
    """List stored chats, most recent first."""
    asyncio.run(_show_chats(limit))


@cli.command()
@click.argument("jid")
@click.option("--limit", "-n", default=50, show_default=True, help="Maximum messages to list.")
@click.option("--offset", default=0, show_default=True, help="Messages to skip.")
def messages(jid: str, limit: int, offset: int) -> None:
    """List stored messages of chat JID, most recent first."""
    try:
        parse_jid(jid)
    except VoxReplyError as e:
        raise click.BadParameter(str(e), param_hint="JID") from e
    asyncio.run(_show_messages(jid, limit, offset))


# ─── Async Runners ───────────────────────────────────────────────


async def _run_interactive() -> None:
    """Run the console session loop."""
    config = load_config()
    session = ConsoleSession(outbox_dir=config.work_path / "outbox")
    app = VoxReplyApp(config, session)
    await app.startup()

    try:
        async for event in session.receive():
            await app.classifier.handle_event(event)
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/]")
    finally:
        await app.shutdown()


async def _run_ask(text: str) -> str:
    config = load_config()
    agent = AgentTurnConsumer(config.agent)
    try:
        outcome = await agent.ask(text)
    finally:
        await agent.aclose()
    return outcome.unwrap()


async def _show_chats(limit: int) -> None:
    config = load_config()
    store = MessageStore(config.database_path)
    await store.connect()
    try:
        summaries = await store.list_chats(limit)
    finally:
        await store.close()

    table = Table(title="Chats")
    table.add_column("JID", style="cyan")
    table.add_column("Name")
    table.add_column("Last message")
    table.add_column("Time", style="dim")
    for chat in summaries:
        name = f"👥 {chat.name}" if chat.is_group else chat.name
        table.add_row(
            chat.jid, name, chat.last_message[:60], chat.last_message_time.isoformat(" ", "seconds")
        )
    console.print(table)


async def _show_messages(jid: str, limit: int, offset: int) -> None:
    config = load_config()
    store = MessageStore(config.database_path)
    await store.connect()
    try:
        records = await store.list_messages(jid, limit=limit, offset=offset)
    finally:
        await store.close()

    table = Table(title=f"Messages in {jid}")
    table.add_column("Time", style="dim")
    table.add_column("From")
    table.add_column("Type")
    table.add_column("Content")
    for record in records:
        sender = "[bold]me[/]" if record.is_from_me else record.sender
        content = record.content or record.filename
        table.add_row(
            record.timestamp.isoformat(" ", "seconds"), sender, record.media_type, content[:80]
        )
    console.print(table)


# ─── Direct execution ───────────────────────────────────────────

if __name__ == "__main__":
    cli()
