"""
Command-line interface for Jarvis Assistant.
"""

import logging
import mimetypes
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

app = typer.Typer(
    name="jarvis-assistant",
    help="Tool-using personal assistant with spoken replies",
    no_args_is_help=True,
)

console = Console()

_MEDIA_COMMANDS = {"/image": "image", "/audio": "audio", "/video": "video"}

HELP_TEXT = """\
[bold]Commands[/bold]
  /image PATH       attach an image to the next message
  /audio PATH       attach an audio clip to the next message
  /video PATH       attach a video to the next message
  /approve          grant the pending permission request
  /connect ID [ACC] toggle a service (or one of its accounts)
  /memory           show what I have learned about you
  /stop             stop speaking
  /quit             exit
"""


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(config_file: Optional[Path], backend: Optional[str], no_voice: bool):
    from jarvis_assistant.config import Config, set_config

    if config_file is not None:
        if not config_file.exists():
            console.print(f"[red]Error: Config file not found: {config_file}[/red]")
            raise typer.Exit(1)
        config = Config.from_yaml(config_file)
        console.print(f"[dim]Loaded config: {config_file}[/dim]")
    else:
        config = Config()

    if backend:
        config.gateway.backend = backend
    if no_voice:
        config.speech.enabled = False

    set_config(config)
    return config


def _create_gateway(config):
    from jarvis_assistant.assistant.llm import create_gateway

    gateway_config = config.gateway
    kwargs: dict = {"api_key": gateway_config.api_key, "timeout_s": gateway_config.request_timeout_s}
    if gateway_config.backend == "gemini":
        kwargs.update(
            image_model=gateway_config.image_model,
            video_model=gateway_config.video_model,
            tts_model=gateway_config.tts_model,
        )
    try:
        return create_gateway(gateway_config.backend, **kwargs)
    except (ImportError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _create_speech(config, gateway):
    if not config.speech.enabled:
        return None

    from jarvis_assistant.assistant.audio_io import AudioOutput
    from jarvis_assistant.assistant.speech import SpeechPipeline
    from jarvis_assistant.assistant.tts_cache import TTSCache

    try:
        output = AudioOutput(sample_rate=config.speech.sample_rate, device=config.speech.output_device)
    except (ImportError, OSError) as e:
        console.print(f"[yellow]Voice output disabled: {e}[/yellow]")
        return None

    return SpeechPipeline(
        gateway,
        output,
        voice=config.speech.voice,
        max_retries=config.retry.max_retries,
        base_delay_ms=config.retry.base_delay_ms,
        cache=TTSCache(max_entries=config.speech.cache_entries),
    )


def _build_conversation(config):
    from jarvis_assistant.assistant.builtin_tools import build_tool_registry
    from jarvis_assistant.assistant.conversation import Conversation
    from jarvis_assistant.assistant.demo_data import SERVICE_SUMMARIES, demo_integrations
    from jarvis_assistant.assistant.memory import MemoryStore
    from jarvis_assistant.assistant.orchestrator import Orchestrator

    gateway = _create_gateway(config)
    tools = build_tool_registry(external_tools=config.orchestrator.external_tools)
    orchestrator = Orchestrator(gateway, tools, config=config, service_summaries=SERVICE_SUMMARIES)
    name = config.orchestrator.assistant_name

    return Conversation(
        orchestrator,
        speech=_create_speech(config, gateway),
        integrations=demo_integrations(),
        memory=MemoryStore(config.memory_path()),
        greeting=f"Hello! I'm {name}, your personal AI assistant. What's on your mind?",
    )


def _read_media(kind_name: str, path_text: str):
    from jarvis_assistant.assistant.types import MediaKind, MediaPayload

    path = Path(path_text).expanduser()
    if not path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        return None
    mime_type = mimetypes.guess_type(path.name)[0] or f"{kind_name}/octet-stream"
    return MediaPayload(kind=MediaKind(kind_name), data=path.read_bytes(), mime_type=mime_type)


def _save_image(config, image) -> Path:
    ext = mimetypes.guess_extension(image.mime_type) or ".jpg"
    out_dir = config.data_dir / "images"
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"image_{int(time.time() * 1000)}{ext}"
    path.write_bytes(image.data)
    return path


def _show_response(config, response) -> None:
    if response.text:
        console.print(Markdown(response.text))
    for source in response.grounding_sources:
        console.print(f"  [dim]- {source.title or source.uri}: {source.uri}[/dim]")
    if response.generated_image is not None:
        console.print(f"[green]Image saved to {_save_image(config, response.generated_image)}[/green]")
    if response.generated_video is not None:
        console.print("[blue]Video is generating... I'll let you know when it's ready.[/blue]")
    if response.requires_consent:
        console.print(f"[yellow]Permission requested for {response.action.tool_name}. "
                      "Type /approve to allow.[/yellow]")
    if response.requires_billing_project:
        console.print("[yellow]A billing-enabled API key is required for this request.[/yellow]")


def _print_services(integrations) -> None:
    table = Table(title="Services")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Connected")
    table.add_column("Accounts")
    for service in integrations:
        accounts = ", ".join(
            f"{a.id} ({'on' if a.connected else 'off'})" for a in service.accounts
        )
        table.add_row(
            service.id,
            service.name,
            "[green]yes[/green]" if service.connected else "[dim]no[/dim]",
            accounts,
        )
    console.print(table)


def _report_videos(conversation, announced: set) -> None:
    from jarvis_assistant.assistant.types import VideoState

    conversation.refresh_videos()
    for index, message in enumerate(conversation.messages):
        video = message.generated_video
        if video is None or index in announced:
            continue
        if video.state is VideoState.READY:
            console.print(f"[green]Your video is ready: {video.url}[/green]")
            announced.add(index)
        elif video.state is VideoState.ERROR:
            console.print("[red]Video generation failed.[/red]")
            announced.add(index)


@app.command()
def chat(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config preset (e.g., configs/default.yaml)"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Model backend (gemini, openai, simple)"),
    no_voice: bool = typer.Option(False, "--no-voice", help="Disable spoken replies"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """
    Chat with the assistant interactively.

    Example:
        jarvis-assistant chat --config configs/default.yaml
    """
    _setup_logging(verbose)
    config = _load_config(config_file, backend, no_voice)
    conversation = _build_conversation(config)

    console.print(f"[bold]{config.orchestrator.assistant_name}[/bold] "
                  f"[dim]({config.gateway.backend}, voice {'on' if conversation.speech else 'off'})[/dim]")
    console.print(Markdown(conversation.messages[0].text))
    console.print("[dim]Type /help for commands.[/dim]\n")

    pending_media = None
    announced_videos: set = set()
    try:
        while True:
            try:
                line = console.input("[bold cyan]> [/bold cyan]").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not line:
                _report_videos(conversation, announced_videos)
                continue

            command, _, rest = line.partition(" ")
            if command in ("/quit", "/exit"):
                break
            if command == "/help":
                console.print(HELP_TEXT)
                continue
            if command == "/stop":
                conversation.stop_speaking()
                continue
            if command == "/memory":
                facts = conversation.memory.facts()
                if not facts:
                    console.print("[dim]Nothing learned yet.[/dim]")
                for fact in facts:
                    console.print(f"  - {fact}")
                continue
            if command == "/connect":
                service_id, _, account_id = rest.strip().partition(" ")
                if not service_id:
                    _print_services(conversation.integrations)
                    continue
                conversation.toggle_integration(service_id, account_id.strip() or None)
                _print_services(conversation.integrations)
                continue
            if command in _MEDIA_COMMANDS:
                pending_media = _read_media(_MEDIA_COMMANDS[command], rest.strip())
                if pending_media is not None:
                    console.print(f"[dim]Attached {pending_media.mime_type}. Now type your message.[/dim]")
                continue
            if command == "/approve":
                if conversation.pending_consent() is None:
                    console.print("[dim]Nothing to approve.[/dim]")
                    continue
                with console.status("Working..."):
                    response = conversation.approve()
                _show_response(config, response)
                continue

            with console.status("Thinking..."):
                response = conversation.send(line, media=pending_media)
            pending_media = None
            _show_response(config, response)
            _report_videos(conversation, announced_videos)
    finally:
        conversation.close()
        console.print("[dim]Goodbye.[/dim]")


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="What to ask"),
    image: Optional[Path] = typer.Option(None, "--image", "-i", help="Attach an image"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config preset"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Model backend (gemini, openai, simple)"),
    no_voice: bool = typer.Option(False, "--no-voice", help="Disable spoken replies"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Ask a single question and print (and speak) the answer."""
    _setup_logging(verbose)
    config = _load_config(config_file, backend, no_voice)
    conversation = _build_conversation(config)

    media = _read_media("image", str(image)) if image is not None else None
    try:
        with console.status("Thinking..."):
            response = conversation.send(prompt, media=media)
        _show_response(config, response)

        # Let the reply finish before exiting
        if conversation.last_speech_job is not None:
            conversation.last_speech_job.wait()
    finally:
        conversation.close()


@app.command()
def say(
    text: str = typer.Argument(..., help="Text to speak"),
    voice: Optional[str] = typer.Option(None, "--voice", "-v", help="Voice name"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config preset"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Model backend (gemini, openai, simple)"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Speak text through the speech pipeline."""
    _setup_logging(verbose)
    config = _load_config(config_file, backend, no_voice=False)
    if voice:
        config.speech.voice = voice

    gateway = _create_gateway(config)
    speech = _create_speech(config, gateway)
    if speech is None:
        console.print("[red]Error: audio output is not available[/red]")
        raise typer.Exit(1)

    try:
        job = speech.speak(text)
        console.print(f"[dim]Speaking {len(job.chunks)} chunk(s) with voice {config.speech.voice}[/dim]")
        job.wait()
    except KeyboardInterrupt:
        speech.stop()
    finally:
        speech.close()


@app.command()
def services():
    """List integrations and their connection state."""
    from jarvis_assistant.assistant.demo_data import demo_integrations

    _print_services(demo_integrations())


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
