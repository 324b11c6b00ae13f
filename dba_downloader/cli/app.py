"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import signal
import time
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from dba_downloader import __version__
from dba_downloader.core.service import DownloaderService, DownloadOptions
from dba_downloader.exceptions import (
    DbaDownloaderError,
    DownloadCancelledError,
    ProbeError,
)
from dba_downloader.models.config import AppConfig
from dba_downloader.models.download import AudioTrack, QualityTier
from dba_downloader.storage.config_manager import CONFIG_FILE, ConfigManager
from dba_downloader.utils.formatting import format_duration

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_tools_table,
    print_tracks_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("dba_downloader")

app = typer.Typer(
    name="dba-downloader",
    help=(
        "Download video and audio through a locally managed yt-dlp. Use"
        " 'dba-downloader <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def _load_config(cli_options: dict | None = None) -> AppConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except DbaDownloaderError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _match_track(tracks: list[AudioTrack], lang: str) -> AudioTrack | None:
    """Finds a track by exact code, then by case-insensitive prefix."""
    for track in tracks:
        if track.code == lang:
            return track
    wanted = lang.lower()
    for track in tracks:
        if track.code.lower().startswith(wanted):
            return track
    return None


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """DBA Downloader CLI"""
    if version:
        console.print(f"[bold]dba-downloader[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("dba_downloader").setLevel(log_level)

    if show_config:
        config = _load_config()
        print_config(CONFIG_FILE, config.model_dump())
        print_tools_table(DownloaderService(config).tools)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    output_dir: Path | None = typer.Option(  # noqa: B008
        None, "-o", "--output-dir", help="Default folder for downloads."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with default values."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {}
    if output_dir:
        settings["output_dir"] = output_dir.expanduser()
    try:
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except DbaDownloaderError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Next: [cyan]dba-downloader setup[/cyan] to install the tools.")


@app.command()
def setup():
    """Download any missing tools (yt-dlp, ffmpeg, deno)."""
    config = _load_config()
    service = DownloaderService(config)

    async def _setup_async():
        async with ProgressManager(console) as progress:
            await service.ensure_provisioned(progress.on_provision_status)

    try:
        asyncio.run(_setup_async())
    except DbaDownloaderError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e

    if not service.tools.runtime_available:
        console.print(
            "[yellow]⚠️  deno could not be installed; some sites may fail to"
            " download until it is.[/yellow]"
        )
    print_tools_table(service.tools)


@app.command()
def update():
    """Update yt-dlp to its latest release."""
    service = DownloaderService(_load_config())
    console.print("[cyan]Updating engine...[/cyan]")
    try:
        asyncio.run(service.update_engine())
    except DbaDownloaderError as e:
        console.print("[red]✗ Update failed.[/red]")
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print("[green]✓ Ready[/green]")


@app.command()
def probe(url: str = typer.Argument(..., help="The video URL to inspect.")):
    """List the audio languages available for a URL."""
    service = DownloaderService(_load_config())
    try:
        result = asyncio.run(service.probe(url))
    except DbaDownloaderError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    print_tracks_table(result)


@app.command(name="download")
def download_command(
    url: str = typer.Argument(..., help="The video URL to download."),
    quality: QualityTier | None = typer.Option(
        None, "-q", "--quality", help="Maximum video height."
    ),
    audio: bool = typer.Option(False, "--audio", "-a", help="Download audio only (mp3)."),
    lang: str | None = typer.Option(
        None, "--lang", "-l", help="Audio language code to prefer, e.g. 'en'."
    ),
    start: str | None = typer.Option(None, "--start", help="Clip start (HH:MM:SS)."),
    end: str | None = typer.Option(None, "--end", help="Clip end (HH:MM:SS)."),
    output_dir: Path | None = typer.Option(  # noqa: B008
        None, "-o", "--output-dir", help="Folder to save into."
    ),
    open_after: bool | None = typer.Option(
        None, "--open/--no-open", help="Open the folder when the download finishes."
    ),
):
    """Download a video or its audio."""
    config = _load_config()
    service = DownloaderService(config)

    async def _download_async() -> tuple[Path, bool]:
        async with ProgressManager(console) as progress:
            await service.ensure_provisioned(progress.on_provision_status)

            track = None
            if lang:
                try:
                    result = await service.probe(url)
                    track = _match_track(result.tracks, lang)
                except ProbeError as e:
                    log.warning(f"[yellow]Could not list languages: {escape(str(e))}[/yellow]")
                if track is None:
                    log.warning(
                        f"[yellow]No '{escape(lang)}' audio track found, using the default."
                        "[/yellow]"
                    )

            options = DownloadOptions(
                audio_only=audio,
                quality=quality or config.default_quality,
                audio_track=track,
                start=start,
                end=end,
                out_dir=output_dir,
                open_after=config.open_after if open_after is None else open_after,
            )
            request = options.to_request(url, config.output_dir)
            await asyncio.to_thread(request.output_dir.mkdir, parents=True, exist_ok=True)

            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, service.cancel)
            except (NotImplementedError, RuntimeError):
                pass

            progress.start_download(url)
            try:
                await service.download(request, progress.on_download_line)
            except DownloadCancelledError:
                progress.finish_download(False, "Cancelled")
                raise
            except DbaDownloaderError:
                progress.finish_download(False, "Failed")
                raise
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except (NotImplementedError, RuntimeError):
                    pass
            progress.finish_download(True, "Complete!")
            return request.output_dir, options.open_after

    started = time.monotonic()
    try:
        saved_to, should_open = asyncio.run(_download_async())
    except DownloadCancelledError:
        console.print("[yellow]⚠️  Download cancelled. A partial file may remain.[/yellow]")
        raise typer.Exit(code=130) from None
    except (DbaDownloaderError, ValidationError) as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e

    elapsed = format_duration(time.monotonic() - started)
    console.print(
        f"[bold green]✓ Saved to[/bold green] [dim]{escape(str(saved_to))}[/dim]"
        f" in {elapsed}"
    )
    if should_open:
        typer.launch(str(saved_to))
