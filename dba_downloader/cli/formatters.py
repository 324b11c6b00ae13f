"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dba_downloader.models.download import ProbeResult, ToolSet
from dba_downloader.utils.formatting import format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ProvisioningError": [
            "• Check your internet connection and try again.",
            "• GitHub may be rate-limiting downloads; wait a few minutes.",
            "• Override the tool URLs in the configuration file if needed.",
        ],
        "ArchiveMemberNotFoundError": [
            "• The release archive layout may have changed upstream.",
            "• Point `remuxer_url` or `runtime_url` at a different build.",
        ],
        "ProbeError": [
            "• The URL may be unsupported, private or geo-blocked.",
            "• Run `dba-downloader update` to get the latest extractors.",
            "• You can still download without choosing a language.",
        ],
        "SpawnError": [
            "• The tool binary may be missing or blocked by antivirus software.",
            "• Run `dba-downloader setup` to reinstall missing tools.",
        ],
        "EngineExitError": [
            "• Run `dba-downloader update` to get the latest extractors.",
            "• Check the diagnostic log for the full command and error output.",
        ],
        "ConfigurationError": [
            "• Fix the value reported above in the configuration file.",
            "• Run `dba-downloader init --force` to write a fresh one.",
        ],
        "ValidationError": [
            "• Check the quality and time values (HH:MM:SS) you passed.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in sorted(config_data.items()):
        if key == "config_path":
            continue
        if hasattr(value, "value"):
            value = value.value
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_tools_table(tools: ToolSet):
    """Shows which tool binaries are installed."""
    console = Console()
    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Tool", style="bold cyan")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    table.add_column("Path", style="dim")

    for name, path, required in (
        ("yt-dlp", tools.engine, True),
        ("ffmpeg", tools.remuxer, True),
        ("deno", tools.runtime, False),
    ):
        if path.is_file():
            status = "[green]✓ installed[/green]"
            size = format_size(path.stat().st_size)
        elif required:
            status = "[red]✗ missing[/red]"
            size = "-"
        else:
            status = "[yellow]○ missing (optional)[/yellow]"
            size = "-"
        table.add_row(name, status, size, str(path))

    console.print(table)


def print_tracks_table(result: ProbeResult):
    """Displays the audio tracks detected for a URL."""
    console = Console()
    if not result.tracks:
        console.print(
            "[yellow]No language-tagged audio tracks found.[/yellow] "
            f"[dim]{escape(result.summary)}[/dim]"
        )
        return

    table = Table(title="Audio Tracks", title_style="bold cyan", padding=(0, 2))
    table.add_column("Code", style="bold")
    table.add_column("Name")
    table.add_column("Format ID", style="magenta")
    table.add_column("Type")
    table.add_column("Bitrate", justify="right")

    for track in result.tracks:
        kind = "[green]audio[/green]" if track.is_audio_only else "[cyan]combined[/cyan]"
        bitrate = f"{track.bitrate:.0f}k" if track.bitrate else "-"
        table.add_row(
            escape(track.code),
            escape(track.display_name),
            escape(track.format_id),
            kind,
            bitrate,
        )

    console.print(table)
    console.print(f"[dim]{escape(result.summary)}[/dim]")
