"""
Builds yt-dlp command lines from download requests.

Everything here is pure: the same request and tool set always produce the
same tokens. Fallbacks are written as '/'-separated format alternatives so
that yt-dlp itself picks the first one that is available.
"""

import os

from dba_downloader.models.download import (
    AudioTrack,
    DownloadRequest,
    Invocation,
    TimeRange,
    ToolSet,
)

AUDIO_CODEC = "mp3"
CONTAINER = "mp4"
MERGE_AUDIO_BITRATE = "192k"
PREFERRED_AUDIO_EXT = "m4a"
OUTPUT_TEMPLATE = "%(title)s.%(ext)s"
DEFAULT_START = "00:00:00"

PROGRESS_ARGS = (
    "--newline",
    "--progress",
    "--progress-template",
    "%(progress._percent_str)s",
)


def runtime_args(tools: ToolSet) -> list[str]:
    """Binds the script runtime to the engine when it was provisioned."""
    if not tools.runtime_available:
        return []
    return ["--js-runtimes", f"deno:{tools.runtime}"]


def _merge_args(audio_bitrate: str) -> list[str]:
    return [
        "--merge-output-format",
        CONTAINER,
        "--postprocessor-args",
        f"Merger+ffmpeg_o:-c:v copy -c:a aac -b:a {audio_bitrate}",
    ]


def format_args(
    request: DownloadRequest, audio_bitrate: str = MERGE_AUDIO_BITRATE
) -> list[str]:
    """Selects the format expression and post-processing for a request."""
    track: AudioTrack | None = request.selected_track

    if request.quality.is_audio_only:
        selector = (
            track.format_id if track and track.is_audio_only else "bestaudio/best"
        )
        return ["-f", selector, "-x", "--audio-format", AUDIO_CODEC]

    cap = f"[height<={request.quality.height}]"

    if track and track.is_audio_only:
        selector = "/".join(
            [
                f"bestvideo{cap}+{track.format_id}",
                f"bestvideo{cap}+bestaudio",
                f"best{cap}",
                "best",
            ]
        )
        return ["-f", selector, *_merge_args(audio_bitrate)]

    if track:
        selector = "/".join(
            [f"best{cap}[language={track.code}]", f"best{cap}", "best"]
        )
        return ["-f", selector, "--remux-video", CONTAINER]

    selector = "/".join(
        [
            f"bestvideo{cap}+bestaudio[ext={PREFERRED_AUDIO_EXT}]",
            f"bestvideo{cap}+bestaudio",
            f"best{cap}",
            "best",
        ]
    )
    return ["-f", selector, *_merge_args(audio_bitrate)]


def time_range_args(time_range: TimeRange | None) -> list[str]:
    """Seeks through ffmpeg and, when an end exists, bounds the section."""
    if time_range is None or (time_range.start is None and time_range.end is None):
        return []
    start = time_range.start or DEFAULT_START
    args = ["--downloader", "ffmpeg", "--downloader-args", f"ffmpeg_i:-ss {start}"]
    if time_range.end:
        args += ["--download-sections", f"*{start}-{time_range.end}"]
    return args


def synthesize(
    request: DownloadRequest,
    tools: ToolSet,
    audio_bitrate: str = MERGE_AUDIO_BITRATE,
) -> Invocation:
    """Builds the complete engine invocation for one download request."""
    args = [
        *PROGRESS_ARGS,
        "--ffmpeg-location",
        str(tools.remuxer),
        *runtime_args(tools),
        *format_args(request, audio_bitrate),
        *time_range_args(request.time_range),
        "-o",
        os.path.join(str(request.output_dir), OUTPUT_TEMPLATE),
        "--",
        request.source_url,
    ]
    return Invocation(executable=tools.engine, args=tuple(args))
