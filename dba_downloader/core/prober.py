"""
Asks the engine for a URL's metadata and derives one audio track per language.
"""

import asyncio
import json
import logging
from collections.abc import Iterable
from contextlib import suppress
from typing import Any

from dba_downloader.core.arguments import runtime_args
from dba_downloader.exceptions import ProbeError, SpawnError
from dba_downloader.models.download import AudioTrack, ProbeResult, ToolSet
from dba_downloader.utils.structured_logger import ProcessLogger

log = logging.getLogger(__name__)


def _has_codec(value: Any) -> bool:
    return bool(value) and value != "none"


def candidates_from_formats(formats: Iterable[dict[str, Any]]) -> list[AudioTrack]:
    """
    Turns engine format entries into audio track candidates.

    Only entries declaring both a language and a real audio codec qualify.
    """
    candidates = []
    for fmt in formats:
        lang = fmt.get("language")
        if not lang or not _has_codec(fmt.get("acodec")):
            continue
        candidates.append(
            AudioTrack(
                code=lang,
                display_name=fmt.get("format_note") or lang,
                format_id=str(fmt.get("format_id", "")),
                is_audio_only=not _has_codec(fmt.get("vcodec")),
                bitrate=float(fmt.get("tbr") or fmt.get("abr") or 0),
            )
        )
    return candidates


def is_better(candidate: AudioTrack, current: AudioTrack) -> bool:
    """
    Ranks two tracks of the same language.

    Audio-only beats combined; with equal audio-only-ness the higher bitrate
    wins. Anything else is a tie, which keeps the current (first seen) track.
    """
    if candidate.is_audio_only != current.is_audio_only:
        return candidate.is_audio_only
    return candidate.bitrate > current.bitrate


def best_per_language(candidates: Iterable[AudioTrack]) -> list[AudioTrack]:
    """Keeps the best track for each language code, sorted by code."""
    best: dict[str, AudioTrack] = {}
    for candidate in candidates:
        current = best.get(candidate.code)
        if current is None or is_better(candidate, current):
            best[candidate.code] = candidate
    return sorted(best.values(), key=lambda track: track.code)


def summarize(tracks: list[AudioTrack]) -> str:
    details = ", ".join(
        f"{t.code}:{t.format_id}:{'audio' if t.is_audio_only else 'combined'}"
        for t in tracks
    )
    return f"Detected:{len(tracks)} [{details}]"


class TrackProber:
    """Runs the engine in metadata-only mode to discover audio languages."""

    def __init__(self, tools: ToolSet, events: ProcessLogger | None = None):
        self.tools = tools
        self.events = events

    def build_args(self, url: str) -> list[str]:
        return [
            str(self.tools.engine),
            "--dump-json",
            "--no-download",
            "--no-playlist",
            *runtime_args(self.tools),
            "--",
            url,
        ]

    async def probe(self, url: str) -> ProbeResult:
        """
        Probes a URL for its audio tracks.

        Raises:
            ProbeError: If the engine exits with a non-zero code.
            SpawnError: If the engine cannot be started.
        """
        argv = self.build_args(url)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            if self.events:
                self.events.spawn_failed(argv, str(e))
            raise SpawnError(str(e)) from e

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise

        stderr_text = stderr.decode("utf-8", errors="replace").strip()

        if proc.returncode != 0:
            if self.events:
                self.events.probe_failed(argv, proc.returncode, stderr_text[-2000:])
            raise ProbeError(stderr_text or f"Exit code {proc.returncode}")

        return self.parse(stdout.decode("utf-8", errors="replace"), url)

    def parse(self, payload: str, url: str = "") -> ProbeResult:
        """
        Parses a metadata dump. Malformed metadata yields an empty result with
        the parse error as its summary.
        """
        try:
            info = json.loads(payload)
            formats = info.get("formats") or []
            tracks = best_per_language(candidates_from_formats(formats))
        except (ValueError, TypeError, AttributeError) as e:
            log.error(f"[probe] Parse error: {e}")
            if self.events:
                self.events.probe_unparseable(url, str(e))
            return ProbeResult(tracks=[], summary=f"ParseError: {e}")

        summary = summarize(tracks)
        log.debug(f"[probe] {summary}")
        return ProbeResult(tracks=tracks, summary=summary)
