"""
Data structures shared by the provisioner, prober, synthesizer and supervisor.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

_TIME_REGEX = re.compile(r"^(?:(?:(?P<h>\d{1,2}):)?(?P<m>\d{1,2}):)?(?P<s>\d{1,2})$")


class QualityTier(str, Enum):
    """Discrete height caps offered to the user, plus audio-only."""

    P1080 = "1080p"
    P720 = "720p"
    P480 = "480p"
    P360 = "360p"
    P240 = "240p"
    P144 = "144p"
    AUDIO = "audio"

    @property
    def height(self) -> int | None:
        if self is QualityTier.AUDIO:
            return None
        return int(self.value.rstrip("p"))

    @property
    def is_audio_only(self) -> bool:
        return self is QualityTier.AUDIO


def normalize_timestamp(value: str) -> str:
    """
    Normalizes 'SS', 'MM:SS' or 'HH:MM:SS' into zero-padded 'HH:MM:SS'.

    Raises:
        ValueError: If the value is not a recognizable timestamp.
    """
    match = _TIME_REGEX.match(value.strip())
    if not match:
        raise ValueError(f"Invalid timestamp '{value}', expected HH:MM:SS.")
    hours = int(match.group("h") or 0)
    minutes = int(match.group("m") or 0)
    seconds = int(match.group("s"))
    if minutes > 59 or seconds > 59:
        raise ValueError(f"Invalid timestamp '{value}', minutes and seconds must be < 60.")
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def timestamp_to_seconds(value: str) -> int:
    hours, minutes, seconds = (int(part) for part in value.split(":"))
    return hours * 3600 + minutes * 60 + seconds


class AudioTrack(BaseModel):
    """One selectable audio language detected by the track prober."""

    model_config = ConfigDict(frozen=True)

    code: str
    display_name: str
    format_id: str
    is_audio_only: bool
    bitrate: float = 0.0


class TimeRange(BaseModel):
    """Optional clip bounds; a missing start means the beginning of the media."""

    model_config = ConfigDict(frozen=True)

    start: str | None = None
    end: str | None = None

    @field_validator("start", "end")
    @classmethod
    def validate_bound(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return normalize_timestamp(v)

    @model_validator(mode="after")
    def validate_order(self) -> "TimeRange":
        if self.start is None and self.end is None:
            raise ValueError("A time range needs at least a start or an end.")
        if self.start and self.end:
            if timestamp_to_seconds(self.end) <= timestamp_to_seconds(self.start):
                raise ValueError(
                    f"End '{self.end}' must be after start '{self.start}'."
                )
        return self


class DownloadRequest(BaseModel):
    """Everything needed to build one engine invocation."""

    model_config = ConfigDict(frozen=True)

    source_url: str
    quality: QualityTier = QualityTier.P1080
    selected_track: AudioTrack | None = None
    time_range: TimeRange | None = None
    output_dir: Path

    @field_validator("source_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Source URL cannot be empty.")
        return v


@dataclass
class ToolSet:
    """Paths of the external executables inside the installation directory."""

    root: Path
    engine: Path
    remuxer: Path
    runtime: Path
    runtime_available: bool = False

    @classmethod
    def from_root(cls, root: Path) -> "ToolSet":
        suffix = ".exe" if os.name == "nt" else ""
        tools = cls(
            root=root,
            engine=root / f"yt-dlp{suffix}",
            remuxer=root / f"ffmpeg{suffix}",
            runtime=root / f"deno{suffix}",
        )
        tools.refresh()
        return tools

    def refresh(self) -> None:
        """Re-reads which optional tools are installed."""
        self.runtime_available = self.runtime.is_file()

    @property
    def log_path(self) -> Path:
        return self.root / "diagnostics.jsonl"


@dataclass(frozen=True)
class Invocation:
    """An immutable command line: the executable followed by its arguments."""

    executable: Path
    args: tuple[str, ...]

    @property
    def argv(self) -> list[str]:
        return [str(self.executable), *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


@dataclass
class ProvisionStatus:
    """Coarse provisioning progress. A percent of -1 means indeterminate."""

    step: int
    label: str
    percent: int
    total_steps: int = 3
    done: bool = False
    error: bool = False

    @property
    def indeterminate(self) -> bool:
        return self.percent < 0


@dataclass
class ProbeResult:
    tracks: list[AudioTrack] = field(default_factory=list)
    summary: str = ""


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    NON_ZERO_EXIT = "non_zero_exit"
    SPAWN_FAILED = "spawn_failed"
    CANCELLED = "cancelled"


@dataclass
class DownloadOutcome:
    """How a supervised engine process ended."""

    status: OutcomeStatus
    exit_code: int | None = None
    reason: str = ""
    stderr_tail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS
