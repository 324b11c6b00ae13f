"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

import platform
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .download import QualityTier

_GH = "https://github.com"
_YT_DLP_RELEASE = f"{_GH}/yt-dlp/yt-dlp/releases/latest/download"
_FFMPEG_RELEASE = f"{_GH}/yt-dlp/FFmpeg-Builds/releases/download/latest"
_DENO_RELEASE = f"{_GH}/denoland/deno/releases/latest/download"

# Maps the platform to the release assets of yt-dlp, ffmpeg and deno
TOOL_SOURCES = {
    "windows": {
        "engine_url": f"{_YT_DLP_RELEASE}/yt-dlp.exe",
        "remuxer_url": f"{_FFMPEG_RELEASE}/ffmpeg-master-latest-win64-gpl.zip",
        "runtime_url": f"{_DENO_RELEASE}/deno-x86_64-pc-windows-msvc.zip",
    },
    "linux": {
        "engine_url": f"{_YT_DLP_RELEASE}/yt-dlp_linux",
        "remuxer_url": f"{_FFMPEG_RELEASE}/ffmpeg-master-latest-linux64-gpl.tar.xz",
        "runtime_url": f"{_DENO_RELEASE}/deno-x86_64-unknown-linux-gnu.zip",
    },
    "darwin": {
        "engine_url": f"{_YT_DLP_RELEASE}/yt-dlp_macos",
        "remuxer_url": "https://evermeet.cx/ffmpeg/getrelease/zip",
        "runtime_url": f"{_DENO_RELEASE}/deno-aarch64-apple-darwin.zip",
    },
}

_BITRATE_REGEX = re.compile(r"^\d{2,3}k$")


def default_tool_sources(system: str | None = None) -> dict[str, str]:
    """Gets the download URLs for the current (or given) platform."""
    system = (system or platform.system()).lower()
    return dict(TOOL_SOURCES.get(system, TOOL_SOURCES["linux"]))


def default_output_dir() -> Path:
    return Path.home() / "Downloads"


class AppConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Tool installation
    bin_dir: Path
    engine_url: str = Field(default_factory=lambda: default_tool_sources()["engine_url"])
    remuxer_url: str = Field(
        default_factory=lambda: default_tool_sources()["remuxer_url"]
    )
    runtime_url: str = Field(
        default_factory=lambda: default_tool_sources()["runtime_url"]
    )
    download_timeout: int = 600
    connect_timeout: int = 30

    # Download Settings
    default_quality: QualityTier = QualityTier.P1080
    output_dir: Path = Field(default_factory=default_output_dir)
    merge_audio_bitrate: str = "192k"
    open_after: bool = False

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("engine_url", "remuxer_url", "runtime_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError(f"Tool URL must be an http(s) URL, got: {v!r}")
        return v

    @field_validator("download_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Ensures a generous but bounded timeout."""
        if v < 30 or v > 3600:
            raise ValueError("Download timeout must be between 30 and 3600 seconds.")
        return v

    @field_validator("merge_audio_bitrate")
    @classmethod
    def validate_bitrate(cls, v: str) -> str:
        if not _BITRATE_REGEX.match(v):
            raise ValueError(f"Audio bitrate must look like '192k', got: {v!r}")
        return v

    @field_validator("bin_dir", "output_dir")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @model_validator(mode="after")
    def validate_timeouts(self) -> "AppConfig":
        if self.connect_timeout <= 0 or self.connect_timeout > self.download_timeout:
            raise ValueError(
                "Connect timeout must be positive and not exceed the download timeout."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
