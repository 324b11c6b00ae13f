"""
Makes sure yt-dlp, ffmpeg and deno exist in the tool directory, downloading
and unpacking whichever of them are missing.
"""

import asyncio
import logging
import lzma
import os
import stat
import tarfile
import time
import zipfile
import zlib
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

import aiohttp

from dba_downloader.exceptions import ProvisioningError
from dba_downloader.media.archive import extract_executable
from dba_downloader.media.downloader import Downloader
from dba_downloader.models.config import AppConfig
from dba_downloader.models.download import ProvisionStatus, ToolSet
from dba_downloader.utils.structured_logger import ProvisionLogger

log = logging.getLogger(__name__)

ProgressSink = Callable[[ProvisionStatus], None]

INDETERMINATE = -1
TOTAL_STEPS = 3


@dataclass(frozen=True)
class ToolSpec:
    """How one external tool is obtained."""

    name: str
    step: int
    url: str
    path: Path
    archived: bool
    required: bool = True


class BinaryProvisioner:
    """
    Installs the external executables on demand.

    A file that already exists is trusted as-is; a missing file is always
    fetched again, so an earlier partial failure heals on the next call.
    """

    def __init__(
        self,
        config: AppConfig,
        tools: ToolSet,
        downloader: Downloader | None = None,
        events: ProvisionLogger | None = None,
    ):
        self.config = config
        self.tools = tools
        self.downloader = downloader or Downloader(
            config.download_timeout, config.connect_timeout
        )
        self.events = events
        self._lock = asyncio.Lock()

    def tool_specs(self) -> list[ToolSpec]:
        return [
            ToolSpec("yt-dlp", 1, self.config.engine_url, self.tools.engine, False),
            ToolSpec("ffmpeg", 2, self.config.remuxer_url, self.tools.remuxer, True),
            ToolSpec(
                "deno",
                3,
                self.config.runtime_url,
                self.tools.runtime,
                True,
                required=False,
            ),
        ]

    def missing_tools(self) -> list[ToolSpec]:
        return [spec for spec in self.tool_specs() if not spec.path.is_file()]

    async def ensure_ready(self, progress_sink: ProgressSink | None = None) -> None:
        """
        Installs every missing tool, then reports the final 'Ready' status.

        Raises:
            ProvisioningError: If a required tool could not be installed.
        """

        def report(status: ProvisionStatus) -> None:
            if progress_sink:
                progress_sink(status)

        async with self._lock:
            await asyncio.to_thread(self.tools.root.mkdir, parents=True, exist_ok=True)
            try:
                for spec in self.tool_specs():
                    if spec.path.is_file():
                        if self.events:
                            self.events.tool_present(spec.name, spec.path)
                        continue
                    try:
                        await self._install(spec, report)
                    except ProvisioningError as e:
                        if self.events:
                            self.events.tool_failed(
                                spec.name, spec.url, str(e), spec.required
                            )
                        if spec.required:
                            raise
                        log.warning(
                            f"Optional tool '{spec.name}' unavailable, "
                            f"continuing without it: {e}"
                        )
            finally:
                await self.downloader.close()
                self.tools.refresh()

        report(ProvisionStatus(TOTAL_STEPS, "Ready", 100, done=True))

    async def _install(self, spec: ToolSpec, report: ProgressSink) -> None:
        log.info(f"Downloading {spec.name} from {spec.url}")
        start = time.monotonic()
        label = f"Downloading {spec.name}"
        report(ProvisionStatus(spec.step, label, 0))

        def on_bytes(done: int, total: int) -> None:
            percent = done * 100 // total if total > 0 else INDETERMINATE
            report(ProvisionStatus(spec.step, label, min(percent, 100)))

        download_path = spec.path.with_name(
            spec.path.name + (".archive" if spec.archived else ".part")
        )
        staging_path = spec.path.with_name(spec.path.name + ".part")
        try:
            size = await self.downloader.download_file(spec.url, download_path, on_bytes)
            if spec.archived:
                report(
                    ProvisionStatus(spec.step, f"Extracting {spec.name}", INDETERMINATE)
                )
                await asyncio.to_thread(
                    extract_executable, download_path, spec.path.name, staging_path
                )
            await asyncio.to_thread(self._finalize, staging_path, spec.path)
        except ProvisioningError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProvisioningError(f"Failed to download {spec.name}: {e}") from e
        except (
            OSError,
            EOFError,
            zipfile.BadZipFile,
            zlib.error,
            tarfile.TarError,
            lzma.LZMAError,
        ) as e:
            raise ProvisioningError(f"Failed to install {spec.name}: {e}") from e
        finally:
            for leftover in (download_path, staging_path):
                with suppress(OSError):
                    leftover.unlink(missing_ok=True)

        if self.events:
            self.events.tool_installed(
                spec.name, spec.path, size, time.monotonic() - start
            )

    @staticmethod
    def _finalize(staging_path: Path, final_path: Path) -> None:
        """Marks the staged file executable and moves it into place."""
        if os.name != "nt":
            mode = staging_path.stat().st_mode
            staging_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        os.replace(staging_path, final_path)
