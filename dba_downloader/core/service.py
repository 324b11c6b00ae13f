"""
The main orchestrator exposed to user interfaces: provisioning, engine
updates, probing, downloading and cancellation.
"""

import asyncio
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from dba_downloader.core.arguments import synthesize
from dba_downloader.core.prober import TrackProber
from dba_downloader.core.provisioner import TOTAL_STEPS, BinaryProvisioner, ProgressSink
from dba_downloader.core.supervisor import LineCallback, ProcessSupervisor
from dba_downloader.exceptions import (
    DownloadCancelledError,
    EngineExitError,
    ProvisioningError,
    SpawnError,
)
from dba_downloader.media.downloader import Downloader
from dba_downloader.models.config import AppConfig, default_output_dir
from dba_downloader.models.download import (
    AudioTrack,
    DownloadRequest,
    OutcomeStatus,
    ProbeResult,
    ProvisionStatus,
    QualityTier,
    TimeRange,
    ToolSet,
)
from dba_downloader.utils.structured_logger import create_structured_logger

log = logging.getLogger(__name__)


class DownloadOptions(BaseModel):
    """The options a user interface passes along with a URL."""

    model_config = ConfigDict(str_strip_whitespace=True)

    audio_only: bool = False
    quality: QualityTier = QualityTier.P1080
    audio_track: AudioTrack | None = None
    start: str | None = None
    end: str | None = None
    out_dir: Path | None = None
    open_after: bool = False

    def to_request(self, url: str, fallback_dir: Path | None = None) -> DownloadRequest:
        time_range = None
        if self.start or self.end:
            time_range = TimeRange(start=self.start, end=self.end)
        return DownloadRequest(
            source_url=url,
            quality=QualityTier.AUDIO if self.audio_only else self.quality,
            selected_track=self.audio_track,
            time_range=time_range,
            output_dir=self.out_dir or fallback_dir or default_output_dir(),
        )


class DownloaderService:
    """Coordinates the provisioner, prober, synthesizer and supervisor."""

    def __init__(
        self,
        config: AppConfig,
        downloader: Downloader | None = None,
    ):
        self.config = config
        self.tools = ToolSet.from_root(config.bin_dir)
        _, provision_events, self.process_events = create_structured_logger(
            self.tools.log_path
        )
        self.provisioner = BinaryProvisioner(
            config, self.tools, downloader=downloader, events=provision_events
        )
        self.prober = TrackProber(self.tools, events=self.process_events)
        self.supervisor = ProcessSupervisor(events=self.process_events)

    async def ensure_provisioned(self, on_status: ProgressSink | None = None) -> None:
        """
        Installs any missing tools.

        Raises:
            ProvisioningError: After reporting an error status, if a required
            tool could not be installed.
        """
        try:
            await self.provisioner.ensure_ready(on_status)
        except ProvisioningError:
            if on_status:
                on_status(
                    ProvisionStatus(
                        0,
                        "Download failed - restart the app to retry",
                        0,
                        total_steps=TOTAL_STEPS,
                        error=True,
                    )
                )
            raise

    async def update_engine(self) -> bool:
        """
        Runs the engine's self-update.

        Raises:
            SpawnError: If the engine cannot be started.
            EngineExitError: If the update exits with a non-zero code.
        """
        argv = [str(self.tools.engine), "-U"]
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self.process_events.spawn_failed(argv, str(e))
            raise SpawnError(str(e)) from e

        stdout, stderr = await proc.communicate()
        stderr_text = stderr.decode("utf-8", errors="replace").strip()
        self.process_events.finished(argv, proc.returncode, stderr_text[-2000:])
        if proc.returncode != 0:
            raise EngineExitError(proc.returncode, stderr_text)
        log.info(stdout.decode("utf-8", errors="replace").strip() or "yt-dlp updated.")
        return True

    async def probe(self, url: str) -> ProbeResult:
        await self.ensure_provisioned()
        return await self.prober.probe(url)

    async def download(
        self, request: DownloadRequest, on_progress: LineCallback | None = None
    ) -> None:
        """
        Downloads one request, forwarding engine output lines to `on_progress`.

        Raises:
            SpawnError: If the engine could not be started.
            EngineExitError: If the engine exited with a non-zero code.
            DownloadCancelledError: If `cancel()` stopped the download.
        """
        await self.ensure_provisioned()
        invocation = synthesize(request, self.tools, self.config.merge_audio_bitrate)
        outcome = await self.supervisor.run(invocation, on_progress)

        if outcome.status is OutcomeStatus.SUCCESS:
            return
        if outcome.status is OutcomeStatus.CANCELLED:
            raise DownloadCancelledError("Download cancelled by user.")
        if outcome.status is OutcomeStatus.SPAWN_FAILED:
            raise SpawnError(outcome.reason)
        raise EngineExitError(outcome.exit_code, outcome.stderr_tail)

    async def download_url(
        self,
        url: str,
        options: DownloadOptions,
        on_progress: LineCallback | None = None,
    ) -> DownloadRequest:
        """Builds a request from interface options and downloads it."""
        request = options.to_request(url, self.config.output_dir)
        await self.download(request, on_progress)
        return request

    def cancel(self) -> bool:
        return self.supervisor.cancel()

