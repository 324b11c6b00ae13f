"""
Runs one engine process at a time, streams its progress lines, and maps its
exit to a DownloadOutcome.
"""

import asyncio
import codecs
import logging
import os
import re
import signal
import subprocess
from collections import deque
from collections.abc import Callable
from contextlib import suppress

from dba_downloader.exceptions import DownloadInProgressError, SpawnError
from dba_downloader.models.download import DownloadOutcome, Invocation, OutcomeStatus
from dba_downloader.utils.structured_logger import ProcessLogger

log = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

_LINE_BREAK = re.compile(r"[\r\n]")
_READ_SIZE = 65536
_STDERR_TAIL_LINES = 50


def _spawn_kwargs() -> dict:
    """Puts the child in its own process group so it can be signalled as a unit."""
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


async def iter_lines(stream: asyncio.StreamReader):
    """
    Yields stripped, non-blank lines from a byte stream.

    Both newlines and carriage returns end a line, since progress output
    redraws itself with bare carriage returns.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    while chunk := await stream.read(_READ_SIZE):
        pending += decoder.decode(chunk)
        *lines, pending = _LINE_BREAK.split(pending)
        for line in lines:
            if line.strip():
                yield line.strip()
    pending += decoder.decode(b"", final=True)
    if pending.strip():
        yield pending.strip()


class ActiveDownload:
    """Handle on a running engine process."""

    def __init__(self, invocation: Invocation, process: asyncio.subprocess.Process):
        self.invocation = invocation
        self.process = process
        self.cancelled = False
        self.stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        self._task: asyncio.Task | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def terminate(self) -> None:
        """Sends SIGTERM to the process group (terminate() on Windows)."""
        with suppress(ProcessLookupError, PermissionError):
            if os.name == "nt":
                self.process.terminate()
            else:
                os.killpg(self.process.pid, signal.SIGTERM)

    async def wait(self) -> DownloadOutcome:
        """Waits for the process to exit and returns how it ended."""
        return await asyncio.shield(self._task)


class ProcessSupervisor:
    """
    Owns the single active-download slot.

    The slot is written only by start, cancel, and process completion. Starting
    while it is occupied is a caller error, never queued.
    """

    def __init__(self, events: ProcessLogger | None = None):
        self.events = events
        self._active: ActiveDownload | None = None
        self._start_lock = asyncio.Lock()

    @property
    def active(self) -> ActiveDownload | None:
        return self._active

    @property
    def is_busy(self) -> bool:
        return self._active is not None

    async def start(
        self, invocation: Invocation, on_progress: LineCallback | None = None
    ) -> ActiveDownload:
        """
        Spawns the invocation and begins streaming its output.

        Raises:
            DownloadInProgressError: If another download is still active.
            SpawnError: If the executable is missing or cannot be run.
        """
        argv = invocation.argv
        async with self._start_lock:
            if self._active is not None:
                raise DownloadInProgressError(
                    f"A download is already running (pid {self._active.pid})."
                )

            log.info(f"[yt-dlp] Command args: {' '.join(invocation.args)}")
            try:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    stdin=asyncio.subprocess.DEVNULL,
                    **_spawn_kwargs(),
                )
            except OSError as e:
                if self.events:
                    self.events.spawn_failed(argv, str(e))
                raise SpawnError(str(e)) from e

            handle = ActiveDownload(invocation, process)
            self._active = handle
            handle._task = asyncio.create_task(self._supervise(handle, on_progress))

        if self.events:
            self.events.started(argv, process.pid)
        return handle

    def cancel(self) -> bool:
        """
        Terminates the active download, if any.

        Returns:
            True if a download was cancelled, False if none was running.
        """
        handle = self._active
        if handle is None:
            return False

        self._active = None
        handle.cancelled = True
        handle.terminate()
        if self.events:
            self.events.cancelled(handle.invocation.argv, handle.pid)
        return True

    async def run(
        self, invocation: Invocation, on_progress: LineCallback | None = None
    ) -> DownloadOutcome:
        """Starts the invocation and waits for it, folding spawn errors into the outcome."""
        try:
            handle = await self.start(invocation, on_progress)
        except SpawnError as e:
            return DownloadOutcome(OutcomeStatus.SPAWN_FAILED, reason=e.reason)
        return await handle.wait()

    async def _pump_stdout(
        self, handle: ActiveDownload, on_progress: LineCallback | None
    ) -> None:
        async for line in iter_lines(handle.process.stdout):
            if on_progress is None:
                continue
            try:
                on_progress(line)
            except Exception as e:
                log.warning(f"Progress callback failed for line {line!r}: {e}")

    async def _pump_stderr(self, handle: ActiveDownload) -> None:
        async for line in iter_lines(handle.process.stderr):
            handle.stderr_tail.append(line)
            log.debug(f"yt-dlp stderr: {line}")

    async def _supervise(
        self, handle: ActiveDownload, on_progress: LineCallback | None
    ) -> DownloadOutcome:
        try:
            await asyncio.gather(
                self._pump_stdout(handle, on_progress), self._pump_stderr(handle)
            )
            exit_code = await handle.process.wait()
        finally:
            if self._active is handle:
                self._active = None

        stderr_text = "\n".join(handle.stderr_tail)
        if handle.cancelled:
            log.info(f"Download cancelled (exit code {exit_code}).")
            return DownloadOutcome(
                OutcomeStatus.CANCELLED, exit_code=exit_code, stderr_tail=stderr_text
            )

        if self.events:
            self.events.finished(handle.invocation.argv, exit_code, stderr_text)
        if exit_code == 0:
            return DownloadOutcome(OutcomeStatus.SUCCESS, exit_code=0)
        return DownloadOutcome(
            OutcomeStatus.NON_ZERO_EXIT, exit_code=exit_code, stderr_tail=stderr_text
        )
