"""Tests for the single-slot process supervisor"""

import asyncio
import sys
from pathlib import Path

import pytest

from dba_downloader.core.supervisor import ProcessSupervisor, iter_lines
from dba_downloader.exceptions import DownloadInProgressError, SpawnError
from dba_downloader.models.download import Invocation, OutcomeStatus


def python_invocation(code: str) -> Invocation:
    return Invocation(executable=Path(sys.executable), args=("-c", code))


EMITS_PROGRESS = r"""
import sys
sys.stdout.write("[download] Destination: a.mp4\n\n")
sys.stdout.write("  5.0%\r 50.0%\r100.0%\n")
sys.stderr.write("WARNING: not forwarded\n")
"""

SLEEPS = "import time; print('started', flush=True); time.sleep(30)"


async def test_iter_lines_splits_on_carriage_returns():
    reader = asyncio.StreamReader()
    reader.feed_data(b"one\r\ntwo\r  three  \n\n")
    reader.feed_data("café".encode()[:4])
    reader.feed_data("café".encode()[4:] + b"\n")
    reader.feed_data(b"tail")
    reader.feed_eof()
    lines = [line async for line in iter_lines(reader)]
    assert lines == ["one", "two", "three", "café", "tail"]


async def test_forwards_stdout_lines_only():
    lines = []
    outcome = await ProcessSupervisor().run(python_invocation(EMITS_PROGRESS), lines.append)
    assert outcome.status is OutcomeStatus.SUCCESS
    assert outcome.ok
    assert lines == ["[download] Destination: a.mp4", "5.0%", "50.0%", "100.0%"]


async def test_non_zero_exit_keeps_stderr_tail():
    code = "import sys; sys.stderr.write('ERROR: boom\\n'); sys.exit(2)"
    outcome = await ProcessSupervisor().run(python_invocation(code))
    assert outcome.status is OutcomeStatus.NON_ZERO_EXIT
    assert outcome.exit_code == 2
    assert "ERROR: boom" in outcome.stderr_tail
    assert not outcome.ok


async def test_callback_errors_do_not_break_the_stream():
    seen = []

    def flaky(line):
        seen.append(line)
        raise RuntimeError("display went away")

    outcome = await ProcessSupervisor().run(python_invocation(EMITS_PROGRESS), flaky)
    assert outcome.status is OutcomeStatus.SUCCESS
    assert len(seen) == 4


async def test_spawn_failure(tmp_path):
    supervisor = ProcessSupervisor()
    invocation = Invocation(executable=tmp_path / "missing-yt-dlp", args=("--version",))

    with pytest.raises(SpawnError):
        await supervisor.start(invocation)
    assert not supervisor.is_busy

    outcome = await supervisor.run(invocation)
    assert outcome.status is OutcomeStatus.SPAWN_FAILED
    assert outcome.reason


async def test_slot_released_after_completion():
    supervisor = ProcessSupervisor()
    handle = await supervisor.start(python_invocation("pass"))
    assert supervisor.active is handle
    await handle.wait()
    assert supervisor.active is None
    assert handle.done


def test_cancel_when_idle_returns_false():
    assert ProcessSupervisor().cancel() is False


async def test_second_start_is_rejected():
    supervisor = ProcessSupervisor()
    handle = await supervisor.start(python_invocation(SLEEPS))
    try:
        with pytest.raises(DownloadInProgressError):
            await supervisor.start(python_invocation("pass"))
    finally:
        supervisor.cancel()
        await handle.wait()


async def test_cancel_terminates_and_frees_the_slot():
    supervisor = ProcessSupervisor()
    started = asyncio.Event()

    def on_line(line):
        if line == "started":
            started.set()

    handle = await supervisor.start(python_invocation(SLEEPS), on_line)
    await asyncio.wait_for(started.wait(), timeout=10)

    assert supervisor.cancel() is True
    assert supervisor.active is None
    assert supervisor.cancel() is False

    outcome = await asyncio.wait_for(handle.wait(), timeout=10)
    assert outcome.status is OutcomeStatus.CANCELLED

    follow_up = await supervisor.run(python_invocation("pass"))
    assert follow_up.status is OutcomeStatus.SUCCESS
