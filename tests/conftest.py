"""Test configuration and fixtures"""

import io
import os
import stat
import sys
import zipfile
from pathlib import Path

import pytest

from dba_downloader.models.config import AppConfig
from dba_downloader.models.download import ToolSet

FAKE_ENGINE_SOURCE = '''
import json
import os
import sys
import time

args = sys.argv[1:]
if os.environ.get("FAKE_ARGV_FILE"):
    with open(os.environ["FAKE_ARGV_FILE"], "w") as f:
        json.dump(args, f)
if os.environ.get("FAKE_PID_FILE"):
    with open(os.environ["FAKE_PID_FILE"], "w") as f:
        f.write(str(os.getpid()))

exit_code = int(os.environ.get("FAKE_EXIT", "0"))
stderr = os.environ.get("FAKE_STDERR", "")

if "--dump-json" in args:
    sys.stdout.write(os.environ.get("FAKE_STDOUT", "{}"))
    sys.stdout.flush()
    time.sleep(float(os.environ.get("FAKE_SLEEP", "0")))
elif "-U" not in args:
    print("[download] Destination: clip.mp4")
    print("")
    print("  12.5%")
    print(" 100.0%")
    sys.stdout.flush()
    time.sleep(float(os.environ.get("FAKE_SLEEP", "0")))

sys.stderr.write(stderr)
sys.exit(exit_code)
'''


class FakeDownloader:
    """Stands in for the HTTP downloader, serving bytes from a dict."""

    def __init__(self, payloads: dict | None = None, declare_length: bool = True):
        self.payloads = payloads or {}
        self.declare_length = declare_length
        self.calls: list[str] = []
        self.closed = 0

    async def download_file(self, url, destination_path, on_progress=None):
        self.calls.append(url)
        payload = self.payloads[url]
        if isinstance(payload, Exception):
            raise payload
        total = len(payload) if self.declare_length else 0
        half = len(payload) // 2
        with open(destination_path, "wb") as f:
            for chunk in (payload[:half], payload[half:]):
                f.write(chunk)
                if on_progress:
                    on_progress(f.tell(), total)
        return len(payload)

    async def close(self):
        self.closed += 1


def make_zip(
    members: dict[str, bytes], compression: int = zipfile.ZIP_STORED
) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def install_fake_engine(tools: ToolSet) -> None:
    """Writes a shell wrapper at the engine path that runs the fake engine."""
    script = tools.root / "fake_engine.py"
    script.write_text(FAKE_ENGINE_SOURCE, encoding="utf-8")
    tools.engine.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n', encoding="utf-8"
    )
    tools.engine.chmod(tools.engine.stat().st_mode | stat.S_IXUSR)


posix_only = pytest.mark.skipif(os.name == "nt", reason="uses a /bin/sh wrapper")


@pytest.fixture
def bin_dir(tmp_path) -> Path:
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def app_config(bin_dir, tmp_path) -> AppConfig:
    return AppConfig(
        bin_dir=bin_dir,
        engine_url="https://example.test/yt-dlp",
        remuxer_url="https://example.test/ffmpeg.zip",
        runtime_url="https://example.test/deno.zip",
        output_dir=tmp_path / "downloads",
    )


@pytest.fixture
def tools(bin_dir) -> ToolSet:
    return ToolSet.from_root(bin_dir)


@pytest.fixture
def provisioned_tools(tools) -> ToolSet:
    """A tool set whose three executables all exist, with a scriptable engine."""
    install_fake_engine(tools)
    tools.remuxer.write_bytes(b"ffmpeg")
    tools.runtime.write_bytes(b"deno")
    tools.refresh()
    return tools


@pytest.fixture
def sample_formats():
    """Format entries as found in a yt-dlp metadata dump"""
    return [
        {"format_id": "sb0", "vcodec": "none", "acodec": "none", "language": None},
        {
            "format_id": "140",
            "format_note": "English original",
            "language": "en",
            "acodec": "mp4a.40.2",
            "vcodec": "none",
            "abr": 129.5,
        },
        {
            "format_id": "233",
            "language": "en",
            "acodec": "mp4a.40.5",
            "vcodec": "avc1.4d400d",
            "tbr": 96,
        },
        {
            "format_id": "251-1",
            "format_note": "Deutsch",
            "language": "de",
            "acodec": "opus",
            "vcodec": "none",
            "tbr": 140.2,
        },
        {"format_id": "137", "language": "en", "acodec": "none", "vcodec": "avc1"},
        {"format_id": "18", "acodec": "mp4a.40.2", "vcodec": "avc1", "tbr": 600},
    ]
