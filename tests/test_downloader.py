"""Tests for the streaming HTTP downloader against a local aiohttp server"""

import aiohttp
import pytest
from aiohttp import test_utils, web
from conftest import make_zip

from dba_downloader.core.provisioner import BinaryProvisioner
from dba_downloader.exceptions import ProvisioningError
from dba_downloader.media.downloader import Downloader
from dba_downloader.models.config import AppConfig
from dba_downloader.models.download import ToolSet

PAYLOAD = bytes(range(256)) * 4096  # 1 MiB


async def sized(request: web.Request) -> web.Response:
    return web.Response(body=PAYLOAD, content_type="application/octet-stream")


async def unsized(request: web.Request) -> web.StreamResponse:
    response = web.StreamResponse()
    response.enable_chunked_encoding()
    await response.prepare(request)
    for start in range(0, len(PAYLOAD), 100_000):
        await response.write(PAYLOAD[start : start + 100_000])
    await response.write_eof()
    return response


async def ffmpeg_zip(request: web.Request) -> web.Response:
    return web.Response(body=make_zip({"bin/ffmpeg": b"ffmpeg-binary"}))


@pytest.fixture
async def file_server():
    app = web.Application()
    app.router.add_get("/sized", sized)
    app.router.add_get("/unsized", unsized)
    app.router.add_get("/ffmpeg.zip", ffmpeg_zip)
    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


def url_for(server: test_utils.TestServer, path: str) -> str:
    return str(server.make_url(path))


class TestDownloader:
    async def test_declared_length(self, file_server, tmp_path):
        downloader = Downloader()
        progress = []
        dest = tmp_path / "tool.part"
        try:
            written = await downloader.download_file(
                url_for(file_server, "/sized"),
                dest,
                lambda done, total: progress.append((done, total)),
            )
        finally:
            await downloader.close()

        assert written == len(PAYLOAD)
        assert dest.read_bytes() == PAYLOAD
        assert len(progress) > 1
        assert all(total == len(PAYLOAD) for _, total in progress)
        done_values = [done for done, _ in progress]
        assert done_values == sorted(done_values)
        assert done_values[-1] == len(PAYLOAD)

    async def test_missing_length_reports_zero_total(self, file_server, tmp_path):
        downloader = Downloader()
        progress = []
        dest = tmp_path / "tool.part"
        try:
            await downloader.download_file(
                url_for(file_server, "/unsized"),
                dest,
                lambda done, total: progress.append((done, total)),
            )
        finally:
            await downloader.close()

        assert dest.read_bytes() == PAYLOAD
        assert progress
        assert all(total == 0 for _, total in progress)

    async def test_http_error_raises(self, file_server, tmp_path):
        downloader = Downloader()
        try:
            with pytest.raises(aiohttp.ClientResponseError) as excinfo:
                await downloader.download_file(
                    url_for(file_server, "/missing"), tmp_path / "tool.part"
                )
        finally:
            await downloader.close()
        assert excinfo.value.status == 404

    async def test_session_is_lazy_and_closed(self, file_server, tmp_path):
        downloader = Downloader()
        assert downloader._session is None

        await downloader.download_file(url_for(file_server, "/sized"), tmp_path / "a")
        session = downloader._session
        assert session is not None and not session.closed

        await downloader.close()
        assert session.closed
        assert downloader._session is None

        await downloader.close()


class TestProvisionerOverHttp:
    @staticmethod
    def _config(server, tmp_path, **paths) -> AppConfig:
        return AppConfig(
            bin_dir=tmp_path / "http-bin",
            engine_url=url_for(server, paths.get("engine", "/sized")),
            remuxer_url=url_for(server, paths.get("remuxer", "/ffmpeg.zip")),
            runtime_url=url_for(server, paths.get("runtime", "/missing")),
        )

    async def test_installs_from_server(self, file_server, tmp_path):
        config = self._config(file_server, tmp_path)
        tools = ToolSet.from_root(config.bin_dir)

        await BinaryProvisioner(config, tools).ensure_ready()

        assert tools.engine.read_bytes() == PAYLOAD
        assert tools.remuxer.read_bytes() == b"ffmpeg-binary"
        assert not tools.runtime.exists()
        assert tools.runtime_available is False

    async def test_not_found_is_provisioning_error(self, file_server, tmp_path):
        config = self._config(file_server, tmp_path, engine="/missing")
        tools = ToolSet.from_root(config.bin_dir)

        with pytest.raises(ProvisioningError, match="Failed to download yt-dlp"):
            await BinaryProvisioner(config, tools).ensure_ready()
        assert not tools.engine.exists()
        assert list(config.bin_dir.iterdir()) == []
