"""
Handles the low-level downloading of tool binaries over HTTP. Responses are
streamed to disk in chunks so progress can be reported from observed bytes.
"""

import asyncio
import logging
import os
from collections.abc import Callable
from pathlib import Path

import aiofiles
import aiohttp

log = logging.getLogger(__name__)

# (bytes_downloaded, total_bytes); total is 0 when the server declares no length
ByteProgress = Callable[[int, int], None]


class Downloader:
    """
    A streaming file downloader backed by a lazily created aiohttp session.

    No session (and so no network activity) exists until the first download.
    There is no retry: a failed fetch raises and the caller decides whether to
    try again.
    """

    CHUNK_SIZE = 262144  # 256 KB

    def __init__(self, total_timeout: int = 600, connect_timeout: int = 30):
        self.total_timeout = total_timeout
        self.connect_timeout = connect_timeout
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session and not self._session.closed:
                return self._session

            timeout = aiohttp.ClientTimeout(
                total=self.total_timeout, sock_connect=self.connect_timeout
            )
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": "dba-downloader"},
            )
            log.debug(f"Created download session (timeout={self.total_timeout}s)")
            return self._session

    async def close(self) -> None:
        """Closes the underlying session if one was opened."""
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
                log.debug("Downloader session closed.")
            self._session = None

    async def download_file(
        self,
        url: str,
        destination_path: Path,
        on_progress: ByteProgress | None = None,
    ) -> int:
        """
        Streams a URL to a file, reporting progress after every chunk.

        Returns:
            The number of bytes written.

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError: On any network failure.
        """
        session = await self._get_session()
        async with session.get(url, allow_redirects=True) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("Content-Length", 0) or 0)

            bytes_downloaded = 0
            async with aiofiles.open(destination_path, "wb") as f:
                async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                    await f.write(chunk)
                    bytes_downloaded += len(chunk)
                    if on_progress:
                        on_progress(bytes_downloaded, total_size)

        log.debug(
            f"Downloaded {bytes_downloaded} bytes to "
            f"'{os.path.basename(destination_path)}'"
        )
        return bytes_downloaded
