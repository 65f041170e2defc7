"""
Single-file HTTP download.
"""

from __future__ import annotations

import os
import posixpath
from pathlib import Path

import aiohttp
from yarl import URL

from volume_syncer import __version__
from volume_syncer.exceptions import NetworkError
from volume_syncer.sync.process import ProcessExecutor
from volume_syncer.sync.strategies.base import SyncStrategy, ensure_directory
from volume_syncer.sync.types import HTTPDetails, SourceKind
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.sync.strategies.http_download")

USER_AGENT = f"volume-syncer/{__version__}"
FALLBACK_FILENAME = "downloaded_file"
CHUNK_SIZE = 64 * 1024


def resolve_filename(content_disposition_name: str | None, url: str) -> str:
    """
    Choose the local file name.

    Order: Content-Disposition filename, last URL path segment, ``downloaded_file``.
    Only the base name is kept, so a header cannot point outside the target.
    """
    for candidate in (content_disposition_name, URL(url).name):
        if candidate:
            name = posixpath.basename(candidate.replace("\\", "/")).strip()
            if name and name not in (".", ".."):
                return name
    return FALLBACK_FILENAME


class HTTPDownloadStrategy(SyncStrategy):
    """GET one URL and store the body in the target directory."""

    kind = SourceKind.HTTP

    def __init__(self, details: HTTPDetails, target: Path, timeout: float, executor: ProcessExecutor | None = None):
        super().__init__(target, timeout, executor)
        self.details = details

    async def _sync(self) -> None:
        ensure_directory(self.target)
        url = self.details.url
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout, headers={"User-Agent": USER_AGENT}) as session:
                async with session.get(url) as resp:
                    if not 200 <= resp.status < 300:
                        raise NetworkError(f"GET {url} returned {resp.status} {resp.reason or ''}".rstrip())
                    cd = resp.content_disposition
                    name = resolve_filename(cd.filename if cd else None, url)
                    destination = self.target / name
                    logger.info(f"Downloading {url} to {destination}")
                    size = await self._stream(resp, destination)
        except aiohttp.ClientError as e:
            raise NetworkError(f"GET {url} failed: {e}") from e
        logger.info(f"Downloaded {size} bytes to {destination}")

    async def _stream(self, resp: aiohttp.ClientResponse, destination: Path) -> int:
        tmp_path = destination.with_name(destination.name + ".part")
        size = 0
        try:
            with open(tmp_path, "wb") as f:
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    f.write(chunk)
                    size += len(chunk)
            os.replace(tmp_path, destination)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return size
