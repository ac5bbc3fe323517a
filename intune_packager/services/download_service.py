"""Artifact download"""

import asyncio
import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import unquote

import aiofiles
import httpx

from ..api.exceptions import NetworkError
from ..constants import CONTENT_DISPOSITION_PATTERN, ErrorCode
from ..models.config import DownloadSettings
from ..utils.async_utils import Sleeper, retry_async
from ..utils.file_utils import safe_remove

logger = logging.getLogger(__name__)

STREAM_CHUNK = 1024 * 1024
DEFAULT_EXTENSION = "dmg"


def download_filename(response: httpx.Response, fallback_stem: str) -> str:
    """
    Name to store a download under

    The last path segment of the final URL when it has an extension, then
    the Content-Disposition filename, then ``fallback_stem.dmg``.
    """
    last = unquote(PurePosixPath(response.url.path).name)
    if last and "." in last:
        return last

    disposition = response.headers.get("content-disposition", "")
    match = CONTENT_DISPOSITION_PATTERN.search(disposition)
    if match:
        return unquote(match.group(1))

    return f"{fallback_stem}.{DEFAULT_EXTENSION}"


class Downloader:
    """Streams artifacts into a per-run scratch directory"""

    def __init__(self,
                 http_client: httpx.AsyncClient,
                 settings: Optional[DownloadSettings] = None,
                 sleep: Optional[Sleeper] = None):
        self.http_client = http_client
        self.settings = settings or DownloadSettings()
        self.sleep = sleep or asyncio.sleep

    async def _fetch(self, url: str, directory: Path, fallback_stem: str) -> Path:
        try:
            async with self.http_client.stream("GET", url, follow_redirects=True,
                                               timeout=self.settings.timeout) as response:
                if not 200 <= response.status_code < 300:
                    raise NetworkError(f"Download of {url} returned {response.status_code}",
                                       status_code=response.status_code,
                                       error_code=ErrorCode.DOWNLOAD_FAILED)

                destination = directory / download_filename(response, fallback_stem)
                async with aiofiles.open(destination, "wb") as f:
                    async for chunk in response.aiter_bytes(STREAM_CHUNK):
                        await f.write(chunk)
        except httpx.HTTPError as e:
            raise NetworkError(f"Download of {url} failed: {e}",
                               error_code=ErrorCode.DOWNLOAD_FAILED) from e
        return destination

    async def download(self, url: str, tmp_dir: Path, display_name: str, version: str) -> Path:
        """
        Download ``url`` into a fresh directory below ``tmp_dir``

        Args:
            url: Download URL
            tmp_dir: Scratch directory of the label run
            display_name: Used for the fallback filename
            version: Used for the fallback filename

        Returns:
            Path of the downloaded file

        Raises:
            NetworkError: Every attempt failed
        """
        directory = tmp_dir / uuid.uuid4().hex
        directory.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading %s", url)

        try:
            path = await retry_async(
                self._fetch, url, directory, f"{display_name}_{version}",
                max_attempts=self.settings.max_retries,
                delay=1.0,
                backoff=2.0,
                exceptions=(NetworkError,),
                sleep=self.sleep,
            )
        except NetworkError:
            safe_remove(directory)
            raise

        logger.info("Downloaded %s (%d bytes)", path.name, path.stat().st_size)
        return path
