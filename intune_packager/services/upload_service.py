"""Encrypted chunked upload of app content"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiofiles
import httpx

from ..api.exceptions import CatalogError, NetworkError, PipelineError, RemoteProcessingError, UploadTimeoutError
from ..constants import (
    UPLOAD_STATE_FAILED,
    UPLOAD_STATE_SUCCESS,
    DeploymentType,
    ErrorCode,
)
from ..graph.catalog import CatalogClient
from ..models.config import UploadSettings
from ..models.processing import ProcessingResult
from ..models.upload import ChunkedUploadSession, ContentFile, UploadPhase
from ..utils.async_utils import Sleeper
from ..utils.crypto_utils import encrypt_file_async
from ..utils.file_utils import safe_remove

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
StatusFetcher = Callable[[], Awaitable[ContentFile]]


class ChunkedUploader:
    """Block blob transfer with per-block retry and commit polling

    Talks to the storage URL handed out by the catalog, not to Graph, so
    it owns a plain HTTP client without authorization headers.
    """

    def __init__(self,
                 http_client: httpx.AsyncClient,
                 settings: Optional[UploadSettings] = None,
                 sleep: Optional[Sleeper] = None):
        """
        Initialize uploader

        Args:
            http_client: Client used for the block PUTs
            settings: Chunk size, retry and polling limits
            sleep: Sleep coroutine, injectable for tests
        """
        self.http_client = http_client
        self.settings = settings or UploadSettings()
        self.sleep = sleep or asyncio.sleep

    async def _put_block(self, session: ChunkedUploadSession, block: str, data: bytes) -> None:
        attempts = self.settings.block_attempts
        for attempt in range(1, attempts + 1):
            try:
                response = await self.http_client.put(
                    session.block_url(block),
                    content=data,
                    headers={"x-ms-blob-type": "BlockBlob"},
                )
                if 200 <= response.status_code < 300:
                    return
                reason = f"status {response.status_code}"
            except httpx.HTTPError as e:
                reason = str(e)

            if attempt >= attempts:
                raise NetworkError(
                    f"Block {len(session.block_ids)} failed after {attempts} attempts: {reason}",
                    error_code=ErrorCode.BLOCK_UPLOAD_FAILED,
                )
            logger.warning("Block %d attempt %d/%d failed: %s", len(session.block_ids), attempt, attempts, reason)
            await self.sleep(self.settings.block_backoff * attempt)

    async def upload_blocks(self, file_path: Path, upload_url: str,
                            progress: Optional[ProgressCallback] = None,
                            session: Optional[ChunkedUploadSession] = None) -> ChunkedUploadSession:
        """
        PUT ``file_path`` in fixed-size blocks

        Args:
            file_path: Encrypted file
            upload_url: Time-limited storage URL
            progress: Called with (uploaded bytes, total bytes) after each block
            session: Session to continue, a new one when omitted

        Returns:
            Session holding the ordered block ids

        Raises:
            NetworkError: A block failed on every attempt
        """
        if session is None:
            session = ChunkedUploadSession()
        session.upload_url = upload_url
        session.total_bytes = file_path.stat().st_size
        session.phase = UploadPhase.UPLOADING

        async with aiofiles.open(file_path, "rb") as f:
            while True:
                chunk = await f.read(self.settings.chunk_size)
                if not chunk:
                    break
                block = session.next_block_id()
                await self._put_block(session, block, chunk)
                session.record_block(block, len(chunk))
                if progress:
                    progress(session.uploaded_bytes, session.total_bytes)

        logger.debug("Uploaded %d blocks (%d bytes)", len(session.block_ids), session.uploaded_bytes)
        return session

    async def commit_block_list(self, session: ChunkedUploadSession) -> None:
        """Finalize the blob; anything but 201 is fatal"""
        session.phase = UploadPhase.COMMITTING
        try:
            response = await self.http_client.put(
                session.block_list_url,
                content=session.block_list_xml().encode("utf-8"),
                headers={"Content-Type": "application/xml"},
            )
        except httpx.HTTPError as e:
            session.phase = UploadPhase.FAILED
            raise NetworkError(f"Block list commit failed: {e}",
                               error_code=ErrorCode.BLOCK_LIST_REJECTED) from e

        if response.status_code != 201:
            session.phase = UploadPhase.FAILED
            raise NetworkError(f"Block list commit returned {response.status_code}",
                               status_code=response.status_code,
                               error_code=ErrorCode.BLOCK_LIST_REJECTED)

    async def wait_for_commit(self, fetch_status: StatusFetcher) -> ContentFile:
        """
        Poll until the remote side reports a terminal upload state

        Raises:
            RemoteProcessingError: ``commitFileFailed``
            UploadTimeoutError: No terminal state within the attempt budget
        """
        attempts = self.settings.poll_attempts
        for attempt in range(1, attempts + 1):
            status = await fetch_status()
            if status.upload_state == UPLOAD_STATE_SUCCESS:
                logger.info("File commit confirmed after %d polls", attempt)
                return status
            if status.upload_state == UPLOAD_STATE_FAILED:
                raise RemoteProcessingError(status.error_code, status.error_description)

            logger.debug("Upload state %s (%d/%d)", status.upload_state or "pending", attempt, attempts)
            if attempt < attempts:
                await self.sleep(self.settings.poll_interval)

        raise UploadTimeoutError(f"File commit not confirmed after {attempts} polls")


class AppUploader:
    """Creates the app record and pushes its encrypted content

    The steps are exposed separately so the caller knows, at the point a
    later step fails, which remote record needs to be compensated.
    """

    def __init__(self,
                 catalog: CatalogClient,
                 chunked_uploader: ChunkedUploader,
                 settings: Optional[UploadSettings] = None,
                 sleep: Optional[Sleeper] = None):
        self.catalog = catalog
        self.chunked_uploader = chunked_uploader
        self.settings = settings or UploadSettings()
        self.sleep = sleep or asyncio.sleep
        self.session: Optional[ChunkedUploadSession] = None

    async def create_app(self, result: ProcessingResult) -> str:
        return await self.catalog.create_app(result)

    async def _wait_for_storage_uri(self, app_id: str, deployment_type: DeploymentType,
                                    version_id: str, file_id: str) -> str:
        for attempt in range(1, self.settings.azure_uri_attempts + 1):
            await self.sleep(self.settings.azure_uri_interval)
            content_file = await self.catalog.get_content_file(app_id, deployment_type, version_id, file_id)
            if content_file.azure_storage_uri:
                return content_file.azure_storage_uri
            logger.debug("Storage URI not ready (%d/%d)", attempt, self.settings.azure_uri_attempts)
        raise UploadTimeoutError("Storage URI was never issued for the content file")

    async def upload_content(self, app_id: str, result: ProcessingResult, work_dir: Path,
                             progress: Optional[ProgressCallback] = None) -> str:
        """
        Encrypt the artifact, transfer it and commit it to ``app_id``

        Args:
            app_id: App created by ``create_app``
            result: Processed label, ``local_path`` is uploaded
            work_dir: Scratch directory for the encrypted copy
            progress: Block progress callback

        Returns:
            Committed content version id
        """
        if result.local_path is None or not result.local_path.is_file():
            raise CatalogError(f"Upload file does not exist: {result.local_path}")

        deployment_type = result.deployment_type
        source = result.local_path
        encrypted = work_dir / f"{source.name}.bin"
        work_dir.mkdir(parents=True, exist_ok=True)

        session = ChunkedUploadSession(phase=UploadPhase.ENCRYPTING)
        self.session = session
        try:
            logger.info("Encrypting %s", source.name)
            encryption_info, size_encrypted = await encrypt_file_async(source, encrypted)

            version_id = await self.catalog.create_content_version(app_id, deployment_type)
            content_file = await self.catalog.create_content_file(
                app_id, deployment_type, version_id,
                name=source.name, size=source.stat().st_size, size_encrypted=size_encrypted,
            )
            upload_url = await self._wait_for_storage_uri(app_id, deployment_type, version_id, content_file.id)

            await self.chunked_uploader.upload_blocks(encrypted, upload_url, progress, session=session)
            await self.chunked_uploader.commit_block_list(session)
        except UploadTimeoutError:
            session.phase = UploadPhase.TIMED_OUT
            raise
        except PipelineError:
            session.phase = UploadPhase.FAILED
            raise
        finally:
            safe_remove(encrypted)

        await self.sleep(self.settings.commit_delay)
        await self.catalog.commit_file(app_id, deployment_type, version_id, content_file.id, encryption_info)
        session.phase = UploadPhase.POLLING

        async def fetch_status() -> ContentFile:
            return await self.catalog.get_content_file(app_id, deployment_type, version_id, content_file.id)

        try:
            await self.chunked_uploader.wait_for_commit(fetch_status)
        except RemoteProcessingError:
            session.phase = UploadPhase.FAILED
            raise
        except UploadTimeoutError:
            session.phase = UploadPhase.TIMED_OUT
            raise
        session.phase = UploadPhase.COMMITTED

        await self.catalog.commit_app(app_id, deployment_type, version_id)
        return version_id

    async def finalize(self, app_id: str, result: ProcessingResult) -> None:
        """Categories (best effort) and group assignments"""
        if result.categories:
            try:
                await self.catalog.assign_categories(app_id, result.categories)
            except CatalogError as e:
                logger.warning("Could not assign categories to %s: %s", app_id, e)

        if result.assignments:
            await self.catalog.assign_groups(app_id, result.deployment_type, result.assignments,
                                             result.metadata.is_managed)
