"""Archive extraction and disk image handling"""

import logging
import os
import plistlib
import re
import tarfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from ..api.exceptions import ExtractionError, PayloadNotFoundError
from ..constants import ArchiveType
from ..utils.async_utils import sync_to_async
from ..utils.file_utils import copy_item_async, find_files_async
from ..utils.process_utils import CommandRunner

logger = logging.getLogger(__name__)

HDIUTIL = "/usr/bin/hdiutil"
DITTO = "/usr/bin/ditto"

_ZIP_WRAPPED = {
    ArchiveType.PKG_IN_ZIP,
    ArchiveType.PKG_IN_DMG_IN_ZIP,
    ArchiveType.ZIP,
    ArchiveType.APP_IN_DMG_IN_ZIP,
}

_DMG_WRAPPED = {
    ArchiveType.PKG_IN_DMG,
    ArchiveType.PKG_IN_DMG_IN_ZIP,
    ArchiveType.DMG,
    ArchiveType.APP_IN_DMG_IN_ZIP,
}


@sync_to_async
def _extract_tar(archive: Path, destination: Path) -> None:
    with tarfile.open(name=str(archive), mode="r:*") as tar:
        if hasattr(tarfile, "tar_filter"):
            tar.extractall(path=str(destination), filter="tar")
        else:
            tar.extractall(path=str(destination))


class ArchiveExtractor:
    """Turns a downloaded artifact into the path of its payload

    The payload is the ``.app`` bundle or ``.pkg`` installer the archive
    type promises. Extraction happens next to the download, and anything
    found on a mounted disk image is copied out before the image is
    detached, so the returned path stays valid.
    """

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    async def locate_payload(self, download: Path, archive_type: ArchiveType) -> Path:
        """
        Extract ``download`` according to ``archive_type``

        Args:
            download: Downloaded file
            archive_type: Shape of the download

        Returns:
            Path of the payload

        Raises:
            PayloadNotFoundError: Nothing with the expected extension inside
            ExtractionError: A tool failed
        """
        extension = archive_type.payload_extension
        logger.debug("Locating .%s payload in %s (%s)", extension, download.name, archive_type.value)

        if archive_type == ArchiveType.PKG:
            return download

        if archive_type == ArchiveType.TBZ:
            folder = await self.extract_tbz(download)
            return await self._first(folder, extension, "TBZ archive")

        image = download
        if archive_type in _ZIP_WRAPPED:
            folder = await self.extract_zip(download)
            if archive_type not in _DMG_WRAPPED:
                return await self._first(folder, extension, "ZIP archive")
            image = await self._first(folder, "dmg", "ZIP archive")

        async with self.mounted(image) as mount_point:
            found = await self._first(mount_point, extension, "mounted DMG")
            # the mount point goes away on detach, keep a copy beside the download
            destination = download.parent / found.name
            await copy_item_async(found, destination)
            logger.info("Copied %s off the disk image", found.name)
            return destination

    @staticmethod
    async def _first(folder: Path, extension: str, where: str) -> Path:
        matches = await find_files_async(folder, extension)
        if not matches:
            raise PayloadNotFoundError(extension, where)
        if len(matches) > 1:
            logger.debug("Multiple .%s matches, using shortest path %s", extension, matches[0])
        return matches[0]

    async def extract_zip(self, archive: Path) -> Path:
        """Expand a zip archive into its own directory"""
        destination = archive.parent
        result = await self.runner.run(DITTO, "-x", "-k", archive, destination)
        if not result.ok:
            raise ExtractionError(f"Failed to extract {archive.name}: {result.output}")
        return destination

    async def extract_tbz(self, archive: Path) -> Path:
        """Expand a tar archive (any compression) into its own directory"""
        destination = archive.parent
        try:
            await _extract_tar(archive, destination)
        except (tarfile.TarError, OSError) as e:
            raise ExtractionError(f"Failed to extract {archive.name}: {e}") from e
        return destination

    async def has_license_agreement(self, image: Path) -> bool:
        result = await self.runner.run(HDIUTIL, "imageinfo", image, "-plist")
        if not result.ok:
            raise ExtractionError(f"Failed to inspect disk image {image.name}: {result.output}")
        try:
            info = plistlib.loads(result.stdout.encode("utf-8"))
        except plistlib.InvalidFileException as e:
            raise ExtractionError(f"Unreadable imageinfo output for {image.name}") from e
        return bool(info.get("Properties", {}).get("Software License Agreement", False))

    async def strip_license_agreement(self, image: Path) -> None:
        """Convert an image with a license prompt to UDRW so it mounts unattended"""
        converted = image.with_name(f"{image.stem}-converted.dmg")
        result = await self.runner.run(HDIUTIL, "convert", "-quiet", image,
                                       "-format", "UDRW", "-o", converted)
        if not result.ok:
            raise ExtractionError(f"Failed to convert disk image {image.name}: {result.output}")
        os.replace(converted, image)

    async def mount(self, image: Path) -> Path:
        """
        Attach a disk image without showing it in Finder

        Returns:
            Mount point of the first mounted volume
        """
        if await self.has_license_agreement(image):
            logger.info("Disk image %s has a license agreement, converting", image.name)
            await self.strip_license_agreement(image)

        result = await self.runner.run(HDIUTIL, "attach", image, "-nobrowse", "-plist")
        if not result.ok:
            raise ExtractionError(f"Failed to mount {image.name}: {result.output}")

        try:
            attached = plistlib.loads(result.stdout.encode("utf-8"))
        except plistlib.InvalidFileException as e:
            device = re.search(r"/dev/disk\d+", result.stdout)
            if device:
                await self.unmount(Path(device.group(0)))
            else:
                logger.warning("Cannot tell where %s was attached, it may stay mounted", image.name)
            raise ExtractionError(f"Unreadable attach output for {image.name}") from e

        entities = attached.get("system-entities", []) if isinstance(attached, dict) else []
        for entity in entities:
            mount_point = entity.get("mount-point")
            if mount_point:
                logger.debug("Mounted %s at %s", image.name, mount_point)
                return Path(mount_point)

        # attached without a volume, release the device before giving up
        devices = [entity["dev-entry"] for entity in entities if entity.get("dev-entry")]
        if devices:
            await self.unmount(Path(devices[0]))
        raise ExtractionError(f"No mount point reported for {image.name}")

    async def unmount(self, mount_point: Path) -> bool:
        """Detach a volume; failure is logged, never raised"""
        result = await self.runner.run(HDIUTIL, "detach", mount_point, "-force")
        if not result.ok:
            logger.warning("Failed to unmount %s: %s", mount_point, result.output)
        return result.ok

    @asynccontextmanager
    async def mounted(self, image: Path) -> AsyncIterator[Path]:
        mount_point = await self.mount(image)
        try:
            yield mount_point
        finally:
            await self.unmount(mount_point)
