"""Tab-separated download and upload ledgers"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List

import aiofiles

from ..constants import DOWNLOAD_LOG_FILE, UPLOAD_LOG_FILE
from ..core.path_resolver import PathResolver
from ..models.processing import ProcessingResult
from ..utils.hash_utils import calculate_file_hash_async

logger = logging.getLogger(__name__)


def _size_mb(path: Path) -> str:
    size = path.stat().st_size if path.is_file() else 0
    return f"{size / 1_048_576:.2f} MB"


class ActivityLog:
    """Appends one line per download or upload below ``Logs/``

    These files are read by reporting jobs; a write failure is logged and
    does not affect the label run.
    """

    def __init__(self, path_resolver: PathResolver):
        self.path_resolver = path_resolver

    async def _append(self, filename: str, fields: List[str]) -> None:
        logs_dir = self.path_resolver.get_logs_dir()
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        line = "\t".join([stamp] + [f.replace("\t", " ").replace("\n", " ") for f in fields]) + "\n"
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(logs_dir / filename, "a", encoding="utf-8") as f:
                await f.write(line)
        except OSError as e:
            logger.warning("Could not write %s: %s", filename, e)

    async def record_download(self, label_name: str, path: Path, url: str) -> None:
        digest = await calculate_file_hash_async(path)
        await self._append(DOWNLOAD_LOG_FILE, [label_name, path.name, _size_mb(path), url, digest])

    async def record_upload(self, result: ProcessingResult, app_id: str) -> None:
        path = result.local_path
        await self._append(UPLOAD_LOG_FILE, [
            result.display_name,
            result.label_name,
            path.name if path else "",
            _size_mb(path) if path else "0.00 MB",
            result.bundle_id_actual,
            result.version_actual,
            result.expected_version,
            result.tracking_id,
            str(path) if path else "",
            app_id,
        ])
