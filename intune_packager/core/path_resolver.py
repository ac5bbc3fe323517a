"""Path resolution module for intune-packager"""

from pathlib import Path
from typing import Union

from ..constants import (
    MANAGED_TITLES_DIR,
    CACHE_DIR,
    LOGS_DIR,
    QUEUE_DIR,
    TMP_DIR_NAME,
    UPLOADED_MARKER_FILE,
)


class PathResolver:
    """Resolves the on-disk layout below the configured root

    Layout::

        root/ManagedTitles/{label}_{trackingID}/...
        root/Cache/{label}/{version}/{artifact}
        root/Cache/{label}/tmp/
        root/Logs/
        root/Queue/{label}_{trackingID}.trigger
    """

    def __init__(self, root: Union[str, Path]):
        """Initialize path resolver

        Args:
            root: Root directory holding managed titles, cache and logs
        """
        self.root = Path(root).expanduser()

    def get_managed_titles_dir(self) -> Path:
        """Get managed titles directory path

        Returns:
            Path to the directory holding one folder per label profile
        """
        return self.root / MANAGED_TITLES_DIR

    def get_title_dir(self, folder_name: str) -> Path:
        return self.get_managed_titles_dir() / folder_name

    def get_cache_dir(self) -> Path:
        return self.root / CACHE_DIR

    def get_label_cache_dir(self, label_name: str) -> Path:
        return self.get_cache_dir() / label_name

    def get_version_cache_dir(self, label_name: str, version: str) -> Path:
        return self.get_label_cache_dir(label_name) / version

    def get_label_tmp_dir(self, label_name: str) -> Path:
        """Get scratch directory for one label run

        Returns:
            Path removed at the end of every run
        """
        return self.get_label_cache_dir(label_name) / TMP_DIR_NAME

    def get_logs_dir(self) -> Path:
        return self.root / LOGS_DIR

    def get_queue_dir(self) -> Path:
        """Get the on-demand queue directory

        Returns:
            Path watched for ``{folder}.trigger`` files
        """
        return self.root / QUEUE_DIR

    def get_uploaded_marker(self, folder_name: str) -> Path:
        return self.get_title_dir(folder_name) / UPLOADED_MARKER_FILE

    def ensure_directories(self) -> None:
        """Create the top level directories if missing"""
        for directory in (self.get_managed_titles_dir(), self.get_cache_dir(), self.get_logs_dir(),
                          self.get_queue_dir()):
            directory.mkdir(parents=True, exist_ok=True)
