"""Local artifact cache"""

import logging
from pathlib import Path
from typing import Optional

from ..constants import DeploymentArch, DeploymentType
from .package_builder import artifact_filename
from .path_resolver import PathResolver

logger = logging.getLogger(__name__)


class CacheStore:
    """Finds previously built artifacts by their deterministic path

    ``Cache/{label}/{version}/{artifact}``. Presence of the file is the
    only signal; contents are never read and nothing is invalidated.
    """

    def __init__(self, path_resolver: PathResolver):
        self.path_resolver = path_resolver

    def artifact_path(self, label_name: str, display_name: str, version: str,
                      deployment_type: DeploymentType, deployment_arch: DeploymentArch,
                      is_dual_arch: bool = False) -> Optional[Path]:
        filename = artifact_filename(display_name, version, deployment_type,
                                     deployment_arch, is_dual_arch)
        if not label_name or not filename:
            return None
        return self.path_resolver.get_version_cache_dir(label_name, version) / filename

    def lookup(self, label_name: str, display_name: str, version: str,
               deployment_type: DeploymentType, deployment_arch: DeploymentArch,
               is_dual_arch: bool = False) -> Optional[Path]:
        """
        Return the cached artifact for this combination, if present

        Args:
            label_name: Label the artifact belongs to
            display_name: Application display name
            version: Version the artifact was built for
            deployment_type: DMG, PKG or LOB
            deployment_arch: Target architecture
            is_dual_arch: Whether the label has per-architecture downloads

        Returns:
            Path of the cached file or None
        """
        path = self.artifact_path(label_name, display_name, version,
                                  deployment_type, deployment_arch, is_dual_arch)
        if path is None:
            return None
        if path.is_file():
            logger.info("Cache hit: %s", path)
            return path
        logger.debug("Cache miss: %s", path)
        return None
