"""Decoding of managed title folders into ProcessingResult records"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..api.exceptions import ConfigurationError
from ..constants import (
    ASSIGNMENTS_FILE,
    METADATA_FILE,
    POSTINSTALL_SCRIPT,
    PREINSTALL_SCRIPT,
    SECONDARY_PLIST_SUFFIX,
    DeploymentArch,
)
from ..models.label import (
    GroupAssignment,
    LabelDefinition,
    LabelMetadata,
    ResolvedManifest,
    sort_assignments,
)
from ..models.processing import ProcessingResult
from ..utils.plist_utils import PlistError, read_plist
from .package_builder import artifact_filename
from .path_resolver import PathResolver

logger = logging.getLogger(__name__)


def primary_plist_path(title_dir: Path, label_name: str) -> Path:
    return title_dir / f"{label_name}.plist"


def secondary_plist_path(title_dir: Path, label_name: str) -> Path:
    return title_dir / f"{label_name}{SECONDARY_PLIST_SUFFIX}.plist"


def is_dual_arch(title_dir: Path, label_name: str) -> bool:
    """Both the arm64 and the i386 manifest exist"""
    return (primary_plist_path(title_dir, label_name).is_file()
            and secondary_plist_path(title_dir, label_name).is_file())


def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Missing {path.name} in {path.parent.name}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to load {path}: {e}") from e


def _read_manifest(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigurationError(f"Missing plist file: {path}")
    try:
        return read_plist(path)
    except PlistError as e:
        raise ConfigurationError(f"Failed to parse plist: {path}") from e


def _read_script(path: Path) -> str:
    if not path.is_file():
        return ""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Ignoring unreadable script %s: %s", path, e)
        return ""


class MetadataLoader:
    """Loads everything a label run needs from its ManagedTitles folder"""

    def __init__(self, path_resolver: PathResolver):
        self.path_resolver = path_resolver

    def load_assignments(self, title_dir: Path) -> List[GroupAssignment]:
        path = title_dir / ASSIGNMENTS_FILE
        if not path.exists():
            return []
        data = _read_json(path)
        if not isinstance(data, list):
            raise ConfigurationError(f"{ASSIGNMENTS_FILE} must contain a list")
        return sort_assignments([GroupAssignment.from_dict(item) for item in data])

    def load(self, folder_name: str) -> ProcessingResult:
        """
        Decode one managed title folder

        Args:
            folder_name: ``label_trackingID`` folder below ManagedTitles

        Returns:
            ProcessingResult with manifest, metadata and assignments filled in

        Raises:
            ConfigurationError: Folder name, metadata or manifest is invalid
        """
        label = LabelDefinition.from_folder_name(folder_name)
        title_dir = self.path_resolver.get_title_dir(folder_name)
        if not title_dir.is_dir():
            raise ConfigurationError(f"Managed title folder not found: {folder_name}")

        metadata = LabelMetadata.from_dict(_read_json(title_dir / METADATA_FILE))
        dual_arch = is_dual_arch(title_dir, label.label_name)

        primary_path = primary_plist_path(title_dir, label.label_name)
        secondary: Optional[Dict[str, Any]] = None
        if dual_arch:
            if metadata.deployment_arch == DeploymentArch.X86_64:
                primary_path = secondary_plist_path(title_dir, label.label_name)
            elif metadata.deployment_arch == DeploymentArch.UNIVERSAL:
                secondary = _read_manifest(secondary_plist_path(title_dir, label.label_name))

        manifest = ResolvedManifest.from_plist(_read_manifest(primary_path), secondary)

        result = ProcessingResult(
            label=label,
            metadata=metadata,
            manifest=manifest,
            assignments=self.load_assignments(title_dir),
            is_dual_arch=dual_arch,
            pre_install_script=_read_script(title_dir / PREINSTALL_SCRIPT),
            post_install_script=_read_script(title_dir / POSTINSTALL_SCRIPT),
        )
        result.upload_filename = self.final_filename(result, manifest.expected_version)

        logger.debug("Loaded %s: %s %s (%s)", folder_name, manifest.name,
                     manifest.expected_version or "unknown version", manifest.archive_type.value)
        return result

    @staticmethod
    def final_filename(result: ProcessingResult, version: str) -> str:
        return artifact_filename(result.display_name, version, result.deployment_type,
                                 result.deployment_arch, result.is_dual_arch)
