"""Working record threaded through the label pipeline"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any

from ..constants import ArchiveType, DeploymentArch, DeploymentType
from .label import AppCategory, GroupAssignment, LabelDefinition, LabelMetadata, ResolvedManifest


@dataclass
class ProcessingResult:
    """Accumulates what each stage learns about one label run

    Created from the decoded label files at the start of a run and mutated
    by the stages that follow. Nothing in here is persisted.
    """

    label: LabelDefinition
    metadata: LabelMetadata
    manifest: ResolvedManifest
    assignments: List[GroupAssignment] = field(default_factory=list)
    is_dual_arch: bool = False
    pre_install_script: str = ""
    post_install_script: str = ""
    upload_filename: str = ""

    local_path: Optional[Path] = None
    bundle_id_actual: str = ""
    version_actual: str = ""

    @property
    def display_name(self) -> str:
        return self.manifest.name

    @property
    def tracking_id(self) -> str:
        return self.label.tracking_id

    @property
    def label_name(self) -> str:
        return self.label.label_name

    @property
    def folder_name(self) -> str:
        return self.label.folder_name

    @property
    def deployment_type(self) -> DeploymentType:
        return self.metadata.deployment_type

    @property
    def deployment_arch(self) -> DeploymentArch:
        return self.metadata.deployment_arch

    @property
    def archive_type(self) -> ArchiveType:
        return self.manifest.archive_type

    @property
    def expected_version(self) -> str:
        return self.manifest.expected_version

    @property
    def expected_bundle_id(self) -> str:
        return self.metadata.expected_bundle_id

    @property
    def expected_team_id(self) -> str:
        return self.manifest.expected_team_id

    @property
    def categories(self) -> List[AppCategory]:
        return self.metadata.categories

    @property
    def needs_secondary_download(self) -> bool:
        """Dual-arch title deployed as one universal installer package"""
        return (self.is_dual_arch
                and self.deployment_type != DeploymentType.DMG
                and self.deployment_arch == DeploymentArch.UNIVERSAL
                and bool(self.manifest.download_url_secondary))

    @property
    def file_size(self) -> int:
        if self.local_path and self.local_path.exists():
            return self.local_path.stat().st_size
        return 0

    @property
    def artifact_arch_suffix(self) -> Optional[str]:
        """Architecture named in the artifact filename, if single-arch"""
        name = self.local_path.name if self.local_path else self.upload_filename
        for arch in ("arm64", "x86_64"):
            if arch in name:
                return arch
        return None

    @property
    def remote_display_name(self) -> str:
        suffix = self.artifact_arch_suffix
        base = f"{self.display_name} {self.version_actual}"
        return f"{base} {suffix}" if suffix else base

    @property
    def remote_notes(self) -> str:
        marker = f"Intuneomator ID: {self.tracking_id}"
        if not self.metadata.notes:
            return marker
        return f"{self.metadata.notes}\n\n{marker}"

    def apply_cached(self, path: Path) -> None:
        """Adopt a cached artifact; its filename-encoded version is authoritative"""
        self.local_path = path
        self.bundle_id_actual = self.expected_bundle_id
        self.version_actual = self.expected_version

    def to_dict(self) -> Dict[str, Any]:
        """Summary used for notifications and CLI output"""
        return {
            "label": self.label_name,
            "tracking_id": self.tracking_id,
            "display_name": self.display_name,
            "version_expected": self.expected_version,
            "version_actual": self.version_actual,
            "bundle_id": self.bundle_id_actual or self.expected_bundle_id,
            "deployment_type": self.deployment_type.name.lower(),
            "deployment_arch": self.deployment_arch.name.lower(),
            "dual_arch": self.is_dual_arch,
            "local_path": str(self.local_path) if self.local_path else None,
            "file_size": self.file_size,
        }
