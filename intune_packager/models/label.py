"""Label definition and manifest models

Everything here is decoded once from the on-disk JSON/plist files; the
pipeline stages never see the raw dictionaries.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from ..api.exceptions import ConfigurationError
from ..constants import ArchiveType, DeploymentArch, DeploymentType, FOLDER_NAME_PATTERN

ASSIGNMENT_TYPE_ORDER = ["Required", "Available", "Uninstall"]

ALL_USERS = "All Users"
ALL_DEVICES = "All Devices"


@dataclass(frozen=True)
class LabelDefinition:
    """A managed software title, identified by label name and tracking id"""

    label_name: str
    tracking_id: str

    @property
    def folder_name(self) -> str:
        return f"{self.label_name}_{self.tracking_id}"

    @classmethod
    def from_folder_name(cls, folder_name: str) -> 'LabelDefinition':
        """Parse a ``label_trackingID`` folder name

        Raises:
            ConfigurationError: If the name does not have exactly two parts
        """
        match = FOLDER_NAME_PATTERN.match(folder_name)
        if not match:
            raise ConfigurationError(f"Invalid folder format: {folder_name}")
        return cls(label_name=match.group("label"), tracking_id=match.group("tracking_id"))

    def __str__(self) -> str:
        return self.folder_name


@dataclass(frozen=True)
class AssignmentFilter:
    """Assignment filter attached to a group target"""

    filter_id: str
    mode: str  # include / exclude

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.filter_id, "mode": self.mode}


@dataclass(frozen=True)
class GroupAssignment:
    """One entry of ``assignments.json``"""

    assignment_type: str  # Required, Available, Uninstall
    mode: str = "include"
    display_name: str = ""
    group_id: Optional[str] = None
    is_virtual: bool = False
    filter: Optional[AssignmentFilter] = None

    @property
    def intent(self) -> str:
        return self.assignment_type.lower()

    @property
    def sort_key(self):
        try:
            rank = ASSIGNMENT_TYPE_ORDER.index(self.assignment_type)
        except ValueError:
            rank = len(ASSIGNMENT_TYPE_ORDER)
        return rank, self.display_name.lower()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GroupAssignment':
        if not data.get("assignmentType"):
            raise ConfigurationError("Assignment is missing 'assignmentType'")

        raw_filter = data.get("filter")
        assignment_filter = None
        if isinstance(raw_filter, dict) and raw_filter.get("id") and raw_filter.get("mode"):
            assignment_filter = AssignmentFilter(raw_filter["id"], raw_filter["mode"])

        return cls(
            assignment_type=data["assignmentType"],
            mode=data.get("mode", "include"),
            display_name=data.get("displayName", ""),
            group_id=data.get("id"),
            is_virtual=bool(data.get("isVirtual", 0)),
            filter=assignment_filter,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "assignmentType": self.assignment_type,
            "mode": self.mode,
            "displayName": self.display_name,
            "isVirtual": 1 if self.is_virtual else 0,
        }
        if self.group_id:
            data["id"] = self.group_id
        if self.filter:
            data["filter"] = self.filter.to_dict()
        return data


def sort_assignments(assignments: List[GroupAssignment]) -> List[GroupAssignment]:
    """Order assignments Required, Available, Uninstall, then by name"""
    return sorted(assignments, key=lambda a: a.sort_key)


@dataclass(frozen=True)
class AppCategory:
    """Catalog category reference"""

    category_id: str
    display_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppCategory':
        if not isinstance(data, dict) or not isinstance(data.get("id"), str) or not data["id"]:
            raise ConfigurationError(f"Category entry needs a string id: {data!r}")
        return cls(category_id=data["id"], display_name=data.get("displayName") or "")


def _decode_categories(value: Any) -> List[AppCategory]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"Metadata categories must be a list, got {type(value).__name__}")
    return [AppCategory.from_dict(entry) for entry in value]


@dataclass
class LabelMetadata:
    """Decoded ``metadata.json`` for a managed title"""

    expected_bundle_id: str
    deployment_type: DeploymentType
    deployment_arch: DeploymentArch
    description: str
    publisher: str
    minimum_os: str
    developer: str = ""
    owner: str = ""
    notes: str = ""
    information_url: str = ""
    privacy_url: str = ""
    categories: List[AppCategory] = field(default_factory=list)
    is_featured: bool = False
    is_managed: bool = False
    ignore_version_detection: bool = False

    REQUIRED_KEYS = ("CFBundleIdentifier", "deploymentTypeTag", "deployAsArchTag",
                     "description", "publisher", "minimumOS")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LabelMetadata':
        missing = [key for key in cls.REQUIRED_KEYS if data.get(key) in (None, "")]
        if missing:
            raise ConfigurationError(f"Critical metadata keys are missing: {', '.join(missing)}")

        try:
            deployment_type = DeploymentType(int(data["deploymentTypeTag"]))
            deployment_arch = DeploymentArch(int(data["deployAsArchTag"]))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid deployment tag in metadata: {e}") from e

        return cls(
            expected_bundle_id=data["CFBundleIdentifier"],
            deployment_type=deployment_type,
            deployment_arch=deployment_arch,
            description=data["description"],
            publisher=data["publisher"],
            minimum_os=data["minimumOS"],
            developer=data.get("developer", ""),
            owner=data.get("owner", ""),
            notes=data.get("notes", ""),
            information_url=data.get("informationUrl", ""),
            privacy_url=data.get("privacyInformationUrl", ""),
            categories=_decode_categories(data.get("categories")),
            is_featured=bool(data.get("isFeatured", False)),
            is_managed=bool(data.get("isManaged", False)),
            ignore_version_detection=bool(data.get("ignoreVersionDetection", False)),
        )


@dataclass
class ResolvedManifest:
    """Output of the label resolution script for one run"""

    name: str
    download_url: str
    expected_team_id: str
    archive_type: ArchiveType
    expected_version: str = ""
    download_url_secondary: str = ""
    label_type: str = ""
    icon_path: str = ""

    REQUIRED_KEYS = ("name", "downloadURL", "expectedTeamID", "type")

    @classmethod
    def from_plist(cls, data: Dict[str, Any], secondary: Optional[Dict[str, Any]] = None) -> 'ResolvedManifest':
        """Build from the primary label plist and an optional i386 plist"""
        missing = [key for key in cls.REQUIRED_KEYS if not data.get(key)]
        if missing:
            raise ConfigurationError(f"Critical plist keys are missing: {', '.join(missing)}")

        try:
            archive_type = ArchiveType.parse(data["type"])
        except ValueError as e:
            raise ConfigurationError(f"Unknown archive type: {data['type']}") from e

        return cls(
            name=data["name"],
            download_url=data["downloadURL"],
            expected_team_id=data["expectedTeamID"],
            archive_type=archive_type,
            expected_version=data.get("appNewVersion", "") or "",
            download_url_secondary=(secondary or {}).get("downloadURL", "") or "",
            label_type=data["type"],
            icon_path=data.get("labelIcon", "") or "",
        )
