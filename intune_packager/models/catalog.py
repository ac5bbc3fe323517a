"""Remote catalog records"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Any

from ..api.exceptions import CatalogError
from ..constants import TRACKING_ID_PREFIX


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class RemoteAppRecord:
    """A mobile app entry as returned by the catalog"""

    id: str
    display_name: str
    primary_bundle_version: str
    is_assigned: bool
    primary_bundle_id: str = ""
    created_at: Optional[datetime] = None
    notes: str = ""

    @property
    def tracking_id(self) -> Optional[str]:
        """Tracking id embedded at the end of the notes field"""
        index = self.notes.rfind(TRACKING_ID_PREFIX)
        if index < 0:
            return None
        return self.notes[index + len(TRACKING_ID_PREFIX):].strip() or None

    @classmethod
    def from_graph(cls, data: Dict[str, Any]) -> 'RemoteAppRecord':
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise CatalogError(f"Catalog entry has no app id: {data!r}")
        return cls(
            id=data["id"],
            display_name=data.get("displayName", ""),
            primary_bundle_version=data.get("primaryBundleVersion") or data.get("buildNumber") or "",
            is_assigned=bool(data.get("isAssigned", False)),
            primary_bundle_id=data.get("primaryBundleId") or data.get("bundleId") or "",
            created_at=_parse_timestamp(data.get("createdDateTime")),
            notes=data.get("notes") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "version": self.primary_bundle_version,
            "is_assigned": self.is_assigned,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
