"""Reconciliation of a new upload against the remote catalog"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List

from ..models.catalog import RemoteAppRecord
from ..utils.version_utils import version_sort_key

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_records(records: List[RemoteAppRecord]) -> List[RemoteAppRecord]:
    """Oldest first, by creation time and then by version"""
    return sorted(
        records,
        key=lambda r: (r.created_at or _EPOCH, version_sort_key(r.primary_bundle_version)),
    )


@dataclass
class PrunePlan:
    """What has to happen to the catalog after a successful upload"""

    unassign: List[RemoteAppRecord] = field(default_factory=list)
    delete: List[RemoteAppRecord] = field(default_factory=list)
    remaining: int = 0


class CatalogReconciler:
    """Decides whether a version is new and which old versions to retire

    Holds no catalog connection; the pipeline fetches records through the
    catalog client and executes the plan returned here.
    """

    def __init__(self, versions_to_keep: int):
        self.versions_to_keep = versions_to_keep

    @staticmethod
    def is_version_present(records: List[RemoteAppRecord], version: str) -> bool:
        """Exact, case-sensitive comparison against ``primaryBundleVersion``"""
        return any(record.primary_bundle_version == version for record in records)

    def plan_prune(self, records: List[RemoteAppRecord], current_version: str) -> PrunePlan:
        """
        Work out which records to unassign and which to delete

        Every assigned record of another version loses its assignments.
        The ``count - versions_to_keep`` oldest records are candidates for
        deletion; assigned candidates are kept and their slot is not handed
        to a newer record.

        Args:
            records: All records sharing the tracking id, including the new one
            current_version: Version that was just uploaded

        Returns:
            PrunePlan
        """
        ordered = sort_records(records)
        plan = PrunePlan()

        for record in ordered:
            if record.primary_bundle_version != current_version and record.is_assigned:
                plan.unassign.append(record)

        excess = max(0, len(ordered) - self.versions_to_keep)
        for record in ordered[:excess]:
            if record.is_assigned:
                logger.info("Keeping assigned %s %s", record.display_name, record.primary_bundle_version)
                continue
            plan.delete.append(record)

        plan.remaining = len(ordered) - len(plan.delete)
        return plan
