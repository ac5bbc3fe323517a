"""Discovery of automation-ready managed title folders"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import jsonschema

from ..constants import ASSIGNMENTS_FILE, FOLDER_NAME_PATTERN, METADATA_FILE
from ..utils.plist_utils import PlistError, read_plist
from .path_resolver import PathResolver

logger = logging.getLogger(__name__)

_NON_EMPTY_STRING = {"type": "string", "minLength": 1}

METADATA_SCHEMA = {
    "type": "object",
    "required": ["description", "publisher", "minimumOS", "CFBundleIdentifier",
                 "ignoreVersionDetection"],
    "properties": {
        "description": _NON_EMPTY_STRING,
        "publisher": _NON_EMPTY_STRING,
        "minimumOS": _NON_EMPTY_STRING,
        "CFBundleIdentifier": _NON_EMPTY_STRING,
        "ignoreVersionDetection": {"type": "boolean"},
    },
}

ASSIGNMENTS_SCHEMA = {
    "type": "array",
    "minItems": 1,
    "items": {"type": "object"},
}

LABEL_PLIST_SCHEMA = {
    "type": "object",
    "required": ["downloadURL", "expectedTeamID", "label", "type"],
    "properties": {
        "downloadURL": _NON_EMPTY_STRING,
        "expectedTeamID": _NON_EMPTY_STRING,
        "label": _NON_EMPTY_STRING,
        "type": _NON_EMPTY_STRING,
    },
}


@dataclass
class FolderCheck:
    """Readiness of one folder, with the reasons it is not ready"""

    folder_name: str
    problems: List[str] = field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return not self.problems


class FolderScanner:
    """Lists the ManagedTitles folders that can be processed unattended"""

    def __init__(self, path_resolver: PathResolver):
        self.path_resolver = path_resolver

    def check_folder(self, folder: Path) -> FolderCheck:
        """Validate one folder against the files a run needs"""
        check = FolderCheck(folder.name)

        match = FOLDER_NAME_PATTERN.match(folder.name)
        if not match:
            check.problems.append("folder name is not label_trackingID")
            return check
        label = match.group("label")

        self._validate_json(folder / METADATA_FILE, METADATA_SCHEMA, check)
        self._validate_json(folder / ASSIGNMENTS_FILE, ASSIGNMENTS_SCHEMA, check)

        script = folder / f"{label}.sh"
        try:
            if not script.read_text(encoding="utf-8").strip():
                check.problems.append(f"{script.name} is empty")
        except (OSError, UnicodeDecodeError):
            check.problems.append(f"{script.name} is missing or unreadable")

        plist = folder / f"{label}.plist"
        try:
            jsonschema.validate(read_plist(plist), LABEL_PLIST_SCHEMA)
        except PlistError:
            check.problems.append(f"{plist.name} is missing or unreadable")
        except jsonschema.ValidationError as e:
            check.problems.append(f"{plist.name}: {e.message}")

        return check

    @staticmethod
    def _validate_json(path: Path, schema: dict, check: FolderCheck) -> None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            check.problems.append(f"{path.name} is missing or unreadable")
            return

        try:
            jsonschema.validate(data, schema)
        except jsonschema.ValidationError as e:
            check.problems.append(f"{path.name}: {e.message}")

    def check_all(self) -> List[FolderCheck]:
        base = self.path_resolver.get_managed_titles_dir()
        if not base.is_dir():
            logger.error("Managed titles folder not found: %s", base)
            return []

        checks = []
        for folder in sorted(base.iterdir(), key=lambda p: p.name):
            if not folder.is_dir() or folder.name.startswith("."):
                continue
            check = self.check_folder(folder)
            if check.is_ready:
                logger.info("Ready for automation: %s", folder.name)
            else:
                logger.info("Not ready for automation: %s (%s)", folder.name, "; ".join(check.problems))
            checks.append(check)
        return checks

    def scan(self) -> List[str]:
        """
        Folder names ready for automation, alphabetically

        Returns:
            List of ``label_trackingID`` folder names
        """
        ready = [c.folder_name for c in self.check_all() if c.is_ready]
        logger.info("Scan complete. %d folders ready for automation.", len(ready))
        return ready
