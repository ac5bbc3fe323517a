"""Property list helpers"""

import plistlib
from pathlib import Path
from typing import Any, Dict, Union
from xml.parsers.expat import ExpatError


class PlistError(ValueError):
    """Property list could not be parsed"""


def loads_plist(data: Union[str, bytes]) -> Any:
    """
    Parse XML or binary plist data

    Raises:
        PlistError: If the data is not a property list
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    try:
        return plistlib.loads(data)
    except (ValueError, ExpatError) as e:
        raise PlistError(str(e)) from e


def read_plist(path: Path) -> Dict[str, Any]:
    """
    Read a dictionary plist from disk

    Raises:
        PlistError: If the file is unreadable or not a dictionary
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise PlistError(f"Cannot read {path}: {e}") from e

    value = loads_plist(data)
    if not isinstance(value, dict):
        raise PlistError(f"{path} does not contain a dictionary")
    return value
