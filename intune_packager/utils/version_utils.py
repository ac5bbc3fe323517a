"""Version management utilities"""

from typing import Optional, Tuple

from packaging.version import parse, Version, InvalidVersion


def parse_version(version_str: str) -> Optional[Version]:
    """
    Parse version string

    Args:
        version_str: Version string

    Returns:
        Version object or None if not PEP 440 compatible
    """
    try:
        return parse(version_str)
    except InvalidVersion:
        return None


def version_sort_key(version_str: str) -> Tuple:
    """
    Sort key that orders parseable versions numerically

    Vendor version strings are frequently not PEP 440; those sort after
    parseable ones, by their numeric components and then lexically.

    Args:
        version_str: Version string

    Returns:
        Tuple usable as a sort key
    """
    parsed = parse_version(version_str or "")
    if parsed is not None:
        return (0, parsed, ())

    numeric = []
    for part in (version_str or "").replace("-", ".").split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        numeric.append(int(digits) if digits else -1)
    return (1, Version("0"), (tuple(numeric), version_str or ""))
