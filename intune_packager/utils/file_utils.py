# intune_packager/utils/file_utils.py
"""File operation utilities"""

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import List

from .async_utils import sync_to_async

logger = logging.getLogger(__name__)


def format_size(size: int) -> str:
    """
    Format file size in human-readable format

    Args:
        size: Size in bytes

    Returns:
        Formatted size string
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} PB"


def safe_remove(path: Path) -> bool:
    """
    Remove file or directory, logging instead of raising

    Args:
        path: Path to remove

    Returns:
        True if the path is gone afterwards
    """
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        return True
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)
        return False


def copy_item(src: Path, dst: Path) -> Path:
    """
    Copy a file or a bundle directory, replacing whatever is at ``dst``

    Symlinks inside bundles are preserved.

    Args:
        src: Source file or directory
        dst: Destination path

    Returns:
        Destination path
    """
    if dst.exists() or dst.is_symlink():
        if dst.is_dir() and not dst.is_symlink():
            shutil.rmtree(dst)
        else:
            dst.unlink()

    dst.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dst, symlinks=True)
    else:
        shutil.copy2(src, dst)
    return dst


def place_atomically(src: Path, dst: Path) -> Path:
    """
    Move ``src`` to ``dst`` so readers see either nothing or the full file

    The file is first copied next to the destination under a temporary
    name, then renamed over it.

    Args:
        src: Finished artifact
        dst: Final location

    Returns:
        Final location
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    temp = dst.with_name(f".{dst.name}.{uuid.uuid4().hex}.partial")
    try:
        shutil.copy2(src, temp)
        os.replace(temp, dst)
    except BaseException:
        if temp.exists():
            temp.unlink()
        raise
    return dst


def find_files(folder: Path, extension: str) -> List[Path]:
    """
    Find items with ``extension`` below ``folder``, shortest path first

    ``.app`` matches bundle directories, any other extension matches
    regular files. Hidden entries are skipped and bundle contents are not
    descended into. Comparison is case-insensitive.

    Args:
        folder: Directory to search
        extension: Extension without the dot

    Returns:
        Matching paths ordered by path length
    """
    wanted = f".{extension.lower()}"
    want_dirs = extension.lower() == "app"
    matches = []

    for root, dirs, files in os.walk(folder):
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        if want_dirs:
            for name in list(dirs):
                if name.lower().endswith(wanted):
                    matches.append(Path(root) / name)
                    dirs.remove(name)
        else:
            for name in files:
                if not name.startswith(".") and name.lower().endswith(wanted):
                    matches.append(Path(root) / name)

    return sorted(matches, key=lambda p: (len(str(p)), str(p)))


# Bundle copies and tree walks can take seconds; these run in the executor
copy_item_async = sync_to_async(copy_item)
place_atomically_async = sync_to_async(place_atomically)
find_files_async = sync_to_async(find_files)
