"""Utility helpers"""

from .async_utils import run_async, timeout_async, retry_async, sync_to_async
from .file_utils import (
    format_size,
    safe_remove,
    copy_item,
    copy_item_async,
    place_atomically,
    place_atomically_async,
    find_files,
    find_files_async,
)
from .hash_utils import calculate_file_hash_async
from .crypto_utils import encrypt_file, encrypt_file_async
from .process_utils import CommandRunner, CommandResult
from .version_utils import parse_version, version_sort_key

__all__ = [
    "run_async",
    "timeout_async",
    "retry_async",
    "sync_to_async",
    "format_size",
    "safe_remove",
    "copy_item",
    "copy_item_async",
    "place_atomically",
    "place_atomically_async",
    "find_files",
    "find_files_async",
    "calculate_file_hash_async",
    "encrypt_file",
    "encrypt_file_async",
    "CommandRunner",
    "CommandResult",
    "parse_version",
    "version_sort_key",
]
