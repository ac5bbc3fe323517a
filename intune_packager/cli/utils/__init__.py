"""CLI utility functions"""

from .output import (
    console,
    format_label_result,
    format_batch_result,
    format_folder_checks,
)
from .progress import ProgressManager, upload_progress_callback
from .status import exit_code_for

__all__ = [
    # Output formatting
    'console',
    'format_label_result',
    'format_batch_result',
    'format_folder_checks',

    # Progress utilities
    'ProgressManager',
    'upload_progress_callback',

    # Exit status
    'exit_code_for',
]
