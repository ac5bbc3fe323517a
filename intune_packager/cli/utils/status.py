"""Exit status for label runs"""

from typing import Iterable

from ...constants import EXIT_AUTH_FAILURE, EXIT_FAILURE, EXIT_SUCCESS, ErrorKind
from ...models.result import LabelRunResult


def exit_code_for(results: Iterable[LabelRunResult]) -> int:
    """2 if any run could not authenticate, 1 if any run failed, else 0"""
    failed = [r for r in results if r.is_failed]
    if any(r.error_kind == ErrorKind.AUTHENTICATION for r in failed):
        return EXIT_AUTH_FAILURE
    if failed:
        return EXIT_FAILURE
    return EXIT_SUCCESS
