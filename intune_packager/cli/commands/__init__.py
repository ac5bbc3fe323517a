# intune_packager/cli/commands/__init__.py
"""CLI commands"""

from . import process
from . import scan
from . import run_all
from . import paths
from . import ondemand

__all__ = [
    "process",
    "scan",
    "run_all",
    "paths",
    "ondemand",
]
