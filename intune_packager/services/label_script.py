"""Label resolution script execution"""

import logging
from pathlib import Path
from typing import Optional

from ..api.exceptions import ConfigurationError
from ..constants import ARCH_COMMAND_MARKERS, LABEL_SCRIPT_SUCCESS_OUTPUT
from ..core.metadata_loader import primary_plist_path
from ..core.path_resolver import PathResolver
from ..models.label import LabelDefinition
from ..utils.process_utils import CommandRunner

logger = logging.getLogger(__name__)

ZSH = "/bin/zsh"
ARCH = "/usr/bin/arch"


class LabelScriptRunner:
    """Runs the label processing script that writes the label plists

    The script is opaque: it receives the label's ``.sh`` file and prints
    ``Plist created`` when ``{label}.plist`` has been refreshed. Labels
    whose download depends on the CPU are resolved a second time under
    Rosetta to produce ``{label}_i386.plist``.
    """

    def __init__(self, script: str, path_resolver: PathResolver,
                 runner: Optional[CommandRunner] = None):
        self.script = Path(script).expanduser() if script else None
        self.path_resolver = path_resolver
        self.runner = runner or CommandRunner()

    @staticmethod
    def is_arch_dependent(label_script: Path) -> bool:
        try:
            content = label_script.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return False
        return any(marker in content for marker in ARCH_COMMAND_MARKERS)

    async def _run(self, *args, label: str) -> None:
        result = await self.runner.run(*args)
        output = result.stdout.strip()
        if not result.ok or output != LABEL_SCRIPT_SUCCESS_OUTPUT:
            raise ConfigurationError(f"Label script failed for {label}: {result.output or 'no output'}")

    async def run(self, folder_name: str) -> Path:
        """
        Refresh the label plists of ``folder_name``

        Returns:
            Path of the primary label plist

        Raises:
            ConfigurationError: Script missing or did not report success
        """
        label = LabelDefinition.from_folder_name(folder_name)
        title_dir = self.path_resolver.get_title_dir(folder_name)
        label_script = title_dir / f"{label.label_name}.sh"

        if self.script is None or not self.script.is_file():
            raise ConfigurationError(f"Label processing script not found: {self.script}")
        if not label_script.is_file():
            raise ConfigurationError(f"Label script not found: {label_script}")

        await self._run(ZSH, self.script, label_script, label=folder_name)

        if self.is_arch_dependent(label_script):
            logger.info("%s depends on CPU architecture, resolving x86_64 as well", folder_name)
            await self._run(ARCH, "-x86_64", ZSH, self.script, label_script, label=folder_name)

        return primary_plist_path(title_dir, label.label_name)
