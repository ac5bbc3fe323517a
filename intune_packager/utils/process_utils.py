"""External command execution"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Captured result of one external command"""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined, trimmed"""
        return "\n".join(s for s in (self.stdout.strip(), self.stderr.strip()) if s)


class CommandRunner:
    """Runs macOS command line tools as asyncio subprocesses

    Every stage that shells out (``ditto``, ``hdiutil``, ``spctl``,
    ``pkgutil``, ``pkgbuild``, ``productbuild``, ``file``) goes through one
    instance of this class, so tests can substitute a scripted runner.
    """

    async def run(self,
                  *args: Union[str, Path],
                  cwd: Optional[Path] = None,
                  env: Optional[Dict[str, str]] = None) -> CommandResult:
        """
        Run a command and capture its output

        Args:
            *args: Executable and arguments
            cwd: Working directory
            env: Environment for the child process

        Returns:
            CommandResult, with return code 127 if the executable is missing
        """
        argv = [str(a) for a in args]
        logger.debug("Running: %s", " ".join(argv))

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
                env=env,
            )
        except FileNotFoundError:
            logger.error("Command not found: %s", argv[0])
            return CommandResult(argv, COMMAND_NOT_FOUND, "", f"{argv[0]}: command not found")

        stdout, stderr = await process.communicate()
        result = CommandResult(
            argv,
            process.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )
        if not result.ok:
            logger.debug("%s exited with %d: %s", argv[0], result.returncode, result.output)
        return result
