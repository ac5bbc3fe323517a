"""Code signing, version and architecture inspection"""

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple

from ..api.exceptions import ExtractionError, VerificationError
from ..constants import Architecture, ErrorCode
from ..utils.file_utils import safe_remove
from ..utils.plist_utils import PlistError, read_plist
from ..utils.process_utils import CommandRunner

logger = logging.getLogger(__name__)

SPCTL = "/usr/sbin/spctl"
PKGUTIL = "/usr/sbin/pkgutil"
FILE = "/usr/bin/file"

VERSION_UNKNOWN = "None"

_ORIGIN_TEAM = re.compile(r"\(([^()]*)\)\s*$")


@dataclass
class SignatureInfo:
    """Parsed ``spctl --assess`` output"""

    accepted: bool
    source: str = ""
    developer_id: str = ""
    team_id: str = ""


def parse_spctl_output(output: str) -> SignatureInfo:
    """
    Parse the verbose assessment printed by ``spctl -a -vv``

    Args:
        output: Combined stdout/stderr of spctl

    Returns:
        SignatureInfo

    Raises:
        VerificationError: If the output has no accepted/rejected verdict
    """
    if "accepted" in output:
        accepted = True
    elif "rejected" in output:
        accepted = False
    else:
        raise VerificationError(f"Unable to parse signature assessment: {output.strip()}")

    info = SignatureInfo(accepted=accepted)
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("source="):
            info.source = line[len("source="):].strip()
        elif line.startswith("origin="):
            origin = line[len("origin="):].strip()
            match = _ORIGIN_TEAM.search(origin)
            if match:
                info.team_id = match.group(1).strip()
                head = origin[:match.start()].strip()
                info.developer_id = head.split(":", 1)[1].strip() if ":" in head else head
            else:
                info.team_id = origin
    return info


def architecture_from_file_output(output: str) -> Architecture:
    """Map ``file`` output for a Mach-O binary onto an Architecture"""
    text = output.lower()
    has_arm = "arm64" in text
    has_intel = "x86_64" in text
    if has_arm and has_intel:
        return Architecture.UNIVERSAL
    if has_arm:
        return Architecture.ARM64
    if has_intel:
        return Architecture.X86_64
    return Architecture.UNKNOWN


def _pkg_versions(root: Path) -> Iterable[Tuple[str, str]]:
    """Yield (identifier, version) pairs from an expanded installer package"""
    candidates = [root / "Distribution"] + sorted(root.rglob("PackageInfo"), key=lambda p: len(str(p)))
    for path in candidates:
        if not path.is_file():
            continue
        try:
            tree = ET.parse(str(path))
        except ET.ParseError as e:
            logger.debug("Skipping unreadable %s: %s", path, e)
            continue
        element = tree.getroot()
        for node in element.iter():
            if node.tag == "pkg-ref" and node.get("version"):
                yield node.get("id", ""), node.get("version")
            elif node.tag == "pkg-info" and node.get("version"):
                yield node.get("identifier", ""), node.get("version")


class IdentityInspector:
    """Reads signing identity, versions and architectures off payloads

    All inspection shells out to the stock macOS tools through the
    injected ``CommandRunner``.
    """

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    async def inspect_signature(self, path: Path) -> SignatureInfo:
        assess_type = "install" if path.suffix.lower() == ".pkg" else "execute"
        result = await self.runner.run(SPCTL, "-a", "-vv", "-t", assess_type, path)
        return parse_spctl_output(result.output)

    async def verify_signature(self, path: Path, expected_team_id: str) -> bool:
        """
        Check that ``path`` is accepted by Gatekeeper and signed by the expected team

        Args:
            path: ``.app`` bundle or ``.pkg`` installer
            expected_team_id: Team identifier from the label manifest

        Returns:
            True when the signature is valid

        Raises:
            VerificationError: Rejected, unsigned/ad-hoc or signed by another team
        """
        info = await self.inspect_signature(path)

        if not info.accepted:
            raise VerificationError(f"Signature rejected for {path.name}")
        if not info.team_id:
            raise VerificationError(f"{path.name} carries no team identifier (unsigned or ad-hoc)")
        if info.team_id != expected_team_id:
            raise VerificationError(
                f"Team ID mismatch for {path.name}: expected {expected_team_id}, found {info.team_id}"
            )

        logger.info("Signature accepted for %s (team %s, %s)", path.name, info.team_id, info.source)
        return True

    async def extract_version(self, path: Path, expected_bundle_id: str,
                              work_dir: Optional[Path] = None) -> str:
        """
        Version of ``expected_bundle_id`` inside an app bundle or installer package

        App bundles are directories; anything else is expanded as a flat
        package, whatever its file name.

        Returns:
            The version, or ``"None"`` when the identifier is not present

        Raises:
            ExtractionError: The payload could not be read at all
        """
        if path.is_dir():
            return self.extract_app_version(path, expected_bundle_id)
        return await self.extract_pkg_version(path, expected_bundle_id, work_dir)

    async def extract_pkg_version(self, pkg: Path, expected_bundle_id: str,
                                  work_dir: Optional[Path] = None) -> str:
        destination = (work_dir or pkg.parent) / f"{pkg.stem}-expanded"
        safe_remove(destination)

        result = await self.runner.run(PKGUTIL, "--expand-full", pkg, destination)
        if not result.ok:
            raise ExtractionError(f"Failed to expand {pkg.name}: {result.output}")

        try:
            for identifier, version in _pkg_versions(destination):
                if identifier == expected_bundle_id:
                    return version
        finally:
            safe_remove(destination)

        logger.warning("Bundle id %s not found in %s", expected_bundle_id, pkg.name)
        return VERSION_UNKNOWN

    def read_app_info(self, app: Path) -> Tuple[str, str]:
        """
        Bundle identifier and short version string of an app bundle

        Raises:
            ExtractionError: If Info.plist is missing or unreadable
        """
        try:
            info = read_plist(app / "Contents" / "Info.plist")
        except PlistError as e:
            raise ExtractionError(f"Cannot read Info.plist of {app.name}: {e}") from e
        return info.get("CFBundleIdentifier", ""), info.get("CFBundleShortVersionString", "")

    def extract_app_version(self, app: Path, expected_bundle_id: str) -> str:
        bundle_id, version = self.read_app_info(app)
        if bundle_id != expected_bundle_id or not version:
            logger.warning("Bundle id %s not found in %s (found %s)", expected_bundle_id, app.name, bundle_id)
            return VERSION_UNKNOWN
        return version

    async def detect_architecture(self, app: Path) -> Architecture:
        """Architecture of the main executable of an app bundle"""
        try:
            info = read_plist(app / "Contents" / "Info.plist")
        except PlistError as e:
            raise ExtractionError(f"Cannot read Info.plist of {app.name}: {e}") from e

        executable = info.get("CFBundleExecutable")
        if not executable:
            raise ExtractionError(f"CFBundleExecutable missing in {app.name}")

        binary = app / "Contents" / "MacOS" / executable
        result = await self.runner.run(FILE, "-bL", binary)
        if not result.ok:
            raise ExtractionError(f"Failed to inspect {binary}: {result.output}")
        return architecture_from_file_output(result.stdout)

    async def validate_architectures(self, expected: Iterable[Tuple[Path, Architecture]]) -> None:
        """
        Check each app bundle was built for the architecture it is meant to be

        Raises:
            VerificationError: On the first mismatch
        """
        for app, wanted in expected:
            found = await self.detect_architecture(app)
            if found != wanted:
                raise VerificationError(
                    f"Architecture mismatch for {app.name}: expected {wanted.value}, found {found.value}",
                    ErrorCode.ARCHITECTURE_MISMATCH,
                )
            logger.debug("%s is %s", app.name, found.value)
