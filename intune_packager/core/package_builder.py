"""Installer package and disk image creation"""

import logging
import plistlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..api.exceptions import BuildError
from ..constants import DeploymentArch, DeploymentType
from ..utils.file_utils import copy_item_async, place_atomically_async, safe_remove
from ..utils.plist_utils import PlistError, read_plist
from ..utils.process_utils import CommandRunner

logger = logging.getLogger(__name__)

PKGBUILD = "/usr/bin/pkgbuild"
PRODUCTBUILD = "/usr/bin/productbuild"
HDIUTIL = "/usr/bin/hdiutil"

DOMAINS_ELEMENT = ('<domains enable_anywhere="false" enable_currentUserHome="false" '
                   'enable_localSystem="true"/>')

UNIVERSAL_DISTRIBUTION = """<?xml version="1.0" encoding="utf-8"?>
<installer-gui-script minSpecVersion="1">
    <title>{name}-{version}</title>
    <pkg-ref id="{bundle_id}-arm"/>
    <pkg-ref id="{bundle_id}-x86"/>
    <options customize="allow" require-scripts="false" rootVolumeOnly="true" hostArchitectures="x86_64,arm64"/>
    <script>
    <![CDATA[
    function is_arm() {{
      if(system.sysctl("machdep.cpu.brand_string").includes("Apple")) {{
        return true;
      }}
      return false;
    }}
    ]]>
    </script>
    <choices-outline>
        <line choice="default">
            <line choice="{bundle_id}-arm"/>
            <line choice="{bundle_id}-x86"/>
        </line>
    </choices-outline>
    <choice id="default"/>
    <choice id="{bundle_id}-arm" title="{name} ARM" visible="true" enabled="is_arm()" selected="is_arm()">
        <pkg-ref id="{bundle_id}-arm"/>
    </choice>
    <pkg-ref id="{bundle_id}-arm" version="{version}" onConclusion="none">component-arm.pkg</pkg-ref>
    <choice id="{bundle_id}-x86" title="{name} x86" visible="true" enabled="! is_arm()" selected="! is_arm()">
        <pkg-ref id="{bundle_id}-x86"/>
    </choice>
    <pkg-ref id="{bundle_id}-x86" version="{version}" onConclusion="none">component-x86.pkg</pkg-ref>
</installer-gui-script>
"""


def artifact_filename(title: str, version: str, deployment_type: DeploymentType,
                      deployment_arch: DeploymentArch, is_dual_arch: bool) -> str:
    """
    Deterministic artifact name used for the cache and the upload

    ``{title}-{version}-{arch}.{pkg|dmg}``; LOB packages carry no
    architecture segment. A single-download arm64 title is assumed to
    ship a universal binary.

    Returns:
        File name, or an empty string when the version is unknown
    """
    if not version:
        return ""

    if deployment_type == DeploymentType.LOB:
        return f"{title}-{version}.{deployment_type.file_suffix}"

    if deployment_arch == DeploymentArch.X86_64:
        arch = "x86_64"
    elif deployment_arch == DeploymentArch.ARM64 and is_dual_arch:
        arch = "arm64"
    else:
        arch = "universal"
    return f"{title}-{version}-{arch}.{deployment_type.file_suffix}"


@dataclass
class AppBundleInfo:
    name: str
    bundle_id: str
    version: str


def read_bundle_info(app: Path) -> AppBundleInfo:
    try:
        info = read_plist(app / "Contents" / "Info.plist")
    except PlistError as e:
        raise BuildError(f"Cannot read Info.plist of {app.name}: {e}") from e

    bundle_id = info.get("CFBundleIdentifier")
    version = info.get("CFBundleShortVersionString")
    if not bundle_id or not version:
        raise BuildError(f"Info.plist of {app.name} lacks identifier or version")
    name = info.get("CFBundleName") or app.stem
    return AppBundleInfo(name=name, bundle_id=bundle_id, version=version)


def customize_distribution(xml: str, title: str) -> str:
    """Add title, local-system-only domains and rootVolumeOnly to a synthesized distribution"""
    opening = re.search(r"<installer-gui-script[^>]*>", xml)
    if opening:
        xml = xml[:opening.end()] + f"\n    <title>{title}</title>" + xml[opening.end():]

    options_at = xml.find("<options")
    if options_at >= 0:
        xml = xml[:options_at] + DOMAINS_ELEMENT + "\n    " + xml[options_at:]

    def add_root_volume_only(match):
        element = match.group(0)
        if "rootVolumeOnly" in element:
            return element
        return element[:-2].rstrip() + ' rootVolumeOnly="true"/>'

    return re.sub(r"<options[^>]*/>", add_root_volume_only, xml, count=1)


class PackageBuilder:
    """Wraps app bundles into the artifact a deployment type needs

    Every build happens in a scratch directory; the finished artifact is
    then placed at its cache path atomically, so an interrupted or failed
    build never leaves a partial file where ``CacheStore`` would find it.
    """

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    async def _run(self, *args, step: str, cwd: Optional[Path] = None) -> None:
        result = await self.runner.run(*args, cwd=cwd)
        if not result.ok:
            raise BuildError(f"{step} failed: {result.output}")

    @staticmethod
    async def _stage_app(app: Path, root: Path) -> Path:
        applications = root / "Applications"
        applications.mkdir(parents=True, exist_ok=True)
        return await copy_item_async(app, applications / app.name)

    @staticmethod
    def _pin_component_plist(component_plist: Path) -> None:
        """Turn off bundle relocation for every component"""
        try:
            with open(component_plist, "rb") as f:
                components = plistlib.load(f)
        except (OSError, ValueError) as e:
            raise BuildError(f"Cannot read component plist: {e}") from e

        for bundle in components:
            bundle["BundleIsRelocatable"] = False

        with open(component_plist, "wb") as f:
            plistlib.dump(components, f)

    async def _component_pkg(self, root: Path, component_plist: Path, info: AppBundleInfo,
                             output: Path) -> Path:
        await self._run(PKGBUILD, "--analyze", "--root", root, component_plist,
                        step="pkgbuild --analyze")
        self._pin_component_plist(component_plist)
        await self._run(PKGBUILD, "--root", root,
                        "--identifier", info.bundle_id,
                        "--version", info.version,
                        "--component-plist", component_plist,
                        output, step="pkgbuild")
        return output

    async def build_pkg(self, app: Path, work_dir: Path, destination: Path) -> Path:
        """
        Build a flat installer package that drops ``app`` into /Applications

        Args:
            app: App bundle to package
            work_dir: Scratch directory, may be removed afterwards
            destination: Final artifact path

        Returns:
            Destination path

        Raises:
            BuildError: If any build tool fails
        """
        info = read_bundle_info(app)
        build_dir = work_dir / "pkgbuild"
        safe_remove(build_dir)
        packages = build_dir / "packages"
        packages.mkdir(parents=True)
        root = build_dir / "root"
        await self._stage_app(app, root)

        component = await self._component_pkg(
            root, build_dir / "component.plist", info,
            packages / f"{info.name}-{info.version}-component.pkg",
        )

        distribution = build_dir / "distribution.xml"
        await self._run(PRODUCTBUILD, "--synthesize", "--package", component, distribution,
                        step="productbuild --synthesize")
        distribution.write_text(
            customize_distribution(distribution.read_text(encoding="utf-8"),
                                   f"{info.name} - {info.version}"),
            encoding="utf-8",
        )

        output = build_dir / destination.name
        await self._run(PRODUCTBUILD, "--distribution", distribution,
                        "--package-path", packages, output, step="productbuild")

        logger.info("Built package %s", destination.name)
        return await place_atomically_async(output, destination)

    async def build_dmg(self, app: Path, work_dir: Path, destination: Path) -> Path:
        """Build a compressed APFS disk image holding ``app``"""
        info = read_bundle_info(app)
        build_dir = work_dir / "dmgbuild"
        safe_remove(build_dir)
        source = build_dir / "source"
        await copy_item_async(app, source / app.name)

        output = build_dir / destination.name
        await self._run(HDIUTIL, "create",
                        "-fs", "APFS",
                        "-srcfolder", source,
                        "-volname", f"{info.name}-{info.version}",
                        "-format", "UDZO",
                        "-nospotlight",
                        "-anyowners",
                        output, step="hdiutil create")

        logger.info("Built disk image %s", destination.name)
        return await place_atomically_async(output, destination)

    async def build_universal_pkg(self, arm_app: Path, x86_app: Path,
                                  work_dir: Path, destination: Path) -> Path:
        """
        Merge an arm64 and an x86_64 app bundle into one installer

        The distribution picks the component matching the CPU at install
        time. Identifier and version come from the arm64 bundle; callers
        are responsible for comparing the two bundles beforehand.
        """
        info = read_bundle_info(arm_app)
        build_dir = work_dir / "universal"
        safe_remove(build_dir)
        build_dir.mkdir(parents=True)

        root_arm = build_dir / "root_arm"
        root_x86 = build_dir / "root_x86"
        await self._stage_app(arm_app, root_arm)
        await self._stage_app(x86_app, root_x86)

        await self._component_pkg(root_arm, build_dir / "component-arm.plist", info,
                                  build_dir / "component-arm.pkg")
        await self._component_pkg(root_x86, build_dir / "component-x86.plist", info,
                                  build_dir / "component-x86.pkg")

        distribution = build_dir / "distribution.xml"
        distribution.write_text(
            UNIVERSAL_DISTRIBUTION.format(name=info.name, version=info.version,
                                          bundle_id=info.bundle_id),
            encoding="utf-8",
        )

        output = build_dir / "output" / destination.name
        output.parent.mkdir()
        await self._run(PRODUCTBUILD, "--distribution", distribution,
                        "--package-path", build_dir, output, step="productbuild")

        logger.info("Built universal package %s", destination.name)
        return await place_atomically_async(output, destination)

    async def place_installer(self, pkg: Path, destination: Path) -> Path:
        """Vendor installers are deployed as shipped"""
        return await place_atomically_async(pkg, destination)
