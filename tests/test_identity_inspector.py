"""Tests for signature, version and architecture inspection."""

from pathlib import Path

import pytest

from intune_packager.api.exceptions import ExtractionError, VerificationError
from intune_packager.constants import Architecture, ErrorCode
from intune_packager.core.identity_inspector import (
    VERSION_UNKNOWN,
    IdentityInspector,
    architecture_from_file_output,
    parse_spctl_output,
)

from tests.conftest import BUNDLE_ID, SPCTL_ACCEPTED, TEAM_ID, FakeRunner, failed, ok, write_app


def test_parse_accepted_assessment() -> None:
    info = parse_spctl_output(SPCTL_ACCEPTED)

    assert info.accepted
    assert info.team_id == TEAM_ID
    assert info.developer_id == "Mozilla Corporation"
    assert info.source == "Notarized Developer ID"


def test_parse_team_from_last_parentheses() -> None:
    info = parse_spctl_output("accepted\norigin=Developer ID Application: ACME (Europe) Ltd (ABCDE12345)")

    assert info.team_id == "ABCDE12345"
    assert info.developer_id == "ACME (Europe) Ltd"


def test_parse_rejected_assessment() -> None:
    info = parse_spctl_output("/tmp/Foo.app: rejected\nsource=no usable signature")

    assert not info.accepted
    assert info.team_id == ""


def test_unparseable_assessment_raises() -> None:
    with pytest.raises(VerificationError):
        parse_spctl_output("spctl: command not found")


@pytest.mark.parametrize("output, expected", [
    ("Mach-O 64-bit executable arm64", Architecture.ARM64),
    ("Mach-O 64-bit executable x86_64", Architecture.X86_64),
    ("Mach-O universal binary with 2 architectures: [x86_64:Mach-O 64-bit executable x86_64] "
     "[arm64:Mach-O 64-bit executable arm64]", Architecture.UNIVERSAL),
    ("POSIX shell script, ASCII text executable", Architecture.UNKNOWN),
])
def test_architecture_from_file_output(output, expected) -> None:
    assert architecture_from_file_output(output) == expected


@pytest.mark.anyio
async def test_verify_signature_uses_install_assessment_for_packages(tmp_path) -> None:
    runner = FakeRunner()
    inspector = IdentityInspector(runner)

    assert await inspector.verify_signature(tmp_path / "Firefox.pkg", TEAM_ID)
    assert runner.calls[0][:5] == ["/usr/sbin/spctl", "-a", "-vv", "-t", "install"]


@pytest.mark.anyio
@pytest.mark.parametrize("output", [
    "rejected\nsource=no usable signature",
    "accepted\nsource=Notarized Developer ID",
    "accepted\norigin=Developer ID Application: Someone Else (ZZZZZZZZZZ)",
])
async def test_verify_signature_failures(tmp_path, output) -> None:
    inspector = IdentityInspector(FakeRunner(lambda argv: ok(argv, stderr=output)))

    with pytest.raises(VerificationError):
        await inspector.verify_signature(tmp_path / "Firefox.app", TEAM_ID)


def test_app_version_requires_expected_bundle(tmp_path) -> None:
    app = write_app(tmp_path / "Firefox.app", version="122.0.1")
    inspector = IdentityInspector(FakeRunner())

    assert inspector.extract_app_version(app, BUNDLE_ID) == "122.0.1"
    assert inspector.extract_app_version(app, "org.example.other") == VERSION_UNKNOWN


def test_missing_info_plist_is_extraction_error(tmp_path) -> None:
    (tmp_path / "Broken.app").mkdir()

    with pytest.raises(ExtractionError):
        IdentityInspector(FakeRunner()).read_app_info(tmp_path / "Broken.app")


def _expand_with(files):
    """pkgutil stand-in that writes ``files`` into the expansion directory"""
    def handler(argv):
        if Path(argv[0]).name == "pkgutil":
            destination = Path(argv[-1])
            for relative, content in files.items():
                target = destination / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            return ok(argv)
        return None
    return handler


@pytest.mark.anyio
async def test_pkg_version_from_distribution(tmp_path) -> None:
    distribution = (
        '<installer-gui-script minSpecVersion="2">'
        '<pkg-ref id="org.mozilla.firefox" version="122.0"/>'
        '</installer-gui-script>'
    )
    runner = FakeRunner(_expand_with({"Distribution": distribution}))
    work_dir = tmp_path / "work"
    work_dir.mkdir()

    version = await IdentityInspector(runner).extract_pkg_version(tmp_path / "Firefox.pkg", BUNDLE_ID, work_dir)

    assert version == "122.0"
    assert list(work_dir.iterdir()) == []


@pytest.mark.anyio
async def test_pkg_version_from_package_info(tmp_path) -> None:
    package_info = '<pkg-info identifier="org.mozilla.firefox" version="121.0.1"/>'
    runner = FakeRunner(_expand_with({"firefox.pkg/PackageInfo": package_info}))

    version = await IdentityInspector(runner).extract_pkg_version(tmp_path / "Firefox.pkg", BUNDLE_ID, tmp_path)

    assert version == "121.0.1"


@pytest.mark.anyio
async def test_pkg_without_bundle_reports_unknown(tmp_path) -> None:
    package_info = '<pkg-info identifier="com.example.helper" version="1.0"/>'
    runner = FakeRunner(_expand_with({"helper.pkg/PackageInfo": package_info}))

    version = await IdentityInspector(runner).extract_pkg_version(tmp_path / "Firefox.pkg", BUNDLE_ID, tmp_path)

    assert version == VERSION_UNKNOWN


@pytest.mark.anyio
async def test_pkg_expansion_failure_raises(tmp_path) -> None:
    runner = FakeRunner(lambda argv: failed(argv, "Could not open package"))

    with pytest.raises(ExtractionError):
        await IdentityInspector(runner).extract_pkg_version(tmp_path / "Firefox.pkg", BUNDLE_ID, tmp_path)


@pytest.mark.anyio
async def test_validate_architectures_reports_mismatch(tmp_path) -> None:
    arm = write_app(tmp_path / "arm" / "Firefox.app")
    intel = write_app(tmp_path / "intel" / "Firefox.app")

    def handler(argv):
        if Path(argv[0]).name == "file":
            return ok(argv, "Mach-O 64-bit executable arm64")
        return None

    inspector = IdentityInspector(FakeRunner(handler))
    await inspector.validate_architectures([(arm, Architecture.ARM64)])

    with pytest.raises(VerificationError) as exc_info:
        await inspector.validate_architectures([(arm, Architecture.ARM64), (intel, Architecture.X86_64)])

    assert exc_info.value.error_code == ErrorCode.ARCHITECTURE_MISMATCH


@pytest.mark.anyio
async def test_extract_version_dispatches_on_payload_kind(tmp_path) -> None:
    app = write_app(tmp_path / "Firefox.app", version="122.0.1")
    distribution = '<installer-gui-script><pkg-ref id="org.mozilla.firefox" version="121.0"/></installer-gui-script>'
    runner = FakeRunner(_expand_with({"Distribution": distribution}))
    inspector = IdentityInspector(runner)

    assert await inspector.extract_version(app, BUNDLE_ID) == "122.0.1"
    assert runner.commands("pkgutil") == []
    assert await inspector.extract_version(tmp_path / "Firefox-installer", BUNDLE_ID, tmp_path) == "121.0"
    assert len(runner.commands("pkgutil")) == 1
