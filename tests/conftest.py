"""Shared pytest fixtures for intune-packager tests.

Nothing here touches the network or the macOS toolchain: commands go
through a scripted runner, Graph through an in-memory catalog and HTTP
through ``httpx.MockTransport``.
"""

import json
import plistlib
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from intune_packager.api.exceptions import AuthenticationError, PipelineError
from intune_packager.constants import UPLOAD_STATE_SUCCESS, ArchiveType, DeploymentType
from intune_packager.core.archive_extractor import ArchiveExtractor
from intune_packager.core.package_builder import PackageBuilder
from intune_packager.core.path_resolver import PathResolver
from intune_packager.graph.auth import AuthProvider, BearerToken
from intune_packager.graph.catalog import CatalogClient
from intune_packager.models.catalog import RemoteAppRecord
from intune_packager.models.config import AppConfig, UploadSettings
from intune_packager.models.label import AppCategory, GroupAssignment
from intune_packager.models.processing import ProcessingResult
from intune_packager.models.result import BatchResult, LabelRunResult
from intune_packager.models.upload import ContentFile, EncryptionInfo
from intune_packager.services.notification_service import NotificationSink
from intune_packager.utils.process_utils import CommandResult, CommandRunner

TRACKING_ID = "6A6E8E3B-1C57-4F0C-9C7A-1F1E0F6E2D11"
FOLDER_NAME = f"firefox_{TRACKING_ID}"
TEAM_ID = "43AQ936H96"
BUNDLE_ID = "org.mozilla.firefox"
DOWNLOAD_URL = "https://download.example.com/firefox/Firefox-122.0.dmg"
STORAGE_URL = "https://storage.example.com/content/blob?sv=2024&sig=secret"

SPCTL_ACCEPTED = (
    "accepted\n"
    "source=Notarized Developer ID\n"
    f"origin=Developer ID Application: Mozilla Corporation ({TEAM_ID})"
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ============================================================================
# Command runner
# ============================================================================


class FakeRunner(CommandRunner):
    """Records every command and answers through ``handler``

    ``handler`` receives the argv as strings and returns a CommandResult,
    or None for the default answer: accepted signature for spctl,
    success with empty output for everything else.
    """

    def __init__(self, handler: Optional[Callable[[List[str]], Optional[CommandResult]]] = None):
        self.handler = handler
        self.calls: List[List[str]] = []

    async def run(self, *args, cwd=None, env=None) -> CommandResult:
        argv = [str(a) for a in args]
        self.calls.append(argv)
        if self.handler is not None:
            result = self.handler(argv)
            if result is not None:
                return result
        if argv[0].endswith("spctl"):
            return CommandResult(argv, 0, "", SPCTL_ACCEPTED)
        return CommandResult(argv, 0, "", "")

    def commands(self, name: str) -> List[List[str]]:
        return [argv for argv in self.calls if Path(argv[0]).name == name]


def ok(argv: List[str], stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(argv, 0, stdout, stderr)


def failed(argv: List[str], stderr: str = "boom") -> CommandResult:
    return CommandResult(argv, 1, "", stderr)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


# ============================================================================
# Catalog, auth and notifications
# ============================================================================


class FakeCatalog(CatalogClient):
    """In-memory app catalog

    ``fail_on`` maps a method name to the error it raises; ``hide_new``
    keeps apps created by this instance out of search results, as if the
    catalog were slow to index them.
    """

    def __init__(self, records: Optional[List[RemoteAppRecord]] = None):
        self.records: List[RemoteAppRecord] = list(records or [])
        self.fail_on: Dict[str, PipelineError] = {}
        self.hide_new = False
        self.created: List[str] = []
        self.calls: List[tuple] = []
        self.commit_info: Optional[EncryptionInfo] = None

    def _call(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        error = self.fail_on.get(name)
        if error is not None:
            raise error

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def record(self, app_id: str) -> Optional[RemoteAppRecord]:
        return next((r for r in self.records if r.id == app_id), None)

    def _update(self, app_id: str, **changes) -> None:
        self.records = [replace(r, **changes) if r.id == app_id else r for r in self.records]

    @property
    def versions(self) -> List[str]:
        return [r.primary_bundle_version for r in self.records]

    async def find_by_tracking_id(self, tracking_id: str) -> List[RemoteAppRecord]:
        self._call("find_by_tracking_id", tracking_id)
        return [
            r for r in self.records
            if r.tracking_id == tracking_id and not (self.hide_new and r.id in self.created)
        ]

    async def create_app(self, result: ProcessingResult) -> str:
        self._call("create_app", result.version_actual)
        app_id = f"app-{len(self.created) + 1}"
        self.created.append(app_id)
        self.records.append(RemoteAppRecord(
            id=app_id,
            display_name=result.remote_display_name,
            primary_bundle_version=result.version_actual,
            is_assigned=False,
            primary_bundle_id=result.bundle_id_actual,
            created_at=datetime.now(timezone.utc),
            notes=result.remote_notes,
        ))
        return app_id

    async def create_content_version(self, app_id: str, deployment_type: DeploymentType) -> str:
        self._call("create_content_version", app_id)
        return "1"

    async def create_content_file(self, app_id: str, deployment_type: DeploymentType,
                                  version_id: str, name: str, size: int,
                                  size_encrypted: int) -> ContentFile:
        self._call("create_content_file", app_id, name, size, size_encrypted)
        return ContentFile(id="file-1")

    async def get_content_file(self, app_id: str, deployment_type: DeploymentType,
                               version_id: str, file_id: str) -> ContentFile:
        self._call("get_content_file", app_id)
        return ContentFile(id=file_id, upload_state=UPLOAD_STATE_SUCCESS, azure_storage_uri=STORAGE_URL)

    async def commit_file(self, app_id: str, deployment_type: DeploymentType,
                          version_id: str, file_id: str,
                          encryption_info: EncryptionInfo) -> None:
        self._call("commit_file", app_id)
        self.commit_info = encryption_info

    async def commit_app(self, app_id: str, deployment_type: DeploymentType, version_id: str) -> None:
        self._call("commit_app", app_id, version_id)

    async def assign_groups(self, app_id: str, deployment_type: DeploymentType,
                            assignments: List[GroupAssignment], install_as_managed: bool) -> None:
        self._call("assign_groups", app_id)
        self._update(app_id, is_assigned=True)

    async def assign_categories(self, app_id: str, categories: List[AppCategory]) -> None:
        self._call("assign_categories", app_id)

    async def remove_assignments(self, app_id: str) -> None:
        self._call("remove_assignments", app_id)
        self._update(app_id, is_assigned=False)

    async def delete_app(self, app_id: str) -> None:
        self._call("delete_app", app_id)
        self.records = [r for r in self.records if r.id != app_id]


def remote_record(app_id: str, version: str, assigned: bool = False, days_ago: int = 30,
                  tracking_id: str = TRACKING_ID) -> RemoteAppRecord:
    return RemoteAppRecord(
        id=app_id,
        display_name=f"Firefox {version}",
        primary_bundle_version=version,
        is_assigned=assigned,
        primary_bundle_id=BUNDLE_ID,
        created_at=datetime.now(timezone.utc) - timedelta(days=days_ago),
        notes=f"Intuneomator ID: {tracking_id}",
    )


class FakeAuth(AuthProvider):
    def __init__(self, error: Optional[AuthenticationError] = None):
        self.error = error
        self.calls = 0

    async def get_token(self) -> BearerToken:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return BearerToken(value="test-token", expires_at=float("inf"))


class FakeNotifier(NotificationSink):
    def __init__(self):
        self.sent: List[LabelRunResult] = []
        self.batches: List[BatchResult] = []

    async def send(self, result: LabelRunResult) -> None:
        self.sent.append(result)

    async def send_batch(self, batch: BatchResult) -> None:
        self.batches.append(batch)


class RecordingSleep:
    """Async sleep that returns at once and remembers the delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


# ============================================================================
# Managed title folders
# ============================================================================


def write_plist(path: Path, data: dict) -> None:
    with open(path, "wb") as f:
        plistlib.dump(data, f)


def write_app(app: Path, bundle_id: str = BUNDLE_ID, version: str = "122.0",
              executable: str = "firefox") -> Path:
    contents = app / "Contents"
    (contents / "MacOS").mkdir(parents=True, exist_ok=True)
    (contents / "MacOS" / executable).write_bytes(b"\xcf\xfa\xed\xfe")
    write_plist(contents / "Info.plist", {
        "CFBundleIdentifier": bundle_id,
        "CFBundleShortVersionString": version,
        "CFBundleName": app.stem,
        "CFBundleExecutable": executable,
    })
    return app


def write_title(root: Path, label: str = "firefox", tracking_id: str = TRACKING_ID,
                metadata: Optional[dict] = None, plist: Optional[dict] = None,
                secondary: Optional[dict] = None, assignments: Optional[list] = None,
                script: str = 'firefox)\n    name="Firefox"\n    type="dmg"\n    ;;\n') -> Path:
    """Create ``ManagedTitles/{label}_{trackingID}`` with every file a run needs"""
    folder = root / "ManagedTitles" / f"{label}_{tracking_id}"
    folder.mkdir(parents=True, exist_ok=True)

    meta = {
        "CFBundleIdentifier": BUNDLE_ID,
        "deploymentTypeTag": 0,
        "deployAsArchTag": 2,
        "description": "Fast, private web browser",
        "publisher": "Mozilla",
        "minimumOS": "v12_0",
        "ignoreVersionDetection": False,
    }
    meta.update(metadata or {})
    (folder / "metadata.json").write_text(json.dumps(meta), encoding="utf-8")

    if assignments is None:
        assignments = [{
            "assignmentType": "Required",
            "mode": "include",
            "displayName": "Mac Devices",
            "id": "group-1",
            "isVirtual": 0,
        }]
    (folder / "assignments.json").write_text(json.dumps(assignments), encoding="utf-8")

    if script is not None:
        (folder / f"{label}.sh").write_text(script, encoding="utf-8")

    manifest = {
        "name": "Firefox",
        "label": label,
        "downloadURL": DOWNLOAD_URL,
        "expectedTeamID": TEAM_ID,
        "type": "dmg",
        "appNewVersion": "122.0",
    }
    manifest.update(plist or {})
    write_plist(folder / f"{label}.plist", manifest)

    if secondary is not None:
        write_plist(folder / f"{label}_i386.plist", {**manifest, **secondary})
    return folder


@pytest.fixture
def resolver(tmp_path: Path) -> PathResolver:
    resolver = PathResolver(tmp_path / "root")
    resolver.ensure_directories()
    return resolver


@pytest.fixture
def title_folder(resolver: PathResolver) -> Path:
    return write_title(resolver.root)


# ============================================================================
# Payload handling
# ============================================================================


class FakeExtractor(ArchiveExtractor):
    """Puts an app bundle next to the download instead of unpacking it

    The bundle is named after the download so the architecture of the
    download is visible in the payload path. ``overrides`` maps a
    substring of the download name to a (bundle id, version) pair.
    """

    def __init__(self, bundle_id: str = BUNDLE_ID, version: str = "122.0",
                 overrides: Optional[Dict[str, tuple]] = None):
        super().__init__(FakeRunner())
        self.bundle_id = bundle_id
        self.version = version
        self.overrides = overrides or {}
        self.located: List[Path] = []

    async def locate_payload(self, download: Path, archive_type: ArchiveType) -> Path:
        self.located.append(download)
        bundle_id, version = self.bundle_id, self.version
        for marker, values in self.overrides.items():
            if marker in download.name:
                bundle_id, version = values
        if archive_type.payload_extension == "pkg":
            return download
        return write_app(download.parent / f"{download.stem}.app", bundle_id, version)


class FakeBuilder(PackageBuilder):
    """Writes a placeholder artifact at the destination"""

    def __init__(self):
        super().__init__(FakeRunner())
        self.built: List[tuple] = []

    def _write(self, kind: str, destination: Path) -> Path:
        self.built.append((kind, destination))
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(f"{kind} artifact {destination.name}".encode("utf-8") * 64)
        return destination

    async def build_pkg(self, app: Path, work_dir: Path, destination: Path) -> Path:
        return self._write("pkg", destination)

    async def build_dmg(self, app: Path, work_dir: Path, destination: Path) -> Path:
        return self._write("dmg", destination)

    async def build_universal_pkg(self, arm_app: Path, x86_app: Path,
                                  work_dir: Path, destination: Path) -> Path:
        return self._write("universal", destination)


# ============================================================================
# HTTP
# ============================================================================


class FakeWeb:
    """MockTransport handler serving downloads and accepting blob blocks"""

    def __init__(self, payload: bytes = b"vendor disk image" * 128):
        self.payload = payload
        self.downloads: List[str] = []
        self.blocks: Dict[str, bytes] = {}
        self.block_lists: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.downloads.append(str(request.url))
            return httpx.Response(200, content=self.payload)

        if request.method == "PUT":
            params = request.url.params
            if params.get("comp") == "block":
                self.blocks[params["blockid"]] = request.content
                return httpx.Response(201)
            if params.get("comp") == "blocklist":
                self.block_lists.append(request.content.decode("utf-8"))
                return httpx.Response(201)

        return httpx.Response(404)


@pytest.fixture
def web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
async def http_client(web: FakeWeb, anyio_backend):
    async with httpx.AsyncClient(transport=httpx.MockTransport(web)) as client:
        yield client


# ============================================================================
# Pipeline
# ============================================================================


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        versions_to_keep=2,
        upload=UploadSettings(chunk_size=1024, presence_poll_attempts=3),
    )
