"""Label processing pipeline

One run takes a ManagedTitles folder from label resolution to a
reconciled catalog. Stages run strictly in sequence; each either lets the
run continue or ends it with a ``StageOutcome``. Errors raised inside a
stage are turned into a failed outcome here, so ``process`` and
``run_batch`` never raise for a single bad label.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ..api.exceptions import (
    ExtractionError,
    PipelineError,
    UnsupportedArchiveError,
    UploadTimeoutError,
    VerificationError,
)
from ..constants import DEFAULT_NOTIFY_TIMEOUT, Architecture, DeploymentType, ErrorCode, ErrorKind
from ..core.archive_extractor import ArchiveExtractor
from ..core.cache_store import CacheStore
from ..core.catalog_reconciler import CatalogReconciler
from ..core.folder_scanner import FolderScanner
from ..core.identity_inspector import VERSION_UNKNOWN, IdentityInspector
from ..core.metadata_loader import MetadataLoader
from ..core.package_builder import PackageBuilder
from ..core.path_resolver import PathResolver
from ..graph.auth import AuthProvider
from ..graph.catalog import CatalogClient
from ..models.catalog import RemoteAppRecord
from ..models.config import AppConfig
from ..models.label import LabelDefinition
from ..models.processing import ProcessingResult
from ..models.result import BatchResult, LabelRunResult, OperationStatus
from ..utils.async_utils import Sleeper, timeout_async
from ..utils.file_utils import safe_remove
from .activity_log import ActivityLog
from .download_service import Downloader
from .label_script import LabelScriptRunner
from .notification_service import NotificationSink, NullNotifier
from .upload_service import AppUploader, ProgressCallback

logger = logging.getLogger(__name__)


@dataclass
class StageOutcome:
    """Terminal result of a label run, produced by the stage that ended it"""

    status: OperationStatus
    message: str
    kind: Optional[ErrorKind] = None
    code: Optional[str] = None

    @classmethod
    def done(cls, message: str) -> 'StageOutcome':
        return cls(OperationStatus.SUCCESS, message)

    @classmethod
    def skip(cls, message: str) -> 'StageOutcome':
        return cls(OperationStatus.SKIPPED, message)

    @classmethod
    def failure(cls, message: str, kind: ErrorKind, code: Optional[str] = None) -> 'StageOutcome':
        return cls(OperationStatus.FAILED, message, kind, code)

    @classmethod
    def from_error(cls, error: PipelineError) -> 'StageOutcome':
        return cls.failure(error.message, error.kind, error.error_code)


@dataclass
class RunState:
    """Everything one run has learned so far"""

    folder_name: str
    run: LabelRunResult
    result: Optional[ProcessingResult] = None
    tmp_dir: Optional[Path] = None
    records: Optional[List[RemoteAppRecord]] = None
    catalog_checked: bool = False
    from_cache: bool = False
    progress: Optional[ProgressCallback] = None


Stage = Callable[[RunState], Awaitable[Optional[StageOutcome]]]


class LabelLocks:
    """Per-folder locks so the same label is never processed twice at once"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, folder_name: str) -> asyncio.Lock:
        lock = self._locks.get(folder_name)
        if lock is None:
            lock = self._locks[folder_name] = asyncio.Lock()
        return lock

    def is_locked(self, folder_name: str) -> bool:
        lock = self._locks.get(folder_name)
        return lock is not None and lock.locked()


class LabelPipeline:
    """Runs managed title folders through resolve, build, upload and prune"""

    def __init__(self,
                 config: AppConfig,
                 path_resolver: PathResolver,
                 *,
                 auth: AuthProvider,
                 catalog: CatalogClient,
                 downloader: Downloader,
                 uploader: AppUploader,
                 label_script: Optional[LabelScriptRunner] = None,
                 notifier: Optional[NotificationSink] = None,
                 extractor: Optional[ArchiveExtractor] = None,
                 inspector: Optional[IdentityInspector] = None,
                 builder: Optional[PackageBuilder] = None,
                 locks: Optional[LabelLocks] = None,
                 sleep: Optional[Sleeper] = None):
        """
        Initialize pipeline

        Args:
            config: Application configuration
            path_resolver: Filesystem layout below the root
            auth: Token source, consulted once per run before catalog work
            catalog: Remote catalog client
            downloader: Artifact downloader
            uploader: Content uploader bound to ``catalog``
            label_script: Label resolution script runner; when omitted the
                label plists already on disk are used as they are
            notifier: Notification sink
            extractor: Archive extractor
            inspector: Signature and version inspector
            builder: Package builder
            locks: Shared per-label locks
            sleep: Sleep coroutine for the presence poll, injectable for tests
        """
        self.config = config
        self.path_resolver = path_resolver
        self.auth = auth
        self.catalog = catalog
        self.downloader = downloader
        self.uploader = uploader
        self.label_script = label_script
        self.notifier = notifier or NullNotifier()
        self.extractor = extractor or ArchiveExtractor()
        self.inspector = inspector or IdentityInspector()
        self.builder = builder or PackageBuilder()
        self.locks = locks or LabelLocks()
        self.sleep = sleep or asyncio.sleep

        self.loader = MetadataLoader(path_resolver)
        self.scanner = FolderScanner(path_resolver)
        self.cache = CacheStore(path_resolver)
        self.reconciler = CatalogReconciler(config.versions_to_keep)
        self.activity_log = ActivityLog(path_resolver)

    @property
    def stages(self) -> List[Tuple[str, Stage, ErrorKind]]:
        """Stage name, coroutine and the kind reported for filesystem errors"""
        return [
            ("resolve label", self.resolve_label, ErrorKind.CONFIGURATION),
            ("load manifest", self.load_manifest, ErrorKind.CONFIGURATION),
            ("authenticate", self.authenticate, ErrorKind.AUTHENTICATION),
            ("check catalog", self.check_catalog, ErrorKind.CATALOG),
            ("acquire artifact", self.acquire_artifact, ErrorKind.BUILD),
            ("recheck catalog", self.recheck_catalog, ErrorKind.CATALOG),
            ("upload", self.upload, ErrorKind.NETWORK),
            ("reconcile", self.reconcile, ErrorKind.CATALOG),
        ]

    async def process(self, folder_name: str,
                      progress: Optional[ProgressCallback] = None,
                      notify: Optional[bool] = None) -> LabelRunResult:
        """
        Run one managed title folder through every stage

        Args:
            folder_name: ``label_trackingID`` folder below ManagedTitles
            progress: Upload progress callback
            notify: Send a per-label notification; defaults to the
                configured notification style

        Returns:
            LabelRunResult, never raises for pipeline failures
        """
        if notify is None:
            notify = self.config.notifications.per_label

        run = LabelRunResult(status=OperationStatus.IN_PROGRESS, folder_name=folder_name)
        state = RunState(folder_name=folder_name, run=run, progress=progress)

        async with self.locks.get(folder_name):
            try:
                outcome = await self._run_stages(state)
            finally:
                if state.tmp_dir is not None:
                    safe_remove(state.tmp_dir)

        self._finish(state, outcome)

        if notify and (run.is_failed or run.uploaded):
            await timeout_async(self.notifier.send(run), DEFAULT_NOTIFY_TIMEOUT)
        return run

    async def _run_stages(self, state: RunState) -> StageOutcome:
        for name, stage, fallback_kind in self.stages:
            logger.debug("%s: %s", state.folder_name, name)
            try:
                outcome = await stage(state)
            except PipelineError as e:
                logger.error("%s: %s failed: %s", state.folder_name, name, e.message)
                return StageOutcome.from_error(e)
            except OSError as e:
                logger.error("%s: %s failed: %s", state.folder_name, name, e)
                return StageOutcome.failure(f"{name} failed: {e}", fallback_kind)

            if outcome is not None:
                return outcome

        return StageOutcome.done(f"Uploaded {state.run.display_name} {state.run.version}")

    @staticmethod
    def _finish(state: RunState, outcome: StageOutcome) -> None:
        run = state.run
        run.message = outcome.message
        if outcome.status == OperationStatus.FAILED:
            run.add_error(outcome.kind, outcome.message, outcome.code, folder=state.folder_name)
        if state.result is not None:
            run.metadata.update(state.result.to_dict())
        run.complete(outcome.status)

        if run.is_failed:
            logger.error("%s failed: %s", state.folder_name, outcome.message)
        else:
            logger.info("%s: %s", state.folder_name, outcome.message)

    # Stages

    async def resolve_label(self, state: RunState) -> Optional[StageOutcome]:
        label = LabelDefinition.from_folder_name(state.folder_name)
        state.tmp_dir = self.path_resolver.get_label_tmp_dir(label.label_name)

        if self.label_script is None:
            logger.debug("No label script configured, using existing plists for %s", state.folder_name)
            return None
        await self.label_script.run(state.folder_name)
        return None

    async def load_manifest(self, state: RunState) -> Optional[StageOutcome]:
        result = self.loader.load(state.folder_name)
        state.result = result
        state.run.display_name = result.display_name
        state.run.version = result.expected_version
        return None

    async def authenticate(self, state: RunState) -> Optional[StageOutcome]:
        await self.auth.get_token()
        return None

    async def check_catalog(self, state: RunState) -> Optional[StageOutcome]:
        """Skip the run when the announced version is already uploaded"""
        result = state.result
        if not result.expected_version:
            logger.info("%s announces no version, checking after the build", state.folder_name)
            return None

        state.records = await self.catalog.find_by_tracking_id(result.tracking_id)
        state.catalog_checked = True

        if self.reconciler.is_version_present(state.records, result.expected_version):
            return StageOutcome.skip(
                f"{result.display_name} {result.expected_version} is already in the catalog"
            )
        return None

    async def acquire_artifact(self, state: RunState) -> Optional[StageOutcome]:
        result = state.result

        cached = self.cache.lookup(result.label_name, result.display_name, result.expected_version,
                                   result.deployment_type, result.deployment_arch, result.is_dual_arch)
        if cached is not None:
            result.apply_cached(cached)
            state.from_cache = True
            return None

        safe_remove(state.tmp_dir)
        state.tmp_dir.mkdir(parents=True, exist_ok=True)

        if result.archive_type.payload_extension == "pkg":
            await self._acquire_installer(state)
        else:
            await self._acquire_app(state)

        state.run.version = result.version_actual
        return None

    async def _download(self, state: RunState, url: str) -> Path:
        result = state.result
        path = await self.downloader.download(url, state.tmp_dir, result.display_name,
                                              result.expected_version)
        await self.activity_log.record_download(result.label_name, path, url)
        return path

    def _settle_version(self, state: RunState, found: str) -> str:
        """Version found in the payload, falling back to the announced one"""
        result = state.result
        expected = result.expected_version

        if found == VERSION_UNKNOWN or not found:
            if not expected:
                raise ExtractionError(
                    f"Could not determine the version of {result.display_name}",
                )
            state.run.add_warning(f"Version not found in payload, using announced {expected}")
            return expected

        if expected and found != expected:
            logger.warning("%s: announced version %s, payload is %s",
                           state.folder_name, expected, found)
            state.run.add_warning(f"Announced version {expected} differs from payload {found}")
        return found

    def _destination(self, state: RunState, version: str) -> Path:
        result = state.result
        path = self.cache.artifact_path(result.label_name, result.display_name, version,
                                        result.deployment_type, result.deployment_arch,
                                        result.is_dual_arch)
        if path is None:
            raise ExtractionError(f"No artifact name for {result.display_name} {version}")
        return path

    async def _acquire_installer(self, state: RunState) -> None:
        """Vendor installer packages are verified and cached as shipped"""
        result = state.result
        if result.deployment_type == DeploymentType.DMG:
            raise UnsupportedArchiveError(f"{result.archive_type.value} for dmg deployment")

        download = await self._download(state, result.manifest.download_url)
        pkg = await self.extractor.locate_payload(download, result.archive_type)
        await self.inspector.verify_signature(pkg, result.expected_team_id)

        found = await self.inspector.extract_version(pkg, result.expected_bundle_id, work_dir=state.tmp_dir)
        version = self._settle_version(state, found)

        result.local_path = await self.builder.place_installer(pkg, self._destination(state, version))
        result.bundle_id_actual = result.expected_bundle_id
        result.version_actual = version

    async def _acquire_app(self, state: RunState) -> None:
        result = state.result
        primary = await self._download(state, result.manifest.download_url)
        secondary = None
        if result.needs_secondary_download:
            secondary = await self._download(state, result.manifest.download_url_secondary)

        app = await self.extractor.locate_payload(primary, result.archive_type)
        await self.inspector.verify_signature(app, result.expected_team_id)

        x86_app = None
        if secondary is not None:
            x86_app = await self.extractor.locate_payload(secondary, result.archive_type)
            await self.inspector.verify_signature(x86_app, result.expected_team_id)
            await self.inspector.validate_architectures([
                (app, Architecture.ARM64),
                (x86_app, Architecture.X86_64),
            ])
            self._compare_bundles(state, app, x86_app)

        bundle_id, _ = self.inspector.read_app_info(app)
        version = self._settle_version(state, await self.inspector.extract_version(app, result.expected_bundle_id))
        destination = self._destination(state, version)
        work_dir = state.tmp_dir / "build"

        if x86_app is not None:
            result.local_path = await self.builder.build_universal_pkg(app, x86_app, work_dir, destination)
        elif result.deployment_type == DeploymentType.DMG:
            result.local_path = await self.builder.build_dmg(app, work_dir, destination)
        else:
            result.local_path = await self.builder.build_pkg(app, work_dir, destination)

        result.bundle_id_actual = bundle_id
        result.version_actual = version

    def _compare_bundles(self, state: RunState, arm_app: Path, x86_app: Path) -> None:
        """Both halves of a universal package must describe the same release"""
        arm_id, arm_version = self.inspector.read_app_info(arm_app)
        x86_id, x86_version = self.inspector.read_app_info(x86_app)

        problems = []
        if arm_version != x86_version:
            problems.append(f"versions differ (arm64 {arm_version}, x86_64 {x86_version})")
        if arm_id != x86_id:
            problems.append(f"bundle ids differ (arm64 {arm_id}, x86_64 {x86_id})")
        if not problems:
            return

        message = f"{state.result.display_name}: " + "; ".join(problems)
        if self.config.strict_dual_arch:
            raise VerificationError(message, ErrorCode.ARCHITECTURE_MISMATCH)
        logger.warning(message)
        state.run.add_warning(message)

    async def recheck_catalog(self, state: RunState) -> Optional[StageOutcome]:
        """Second chance to skip, against the version actually built"""
        result = state.result
        actual = result.version_actual
        if state.catalog_checked and actual == result.expected_version:
            return None

        result.upload_filename = self.loader.final_filename(result, actual)
        if state.records is None:
            state.records = await self.catalog.find_by_tracking_id(result.tracking_id)
            state.catalog_checked = True

        if self.reconciler.is_version_present(state.records, actual):
            return StageOutcome.skip(f"{result.display_name} {actual} is already in the catalog")
        return None

    async def upload(self, state: RunState) -> Optional[StageOutcome]:
        result = state.result
        run = state.run

        app_id = await self.uploader.create_app(result)
        run.app_id = app_id
        try:
            await self.uploader.upload_content(app_id, result, state.tmp_dir / "upload", state.progress)
            await self.uploader.finalize(app_id, result)
        except Exception:
            await self._compensate(state)
            raise

        await self.activity_log.record_upload(result, app_id)

        records = await self._wait_until_visible(result)
        if records is None:
            await self._compensate(state)
            raise UploadTimeoutError(
                f"{result.display_name} {result.version_actual} never appeared in the catalog"
            )

        state.records = records
        run.uploaded = True
        logger.info("Uploaded %s %s as %s", result.display_name, result.version_actual, app_id)
        return None

    async def _wait_until_visible(self, result: ProcessingResult) -> Optional[List[RemoteAppRecord]]:
        upload = self.config.upload
        attempts = upload.presence_poll_attempts
        for attempt in range(1, attempts + 1):
            records = await self.catalog.find_by_tracking_id(result.tracking_id)
            if self.reconciler.is_version_present(records, result.version_actual):
                return records
            logger.debug("%s %s not listed yet (%d/%d)", result.display_name,
                         result.version_actual, attempt, attempts)
            if attempt < attempts:
                await self.sleep(upload.presence_poll_interval)
        return None

    async def _compensate(self, state: RunState) -> None:
        """Delete the app created by this run; a failure here is only logged"""
        app_id = state.run.app_id
        if not app_id:
            return
        try:
            await self.catalog.delete_app(app_id)
            logger.info("Deleted incomplete app %s", app_id)
            state.run.app_id = None
        except PipelineError as e:
            logger.error("Could not delete incomplete app %s: %s", app_id, e.message)
            state.run.add_warning(f"Incomplete app {app_id} could not be deleted")

    async def reconcile(self, state: RunState) -> Optional[StageOutcome]:
        """Retire old versions and record how many remain"""
        result = state.result
        run = state.run
        plan = self.reconciler.plan_prune(state.records, result.version_actual)

        for record in plan.unassign:
            await self.catalog.remove_assignments(record.id)
            run.unassigned_app_ids.append(record.id)
            logger.info("Removed assignments from %s %s", record.display_name, record.primary_bundle_version)

        for record in plan.delete:
            await self.catalog.delete_app(record.id)
            run.deleted_app_ids.append(record.id)
            logger.info("Deleted %s %s", record.display_name, record.primary_bundle_version)

        self._write_marker(state.folder_name, plan.remaining)
        return None

    def _write_marker(self, folder_name: str, remaining: int) -> None:
        marker = self.path_resolver.get_uploaded_marker(folder_name)
        if remaining > 0:
            marker.write_text(str(remaining), encoding="utf-8")
        else:
            safe_remove(marker)

    async def process_isolated(self, folder_name: str,
                               progress: Optional[ProgressCallback] = None) -> LabelRunResult:
        """Like ``process`` but an unexpected exception becomes a failed result"""
        try:
            return await self.process(folder_name, progress=progress)
        except Exception as e:
            logger.exception("%s: unexpected error", folder_name)
            run = LabelRunResult(status=OperationStatus.IN_PROGRESS, folder_name=folder_name)
            run.message = f"Unexpected error: {type(e).__name__}: {e}"
            run.add_error(ErrorKind.INTERNAL, run.message, folder=folder_name)
            run.complete(OperationStatus.FAILED)
            return run

    async def run_batch(self, folders: Optional[List[str]] = None,
                        progress: Optional[ProgressCallback] = None) -> BatchResult:
        """
        Process folders one after another

        Args:
            folders: Folders to process, every ready folder when omitted
            progress: Upload progress callback passed to each run

        Returns:
            BatchResult aggregating every label run
        """
        if folders is None:
            folders = self.scanner.scan()

        batch = BatchResult(status=OperationStatus.IN_PROGRESS)
        for folder_name in folders:
            batch.add_result(await self.process_isolated(folder_name, progress=progress))

        await self.close_batch(batch)
        return batch

    async def close_batch(self, batch: BatchResult) -> None:
        """Summarize a finished batch and send the batch notification"""
        batch.message = (f"{batch.successful_operations} of {batch.total_operations} "
                         f"labels processed successfully")
        batch.complete(batch.status if batch.results else OperationStatus.SUCCESS)

        if self.config.notifications.per_batch and batch.results:
            await timeout_async(self.notifier.send_batch(batch), DEFAULT_NOTIFY_TIMEOUT)
