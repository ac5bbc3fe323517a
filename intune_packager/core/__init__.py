"""Pipeline components for intune-packager"""

from .path_resolver import PathResolver
from .archive_extractor import ArchiveExtractor
from .identity_inspector import IdentityInspector, SignatureInfo, VERSION_UNKNOWN
from .package_builder import PackageBuilder, artifact_filename
from .cache_store import CacheStore
from .catalog_reconciler import CatalogReconciler, PrunePlan, sort_records
from .metadata_loader import MetadataLoader
from .folder_scanner import FolderScanner, FolderCheck

__all__ = [
    "PathResolver",
    "ArchiveExtractor",
    "IdentityInspector",
    "SignatureInfo",
    "VERSION_UNKNOWN",
    "PackageBuilder",
    "artifact_filename",
    "CacheStore",
    "CatalogReconciler",
    "PrunePlan",
    "sort_records",
    "MetadataLoader",
    "FolderScanner",
    "FolderCheck",
]
