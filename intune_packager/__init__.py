"""intune-packager - Package third-party macOS software and publish it to Intune.

Resolves software labels to vendor downloads, verifies and repackages
them, uploads them to Microsoft Graph with encrypted chunked transfer and
keeps a bounded number of versions per title in the catalog.
"""

from .__version__ import __version__, __version_info__, __author__, __license__

# Pipeline
from .services.pipeline import LabelPipeline, LabelLocks, StageOutcome
from .services.config_service import ConfigService

# Data models
from .models.config import AppConfig
from .models.processing import ProcessingResult
from .models.result import LabelRunResult, BatchResult, OperationStatus
from .models.label import LabelDefinition, ResolvedManifest
from .models.catalog import RemoteAppRecord

# Exceptions
from .api.exceptions import (
    PipelineError,
    ConfigurationError,
    AuthenticationError,
    VerificationError,
    ExtractionError,
    BuildError,
    NetworkError,
    CatalogError,
    RemoteProcessingError,
    UploadTimeoutError,
)

__all__ = [
    # Version information
    "__version__",
    "__version_info__",
    "__author__",
    "__license__",

    # Pipeline
    "LabelPipeline",
    "LabelLocks",
    "StageOutcome",
    "ConfigService",

    # Data models
    "AppConfig",
    "ProcessingResult",
    "LabelRunResult",
    "BatchResult",
    "OperationStatus",
    "LabelDefinition",
    "ResolvedManifest",
    "RemoteAppRecord",

    # Exceptions
    "PipelineError",
    "ConfigurationError",
    "AuthenticationError",
    "VerificationError",
    "ExtractionError",
    "BuildError",
    "NetworkError",
    "CatalogError",
    "RemoteProcessingError",
    "UploadTimeoutError",
]
