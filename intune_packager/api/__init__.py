"""Public exception API"""

from .exceptions import (
    PipelineError,
    ConfigurationError,
    AuthenticationError,
    VerificationError,
    ExtractionError,
    PayloadNotFoundError,
    UnsupportedArchiveError,
    BuildError,
    NetworkError,
    CatalogError,
    RemoteProcessingError,
    UploadTimeoutError,
)

__all__ = [
    "PipelineError",
    "ConfigurationError",
    "AuthenticationError",
    "VerificationError",
    "ExtractionError",
    "PayloadNotFoundError",
    "UnsupportedArchiveError",
    "BuildError",
    "NetworkError",
    "CatalogError",
    "RemoteProcessingError",
    "UploadTimeoutError",
]
