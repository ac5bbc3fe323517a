"""Exception definitions for intune-packager"""

from typing import Optional

from ..constants import ErrorCode, ErrorKind


class PipelineError(Exception):
    """Base exception for intune-packager

    Every error carries an ``ErrorKind`` so callers can branch on the
    category instead of inspecting message text.
    """

    kind: ErrorKind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, error_code: str = None, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        if kind is not None:
            self.kind = kind


class ConfigurationError(PipelineError):
    """Missing or malformed label/configuration data"""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR)


class AuthenticationError(PipelineError):
    """Bearer token could not be obtained"""

    kind = ErrorKind.AUTHENTICATION

    def __init__(self, message: str = "Failed to obtain authentication token"):
        super().__init__(message, ErrorCode.AUTHENTICATION_FAILED)


class VerificationError(PipelineError):
    """Signature, team identifier or architecture check failed"""

    kind = ErrorKind.VERIFICATION

    def __init__(self, message: str, error_code: str = ErrorCode.SIGNATURE_INVALID):
        super().__init__(message, error_code)


class ExtractionError(PipelineError):
    """Archive could not be unpacked or held no payload"""

    kind = ErrorKind.EXTRACTION

    def __init__(self, message: str, error_code: str = ErrorCode.EXTRACTION_FAILED):
        super().__init__(message, error_code)


class PayloadNotFoundError(ExtractionError):
    """No file with the expected extension after extraction"""

    def __init__(self, extension: str, location: str):
        super().__init__(
            f"No .{extension} file found in {location}",
            ErrorCode.PAYLOAD_NOT_FOUND
        )
        self.extension = extension
        self.location = location


class UnsupportedArchiveError(PipelineError):
    """Archive type not handled by the requested processing path"""

    kind = ErrorKind.UNSUPPORTED

    def __init__(self, archive_type: str):
        super().__init__(f"Unsupported file type: {archive_type}", ErrorCode.UNSUPPORTED_ARCHIVE)
        self.archive_type = archive_type


class BuildError(PipelineError):
    """Installer package or disk image creation failed"""

    kind = ErrorKind.BUILD

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.BUILD_FAILED)


class NetworkError(PipelineError):
    """HTTP transfer failed"""

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, status_code: Optional[int] = None,
                 error_code: str = ErrorCode.NETWORK_ERROR):
        super().__init__(message, error_code)
        self.status_code = status_code


class CatalogError(PipelineError):
    """Remote catalog request failed"""

    kind = ErrorKind.CATALOG

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, ErrorCode.CATALOG_REQUEST_FAILED)
        self.status_code = status_code


class RemoteProcessingError(PipelineError):
    """Remote side reported the file commit as failed"""

    kind = ErrorKind.REMOTE_PROCESSING

    def __init__(self, remote_code: str = "", remote_description: str = ""):
        message = f"File upload commit failed: {remote_code} {remote_description}".strip()
        super().__init__(message, ErrorCode.COMMIT_FAILED)
        self.remote_code = remote_code
        self.remote_description = remote_description


class UploadTimeoutError(PipelineError):
    """A bounded polling loop ran out of attempts"""

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.UPLOAD_TIMEOUT)
