"""Global constants for intune-packager"""

from enum import Enum
import re

APP_NAME = "intune-packager"
LOG_FORMAT = "%(message)s"

# Filesystem layout (relative to the configured root)
DEFAULT_ROOT_DIR = "~/.intune-packager"
DEFAULT_CONFIG_FILE = "config.yaml"
MANAGED_TITLES_DIR = "ManagedTitles"
CACHE_DIR = "Cache"
LOGS_DIR = "Logs"
TMP_DIR_NAME = "tmp"
QUEUE_DIR = "Queue"
TRIGGER_SUFFIX = ".trigger"

METADATA_FILE = "metadata.json"
ASSIGNMENTS_FILE = "assignments.json"
PREINSTALL_SCRIPT = "preinstall.sh"
POSTINSTALL_SCRIPT = "postinstall.sh"
UPLOADED_MARKER_FILE = ".uploaded"
SECONDARY_PLIST_SUFFIX = "_i386"

DOWNLOAD_LOG_FILE = "downloads.tsv"
UPLOAD_LOG_FILE = "uploads.tsv"

# Defaults
DEFAULT_VERSIONS_TO_KEEP = 2
DEFAULT_CHUNK_SIZE = 6 * 1024 * 1024  # 6 MiB
DEFAULT_BLOCK_ATTEMPTS = 3
DEFAULT_BLOCK_BACKOFF = 0.5  # seconds, multiplied by the attempt number
DEFAULT_POLL_ATTEMPTS = 20
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_COMMIT_DELAY = 10.0
DEFAULT_AZURE_URI_ATTEMPTS = 10
DEFAULT_AZURE_URI_INTERVAL = 5.0
DEFAULT_PRESENCE_POLL_ATTEMPTS = 12
DEFAULT_PRESENCE_POLL_INTERVAL = 3.0
DEFAULT_DOWNLOAD_RETRIES = 3
DEFAULT_HTTP_TIMEOUT = 300.0
DEFAULT_TOKEN_SKEW = 60.0
DEFAULT_NOTIFY_TIMEOUT = 30.0
DEFAULT_TRIGGER_POLL_INTERVAL = 5.0
DEFAULT_TRIGGER_IDLE_POLLS = 5

LABEL_SCRIPT_SUCCESS_OUTPUT = "Plist created"
ARCH_COMMAND_MARKERS = ("$(arch)", "$(/usr/bin/arch)")

# Microsoft Graph
GRAPH_BASE_URL = "https://graph.microsoft.com/beta"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
MOBILE_APPS_PATH = "/deviceAppManagement/mobileApps"
TRACKING_ID_PREFIX = "Intuneomator ID: "

UPLOAD_STATE_SUCCESS = "commitFileSuccess"
UPLOAD_STATE_FAILED = "commitFileFailed"
UPLOAD_STATE_AZURE_URI_SUCCESS = "azureStorageUriRequestSuccess"

BLOCK_ID_FORMAT = "block-{:04d}"

CONTENT_DISPOSITION_PATTERN = re.compile(r"filename\*?=(?:UTF-8'')?\"?([^\"\s;]+)\"?")
FOLDER_NAME_PATTERN = re.compile(r"^(?P<label>[^_]+)_(?P<tracking_id>[^_]+)$")

# Environment variables
ENV_CONFIG_PATH = "INTUNE_PACKAGER_CONFIG"
ENV_ROOT_DIR = "INTUNE_PACKAGER_ROOT"
ENV_LOG_LEVEL = "INTUNE_PACKAGER_LOG_LEVEL"

# Display
EMOJI_SUCCESS = "✓"
EMOJI_ERROR = "✗"
EMOJI_WARNING = "⚠"
EMOJI_PACKAGE = "📦"
EMOJI_CLOUD = "☁️"


class DeploymentType(Enum):
    """How the artifact is deployed in Intune"""
    DMG = 0
    PKG = 1
    LOB = 2

    @property
    def file_suffix(self) -> str:
        return "dmg" if self is DeploymentType.DMG else "pkg"


class DeploymentArch(Enum):
    """Target architecture of the deployed artifact"""
    ARM64 = 0
    X86_64 = 1
    UNIVERSAL = 2


class Architecture(Enum):
    """Architecture detected inside a compiled binary"""
    ARM64 = "arm64"
    X86_64 = "x86_64"
    UNIVERSAL = "universal"
    UNKNOWN = "unknown"


class ArchiveType(Enum):
    """Shape of a downloaded artifact, fixes the extraction strategy"""
    PKG = "pkg"
    PKG_IN_ZIP = "pkginzip"
    PKG_IN_DMG = "pkgindmg"
    PKG_IN_DMG_IN_ZIP = "pkgindmginzip"
    ZIP = "zip"
    TBZ = "tbz"
    DMG = "dmg"
    APP_IN_DMG_IN_ZIP = "appindmginzip"

    @classmethod
    def parse(cls, value: str) -> "ArchiveType":
        return cls(value.strip().lower())

    @property
    def payload_extension(self) -> str:
        """Extension of the payload this archive carries"""
        if self.value.startswith("pkg"):
            return "pkg"
        return "app"


class ErrorKind(Enum):
    """Closed set of failure categories a label run can end with"""
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    VERIFICATION = "verification"
    EXTRACTION = "extraction"
    BUILD = "build"
    NETWORK = "network"
    REMOTE_PROCESSING = "remote_processing"
    TIMEOUT = "timeout"
    CATALOG = "catalog"
    UNSUPPORTED = "unsupported"
    INTERNAL = "internal"


# Error codes
class ErrorCode:
    CONFIGURATION_ERROR = "IP001"
    AUTHENTICATION_FAILED = "IP002"
    SIGNATURE_INVALID = "IP003"
    ARCHITECTURE_MISMATCH = "IP004"
    PAYLOAD_NOT_FOUND = "IP005"
    EXTRACTION_FAILED = "IP006"
    BUILD_FAILED = "IP007"
    DOWNLOAD_FAILED = "IP008"
    BLOCK_UPLOAD_FAILED = "IP009"
    BLOCK_LIST_REJECTED = "IP010"
    COMMIT_FAILED = "IP011"
    UPLOAD_TIMEOUT = "IP012"
    CATALOG_REQUEST_FAILED = "IP013"
    UNSUPPORTED_ARCHIVE = "IP014"
    NETWORK_ERROR = "IP015"

# CLI exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_AUTH_FAILURE = 2
EXIT_INTERRUPTED = 130
