"""Data models for intune-packager"""

from .label import (
    LabelDefinition,
    LabelMetadata,
    ResolvedManifest,
    GroupAssignment,
    AssignmentFilter,
    AppCategory,
    sort_assignments,
)
from .processing import ProcessingResult
from .catalog import RemoteAppRecord
from .upload import (
    EncryptionInfo,
    ContentFile,
    ChunkedUploadSession,
    UploadPhase,
    block_id,
)
from .result import (
    OperationStatus,
    ErrorDetail,
    Result,
    LabelRunResult,
    BatchResult,
)
from .config import (
    AppConfig,
    GraphSettings,
    UploadSettings,
    DownloadSettings,
    NotificationSettings,
)

__all__ = [
    "LabelDefinition",
    "LabelMetadata",
    "ResolvedManifest",
    "GroupAssignment",
    "AssignmentFilter",
    "AppCategory",
    "sort_assignments",
    "ProcessingResult",
    "RemoteAppRecord",
    "EncryptionInfo",
    "ContentFile",
    "ChunkedUploadSession",
    "UploadPhase",
    "block_id",
    "OperationStatus",
    "ErrorDetail",
    "Result",
    "LabelRunResult",
    "BatchResult",
    "AppConfig",
    "GraphSettings",
    "UploadSettings",
    "DownloadSettings",
    "NotificationSettings",
]
