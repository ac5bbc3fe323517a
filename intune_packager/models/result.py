"""Operation result models"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from enum import Enum

from ..constants import ErrorKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationStatus(Enum):
    """Operation status"""
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    IN_PROGRESS = "in_progress"


@dataclass
class ErrorDetail:
    """Detailed error information"""

    kind: ErrorKind
    message: str
    code: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass
class Result:
    """Base result class"""

    status: OperationStatus
    message: str = ""
    errors: List[ErrorDetail] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        """Successful or intentionally skipped"""
        return self.status in (OperationStatus.SUCCESS, OperationStatus.SKIPPED)

    @property
    def is_failed(self) -> bool:
        """Check if operation failed"""
        return self.status == OperationStatus.FAILED

    @property
    def duration(self) -> Optional[float]:
        """Get operation duration in seconds"""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def add_error(self, kind: ErrorKind, message: str, code: Optional[str] = None, **context) -> None:
        """Add an error"""
        self.errors.append(ErrorDetail(kind=kind, message=message, code=code, context=context))

    def add_warning(self, message: str) -> None:
        """Add a warning"""
        self.warnings.append(message)

    def complete(self, status: Optional[OperationStatus] = None) -> None:
        """Mark operation as complete"""
        self.end_time = _utcnow()
        if status:
            self.status = status


@dataclass
class LabelRunResult(Result):
    """Outcome of one label folder run"""

    folder_name: str = ""
    display_name: str = ""
    version: str = ""
    app_id: Optional[str] = None
    uploaded: bool = False
    deleted_app_ids: List[str] = field(default_factory=list)
    unassigned_app_ids: List[str] = field(default_factory=list)

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.errors[-1].kind if self.errors else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "status": self.status.value,
            "message": self.message,
            "folder_name": self.folder_name,
            "display_name": self.display_name,
            "version": self.version,
            "app_id": self.app_id,
            "uploaded": self.uploaded,
            "deleted_app_ids": self.deleted_app_ids,
            "unassigned_app_ids": self.unassigned_app_ids,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": self.warnings,
            "duration": self.duration
        }


@dataclass
class BatchResult(Result):
    """Result of a run over several label folders"""

    total_operations: int = 0
    successful_operations: int = 0
    failed_operations: int = 0
    results: List[LabelRunResult] = field(default_factory=list)

    @property
    def uploaded(self) -> List[LabelRunResult]:
        return [r for r in self.results if r.uploaded]

    def add_result(self, result: LabelRunResult) -> None:
        """Add an operation result"""
        self.results.append(result)
        self.total_operations += 1

        if result.is_success:
            self.successful_operations += 1
        else:
            self.failed_operations += 1

        # Update overall status
        if self.failed_operations == 0:
            self.status = OperationStatus.SUCCESS
        elif self.successful_operations > 0:
            self.status = OperationStatus.PARTIAL
        else:
            self.status = OperationStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "status": self.status.value,
            "message": self.message,
            "total_operations": self.total_operations,
            "successful_operations": self.successful_operations,
            "failed_operations": self.failed_operations,
            "results": [r.to_dict() for r in self.results],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": self.warnings,
            "duration": self.duration
        }
