"""Configuration data models"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional, Any

from ..api.exceptions import ConfigurationError
from ..constants import (
    DEFAULT_ROOT_DIR,
    DEFAULT_AUTHORITY,
    GRAPH_BASE_URL,
    DEFAULT_VERSIONS_TO_KEEP,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_BLOCK_ATTEMPTS,
    DEFAULT_BLOCK_BACKOFF,
    DEFAULT_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_COMMIT_DELAY,
    DEFAULT_AZURE_URI_ATTEMPTS,
    DEFAULT_AZURE_URI_INTERVAL,
    DEFAULT_PRESENCE_POLL_ATTEMPTS,
    DEFAULT_PRESENCE_POLL_INTERVAL,
    DEFAULT_DOWNLOAD_RETRIES,
    DEFAULT_HTTP_TIMEOUT,
    ENV_ROOT_DIR,
)


def _known_fields(cls, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only keys that name a dataclass field"""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


def _require_bool(name: str, value: Any) -> bool:
    # YAML reads unquoted true/false as bool; a quoted "false" is a typo, not False
    if not isinstance(value, bool):
        raise ConfigurationError(f"{name} must be true or false, got {value!r}")
    return value


@dataclass
class GraphSettings:
    """Tenant and app registration used for Graph calls"""

    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    authority: str = DEFAULT_AUTHORITY
    base_url: str = GRAPH_BASE_URL

    @property
    def is_configured(self) -> bool:
        return all([self.tenant_id, self.client_id, self.client_secret])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "client_secret": "***" if self.client_secret else "",
            "authority": self.authority,
            "base_url": self.base_url,
        }


@dataclass
class UploadSettings:
    """Chunked upload tuning"""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    block_attempts: int = DEFAULT_BLOCK_ATTEMPTS
    block_backoff: float = DEFAULT_BLOCK_BACKOFF
    poll_attempts: int = DEFAULT_POLL_ATTEMPTS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    commit_delay: float = DEFAULT_COMMIT_DELAY
    azure_uri_attempts: int = DEFAULT_AZURE_URI_ATTEMPTS
    azure_uri_interval: float = DEFAULT_AZURE_URI_INTERVAL
    presence_poll_attempts: int = DEFAULT_PRESENCE_POLL_ATTEMPTS
    presence_poll_interval: float = DEFAULT_PRESENCE_POLL_INTERVAL

    def __post_init__(self):
        for name in ("chunk_size", "block_attempts", "poll_attempts",
                     "azure_uri_attempts", "presence_poll_attempts"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"upload.{name} must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class DownloadSettings:
    """Download retry and timeout settings"""

    max_retries: int = DEFAULT_DOWNLOAD_RETRIES
    timeout: float = DEFAULT_HTTP_TIMEOUT

    def __post_init__(self):
        if self.max_retries < 1:
            raise ConfigurationError("download.max_retries must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {"max_retries": self.max_retries, "timeout": self.timeout}


@dataclass
class NotificationSettings:
    """Teams webhook settings"""

    enabled: bool = False
    webhook_url: str = ""
    style: int = 0  # 0: one message per label, 1: one message per batch

    def __post_init__(self):
        _require_bool("notifications.enabled", self.enabled)
        if self.style not in (0, 1):
            raise ConfigurationError("notifications.style must be 0 or 1")

    @property
    def per_label(self) -> bool:
        return self.enabled and bool(self.webhook_url) and self.style == 0

    @property
    def per_batch(self) -> bool:
        return self.enabled and bool(self.webhook_url) and self.style == 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "webhook_url": "***" if self.webhook_url else "",
            "style": self.style,
        }


@dataclass
class AppConfig:
    """Top level configuration"""

    root_dir: str = DEFAULT_ROOT_DIR
    label_script: str = ""
    versions_to_keep: int = DEFAULT_VERSIONS_TO_KEEP
    strict_dual_arch: bool = False
    graph: GraphSettings = field(default_factory=GraphSettings)
    upload: UploadSettings = field(default_factory=UploadSettings)
    download: DownloadSettings = field(default_factory=DownloadSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    def __post_init__(self):
        if self.versions_to_keep < 1:
            raise ConfigurationError("versions_to_keep must be at least 1")

    @property
    def root_path(self) -> Path:
        """Root directory, environment override first"""
        return Path(os.environ.get(ENV_ROOT_DIR) or self.root_dir).expanduser()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AppConfig':
        """Create from a parsed YAML mapping"""
        data = data or {}
        try:
            return cls(
                root_dir=data.get("root_dir", DEFAULT_ROOT_DIR),
                label_script=data.get("label_script", ""),
                versions_to_keep=int(data.get("versions_to_keep", DEFAULT_VERSIONS_TO_KEEP)),
                strict_dual_arch=_require_bool("strict_dual_arch", data.get("strict_dual_arch", False)),
                graph=GraphSettings(**_known_fields(GraphSettings, data.get("graph"))),
                upload=UploadSettings(**_known_fields(UploadSettings, data.get("upload"))),
                download=DownloadSettings(**_known_fields(DownloadSettings, data.get("download"))),
                notifications=NotificationSettings(
                    **_known_fields(NotificationSettings, data.get("notifications"))
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with secrets masked"""
        return {
            "root_dir": self.root_dir,
            "label_script": self.label_script,
            "versions_to_keep": self.versions_to_keep,
            "strict_dual_arch": self.strict_dual_arch,
            "graph": self.graph.to_dict(),
            "upload": self.upload.to_dict(),
            "download": self.download.to_dict(),
            "notifications": self.notifications.to_dict(),
        }
