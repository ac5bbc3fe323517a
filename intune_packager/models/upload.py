"""Upload session models"""

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any

from ..api.exceptions import CatalogError
from ..constants import BLOCK_ID_FORMAT


class UploadPhase(Enum):
    """States one file transfer moves through"""
    ENCRYPTING = "encrypting"
    UPLOADING = "uploading"
    COMMITTING = "committing"
    POLLING = "polling"
    COMMITTED = "committed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class EncryptionInfo:
    """Secrets and digests the service needs to decrypt the uploaded file

    Never logged. ``__repr__`` is masked so it cannot leak through
    tracebacks or debug output.
    """

    encryption_key: bytes
    mac_key: bytes
    initialization_vector: bytes
    mac: bytes
    file_digest: bytes
    profile_identifier: str = "ProfileVersion1"
    file_digest_algorithm: str = "SHA256"

    def to_graph(self) -> Dict[str, Any]:
        def b64(value: bytes) -> str:
            return base64.b64encode(value).decode("ascii")

        return {
            "@odata.type": "#microsoft.graph.fileEncryptionInfo",
            "encryptionKey": b64(self.encryption_key),
            "macKey": b64(self.mac_key),
            "initializationVector": b64(self.initialization_vector),
            "mac": b64(self.mac),
            "profileIdentifier": self.profile_identifier,
            "fileDigest": b64(self.file_digest),
            "fileDigestAlgorithm": self.file_digest_algorithm,
        }

    def __repr__(self) -> str:
        return "EncryptionInfo(<redacted>)"


@dataclass
class ContentFile:
    """Content file entry of an app content version"""

    id: str
    upload_state: str = ""
    azure_storage_uri: Optional[str] = None
    error_code: str = ""
    error_description: str = ""

    @classmethod
    def from_graph(cls, data: Dict[str, Any]) -> 'ContentFile':
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise CatalogError(f"Content file response has no id: {data!r}")
        return cls(
            id=data["id"],
            upload_state=data.get("uploadState") or "",
            azure_storage_uri=data.get("azureStorageUri") or None,
            error_code=data.get("errorCode") or "",
            error_description=data.get("errorDescription") or "",
        )


def block_id(index: int) -> str:
    """Deterministic base64 block id for the block at ``index``"""
    return base64.b64encode(BLOCK_ID_FORMAT.format(index).encode("ascii")).decode("ascii")


@dataclass
class ChunkedUploadSession:
    """Ephemeral state of one block blob transfer"""

    upload_url: str = ""
    total_bytes: int = 0
    uploaded_bytes: int = 0
    block_ids: List[str] = field(default_factory=list)
    phase: UploadPhase = UploadPhase.UPLOADING

    def next_block_id(self) -> str:
        return block_id(len(self.block_ids))

    def record_block(self, block: str, size: int) -> None:
        self.block_ids.append(block)
        self.uploaded_bytes += size

    def block_url(self, block: str) -> str:
        return f"{self.upload_url}&comp=block&blockid={block}"

    @property
    def block_list_url(self) -> str:
        return f"{self.upload_url}&comp=blocklist"

    def block_list_xml(self) -> str:
        latest = "".join(f"<Latest>{b}</Latest>" for b in self.block_ids)
        return f'<?xml version="1.0" encoding="utf-8"?><BlockList>{latest}</BlockList>'
