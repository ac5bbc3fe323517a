"""Remote catalog interface"""

from abc import ABC, abstractmethod
from typing import List

from ..constants import DeploymentType
from ..models.catalog import RemoteAppRecord
from ..models.label import AppCategory, GroupAssignment
from ..models.processing import ProcessingResult
from ..models.upload import ContentFile, EncryptionInfo


class CatalogClient(ABC):
    """Operations the pipeline performs against the app catalog

    Every method raises ``CatalogError`` (or ``AuthenticationError``) on
    failure; none of them retry.
    """

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Release network resources"""
        pass

    @abstractmethod
    async def find_by_tracking_id(self, tracking_id: str) -> List[RemoteAppRecord]:
        """
        All app records whose notes carry ``tracking_id``

        Returns:
            Records, oldest first
        """
        pass

    @abstractmethod
    async def create_app(self, result: ProcessingResult) -> str:
        """
        Create the app record for a processed label

        Returns:
            New app id
        """
        pass

    @abstractmethod
    async def create_content_version(self, app_id: str, deployment_type: DeploymentType) -> str:
        pass

    @abstractmethod
    async def create_content_file(self, app_id: str, deployment_type: DeploymentType,
                                  version_id: str, name: str, size: int,
                                  size_encrypted: int) -> ContentFile:
        pass

    @abstractmethod
    async def get_content_file(self, app_id: str, deployment_type: DeploymentType,
                               version_id: str, file_id: str) -> ContentFile:
        pass

    @abstractmethod
    async def commit_file(self, app_id: str, deployment_type: DeploymentType,
                          version_id: str, file_id: str,
                          encryption_info: EncryptionInfo) -> None:
        pass

    @abstractmethod
    async def commit_app(self, app_id: str, deployment_type: DeploymentType, version_id: str) -> None:
        """Point the app at its committed content version"""
        pass

    @abstractmethod
    async def assign_groups(self, app_id: str, deployment_type: DeploymentType,
                            assignments: List[GroupAssignment], install_as_managed: bool) -> None:
        pass

    @abstractmethod
    async def assign_categories(self, app_id: str, categories: List[AppCategory]) -> None:
        pass

    @abstractmethod
    async def remove_assignments(self, app_id: str) -> None:
        pass

    @abstractmethod
    async def delete_app(self, app_id: str) -> None:
        pass
