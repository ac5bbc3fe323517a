"""Microsoft Graph implementation of the catalog client"""

import asyncio
import base64
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from ..api.exceptions import AuthenticationError, CatalogError
from ..constants import (
    DEFAULT_HTTP_TIMEOUT,
    GRAPH_BASE_URL,
    MOBILE_APPS_PATH,
    DeploymentType,
)
from ..core.catalog_reconciler import sort_records
from ..models.catalog import RemoteAppRecord
from ..models.label import ALL_DEVICES, ALL_USERS, AppCategory, GroupAssignment
from ..models.processing import ProcessingResult
from ..models.upload import ContentFile, EncryptionInfo
from ..utils.async_utils import Sleeper
from .auth import AuthProvider
from .catalog import CatalogClient

logger = logging.getLogger(__name__)

APP_TYPES = {
    DeploymentType.DMG: "macOSDmgApp",
    DeploymentType.PKG: "macOSPkgApp",
    DeploymentType.LOB: "macOSLobApp",
}

MINIMUM_OS_KEYS = ("v10_13", "v10_14", "v10_15", "v11_0", "v12_0", "v13_0", "v14_0", "v15_0")

CATEGORY_ATTEMPTS = 3
CATEGORY_RETRY_STATUS = {429, 500, 502, 503, 504}


def app_type_name(deployment_type: DeploymentType) -> str:
    return APP_TYPES[deployment_type]


def _script(content: str) -> Dict[str, Any]:
    return {
        "@odata.type": "#microsoft.graph.macOSAppScript",
        "scriptContent": base64.b64encode(content.encode("utf-8")).decode("ascii"),
    }


def build_app_payload(result: ProcessingResult) -> Dict[str, Any]:
    """
    Request body that creates the app record for ``result``

    Args:
        result: Processed label with actual version and local artifact

    Returns:
        JSON-serializable mapping
    """
    metadata = result.metadata
    app_type = app_type_name(result.deployment_type)
    bundle_id = result.bundle_id_actual or result.expected_bundle_id
    version = result.version_actual
    filename = result.local_path.name if result.local_path else result.upload_filename

    payload: Dict[str, Any] = {
        "@odata.type": f"#microsoft.graph.{app_type}",
        "displayName": result.remote_display_name,
        "description": metadata.description,
        "developer": metadata.developer,
        "publisher": metadata.publisher,
        "owner": metadata.owner,
        "notes": result.remote_notes,
        "fileName": filename,
        "privacyInformationUrl": metadata.privacy_url,
        "informationUrl": metadata.information_url,
        "primaryBundleId": bundle_id,
        "primaryBundleVersion": version,
        "ignoreVersionDetection": metadata.ignore_version_detection,
        "isFeatured": metadata.is_featured,
        "minimumSupportedOperatingSystem": {
            "@odata.type": "#microsoft.graph.macOSMinimumOperatingSystem",
            **{key: key in metadata.minimum_os for key in MINIMUM_OS_KEYS},
        },
    }

    if result.deployment_type == DeploymentType.LOB:
        payload.update({
            "bundleId": bundle_id,
            "buildNumber": version,
            "installAsManaged": metadata.is_managed,
            "childApps": [{
                "@odata.type": "#microsoft.graph.macOSLobChildApp",
                "bundleId": bundle_id,
                "buildNumber": version,
                "versionNumber": "0.0",
            }],
        })
    else:
        payload["includedApps"] = [{
            "@odata.type": "#microsoft.graph.macOSIncludedApp",
            "bundleId": bundle_id,
            "bundleVersion": version,
        }]

    if result.deployment_type == DeploymentType.PKG:
        if result.pre_install_script:
            payload["preInstallScript"] = _script(result.pre_install_script)
        if result.post_install_script:
            payload["postInstallScript"] = _script(result.post_install_script)

    icon = Path(result.manifest.icon_path) if result.manifest.icon_path else None
    if icon and icon.is_file():
        payload["largeIcon"] = {
            "@odata.type": "#microsoft.graph.mimeContent",
            "type": "image/png",
            "value": base64.b64encode(icon.read_bytes()).decode("ascii"),
        }

    return payload


def build_assignment(assignment: GroupAssignment, app_type: str,
                     install_as_managed: bool) -> Optional[Dict[str, Any]]:
    """One ``mobileAppAssignment``; None when the target cannot be resolved"""
    body: Dict[str, Any] = {
        "@odata.type": "#microsoft.graph.mobileAppAssignment",
        "intent": assignment.intent,
    }

    if app_type == "macOSLobApp":
        settings = {"@odata.type": "#microsoft.graph.macOsLobAppAssignmentSettings"}
        if install_as_managed:
            settings["uninstallOnDeviceRemoval"] = True
        body["settings"] = settings

    if assignment.is_virtual:
        if assignment.display_name == ALL_USERS:
            target = {"@odata.type": "#microsoft.graph.allLicensedUsersAssignmentTarget"}
        elif assignment.display_name == ALL_DEVICES:
            target = {"@odata.type": "#microsoft.graph.allDevicesAssignmentTarget"}
        else:
            logger.warning("Unknown virtual group %s, skipped", assignment.display_name)
            return None
    elif assignment.group_id:
        include = assignment.mode.lower() == "include"
        target = {
            "@odata.type": ("#microsoft.graph.groupAssignmentTarget" if include
                            else "#microsoft.graph.exclusionGroupAssignmentTarget"),
            "groupId": assignment.group_id,
        }
    else:
        logger.warning("Assignment %s has no group id, skipped", assignment.display_name)
        return None

    if app_type == "macOSLobApp" and assignment.filter:
        target["deviceAndAppManagementAssignmentFilterId"] = assignment.filter.filter_id
        target["deviceAndAppManagementAssignmentFilterType"] = assignment.filter.mode

    body["target"] = target
    return body


class GraphCatalogClient(CatalogClient):
    """Catalog client talking to ``deviceAppManagement/mobileApps``"""

    def __init__(self,
                 auth: AuthProvider,
                 base_url: str = GRAPH_BASE_URL,
                 http_client: Optional[httpx.AsyncClient] = None,
                 sleep: Optional[Sleeper] = None):
        """
        Initialize client

        Args:
            auth: Token source, asked before every request
            base_url: Graph endpoint including the API version
            http_client: Shared client; one is created and owned if omitted
            sleep: Sleep coroutine for retries, injectable for tests
        """
        self.auth = auth
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)
        self.sleep = sleep or asyncio.sleep

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    @property
    def apps_url(self) -> str:
        return f"{self.base_url}{MOBILE_APPS_PATH}"

    def _content_url(self, app_id: str, deployment_type: DeploymentType, *parts: str) -> str:
        url = f"{self.apps_url}/{app_id}/microsoft.graph.{app_type_name(deployment_type)}/contentVersions"
        return "/".join([url, *parts]) if parts else url

    async def _request(self, method: str, url: str, *,
                       expected: tuple = (200, 201, 204),
                       json: Any = None,
                       params: Optional[Dict[str, str]] = None,
                       headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        token = await self.auth.get_token()
        request_headers = {"Authorization": f"Bearer {token.value}"}
        if headers:
            request_headers.update(headers)

        try:
            response = await self.http_client.request(method, url, json=json, params=params,
                                                      headers=request_headers)
        except httpx.HTTPError as e:
            raise CatalogError(f"{method} {url} failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError(f"Graph rejected the token for {method} {url}")
        if response.status_code not in expected:
            raise CatalogError(
                f"{method} {url} returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise CatalogError(f"Invalid JSON from {response.request.url}") from e

    async def find_by_tracking_id(self, tracking_id: str) -> List[RemoteAppRecord]:
        app_filter = (
            "(isof('microsoft.graph.macOSDmgApp') or isof('microsoft.graph.macOSPkgApp') "
            f"or isof('microsoft.graph.macOSLobApp')) and endswith(notes,'{tracking_id}')"
        )
        records: List[RemoteAppRecord] = []
        url: Optional[str] = self.apps_url
        params: Optional[Dict[str, str]] = {"$filter": app_filter}

        while url:
            data = self._json(await self._request("GET", url, expected=(200,), params=params))
            for item in data.get("value", []):
                record = RemoteAppRecord.from_graph(item)
                if record.tracking_id == tracking_id:
                    records.append(record)
            url = data.get("@odata.nextLink")
            params = None

        logger.info("Found %d apps matching tracking ID %s", len(records), tracking_id)
        return sort_records(records)

    async def create_app(self, result: ProcessingResult) -> str:
        payload = build_app_payload(result)
        data = self._json(await self._request("POST", self.apps_url, expected=(200, 201), json=payload))
        app_id = data.get("id")
        if not app_id:
            raise CatalogError("App creation response has no id")
        logger.info("Created %s as app %s", payload["displayName"], app_id)
        return app_id

    async def create_content_version(self, app_id: str, deployment_type: DeploymentType) -> str:
        response = await self._request("POST", self._content_url(app_id, deployment_type),
                                       expected=(200, 201), json={})
        version_id = self._json(response).get("id")
        if not version_id:
            raise CatalogError("Content version response has no id")
        return version_id

    async def create_content_file(self, app_id: str, deployment_type: DeploymentType,
                                  version_id: str, name: str, size: int,
                                  size_encrypted: int) -> ContentFile:
        body = {
            "@odata.type": "#microsoft.graph.mobileAppContentFile",
            "name": name,
            "size": size,
            "sizeEncrypted": size_encrypted,
            "manifest": None,
            "isDependency": False,
        }
        response = await self._request("POST", self._content_url(app_id, deployment_type, version_id, "files"),
                                       expected=(200, 201), json=body)
        return ContentFile.from_graph(self._json(response))

    async def get_content_file(self, app_id: str, deployment_type: DeploymentType,
                               version_id: str, file_id: str) -> ContentFile:
        response = await self._request(
            "GET", self._content_url(app_id, deployment_type, version_id, "files", file_id),
            expected=(200,),
        )
        return ContentFile.from_graph(self._json(response))

    async def commit_file(self, app_id: str, deployment_type: DeploymentType,
                          version_id: str, file_id: str,
                          encryption_info: EncryptionInfo) -> None:
        await self._request(
            "POST", self._content_url(app_id, deployment_type, version_id, "files", file_id, "commit"),
            expected=(200, 204),
            json={"fileEncryptionInfo": encryption_info.to_graph()},
        )

    async def commit_app(self, app_id: str, deployment_type: DeploymentType, version_id: str) -> None:
        body = {
            "@odata.type": f"#microsoft.graph.{app_type_name(deployment_type)}",
            "committedContentVersion": version_id,
        }
        await self._request("PATCH", f"{self.apps_url}/{app_id}", expected=(204,), json=body)

    async def assign_groups(self, app_id: str, deployment_type: DeploymentType,
                            assignments: List[GroupAssignment], install_as_managed: bool) -> None:
        app_type = app_type_name(deployment_type)
        bodies = [b for b in (build_assignment(a, app_type, install_as_managed) for a in assignments) if b]
        if not bodies:
            return
        await self._request("POST", f"{self.apps_url}/{app_id}/microsoft.graph.assign",
                            expected=(200, 204), json={"mobileAppAssignments": bodies})
        logger.info("Assigned %d groups to %s", len(bodies), app_id)

    async def assign_categories(self, app_id: str, categories: List[AppCategory]) -> None:
        for category in categories:
            body = {
                "@odata.id": f"{self.base_url}/deviceAppManagement/mobileAppCategories/{category.category_id}"
            }
            for attempt in range(1, CATEGORY_ATTEMPTS + 1):
                try:
                    await self._request("POST", f"{self.apps_url}/{app_id}/categories/$ref",
                                        expected=(200, 204), json=body,
                                        headers={"ConsistencyLevel": "eventual"})
                    break
                except CatalogError as e:
                    if e.status_code not in CATEGORY_RETRY_STATUS or attempt >= CATEGORY_ATTEMPTS:
                        raise
                    await self.sleep(float(attempt))

    async def remove_assignments(self, app_id: str) -> None:
        data = self._json(await self._request("GET", f"{self.apps_url}/{app_id}/assignments", expected=(200,)))
        for assignment in data.get("value", []):
            await self._request("DELETE", f"{self.apps_url}/{app_id}/assignments/{assignment['id']}",
                                expected=(200, 204))
        logger.info("Removed assignments from %s", app_id)

    async def delete_app(self, app_id: str) -> None:
        await self._request("DELETE", f"{self.apps_url}/{app_id}", expected=(200, 204))
        logger.info("Deleted app %s", app_id)
