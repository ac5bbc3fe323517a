"""Tests for token handling and the Graph catalog client."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from intune_packager.api.exceptions import AuthenticationError, CatalogError
from intune_packager.constants import GRAPH_SCOPE, DeploymentArch, DeploymentType
from intune_packager.core.metadata_loader import MetadataLoader
from intune_packager.core.path_resolver import PathResolver
from intune_packager.graph.auth import (
    BearerToken,
    CachedAuthProvider,
    ClientSecretAuthProvider,
    TokenCache,
)
from intune_packager.graph.client import GraphCatalogClient, build_app_payload, build_assignment
from intune_packager.models.config import GraphSettings
from intune_packager.models.label import AssignmentFilter, GroupAssignment

from tests.conftest import FOLDER_NAME, TRACKING_ID, FakeAuth, write_title

BASE_URL = "https://graph.example.com/beta"
APPS_URL = f"{BASE_URL}/deviceAppManagement/mobileApps"


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingProvider(ClientSecretAuthProvider):
    def __init__(self, clock: Clock):
        super().__init__(GraphSettings(), clock=clock)
        self.calls = 0

    async def get_token(self) -> BearerToken:
        self.calls += 1
        return BearerToken(value=f"token-{self.calls}", expires_at=self.clock() + 3600)


def _graph_app(app_id: str, version: str, tracking_id: str = TRACKING_ID, **extra) -> dict:
    data = {
        "id": app_id,
        "displayName": f"Firefox {version}",
        "primaryBundleVersion": version,
        "isAssigned": False,
        "createdDateTime": "2024-01-01T00:00:00Z",
        "notes": f"Browser\n\nIntuneomator ID: {tracking_id}",
    }
    data.update(extra)
    return data


# ============================================================================
# Tokens
# ============================================================================


def test_token_cache_expires_with_skew() -> None:
    clock = Clock()
    cache = TokenCache(clock=clock, skew=60)
    cache.put(BearerToken("abc", expires_at=clock.now + 3600))

    assert cache.get().value == "abc"
    clock.now += 3600 - 61
    assert cache.get() is not None
    clock.now += 1
    assert cache.get() is None


def test_bearer_token_repr_hides_value() -> None:
    assert "secret" not in repr(BearerToken("secret", expires_at=1.0))


@pytest.mark.anyio
async def test_cached_provider_only_asks_on_miss() -> None:
    clock = Clock()
    provider = CountingProvider(clock)
    auth = CachedAuthProvider(provider, TokenCache(clock=clock))

    first = await auth.get_token()
    second = await auth.get_token()
    clock.now += 4000
    third = await auth.get_token()

    assert first is second
    assert third.value == "token-2"
    assert provider.calls == 2


@pytest.mark.anyio
async def test_client_credentials_request() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode("utf-8"))
        return httpx.Response(200, json={"access_token": "abc", "expires_in": 3599})

    settings = GraphSettings(tenant_id="tenant", client_id="client", client_secret="s3cret")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        provider = ClientSecretAuthProvider(settings, client, clock=Clock(100.0))
        token = await provider.get_token()

    assert token.value == "abc"
    assert token.expires_at == 100.0 + 3599
    assert seen["url"] == "https://login.microsoftonline.com/tenant/oauth2/v2.0/token"
    assert seen["form"]["grant_type"] == ["client_credentials"]
    assert seen["form"]["scope"] == [GRAPH_SCOPE]


@pytest.mark.anyio
@pytest.mark.parametrize("response", [
    httpx.Response(401, json={"error": "invalid_client"}),
    httpx.Response(200, json={"token_type": "Bearer"}),
    httpx.Response(200, text="not json"),
])
async def test_token_failures_raise_authentication_error(response) -> None:
    settings = GraphSettings(tenant_id="tenant", client_id="client", client_secret="s3cret")
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)) as client:
        provider = ClientSecretAuthProvider(settings, client)
        with pytest.raises(AuthenticationError):
            await provider.get_token()


@pytest.mark.anyio
async def test_missing_credentials_fail_without_request() -> None:
    provider = ClientSecretAuthProvider(GraphSettings(tenant_id="tenant"))

    with pytest.raises(AuthenticationError):
        await provider.get_token()


# ============================================================================
# Catalog client
# ============================================================================


@pytest.mark.anyio
async def test_find_by_tracking_id_follows_pages_and_filters() -> None:
    requests = []
    next_link = f"{APPS_URL}?$skiptoken=page2"

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "skiptoken" in str(request.url):
            return httpx.Response(200, json={"value": [
                _graph_app("b", "121.0", createdDateTime="2024-02-01T00:00:00Z"),
                _graph_app("c", "99.0", tracking_id="OTHER"),
            ]})
        return httpx.Response(200, json={
            "value": [_graph_app("a", "120.0")],
            "@odata.nextLink": next_link,
        })

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GraphCatalogClient(FakeAuth(), BASE_URL, http)
        records = await client.find_by_tracking_id(TRACKING_ID)

    assert [r.id for r in records] == ["a", "b"]
    assert "endswith(notes,'" in requests[0].url.params["$filter"]
    assert requests[0].headers["Authorization"] == "Bearer test-token"
    assert "skiptoken=page2" in str(requests[1].url)


@pytest.mark.anyio
async def test_unauthorized_response_is_authentication_error() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(401))) as http:
        client = GraphCatalogClient(FakeAuth(), BASE_URL, http)
        with pytest.raises(AuthenticationError):
            await client.delete_app("a")


@pytest.mark.anyio
async def test_unexpected_status_is_catalog_error() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500, text="oops"))) as http:
        client = GraphCatalogClient(FakeAuth(), BASE_URL, http)
        with pytest.raises(CatalogError) as exc_info:
            await client.find_by_tracking_id(TRACKING_ID)

    assert exc_info.value.status_code == 500


@pytest.mark.anyio
async def test_remove_assignments_deletes_each_one() -> None:
    deleted = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"value": [{"id": "x1"}, {"id": "x2"}]})
        deleted.append(request.url.path.rsplit("/", 1)[-1])
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GraphCatalogClient(FakeAuth(), BASE_URL, http)
        await client.remove_assignments("app")

    assert deleted == ["x1", "x2"]


@pytest.mark.anyio
async def test_create_app_posts_payload(tmp_path) -> None:
    write_title(tmp_path)
    result = MetadataLoader(PathResolver(tmp_path)).load(FOLDER_NAME)
    result.version_actual = "122.0"
    result.bundle_id_actual = "org.mozilla.firefox"
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"id": "new-app"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GraphCatalogClient(FakeAuth(), BASE_URL, http)
        app_id = await client.create_app(result)

    assert app_id == "new-app"
    assert bodies[0]["@odata.type"] == "#microsoft.graph.macOSDmgApp"
    assert bodies[0]["notes"].endswith(f"Intuneomator ID: {TRACKING_ID}")


def test_dmg_payload_lists_included_app(tmp_path) -> None:
    write_title(tmp_path)
    result = MetadataLoader(PathResolver(tmp_path)).load(FOLDER_NAME)
    result.version_actual = "122.0"

    payload = build_app_payload(result)

    assert payload["displayName"] == "Firefox 122.0"
    assert payload["primaryBundleVersion"] == "122.0"
    assert payload["includedApps"][0]["bundleId"] == "org.mozilla.firefox"
    assert payload["minimumSupportedOperatingSystem"]["v12_0"] is True
    assert payload["minimumSupportedOperatingSystem"]["v11_0"] is False
    assert "childApps" not in payload


def test_pkg_payload_carries_scripts(tmp_path) -> None:
    folder = write_title(tmp_path, metadata={"deploymentTypeTag": 1, "deployAsArchTag": 0})
    (folder / "postinstall.sh").write_text("#!/bin/sh\necho done\n", encoding="utf-8")
    result = MetadataLoader(PathResolver(tmp_path)).load(FOLDER_NAME)
    result.version_actual = "122.0"

    payload = build_app_payload(result)

    assert payload["@odata.type"] == "#microsoft.graph.macOSPkgApp"
    assert payload["postInstallScript"]["@odata.type"] == "#microsoft.graph.macOSAppScript"
    assert "preInstallScript" not in payload
    assert result.deployment_arch == DeploymentArch.ARM64
    assert result.deployment_type == DeploymentType.PKG


def test_virtual_groups_map_to_builtin_targets() -> None:
    users = build_assignment(GroupAssignment("Available", display_name="All Users", is_virtual=True),
                             "macOSDmgApp", False)
    devices = build_assignment(GroupAssignment("Required", display_name="All Devices", is_virtual=True),
                               "macOSDmgApp", False)

    assert users["target"]["@odata.type"] == "#microsoft.graph.allLicensedUsersAssignmentTarget"
    assert devices["target"]["@odata.type"] == "#microsoft.graph.allDevicesAssignmentTarget"
    assert users["intent"] == "available"


def test_lob_assignment_carries_filter_and_settings() -> None:
    assignment = GroupAssignment("Required", mode="exclude", display_name="Lab", group_id="g1",
                                 filter=AssignmentFilter("f1", "include"))

    body = build_assignment(assignment, "macOSLobApp", install_as_managed=True)

    assert body["target"]["@odata.type"] == "#microsoft.graph.exclusionGroupAssignmentTarget"
    assert body["target"]["deviceAndAppManagementAssignmentFilterId"] == "f1"
    assert body["settings"]["uninstallOnDeviceRemoval"] is True


def test_unresolvable_assignment_is_dropped() -> None:
    assert build_assignment(GroupAssignment("Required", display_name="Nobody"), "macOSDmgApp", False) is None


@pytest.mark.anyio
async def test_app_without_id_is_catalog_error() -> None:
    entry = _graph_app("a", "120.0")
    del entry["id"]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"value": [entry]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GraphCatalogClient(FakeAuth(), BASE_URL, http)
        with pytest.raises(CatalogError):
            await client.find_by_tracking_id(TRACKING_ID)


@pytest.mark.anyio
async def test_content_file_without_id_is_catalog_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"uploadState": "azureStorageUriRequestSuccess"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GraphCatalogClient(FakeAuth(), BASE_URL, http)
        with pytest.raises(CatalogError):
            await client.get_content_file("a", DeploymentType.DMG, "1", "f")
