"""
DeploymentCenterClient のユニットテスト

httpx.MockTransport でバックエンドを差し替える
"""

import json
import os
import unittest
from typing import Callable, List
from unittest.mock import MagicMock, patch

import httpx

from deploylink.backend.client import DeploymentCenterClient
from deploylink.config.settings import DeployLinkSettings
from deploylink.errors import ErrorCode
from deploylink.models import ProviderIdentity
from deploylink.providers.registry import ProviderRegistry

RESOURCE_ID = "/subscriptions/sub/resourceGroups/rg/providers/Microsoft.Web/sites/app"


def build_settings() -> DeployLinkSettings:
    with patch.dict(os.environ, {}, clear=True):
        return DeployLinkSettings(
            _env_file=None,
            backend_url="https://arm.test",
            portal_url="https://portal.test",
            api_version="2022-03-01",
        )


class BackendClientTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(200, json={})
        self.http = httpx.AsyncClient(transport=httpx.MockTransport(self._dispatch))
        self.client = DeploymentCenterClient(build_settings(), lambda: "bearer-xyz", http_client=self.http)
        self.registry = ProviderRegistry()

    async def asyncTearDown(self):
        await self.client.close()
        await self.http.aclose()

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


class TestSiteConfig(BackendClientTestCase):

    async def test_patch_site_config_request(self):
        self.handler = lambda request: httpx.Response(200, json={"properties": {"scmType": "None"}})

        result = await self.client.patch_site_config(RESOURCE_ID, {"scmType": "None"})

        self.assertTrue(result.success)
        self.assertEqual(result.data.properties.scm_type, "None")
        request = self.requests[0]
        self.assertEqual(request.method, "PATCH")
        self.assertEqual(request.url.path, f"{RESOURCE_ID}/config/web")
        self.assertEqual(request.url.params["api-version"], "2022-03-01")
        self.assertEqual(request.headers["Authorization"], "Bearer bearer-xyz")
        self.assertEqual(json.loads(request.content), {"properties": {"scmType": "None"}})

    async def test_get_site_config(self):
        self.handler = lambda request: httpx.Response(200, json={"properties": {"scmType": "GitHub"}})
        result = await self.client.get_site_config(RESOURCE_ID.lstrip("/") + "/")
        self.assertTrue(result.success)
        self.assertEqual(result.data.properties.scm_type, "GitHub")
        self.assertEqual(self.requests[0].url.path, f"{RESOURCE_ID}/config/web")

    async def test_error_message_from_arm_body(self):
        self.handler = lambda request: httpx.Response(
            409, json={"error": {"code": "Conflict", "message": "Site is locked."}}
        )
        result = await self.client.patch_site_config(RESOURCE_ID, {"scmType": "None"})
        self.assertFalse(result.success)
        self.assertEqual(result.error.code, ErrorCode.API_ERROR.value)
        self.assertEqual(result.error.message, "Site is locked.")
        self.assertEqual(result.error.details["status"], 409)

    async def test_auth_error(self):
        self.handler = lambda request: httpx.Response(401, json={"Message": "Token expired."})
        result = await self.client.get_site_config(RESOURCE_ID)
        self.assertEqual(result.error.code, ErrorCode.API_AUTH_ERROR.value)
        self.assertEqual(result.error.message, "Token expired.")


class TestSourceControl(BackendClientTestCase):

    async def test_get_source_control(self):
        self.handler = lambda request: httpx.Response(
            200,
            json={"name": "web", "properties": {"repoUrl": "https://github.com/org/repo", "branch": "main"}},
        )
        result = await self.client.get_source_control(RESOURCE_ID)
        self.assertTrue(result.success)
        self.assertEqual(result.data.properties.repo_url, "https://github.com/org/repo")
        self.assertEqual(self.requests[0].method, "GET")
        self.assertEqual(self.requests[0].url.path, f"{RESOURCE_ID}/sourcecontrols/web")

    async def test_get_source_control_null_repo_url(self):
        self.handler = lambda request: httpx.Response(200, json={"properties": {"repoUrl": None}})
        result = await self.client.get_source_control(RESOURCE_ID)
        self.assertTrue(result.success)
        self.assertIsNone(result.data.properties.repo_url)

    async def test_get_source_control_invalid_payload(self):
        self.handler = lambda request: httpx.Response(200, json={"name": "web"})
        result = await self.client.get_source_control(RESOURCE_ID)
        self.assertFalse(result.success)
        self.assertEqual(result.error.code, ErrorCode.API_INVALID_RESPONSE.value)

    async def test_delete_source_control(self):
        self.handler = lambda request: httpx.Response(200)
        result = await self.client.delete_source_control(RESOURCE_ID)
        self.assertTrue(result.success)
        self.assertEqual(self.requests[0].method, "DELETE")

    async def test_timeout_is_normalized(self):
        def raise_timeout(request):
            raise httpx.ReadTimeout("slow", request=request)

        self.handler = raise_timeout
        result = await self.client.delete_source_control(RESOURCE_ID)
        self.assertFalse(result.success)
        self.assertEqual(result.error.code, ErrorCode.API_TIMEOUT.value)

    async def test_transport_error_is_normalized(self):
        def raise_connect(request):
            raise httpx.ConnectError("refused", request=request)

        self.handler = raise_connect
        result = await self.client.get_source_control(RESOURCE_ID)
        self.assertFalse(result.success)
        self.assertEqual(result.error.code, ErrorCode.API_ERROR.value)


class TestProviderEndpoints(BackendClientTestCase):

    async def test_get_provider_user(self):
        self.handler = lambda request: httpx.Response(200, json={"name": {"display_name": "Ada"}})
        descriptor = self.registry.resolve(ProviderIdentity.DROPBOX)
        result = await self.client.get_provider_user(descriptor)
        self.assertTrue(result.success)
        self.assertEqual(self.requests[0].url.host, "portal.test")
        self.assertEqual(self.requests[0].url.path, "/api/dropbox/user")

    async def test_get_provider_user_rejects_non_object(self):
        self.handler = lambda request: httpx.Response(200, json=["x"])
        result = await self.client.get_provider_user(self.registry.resolve(ProviderIdentity.GITHUB))
        self.assertEqual(result.error.code, ErrorCode.API_INVALID_RESPONSE.value)

    async def test_get_provider_token(self):
        self.handler = lambda request: httpx.Response(200, json={"accessToken": "t"})
        descriptor = self.registry.resolve(ProviderIdentity.ONEDRIVE)
        result = await self.client.get_provider_token(descriptor, "https://cb/?code=1")
        self.assertTrue(result.success)
        self.assertEqual(result.data, {"accessToken": "t"})
        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/auth/onedrive/getToken")
        self.assertEqual(json.loads(request.content), {"redirUrl": "https://cb/?code=1"})

    async def test_get_provider_token_failure_code(self):
        self.handler = lambda request: httpx.Response(500, text="upstream failure")
        result = await self.client.get_provider_token(self.registry.resolve(ProviderIdentity.GITHUB), "u")
        self.assertEqual(result.error.code, ErrorCode.AUTH_EXCHANGE_FAILED.value)
        self.assertEqual(result.error.message, "upstream failure")

    async def test_get_provider_token_empty(self):
        self.handler = lambda request: httpx.Response(200, json={})
        result = await self.client.get_provider_token(self.registry.resolve(ProviderIdentity.GITHUB), "u")
        self.assertEqual(result.error.code, ErrorCode.AUTH_EXCHANGE_FAILED.value)

    async def test_store_provider_token(self):
        self.handler = lambda request: httpx.Response(200)
        descriptor = self.registry.resolve(ProviderIdentity.BITBUCKET)
        result = await self.client.store_provider_token(descriptor, {"accessToken": "t"})
        self.assertTrue(result.success)
        self.assertEqual(self.requests[0].method, "PUT")
        self.assertEqual(self.requests[0].url.path, "/auth/bitbucket/storeToken")

    async def test_store_provider_token_failure(self):
        self.handler = lambda request: httpx.Response(400, json={"message": "bad token"})
        result = await self.client.store_provider_token(self.registry.resolve(ProviderIdentity.GITHUB), {"a": 1})
        self.assertEqual(result.error.code, ErrorCode.AUTH_PERSIST_FAILED.value)


class TestClientLifecycle(unittest.IsolatedAsyncioTestCase):

    async def test_owned_client_is_closed(self):
        client = DeploymentCenterClient(build_settings())
        async with client:
            pass
        self.assertTrue(client._client.is_closed)

    async def test_external_client_is_not_closed(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        async with DeploymentCenterClient(build_settings(), http_client=http):
            pass
        self.assertFalse(http.is_closed)
        await http.aclose()

    async def test_credential_read_once_per_client(self):
        provider = MagicMock(return_value="bearer-once")
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"properties": {"scmType": "None"}})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = DeploymentCenterClient(build_settings(), provider, http_client=http)
        await client.get_site_config(RESOURCE_ID)
        await client.delete_source_control(RESOURCE_ID)
        await client.get_site_config(RESOURCE_ID)
        provider.assert_called_once_with()
        self.assertTrue(all(r.headers["Authorization"] == "Bearer bearer-once" for r in seen))
        await http.aclose()

    async def test_no_credential_header(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"properties": {}})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = DeploymentCenterClient(build_settings(), lambda: None, http_client=http)
        await client.get_site_config(RESOURCE_ID)
        self.assertNotIn("Authorization", seen[0].headers)
        await http.aclose()


if __name__ == "__main__":
    unittest.main()
