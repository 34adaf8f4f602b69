"""
deploylink End-to-End Integration Tests

実際の DeploymentCenterClient（httpx.MockTransport のバックエンド）と
ローカルコールバックサーバーを組み合わせ、認可から切断までを通しで確認する。
"""

import asyncio
import json
import os
import unittest
from typing import Any, Dict, List
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx

from deploylink.auth.browser import CallbackReceiver
from deploylink.auth.handshake import AuthorizationHandshakeController
from deploylink.auth.session import SessionTokenSigner
from deploylink.backend.client import DeploymentCenterClient
from deploylink.config.settings import DeployLinkSettings
from deploylink.core.orchestrator import ProviderConnectionOrchestrator
from deploylink.models import ConnectionRecord, DisconnectState, FetchStatus, ProviderIdentity
from deploylink.presentation import InMemoryFormState
from deploylink.providers.registry import ProviderRegistry

TARGET = "/subscriptions/s/resourceGroups/rg/providers/Microsoft.Web/sites/app"
SECRET = "integration-session-secret-with-enough-length-42"


class FakeDeploymentBackend:
    """ARM とポータルの振る舞いを最小限に模したバックエンド"""

    def __init__(self) -> None:
        self.scm_type = "GitHub"
        self.repo_url = "https://github.com/org/repo"
        self.stored_token: Dict[str, Any] | None = None
        self.fail_delete = False
        self.calls: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(f"{request.method} {path}")

        if path == f"{TARGET}/config/web":
            if request.method == "PATCH":
                self.scm_type = json.loads(request.content)["properties"]["scmType"]
            return httpx.Response(200, json={"properties": {"scmType": self.scm_type}})

        if path == f"{TARGET}/sourcecontrols/web":
            if request.method == "DELETE":
                if self.fail_delete:
                    return httpx.Response(500, json={"error": {"message": "linkage locked"}})
                self.repo_url = ""
                return httpx.Response(200)
            return httpx.Response(200, json={"properties": {"repoUrl": self.repo_url}})

        if path == "/api/github/user":
            if self.stored_token is None:
                return httpx.Response(401, json={"Message": "No token stored."})
            return httpx.Response(200, json={"login": "octocat"})

        if path == "/auth/github/getToken":
            redirect = json.loads(request.content)["redirUrl"]
            code = parse_qs(urlparse(redirect).query)["code"][0]
            return httpx.Response(200, json={"accessToken": f"gho_{code}"})

        if path == "/auth/github/storeToken":
            self.stored_token = json.loads(request.content)
            return httpx.Response(200)

        return httpx.Response(404, json={"error": {"message": f"No route for {path}"}})


class RedirectingContext:
    """認可画面を開く代わりに、リダイレクトURIへ code と state を返す"""

    def __init__(self) -> None:
        self.closed = False

    async def open(self, url: str) -> bool:
        query = parse_qs(urlparse(url).query)
        redirect = httpx.URL(query["redirect_uri"][0], params={"code": "c0de", "state": query["state"][0]})
        response = await asyncio.to_thread(httpx.get, str(redirect), trust_env=False)
        return response.status_code == 200

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True


class TestConnectionFlow(unittest.IsolatedAsyncioTestCase):
    """認可 → 状態取得 → 切断の統合テスト"""

    async def asyncSetUp(self):
        with patch.dict(os.environ, {}, clear=True):
            self.settings = DeployLinkSettings(
                _env_file=None,
                backend_url="https://arm.test",
                portal_url="https://portal.test",
                handshake_timeout=5.0,
                handshake_poll_interval=0.02,
                session_secret=SECRET,
            )
        self.backend_state = FakeDeploymentBackend()
        self.http = httpx.AsyncClient(transport=httpx.MockTransport(self.backend_state))
        registry = ProviderRegistry(authorize_url_overrides=self.settings.authorize_urls)
        self.receiver = CallbackReceiver(self.settings.callback_host, 0, self.settings.callback_path)
        handshake = AuthorizationHandshakeController(
            registry,
            context_factory=RedirectingContext,
            callback_receiver=self.receiver,
            signer=SessionTokenSigner(self.settings.session_secret, ttl_seconds=self.settings.handshake_timeout),
            timeout_seconds=self.settings.handshake_timeout,
            poll_interval=self.settings.handshake_poll_interval,
        )
        self.notifier = MagicMock()
        self.diagnostics = MagicMock()
        self.form_state = InMemoryFormState(initial={"branch": "main"})
        self.orchestrator = ProviderConnectionOrchestrator(
            TARGET,
            backend=DeploymentCenterClient(self.settings, lambda: "operator-bearer", http_client=self.http),
            registry=registry,
            handshake=handshake,
            notifier=self.notifier,
            diagnostics=self.diagnostics,
            form_state=self.form_state,
        )

    async def asyncTearDown(self):
        await self.orchestrator.close()
        await self.http.aclose()
        self.assertFalse(self.receiver.running)

    async def test_authorize_then_disconnect(self):
        snapshot = await self.orchestrator.refresh()
        self.assertEqual(snapshot.record.record.provider_identity, ProviderIdentity.GITHUB)
        self.assertEqual(snapshot.folder_display(), "/repo")
        self.assertTrue(snapshot.needs_authorization)
        self.assertTrue(snapshot.signed_in_as().show_authorize_action)

        result = await asyncio.wait_for(
            self.orchestrator.start_authorization(ProviderIdentity.GITHUB), timeout=5.0
        )

        self.assertTrue(result.success)
        self.assertFalse(result.data.is_cancelled)
        self.assertEqual(self.backend_state.stored_token, {"accessToken": "gho_c0de"})
        snapshot = self.orchestrator.snapshot()
        self.assertFalse(snapshot.needs_authorization)
        self.assertEqual(snapshot.signed_in_as().text, "octocat")

        self.form_state.values["branch"] = "feature"
        self.orchestrator.request_disconnect()
        disconnected = await self.orchestrator.disconnect_dialog.confirm()

        self.assertTrue(disconnected.success)
        snapshot = self.orchestrator.snapshot()
        self.assertEqual(snapshot.disconnect_state, DisconnectState.DISCONNECTED)
        self.assertEqual(snapshot.record.record, ConnectionRecord.disconnected())
        self.assertEqual(snapshot.record.status, FetchStatus.FRESH)
        self.assertEqual(self.form_state.get("branch"), "main")
        self.assertIn(f"PATCH {TARGET}/config/web", self.backend_state.calls)
        self.assertIn(f"DELETE {TARGET}/sourcecontrols/web", self.backend_state.calls)

    async def test_reconnect_after_partial_failure(self):
        await self.orchestrator.refresh()
        self.backend_state.fail_delete = True
        first = await self.orchestrator.disconnect()
        self.assertFalse(first.success)
        self.assertEqual(self.orchestrator.snapshot().disconnect_state, DisconnectState.DISCONNECT_FAILED)
        self.assertEqual(
            self.orchestrator.snapshot().record.record.provider_identity, ProviderIdentity.GITHUB
        )

        self.backend_state.fail_delete = False
        second = await self.orchestrator.disconnect()
        self.assertTrue(second.success)
        self.assertEqual(self.orchestrator.snapshot().disconnect_state, DisconnectState.DISCONNECTED)


if __name__ == "__main__":
    unittest.main()
