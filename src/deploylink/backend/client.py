"""
デプロイセンターのバックエンドクライアント

ARM 形式のサイト構成/ソース管理APIと、ポータル側のプロバイダ認可APIを呼び出す。
失敗は例外にせず ApiResult に正規化する。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from deploylink.backend.schemas import (
    SiteConfigResponse,
    SourceControlResponse,
    extract_error_message,
)
from deploylink.config.settings import DeployLinkSettings
from deploylink.errors import ErrorCode, create_api_error
from deploylink.models import ApiResult
from deploylink.providers.registry import ProviderDescriptor

logger = logging.getLogger(__name__)

CredentialProvider = Callable[[], Optional[str]]


class DeploymentCenterClient:
    """デプロイ先の接続設定を読み書きするバックエンドクライアント"""

    def __init__(
        self,
        settings: DeployLinkSettings,
        credential_provider: Optional[CredentialProvider] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """DeploymentCenterClientを初期化する

        Args:
            settings: 接続先やタイムアウトを含む設定
            credential_provider: バックエンド用ベアラートークンを返す関数
            http_client: 差し替え用の httpx.AsyncClient
        """
        self._settings = settings
        self._credential_provider = credential_provider
        self._credential: Optional[str] = None
        self._credential_loaded = False
        self._timeout = settings.request_timeout
        # 外部から渡されたクライアントは閉じない
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self._timeout)

    # ── サイト構成 / ソース管理 ──────────────────────────────────────

    async def get_site_config(self, resource_id: str) -> ApiResult[SiteConfigResponse]:
        """サイト構成（scmType を含む）を取得する"""
        result = await self._request(
            "GET",
            self._arm_url(resource_id, "config/web"),
            operation="getSiteConfig",
        )
        if not result.success:
            return ApiResult.fail(result.error)
        return self._parse(result.data or {}, SiteConfigResponse, "getSiteConfig")

    async def patch_site_config(
        self, resource_id: str, properties: Dict[str, Any]
    ) -> ApiResult[SiteConfigResponse]:
        """サイト構成を部分更新する"""
        result = await self._request(
            "PATCH",
            self._arm_url(resource_id, "config/web"),
            json={"properties": properties},
            operation="patchSiteConfig",
        )
        if not result.success:
            return ApiResult.fail(result.error)
        return self._parse(result.data or {}, SiteConfigResponse, "patchSiteConfig")

    async def get_source_control(self, resource_id: str) -> ApiResult[SourceControlResponse]:
        """ソース管理リンクを取得する"""
        result = await self._request(
            "GET",
            self._arm_url(resource_id, "sourcecontrols/web"),
            operation="getSourceControls",
        )
        if not result.success:
            return ApiResult.fail(result.error)
        return self._parse(result.data, SourceControlResponse, "getSourceControls")

    async def delete_source_control(self, resource_id: str) -> ApiResult[None]:
        """ソース管理リンクを削除する"""
        result = await self._request(
            "DELETE",
            self._arm_url(resource_id, "sourcecontrols/web"),
            operation="deleteSourceControls",
        )
        if not result.success:
            return ApiResult.fail(result.error)
        return ApiResult.ok()

    # ── プロバイダ認可 ────────────────────────────────────────────

    async def get_provider_user(self, descriptor: ProviderDescriptor) -> ApiResult[Dict[str, Any]]:
        """保存済みトークンでプロバイダのユーザー情報を取得する"""
        result = await self._request(
            "GET",
            f"{self._settings.portal_url}/api/{descriptor.token_route}/user",
            operation=f"get{descriptor.display_name.replace(' ', '')}User",
        )
        if not result.success:
            return ApiResult.fail(result.error)
        if not isinstance(result.data, dict):
            return ApiResult.fail(
                create_api_error(
                    ErrorCode.API_INVALID_RESPONSE,
                    "Provider user response is not an object.",
                    details={"provider": descriptor.identity.value},
                )
            )
        return ApiResult.ok(result.data)

    async def get_provider_token(
        self, descriptor: ProviderDescriptor, redirect_url: str
    ) -> ApiResult[Dict[str, Any]]:
        """リダイレクトURLをバックエンドでアクセストークンに交換する"""
        result = await self._request(
            "POST",
            f"{self._settings.portal_url}/auth/{descriptor.token_route}/getToken",
            json={"redirUrl": redirect_url},
            operation="getToken",
            error_code=ErrorCode.AUTH_EXCHANGE_FAILED,
        )
        if not result.success:
            return ApiResult.fail(result.error)
        if not isinstance(result.data, dict) or not result.data:
            return ApiResult.fail(
                create_api_error(
                    ErrorCode.AUTH_EXCHANGE_FAILED,
                    "Token exchange response did not contain a token.",
                    details={"provider": descriptor.identity.value},
                )
            )
        return ApiResult.ok(result.data)

    async def store_provider_token(
        self, descriptor: ProviderDescriptor, token: Dict[str, Any]
    ) -> ApiResult[None]:
        """トークンをバックエンドに保存する（PUT のため冪等）"""
        result = await self._request(
            "PUT",
            f"{self._settings.portal_url}/auth/{descriptor.token_route}/storeToken",
            json=token,
            operation="storeToken",
            error_code=ErrorCode.AUTH_PERSIST_FAILED,
        )
        if not result.success:
            return ApiResult.fail(result.error)
        return ApiResult.ok()

    # ── 内部処理 ────────────────────────────────────────────────

    def _arm_url(self, resource_id: str, suffix: str) -> str:
        resource = "/" + resource_id.strip().strip("/")
        return f"{self._settings.backend_url}{resource}/{suffix}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._bearer_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _bearer_token(self) -> Optional[str]:
        # 資格情報はクライアントごとに1回だけ読む
        if not self._credential_loaded and self._credential_provider is not None:
            self._credential = self._credential_provider()
            self._credential_loaded = True
        return self._credential

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Any] = None,
        operation: str,
        error_code: ErrorCode = ErrorCode.API_ERROR,
    ) -> ApiResult[Any]:
        params = {"api-version": self._settings.api_version}
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(),
                timeout=self._timeout,
            )
        except httpx.TimeoutException:
            logger.warning(f"{operation}: request to {url} timed out")
            return ApiResult.fail(
                create_api_error(
                    code=ErrorCode.API_TIMEOUT,
                    message=f"Request to {url} timed out",
                    details={"operation": operation, "url": url, "timeout": self._timeout},
                )
            )
        except httpx.HTTPError as exc:
            logger.warning(f"{operation}: request to {url} failed: {exc}")
            return ApiResult.fail(
                create_api_error(
                    code=error_code,
                    message=f"Request to {url} failed: {exc}",
                    details={"operation": operation, "url": url, "error": str(exc)},
                )
            )

        payload = self._decode(response)
        if response.status_code in (401, 403):
            return ApiResult.fail(
                create_api_error(
                    code=ErrorCode.API_AUTH_ERROR,
                    message=extract_error_message(payload, "Backend rejected the credential."),
                    details={"operation": operation, "status": response.status_code, "error": payload},
                )
            )
        if response.status_code >= 400:
            return ApiResult.fail(
                create_api_error(
                    code=error_code,
                    message=extract_error_message(
                        payload, f"{operation} failed with status {response.status_code}"
                    ),
                    details={"operation": operation, "status": response.status_code, "error": payload},
                )
            )

        logger.debug(f"{operation}: {method} {url} -> {response.status_code}")
        return ApiResult.ok(payload)

    def _decode(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _parse(self, payload: Any, model: Any, operation: str) -> ApiResult[Any]:
        try:
            return ApiResult.ok(model.model_validate(payload))
        except ValidationError as exc:
            return ApiResult.fail(
                create_api_error(
                    code=ErrorCode.API_INVALID_RESPONSE,
                    message=f"Failed to parse {operation} response",
                    details={"operation": operation, "errors": exc.errors(include_url=False)},
                )
            )

    async def close(self) -> None:
        """生成した httpx クライアントをクリーンアップ"""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "DeploymentCenterClient":
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()
