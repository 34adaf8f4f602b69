"""認可アーティファクトのトークン交換と永続化。"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import parse_qs, urlparse

from deploylink.backend.client import DeploymentCenterClient
from deploylink.errors import ErrorCode, create_api_error
from deploylink.models import ApiResult, AuthToken, AuthorizationResult, ProviderIdentity
from deploylink.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

_ARTIFACT_KEYS = ("code", "access_token")


def extract_artifact(redirect_url: str) -> Optional[str]:
    """リダイレクトURLから認可アーティファクトを取り出す

    クエリ（認可コード）とフラグメント（インプリシットフロー）の両方を見る。
    エラーが返されている場合やアーティファクトがない場合は None。
    """
    parsed = urlparse(redirect_url or "")
    for part in (parsed.query, parsed.fragment):
        params = parse_qs(part)
        if "error" in params:
            return None
        for key in _ARTIFACT_KEYS:
            values = params.get(key)
            if values and values[0]:
                return values[0]
    return None


class TokenExchangeClient:
    """リダイレクトをアクセストークンに交換し、デプロイ先に保存する

    自動リトライは行わない。失敗は操作者の再操作に委ねる。
    """

    def __init__(self, backend: DeploymentCenterClient, registry: ProviderRegistry) -> None:
        self._backend = backend
        self._registry = registry

    async def exchange_token(
        self, provider_identity: ProviderIdentity, redirect_url: str
    ) -> ApiResult[AuthToken]:
        """リダイレクトURLをバックエンドの交換エンドポイントに渡してトークンを得る"""
        descriptor = self._registry.resolve(provider_identity)
        if extract_artifact(redirect_url) is None:
            query = parse_qs(urlparse(redirect_url or "").query)
            return ApiResult.fail(
                create_api_error(
                    ErrorCode.AUTH_INVALID_REDIRECT,
                    "Redirect did not carry an authorization artifact.",
                    details={
                        "provider": provider_identity.value,
                        "error": (query.get("error") or [None])[0],
                    },
                )
            )

        result = await self._backend.get_provider_token(descriptor, redirect_url)
        if not result.success:
            logger.warning(f"Token exchange failed for {provider_identity.value}: {result.error_message}")
            return ApiResult.fail(result.error)

        logger.info(f"Token exchange successful for {provider_identity.value}")
        return ApiResult.ok(AuthToken(provider_identity=provider_identity, payload=dict(result.data or {})))

    async def persist_token(self, token: AuthToken) -> ApiResult[None]:
        """トークンをデプロイ先に保存する（同じトークンで何度呼んでも同じ結果）"""
        descriptor = self._registry.resolve(token.provider_identity)
        result = await self._backend.store_provider_token(descriptor, token.payload)
        if not result.success:
            logger.warning(
                f"Persisting token failed for {token.provider_identity.value}: {result.error_message}"
            )
            return ApiResult.fail(result.error)
        return ApiResult.ok()

    async def complete(self, authorization: AuthorizationResult) -> ApiResult[None]:
        """ハンドシェイク結果を交換・保存まで進める

        リダイレクトがない（キャンセル）場合は何もせず成功として返す。
        """
        if authorization.redirect_url is None:
            return ApiResult.ok()

        exchanged = await self.exchange_token(authorization.provider_identity, authorization.redirect_url)
        if not exchanged.success or exchanged.data is None:
            return ApiResult.fail(exchanged.error)
        return await self.persist_token(exchanged.data)
