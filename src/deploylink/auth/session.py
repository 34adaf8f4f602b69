"""認可ハンドシェイクのセッション相関情報。"""

from __future__ import annotations

import asyncio
import hmac
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import jwt

from deploylink.models import ProviderIdentity

if TYPE_CHECKING:
    from deploylink.auth.browser import BrowserContext

logger = logging.getLogger(__name__)

SESSION_TOKEN_ALGORITHM = "HS256"


class SessionTokenSigner:
    """セッショントークン（署名付き・有効期限付き）の発行と検証を行う。

    トークンは認可URLの state パラメータとして埋め込み、
    リダイレクトで戻ってきた値と照合する。
    """

    def __init__(self, secret: str | None = None, ttl_seconds: float = 180.0) -> None:
        self._secret = secret or secrets.token_urlsafe(32)
        # 待機タイムアウトより先に失効しないよう余裕を持たせる
        self._ttl_seconds = ttl_seconds + 60.0

    def issue(self, provider_identity: ProviderIdentity) -> str:
        now = int(time.time())
        claims = {
            "sid": secrets.token_urlsafe(16),
            "prv": provider_identity.value,
            "iat": now,
            "exp": now + int(self._ttl_seconds),
        }
        return jwt.encode(claims, self._secret, algorithm=SESSION_TOKEN_ALGORITHM)

    def verify(self, token: str, provider_identity: ProviderIdentity) -> bool:
        """署名・有効期限・プロバイダが一致するかを検証する。"""
        try:
            claims = jwt.decode(token, self._secret, algorithms=[SESSION_TOKEN_ALGORITHM])
        except jwt.InvalidTokenError as exc:
            logger.warning(f"Rejected handshake signal with invalid session token: {exc}")
            return False
        return claims.get("prv") == provider_identity.value


@dataclass(eq=False)
class HandshakeSession:
    """進行中の認可試行1件分の相関状態

    Attributes:
        token: 認可URLに埋め込んだセッショントークン
        provider_identity: 認可対象のプロバイダ
        future: 完了シグナルで解決される Future
        started_at: 開始時刻（イベントループ時刻）
        context: 開いたセカンダリブラウザコンテキスト
        superseded: 新しいセッションに置き換えられたかどうか
    """
    token: str
    provider_identity: ProviderIdentity
    future: asyncio.Future
    started_at: float
    context: BrowserContext | None = None
    superseded: bool = False
    task: asyncio.Task[Any] | None = field(default=None, repr=False)

    def matches(self, token: str | None) -> bool:
        if not token:
            return False
        return hmac.compare_digest(token, self.token)
