"""認可ハンドシェイクコントローラ。

セカンダリブラウザコンテキストで認可画面を開き、セッショントークンで相関した
完了シグナルを待って、呼び出し元の継続処理をちょうど1回だけ呼び出す。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import parse_qs, urlparse

import httpx

from deploylink.auth.browser import BrowserContext, CallbackReceiver, SystemBrowserContext
from deploylink.auth.session import HandshakeSession, SessionTokenSigner
from deploylink.errors import DeployLinkError, DeployLinkException, ErrorCode
from deploylink.models import AuthorizationResult, CancellationReason, ProviderIdentity
from deploylink.providers.registry import ProviderDescriptor, ProviderRegistry

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[AuthorizationResult], Union[None, Awaitable[None]]]
BrowserContextFactory = Callable[[], BrowserContext]


def extract_state(redirect_url: str) -> Optional[str]:
    """リダイレクトURLのクエリまたはフラグメントから state を取り出す"""
    parsed = urlparse(redirect_url)
    for part in (parsed.query, parsed.fragment):
        values = parse_qs(part).get("state")
        if values:
            return values[0]
    return None


class AuthorizationHandshakeController:
    """プロバイダとの認可ハンドシェイクを管理する

    インスタンスごとに有効なセッションは高々1つ。新しい認可を開始すると
    以前のセッションは無効化され、その継続処理は呼ばれない。
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        context_factory: Optional[BrowserContextFactory] = None,
        callback_receiver: Optional[CallbackReceiver] = None,
        signer: Optional[SessionTokenSigner] = None,
        timeout_seconds: float = 180.0,
        poll_interval: float = 0.5,
    ) -> None:
        """AuthorizationHandshakeControllerを初期化する

        Args:
            registry: プロバイダレジストリ
            context_factory: セカンダリブラウザコンテキストの生成関数
            callback_receiver: リダイレクトを受け取るローカルサーバー（任意）
            signer: セッショントークンの発行・検証
            timeout_seconds: 完了シグナルの最大待機時間
            poll_interval: コンテキスト生存確認の間隔
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds は正の値である必要があります")
        if poll_interval <= 0:
            raise ValueError("poll_interval は正の値である必要があります")

        self._registry = registry
        self._context_factory = context_factory or SystemBrowserContext
        self._callback_receiver = callback_receiver
        self._signer = signer or SessionTokenSigner(ttl_seconds=timeout_seconds)
        self._timeout_seconds = timeout_seconds
        self._poll_interval = poll_interval
        self._active: Optional[HandshakeSession] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def active_session(self) -> Optional[HandshakeSession]:
        return self._active

    def start_authorization(
        self,
        provider_identity: ProviderIdentity,
        on_complete: CompletionCallback,
    ) -> asyncio.Task:
        """認可を開始し、完了までを駆動するタスクを返す

        タスクの結果は AuthorizationResult。置き換えられたセッションでは None。

        Raises:
            UnknownProviderException: 未知のプロバイダ
            DeployLinkException: OAuth を使わないプロバイダが指定された場合
        """
        descriptor = self._registry.resolve(provider_identity)
        if not descriptor.uses_oauth:
            raise DeployLinkException(
                DeployLinkError(
                    code=ErrorCode.PROVIDER_NOT_OAUTH.value,
                    message=f"Provider '{provider_identity.value}' does not use OAuth.",
                    details={"provider": provider_identity.value},
                    recoverable=False,
                )
            )

        loop = asyncio.get_running_loop()
        self._loop = loop

        previous = self._active
        if previous is not None:
            self._retire(previous)

        session = HandshakeSession(
            token=self._signer.issue(provider_identity),
            provider_identity=provider_identity,
            future=loop.create_future(),
            started_at=loop.time(),
        )
        self._active = session
        session.task = loop.create_task(self._run(session, descriptor, on_complete))
        logger.info(f"Authorization started for {provider_identity.value}")
        return session.task

    def deliver(self, redirect_url: str, session_token: Optional[str] = None) -> bool:
        """完了シグナルを受け取る

        有効なセッションと相関しないシグナル（古い・偽造・期限切れ）は無視する。

        Returns:
            シグナルが受理されたかどうか
        """
        token = session_token or extract_state(redirect_url)
        session = self._active
        if session is None or not session.matches(token):
            logger.debug("Ignored handshake signal for an inactive session")
            return False
        if session.future.done():
            return False
        if not self._signer.verify(session.token, session.provider_identity):
            return False

        session.future.set_result(
            AuthorizationResult(
                provider_identity=session.provider_identity,
                redirect_url=redirect_url,
            )
        )
        return True

    def cancel(self) -> bool:
        """有効なセッションをキャンセル結果で終了させる"""
        session = self._active
        if session is None or session.future.done():
            return False
        session.future.set_result(
            AuthorizationResult.cancelled(session.provider_identity, CancellationReason.CANCELLED)
        )
        return True

    async def close(self) -> None:
        """進行中のセッションを終了し、コールバックサーバーを停止する"""
        session = self._active
        if session is not None:
            self.cancel()
            if session.task is not None:
                await asyncio.gather(session.task, return_exceptions=True)
        if self._callback_receiver is not None:
            self._callback_receiver.stop()

    def _retire(self, session: HandshakeSession) -> None:
        session.superseded = True
        if not session.future.done():
            session.future.set_result(
                AuthorizationResult.cancelled(session.provider_identity, CancellationReason.CANCELLED)
            )
        logger.info(f"Superseded pending authorization for {session.provider_identity.value}")

    def _on_redirect(self, redirect_url: str) -> None:
        # コールバックサーバーのスレッドから呼ばれる
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.deliver, redirect_url)

    def _build_authorization_url(self, descriptor: ProviderDescriptor, token: str) -> str:
        params = {"state": token}
        if self._callback_receiver is not None:
            params["redirect_uri"] = self._callback_receiver.start(self._on_redirect)
        separator = "&" if "?" in descriptor.authorization_url else "?"
        return f"{descriptor.authorization_url}{separator}{httpx.QueryParams(params)}"

    async def _run(
        self,
        session: HandshakeSession,
        descriptor: ProviderDescriptor,
        on_complete: CompletionCallback,
    ) -> Optional[AuthorizationResult]:
        if session.superseded:
            # 置き換え済みのセッションではページを開かない
            return None
        context = self._context_factory()
        session.context = context
        try:
            try:
                opened = await context.open(self._build_authorization_url(descriptor, session.token))
            except Exception:
                logger.exception(f"Failed to open authorization page for {descriptor.identity.value}")
                opened = False

            if opened:
                result = await self._wait(session, context)
            else:
                result = AuthorizationResult.cancelled(session.provider_identity, CancellationReason.ERROR)
        finally:
            await context.close()

        if session.superseded:
            return None
        if self._active is session:
            self._active = None

        if result.is_cancelled:
            logger.info(
                f"Authorization for {session.provider_identity.value} ended without redirect "
                f"({result.cancellation_reason.value if result.cancellation_reason else 'unknown'})"
            )
        await self._invoke(on_complete, result)
        return result

    async def _wait(self, session: HandshakeSession, context: BrowserContext) -> AuthorizationResult:
        loop = asyncio.get_running_loop()
        deadline = session.started_at + self._timeout_seconds
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                if session.future.done():
                    return session.future.result()
                return AuthorizationResult.cancelled(session.provider_identity, CancellationReason.TIMED_OUT)
            try:
                return await asyncio.wait_for(
                    asyncio.shield(session.future),
                    timeout=min(self._poll_interval, remaining),
                )
            except asyncio.TimeoutError:
                pass
            if context.is_closed():
                if session.future.done():
                    return session.future.result()
                return AuthorizationResult.cancelled(session.provider_identity, CancellationReason.CLOSED)

    async def _invoke(self, on_complete: CompletionCallback, result: AuthorizationResult) -> None:
        outcome: Any = on_complete(result)
        if inspect.isawaitable(outcome):
            await outcome
