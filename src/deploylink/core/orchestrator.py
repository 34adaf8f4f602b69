"""
プロバイダ接続オーケストレータ

デプロイ先ごとにレジストリ・ハンドシェイク・トークン交換・状態リーダー・
切断ワークフローを結線し、同時に1つの操作だけを受け付ける。
"""

import logging
import uuid
from typing import Callable, Optional

from deploylink.auth.browser import CallbackReceiver
from deploylink.auth.exchange import TokenExchangeClient
from deploylink.auth.handshake import AuthorizationHandshakeController
from deploylink.auth.session import SessionTokenSigner
from deploylink.auth.storage import CredentialStore
from deploylink.backend.client import DeploymentCenterClient
from deploylink.config.settings import DeployLinkSettings
from deploylink.core.disconnect import DisconnectWorkflow
from deploylink.core.reader import ConnectionStateReader
from deploylink.core.state import ConnectionSnapshot, ConnectionStateStore, Listener
from deploylink.errors import DeployLinkError, ErrorCode, create_in_progress_error
from deploylink.models import (
    ApiResult,
    AuthorizationResult,
    ProviderIdentity,
)
from deploylink.presentation import (
    ConfirmDialog,
    DiagnosticSink,
    FormState,
    InMemoryFormState,
    LoggingDiagnosticSink,
    LoggingNotifier,
    Notifier,
    message,
    telemetry_info,
)
from deploylink.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class ProviderConnectionOrchestrator:
    """1つのデプロイ先に対するプロバイダ接続を管理する"""

    def __init__(
        self,
        target_id: str,
        *,
        backend: DeploymentCenterClient,
        registry: ProviderRegistry,
        handshake: AuthorizationHandshakeController,
        notifier: Optional[Notifier] = None,
        diagnostics: Optional[DiagnosticSink] = None,
        form_state: Optional[FormState] = None,
    ) -> None:
        """ProviderConnectionOrchestratorを初期化する

        Args:
            target_id: デプロイ先のリソースID
            backend: バックエンドクライアント
            registry: プロバイダレジストリ
            handshake: 認可ハンドシェイクコントローラ
            notifier: 操作通知の出力先
            diagnostics: 診断ログの出力先
            form_state: 切断成功時にリセットするフォーム状態
        """
        self._target_id = target_id
        self._backend = backend
        self._registry = registry
        self._handshake = handshake
        self._notifier = notifier or LoggingNotifier()
        self._diagnostics = diagnostics or LoggingDiagnosticSink()
        self._store = ConnectionStateStore(target_id)
        self._reader = ConnectionStateReader(backend, registry, self._store, self._diagnostics)
        self._exchange = TokenExchangeClient(backend, registry)
        self._disconnect = DisconnectWorkflow(
            backend,
            self._store,
            self._notifier,
            form_state=form_state if form_state is not None else InMemoryFormState(),
            on_disconnected=self.refresh,
        )
        self._busy: Optional[str] = None
        self.disconnect_dialog = ConfirmDialog(
            title=message("kuduDisconnectConfirmationTitle"),
            content=message("disconnectConfirm"),
            primary_action=self.disconnect,
        )
        self.disconnect_dialog.default_action = self.disconnect_dialog.hide

    @classmethod
    def from_settings(
        cls,
        target_id: str,
        settings: DeployLinkSettings,
        *,
        credential_store: Optional[CredentialStore] = None,
        notifier: Optional[Notifier] = None,
        diagnostics: Optional[DiagnosticSink] = None,
        form_state: Optional[FormState] = None,
    ) -> "ProviderConnectionOrchestrator":
        """設定から各コンポーネントを組み立てる"""
        store = credential_store or CredentialStore(keyring_service=settings.keyring_service)
        registry = ProviderRegistry(authorize_url_overrides=settings.authorize_urls)
        receiver = None
        if settings.use_callback_server:
            receiver = CallbackReceiver(settings.callback_host, settings.callback_port, settings.callback_path)
        handshake = AuthorizationHandshakeController(
            registry,
            callback_receiver=receiver,
            signer=SessionTokenSigner(settings.session_secret, ttl_seconds=settings.handshake_timeout),
            timeout_seconds=settings.handshake_timeout,
            poll_interval=settings.handshake_poll_interval,
        )
        backend = DeploymentCenterClient(settings, store.provider())
        return cls(
            target_id,
            backend=backend,
            registry=registry,
            handshake=handshake,
            notifier=notifier,
            diagnostics=diagnostics,
            form_state=form_state,
        )

    # ── 状態の参照 ──────────────────────────────────────────

    @property
    def target_id(self) -> str:
        return self._target_id

    @property
    def is_busy(self) -> bool:
        return self._busy is not None

    def snapshot(self) -> ConnectionSnapshot:
        return self._store.snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._store.subscribe(listener)

    async def refresh(self, provider_identity: Optional[ProviderIdentity] = None) -> ConnectionSnapshot:
        """接続レコードとアカウントを再取得する"""
        await self._reader.refresh(provider_identity)
        return self._store.snapshot()

    # ── 操作 ────────────────────────────────────────────────

    def request_disconnect(self) -> None:
        """切断の確認ダイアログを表示する（切断は primary 操作でのみ進む）"""
        self.disconnect_dialog.show()

    async def disconnect(self) -> ApiResult[None]:
        """現在の接続を解除する"""
        if self._busy is not None:
            return ApiResult.fail(create_in_progress_error(self._busy))

        self._begin("disconnect")
        try:
            record = self._store.snapshot().record.record
            if record is None:
                record = await self._reader.refresh_record()
            if record is None:
                return ApiResult.fail(
                    DeployLinkError(
                        code=ErrorCode.API_FETCH_FAILED.value,
                        message="Current connection could not be read; nothing was disconnected.",
                        details={"target": self._target_id},
                        recoverable=True,
                        log_level=logging.WARNING,
                    )
                )
            if record.provider_identity == ProviderIdentity.NONE:
                logger.info(f"{self._target_id} has no provider connected")
                return ApiResult.ok()
            return await self._disconnect.disconnect(self._target_id, record)
        finally:
            self._end()

    async def start_authorization(
        self, provider_identity: ProviderIdentity
    ) -> ApiResult[AuthorizationResult]:
        """プロバイダの認可を行い、トークンの交換・保存と再取得まで進める

        OAuth を使わないプロバイダはハンドシェイクを開始せずに失敗を返す。
        """
        if self._busy is not None:
            return ApiResult.fail(create_in_progress_error(self._busy))

        descriptor = self._registry.resolve(provider_identity)
        if not descriptor.uses_oauth:
            return ApiResult.fail(
                DeployLinkError(
                    code=ErrorCode.PROVIDER_NOT_OAUTH.value,
                    message=f"{descriptor.display_name or provider_identity.value} does not require authorization.",
                    details={"provider": provider_identity.value},
                    recoverable=False,
                    log_level=logging.WARNING,
                )
            )

        self._begin("authorize")
        try:
            task = self._handshake.start_authorization(provider_identity, self._complete_authorization)
            result = await task
        finally:
            self._end()

        if result is None:
            return ApiResult.ok(AuthorizationResult.cancelled(provider_identity))
        return ApiResult.ok(result)

    async def close(self) -> None:
        await self._handshake.close()
        await self._backend.close()

    async def __aenter__(self) -> "ProviderConnectionOrchestrator":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    # ── 内部処理 ────────────────────────────────────────────

    async def _complete_authorization(self, authorization: AuthorizationResult) -> None:
        """ハンドシェイク完了時の継続処理

        交換の成否にかかわらず、最後に両方のスライスを再取得する。
        """
        try:
            if authorization.is_cancelled:
                return
            descriptor = self._registry.resolve(authorization.provider_identity)
            notification_id = uuid.uuid4().hex
            self._notifier.start(notification_id, message("authorizingProvider"))
            completed = await self._exchange.complete(authorization)
            if completed.success:
                self._notifier.stop(notification_id, True, message("authorizingProviderSuccess"))
                return
            self._diagnostics.log(
                telemetry_info(
                    "error",
                    f"authorize{descriptor.display_name.replace(' ', '')}Account",
                    "failed",
                    {"code": completed.error.code if completed.error else None, "error": completed.error_message},
                )
            )
            self._notifier.stop(
                notification_id,
                False,
                f"{message('authorizingProviderFail')}: {completed.error_message}",
            )
        finally:
            await self._reader.refresh(authorization.provider_identity)

    def _begin(self, operation: str) -> None:
        self._busy = operation
        self._store.set_busy(operation)

    def _end(self) -> None:
        self._busy = None
        self._store.set_busy(None)

