"""
切断ワークフロー

CONNECTED -> DISCONNECTING -> {DISCONNECTED | DISCONNECT_FAILED}
"""

import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional, Union

from deploylink.backend.client import DeploymentCenterClient
from deploylink.core.state import ConnectionStateStore
from deploylink.errors import DeployLinkError, ErrorCode, create_api_error
from deploylink.models import ApiResult, ConnectionRecord, DisconnectState, ProviderIdentity
from deploylink.presentation import FormState, Notifier, message

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Union[None, Awaitable[None]]]


class DisconnectWorkflow:
    """プロバイダとの接続を解除する

    LocalGit はサイト構成の更新のみ。その他のプロバイダは構成を更新した後に
    ソース管理リンクを削除する。途中で失敗した場合は DISCONNECT_FAILED とし、
    キャッシュ済みのレコードには触れない。
    """

    def __init__(
        self,
        backend: DeploymentCenterClient,
        store: ConnectionStateStore,
        notifier: Notifier,
        form_state: Optional[FormState] = None,
        on_disconnected: Optional[RefreshCallback] = None,
    ) -> None:
        self._backend = backend
        self._store = store
        self._notifier = notifier
        self._form_state = form_state
        self._on_disconnected = on_disconnected

    async def disconnect(self, target_id: str, current_record: ConnectionRecord) -> ApiResult[None]:
        """接続を解除する

        Args:
            target_id: デプロイ先のリソースID
            current_record: 現在キャッシュされている接続レコード

        Returns:
            ApiResult[None]: 失敗時は DISCONNECT_xxx のエラー
        """
        notification_id = uuid.uuid4().hex
        self._store.set_disconnect_state(DisconnectState.DISCONNECTING)
        self._notifier.start(notification_id, message("disconnectingDeployment"))
        provider = current_record.provider_identity.value
        logger.info(f"Disconnecting {provider} from {target_id}")

        patched = await self._backend.patch_site_config(target_id, {"scmType": ProviderIdentity.NONE.value})
        if not patched.success:
            return self._fail(
                notification_id,
                create_api_error(
                    ErrorCode.DISCONNECT_CONFIG_UPDATE_FAILED,
                    f"Updating site config failed: {patched.error_message}",
                    details={"target": target_id, "provider": provider, "cause": self._cause(patched.error)},
                ),
            )

        if current_record.provider_identity != ProviderIdentity.LOCAL_GIT:
            deleted = await self._backend.delete_source_control(target_id)
            if not deleted.success:
                return self._fail(
                    notification_id,
                    create_api_error(
                        ErrorCode.DISCONNECT_LINKAGE_DELETE_FAILED,
                        f"Deleting source control linkage failed: {deleted.error_message}",
                        details={
                            "target": target_id,
                            "provider": provider,
                            "cause": self._cause(deleted.error),
                        },
                    ),
                )

        self._store.set_disconnect_state(DisconnectState.DISCONNECTED)
        self._notifier.stop(notification_id, True, message("disconnectingDeploymentSuccess"))
        logger.info(f"Disconnected {provider} from {target_id}")

        if self._form_state is not None:
            self._form_state.reset()
        self._store.replace_record(ConnectionRecord.disconnected())
        if self._on_disconnected is not None:
            outcome: Any = self._on_disconnected()
            if inspect.isawaitable(outcome):
                await outcome
        return ApiResult.ok()

    def _fail(self, notification_id: str, error: DeployLinkError) -> ApiResult[None]:
        logger.log(error.log_level, f"[{error.code}] {error.message}")
        self._store.set_disconnect_state(DisconnectState.DISCONNECT_FAILED)
        self._notifier.stop(
            notification_id,
            False,
            f"{message('disconnectingDeploymentFail')}: {error.message}",
        )
        return ApiResult.fail(error)

    @staticmethod
    def _cause(error: Optional[DeployLinkError]) -> Optional[str]:
        return error.code if error else None
