"""
接続状態リーダー

ソース管理リンクとプロバイダアカウントをバックエンドから取得し、
失敗を ApiResult に正規化してストアのスライスへ書き込む。
"""

import asyncio
import logging
from typing import Optional, Tuple

from deploylink.backend.client import DeploymentCenterClient
from deploylink.backend.schemas import lookup_path
from deploylink.core.state import AccountSlice, ConnectionStateStore, RecordSlice
from deploylink.errors import (
    DeployLinkError,
    DeployLinkException,
    ErrorCode,
    UnknownProviderException,
    create_fetch_error,
)
from deploylink.models import (
    AccountIdentity,
    ApiResult,
    ConnectionRecord,
    FetchStatus,
    ProviderIdentity,
    folder_from_reference,
    parse_provider_identity,
)
from deploylink.presentation import DiagnosticSink, telemetry_info
from deploylink.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class ConnectionStateReader:
    """接続レコードとアカウント情報を取得する"""

    def __init__(
        self,
        backend: DeploymentCenterClient,
        registry: ProviderRegistry,
        store: ConnectionStateStore,
        diagnostics: DiagnosticSink,
    ) -> None:
        self._backend = backend
        self._registry = registry
        self._store = store
        self._diagnostics = diagnostics

    async def fetch_account_identity(self, provider_identity: ProviderIdentity) -> ApiResult[AccountIdentity]:
        """プロバイダのサインイン中アカウントを取得する

        失敗した場合（表示名が取れない場合を含む）は診断イベントを1件記録する。

        Raises:
            DeployLinkException: OAuth を使わないプロバイダが指定された場合
        """
        descriptor = self._registry.resolve(provider_identity)
        if not descriptor.uses_oauth:
            raise DeployLinkException(
                DeployLinkError(
                    code=ErrorCode.PROVIDER_NOT_OAUTH.value,
                    message=f"Provider '{provider_identity.value}' has no account to fetch.",
                    details={"provider": provider_identity.value},
                )
            )

        identifier = f"get{descriptor.display_name.replace(' ', '')}User"
        result = await self._backend.get_provider_user(descriptor)
        if not result.success:
            self._diagnostics.log(
                telemetry_info("error", identifier, "failed", {"error": result.error_message})
            )
            return ApiResult.fail(result.error)

        name = lookup_path(result.data or {}, descriptor.account_name_path)
        if not name:
            error = create_fetch_error(
                f"{descriptor.display_name} user payload did not contain a display name.",
                details={"provider": provider_identity.value},
            )
            self._diagnostics.log(
                telemetry_info("error", identifier, "failed", {"error": error.message})
            )
            return ApiResult.fail(error)

        return ApiResult.ok(AccountIdentity(provider_identity=provider_identity, display_name=str(name)))

    async def fetch_connection_record(self, target_id: str) -> ApiResult[ConnectionRecord]:
        """デプロイ先の接続レコードを取得する

        プロバイダは scmType で決まる。scmType が None の場合と OAuth を使わない
        プロバイダの場合はソース管理リンクを読まない。リンクの取得に失敗しても
        プロバイダだけを持つレコードを返す（フォルダ欄のみエラー表示）。
        """
        result, _linkage_error = await self._fetch_record(target_id)
        return result

    async def _fetch_record(
        self, target_id: str
    ) -> Tuple[ApiResult[ConnectionRecord], Optional[DeployLinkError]]:
        config = await self._backend.get_site_config(target_id)
        if not config.success or config.data is None:
            self._diagnostics.log(
                telemetry_info("error", "getSiteConfig", "failed", {"error": config.error_message})
            )
            return ApiResult.fail(config.error), None

        try:
            provider_identity = parse_provider_identity(config.data.properties.scm_type)
        except UnknownProviderException as exc:
            self._diagnostics.log(
                telemetry_info(
                    "error",
                    "getSiteConfig",
                    "unknownScmType",
                    {"scmType": config.data.properties.scm_type},
                )
            )
            return ApiResult.fail(exc.error), None

        if provider_identity == ProviderIdentity.NONE:
            return ApiResult.ok(ConnectionRecord.disconnected()), None
        if not self._registry.uses_oauth(provider_identity):
            return ApiResult.ok(ConnectionRecord(provider_identity=provider_identity)), None

        linkage = await self._backend.get_source_control(target_id)
        if not linkage.success or linkage.data is None:
            self._diagnostics.log(
                telemetry_info("error", "getSourceControls", "failed", {"error": linkage.error_message})
            )
            error = linkage.error or create_fetch_error("Source control linkage response was empty.")
            return ApiResult.ok(ConnectionRecord(provider_identity=provider_identity)), error

        reference = linkage.data.properties.repo_url or ""
        if not folder_from_reference(reference):
            self._diagnostics.log(
                telemetry_info(
                    "error",
                    "splitRepositoryUrl",
                    "failed",
                    {"message": f"Repository url has no folder segment: '{reference}'"},
                )
            )

        record = ConnectionRecord(provider_identity=provider_identity, repository_reference=reference)
        return ApiResult.ok(record), None

    async def refresh_account(self, provider_identity: Optional[ProviderIdentity]) -> None:
        """アカウントのスライスだけを更新する"""
        if provider_identity is None or not self._registry.uses_oauth(provider_identity):
            self._store.set_account(AccountSlice(status=FetchStatus.FRESH))
            return

        self._store.mark_account_loading()
        result = await self.fetch_account_identity(provider_identity)
        if result.success:
            self._store.set_account(AccountSlice(status=FetchStatus.FRESH, identity=result.data))
        else:
            self._store.set_account(
                AccountSlice(status=FetchStatus.ERROR, needs_authorization=True, error=result.error)
            )

    async def refresh_record(self) -> Optional[ConnectionRecord]:
        """接続レコードのスライスだけを更新する"""
        self._store.mark_record_loading()
        result, linkage_error = await self._fetch_record(self._store.target_id)
        if result.success and result.data is not None:
            if linkage_error is None:
                self._store.replace_record(result.data)
            else:
                logger.warning(f"Fetching source control linkage failed: {linkage_error.message}")
                self._store.set_record(
                    RecordSlice(status=FetchStatus.FRESH, record=result.data, error=linkage_error)
                )
            return result.data

        logger.warning(f"Fetching connection record failed: {result.error_message}")
        self._store.set_record(
            RecordSlice(
                status=FetchStatus.ERROR,
                record=self._store.snapshot().record.record,
                error=result.error,
            )
        )
        return None

    async def refresh(self, provider_identity: Optional[ProviderIdentity] = None) -> None:
        """両方のスライスを再取得する

        プロバイダが分かっていれば2つの取得を並行に実行する。分からない場合は
        先に接続レコードを取得し、そのプロバイダでアカウントを取得する。
        """
        identity = provider_identity
        if identity is None:
            cached = self._store.snapshot().record.record
            if cached is not None and cached.provider_identity != ProviderIdentity.NONE:
                identity = cached.provider_identity

        if identity is not None:
            await asyncio.gather(self.refresh_record(), self.refresh_account(identity))
            return

        record = await self.refresh_record()
        await self.refresh_account(record.provider_identity if record else None)
