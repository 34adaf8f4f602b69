"""
接続状態ストア

デプロイ先ごとに、アカウント/接続レコードの読み込み状態と切断状態を保持する。
各フィールドの書き込み元は1つに限定し、外部には読み取り専用のスナップショットを渡す。

書き込み元:
    account         -> ConnectionStateReader
    record          -> ConnectionStateReader / DisconnectWorkflow（全体置き換えのみ）
    disconnect_state -> DisconnectWorkflow
    busy_operation  -> ProviderConnectionOrchestrator
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional

from deploylink.errors import DeployLinkError
from deploylink.models import (
    AccountIdentity,
    ConnectionRecord,
    DisconnectState,
    FetchStatus,
)

logger = logging.getLogger(__name__)

LOADING_KEY = "loading"
ERROR_FETCHING_INFO_KEY = "deploymentCenterErrorFetchingInfo"


@dataclass(frozen=True)
class AccountSlice:
    """プロバイダアカウントの読み込み状態

    Attributes:
        status: 読み込み状態
        identity: 取得できたアカウント
        needs_authorization: 再認可が必要かどうか
        error: 失敗時のエラー
        previous_display_name: 読み込み中に表示する直前の値
    """
    status: FetchStatus = FetchStatus.LOADING
    identity: Optional[AccountIdentity] = None
    needs_authorization: bool = False
    error: Optional[DeployLinkError] = None
    previous_display_name: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        return self.identity.display_name if self.identity else None


@dataclass(frozen=True)
class RecordSlice:
    """接続レコードの読み込み状態"""
    status: FetchStatus = FetchStatus.LOADING
    record: Optional[ConnectionRecord] = None
    folder: str = ""
    error: Optional[DeployLinkError] = None
    previous_folder: Optional[str] = None


@dataclass(frozen=True)
class SignedInAsView:
    """「サインイン中のアカウント」欄の表示モデル

    Attributes:
        text: 表示するアカウント名（読み込み中は直前値または loading キー）
        show_not_authorized_banner: 未認可バナーを表示するか
        show_authorize_action: 認可ボタンを表示するか
    """
    text: Optional[str]
    show_not_authorized_banner: bool
    show_authorize_action: bool


@dataclass(frozen=True)
class ConnectionSnapshot:
    """ある時点の接続状態（読み取り専用）"""
    target_id: str
    account: AccountSlice = field(default_factory=AccountSlice)
    record: RecordSlice = field(default_factory=RecordSlice)
    disconnect_state: DisconnectState = DisconnectState.CONNECTED
    busy_operation: Optional[str] = None

    @property
    def is_busy(self) -> bool:
        return self.busy_operation is not None

    @property
    def needs_authorization(self) -> bool:
        return self.account.needs_authorization

    def signed_in_as(self, cached_name: Optional[str] = None) -> SignedInAsView:
        """サインイン中アカウント欄の表示を組み立てる

        Args:
            cached_name: フォームにキャッシュされているアカウント名
        """
        account = self.account
        if account.status == FetchStatus.LOADING:
            text = cached_name or account.previous_display_name or LOADING_KEY
            return SignedInAsView(text=text, show_not_authorized_banner=False, show_authorize_action=False)
        if account.needs_authorization:
            return SignedInAsView(text=None, show_not_authorized_banner=True, show_authorize_action=True)
        return SignedInAsView(
            text=account.display_name,
            show_not_authorized_banner=False,
            show_authorize_action=False,
        )

    def folder_display(self, cached_folder: Optional[str] = None) -> str:
        """フォルダ欄の表示文字列"""
        record = self.record
        if record.status == FetchStatus.LOADING:
            if cached_folder:
                return cached_folder
            if record.previous_folder is not None:
                return record.previous_folder
            return LOADING_KEY
        if record.status == FetchStatus.ERROR or record.error is not None:
            return ERROR_FETCHING_INFO_KEY
        return record.folder


Listener = Callable[[ConnectionSnapshot], None]


class ConnectionStateStore:
    """1つのデプロイ先に対する接続状態を保持する"""

    def __init__(self, target_id: str) -> None:
        self._snapshot = ConnectionSnapshot(target_id=target_id)
        self._listeners: List[Listener] = []

    @property
    def target_id(self) -> str:
        return self._snapshot.target_id

    def snapshot(self) -> ConnectionSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """変更通知を購読する。戻り値を呼ぶと購読を解除する"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── アカウント ──────────────────────────────────────────

    def mark_account_loading(self) -> None:
        current = self._snapshot.account
        previous = current.display_name or current.previous_display_name
        self._publish(account=AccountSlice(status=FetchStatus.LOADING, previous_display_name=previous))

    def set_account(self, account: AccountSlice) -> None:
        self._publish(account=account)

    # ── 接続レコード ────────────────────────────────────────

    def mark_record_loading(self) -> None:
        current = self._snapshot.record
        previous = current.folder if current.status == FetchStatus.FRESH else current.previous_folder
        self._publish(
            record=RecordSlice(status=FetchStatus.LOADING, record=current.record, previous_folder=previous)
        )

    def set_record(self, record: RecordSlice) -> None:
        self._publish(record=record)

    def replace_record(self, record: ConnectionRecord) -> None:
        """レコードを丸ごと置き換え、FRESH として公開する"""
        self._publish(record=RecordSlice(status=FetchStatus.FRESH, record=record, folder=record.folder))

    # ── 操作状態 ────────────────────────────────────────────

    def set_disconnect_state(self, state: DisconnectState) -> None:
        self._publish(disconnect_state=state)

    def set_busy(self, operation: Optional[str]) -> None:
        self._publish(busy_operation=operation)

    def _publish(self, **changes: object) -> None:
        self._snapshot = replace(self._snapshot, **changes)
        snapshot = self._snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Connection state listener failed")
