"""
共通データモデル

プロバイダ接続のオーケストレーション全体で使用されるデータ構造を定義
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

from deploylink.errors import (
    DeployLinkError,
    UnknownProviderException,
    create_unknown_provider_error,
)

T = TypeVar("T")


class ProviderIdentity(Enum):
    """ソース管理プロバイダの識別子

    値はバックエンドの scmType 表記に合わせる。
    """
    GITHUB = "GitHub"
    BITBUCKET = "BitbucketGit"
    DROPBOX = "Dropbox"
    ONEDRIVE = "OneDrive"
    AZURE_REPOS = "Vso"
    LOCAL_GIT = "LocalGit"
    EXTERNAL_GIT = "ExternalGit"
    NONE = "None"


# バックエンドが返す scmType の別名
SCM_TYPE_ALIASES: Dict[str, ProviderIdentity] = {
    "github": ProviderIdentity.GITHUB,
    "bitbucketgit": ProviderIdentity.BITBUCKET,
    "bitbuckethg": ProviderIdentity.BITBUCKET,
    "bitbucket": ProviderIdentity.BITBUCKET,
    "dropbox": ProviderIdentity.DROPBOX,
    "onedrive": ProviderIdentity.ONEDRIVE,
    "vso": ProviderIdentity.AZURE_REPOS,
    "vstsrm": ProviderIdentity.AZURE_REPOS,
    "azurerepos": ProviderIdentity.AZURE_REPOS,
    "localgit": ProviderIdentity.LOCAL_GIT,
    "externalgit": ProviderIdentity.EXTERNAL_GIT,
    "none": ProviderIdentity.NONE,
    "": ProviderIdentity.NONE,
}


def parse_provider_identity(value: Any) -> ProviderIdentity:
    """scmType 文字列などから ProviderIdentity を解決する

    Args:
        value: ProviderIdentity またはバックエンドの scmType 文字列

    Returns:
        ProviderIdentity: 解決結果

    Raises:
        UnknownProviderException: 列挙外の値が指定された場合
    """
    if isinstance(value, ProviderIdentity):
        return value
    if value is None:
        return ProviderIdentity.NONE
    normalized = str(value).strip().replace("-", "").replace("_", "").lower()
    identity = SCM_TYPE_ALIASES.get(normalized)
    if identity is None:
        raise UnknownProviderException(create_unknown_provider_error(value))
    return identity


class FetchStatus(Enum):
    """データソースごとの読み込み状態（三値）"""
    LOADING = "loading"
    FRESH = "fresh"
    ERROR = "error"


class DisconnectState(Enum):
    """切断ワークフローの状態"""
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    DISCONNECTED = "disconnected"
    DISCONNECT_FAILED = "disconnect_failed"


class CancellationReason(Enum):
    """認可ハンドシェイクがリダイレクトなしで終わった理由"""
    CLOSED = "closed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionRecord:
    """デプロイ先とプロバイダの紐付け（バックエンドが正）

    部分更新は行わず、常にレコード全体を置き換える。

    Attributes:
        provider_identity: 接続中のプロバイダ
        repository_reference: リポジトリURLまたはパス
    """
    provider_identity: ProviderIdentity
    repository_reference: str = ""

    @property
    def folder(self) -> str:
        """リポジトリ参照の末尾セグメントを表示用フォルダとして返す"""
        return folder_from_reference(self.repository_reference)

    @classmethod
    def disconnected(cls) -> "ConnectionRecord":
        """未接続を表すレコード"""
        return cls(provider_identity=ProviderIdentity.NONE)


def folder_from_reference(reference: str) -> str:
    """リポジトリ参照を "/" で分割し、末尾セグメントをフォルダとして返す

    セグメントが2未満の場合は空文字列を返す。
    """
    segments = (reference or "").split("/")
    if len(segments) >= 2:
        return f"/{segments[-1]}"
    return ""


@dataclass(frozen=True)
class AccountIdentity:
    """プロバイダ側でサインイン中のアカウント"""
    provider_identity: ProviderIdentity
    display_name: str


@dataclass(frozen=True)
class AuthToken:
    """プロバイダから得た不透明な資格情報

    交換呼び出しの間だけ保持し、永続化後は破棄する。
    """
    provider_identity: ProviderIdentity
    payload: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"AuthToken(provider_identity={self.provider_identity.value}, payload=<redacted>)"


@dataclass(frozen=True)
class AuthorizationResult:
    """認可ハンドシェイク1回分の結果

    redirect_url があれば成功、なければキャンセル/失敗を表す。
    """
    provider_identity: ProviderIdentity
    redirect_url: Optional[str] = None
    cancellation_reason: Optional[CancellationReason] = None

    @property
    def is_cancelled(self) -> bool:
        return self.redirect_url is None

    @classmethod
    def cancelled(
        cls,
        provider_identity: ProviderIdentity,
        reason: CancellationReason = CancellationReason.CANCELLED,
    ) -> "AuthorizationResult":
        return cls(provider_identity=provider_identity, cancellation_reason=reason)


@dataclass
class ApiResult(Generic[T]):
    """バックエンド呼び出しの結果

    ネットワーク/バックエンドの失敗は例外にせず、この型で返す。

    Attributes:
        success: 成功したかどうか
        data: 成功時の値
        error: 失敗時のエラー情報
    """
    success: bool
    data: Optional[T] = None
    error: Optional[DeployLinkError] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "ApiResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: DeployLinkError) -> "ApiResult[T]":
        return cls(success=False, error=error)

    @property
    def error_message(self) -> Optional[str]:
        if self.error:
            return self.error.message
        return None

    @property
    def log_level(self) -> int:
        if self.error:
            return self.error.log_level
        return logging.INFO
