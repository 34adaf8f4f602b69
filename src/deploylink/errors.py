"""
エラー定義

deploylinkで使用されるエラーコードと例外クラス
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """エラーコード

    カテゴリ別にエラーコードを定義:
    - CONFIG_xxx: 設定エラー
    - PROVIDER_xxx: プロバイダ解決エラー
    - AUTH_xxx: 認可ハンドシェイク/トークン交換エラー
    - API_xxx: バックエンドAPIエラー
    - DISCONNECT_xxx: 切断ワークフローエラー
    - ORCH_xxx: オーケストレータの状態エラー
    """
    # 設定エラー
    CONFIG_MISSING_VALUE = "CONFIG_001"
    CONFIG_INVALID_VALUE = "CONFIG_002"

    # プロバイダエラー
    PROVIDER_UNKNOWN = "PROVIDER_001"
    PROVIDER_NOT_OAUTH = "PROVIDER_002"

    # 認可エラー
    AUTH_EXCHANGE_FAILED = "AUTH_001"
    AUTH_PERSIST_FAILED = "AUTH_002"
    AUTH_INVALID_REDIRECT = "AUTH_003"

    # APIエラー
    API_TIMEOUT = "API_001"
    API_AUTH_ERROR = "API_002"
    API_ERROR = "API_003"
    API_INVALID_RESPONSE = "API_004"
    API_FETCH_FAILED = "API_005"

    # 切断エラー
    DISCONNECT_CONFIG_UPDATE_FAILED = "DISCONNECT_001"
    DISCONNECT_LINKAGE_DELETE_FAILED = "DISCONNECT_002"

    # オーケストレータエラー
    ORCH_OPERATION_IN_PROGRESS = "ORCH_001"


@dataclass
class DeployLinkError:
    """deploylinkエラー情報

    Attributes:
        code: エラーコード文字列
        message: エラーメッセージ
        details: 追加のエラー詳細情報
        recoverable: 復旧可能かどうか（操作者の再試行で解消し得るか）
        log_level: ログ出力時のレベル
    """
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    recoverable: bool = False
    log_level: int = logging.ERROR


class DeployLinkException(Exception):
    """deploylink例外クラス

    DeployLinkErrorをラップする例外クラス
    """

    def __init__(self, error: DeployLinkError):
        """DeployLinkExceptionを初期化

        Args:
            error: DeployLinkErrorインスタンス
        """
        self.error = error
        self.log_level = error.log_level
        super().__init__(f"[{error.code}] {error.message}")


class UnknownProviderException(DeployLinkException):
    """未知のプロバイダ識別子（プログラミングエラー、致命的）"""


class ConfigurationException(DeployLinkException):
    """設定値の欠落・不正"""


ERROR_CODE_LOG_LEVEL: Dict[ErrorCode, int] = {
    ErrorCode.PROVIDER_UNKNOWN: logging.CRITICAL,
    ErrorCode.DISCONNECT_LINKAGE_DELETE_FAILED: logging.ERROR,
    ErrorCode.DISCONNECT_CONFIG_UPDATE_FAILED: logging.ERROR,
    ErrorCode.AUTH_EXCHANGE_FAILED: logging.ERROR,
    ErrorCode.AUTH_PERSIST_FAILED: logging.ERROR,
    ErrorCode.API_FETCH_FAILED: logging.WARNING,
    ErrorCode.ORCH_OPERATION_IN_PROGRESS: logging.WARNING,
}


# よく使用されるエラーのファクトリ関数
def create_unknown_provider_error(provider: Any) -> DeployLinkError:
    """未知プロバイダエラーを作成

    Args:
        provider: 解決できなかったプロバイダ識別子

    Returns:
        DeployLinkError: プロバイダエラー
    """
    return DeployLinkError(
        code=ErrorCode.PROVIDER_UNKNOWN.value,
        message=f"Unknown provider '{provider}'.",
        details={"provider": str(provider)},
        recoverable=False,
        log_level=logging.CRITICAL,
    )


def create_config_error(
    message: str,
    details: Optional[Dict[str, Any]] = None,
    code: ErrorCode = ErrorCode.CONFIG_INVALID_VALUE,
) -> DeployLinkError:
    """設定エラーを作成

    Args:
        message: エラーメッセージ
        details: 追加詳細
        code: エラーコード

    Returns:
        DeployLinkError: 設定エラー
    """
    return DeployLinkError(
        code=code.value,
        message=message,
        details=details,
        recoverable=False,
        log_level=logging.ERROR,
    )


def create_api_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    recoverable: bool = True,
    log_level: Optional[int] = None,
) -> DeployLinkError:
    """APIエラーを作成

    Args:
        code: エラーコード
        message: エラーメッセージ
        details: 追加詳細
        recoverable: 復旧可能かどうか

    Returns:
        DeployLinkError: APIエラー
    """
    return DeployLinkError(
        code=code.value,
        message=message,
        details=details,
        recoverable=recoverable,
        log_level=log_level or ERROR_CODE_LOG_LEVEL.get(code, logging.ERROR),
    )


def create_fetch_error(
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> DeployLinkError:
    """取得失敗エラーを作成

    表示は空値/エラー値に縮退させ、描画は止めない。
    """
    return create_api_error(ErrorCode.API_FETCH_FAILED, message, details)


def create_in_progress_error(operation: str) -> DeployLinkError:
    """実行中の操作と競合した場合のエラーを作成"""
    return create_api_error(
        ErrorCode.ORCH_OPERATION_IN_PROGRESS,
        f"Another operation is already in progress ({operation}).",
        details={"operation": operation},
    )
