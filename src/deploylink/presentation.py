"""
表示層との境界

通知・診断ログ・確認ダイアログ・フォーム状態のインターフェースと既定実装。
描画そのものは扱わない。
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)
telemetry_logger = logging.getLogger("deploylink.telemetry")

# 通知文言の既定値（翻訳は表示層の責務）
DEFAULT_MESSAGES: Dict[str, str] = {
    "disconnectingDeployment": "Disconnecting deployment",
    "disconnectingDeploymentSuccess": "Successfully disconnected deployment",
    "disconnectingDeploymentFail": "Failed to disconnect deployment",
    "authorizingProvider": "Authorizing provider account",
    "authorizingProviderSuccess": "Successfully authorized provider account",
    "authorizingProviderFail": "Failed to authorize provider account",
    "loading": "Loading...",
    "deploymentCenterErrorFetchingInfo": "Error fetching information",
    "deploymentCenterSettingsConfiguredViewUserNotAuthorized": "You are not authorized. Please authorize to continue.",
    "kuduDisconnectConfirmationTitle": "Disconnect deployment",
    "disconnectConfirm": "Are you sure you want to disconnect?",
}


def message(key: str) -> str:
    """文言キーを既定の文言に変換する。未知のキーはそのまま返す"""
    return DEFAULT_MESSAGES.get(key, key)


@dataclass(frozen=True)
class DiagnosticEvent:
    """診断テレメトリのイベント

    Attributes:
        level: "error" / "warning" / "info"
        identifier: 発生箇所（例: getDropboxUser）
        action: 結果（例: failed）
        data: 追加情報
    """
    level: str
    identifier: str
    action: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "identifier": self.identifier,
            "action": self.action,
            "data": self.data,
        }


def telemetry_info(
    level: str, identifier: str, action: str, data: Optional[Dict[str, Any]] = None
) -> DiagnosticEvent:
    """診断イベントを組み立てる"""
    return DiagnosticEvent(level=level, identifier=identifier, action=action, data=dict(data or {}))


class DiagnosticSink(Protocol):
    """診断ログの出力先"""

    def log(self, event: DiagnosticEvent) -> None: ...


class LoggingDiagnosticSink:
    """診断イベントを JSON として deploylink.telemetry ロガーに書き出す"""

    _LEVELS = {
        "error": logging.ERROR,
        "warning": logging.WARNING,
        "info": logging.INFO,
    }

    def __init__(self, target_logger: Optional[logging.Logger] = None) -> None:
        self._logger = target_logger or telemetry_logger

    def log(self, event: DiagnosticEvent) -> None:
        level = self._LEVELS.get(event.level, logging.INFO)
        self._logger.log(level, json.dumps(event.to_dict(), ensure_ascii=False, default=str))


class Notifier(Protocol):
    """操作の進行と結果を表示する通知"""

    def start(self, notification_id: str, text: str) -> None: ...

    def stop(self, notification_id: str, success: bool, text: str) -> None: ...


class LoggingNotifier:
    """通知をログに出力する既定実装"""

    def start(self, notification_id: str, text: str) -> None:
        logger.info(f"[{notification_id}] {text}")

    def stop(self, notification_id: str, success: bool, text: str) -> None:
        if success:
            logger.info(f"[{notification_id}] {text}")
        else:
            logger.error(f"[{notification_id}] {text}")


class FormState(Protocol):
    """キャッシュされたフォーム値"""

    def reset(self) -> None: ...


@dataclass
class InMemoryFormState:
    """フォーム値を辞書で保持する既定実装"""
    initial: Dict[str, Any] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.values:
            self.values = dict(self.initial)

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def reset(self) -> None:
        self.values = dict(self.initial)


DialogAction = Callable[[], Union[None, Awaitable[Any]]]


@dataclass
class ConfirmDialog:
    """確認ダイアログの状態

    表示/非表示のフラグと、OK(primary)/キャンセル(default)の動作だけを持つ。
    """
    title: str
    content: str
    primary_action: Optional[DialogAction] = None
    default_action: Optional[DialogAction] = None
    hidden: bool = True

    def show(self) -> None:
        self.hidden = False

    def hide(self) -> None:
        self.hidden = True

    async def confirm(self) -> Any:
        """primary を実行する。非表示のときは何もしない"""
        if self.hidden:
            return None
        self.hide()
        return await self._run(self.primary_action)

    async def dismiss(self) -> Any:
        if self.hidden:
            return None
        self.hide()
        return await self._run(self.default_action)

    async def _run(self, action: Optional[DialogAction]) -> Any:
        if action is None:
            return None
        outcome = action()
        if asyncio.iscoroutine(outcome) or isinstance(outcome, asyncio.Future):
            return await outcome
        return outcome
