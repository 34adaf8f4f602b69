"""
出力フォーマッタ

接続状態のスナップショットと操作結果を指定形式（JSON/テキスト）に変換する
"""

import json
from enum import Enum
from typing import Any, Dict, Optional

from deploylink.core.state import ConnectionSnapshot
from deploylink.models import ApiResult
from deploylink.presentation import message
from deploylink.providers.registry import ProviderRegistry


class OutputFormat(Enum):
    """出力形式"""
    JSON = "json"
    TEXT = "text"


class OutputFormatter:
    """接続状態を指定形式にフォーマットするクラス"""

    def __init__(self, registry: Optional[ProviderRegistry] = None) -> None:
        self._registry = registry or ProviderRegistry()

    def format(self, snapshot: ConnectionSnapshot, format_type: OutputFormat) -> str:
        """スナップショットを指定形式にフォーマット

        Args:
            snapshot: 接続状態
            format_type: 出力形式

        Returns:
            フォーマットされた文字列
        """
        if format_type == OutputFormat.JSON:
            return json.dumps(self._build_output_dict(snapshot), ensure_ascii=False, indent=2)
        elif format_type == OutputFormat.TEXT:
            return self._to_text(snapshot)
        else:
            raise ValueError(f"Unsupported format type: {format_type}")

    def format_result(self, operation: str, result: ApiResult[Any], format_type: OutputFormat) -> str:
        """操作結果をフォーマット"""
        data: Dict[str, Any] = {"operation": operation, "success": result.success}
        if result.error is not None:
            data["error"] = {"code": result.error.code, "message": result.error.message}
        if format_type == OutputFormat.JSON:
            return json.dumps(data, ensure_ascii=False, indent=2)
        if result.success:
            return f"{operation}: ok"
        return f"{operation}: failed [{result.error.code}] {result.error.message}" if result.error else f"{operation}: failed"

    def _to_text(self, snapshot: ConnectionSnapshot) -> str:
        lines = [f"Target: {snapshot.target_id}"]

        record = snapshot.record.record
        if record is not None:
            label = self._registry.display_label_key(record.provider_identity)
            descriptor = self._registry.resolve(record.provider_identity)
            lines.append(f"Source: {descriptor.display_name or 'None'} ({label or '-'})")
            if record.repository_reference:
                lines.append(f"Repository: {record.repository_reference}")
        else:
            lines.append("Source: unknown")

        lines.append(f"Folder: {message(snapshot.folder_display()) or '-'}")

        signed_in = snapshot.signed_in_as()
        if signed_in.show_not_authorized_banner:
            lines.append(f"Signed in as: - ({message('deploymentCenterSettingsConfiguredViewUserNotAuthorized')})")
        elif signed_in.text:
            lines.append(f"Signed in as: {message(signed_in.text)}")

        lines.append(f"Disconnect state: {snapshot.disconnect_state.value}")
        return "\n".join(lines)

    def _build_output_dict(self, snapshot: ConnectionSnapshot) -> Dict[str, Any]:
        record = snapshot.record.record
        signed_in = snapshot.signed_in_as()
        output: Dict[str, Any] = {
            "target_id": snapshot.target_id,
            "record": {
                "status": snapshot.record.status.value,
                "provider": record.provider_identity.value if record else None,
                "source_label_key": (
                    self._registry.display_label_key(record.provider_identity) if record else None
                ),
                "repository_reference": record.repository_reference if record else None,
                "folder": snapshot.folder_display(),
            },
            "account": {
                "status": snapshot.account.status.value,
                "display_name": signed_in.text,
                "needs_authorization": snapshot.needs_authorization,
            },
            "disconnect_state": snapshot.disconnect_state.value,
        }
        if snapshot.record.error is not None:
            output["record"]["error"] = snapshot.record.error.message
        if snapshot.account.error is not None:
            output["account"]["error"] = snapshot.account.error.message
        return output
