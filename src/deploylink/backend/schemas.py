"""
バックエンドのレスポンスモデル
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceControlProperties(BaseModel):
    """ソース管理リンクのプロパティ"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    repo_url: Optional[str] = Field(default=None, alias="repoUrl")
    branch: Optional[str] = None
    is_manual_integration: Optional[bool] = Field(default=None, alias="isManualIntegration")


class SourceControlResponse(BaseModel):
    """GET sourcecontrols/web のレスポンス"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    properties: SourceControlProperties


class SiteConfigProperties(BaseModel):
    """サイト構成のうち接続状態に関係する部分"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    scm_type: Optional[str] = Field(default=None, alias="scmType")


class SiteConfigResponse(BaseModel):
    """GET/PATCH config/web のレスポンス"""
    model_config = ConfigDict(extra="allow")

    properties: SiteConfigProperties = Field(default_factory=SiteConfigProperties)


class ArmErrorBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: Optional[str] = None
    message: Optional[str] = None


class ArmErrorResponse(BaseModel):
    """ARM 形式のエラーレスポンス"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    error: Optional[ArmErrorBody] = None
    message: Optional[str] = Field(default=None, alias="Message")


def extract_error_message(payload: Any, fallback: str) -> str:
    """エラーレスポンスから人が読めるメッセージを取り出す"""
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    if not isinstance(payload, dict):
        return fallback
    try:
        parsed = ArmErrorResponse.model_validate(payload)
    except ValueError:
        return fallback
    if parsed.error and parsed.error.message:
        return parsed.error.message
    if parsed.message:
        return parsed.message
    return fallback


def lookup_path(payload: Dict[str, Any], path: tuple) -> Optional[Any]:
    """入れ子の辞書をキーの並びで辿る。途中で欠けていれば None"""
    current: Any = payload
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current
