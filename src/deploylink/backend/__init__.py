"""バックエンドクライアント - デプロイ先の接続設定APIとの通信"""

from deploylink.backend.client import DeploymentCenterClient
from deploylink.backend.schemas import (
    SiteConfigResponse,
    SourceControlResponse,
    extract_error_message,
)

__all__ = [
    "DeploymentCenterClient",
    "SiteConfigResponse",
    "SourceControlResponse",
    "extract_error_message",
]
