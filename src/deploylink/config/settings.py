"""Pydantic V2 ベースの統合設定モデル"""

import logging
import os
import secrets
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deploylink.errors import ConfigurationException, ErrorCode, create_config_error

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAMES = ("deploylink.yaml", "deploylink.yml")
CONFIG_PATH_ENV = "DEPLOYLINK_CONFIG"


def mask_secret(value: Optional[str]) -> str:
    """鍵やトークンをマスクしてログ出力を避ける"""
    if not value:
        return "***"
    if len(value) <= 4:
        return "*" * len(value)
    return f"***{value[-4:]}"


class DeployLinkSettings(BaseSettings):
    """deploylink の統合設定"""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOYLINK_",
        env_file=".env",
        extra="forbid",
    )

    # バックエンド設定
    backend_url: str = Field(default="https://management.azure.com")
    portal_url: str = Field(default="https://deploy.azure.com")
    api_version: str = Field(default="2022-03-01")
    request_timeout: float = Field(default=30.0, gt=0)

    # ハンドシェイク設定
    handshake_timeout: float = Field(default=180.0, gt=0)
    handshake_poll_interval: float = Field(default=0.5, gt=0)
    callback_host: str = "127.0.0.1"
    callback_port: int = Field(default=0, ge=0, le=65535)
    callback_path: str = "/auth/callback"
    use_callback_server: bool = True
    session_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    authorize_urls: Dict[str, str] = Field(default_factory=dict)

    # 資格情報・ログ設定
    keyring_service: str = "deploylink"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[Any, ...]:
        """設定ソースの優先順位をカスタマイズ（env > dotenv > init）"""
        return (
            env_settings,
            dotenv_settings,
            init_settings,
            file_secret_settings,
        )

    @field_validator("backend_url", "portal_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """末尾のスラッシュを除去する"""
        if not value or not value.strip():
            raise ValueError("URL must not be empty")
        return value.strip().rstrip("/")

    @field_validator("callback_path")
    @classmethod
    def validate_callback_path(cls, value: str) -> str:
        """コールバックパスは / 始まりに正規化する"""
        value = value.strip() or "/"
        return value if value.startswith("/") else f"/{value}"

    def dump_masked(self) -> dict:
        """機微情報をマスクした設定を返却する"""
        data = self.model_dump()
        data["session_secret"] = mask_secret(data.get("session_secret"))
        return data


class SettingsLoader:
    """設定ローダー(env/yaml + キャッシュ)"""

    def __init__(self) -> None:
        self._cache: Optional[DeployLinkSettings] = None

    def load(
        self,
        config_path: Optional[Path] = None,
        force_reload: bool = False,
    ) -> DeployLinkSettings:
        """設定を読み込む

        YAMLファイルの値は環境変数で上書きされる。

        Raises:
            ConfigurationException: ファイルまたは値が不正な場合
        """
        if self._cache is not None and not force_reload:
            return self._cache

        file_values = self._load_from_file(config_path)
        try:
            settings = DeployLinkSettings(**file_values)
        except ValidationError as exc:
            raise ConfigurationException(
                create_config_error(
                    "Invalid deploylink configuration.",
                    details={"errors": exc.errors(include_url=False)},
                )
            ) from exc

        self._cache = settings
        return settings

    def _resolve_path(self, config_path: Optional[Path]) -> Optional[Path]:
        if config_path is not None:
            return Path(config_path)
        env_path = os.environ.get(CONFIG_PATH_ENV)
        if env_path:
            return Path(env_path)
        for name in DEFAULT_CONFIG_FILENAMES:
            candidate = Path.cwd() / name
            if candidate.exists():
                return candidate
        return None

    def _load_from_file(self, config_path: Optional[Path]) -> Dict[str, Any]:
        path = self._resolve_path(config_path)
        if path is None:
            return {}
        if not path.exists():
            raise ConfigurationException(
                create_config_error(
                    f"Config file not found: {path}",
                    details={"path": str(path)},
                    code=ErrorCode.CONFIG_MISSING_VALUE,
                )
            )

        try:
            with path.open("r", encoding="utf-8") as file:
                data = yaml.safe_load(file) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationException(
                create_config_error(
                    f"Failed to parse config file: {path}",
                    details={"path": str(path), "error": str(exc)},
                )
            ) from exc

        if not isinstance(data, dict):
            raise ConfigurationException(
                create_config_error(
                    "Config file must contain a mapping at the top level.",
                    details={"path": str(path)},
                )
            )

        logger.debug(f"Loaded configuration file: {path}")
        return data
