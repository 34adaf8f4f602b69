"""設定管理 - 設定の読み込みと管理"""

from deploylink.config.settings import (
    CONFIG_PATH_ENV,
    DeployLinkSettings,
    SettingsLoader,
    mask_secret,
)

__all__ = [
    "CONFIG_PATH_ENV",
    "DeployLinkSettings",
    "SettingsLoader",
    "mask_secret",
]
