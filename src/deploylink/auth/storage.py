"""バックエンド資格情報の安全な保存を提供する。"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable
import warnings

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

DEFAULT_ACCOUNT = "backend"


class CredentialStore:
    """操作者のバックエンド用ベアラートークンの保存と取得を管理する。

    プロバイダのアクセストークンはバックエンドが所有するため、ここには保存しない。
    """

    def __init__(self, keyring_service: str = "deploylink", fallback_path: Path | None = None) -> None:
        """CredentialStoreを初期化する。

        Args:
            keyring_service: keyringに保存する際のサービス名。
            fallback_path: keyringが使えない場合の保存先。
        """

        self._keyring_service = keyring_service
        self._fallback_path = fallback_path or Path.home() / ".deploylink" / "credentials.json"
        self._use_keyring = True

    def save(self, secret: str, account: str = DEFAULT_ACCOUNT) -> None:
        """資格情報を保存する。"""

        if self._use_keyring:
            try:
                keyring.set_password(self._keyring_service, account, secret)
                return
            except KeyringError:
                self._switch_to_fallback()

        entries = self._read_fallback()
        entries[account] = secret
        self._write_fallback(entries)

    def load(self, account: str = DEFAULT_ACCOUNT) -> str | None:
        """資格情報を取得する。存在しない場合はNone。"""

        if self._use_keyring:
            try:
                return keyring.get_password(self._keyring_service, account)
            except KeyringError:
                self._switch_to_fallback()

        return self._read_fallback().get(account)

    def delete(self, account: str = DEFAULT_ACCOUNT) -> bool:
        """資格情報を削除する。

        Returns:
            削除対象が存在したかどうか。
        """

        if self._use_keyring:
            try:
                keyring.delete_password(self._keyring_service, account)
                return True
            except PasswordDeleteError:
                return False
            except KeyringError:
                self._switch_to_fallback()

        entries = self._read_fallback()
        if account not in entries:
            return False
        entries.pop(account)
        self._write_fallback(entries)
        return True

    def provider(self, account: str = DEFAULT_ACCOUNT) -> Callable[[], str | None]:
        """バックエンドクライアントに渡す資格情報取得関数を返す。"""

        return lambda: self.load(account)

    def _switch_to_fallback(self) -> None:
        if self._use_keyring:
            warnings.warn(
                "keyringが利用できないため、ローカルファイルに保存します。",
                RuntimeWarning,
                stacklevel=3,
            )
            self._use_keyring = False

    def _read_fallback(self) -> dict[str, str]:
        if not self._fallback_path.exists():
            return {}

        os.chmod(self._fallback_path, 0o600)
        try:
            with self._fallback_path.open("r", encoding="utf-8") as file:
                data = json.load(file)
        except json.JSONDecodeError:
            warnings.warn(
                "資格情報ファイルの形式が不正です。空として扱います。",
                RuntimeWarning,
                stacklevel=3,
            )
            return {}

        if not isinstance(data, dict):
            return {}

        return {str(key): str(value) for key, value in data.items()}

    def _write_fallback(self, entries: dict[str, str]) -> None:
        self._fallback_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        with self._fallback_path.open("w", encoding="utf-8") as file:
            json.dump(entries, file, ensure_ascii=False, indent=2)
        os.chmod(self._fallback_path, 0o600)
