"""
DeployLinkCLIメインモジュール

コマンドハンドラーとオーケストレータの統合
"""

from __future__ import annotations

import asyncio
import getpass
import sys
from typing import Any, Callable, Dict, List, Optional

from deploylink import __version__
from deploylink.auth.storage import CredentialStore
from deploylink.cli.parser import VALID_COMMANDS
from deploylink.config.settings import DeployLinkSettings
from deploylink.core.orchestrator import ProviderConnectionOrchestrator
from deploylink.errors import DeployLinkException
from deploylink.models import FetchStatus, ProviderIdentity, parse_provider_identity
from deploylink.output.formatter import OutputFormat, OutputFormatter
from deploylink.presentation import Notifier

OrchestratorFactory = Callable[[str], ProviderConnectionOrchestrator]


class ConsoleNotifier:
    """操作通知を標準エラー出力に表示する"""

    def start(self, notification_id: str, text: str) -> None:
        print(f"... {text}", file=sys.stderr)

    def stop(self, notification_id: str, success: bool, text: str) -> None:
        mark = "ok" if success else "error"
        print(f"[{mark}] {text}", file=sys.stderr)


class DeployLinkCLI:
    """deploylink のコマンド実行"""

    def __init__(
        self,
        settings: DeployLinkSettings,
        output_format: OutputFormat = OutputFormat.TEXT,
        *,
        credential_store: Optional[CredentialStore] = None,
        orchestrator_factory: Optional[OrchestratorFactory] = None,
        notifier: Optional[Notifier] = None,
        prompt: Callable[[str], str] = input,
        secret_prompt: Callable[[str], str] = getpass.getpass,
    ) -> None:
        """初期化

        Args:
            settings: 設定オブジェクト
            output_format: 出力形式（デフォルト: TEXT）
            credential_store: バックエンド資格情報の保存先
            orchestrator_factory: リソースIDからオーケストレータを作る関数（テスト用）
            notifier: 操作通知の出力先
            prompt: 確認入力の読み取り関数
            secret_prompt: 資格情報入力の読み取り関数
        """
        self.settings = settings
        self.output_format = output_format
        self.credential_store = credential_store or CredentialStore(keyring_service=settings.keyring_service)
        self.notifier = notifier or ConsoleNotifier()
        self._orchestrator_factory = orchestrator_factory
        self._prompt = prompt
        self._secret_prompt = secret_prompt
        self.formatter = OutputFormatter()

    def run(self, command: str, args: List[str], options: Dict[str, Any] | None = None) -> int:
        """コマンドを実行し、Exit Codeを返す

        Args:
            command: コマンド名
            args: コマンド引数
            options: 解析済みオプション辞書

        Returns:
            int: 終了コード（0: 成功、1: 失敗）
        """
        if options is None:
            options = {}

        if command == "help":
            self.show_help()
            return 0

        if command == "version":
            self.show_version()
            return 0

        if command not in VALID_COMMANDS:
            print(
                f"Unknown command: '{command}'. "
                f"Available commands: {', '.join(sorted(VALID_COMMANDS))}",
                file=sys.stderr,
            )
            return 1

        if command == "login":
            return self._run_login()

        if command == "logout":
            return self._run_logout()

        if not args:
            print(f"Usage: deploylink {command} <resource_id>", file=sys.stderr)
            return 1

        if command == "status":
            return asyncio.run(self._run_status(args[0]))

        if command == "authorize":
            if len(args) < 2:
                print("Usage: deploylink authorize <resource_id> <provider>", file=sys.stderr)
                return 1
            try:
                identity = parse_provider_identity(args[1])
            except DeployLinkException as exc:
                print(f"Provider error: {exc.error.message}", file=sys.stderr)
                return 1
            return asyncio.run(self._run_authorize(args[0], identity))

        return asyncio.run(self._run_disconnect(args[0], assume_yes=bool(options.get("yes"))))

    # ── コマンド ───────────────────────────────────────────

    async def _run_status(self, resource_id: str) -> int:
        async with self._build_orchestrator(resource_id) as orchestrator:
            snapshot = await orchestrator.refresh()
        print(self.formatter.format(snapshot, self.output_format))
        return 1 if snapshot.record.status == FetchStatus.ERROR else 0

    async def _run_authorize(self, resource_id: str, identity: ProviderIdentity) -> int:
        async with self._build_orchestrator(resource_id) as orchestrator:
            print(f"Opening the {identity.value} authorization page in your browser...", file=sys.stderr)
            result = await orchestrator.start_authorization(identity)
            snapshot = orchestrator.snapshot()

        if not result.success:
            print(self.formatter.format_result("authorize", result, self.output_format))
            return 1
        authorization = result.data
        if authorization is not None and authorization.is_cancelled:
            reason = authorization.cancellation_reason.value if authorization.cancellation_reason else "cancelled"
            print(f"Authorization did not complete ({reason}).", file=sys.stderr)
            return 1

        print(self.formatter.format(snapshot, self.output_format))
        return 1 if snapshot.needs_authorization else 0

    async def _run_disconnect(self, resource_id: str, assume_yes: bool) -> int:
        async with self._build_orchestrator(resource_id) as orchestrator:
            snapshot = await orchestrator.refresh()
            record = snapshot.record.record
            if record is None:
                print(self.formatter.format(snapshot, self.output_format))
                return 1
            if record.provider_identity == ProviderIdentity.NONE:
                print(f"{resource_id} is not connected to a source provider.", file=sys.stderr)
                return 0

            orchestrator.request_disconnect()
            dialog = orchestrator.disconnect_dialog
            if not assume_yes:
                answer = self._prompt(
                    f"{dialog.content} ({record.provider_identity.value} on {resource_id}) [y/N]: "
                )
                if answer.strip().lower() not in ("y", "yes"):
                    await dialog.dismiss()
                    print("Disconnect cancelled.", file=sys.stderr)
                    return 1

            result = await dialog.confirm()

        print(self.formatter.format_result("disconnect", result, self.output_format))
        return 0 if result is not None and result.success else 1

    def _run_login(self) -> int:
        secret = self._secret_prompt("Backend bearer token: ").strip()
        if not secret:
            print("No credential entered.", file=sys.stderr)
            return 1
        self.credential_store.save(secret)
        print("Credential stored.")
        return 0

    def _run_logout(self) -> int:
        if self.credential_store.delete():
            print("Credential removed.")
        else:
            print("No stored credential.")
        return 0

    def _build_orchestrator(self, resource_id: str) -> ProviderConnectionOrchestrator:
        if self._orchestrator_factory is not None:
            return self._orchestrator_factory(resource_id)
        return ProviderConnectionOrchestrator.from_settings(
            resource_id,
            self.settings,
            credential_store=self.credential_store,
            notifier=self.notifier,
        )

    def show_help(self) -> None:
        """ヘルプメッセージを表示"""
        self.print_help()

    @staticmethod
    def print_help() -> None:
        """設定なしでヘルプを表示"""
        help_text = f"""deploylink v{__version__} - デプロイ先とソース管理プロバイダの接続を管理するCLIツール

Usage:
    deploylink <command> [args] [options]

Commands:
    status <resource_id>                接続中のプロバイダとアカウントを表示
    authorize <resource_id> <provider>  プロバイダを認可し、トークンを保存
    disconnect <resource_id>            プロバイダとの接続を解除
    login                               バックエンド用の資格情報を保存
    logout                              保存済みの資格情報を削除
    help                                このヘルプメッセージを表示
    version                             バージョン情報を表示

Options:
    -h, --help           ヘルプメッセージを表示
    -v, --version        バージョン情報を表示
    --config <path>      設定ファイル（YAML）を指定
    --format <format>    出力形式を指定（json, text）
    -y, --yes            確認を省略

Providers:
    GitHub, Bitbucket, Dropbox, OneDrive, AzureRepos (Vso)

Examples:
    deploylink status /subscriptions/<sub>/resourceGroups/<rg>/providers/Microsoft.Web/sites/<app>
    deploylink authorize <resource_id> github
    deploylink --format json disconnect <resource_id> -y
"""
        print(help_text)

    def show_version(self) -> None:
        """バージョン情報を表示"""
        print(f"deploylink {__version__}")
