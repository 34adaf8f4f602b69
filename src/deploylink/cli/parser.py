"""
コマンドライン引数の解析

コマンド解析とバリデーション機能を提供
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from deploylink.output.formatter import OutputFormat


# 有効なコマンド一覧
VALID_COMMANDS = {"status", "authorize", "disconnect", "login", "logout", "help", "version"}

# コマンドごとの必須引数
REQUIRED_ARGS: Dict[str, List[str]] = {
    "status": ["resource_id"],
    "authorize": ["resource_id", "provider"],
    "disconnect": ["resource_id"],
}


@dataclass
class ParsedCommand:
    """解析済みコマンド

    Attributes:
        command: コマンド名
        args: コマンド引数
        options: オプション辞書
        config_path: 設定ファイルのパス
        output_format: 出力形式
    """

    command: str
    args: List[str]
    options: Dict[str, Any]
    config_path: Optional[str]
    output_format: OutputFormat


@dataclass
class ValidationResult:
    """バリデーション結果

    Attributes:
        is_valid: 有効かどうか
        errors: エラーメッセージのリスト
    """

    is_valid: bool
    errors: List[str]


class ArgumentParser:
    """コマンドライン引数の解析"""

    def parse(self, argv: List[str]) -> ParsedCommand:
        """引数を解析してParsedCommandを返す

        Args:
            argv: コマンドライン引数リスト

        Returns:
            ParsedCommand: 解析結果
        """
        options: Dict[str, Any] = {}
        args: List[str] = []
        command: str = ""
        config_path: Optional[str] = None
        output_format: OutputFormat = OutputFormat.TEXT

        i = 0
        while i < len(argv):
            arg = argv[i]

            if arg in ("-h", "--help"):
                options["help"] = True
                i += 1
                continue

            if arg in ("-v", "--version"):
                options["version"] = True
                i += 1
                continue

            if arg == "--format":
                if i + 1 < len(argv):
                    format_value = argv[i + 1].lower()
                    if format_value == "json":
                        output_format = OutputFormat.JSON
                    elif format_value == "text":
                        output_format = OutputFormat.TEXT
                    else:
                        options["invalid_format"] = argv[i + 1]
                    i += 2
                    continue
                i += 1
                continue

            if arg == "--config":
                if i + 1 < len(argv) and not argv[i + 1].startswith("-"):
                    config_path = argv[i + 1]
                    i += 2
                    continue
                options["missing_config"] = True
                i += 1
                continue

            # 確認ダイアログを省略
            if arg in ("-y", "--yes"):
                options["yes"] = True
                i += 1
                continue

            # コマンドまたは引数
            if not command and not arg.startswith("-"):
                command = arg
            elif not arg.startswith("-"):
                args.append(arg)
            else:
                options.setdefault("unknown_options", []).append(arg)

            i += 1

        return ParsedCommand(
            command=command,
            args=args,
            options=options,
            config_path=config_path,
            output_format=output_format,
        )

    def validate(self, parsed: ParsedCommand) -> ValidationResult:
        """解析結果の妥当性を検証

        Args:
            parsed: 解析済みコマンド

        Returns:
            ValidationResult: バリデーション結果
        """
        errors: List[str] = []

        if parsed.options.get("help") or parsed.options.get("version"):
            return ValidationResult(is_valid=True, errors=[])

        if not parsed.command:
            errors.append("Command is required. Use --help for usage information.")
            return ValidationResult(is_valid=False, errors=errors)

        if parsed.command not in VALID_COMMANDS:
            errors.append(
                f"Unknown command: '{parsed.command}'. "
                f"Available commands: {', '.join(sorted(VALID_COMMANDS))}"
            )
            return ValidationResult(is_valid=False, errors=errors)

        if "invalid_format" in parsed.options:
            errors.append(
                f"Unsupported format: '{parsed.options['invalid_format']}'. Use json or text."
            )
        if parsed.options.get("missing_config"):
            errors.append("--config requires a file path.")
        for option in parsed.options.get("unknown_options", []):
            errors.append(f"Unknown option: '{option}'")

        required = REQUIRED_ARGS.get(parsed.command, [])
        if len(parsed.args) < len(required):
            missing = " ".join(f"<{name}>" for name in required[len(parsed.args):])
            errors.append(f"Missing argument(s) for '{parsed.command}': {missing}")

        return ValidationResult(is_valid=not errors, errors=errors)
