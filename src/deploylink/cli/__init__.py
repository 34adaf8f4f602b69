"""コマンドラインインターフェース"""

from deploylink.cli.main import ConsoleNotifier, DeployLinkCLI
from deploylink.cli.parser import ArgumentParser, ParsedCommand, ValidationResult

__all__ = [
    "ArgumentParser",
    "ConsoleNotifier",
    "DeployLinkCLI",
    "ParsedCommand",
    "ValidationResult",
]
