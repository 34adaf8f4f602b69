"""deploylinkのCLIエントリーポイント"""

import json
import logging
import sys
from pathlib import Path
from typing import List

from deploylink import __version__
from deploylink.cli.main import DeployLinkCLI
from deploylink.cli.parser import ArgumentParser
from deploylink.config.settings import SettingsLoader
from deploylink.errors import DeployLinkException


def main(args: List[str] | None = None) -> int:
    """
    deploylinkのメインエントリーポイント

    Args:
        args: コマンドライン引数（Noneの場合はsys.argvを使用）

    Returns:
        終了コード（0: 成功、1: エラー）
    """
    if args is None:
        args = sys.argv[1:]

    parser = ArgumentParser()
    parsed = parser.parse(args)

    if parsed.options.get("version"):
        print(f"deploylink {__version__}")
        return 0

    if parsed.options.get("help") or (not parsed.command and not args):
        parsed.command = "help"

    validation = parser.validate(parsed)
    if not validation.is_valid:
        for error in validation.errors:
            print(error, file=sys.stderr)
        return 1

    try:
        settings = SettingsLoader().load(Path(parsed.config_path) if parsed.config_path else None)
    except DeployLinkException as exc:
        if parsed.command == "help":
            DeployLinkCLI.print_help()
            return 0
        print(f"Configuration error: {exc.error.message}", file=sys.stderr)
        if exc.error.details:
            print(json.dumps(exc.error.details, ensure_ascii=False, indent=2, default=str), file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger(__name__).debug(f"Loaded settings: {settings.dump_masked()}")

    cli = DeployLinkCLI(settings, output_format=parsed.output_format)
    return cli.run(parsed.command, parsed.args, options=parsed.options)


if __name__ == "__main__":
    sys.exit(main())
