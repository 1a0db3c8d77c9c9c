"""
Shimenv 应用程序主入口点。
"""

import argparse
import logging
import sys
from typing import Optional

from shimenv.cli import create_parser, run_cli
from shimenv.core.config_manager import ConfigManager
from shimenv.utils.logger import setup_logger

# 只有修改磁盘状态的命令写入日志文件；exec 是垫片热路径，永远不打开日志文件
FILE_LOGGED_COMMANDS = {"install", "uninstall", "rehash", "global", "local"}


def configure_logging(parsed_args: argparse.Namespace) -> None:
    """
    根据命令行参数和配置初始化日志。

    参数:
        parsed_args: 解析后的命令行参数
    """
    config_manager = ConfigManager()
    debug = parsed_args.debug or config_manager.is_debug()

    log_to_file = False
    if parsed_args.command in FILE_LOGGED_COMMANDS:
        log_to_file = config_manager.get_log_to_file()

    setup_logger(
        level=logging.DEBUG if debug else logging.INFO,
        console_level=logging.DEBUG if debug else logging.WARNING,
        log_to_file=log_to_file,
        log_dir=config_manager.log_dir,
    )


def main(args: Optional[list[str]] = None) -> int:
    """
    应用程序主入口点。

    参数:
        args: 命令行参数。如果为 None，将使用 sys.argv[1:]。

    返回:
        退出码（0 表示成功，非零表示错误）。
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    configure_logging(parsed_args)
    return run_cli(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
