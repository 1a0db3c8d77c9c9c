"""
日志模块。

提供应用程序日志的配置和管理功能。
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

_logger: Optional[logging.Logger] = None

LOGGER_NAME = "Shimenv"
LOG_FILE_NAME = "shimenv.log"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(module)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5


class LazyRotatingFileHandler(RotatingFileHandler):
    """
    延迟创建的轮转文件处理器。

    与 delay=True 配合使用：日志目录和日志文件都在第一条记录写入时才创建，
    没有产生任何记录的命令不会在磁盘上留下痕迹。
    """

    def _open(self):
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


def setup_logger(
    level: int = logging.INFO,
    console_level: int = logging.WARNING,
    log_to_file: bool = False,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
    max_bytes: int = MAX_BYTES,
    backup_count: int = BACKUP_COUNT,
) -> logging.Logger:
    """
    配置并初始化日志记录器。

    可重复调用：每次调用都会重建处理器，命令行在读取配置后再次调用以启用文件日志。
    文件处理器延迟打开，日志目录在第一条文件日志写入时才创建。

    参数:
        level: 文件日志级别，默认为 INFO
        console_level: 控制台日志级别，默认为 WARNING
        log_to_file: 是否输出到文件，默认为 False
        log_to_console: 是否输出到控制台（标准错误），默认为 True
        log_dir: 日志文件目录，启用文件日志时必须提供
        max_bytes: 单个日志文件最大字节数，默认为 5MB
        backup_count: 保留的备份文件数量，默认为 5

    返回:
        配置好的 Logger 实例
    """
    global _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(min(level, console_level))
    logger.propagate = False
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if log_to_file and log_dir is not None:
        file_handler = LazyRotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
            delay=True,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """
    获取日志记录器实例。

    如果尚未初始化，则只启用控制台输出；设置了 SHIMENV_DEBUG 时输出调试信息。

    返回:
        Logger 实例
    """
    if _logger is None:
        console_level = logging.DEBUG if os.environ.get("SHIMENV_DEBUG") else logging.WARNING
        return setup_logger(console_level=console_level)
    return _logger

