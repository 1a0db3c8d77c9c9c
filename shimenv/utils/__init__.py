"""
Shimenv 工具模块。

提供日志记录、输入验证、原子文件写入和重试等工具功能。
"""

from .logger import get_logger, setup_logger
from .input_validator import InputValidator, InputValidationError
from .file_utils import atomic_write_text, atomic_save_json, is_executable_file
from .retry import RetryHandler

__all__ = [
    "get_logger",
    "setup_logger",
    "InputValidator",
    "InputValidationError",
    "atomic_write_text",
    "atomic_save_json",
    "is_executable_file",
    "RetryHandler",
]
