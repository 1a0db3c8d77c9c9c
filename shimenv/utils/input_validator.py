"""
输入验证模块。

提供版本名、命令名等用户输入的验证和 sanitization 功能。
"""

import os
import re

from shimenv.utils.logger import get_logger

logger = get_logger()


class InputValidationError(Exception):
    """输入验证错误异常。"""
    pass


class InputValidator:
    """
    输入验证器类。

    版本名和命令名最终都会成为文件系统中的单个路径段，因此验证规则相同：
    非空、不含路径分隔符、不是 "." 或 ".."。
    """

    MAX_VERSION_LENGTH = 100
    MAX_COMMAND_LENGTH = 255
    RESERVED_VERSION_NAMES = ("system",)

    @classmethod
    def _validate_path_segment(cls, value: str, label: str, max_length: int) -> bool:
        if not value or not value.strip():
            raise InputValidationError(f"{label}不能为空")

        if len(value) > max_length:
            raise InputValidationError(f"{label}不能超过 {max_length} 个字符")

        if "/" in value or os.sep in value or (os.altsep and os.altsep in value):
            raise InputValidationError(f"{label}不能包含路径分隔符: {value}")

        if value in (".", ".."):
            raise InputValidationError(f"{label}无效: {value}")

        if "\0" in value:
            raise InputValidationError(f"{label}包含非法字符")

        return True

    @classmethod
    def validate_version_name(cls, name: str) -> bool:
        """
        验证版本名的有效性。

        参数:
            name: 版本名

        返回:
            验证通过返回 True，否则抛出 InputValidationError
        """
        return cls._validate_path_segment(name, "版本名", cls.MAX_VERSION_LENGTH)

    @classmethod
    def validate_installable_name(cls, name: str) -> bool:
        """
        验证可用于安装的版本名，保留名 "system" 不能被安装。

        参数:
            name: 版本名

        返回:
            验证通过返回 True，否则抛出 InputValidationError
        """
        cls.validate_version_name(name)
        if name in cls.RESERVED_VERSION_NAMES:
            raise InputValidationError(f"版本名 '{name}' 为保留名称")
        return True

    @classmethod
    def sanitize_version_name(cls, name: str) -> str:
        """
        sanitize 版本名：去除首尾空白。

        参数:
            name: 原始版本名

        返回:
            sanitized 后的版本名
        """
        if not name:
            return ""
        return name.strip()

    @classmethod
    def validate_command_name(cls, command: str) -> bool:
        """
        验证命令名的有效性。

        参数:
            command: 命令名

        返回:
            验证通过返回 True，否则抛出 InputValidationError
        """
        return cls._validate_path_segment(command, "命令名", cls.MAX_COMMAND_LENGTH)

    @classmethod
    def validate_url(cls, url: str) -> bool:
        """
        验证 URL 的有效性。

        参数:
            url: URL 字符串

        返回:
            验证通过返回 True，否则抛出 InputValidationError
        """
        if not url or not url.strip():
            return True

        url_pattern = re.compile(
            r'^https?://'
            r'(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+'
            r'(?:[A-Z]{2,63}|[A-Z0-9-]{2,})'
            r'|localhost|\d{1,3}(?:\.\d{1,3}){3})'
            r'(?::\d+)?'
            r'(?:/?|[/?]\S+)$',
            re.IGNORECASE
        )

        if not url_pattern.match(url.strip()):
            raise InputValidationError(f"URL 格式无效: {url}")

        return True

    @classmethod
    def safe_join_path(cls, base_path: str, *paths: str) -> str:
        """
        安全连接路径，防止路径遍历。

        参数:
            base_path: 基础路径
            *paths: 要连接的路径部分

        返回:
            安全连接后的路径

        抛出:
            InputValidationError: 如果结果路径在 base_path 之外
        """
        base = os.path.abspath(base_path)
        joined = os.path.abspath(os.path.join(base, *paths))
        if not joined.startswith(base + os.sep):
            raise InputValidationError(f"路径遍历检测: {joined}")
        return joined
