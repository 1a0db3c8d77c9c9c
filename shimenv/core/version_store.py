"""
已安装版本仓库模块。

以文件系统为后端管理 <root>/versions 下的已安装版本：列出、检查存在性、计算前缀。
"""

import os
import shutil
from typing import List, Optional

from shimenv.utils.logger import get_logger
from shimenv.utils.file_utils import is_executable_file
from shimenv.utils.input_validator import InputValidator
from shimenv.core.config_manager import ConfigManager
from shimenv.core.interfaces import IVersionStore
from shimenv.core import version_utils

logger = get_logger()


class VersionStoreError(Exception):
    """版本仓库错误异常。"""
    pass


class VersionNotInstalledError(VersionStoreError):
    """版本未安装错误异常。"""

    def __init__(self, version: str, origin: Optional[str] = None):
        self.version = version
        self.origin = origin
        message = f"版本 '{version}' 未安装"
        if origin:
            message += f"（由 {origin} 设置）"
        super().__init__(message)


class VersionStore(IVersionStore):
    """
    已安装版本仓库类。

    版本名唯一决定安装前缀 <root>/versions/<name>；前缀目录存在即视为已安装，
    <prefix>/bin 存在是更强的已安装信号。除 remove 外所有方法都是只读的。
    实现 IVersionStore 抽象接口。
    """

    def __init__(self, config_manager: ConfigManager):
        """
        初始化版本仓库。

        参数:
            config_manager: 配置管理器实例
        """
        self.config_manager = config_manager

    @property
    def versions_dir(self) -> str:
        return str(self.config_manager.versions_dir)

    def list_versions(self) -> List[str]:
        """
        列出所有已安装版本。

        返回:
            按版本顺序排列的版本名列表；根目录不存在时返回空列表
        """
        versions_dir = self.versions_dir
        if not os.path.isdir(versions_dir):
            logger.debug(f"版本目录不存在: {versions_dir}")
            return []

        names = [
            entry.name
            for entry in os.scandir(versions_dir)
            if entry.is_dir()
        ]
        return version_utils.sort_versions(names)

    def prefix_for(self, name: str) -> str:
        """
        计算版本的安装前缀，不检查是否存在。

        版本名会拼接进路径，结果落在 versions 目录之外时抛出 InputValidationError。

        参数:
            name: 版本名

        返回:
            前缀目录路径
        """
        return InputValidator.safe_join_path(self.versions_dir, name)

    def bin_root(self, name: str) -> str:
        return os.path.join(self.prefix_for(name), "bin")

    def exists(self, name: str) -> bool:
        """检查版本前缀目录是否存在。"""
        return os.path.isdir(self.prefix_for(name))

    def is_installed(self, name: str) -> bool:
        """检查版本的 bin 目录是否存在。"""
        return os.path.isdir(self.bin_root(name))

    def executables(self, name: str) -> List[str]:
        """
        列出版本 bin 目录下的全部文件名。

        参数:
            name: 版本名

        返回:
            排序后的文件名列表；bin 目录不存在时返回空列表
        """
        bin_root = self.bin_root(name)
        if not os.path.isdir(bin_root):
            return []
        return sorted(entry.name for entry in os.scandir(bin_root) if entry.is_file())

    def provides(self, name: str, command: str) -> Optional[str]:
        """
        检查版本是否提供指定命令。

        参数:
            name: 版本名
            command: 命令名

        返回:
            可执行文件的绝对路径；不提供时返回 None
        """
        path = os.path.join(self.bin_root(name), command)
        if is_executable_file(path):
            return path
        return None

    def whence(self, command: str) -> List[str]:
        """
        查找提供指定命令的所有已安装版本。

        参数:
            command: 命令名

        返回:
            按版本顺序排列的版本名列表
        """
        return [name for name in self.list_versions() if self.provides(name, command)]

    def remove(self, name: str) -> None:
        """
        递归删除版本前缀目录。

        参数:
            name: 版本名
        """
        prefix = self.prefix_for(name)
        logger.info(f"删除版本目录 {prefix}")
        shutil.rmtree(prefix)
