"""
版本解析模块。

按固定优先级链解析当前生效的版本：
1. SHIMENV_VERSION 环境变量
2. 从当前目录逐级向上查找的本地版本文件
3. <root> 下的全局版本文件（version，再依次尝试旧名称 global、default）
4. 回退值 "system"
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from shimenv.utils.logger import get_logger
from shimenv.utils.file_utils import PathLike, atomic_write_text
from shimenv.core.config_manager import ConfigManager, ENV_VERSION
from shimenv.core.interfaces import IVersionResolver

logger = get_logger()

SYSTEM_VERSION = "system"

SOURCE_ENVIRONMENT = "environment"
SOURCE_LOCAL = "local"
SOURCE_GLOBAL = "global"
SOURCE_FALLBACK = "fallback"


@dataclass
class VersionRequest:
    """
    版本请求。

    Attributes:
        versions: 候选版本名（按优先顺序）
        source: 来源类型（environment / local / global / fallback）
        origin: 来源位置（环境变量名或版本文件路径）
    """

    versions: List[str] = field(default_factory=list)
    source: str = SOURCE_FALLBACK
    origin: str = ""

    @property
    def is_system(self) -> bool:
        return self.versions == [SYSTEM_VERSION]

    @property
    def name(self) -> str:
        return ":".join(self.versions)

    def __repr__(self) -> str:
        return f"<VersionRequest {self.name} ({self.source}: {self.origin})>"


def read_version_file(path: PathLike) -> List[str]:
    """
    读取版本文件，每行一个版本名。

    文件不存在、无法读取或去除空白后为空时返回空列表，调用方据此视为"不存在"。
    包含路径分隔符或 ".." 的条目会被忽略。

    参数:
        path: 版本文件路径

    返回:
        版本名列表
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except FileNotFoundError:
        return []
    except (IsADirectoryError, PermissionError, UnicodeDecodeError) as e:
        logger.warning(f"无法读取版本文件 {path}: {e}")
        return []

    versions = []
    for line in content.splitlines():
        name = line.strip()
        if not name:
            continue
        if "/" in name or os.sep in name or ".." in name:
            logger.warning(f"忽略版本文件 {path} 中的无效版本名: {name}")
            continue
        versions.append(name)
    return versions


def write_version_file(path: PathLike, versions: Sequence[str]) -> None:
    """
    原子写入版本文件，每行一个版本名。

    参数:
        path: 版本文件路径
        versions: 版本名列表
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_text(path, "".join(f"{v}\n" for v in versions))


class VersionResolver(IVersionResolver):
    """
    版本解析器类。

    只读取单个来源：优先级最高且非空的来源提供完整的版本列表，不同来源之间不合并。
    实现 IVersionResolver 抽象接口。
    """

    def __init__(self, config_manager: ConfigManager):
        """
        初始化版本解析器。

        参数:
            config_manager: 配置管理器实例
        """
        self.config_manager = config_manager

    def resolve(self, cwd: Optional[str] = None) -> VersionRequest:
        """
        解析当前生效的版本请求。

        参数:
            cwd: 本地版本文件的查找起点；为 None 时使用 SHIMENV_DIR 或当前工作目录

        返回:
            VersionRequest 实例
        """
        override = self.config_manager.get_version_override()
        if override and override.strip():
            request = VersionRequest([override.strip()], SOURCE_ENVIRONMENT, ENV_VERSION)
            logger.debug(f"使用环境变量指定的版本: {request}")
            return request

        start = cwd or self.config_manager.get_start_dir() or os.getcwd()
        local_file = self.find_local_file(start)
        if local_file is not None:
            request = VersionRequest(read_version_file(local_file), SOURCE_LOCAL, str(local_file))
            logger.debug(f"使用本地版本文件: {request}")
            return request

        return self.global_request()

    def find_local_file(self, start: str) -> Optional[Path]:
        """
        从起点目录逐级向上查找第一个非空的本地版本文件。

        参数:
            start: 起点目录

        返回:
            版本文件路径；未找到返回 None
        """
        filename = self.config_manager.local_version_filename
        directory = Path(start).absolute()
        while True:
            candidate = directory / filename
            if candidate.is_file() and read_version_file(candidate):
                return candidate
            if directory.parent == directory:
                return None
            directory = directory.parent

    def global_request(self) -> VersionRequest:
        """
        读取全局版本文件；全部缺失或为空时回退为 "system"。

        返回:
            VersionRequest 实例
        """
        files = self.config_manager.global_version_files
        for path in files:
            versions = read_version_file(path)
            if versions:
                request = VersionRequest(versions, SOURCE_GLOBAL, str(path))
                logger.debug(f"使用全局版本文件: {request}")
                return request

        return VersionRequest([SYSTEM_VERSION], SOURCE_FALLBACK, str(files[0]))

    def write_global(self, versions: Sequence[str]) -> Path:
        """
        写入全局版本文件（只写主文件名）。

        参数:
            versions: 版本名列表

        返回:
            写入的文件路径
        """
        path = self.config_manager.global_version_files[0]
        write_version_file(path, versions)
        logger.info(f"全局版本已设置为 {':'.join(versions)}: {path}")
        return path

    def write_local(self, versions: Sequence[str], directory: str) -> Path:
        """
        在指定目录写入本地版本文件。

        参数:
            versions: 版本名列表
            directory: 目标目录

        返回:
            写入的文件路径
        """
        path = Path(directory) / self.config_manager.local_version_filename
        write_version_file(path, versions)
        logger.info(f"本地版本已设置为 {':'.join(versions)}: {path}")
        return path

    def unset_local(self, directory: str) -> bool:
        """
        删除指定目录下的本地版本文件。

        参数:
            directory: 目标目录

        返回:
            文件存在并被删除返回 True
        """
        path = Path(directory) / self.config_manager.local_version_filename
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"已删除本地版本文件 {path}")
        return True
