"""
垫片管理模块。

为所有已安装版本 bin 目录中出现的每个可执行文件名生成一个分发垫片，
垫片被调用时通过 `python -P -m shimenv exec <命令>` 解析版本并执行真实的二进制文件。
"""

import os
import shlex
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from shimenv.utils.logger import get_logger
from shimenv.utils.file_utils import atomic_write_text, is_executable_file
from shimenv.core.config_manager import ConfigManager
from shimenv.core.interfaces import IShimManager
from shimenv.core.version_store import VersionStore
from shimenv.core.version_resolver import SYSTEM_VERSION, VersionRequest, VersionResolver

logger = get_logger()

SHIM_MODE = 0o755

SHIM_TEMPLATE = """#!/usr/bin/env bash
set -e
[ -n "$SHIMENV_DEBUG" ] && set -x

program="${{0##*/}}"

export SHIMENV_ROOT={root}
exec {python} -P -m shimenv exec "$program" "$@"
"""


class ShimManagerError(Exception):
    """垫片管理错误异常。"""
    pass


class CommandNotFoundError(ShimManagerError):
    """命令在所有候选版本中都找不到时抛出。"""

    def __init__(self, command: str, tried: Sequence[str], origin: str = ""):
        self.command = command
        self.tried = list(tried)
        self.origin = origin
        message = f"{command}: 命令在配置的任何版本中都不存在（已尝试: {', '.join(self.tried) or '无'}）"
        if origin:
            message += f"，版本由 {origin} 设置"
        super().__init__(message)


class ShimManager(IShimManager):
    """
    垫片管理器类。

    rehash 每次从磁盘上的已安装版本重新计算完整的垫片集合；单个垫片文件
    先写入临时文件再原子替换，并发的读取方不会看到写了一半的垫片。
    多个进程同时 rehash 时以最后写入者为准。
    实现 IShimManager 抽象接口。
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        version_store: VersionStore,
        resolver: VersionResolver,
        python_executable: Optional[str] = None,
    ):
        """
        初始化垫片管理器。

        参数:
            config_manager: 配置管理器实例
            version_store: 版本仓库实例
            resolver: 版本解析器实例
            python_executable: 垫片中使用的 Python 解释器，默认为当前解释器
        """
        self.config_manager = config_manager
        self.version_store = version_store
        self.resolver = resolver
        self.python_executable = python_executable or sys.executable

    @property
    def shims_dir(self) -> Path:
        return self.config_manager.shims_dir

    def shim_path(self, name: str) -> Path:
        return self.shims_dir / name

    def render_shim(self) -> str:
        """生成垫片脚本内容（所有垫片内容相同，命令名取自 $0）。"""
        return SHIM_TEMPLATE.format(
            root=shlex.quote(str(self.config_manager.root)),
            python=shlex.quote(self.python_executable),
        )

    def list_shims(self) -> List[str]:
        """
        列出现有垫片名称。

        返回:
            排序后的垫片名列表，不包含隐藏文件（进行中的临时文件）
        """
        if not self.shims_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in os.scandir(self.shims_dir)
            if not entry.name.startswith(".") and entry.is_file()
        )

    def _collect_executable_names(self) -> List[str]:
        names = set()
        for version in self.version_store.list_versions():
            names.update(self.version_store.executables(version))
        return sorted(names)

    def rehash(self) -> List[str]:
        """
        重新生成全部垫片。

        1. 收集所有已安装版本 bin 目录中的文件名
        2. 为每个文件名原子写入垫片并设为可执行
        3. 删除不再被任何版本提供的旧垫片

        返回:
            排序后的垫片名列表
        """
        names = self._collect_executable_names()
        self.shims_dir.mkdir(parents=True, exist_ok=True)

        content = self.render_shim()
        for name in names:
            atomic_write_text(self.shim_path(name), content, mode=SHIM_MODE)

        wanted = set(names)
        removed = []
        for existing in self.list_shims():
            if existing not in wanted:
                try:
                    self.shim_path(existing).unlink()
                except FileNotFoundError:
                    continue
                removed.append(existing)

        logger.info(f"已生成 {len(names)} 个垫片，删除 {len(removed)} 个过期垫片")
        if removed:
            logger.debug(f"删除的垫片: {', '.join(removed)}")
        return names

    def find_system_command(self, command: str) -> Optional[str]:
        """
        在 PATH 中查找系统命令，跳过垫片目录本身。

        参数:
            command: 命令名

        返回:
            可执行文件路径；未找到返回 None
        """
        shims_dir = os.path.realpath(self.shims_dir)
        search_path = self.config_manager.environ.get("PATH", os.defpath)
        for entry in search_path.split(os.pathsep):
            directory = entry or "."
            if os.path.realpath(directory) == shims_dir:
                continue
            candidate = os.path.join(directory, command)
            if is_executable_file(candidate):
                return os.path.abspath(candidate)
        return None

    def find_command(self, command: str, request: Optional[VersionRequest] = None) -> Tuple[str, str]:
        """
        为命令找到应执行的版本和可执行文件。

        按版本请求中的顺序依次检查候选版本，第一个提供该命令的版本胜出；
        候选为 "system" 时在 PATH 中查找未受管理的命令。

        参数:
            command: 命令名
            request: 版本请求；为 None 时由解析器解析

        返回:
            (版本名, 可执行文件路径) 元组

        抛出:
            CommandNotFoundError: 没有任何候选版本提供该命令
        """
        if request is None:
            request = self.resolver.resolve()

        for version in request.versions:
            if version == SYSTEM_VERSION:
                path = self.find_system_command(command)
            else:
                if not self.version_store.exists(version):
                    logger.warning(f"版本 '{version}' 未安装（由 {request.origin} 设置）")
                    continue
                path = self.version_store.provides(version, command)
            if path:
                logger.debug(f"{command} 解析为 {version}: {path}")
                return version, path

        raise CommandNotFoundError(command, request.versions, request.origin)

    def build_exec_env(self, version: str) -> Dict[str, str]:
        """
        构造执行目标命令时的环境变量。

        受管理版本的 bin 目录被加到 PATH 最前面，使其子进程使用同一版本。

        参数:
            version: 版本名

        返回:
            环境变量字典
        """
        env = dict(self.config_manager.environ)
        if version != SYSTEM_VERSION:
            bin_root = self.version_store.bin_root(version)
            path = env.get("PATH", "")
            env["PATH"] = f"{bin_root}{os.pathsep}{path}" if path else bin_root
        return env

    def exec_command(self, command: str, args: Sequence[str]) -> None:
        """
        解析并以当前进程替换执行目标命令，成功时不会返回。

        参数:
            command: 命令名
            args: 传给命令的参数
        """
        version, path = self.find_command(command)
        env = self.build_exec_env(version)
        logger.debug(f"exec {path} {' '.join(args)}")
        os.execve(path, [path, *args], env)
