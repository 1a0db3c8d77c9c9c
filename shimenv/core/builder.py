"""
构建器模块。

构建器是外部协作者：给定定义说明符和安装前缀，它负责把可执行文件放进
prefix/bin 并返回进程退出码。本模块提供通过子进程调用外部构建命令的默认实现。
"""

import os
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shimenv.utils.logger import get_logger
from shimenv.core.config_manager import ConfigManager, ENV_BUILD_ROOT, ENV_CACHE_PATH
from shimenv.core.interfaces import IBuilder

logger = get_logger()

# 构建器约定：退出码 2 表示找不到定义
DEFINITION_NOT_FOUND = 2
BUILDER_NOT_FOUND = 127


@dataclass
class BuildOptions:
    """
    传递给构建器的选项。

    Attributes:
        keep: 构建后保留源码目录
        verbose: 输出详细构建日志
        patch: 从标准输入读取补丁
        build_root: 构建工作目录覆盖值
        cache_path: 源码缓存目录覆盖值
        env: 额外的环境变量，钩子可在构建前修改
    """

    keep: bool = False
    verbose: bool = False
    patch: bool = False
    build_root: Optional[str] = None
    cache_path: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)


class CommandBuilder(IBuilder):
    """
    外部命令构建器。

    以 `<builder_command> [--keep] [--verbose] [--patch] <定义> <前缀>` 形式调用
    config.json 中配置的构建命令，标准输入输出直接继承自当前进程。
    """

    def __init__(self, config_manager: ConfigManager):
        """
        初始化外部命令构建器。

        参数:
            config_manager: 配置管理器实例
        """
        self.config_manager = config_manager

    def build_command(self, definition: str, prefix: str, options: BuildOptions) -> List[str]:
        cmd = self.config_manager.get_builder_command()
        if options.keep:
            cmd.append("--keep")
        if options.verbose:
            cmd.append("--verbose")
        if options.patch:
            cmd.append("--patch")
        cmd.extend([definition, prefix])
        return cmd

    def build_env(self, options: BuildOptions) -> Dict[str, str]:
        env = dict(self.config_manager.environ)
        if options.build_root:
            env[ENV_BUILD_ROOT] = options.build_root
        if options.cache_path:
            env[ENV_CACHE_PATH] = options.cache_path
        env.update(options.env)
        return env

    def build(self, definition: str, prefix: str, options: BuildOptions) -> int:
        """
        调用外部构建命令。

        参数:
            definition: 定义说明符（版本名或定义文件路径）
            prefix: 安装前缀
            options: 构建选项

        返回:
            构建命令的退出码；构建命令不存在时返回 127
        """
        cmd = self.build_command(definition, prefix, options)
        logger.info(f"执行构建命令: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, env=self.build_env(options), check=False)
        except FileNotFoundError:
            logger.error(f"找不到构建命令: {cmd[0]}")
            return BUILDER_NOT_FOUND
        except PermissionError as e:
            logger.error(f"无法执行构建命令 {cmd[0]}: {e}")
            return BUILDER_NOT_FOUND

        if result.returncode != 0:
            logger.warning(f"构建命令退出码为 {result.returncode}")
        return result.returncode


def derive_version_name(definition: str) -> str:
    """
    从定义说明符推导版本名：取最后一个路径段。

    参数:
        definition: 版本名或定义文件路径

    返回:
        版本名
    """
    return os.path.basename(definition.rstrip("/" + os.sep)) or definition
