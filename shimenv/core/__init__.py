"""
Shimenv 核心模块。

提供配置管理、版本仓库、版本解析、钩子注册、垫片管理和安装协调功能。
"""

from .interfaces import IConfigManager, IVersionStore, IVersionResolver, IShimManager, IBuilder
from .config_manager import ConfigManager, ConfigValidationError, ConfigSaveError
from .version_store import VersionStore, VersionStoreError, VersionNotInstalledError
from .version_resolver import VersionResolver, VersionRequest, SYSTEM_VERSION
from .hook_registry import HookRegistry, HookLoadError
from .shim_manager import ShimManager, ShimManagerError, CommandNotFoundError
from .builder import CommandBuilder, BuildOptions, DEFINITION_NOT_FOUND
from .definition_index import DefinitionIndex
from .install_coordinator import (
    InstallCoordinator, InstallCoordinatorError, OperationAbortedError,
    InstallOptions, InstallSession, UninstallSession,
)
from . import version_utils

__all__ = [
    "IConfigManager", "IVersionStore", "IVersionResolver", "IShimManager", "IBuilder",
    "ConfigManager", "ConfigValidationError", "ConfigSaveError",
    "VersionStore", "VersionStoreError", "VersionNotInstalledError",
    "VersionResolver", "VersionRequest", "SYSTEM_VERSION",
    "HookRegistry", "HookLoadError",
    "ShimManager", "ShimManagerError", "CommandNotFoundError",
    "CommandBuilder", "BuildOptions", "DEFINITION_NOT_FOUND",
    "DefinitionIndex",
    "InstallCoordinator", "InstallCoordinatorError", "OperationAbortedError",
    "InstallOptions", "InstallSession", "UninstallSession",
    "version_utils",
]
