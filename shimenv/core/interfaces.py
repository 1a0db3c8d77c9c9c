"""
核心模块抽象接口定义。

定义 ConfigManager、VersionStore、VersionResolver、ShimManager 和 Builder 的抽象接口。
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional


class IConfigManager(ABC):
    """配置管理器抽象接口。"""

    @abstractmethod
    def save_config(self, config: dict[str, Any] | None = None) -> None:
        """保存配置到文件。"""
        pass

    @abstractmethod
    def get_settings(self) -> dict[str, Any]:
        """获取 settings 配置部分。"""
        pass

    @abstractmethod
    def get_cache(self) -> dict[str, Any]:
        """获取缓存字典。"""
        pass

    @abstractmethod
    def save_cache(self, cache: dict[str, Any] | None = None) -> None:
        """保存缓存到文件。"""
        pass


class IVersionStore(ABC):
    """已安装版本仓库抽象接口。"""

    @abstractmethod
    def list_versions(self) -> List[str]:
        """按版本顺序列出所有已安装版本。"""
        pass

    @abstractmethod
    def prefix_for(self, name: str) -> str:
        """计算版本的安装前缀目录。"""
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        """检查版本前缀目录是否存在。"""
        pass

    @abstractmethod
    def provides(self, name: str, command: str) -> Optional[str]:
        """返回版本提供的命令可执行文件路径。"""
        pass


class IVersionResolver(ABC):
    """版本解析器抽象接口。"""

    @abstractmethod
    def resolve(self, cwd: Optional[str] = None) -> Any:
        """按优先级链解析当前生效的版本请求。"""
        pass


class IShimManager(ABC):
    """垫片管理器抽象接口。"""

    @abstractmethod
    def rehash(self) -> List[str]:
        """重新生成全部垫片。"""
        pass

    @abstractmethod
    def list_shims(self) -> List[str]:
        """列出现有垫片名称。"""
        pass

    @abstractmethod
    def shim_path(self, name: str) -> Path:
        """获取垫片文件路径。"""
        pass


class IBuilder(ABC):
    """
    外部构建器抽象接口。

    构建器负责把定义说明符变成安装在 prefix/bin 下的可执行文件，
    返回进程退出码；退出码 2 表示找不到定义。
    """

    @abstractmethod
    def build(self, definition: str, prefix: str, options: Any) -> int:
        """构建并安装定义到指定前缀，返回退出码。"""
        pass
