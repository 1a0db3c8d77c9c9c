"""
配置管理器模块。

提供运行配置的加载、保存和验证功能。所有组件共享同一个 ConfigManager 实例，
它在进程启动时从环境变量和 <root>/config.json 填充一次。
"""

import json
import os
from pathlib import Path
from typing import Any, List, Mapping, Optional

from shimenv.utils.logger import get_logger
from shimenv.utils.file_utils import atomic_save_json
from shimenv.utils.input_validator import InputValidator, InputValidationError
from shimenv.core.interfaces import IConfigManager

logger = get_logger()

ENV_ROOT = "SHIMENV_ROOT"
ENV_DEBUG = "SHIMENV_DEBUG"
ENV_BUILD_ROOT = "SHIMENV_BUILD_ROOT"
ENV_CACHE_PATH = "SHIMENV_CACHE_PATH"
ENV_VERSION = "SHIMENV_VERSION"
ENV_DIR = "SHIMENV_DIR"
ENV_HOOK_PATH = "SHIMENV_HOOK_PATH"

DEFAULT_ROOT = Path("~/.shimenv")
LOCAL_VERSION_FILE = ".shimenv-version"
# 读取时按此顺序尝试，写入只写第一个
GLOBAL_VERSION_FILES = ("version", "global", "default")
HOOKS_SUBDIR = "hooks"


class ConfigValidationError(Exception):
    """配置验证错误异常。"""
    pass


class ConfigSaveError(Exception):
    """配置保存错误异常。"""
    pass


class ConfigManager(IConfigManager):
    """
    配置管理器类。

    负责确定安装根目录、读取环境变量覆盖项，以及管理 config.json 和 cache.json。
    实现 IConfigManager 抽象接口。
    """

    REQUIRED_FIELDS = {
        "settings": dict,
    }

    SETTINGS_FIELDS = {
        "builder_command": list,
        "definition_dirs": list,
        "definition_mirrors": list,
        "definition_pattern": str,
        "cache_expire_time": int,
        "download_retry_count": int,
        "hook_paths": list,
        "log_to_file": bool,
    }

    def __init__(self, root: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """
        初始化配置管理器。

        参数:
            root: 安装根目录；为 None 时使用 SHIMENV_ROOT 或 ~/.shimenv
            environ: 环境变量映射；为 None 时使用 os.environ 的快照
        """
        self.environ = dict(os.environ if environ is None else environ)
        root_value = root or self.environ.get(ENV_ROOT) or str(DEFAULT_ROOT)
        self.root = Path(root_value).expanduser().absolute()
        self._config: dict[str, Any] = {}
        self._cache: dict[str, Any] = {}
        self._cache_loaded = False

    @property
    def versions_dir(self) -> Path:
        return self.root / "versions"

    @property
    def shims_dir(self) -> Path:
        return self.root / "shims"

    @property
    def plugins_dir(self) -> Path:
        return self.root / "plugins"

    @property
    def log_dir(self) -> Path:
        return self.root / "logs"

    @property
    def config_file(self) -> Path:
        return self.root / "config.json"

    @property
    def cache_file(self) -> Path:
        return self.root / "cache.json"

    @property
    def global_version_files(self) -> List[Path]:
        return [self.root / name for name in GLOBAL_VERSION_FILES]

    @property
    def local_version_filename(self) -> str:
        return LOCAL_VERSION_FILE

    @property
    def hooks_subdir(self) -> str:
        return HOOKS_SUBDIR

    def _env(self, name: str) -> Optional[str]:
        value = self.environ.get(name)
        return value if value else None

    def is_debug(self) -> bool:
        """是否启用调试输出（SHIMENV_DEBUG 非空）。"""
        return self._env(ENV_DEBUG) is not None

    def get_version_override(self) -> Optional[str]:
        """获取 SHIMENV_VERSION 指定的版本覆盖值。"""
        return self._env(ENV_VERSION)

    def get_start_dir(self) -> Optional[str]:
        """获取 SHIMENV_DIR 指定的本地版本文件查找起点。"""
        return self._env(ENV_DIR)

    def get_build_root(self) -> Optional[str]:
        """获取构建工作目录覆盖值。"""
        return self._env(ENV_BUILD_ROOT)

    def get_cache_path(self) -> Optional[str]:
        """获取构建器源码缓存目录覆盖值。"""
        return self._env(ENV_CACHE_PATH)

    def get_env_hook_paths(self) -> List[str]:
        """获取 SHIMENV_HOOK_PATH 中以路径分隔符分隔的钩子目录。"""
        value = self._env(ENV_HOOK_PATH)
        if not value:
            return []
        return [p for p in value.split(os.pathsep) if p]

    def _get_builtin_default_config(self) -> dict[str, Any]:
        """获取内置默认配置。"""
        return {
            "settings": {
                "builder_command": ["shimenv-build"],
                "definition_dirs": [],
                "definition_mirrors": [],
                "definition_pattern": "href=\"v?(\\d+\\.\\d+\\.\\d+[^\"/]*)/?\"",
                "cache_expire_time": 86400,
                "download_retry_count": 3,
                "hook_paths": [],
                "log_to_file": True,
            },
        }

    def get_default_config(self) -> dict[str, Any]:
        return self._get_builtin_default_config()

    def load_config(self) -> dict[str, Any]:
        """
        加载配置文件。

        配置文件不存在时使用内置默认配置（只读操作不会创建文件）。

        返回:
            配置字典
        """
        if not self.config_file.exists():
            logger.debug(f"配置文件不存在，使用默认配置: {self.config_file}")
            self._config = self.get_default_config()
            return self._config

        try:
            logger.debug(f"从文件加载配置: {self.config_file}")
            with open(self.config_file, "r", encoding="utf-8") as f:
                self._config = json.load(f)
            self._ensure_backward_compatibility()
            self.validate_config(self._config)
            logger.debug("配置加载成功")
        except (IOError, OSError, json.JSONDecodeError) as e:
            logger.error(f"加载配置文件失败，使用默认配置: {e}")
            self._config = self.get_default_config()
        except ConfigValidationError as e:
            logger.error(f"配置验证失败，使用默认配置: {e}")
            self._config = self.get_default_config()
        return self._config

    def _ensure_backward_compatibility(self) -> None:
        """为旧版本配置补齐缺失的字段。"""
        if not isinstance(self._config, dict):
            raise ConfigValidationError("配置文件顶层必须是对象")
        settings = self._config.setdefault("settings", {})
        if not isinstance(settings, dict):
            return
        defaults = self._get_builtin_default_config()["settings"]
        for field, value in defaults.items():
            if field not in settings:
                settings[field] = value

    def validate_config(self, config: dict[str, Any]) -> bool:
        """
        验证配置的有效性。

        参数:
            config: 要验证的配置字典

        返回:
            验证通过返回 True

        抛出:
            ConfigValidationError: 配置验证失败时抛出
        """
        for field, expected_type in self.REQUIRED_FIELDS.items():
            if field not in config:
                raise ConfigValidationError(f"缺少必需字段: {field}")
            if not isinstance(config[field], expected_type):
                raise ConfigValidationError(
                    f"字段 '{field}' 必须是 {expected_type.__name__} 类型，"
                    f"实际为 {type(config[field]).__name__}"
                )

        settings = config["settings"]
        for field, expected_type in self.SETTINGS_FIELDS.items():
            if field not in settings:
                raise ConfigValidationError(f"settings 中缺少必需字段: {field}")
            if not isinstance(settings[field], expected_type):
                raise ConfigValidationError(
                    f"字段 'settings.{field}' 必须是 {expected_type.__name__} 类型，"
                    f"实际为 {type(settings[field]).__name__}"
                )

        if not settings["builder_command"]:
            raise ConfigValidationError("settings.builder_command 不能为空")

        for url in settings["definition_mirrors"]:
            try:
                InputValidator.validate_url(url)
            except InputValidationError as e:
                raise ConfigValidationError(f"镜像 URL 验证失败: {e}") from e

        logger.debug("配置验证通过")
        return True

    def save_config(self, config: dict[str, Any] | None = None) -> None:
        """
        保存配置到文件。

        参数:
            config: 要保存的配置字典，如果为 None 则保存当前配置
        """
        if config is not None:
            self._config = config

        self.validate_config(self._config)

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            logger.debug(f"保存配置到 {self.config_file}")
            atomic_save_json(self.config_file, self._config, indent=2)
        except (IOError, OSError) as e:
            logger.error(f"保存配置失败: {e}")
            raise ConfigSaveError(f"无法保存配置到 {self.config_file}: {e}") from e

    @property
    def config(self) -> dict[str, Any]:
        """配置字典（延迟加载）。"""
        if not self._config:
            self.load_config()
        return self._config

    def get_settings(self) -> dict[str, Any]:
        return self.config.get("settings", {})

    def get_builder_command(self) -> List[str]:
        """获取外部构建器命令（列表形式）。"""
        return list(self.get_settings().get("builder_command", ["shimenv-build"]))

    def get_definition_dirs(self) -> List[str]:
        return list(self.get_settings().get("definition_dirs", []))

    def get_definition_mirrors(self) -> List[str]:
        return list(self.get_settings().get("definition_mirrors", []))

    def get_definition_pattern(self) -> str:
        return self.get_settings().get(
            "definition_pattern",
            self._get_builtin_default_config()["settings"]["definition_pattern"],
        )

    def get_cache_expire_time(self) -> int:
        """获取缓存过期时间配置（秒）。"""
        return self.get_settings().get("cache_expire_time", 86400)

    def get_download_retry_count(self) -> int:
        return self.get_settings().get("download_retry_count", 3)

    def get_hook_paths(self) -> List[str]:
        """获取 config.json 中配置的额外钩子目录。"""
        return list(self.get_settings().get("hook_paths", []))

    def get_log_to_file(self) -> bool:
        return bool(self.get_settings().get("log_to_file", True))

    def _load_cache(self) -> None:
        """加载缓存文件。"""
        self._cache_loaded = True
        if not self.cache_file.exists():
            self._cache = {}
            return
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                self._cache = json.load(f)
            if not isinstance(self._cache, dict):
                logger.warning(f"缓存文件格式无效，已忽略: {self.cache_file}")
                self._cache = {}
        except (IOError, OSError, json.JSONDecodeError) as e:
            logger.warning(f"加载缓存失败: {e}")
            self._cache = {}

    def get_cache(self) -> dict[str, Any]:
        if not self._cache_loaded:
            self._load_cache()
        return self._cache

    def set_cache(self, key: str, value: Any) -> None:
        self.get_cache()[key] = value

    def save_cache(self, cache: dict[str, Any] | None = None) -> None:
        """
        保存缓存到文件。

        参数:
            cache: 要保存的缓存字典，如果为 None 则保存当前缓存
        """
        if cache is not None:
            self._cache = cache
            self._cache_loaded = True

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            logger.debug(f"保存缓存到 {self.cache_file}")
            atomic_save_json(self.cache_file, self.get_cache(), indent=2)
        except (IOError, OSError) as e:
            logger.error(f"保存缓存失败: {e}")
            raise ConfigSaveError(f"无法保存缓存到 {self.cache_file}: {e}") from e

    def clear_cache(self) -> None:
        """清空缓存。"""
        logger.info("清空缓存")
        self.save_cache({})
