"""
定义索引模块。

汇总已知的构建定义：本地定义目录中的定义文件，以及从镜像源目录页抓取的定义名。
远程结果缓存在 cache.json 中，供 `install --list` 和"找不到定义"时的候选提示使用。
"""

import os
import re
from datetime import datetime
from typing import List, Optional

import requests

from shimenv.utils.logger import get_logger
from shimenv.utils.retry import RetryHandler
from shimenv.core.config_manager import ConfigManager, ConfigSaveError
from shimenv.core import version_utils

logger = get_logger()

CACHE_KEY = "definitions"
REQUEST_TIMEOUT = 10


class DefinitionIndex:
    """
    定义索引类。

    镜像源按配置顺序尝试，第一个返回非空列表的镜像胜出；所有镜像都失败时
    退回到缓存（即使已过期）。
    """

    def __init__(self, config_manager: ConfigManager, retry_handler: Optional[RetryHandler] = None):
        """
        初始化定义索引。

        参数:
            config_manager: 配置管理器实例
            retry_handler: 重试处理器，默认按配置的重试次数创建
        """
        self.config_manager = config_manager
        self.retry_handler = retry_handler or RetryHandler(
            max_retries=config_manager.get_download_retry_count()
        )
        self._memory_cache: Optional[List[str]] = None

    def local_definitions(self) -> List[str]:
        """
        列出本地定义目录中的定义文件名。

        返回:
            定义名列表
        """
        names = []
        for directory in self.config_manager.get_definition_dirs():
            directory = os.path.expanduser(directory)
            if not os.path.isdir(directory):
                logger.debug(f"定义目录不存在: {directory}")
                continue
            for entry in os.scandir(directory):
                if entry.is_file() and not entry.name.startswith("."):
                    names.append(entry.name)
        return names

    def _fetch_from_mirror(self, mirror_url: str) -> List[str]:
        """
        从镜像源目录页抓取定义名。

        参数:
            mirror_url: 镜像源 URL

        返回:
            定义名列表
        """
        def _do_request():
            response = requests.get(mirror_url, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            return response

        response = self.retry_handler.execute(_do_request)
        pattern = re.compile(self.config_manager.get_definition_pattern())
        return list(dict.fromkeys(pattern.findall(response.text)))

    def _read_cache(self, ignore_expiry: bool = False) -> Optional[List[str]]:
        cached = self.config_manager.get_cache().get(CACHE_KEY)
        if not isinstance(cached, dict):
            return None
        try:
            last_update = datetime.fromisoformat(cached.get("last_update", "2000-01-01"))
        except (TypeError, ValueError):
            return None
        age = (datetime.now() - last_update).total_seconds()
        if ignore_expiry or age < self.config_manager.get_cache_expire_time():
            return list(cached.get("definitions", []))
        return None

    def _update_cache(self, definitions: List[str]) -> None:
        self.config_manager.set_cache(CACHE_KEY, {
            "last_update": datetime.now().isoformat(),
            "definitions": definitions,
        })
        try:
            self.config_manager.save_cache()
        except ConfigSaveError as e:
            logger.warning(f"保存定义缓存失败: {e}")

    def remote_definitions(self, use_cache: bool = True) -> List[str]:
        """
        获取镜像源上的定义名。

        参数:
            use_cache: 是否使用未过期的缓存

        返回:
            定义名列表
        """
        mirrors = self.config_manager.get_definition_mirrors()
        if not mirrors:
            return []

        if use_cache:
            if self._memory_cache is not None:
                return list(self._memory_cache)
            cached = self._read_cache()
            if cached is not None:
                logger.debug("使用本地缓存的定义列表")
                self._memory_cache = cached
                return list(cached)

        errors = []
        for mirror_url in mirrors:
            try:
                logger.info(f"尝试从镜像源获取定义列表: {mirror_url}")
                definitions = self._fetch_from_mirror(mirror_url)
            except requests.RequestException as e:
                logger.warning(f"从镜像源 {mirror_url} 获取定义列表失败: {e}")
                errors.append(f"{mirror_url}: {e}")
                continue
            if not definitions:
                logger.warning(f"镜像源 {mirror_url} 返回空定义列表")
                errors.append(f"{mirror_url}: 空列表")
                continue
            self._memory_cache = definitions
            self._update_cache(definitions)
            logger.info(f"从镜像源 {mirror_url} 获取到 {len(definitions)} 个定义")
            return list(definitions)

        logger.error(f"所有镜像源获取定义列表失败: {'; '.join(errors)}")
        stale = self._read_cache(ignore_expiry=True)
        if stale is not None:
            logger.info("网络错误，使用缓存的定义列表")
            return stale
        return []

    def list_definitions(self, use_cache: bool = True) -> List[str]:
        """
        列出所有已知定义（本地与远程合并去重，按版本排序）。

        参数:
            use_cache: 是否使用未过期的远程缓存

        返回:
            定义名列表
        """
        names = set(self.local_definitions())
        names.update(self.remote_definitions(use_cache))
        return version_utils.sort_versions(names)

    def search(self, query: str) -> List[str]:
        """
        按子串查找定义名（不做编辑距离匹配）。

        参数:
            query: 查询字符串

        返回:
            包含查询字符串的定义名列表
        """
        return [name for name in self.list_definitions() if query in name]
