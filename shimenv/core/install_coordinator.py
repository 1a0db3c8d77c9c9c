"""
安装协调模块。

编排版本的安装与卸载：前置检查、钩子调用、委托外部构建器、垫片重建，
以及安装失败或被中断时的回滚。

安装状态机::

    Start → PreflightCheck → {Abort | HooksBefore} → Build
          → {RollbackAndFail | LinkAndRehash} → HooksAfter → Done

卸载状态机::

    Start → Confirm? → RunBeforeHooks → Delete → Rehash → RunAfterHooks → Done

已知限制：两个进程同时安装同一版本的行为未定义。
"""

import os
import re
import shutil
import signal
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from shimenv.utils.logger import get_logger
from shimenv.utils.input_validator import InputValidator
from shimenv.core.config_manager import ConfigManager
from shimenv.core.interfaces import IBuilder
from shimenv.core.version_store import VersionStore, VersionNotInstalledError
from shimenv.core.shim_manager import ShimManager
from shimenv.core.hook_registry import HookRegistry
from shimenv.core.builder import BuildOptions, DEFINITION_NOT_FOUND, derive_version_name
from shimenv.core.definition_index import DefinitionIndex

logger = get_logger()

INSTALL_EVENT = "install"
UNINSTALL_EVENT = "uninstall"

ConfirmFunc = Callable[[str], bool]


class InstallCoordinatorError(Exception):
    """安装协调错误异常。"""
    pass


class OperationAbortedError(InstallCoordinatorError):
    """用户拒绝确认时抛出。"""
    pass


class InstallInterrupted(KeyboardInterrupt):
    """安装过程中收到终止信号。"""
    pass


@dataclass
class InstallOptions:
    """
    安装选项。

    Attributes:
        force: 已安装时不询问直接重新安装
        skip_existing: 已安装时直接成功返回
        keep: 构建后保留源码
        verbose: 详细构建输出
        patch: 从标准输入读取补丁
        version_name: 显式指定的版本名，优先于从定义推导
    """

    force: bool = False
    skip_existing: bool = False
    keep: bool = False
    verbose: bool = False
    patch: bool = False
    version_name: Optional[str] = None


@dataclass
class InstallSession:
    """单次安装的临时状态，钩子体可以读取和修改。"""

    definition: str
    version_name: str
    prefix: str
    prefix_existed: bool
    options: InstallOptions
    build_options: BuildOptions
    status: Optional[int] = None
    skipped: bool = False
    suggestions: List[str] = field(default_factory=list)

    @property
    def bin_root(self) -> str:
        return os.path.join(self.prefix, "bin")


@dataclass
class UninstallSession:
    """单次卸载的临时状态。"""

    version_name: str
    prefix: str
    force: bool = False


def _decline(message: str) -> bool:
    logger.warning(f"非交互模式，默认拒绝: {message}")
    return False


class InstallCoordinator:
    """
    安装协调器类。

    安装前缀在尝试前不存在时，构建失败或被中断都会删除该前缀；
    尝试前已存在的前缀永远不会被删除。
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        version_store: VersionStore,
        shim_manager: ShimManager,
        hook_registry: HookRegistry,
        builder: IBuilder,
        definition_index: Optional[DefinitionIndex] = None,
        confirm: Optional[ConfirmFunc] = None,
    ):
        """
        初始化安装协调器。

        参数:
            config_manager: 配置管理器实例
            version_store: 版本仓库实例
            shim_manager: 垫片管理器实例
            hook_registry: 钩子注册表实例
            builder: 外部构建器
            definition_index: 定义索引，用于"找不到定义"时给出候选
            confirm: 确认回调，返回 True 表示同意；默认拒绝
        """
        self.config_manager = config_manager
        self.version_store = version_store
        self.shim_manager = shim_manager
        self.hook_registry = hook_registry
        self.builder = builder
        self.definition_index = definition_index
        self.confirm = confirm or _decline

    def _preflight(self, definition: str, options: InstallOptions) -> InstallSession:
        name = InputValidator.sanitize_version_name(options.version_name or derive_version_name(definition))
        InputValidator.validate_installable_name(name)

        prefix = self.version_store.prefix_for(name)
        build_options = BuildOptions(
            keep=options.keep,
            verbose=options.verbose,
            patch=options.patch,
            build_root=self.config_manager.get_build_root(),
            cache_path=self.config_manager.get_cache_path(),
        )
        return InstallSession(
            definition=definition,
            version_name=name,
            prefix=prefix,
            prefix_existed=os.path.exists(prefix),
            options=options,
            build_options=build_options,
        )

    def run_install(self, definition: str, options: Optional[InstallOptions] = None) -> InstallSession:
        """
        执行安装并返回会话。

        参数:
            definition: 版本名或定义文件路径
            options: 安装选项

        返回:
            InstallSession，其 status 为构建器退出码

        抛出:
            InputValidationError: 版本名无效
            OperationAbortedError: 用户拒绝覆盖已安装版本
        """
        options = options or InstallOptions()
        session = self._preflight(definition, options)

        if self.version_store.is_installed(session.version_name):
            if options.skip_existing:
                logger.info(f"{session.prefix} 已安装，跳过")
                session.status = 0
                session.skipped = True
                return session
            if not options.force and not self.confirm(f"{session.prefix} 已存在，是否继续安装？"):
                raise OperationAbortedError(f"已取消安装 {session.version_name}")

        logger.info(f"开始安装 {session.version_name}（定义: {definition}）到 {session.prefix}")

        with self._rollback_guard(session):
            self.hook_registry.source(INSTALL_EVENT, session)
            self.hook_registry.run_before(INSTALL_EVENT, session)

            session.status = self.builder.build(session.definition, session.prefix, session.build_options)

            if session.status == 0:
                self._link_and_rehash(session)
                logger.info(f"成功安装 {session.version_name}")
            else:
                logger.error(f"安装 {session.version_name} 失败，构建器退出码 {session.status}")
                self._rollback(session)
                if session.status == DEFINITION_NOT_FOUND:
                    session.suggestions = self._suggest(session.definition)

            self.hook_registry.run_after(INSTALL_EVENT, session)

        return session

    def install(self, definition: str, options: Optional[InstallOptions] = None) -> int:
        """
        安装版本。

        参数:
            definition: 版本名或定义文件路径
            options: 安装选项

        返回:
            构建器的退出码（原样透传）
        """
        return self.run_install(definition, options).status

    def _link_and_rehash(self, session: InstallSession) -> None:
        os.makedirs(session.bin_root, exist_ok=True)
        executables = self.version_store.executables(session.version_name)
        if executables:
            logger.debug(f"{session.version_name} 提供的命令: {', '.join(executables)}")
        else:
            logger.warning(f"构建器没有在 {session.bin_root} 中放置任何可执行文件")
        self.shim_manager.rehash()

    def _rollback(self, session: InstallSession) -> None:
        if session.prefix_existed:
            logger.info(f"{session.prefix} 在安装前已存在，保留不删除")
            return
        if not os.path.lexists(session.prefix):
            return
        logger.info(f"回滚：删除 {session.prefix}")
        try:
            shutil.rmtree(session.prefix)
        except OSError as e:
            logger.error(f"回滚删除 {session.prefix} 失败: {e}")

    def _suggest(self, definition: str) -> List[str]:
        if self.definition_index is None:
            return []
        try:
            return self.definition_index.search(definition)
        except (OSError, re.error) as e:
            logger.warning(f"查找候选定义失败: {e}")
            return []

    def _install_signal_handlers(self) -> Dict[int, object]:
        if threading.current_thread() is not threading.main_thread():
            return {}

        def _raise_interrupt(signum, frame):
            raise InstallInterrupted(f"收到信号 {signum}")

        previous = {}
        for name in ("SIGTERM", "SIGHUP"):
            signum = getattr(signal, name, None)
            if signum is not None:
                previous[signum] = signal.signal(signum, _raise_interrupt)
        return previous

    @contextmanager
    def _rollback_guard(self, session: InstallSession) -> Iterator[None]:
        """
        安装会话的回滚保护。

        中断（KeyboardInterrupt、SIGTERM、SIGHUP）在任何阶段都会触发回滚；
        其他异常只在构建器尚未给出退出码时触发回滚。
        """
        previous = self._install_signal_handlers()
        try:
            yield
        except KeyboardInterrupt:
            logger.warning(f"安装 {session.version_name} 被中断，正在回滚")
            self._rollback(session)
            raise
        except BaseException:
            if session.status is None:
                self._rollback(session)
            raise
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def uninstall(self, version: str, force: bool = False) -> int:
        """
        卸载版本。

        参数:
            version: 版本名
            force: 不询问；版本不存在时静默成功

        返回:
            退出码 0

        抛出:
            InputValidationError: 版本名无效
            VersionNotInstalledError: 版本不存在且未指定 force
            OperationAbortedError: 用户拒绝确认
        """
        name = InputValidator.sanitize_version_name(version)
        InputValidator.validate_version_name(name)
        session = UninstallSession(name, self.version_store.prefix_for(name), force)

        if not self.version_store.exists(name):
            if force:
                logger.debug(f"版本 {name} 不存在，force 模式下忽略")
                return 0
            raise VersionNotInstalledError(name)

        if not force and not self.confirm(f"是否卸载 {session.prefix}？"):
            raise OperationAbortedError(f"已取消卸载 {name}")

        self.hook_registry.source(UNINSTALL_EVENT, session)
        self.hook_registry.run_before(UNINSTALL_EVENT, session)

        self.version_store.remove(name)
        self.shim_manager.rehash()

        self.hook_registry.run_after(UNINSTALL_EVENT, session)
        logger.info(f"已卸载 {name}")
        return 0
