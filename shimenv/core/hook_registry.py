"""
钩子注册模块。

插件在 <root>/plugins/<插件名>/hooks/ 下提供 Python 钩子脚本，文件名为
<事件名>.py 或 <事件名>.<任意>.py。执行脚本时，其命名空间中会注入
before_<事件名>、after_<事件名> 两个注册函数以及当前会话对象 session。

示例钩子脚本（plugins/env/hooks/install.py）::

    def _inject_flags(session):
        session.build_options.env["CFLAGS"] = "-O3"

    before_install(_inject_flags)

钩子体不在沙箱中运行，可以修改会话状态；钩子抛出的异常不会被捕获。
"""

import importlib.util
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from shimenv.utils.logger import get_logger
from shimenv.core.config_manager import ConfigManager

logger = get_logger()

HookBody = Callable[[Any], Any]

_MODULE_NAME_PATTERN = re.compile(r'[^0-9A-Za-z_]')


class HookLoadError(Exception):
    """钩子脚本加载错误异常。"""
    pass


class HookRegistry:
    """
    钩子注册表类。

    每个事件维护两个有序列表 before 与 after，注册顺序即执行顺序。
    注册表是显式对象，由安装/卸载会话持有，而不是进程级全局状态。
    """

    def __init__(self, config_manager: ConfigManager):
        """
        初始化钩子注册表。

        参数:
            config_manager: 配置管理器实例
        """
        self.config_manager = config_manager
        self._before: Dict[str, List[HookBody]] = {}
        self._after: Dict[str, List[HookBody]] = {}
        # 由钩子脚本注册的钩子体，重新 source 时先撤销
        self._sourced: Dict[str, List[HookBody]] = {}

    def hook_paths(self) -> List[Path]:
        """
        获取钩子目录搜索路径。

        顺序：config.json 中的 hook_paths，SHIMENV_HOOK_PATH，
        然后按插件名排序的 <root>/plugins/*/hooks。

        返回:
            钩子目录列表（只包含存在的目录）
        """
        paths = [Path(p).expanduser() for p in self.config_manager.get_hook_paths()]
        paths.extend(Path(p).expanduser() for p in self.config_manager.get_env_hook_paths())

        plugins_dir = self.config_manager.plugins_dir
        if plugins_dir.is_dir():
            for plugin in sorted(plugins_dir.iterdir(), key=lambda p: p.name):
                paths.append(plugin / self.config_manager.hooks_subdir)

        return [p for p in paths if p.is_dir()]

    def load_hooks(self, event: str) -> List[Path]:
        """
        发现指定事件的钩子脚本。

        参数:
            event: 事件名（如 install、uninstall）

        返回:
            钩子脚本路径列表，按搜索路径顺序拼接，目录内按文件名排序
        """
        scripts: List[Path] = []
        seen = set()
        for hook_dir in self.hook_paths():
            candidates = sorted(
                p for p in hook_dir.iterdir()
                if p.is_file() and p.suffix == ".py"
                and (p.name == f"{event}.py" or p.name.startswith(f"{event}."))
            )
            for script in candidates:
                real = os.path.realpath(script)
                if real in seen:
                    continue
                seen.add(real)
                scripts.append(script)

        logger.debug(f"事件 {event} 的钩子脚本: {[str(s) for s in scripts]}")
        return scripts

    def before(self, event: str, body: HookBody) -> None:
        """注册事件前执行的钩子体。"""
        self._before.setdefault(event, []).append(body)

    def after(self, event: str, body: HookBody) -> None:
        """注册事件后执行的钩子体。"""
        self._after.setdefault(event, []).append(body)

    def get_before(self, event: str) -> List[HookBody]:
        return list(self._before.get(event, []))

    def get_after(self, event: str) -> List[HookBody]:
        return list(self._after.get(event, []))

    def _register_sourced(self, table: Dict[str, List[HookBody]], event: str, body: HookBody) -> None:
        table.setdefault(event, []).append(body)
        self._sourced.setdefault(event, []).append(body)

    def _forget_sourced(self, event: str) -> None:
        """撤销上一次 source 时脚本注册的钩子体，代码中直接注册的保持不变。"""
        stale = self._sourced.pop(event, [])
        if not stale:
            return
        for table in (self._before, self._after):
            if event in table:
                table[event] = [b for b in table[event] if not any(b is s for s in stale)]

    def _exec_script(self, event: str, script: Path, session: Any) -> None:
        module_name = "shimenv_hook_" + _MODULE_NAME_PATTERN.sub("_", f"{script.parent.parent.name}_{script.stem}")
        spec = importlib.util.spec_from_file_location(module_name, script)
        if spec is None or spec.loader is None:
            raise HookLoadError(f"无法加载钩子脚本: {script}")

        module = importlib.util.module_from_spec(spec)
        setattr(module, f"before_{event}", lambda body: self._register_sourced(self._before, event, body))
        setattr(module, f"after_{event}", lambda body: self._register_sourced(self._after, event, body))
        module.session = session
        logger.debug(f"执行钩子脚本 {script}")
        spec.loader.exec_module(module)

    def source(self, event: str, session: Any = None) -> List[Path]:
        """
        执行事件的全部钩子脚本，让它们注册 before/after 钩子体。

        同一注册表可以服务多个会话：每次 source 前先撤销脚本上一次注册的
        钩子体，脚本注册的内容不会跨会话累积。

        参数:
            event: 事件名
            session: 注入脚本命名空间的会话对象

        返回:
            已执行的钩子脚本路径列表
        """
        self._forget_sourced(event)
        scripts = self.load_hooks(event)
        for script in scripts:
            self._exec_script(event, script, session)
        return scripts

    def run_before(self, event: str, session: Any = None) -> None:
        """按注册顺序执行 before 钩子体，异常直接向上传播。"""
        for body in self.get_before(event):
            body(session)

    def run_after(self, event: str, session: Any = None) -> None:
        """按注册顺序执行 after 钩子体，异常直接向上传播。"""
        for body in self.get_after(event):
            body(session)

    def clear(self, event: Optional[str] = None) -> None:
        """
        清除已注册的钩子体。

        参数:
            event: 事件名；为 None 时清除全部事件
        """
        if event is None:
            self._before.clear()
            self._after.clear()
            self._sourced.clear()
        else:
            self._before.pop(event, None)
            self._after.pop(event, None)
            self._sourced.pop(event, None)
