"""
Shimenv 命令行接口模块。
"""

import argparse
import os
import sys
from typing import List, NoReturn, Tuple

from shimenv import __version__
from shimenv.core.config_manager import ConfigManager
from shimenv.core.version_store import VersionStore, VersionNotInstalledError
from shimenv.core.version_resolver import SYSTEM_VERSION, VersionResolver, read_version_file
from shimenv.core.shim_manager import ShimManager, CommandNotFoundError
from shimenv.core.hook_registry import HookRegistry
from shimenv.core.builder import CommandBuilder, DEFINITION_NOT_FOUND
from shimenv.core.definition_index import DefinitionIndex
from shimenv.core.install_coordinator import InstallCoordinator, InstallOptions, OperationAbortedError
from shimenv.utils.input_validator import InputValidator, InputValidationError
from shimenv.utils.logger import get_logger

logger = get_logger()

COMMAND_NOT_FOUND_STATUS = 127


class ShimenvArgumentParser(argparse.ArgumentParser):
    """用法错误时以退出码 1 退出的参数解析器。"""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: 错误: {message}\n")


def create_parser() -> argparse.ArgumentParser:
    """
    创建并配置命令行参数解析器。

    返回:
        配置好的 ArgumentParser 实例
    """
    parser = ShimenvArgumentParser(
        prog="shimenv",
        description="Shimenv - 运行时版本管理器",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  shimenv install 3.12.1       安装 3.12.1
  shimenv install --list       列出可安装的定义
  shimenv global 3.12.1        设置全局版本
  shimenv local 3.11.7 system  在当前目录设置本地版本
  shimenv versions             列出已安装版本
  shimenv whence pip           列出提供 pip 命令的版本
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="启用调试输出",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="命令",
        description="可用的 CLI 命令",
    )

    install_parser = subparsers.add_parser(
        "install",
        help="通过外部构建器安装版本",
    )
    install_parser.add_argument(
        "definition",
        nargs="?",
        default=None,
        help="版本名或定义文件路径",
    )
    install_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="列出所有可用的定义",
    )
    install_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="版本已安装时不询问直接重新安装",
    )
    install_parser.add_argument(
        "--skip-existing",
        "-s",
        action="store_true",
        help="版本已安装时直接成功返回",
    )
    install_parser.add_argument(
        "--keep",
        "-k",
        action="store_true",
        help="构建后保留源码",
    )
    install_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="输出详细构建日志",
    )
    install_parser.add_argument(
        "--patch",
        "-p",
        action="store_true",
        help="从标准输入读取补丁",
    )
    install_parser.add_argument(
        "--as",
        dest="version_name",
        default=None,
        metavar="NAME",
        help="以指定名称安装（默认从定义推导）",
    )

    uninstall_parser = subparsers.add_parser(
        "uninstall",
        help="卸载指定版本",
    )
    uninstall_parser.add_argument(
        "version",
        help="要卸载的版本",
    )
    uninstall_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="不询问；版本不存在时静默成功",
    )

    whence_parser = subparsers.add_parser(
        "whence",
        help="列出提供指定命令的所有版本",
    )
    whence_parser.add_argument(
        "program",
        help="命令名",
    )
    whence_parser.add_argument(
        "--path",
        action="store_true",
        help="输出可执行文件路径而不是版本名",
    )

    global_parser = subparsers.add_parser(
        "global",
        help="设置或显示全局版本",
    )
    global_parser.add_argument(
        "versions",
        nargs="*",
        help="版本名（省略则显示当前全局版本）",
    )

    local_parser = subparsers.add_parser(
        "local",
        help="设置或显示当前目录的本地版本",
    )
    local_parser.add_argument(
        "versions",
        nargs="*",
        help="版本名（省略则显示当前本地版本）",
    )
    local_parser.add_argument(
        "--unset",
        action="store_true",
        help="删除当前目录的本地版本文件",
    )

    subparsers.add_parser(
        "version",
        help="显示当前版本及其来源",
    )

    subparsers.add_parser(
        "version-name",
        help="显示当前版本名",
    )

    versions_parser = subparsers.add_parser(
        "versions",
        help="列出所有已安装版本",
    )
    versions_parser.add_argument(
        "--bare",
        action="store_true",
        help="只输出版本名",
    )

    which_parser = subparsers.add_parser(
        "which",
        help="显示命令将执行的可执行文件路径",
    )
    which_parser.add_argument(
        "program",
        help="命令名",
    )

    exec_parser = subparsers.add_parser(
        "exec",
        help="以当前版本执行命令",
    )
    exec_parser.add_argument(
        "program",
        help="命令名",
    )
    exec_parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        help="传给命令的参数",
    )

    subparsers.add_parser(
        "rehash",
        help="重新生成垫片",
    )

    shims_parser = subparsers.add_parser(
        "shims",
        help="列出现有垫片",
    )
    shims_parser.add_argument(
        "--short",
        action="store_true",
        help="只输出垫片名",
    )

    prefix_parser = subparsers.add_parser(
        "prefix",
        help="显示版本的安装前缀",
    )
    prefix_parser.add_argument(
        "versions",
        nargs="*",
        help="版本名（省略则使用当前版本）",
    )

    hooks_parser = subparsers.add_parser(
        "hooks",
        help="列出事件的钩子脚本",
    )
    hooks_parser.add_argument(
        "event",
        help="事件名（如 install、uninstall）",
    )

    subparsers.add_parser(
        "root",
        help="显示安装根目录",
    )

    return parser


def run_cli(args: argparse.Namespace) -> int:
    """
    运行命令行接口。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码（0 表示成功）
    """
    if args.command is None:
        print("未指定命令。使用 --help 查看帮助信息。", file=sys.stderr)
        return 1

    command_handlers = {
        "install": handle_install,
        "uninstall": handle_uninstall,
        "whence": handle_whence,
        "global": handle_global,
        "local": handle_local,
        "version": handle_version,
        "version-name": handle_version_name,
        "versions": handle_versions,
        "which": handle_which,
        "exec": handle_exec,
        "rehash": handle_rehash,
        "shims": handle_shims,
        "prefix": handle_prefix,
        "hooks": handle_hooks,
        "root": handle_root,
    }

    handler = command_handlers.get(args.command)
    if handler is None:
        print(f"未知命令: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except InputValidationError as e:
        print(f"shimenv: {e}", file=sys.stderr)
        return 1
    except (VersionNotInstalledError, OperationAbortedError) as e:
        print(f"shimenv: {e}", file=sys.stderr)
        return 1
    except CommandNotFoundError as e:
        print(f"shimenv: {e}", file=sys.stderr)
        return COMMAND_NOT_FOUND_STATUS


def confirm(message: str) -> bool:
    """
    在终端上询问用户确认。

    参数:
        message: 提示信息

    返回:
        用户输入 y/yes 返回 True；其他输入或标准输入关闭返回 False
    """
    try:
        answer = input(f"shimenv: {message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _get_managers() -> Tuple[ConfigManager, VersionStore, VersionResolver, ShimManager]:
    """
    获取管理器实例。

    返回:
        包含 ConfigManager、VersionStore、VersionResolver、ShimManager 的元组
    """
    config_manager = ConfigManager()
    version_store = VersionStore(config_manager)
    resolver = VersionResolver(config_manager)
    shim_manager = ShimManager(config_manager, version_store, resolver)
    return config_manager, version_store, resolver, shim_manager


def _get_coordinator() -> InstallCoordinator:
    config_manager, version_store, _, shim_manager = _get_managers()
    return InstallCoordinator(
        config_manager,
        version_store,
        shim_manager,
        HookRegistry(config_manager),
        CommandBuilder(config_manager),
        definition_index=DefinitionIndex(config_manager),
        confirm=confirm,
    )


def _validate_versions(version_store: VersionStore, versions: List[str]) -> List[str]:
    """校验版本名并确认非 system 的版本均已安装。"""
    names = []
    for version in versions:
        name = InputValidator.sanitize_version_name(version)
        InputValidator.validate_version_name(name)
        if name != SYSTEM_VERSION and not version_store.exists(name):
            raise VersionNotInstalledError(name)
        names.append(name)
    return names


def handle_install(args: argparse.Namespace) -> int:
    """
    处理 install 命令：通过外部构建器安装版本。

    参数:
        args: 解析后的命令行参数

    返回:
        构建器的退出码
    """
    if args.list:
        config_manager = ConfigManager()
        print("可用的定义:")
        for name in DefinitionIndex(config_manager).list_definitions():
            print(f"  {name}")
        return 0

    if not args.definition:
        print("shimenv install: 缺少版本名或定义文件路径", file=sys.stderr)
        return 1

    options = InstallOptions(
        force=args.force,
        skip_existing=args.skip_existing,
        keep=args.keep,
        verbose=args.verbose,
        patch=args.patch,
        version_name=args.version_name,
    )
    session = _get_coordinator().run_install(args.definition, options)

    if session.status == DEFINITION_NOT_FOUND:
        print(f"\nshimenv: 找不到定义 '{args.definition}'", file=sys.stderr)
        if session.suggestions:
            print("以下定义名称相近:", file=sys.stderr)
            for name in session.suggestions:
                print(f"  {name}", file=sys.stderr)
        print("使用 'shimenv install --list' 查看所有可用定义。", file=sys.stderr)
    elif session.status == 0 and not session.skipped:
        print(f"已安装 {session.version_name} 到 {session.prefix}")

    return session.status


def handle_uninstall(args: argparse.Namespace) -> int:
    """
    处理 uninstall 命令：卸载指定版本。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    return _get_coordinator().uninstall(args.version, force=args.force)


def handle_whence(args: argparse.Namespace) -> int:
    """
    处理 whence 命令：列出提供指定命令的所有版本。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码；没有任何版本提供该命令时为 1
    """
    InputValidator.validate_command_name(args.program)
    _, version_store, _, _ = _get_managers()

    versions = version_store.whence(args.program)
    if not versions:
        print(f"shimenv: 没有任何已安装版本提供命令 {args.program}", file=sys.stderr)
        return 1

    for version in versions:
        if args.path:
            print(version_store.provides(version, args.program))
        else:
            print(version)
    return 0


def handle_global(args: argparse.Namespace) -> int:
    """
    处理 global 命令：设置或显示全局版本。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, version_store, resolver, _ = _get_managers()

    if args.versions:
        resolver.write_global(_validate_versions(version_store, args.versions))
        return 0

    for version in resolver.global_request().versions:
        print(version)
    return 0


def handle_local(args: argparse.Namespace) -> int:
    """
    处理 local 命令：设置、删除或显示当前目录的本地版本。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    config_manager, version_store, resolver, _ = _get_managers()
    directory = config_manager.get_start_dir() or os.getcwd()

    if args.unset:
        resolver.unset_local(directory)
        return 0

    if args.versions:
        resolver.write_local(_validate_versions(version_store, args.versions), directory)
        return 0

    local_file = resolver.find_local_file(directory)
    if local_file is None:
        print("shimenv: 未配置本地版本", file=sys.stderr)
        return 1
    for version in read_version_file(local_file):
        print(version)
    return 0


def handle_version(args: argparse.Namespace) -> int:
    """
    处理 version 命令：显示当前版本及其来源。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, version_store, resolver, _ = _get_managers()
    request = resolver.resolve()

    status = 0
    for version in request.versions:
        if version == SYSTEM_VERSION or version_store.exists(version):
            print(f"{version} (由 {request.origin} 设置)")
        else:
            print(f"shimenv: {VersionNotInstalledError(version, request.origin)}", file=sys.stderr)
            status = 1
    return status


def handle_version_name(args: argparse.Namespace) -> int:
    """
    处理 version-name 命令：显示当前版本名（多个版本以冒号连接）。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码；任一版本未安装时为 1
    """
    _, version_store, resolver, _ = _get_managers()
    request = resolver.resolve()

    for version in request.versions:
        if version != SYSTEM_VERSION and not version_store.exists(version):
            raise VersionNotInstalledError(version, request.origin)

    print(request.name)
    return 0


def handle_versions(args: argparse.Namespace) -> int:
    """
    处理 versions 命令：列出所有已安装版本，标记当前版本。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, version_store, resolver, _ = _get_managers()
    versions = version_store.list_versions()

    if args.bare:
        for version in versions:
            print(version)
        return 0

    request = resolver.resolve()
    for version in [SYSTEM_VERSION] + versions:
        if version in request.versions:
            print(f"* {version} (由 {request.origin} 设置)")
        else:
            print(f"  {version}")
    return 0


def handle_which(args: argparse.Namespace) -> int:
    """
    处理 which 命令：显示命令将执行的可执行文件路径。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码；找不到命令时为 127
    """
    InputValidator.validate_command_name(args.program)
    _, version_store, _, shim_manager = _get_managers()

    version, path = shim_manager.find_command(args.program)
    print(path)

    providers = [v for v in version_store.whence(args.program) if v != version]
    if providers:
        logger.debug(f"{args.program} 也存在于以下版本: {', '.join(providers)}")
    return 0


def handle_exec(args: argparse.Namespace) -> int:
    """
    处理 exec 命令：以当前版本执行命令（垫片调用的入口）。

    参数:
        args: 解析后的命令行参数

    返回:
        成功时不返回；找不到命令时为 127
    """
    InputValidator.validate_command_name(args.program)
    _, _, _, shim_manager = _get_managers()
    shim_manager.exec_command(args.program, args.args)
    return 0


def handle_rehash(args: argparse.Namespace) -> int:
    """
    处理 rehash 命令：重新生成垫片。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, _, _, shim_manager = _get_managers()
    shim_manager.rehash()
    return 0


def handle_shims(args: argparse.Namespace) -> int:
    """
    处理 shims 命令：列出现有垫片。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, _, _, shim_manager = _get_managers()
    for name in shim_manager.list_shims():
        print(name if args.short else shim_manager.shim_path(name))
    return 0


def handle_prefix(args: argparse.Namespace) -> int:
    """
    处理 prefix 命令：显示版本的安装前缀。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, version_store, resolver, _ = _get_managers()
    versions = args.versions or resolver.resolve().versions

    prefixes = []
    for version in versions:
        if version == SYSTEM_VERSION:
            print("shimenv: system 版本没有安装前缀", file=sys.stderr)
            return 1
        name = InputValidator.sanitize_version_name(version)
        InputValidator.validate_version_name(name)
        if not version_store.exists(name):
            raise VersionNotInstalledError(name)
        prefixes.append(version_store.prefix_for(name))

    print(os.pathsep.join(prefixes))
    return 0


def handle_hooks(args: argparse.Namespace) -> int:
    """
    处理 hooks 命令：列出事件的钩子脚本。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    config_manager = ConfigManager()
    for script in HookRegistry(config_manager).load_hooks(args.event):
        print(script)
    return 0


def handle_root(args: argparse.Namespace) -> int:
    """
    处理 root 命令：显示安装根目录。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    print(ConfigManager().root)
    return 0
