"""
Mongover 命令行接口模块。
"""

import argparse
import json
import logging
import subprocess
import sys
from typing import List

from src.core.config_manager import ConfigManager
from src.core.errors import MongoverError
from src.core.hook_registry import EVENTS
from src.core.installer import InstallAction
from src.core.version_manager import VersionManager
from src.core.version_utils import Version
from src.utils.input_validator import InputValidator
from src.utils.logger import get_logger, set_log_level
from src.utils.permission_manager import can_write, is_admin

logger = get_logger()

ACTIVE_MARKER = "ο"

EXEC_COMMANDS = {
    "use": "mongod",
    "shard": "mongos",
    "shell": "mongo",
}

COMMANDS = (
    "install", "use", "shard", "shell", "bin", "rm", "ls", "available",
    "installed", "src", "pre", "post", "config",
)


def create_parser() -> argparse.ArgumentParser:
    """
    创建并配置命令行参数解析器。

    返回:
        配置好的 ArgumentParser 实例
    """
    parser = argparse.ArgumentParser(
        prog="mgv",
        description="Mongover - MongoDB 版本管理器",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  mgv                         列出已安装版本
  mgv 3.6                     安装并激活 3.6 系列的最新版本
  mgv 3.6.3-ent               安装并激活企业版 3.6.3
  mgv 3.6.3 --config --ssl    使用构建参数从源码安装
  mgv use 3.6.3 --port 27018  以指定版本运行 mongod
  mgv rm 3.4.0 3.4.1          删除版本
  mgv pre install add /path   注册安装前钩子
  mgv --stable                显示最新稳定版
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="启用详细输出",
    )

    meta = parser.add_mutually_exclusive_group()
    meta.add_argument(
        "--stable",
        action="store_true",
        help="显示最新稳定版本（偶数次版本号）",
    )
    meta.add_argument(
        "--latest",
        action="store_true",
        help="显示最新版本（包括预发布版本）",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="命令",
        description="可用的 CLI 命令",
    )

    install_parser = subparsers.add_parser(
        "install",
        help="安装并激活指定版本",
    )
    install_parser.add_argument(
        "spec",
        help="版本规格，如 3.6.3、3.6、3.6-ent、latest、stable",
    )
    install_parser.add_argument(
        "--config",
        nargs=argparse.REMAINDER,
        default=None,
        help="源码构建参数（之后的全部参数原样传给构建工具）",
    )
    install_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="没有二进制包时不询问，直接从源码构建",
    )

    for name, binary in EXEC_COMMANDS.items():
        exec_parser = subparsers.add_parser(
            name,
            help=f"以指定版本运行 {binary}",
        )
        exec_parser.add_argument("spec", help="已安装的版本")
        exec_parser.add_argument("args", nargs=argparse.REMAINDER, help=f"传给 {binary} 的参数")

    bin_parser = subparsers.add_parser(
        "bin",
        help="显示指定版本的可执行文件路径",
    )
    bin_parser.add_argument("spec", help="已安装的版本")
    bin_parser.add_argument("name", nargs="?", default="mongod", help="可执行文件名，默认为 mongod")

    rm_parser = subparsers.add_parser(
        "rm",
        help="删除已安装的版本",
    )
    rm_parser.add_argument("specs", nargs="+", help="要删除的版本")
    rm_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="删除当前激活版本时不询问",
    )

    for name in ("ls", "available"):
        ls_parser = subparsers.add_parser(
            name,
            help="列出远程可用版本",
        )
        ls_parser.add_argument(
            "--refresh",
            "-r",
            action="store_true",
            help="忽略缓存，重新获取版本目录",
        )

    installed_parser = subparsers.add_parser(
        "installed",
        help="列出已安装版本",
    )
    installed_parser.add_argument(
        "--json",
        action="store_true",
        help="以 JSON 格式输出",
    )

    src_parser = subparsers.add_parser(
        "src",
        help="显示指定版本的源码包地址",
    )
    src_parser.add_argument("spec", help="版本规格")

    for phase in ("pre", "post"):
        hook_parser = subparsers.add_parser(
            phase,
            help=f"管理 {phase} 钩子",
        )
        hook_parser.add_argument("event", help=f"事件 ({' / '.join(EVENTS)})")
        hook_parser.add_argument(
            "action",
            nargs="?",
            choices=["add", "rm", "ls"],
            default="ls",
            help="操作，默认为 ls",
        )
        hook_parser.add_argument("path", nargs="?", default=None, help="钩子脚本的绝对路径")

    config_parser = subparsers.add_parser(
        "config",
        help="显示或修改配置",
    )
    config_parser.add_argument(
        "action",
        nargs="?",
        choices=["show", "set", "clear-cache"],
        default="show",
        help="操作，默认为 show",
    )
    config_parser.add_argument("key", nargs="?", default=None, help="settings 中的字段名")
    config_parser.add_argument("value", nargs="?", default=None, help="字段值（按 JSON 解析，失败时作为字符串）")

    return parser


def normalize_argv(argv: List[str]) -> List[str]:
    """
    把 `mgv <版本> [--config ...]` 改写为 `mgv install <版本> [--config ...]`。

    参数:
        argv: 原始参数

    返回:
        改写后的参数
    """
    for index, arg in enumerate(argv):
        if arg.startswith("-"):
            continue
        if arg in COMMANDS:
            return argv
        return argv[:index] + ["install"] + argv[index:]
    return argv


def _get_managers():
    """
    获取管理器实例。

    返回:
        包含 ConfigManager、VersionManager 的元组
    """
    config_manager = ConfigManager()
    version_manager = VersionManager(config_manager)
    return config_manager, version_manager


def _ask(question: str) -> bool:
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def run_cli(args: argparse.Namespace) -> int:
    """
    运行命令行接口。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码（0 表示成功，1 表示中止）
    """
    if args.verbose:
        set_log_level(logging.DEBUG)

    command_handlers = {
        None: handle_default,
        "install": handle_install,
        "use": handle_exec,
        "shard": handle_exec,
        "shell": handle_exec,
        "bin": handle_bin,
        "rm": handle_rm,
        "ls": handle_available,
        "available": handle_available,
        "installed": handle_installed,
        "src": handle_src,
        "pre": handle_hook,
        "post": handle_hook,
        "config": handle_config,
    }

    handler = command_handlers.get(args.command)
    if handler is None:
        print(f"未知命令: {args.command}")
        return 1
    try:
        return handler(args)
    except MongoverError as e:
        logger.info(f"命令中止: {e}")
        print(f"错误: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.info(f"命令中止，文件操作失败: {e}", exc_info=True)
        print(f"错误: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n已取消", file=sys.stderr)
        return 1


def handle_default(args: argparse.Namespace) -> int:
    """
    处理无命令调用：--stable / --latest 显示解析结果，否则列出已安装版本。
    """
    if args.stable or args.latest:
        _, version_manager = _get_managers()
        version = version_manager.resolve_stable() if args.stable else version_manager.resolve_latest()
        print(version)
        return 0
    return handle_installed(args)


def handle_installed(args: argparse.Namespace) -> int:
    """
    处理 installed 命令：列出已安装版本，当前激活版本以 ο 标出。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, version_manager = _get_managers()
    entries = version_manager.list_installed()

    if getattr(args, "json", False):
        result = [
            {
                "version": str(item.version),
                "path": str(item.path),
                "active": active,
                "config": version_manager.store.read_config(item.version),
            }
            for item, active in entries
        ]
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return 0

    if not entries:
        print("未找到已安装版本")
        return 0
    for item, active in entries:
        marker = f"  {ACTIVE_MARKER}" if active else "   "
        print(f"{marker} {item.version}")
    return 0


def _print_progress(downloaded: int, total: int) -> None:
    if total > 0:
        percent = min(100, int(downloaded / total * 100))
        bar_len = 40
        filled = int(bar_len * percent / 100)
        bar = "=" * filled + "-" * (bar_len - filled)
        print(f"\r[{bar}] {percent}% ({downloaded}/{total} 字节)", end="", flush=True)
    else:
        print(f"\r已下载 {downloaded} 字节", end="", flush=True)


def handle_install(args: argparse.Namespace) -> int:
    """
    处理 install 命令：安装并激活指定版本。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    config_manager, version_manager = _get_managers()
    config = " ".join(args.config) if args.config is not None else None

    install_root = config_manager.get_install_root()
    writable = can_write(install_root) and can_write(config_manager.get_prefix())
    if not writable and not is_admin():
        logger.warning(f"可能没有 {install_root} 的写入权限，必要时请使用 sudo 或设置 M_PREFIX")

    def confirm_source_build(url: str) -> bool:
        if args.yes:
            return True
        print(f"当前平台没有可用的二进制包，可以从源码构建: {url}")
        return _ask("是否从源码构建？")

    print(f"正在安装 {args.spec}...")
    result = version_manager.install(
        args.spec,
        config=config,
        confirm_source_build=confirm_source_build,
        progress_callback=_print_progress,
    )
    version = result.installed.version
    if result.action is InstallAction.NOOP:
        print(f"{version} 已是当前激活版本")
    elif result.action is InstallAction.ACTIVATED:
        print(f"已激活 {version}")
    else:
        print(f"\n成功安装并激活 {version}")
    return 0


def handle_exec(args: argparse.Namespace) -> int:
    """
    处理 use / shard / shell 命令：以指定版本运行 mongod / mongos / mongo。

    返回:
        被运行程序的退出码
    """
    _, version_manager = _get_managers()
    binary = version_manager.bin_path(args.spec, EXEC_COMMANDS[args.command])
    command = [str(binary), *args.args]
    logger.info(f"运行: {' '.join(command)}")
    try:
        return subprocess.run(command, check=False).returncode
    except OSError as e:
        print(f"无法运行 {binary}: {e}", file=sys.stderr)
        return 1


def handle_bin(args: argparse.Namespace) -> int:
    _, version_manager = _get_managers()
    print(version_manager.bin_path(args.spec, args.name))
    return 0


def handle_rm(args: argparse.Namespace) -> int:
    """
    处理 rm 命令：删除已安装版本。删除当前激活版本前需要确认。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, version_manager = _get_managers()

    def confirm(version: Version) -> bool:
        if args.yes:
            return True
        return _ask(f"{version} 是当前激活版本，确定要删除吗？")

    removed = version_manager.remove(args.specs, confirm=confirm)
    for version in removed:
        print(f"已删除 {version}")
    return 0


def handle_available(args: argparse.Namespace) -> int:
    """
    处理 ls / available 命令：列出远程可用版本，已安装的版本以 ο 标出。
    """
    _, version_manager = _get_managers()
    print("正在获取远程版本...")
    versions = version_manager.remote_versions(use_cache=not args.refresh)
    if not versions:
        print("未找到远程版本")
        return 0
    installed = {item.version for item, _ in version_manager.list_installed()}
    for version in versions:
        marker = f"  {ACTIVE_MARKER}" if version in installed else "   "
        print(f"{marker} {version}")
    return 0


def handle_src(args: argparse.Namespace) -> int:
    _, version_manager = _get_managers()
    print(version_manager.source_url(args.spec))
    return 0


def handle_hook(args: argparse.Namespace) -> int:
    """
    处理 pre / post 命令：列出、添加或移除钩子脚本。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    _, version_manager = _get_managers()
    phase = args.command

    if args.action == "add":
        if not args.path:
            print("add 需要指定钩子脚本路径")
            return 1
        if version_manager.add_hook(phase, args.event, args.path):
            print(f"已添加 {phase} {args.event} 钩子: {args.path}")
        else:
            print(f"{phase} {args.event} 钩子已存在: {args.path}")
        return 0

    if args.action == "rm":
        removed = version_manager.remove_hook(phase, args.event, args.path)
        print(f"已移除 {removed} 个 {phase} {args.event} 钩子")
        return 0

    for script in version_manager.list_hooks(phase, args.event):
        print(script)
    return 0


def handle_config(args: argparse.Namespace) -> int:
    """
    处理 config 命令：显示或修改配置，或清空版本目录缓存。

    参数:
        args: 解析后的命令行参数

    返回:
        退出码
    """
    config_manager = ConfigManager()

    if args.action == "clear-cache":
        config_manager.clear_cache()
        print("已清空缓存")
        return 0

    if args.action == "set":
        if not args.key or args.value is None:
            print("格式无效。请使用: mgv config set KEY VALUE")
            return 1
        try:
            value = json.loads(args.value)
        except json.JSONDecodeError:
            value = args.value
        config_manager.set_setting(args.key, value)
        print(f"已设置 {args.key} = {value}")
        return 0

    config = config_manager.get_config()
    if args.key:
        missing = object()
        value = InputValidator.safe_get_config_value(config, f"settings.{args.key}", missing)
        if value is missing:
            print(f"未知配置项: {args.key}")
            return 1
        print(json.dumps(value, ensure_ascii=False))
        return 0
    print(json.dumps(config, indent=2, ensure_ascii=False))
    return 0
