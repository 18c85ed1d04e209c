"""
Mongover 异常定义。

所有致命错误都继承 MongoverError，CLI 捕获后以退出码 1 结束。
"""

from typing import Optional


class MongoverError(Exception):
    """Mongover 基础异常。"""
    pass


class MissingDependency(MongoverError):
    """缺少必需的外部工具（如源码构建所需的 scons）。"""
    pass


class ResolutionFailure(MongoverError):
    """版本规格在给定范围内没有匹配项。"""
    pass


class NotInstalledFailure(MongoverError):
    """请求的本地版本未安装。"""

    def __init__(self, version: str):
        super().__init__(f"版本 {version} 未安装")
        self.version = version


class DownloadFailure(MongoverError):
    """下载失败或解压失败，保留下载日志路径用于排查。"""

    def __init__(self, message: str, log_path: Optional[str] = None):
        if log_path:
            message = f"{message}（下载日志: {log_path}）"
        super().__init__(message)
        self.log_path = log_path


class UnsupportedPlatformFailure(MongoverError):
    """当前平台没有可用的安装包，且用户拒绝从源码构建。"""
    pass


class InvalidHookEvent(MongoverError):
    """钩子事件或阶段无效。"""
    pass


class InvalidHookPath(MongoverError):
    """钩子脚本路径不是绝对路径或不可执行。"""
    pass


class HookExecutionError(MongoverError):
    """ABORT 策略下钩子脚本返回非零退出码。"""

    def __init__(self, path: str, returncode: int):
        super().__init__(f"钩子 {path} 执行失败，退出码 {returncode}")
        self.path = path
        self.returncode = returncode


class BuildFailure(MongoverError):
    """源码构建失败。"""
    pass


class CatalogUnavailable(ResolutionFailure):
    """所有目录镜像都不可用且没有缓存。"""
    pass
