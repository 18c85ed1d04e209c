"""
安装流水线模块。

一次首次安装的阶段：pre install 钩子、下载、解压、放置 bin、激活、
清理临时构建目录、post install 钩子。
"""

import enum
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from src.core.artifact_locator import ArtifactLocator, SourceFallback
from src.core.download_manager import DownloadManager
from src.core.errors import BuildFailure, MissingDependency, UnsupportedPlatformFailure
from src.core.hook_registry import HookRegistry
from src.core.link_manager import LinkManager
from src.core.local_manager import InstalledVersion, VersionStore
from src.core.platform_info import PlatformDescriptor, detect_platform
from src.core.version_utils import Version
from src.utils.input_validator import InputValidationError, InputValidator
from src.utils.logger import get_logger

logger = get_logger()


class InstallAction(enum.Enum):
    """install() 实际执行的操作。"""

    NOOP = "noop"
    ACTIVATED = "activated"
    INSTALLED = "installed"


@dataclass(frozen=True)
class InstallResult:
    installed: InstalledVersion
    action: InstallAction


class InstallationPipeline:
    """
    安装流水线类。

    临时构建目录固定命名为 <install_root>/mongo-<version>，在任何退出路径上
    都会被删除；下载日志位于 <install_root>/mongo-<version>.log，仅在成功时删除。
    """

    def __init__(
        self,
        install_root: Path,
        store: VersionStore,
        locator: ArtifactLocator,
        downloader: DownloadManager,
        hooks: HookRegistry,
        link_manager: LinkManager,
        build_tool: str = "scons",
        platform_provider: Callable[[], PlatformDescriptor] = detect_platform,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        """
        初始化安装流水线。

        参数:
            install_root: 安装根目录
            store: 本地版本仓库
            locator: 安装包定位器
            downloader: 下载管理器
            hooks: 钩子注册表
            link_manager: 链接管理器
            build_tool: 源码构建工具
            platform_provider: 返回当前平台描述的函数
            run: 执行外部命令的函数
            which: 在 PATH 中查找可执行文件的函数
        """
        self.install_root = Path(install_root)
        self.store = store
        self.locator = locator
        self.downloader = downloader
        self.hooks = hooks
        self.link_manager = link_manager
        self.build_tool = build_tool
        self._platform_provider = platform_provider
        self._run = run
        self._which = which

    def build_dir(self, version: Version) -> Path:
        return self.install_root / f"mongo-{version}"

    def log_path(self, version: Version) -> Path:
        return self.install_root / f"mongo-{version}.log"

    def activate(self, version: Version) -> InstalledVersion:
        """
        激活已安装的版本，前后触发 change 钩子。

        参数:
            version: 要激活的版本

        返回:
            InstalledVersion

        抛出:
            NotInstalledFailure: 版本未安装
        """
        installed = self.store.require(version)
        self.hooks.fire("pre", "change", str(version))
        self.link_manager.link_version(installed.path)
        logger.info(f"已激活 {version}")
        self.hooks.fire("post", "change", str(version))
        return installed

    def install(
        self,
        version: Version,
        config: Optional[str] = None,
        confirm_source_build: Optional[Callable[[str], bool]] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> InstallResult:
        """
        安装并激活指定版本。

        参数:
            version: 具体版本
            config: 源码构建参数；给出时只从源码构建
            confirm_source_build: 没有二进制包时询问是否从源码构建，参数为源码包地址
            progress_callback: 下载进度回调

        返回:
            InstallResult

        抛出:
            DownloadFailure: 下载或解压失败
            UnsupportedPlatformFailure: 没有二进制包且拒绝源码构建
            MissingDependency: 源码构建缺少构建工具
            BuildFailure: 源码构建失败
        """
        if version == self.store.detect_active() and self.store.exists(version):
            logger.info(f"{version} 已是当前激活版本，无需操作")
            return InstallResult(self.store.require(version), InstallAction.NOOP)

        if self.store.exists(version):
            return InstallResult(self.activate(version), InstallAction.ACTIVATED)

        if config is not None:
            try:
                InputValidator.validate_build_flags(config)
            except InputValidationError as e:
                raise BuildFailure(str(e)) from e

        self.hooks.fire("pre", "install", str(version))

        build_dir = self.build_dir(version)
        log_path = self.log_path(version)
        version_dir = self.store.version_dir(version)
        self.install_root.mkdir(parents=True, exist_ok=True)
        existed = version_dir.exists()
        try:
            if config is not None:
                self._install_from_source(version, self.locator.source_url(version), config, log_path)
            else:
                located = self.locator.locate(version, self._platform_provider())
                if isinstance(located, SourceFallback):
                    if confirm_source_build is None or not confirm_source_build(located.url):
                        raise UnsupportedPlatformFailure(
                            f"当前平台没有 {version} 的二进制包，且未选择从源码构建"
                        )
                    self._install_from_source(version, located.url, "", log_path)
                else:
                    self.downloader.fetch_and_extract(located.url, build_dir, log_path, progress_callback)
                    self.downloader.install_binaries(build_dir, version_dir, log_path)
            installed = self.activate(version)
        except BaseException:
            if not existed and version_dir.exists():
                shutil.rmtree(version_dir, ignore_errors=True)
            raise
        finally:
            self._cleanup(build_dir)

        log_path.unlink(missing_ok=True)
        self.hooks.fire("post", "install", str(version))
        return InstallResult(installed, InstallAction.INSTALLED)

    def _cleanup(self, build_dir: Path) -> None:
        if build_dir.exists():
            shutil.rmtree(build_dir, ignore_errors=True)
            logger.debug(f"已删除临时构建目录 {build_dir}")

    def _install_from_source(self, version: Version, url: str, flags: str, log_path: Path) -> None:
        """
        下载源码包并构建安装到版本目录，然后原样保存构建参数。

        抛出:
            MissingDependency: 找不到构建工具
            BuildFailure: 构建命令返回非零退出码
        """
        tool = self._which(self.build_tool)
        if tool is None:
            raise MissingDependency(f"从源码构建需要 {self.build_tool}，但未在 PATH 中找到")

        build_dir = self.build_dir(version)
        version_dir = self.store.version_dir(version)
        self.downloader.fetch_and_extract(url, build_dir, log_path)

        children = [p for p in build_dir.iterdir() if p.is_dir()]
        source_root = children[0] if len(children) == 1 else build_dir

        args = shlex.split(flags)
        steps = [
            [tool, *args, "all"],
            [tool, *args, f"--prefix={version_dir}", "install"],
        ]
        for command in steps:
            logger.info(f"执行构建命令: {' '.join(command)}")
            result = self._run(command, cwd=str(source_root), check=False)
            if result.returncode != 0:
                raise BuildFailure(f"构建命令失败（退出码 {result.returncode}）: {' '.join(command)}")

        if not (version_dir / "bin").is_dir():
            raise BuildFailure(f"构建完成但 {version_dir / 'bin'} 不存在")
        self.store.write_config(version, flags)
        logger.info(f"已从源码构建 {version}")
