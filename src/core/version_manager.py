"""
版本管理器模块。

把版本目录、本地仓库、解析器、定位器、钩子和安装流水线组装在一起，
供命令行使用。
"""

from pathlib import Path
from typing import Callable, List, Optional, Tuple

from src.core.artifact_locator import ArtifactLocator
from src.core.config_manager import ConfigManager
from src.core.download_manager import DownloadManager
from src.core.errors import NotInstalledFailure, ResolutionFailure
from src.core.hook_registry import HookFailurePolicy, HookRegistry
from src.core.installer import InstallationPipeline, InstallResult
from src.core.link_manager import LinkManager
from src.core.local_manager import InstalledVersion, VersionStore
from src.core.platform_info import PlatformDescriptor, detect_platform
from src.core.remote_fetcher import VersionCatalogClient
from src.core.version_resolver import SCOPE_LOCAL, SCOPE_REMOTE, VersionResolver
from src.core.version_utils import (
    Exact, LocalOnly, MetaLatest, MetaStable, Version, VersionSpec, parse_spec,
)
from src.utils.input_validator import InputValidationError, InputValidator
from src.utils.logger import get_logger

logger = get_logger()

SHELL_FALLBACKS = {"mongo": "mongosh"}


class VersionManager:
    """
    版本管理器类。

    本类作为协调者，将具体工作委托给各个专用模块。
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        platform_provider: Callable[[], PlatformDescriptor] = detect_platform,
    ):
        """
        初始化版本管理器。

        参数:
            config_manager: 配置管理器实例
            platform_provider: 返回当前平台描述的函数
        """
        self.config_manager = config_manager
        self.prefix = config_manager.get_prefix()
        self.install_root = config_manager.get_install_root()

        self.link_manager = LinkManager(self.prefix, self.install_root)
        self.store = VersionStore(config_manager.get_versions_dir(), self.prefix, self.link_manager)
        self.catalog = VersionCatalogClient(config_manager)
        self.resolver = VersionResolver(self.catalog, self.store)
        self.locator = ArtifactLocator(config_manager)
        self.hooks = HookRegistry(
            self.install_root,
            HookFailurePolicy(config_manager.get_hook_failure_policy()),
        )
        self.download_manager = DownloadManager(config_manager)
        self.pipeline = InstallationPipeline(
            self.install_root,
            self.store,
            self.locator,
            self.download_manager,
            self.hooks,
            self.link_manager,
            build_tool=config_manager.get_build_tool(),
            platform_provider=platform_provider,
        )

    @staticmethod
    def parse(text: str) -> VersionSpec:
        """
        校验并解析用户输入的版本规格。

        抛出:
            ResolutionFailure: 输入无效
        """
        try:
            InputValidator.validate_version_string(text)
        except InputValidationError as e:
            raise ResolutionFailure(str(e)) from e
        return parse_spec(text)

    def resolve(self, text: str, include_prerelease: bool = False) -> Version:
        """按远程版本目录解析版本规格。"""
        return self.resolver.resolve(self.parse(text), SCOPE_REMOTE, include_prerelease)

    def resolve_local(self, text: str) -> Version:
        """只在已安装版本中解析版本规格，不访问网络。"""
        return self.resolver.resolve(LocalOnly(self.parse(text)), SCOPE_LOCAL)

    def resolve_latest(self) -> Version:
        return self.resolver.resolve(MetaLatest())

    def resolve_stable(self) -> Version:
        return self.resolver.resolve(MetaStable())

    def list_installed(self) -> List[Tuple[InstalledVersion, bool]]:
        """
        列出已安装版本及其是否为当前激活版本。

        返回:
            (InstalledVersion, 是否激活) 列表，按版本升序
        """
        active = self.store.detect_active()
        return [(item, item.version == active) for item in self.store.list()]

    def active_version(self) -> Optional[Version]:
        return self.store.detect_active()

    def remote_versions(self, use_cache: bool = True) -> List[Version]:
        return self.catalog.list_versions(use_cache=use_cache)

    def install(
        self,
        text: str,
        config: Optional[str] = None,
        confirm_source_build: Optional[Callable[[str], bool]] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> InstallResult:
        """
        解析版本规格后安装或激活。

        精确版本已安装时直接激活，不访问版本目录。

        参数:
            text: 版本规格
            config: 源码构建参数
            confirm_source_build: 没有二进制包时的确认回调
            progress_callback: 下载进度回调

        返回:
            InstallResult
        """
        spec = self.parse(text)
        if isinstance(spec, Exact):
            version = spec.version
        else:
            version = self.resolver.resolve(spec, SCOPE_REMOTE)
        logger.info(f"{text} 解析为 {version}")
        return self.pipeline.install(
            version,
            config=config,
            confirm_source_build=confirm_source_build,
            progress_callback=progress_callback,
        )

    def activate(self, text: str) -> InstalledVersion:
        return self.pipeline.activate(self.resolve_local(text))

    def bin_path(self, text: str, name: str = "mongod") -> Path:
        """
        获取本地版本中某个可执行文件的路径。

        mongo 不存在时回退到 mongosh（新版本只带 mongosh）。

        抛出:
            NotInstalledFailure: 版本未安装或可执行文件不存在
        """
        version = self.resolve_local(text)
        path = self.store.bin_path(version, name)
        if not path.exists() and name in SHELL_FALLBACKS:
            fallback = self.store.bin_path(version, SHELL_FALLBACKS[name])
            if fallback.exists():
                logger.debug(f"{version} 没有 {name}，使用 {fallback.name}")
                return fallback
        if not path.exists():
            raise NotInstalledFailure(f"{version}/bin/{name}")
        return path

    def remove(self, texts: List[str], confirm: Optional[Callable[[Version], bool]] = None) -> List[Version]:
        """
        删除已安装版本。

        参数:
            texts: 版本规格列表，只在本地解析
            confirm: 删除激活版本前的确认回调

        返回:
            实际被删除的版本
        """
        removed = []
        for text in texts:
            version = self.resolve_local(text)
            ask = (lambda v=version: confirm(v)) if confirm else None
            if self.store.remove(version, confirm=ask):
                removed.append(version)
        return removed

    def source_url(self, text: str) -> str:
        spec = self.parse(text)
        version = spec.version if isinstance(spec, Exact) else self.resolver.resolve(spec)
        return self.locator.source_url(version)

    def read_build_config(self, text: str) -> Optional[str]:
        return self.store.read_config(self.resolve_local(text))

    def list_hooks(self, phase: str, event: str) -> List[str]:
        return self.hooks.list(phase, event)

    def add_hook(self, phase: str, event: str, script: str) -> bool:
        return self.hooks.add(phase, event, script)

    def remove_hook(self, phase: str, event: str, script: Optional[str] = None) -> int:
        return self.hooks.remove(phase, event, script)
