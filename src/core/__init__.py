"""
Mongover 核心模块。

提供版本解析、安装包定位、安装流水线、钩子和本地版本管理功能。
"""

from .errors import (
    MongoverError, MissingDependency, ResolutionFailure, NotInstalledFailure, DownloadFailure,
    UnsupportedPlatformFailure, InvalidHookEvent, InvalidHookPath, HookExecutionError,
    BuildFailure, CatalogUnavailable,
)
from .interfaces import IVersionCatalog, IVersionStore, IHookRegistry
from .config_manager import ConfigManager, ConfigValidationError, ConfigSaveError
from .platform_info import PlatformDescriptor, PlatformDetector, detect_platform
from .remote_fetcher import VersionCatalogClient, MirrorStatus
from .local_manager import VersionStore, InstalledVersion
from .version_resolver import VersionResolver
from .artifact_locator import ArtifactLocator, ArtifactCandidate, SourceFallback
from .hook_registry import HookRegistry, HookFailurePolicy, HookResult
from .link_manager import LinkManager, LinkManagerError
from .download_manager import DownloadManager
from .installer import InstallationPipeline, InstallAction, InstallResult
from .version_manager import VersionManager
from . import version_utils

__all__ = [
    "MongoverError", "MissingDependency", "ResolutionFailure", "NotInstalledFailure", "DownloadFailure",
    "UnsupportedPlatformFailure", "InvalidHookEvent", "InvalidHookPath", "HookExecutionError",
    "BuildFailure", "CatalogUnavailable",
    "IVersionCatalog", "IVersionStore", "IHookRegistry",
    "ConfigManager", "ConfigValidationError", "ConfigSaveError",
    "PlatformDescriptor", "PlatformDetector", "detect_platform",
    "VersionCatalogClient", "MirrorStatus",
    "VersionStore", "InstalledVersion",
    "VersionResolver",
    "ArtifactLocator", "ArtifactCandidate", "SourceFallback",
    "HookRegistry", "HookFailurePolicy", "HookResult",
    "LinkManager", "LinkManagerError",
    "DownloadManager",
    "InstallationPipeline", "InstallAction", "InstallResult",
    "VersionManager",
    "version_utils",
]
