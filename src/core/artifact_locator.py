"""
安装包定位模块。

根据具体版本和平台信息构建有序的候选下载地址列表，逐个探测，
第一个可访问的地址胜出；全部失败时回退到源码包。
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

import requests

from src.core.config_manager import ConfigManager
from src.core.platform_info import PlatformDescriptor
from src.core.version_utils import Version
from src.utils.logger import get_logger
from src.utils.rate_limiter import RateLimiter

logger = get_logger()

# 发行版兼容表：distro_id -> [(最小主版本, 最大主版本, 依次尝试的构建标签)]
# 最大主版本为 None 表示不设上限。扩展平台支持只需修改此表。
DISTRO_CASCADES: Dict[str, List[Tuple[int, Optional[int], List[str]]]] = {
    "ubuntu": [
        (24, None, ["ubuntu2404", "ubuntu2204", "ubuntu2004"]),
        (22, 23, ["ubuntu2204", "ubuntu2004", "ubuntu1804"]),
        (20, 21, ["ubuntu2004", "ubuntu1804", "ubuntu1604"]),
        (18, 19, ["ubuntu1804", "ubuntu1604", "ubuntu1404", "debian92"]),
        (16, 17, ["ubuntu1604", "ubuntu1404", "ubuntu1204", "debian81"]),
        (14, 15, ["ubuntu1404", "ubuntu1204", "debian71"]),
        (12, 13, ["ubuntu1204"]),
    ],
    "debian": [
        (12, None, ["debian12", "debian11", "debian10"]),
        (11, 11, ["debian11", "debian10", "debian92"]),
        (10, 10, ["debian10", "debian92", "debian81"]),
        (9, 9, ["debian92", "debian81", "debian71"]),
        (8, 8, ["debian81", "debian71"]),
        (7, 7, ["debian71"]),
    ],
    "rhel": [
        (9, None, ["rhel90", "rhel80", "rhel70"]),
        (8, 8, ["rhel80", "rhel70"]),
        (7, 7, ["rhel70", "rhel62"]),
        (6, 6, ["rhel62", "rhel57"]),
        (5, 5, ["rhel57"]),
    ],
    "amazon": [
        (2023, None, ["amazon2023", "amazon2"]),
        (2011, 2022, ["amazon"]),
        (2, 2, ["amazon2", "amazon"]),
    ],
    "suse": [
        (15, None, ["suse15", "suse12"]),
        (12, 14, ["suse12", "suse11"]),
        (11, 11, ["suse11"]),
    ],
}

ENTERPRISE_DEFAULT_DISTRO = "rhel70"

MACOS_NAMING_SINCE = Version(4, 1, 1)
MACOS_SSL_SINCE = Version(3, 2, 0)
MACOS_ARM64_SINCE = Version(6, 0, 0)

OS_DIRECTORIES = {
    "linux": "linux",
    "darwin": "osx",
    "sunos": "sunos5",
}

LINUX_ARCHES = {
    "x86_64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


@dataclass(frozen=True)
class ArtifactCandidate:
    """一个候选的二进制安装包地址。"""

    url: str
    distro_tag: Optional[str] = None
    enterprise: bool = False
    ssl_variant: Optional[str] = None


@dataclass(frozen=True)
class SourceFallback:
    """没有可用二进制包时使用的源码包地址。"""

    url: str


def distro_cascade(platform: PlatformDescriptor) -> List[str]:
    """
    查表得到平台对应的构建标签级联列表。

    参数:
        platform: 平台描述

    返回:
        按优先级排列的构建标签；没有匹配时为空列表
    """
    major = platform.distro_major
    if not platform.distro_id or major is None:
        return []
    for low, high, tags in DISTRO_CASCADES.get(platform.distro_id, []):
        if major >= low and (high is None or major <= high):
            return list(tags)
    return []


class ArtifactLocator:
    """
    安装包定位器类。

    候选地址按与平台的接近程度排列，线性探测并在首个成功处短路。
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        probe: Optional[Callable[[str], bool]] = None,
    ):
        """
        初始化安装包定位器。

        参数:
            config_manager: 配置管理器实例
            probe: 可选的探测函数，返回地址是否可访问；默认发送 HEAD 请求
        """
        self.config_manager = config_manager
        self.rate_limiter = RateLimiter(requests_per_second=config_manager.get_request_rate_limit())
        self._probe_func = probe or self._head_probe

    def _head_probe(self, url: str) -> bool:
        self.rate_limiter.acquire()
        try:
            response = requests.head(
                url,
                timeout=self.config_manager.get_probe_timeout(),
                allow_redirects=True,
            )
        except requests.exceptions.RequestException as e:
            logger.debug(f"探测 {url} 失败: {e}")
            return False
        return response.status_code == 200

    def probe(self, url: str) -> bool:
        ok = self._probe_func(url)
        logger.debug(f"探测 {url}: {'可用' if ok else '不可用'}")
        return ok

    def _uses_ssl_variant(self, version: Version, platform: PlatformDescriptor) -> bool:
        if platform.os != "darwin" or version.enterprise:
            return False
        numeric = version.community()
        return MACOS_SSL_SINCE <= numeric < MACOS_NAMING_SINCE

    def _arch(self, version: Version, platform: PlatformDescriptor) -> str:
        if platform.os == "linux":
            return LINUX_ARCHES.get(platform.arch, platform.arch)
        if platform.os == "darwin":
            if platform.arch in ("arm64", "aarch64") and version.community() >= MACOS_ARM64_SINCE:
                return "arm64"
            return "x86_64"
        return "x86_64"

    def build_url(
        self,
        version: Version,
        platform: PlatformDescriptor,
        distro_tag: Optional[str] = None,
        ssl_variant: Optional[str] = None,
    ) -> str:
        """
        按命名模板拼接下载地址。

        例如 https://fastdl.mongodb.org/linux/mongodb-linux-x86_64-ubuntu1804-4.0.0.tgz、
        https://downloads.mongodb.com/linux/mongodb-linux-x86_64-enterprise-rhel70-3.6.3.tgz、
        https://fastdl.mongodb.org/osx/mongodb-osx-ssl-x86_64-3.6.3.tgz。

        参数:
            version: 具体版本
            platform: 平台描述
            distro_tag: 发行版构建标签
            ssl_variant: SSL 变体段（仅 macOS 旧版本）

        返回:
            下载地址
        """
        if version.enterprise:
            host = self.config_manager.get_enterprise_host()
        else:
            host = self.config_manager.get_community_host()

        directory = OS_DIRECTORIES[platform.os]
        if platform.os == "darwin" and version.community() >= MACOS_NAMING_SINCE:
            os_name = "macos"
        else:
            os_name = directory

        parts = ["mongodb", os_name]
        if ssl_variant:
            parts.append(ssl_variant)
        parts.append(self._arch(version, platform))
        if version.enterprise:
            parts.append("enterprise")
        if distro_tag:
            parts.append(distro_tag)
        parts.append(version.number)
        return f"{host}/{directory}/{'-'.join(parts)}.tgz"

    def source_url(self, version: Version) -> str:
        """源码包地址。"""
        template = self.config_manager.get_source_url_template()
        return template.format(host=self.config_manager.get_community_host(), version=version.number)

    def candidates(self, version: Version, platform: PlatformDescriptor) -> List[ArtifactCandidate]:
        """
        生成按探测顺序排列的候选列表（不发送请求）。

        顺序：发行版级联标签、通用包、（macOS SSL 变体时）非 SSL 通用包。
        Linux 企业版不使用通用包。
        """
        enterprise = version.enterprise
        result = []
        if platform.os == "linux":
            for tag in distro_cascade(platform):
                result.append(ArtifactCandidate(self.build_url(version, platform, tag), tag, enterprise))
            if enterprise:
                return result

        ssl_variant = "ssl" if self._uses_ssl_variant(version, platform) else None
        result.append(ArtifactCandidate(
            self.build_url(version, platform, ssl_variant=ssl_variant), None, enterprise, ssl_variant
        ))
        if ssl_variant:
            result.append(ArtifactCandidate(self.build_url(version, platform), None, enterprise))
        return result

    def locate(
        self, version: Version, platform: PlatformDescriptor
    ) -> Union[ArtifactCandidate, SourceFallback]:
        """
        定位可下载的安装包。

        参数:
            version: 具体版本
            platform: 平台描述

        返回:
            首个可访问的 ArtifactCandidate；Linux 企业版级联失败时返回 rhel70 候选；
            其余情况全部失败时返回 SourceFallback
        """
        for candidate in self.candidates(version, platform):
            if self.probe(candidate.url):
                logger.info(f"选定安装包: {candidate.url}")
                return candidate

        if version.enterprise and platform.os == "linux":
            url = self.build_url(version, platform, ENTERPRISE_DEFAULT_DISTRO)
            logger.info(f"企业版未匹配到发行版，使用默认 {ENTERPRISE_DEFAULT_DISTRO}: {url}")
            return ArtifactCandidate(url, ENTERPRISE_DEFAULT_DISTRO, True)

        logger.warning(f"{platform} 上没有 {version} 的可用二进制包，回退到源码包")
        return SourceFallback(self.source_url(version))
