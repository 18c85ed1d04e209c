"""
远程版本目录模块。

从目录镜像抓取 MongoDB 已发布的版本列表。
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from src.core.config_manager import ConfigManager, ConfigSaveError
from src.core.errors import CatalogUnavailable
from src.core.interfaces import IVersionCatalog
from src.core.version_utils import Version, extract_versions, sort_versions, try_parse_version
from src.utils.logger import get_logger
from src.utils.rate_limiter import RateLimiter
from src.utils.retry import RetryHandler

logger = get_logger()

CACHE_KEY = "catalog_versions"


@dataclass
class MirrorHealth:
    """单个目录镜像的最近抓取结果。"""

    last_success: Optional[float] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0


class MirrorStatus:
    """
    目录镜像健康状况。

    只在进程内记录；上次成功的镜像下次优先尝试，
    连续失败的镜像按失败次数排到后面，同等情况下保持配置顺序。
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._health: Dict[str, MirrorHealth] = {}

    def health(self, mirror_url: str) -> MirrorHealth:
        return self._health.setdefault(mirror_url, MirrorHealth())

    def record_success(self, mirror_url: str) -> None:
        entry = self.health(mirror_url)
        entry.last_success = self._clock()
        entry.last_error = None
        entry.consecutive_failures = 0

    def record_failure(self, mirror_url: str, reason: str) -> None:
        """
        记录一次抓取失败。

        参数:
            mirror_url: 镜像地址
            reason: 失败原因，用于汇总错误信息
        """
        entry = self.health(mirror_url)
        entry.last_error = reason
        entry.consecutive_failures += 1

    def get_sorted_mirrors(self, mirror_list: List[str]) -> List[str]:
        """
        按抓取优先级排列镜像。

        参数:
            mirror_list: 配置中的镜像列表

        返回:
            排序后的镜像列表
        """
        def rank(mirror_url: str) -> Tuple[int, int, float]:
            entry = self._health.get(mirror_url) or MirrorHealth()
            if entry.consecutive_failures == 0 and entry.last_success is not None:
                return (0, 0, -entry.last_success)
            return (1, entry.consecutive_failures, 0.0)

        return sorted(mirror_list, key=rank)

    def get_failure_summary(self) -> str:
        failed = [
            f"{url}: {entry.last_error} (连续失败 {entry.consecutive_failures} 次)"
            for url, entry in self._health.items()
            if entry.consecutive_failures
        ]
        return "; ".join(failed) if failed else "无失败记录"


class VersionCatalogClient(IVersionCatalog):
    """
    远程版本目录客户端类。

    目录是一个 HTTP 目录页面，从中抓取形如 MAJOR.MINOR.PATCH[-tag] 的子串。
    结果先查内存缓存，再查 cache.json，都过期时才访问网络；
    所有镜像都失败时退回到过期的缓存。
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        retry_handler: Optional[RetryHandler] = None,
    ):
        """
        初始化版本目录客户端。

        参数:
            config_manager: 配置管理器实例
            retry_handler: 可选的重试处理器，默认按配置的重试次数创建
        """
        self.config_manager = config_manager
        self.rate_limiter = RateLimiter(requests_per_second=config_manager.get_request_rate_limit())
        self.retry_handler = retry_handler or RetryHandler(
            max_retries=config_manager.get_download_retry_count()
        )
        self._memory_cache: Dict[str, Dict[str, Any]] = {}
        self.mirror_status = MirrorStatus()

    def _is_fresh(self, cached: Dict[str, Any]) -> bool:
        try:
            last_update = datetime.fromisoformat(cached.get("last_update", "2000-01-01"))
        except (TypeError, ValueError):
            return False
        age = (datetime.now() - last_update).total_seconds()
        return age < self.config_manager.get_cache_expire_time()

    @staticmethod
    def _decode(cached: Dict[str, Any]) -> List[Version]:
        versions = []
        for text in cached.get("versions", []):
            version = try_parse_version(text) if isinstance(text, str) else None
            if version is not None:
                versions.append(version)
        return sort_versions(versions)

    def _update_cache(self, versions: List[Version]) -> None:
        entry = {
            "last_update": datetime.now().isoformat(),
            "versions": [str(v) for v in versions],
        }
        self._memory_cache[CACHE_KEY] = entry
        self.config_manager.set_cache(CACHE_KEY, entry)
        try:
            self.config_manager.save_cache()
        except ConfigSaveError as e:
            logger.warning(f"保存目录缓存失败: {e}")

    def list_versions(self, use_cache: bool = True) -> List[Version]:
        """
        获取远程已发布的全部版本。

        参数:
            use_cache: 是否使用未过期的缓存

        返回:
            升序排列、去重后的版本列表

        抛出:
            CatalogUnavailable: 所有镜像都失败且没有任何缓存
        """
        if use_cache and CACHE_KEY in self._memory_cache:
            cached = self._memory_cache[CACHE_KEY]
            if self._is_fresh(cached):
                logger.info("使用内存缓存的版本目录")
                return self._decode(cached)

        cache = self.config_manager.get_cache()
        if use_cache and CACHE_KEY in cache and self._is_fresh(cache[CACHE_KEY]):
            logger.info("使用本地缓存的版本目录")
            self._memory_cache[CACHE_KEY] = cache[CACHE_KEY]
            return self._decode(cache[CACHE_KEY])

        mirror_list = self.config_manager.get_catalog_mirrors()
        for mirror_url in self.mirror_status.get_sorted_mirrors(mirror_list):
            try:
                logger.info(f"尝试从镜像源获取版本目录: {mirror_url}")
                versions = self.retry_handler.execute(self._fetch_versions_from_mirror, mirror_url)
            except requests.exceptions.RequestException as e:
                logger.warning(f"从镜像源 {mirror_url} 获取版本目录失败: {e}")
                self.mirror_status.record_failure(mirror_url, str(e))
                continue

            if not versions:
                logger.warning(f"镜像源 {mirror_url} 返回空版本列表")
                self.mirror_status.record_failure(mirror_url, "镜像源返回空版本列表")
                continue

            self.mirror_status.record_success(mirror_url)
            self._update_cache(versions)
            logger.info(f"成功从镜像源 {mirror_url} 获取 {len(versions)} 个版本")
            return versions

        failure_summary = self.mirror_status.get_failure_summary()
        logger.error(f"所有镜像源获取版本目录失败。失败详情: {failure_summary}")

        if CACHE_KEY in cache:
            logger.info("网络错误，使用过期的缓存版本目录")
            self._memory_cache[CACHE_KEY] = cache[CACHE_KEY]
            return self._decode(cache[CACHE_KEY])
        raise CatalogUnavailable(f"无法获取远程版本目录: {failure_summary}")

    def _fetch_versions_from_mirror(self, mirror_url: str) -> List[Version]:
        """
        抓取单个镜像的目录页面。

        参数:
            mirror_url: 镜像源 URL

        返回:
            页面中出现的全部版本
        """
        self.rate_limiter.acquire()
        response = requests.get(mirror_url, timeout=self.config_manager.get_probe_timeout())
        response.raise_for_status()
        return extract_versions(response.text)
