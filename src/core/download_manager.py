"""
下载管理模块。

提供安装包的流式下载与解压功能。响应体不落盘，直接送入 tarfile 的流模式，
每次下载的过程记录在独立的下载日志中，失败时保留供排查。
"""

import contextlib
import logging
import shutil
import tarfile
import zlib
from pathlib import Path
from typing import Callable, Iterator, Optional

import requests

from src.core.config_manager import ConfigManager
from src.core.errors import DownloadFailure
from src.utils.input_validator import InputValidationError, InputValidator
from src.utils.logger import get_logger
from src.utils.rate_limiter import RateLimiter
from src.utils.retry import RetryHandler
from src.utils.speed_limiter import SpeedLimiter, ThrottledReader

logger = get_logger()

DOWNLOAD_TIMEOUT = 300

EXTRACTION_ERRORS = (
    tarfile.TarError,
    EOFError,
    zlib.error,
    InputValidationError,
)


@contextlib.contextmanager
def download_log(log_path: Path) -> Iterator[Path]:
    """
    在下载期间把应用日志额外写入下载日志文件。

    参数:
        log_path: 下载日志路径
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    previous_level = logger.level
    logger.addHandler(handler)
    if logger.level > logging.DEBUG or logger.level == logging.NOTSET:
        logger.setLevel(logging.DEBUG)
    try:
        yield log_path
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)
        handler.close()


def find_bin_dir(extract_dir: Path) -> Optional[Path]:
    """
    在解压目录中查找 bin 目录。

    官方包的结构是 <顶层目录>/bin，也兼容直接以 bin 开头的包。

    参数:
        extract_dir: 解压目录

    返回:
        bin 目录，找不到返回 None
    """
    direct = extract_dir / "bin"
    if direct.is_dir():
        return direct
    for child in sorted(extract_dir.iterdir()):
        if child.is_dir() and (child / "bin").is_dir():
            return child / "bin"
    return None


class DownloadManager:
    """
    下载管理器类。

    负责安装包的下载、解压和放置。下载失败或解压失败统一转换为
    DownloadFailure，并附带下载日志路径；流水线层面不再重试。
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        http_get: Callable[..., requests.Response] = requests.get,
    ):
        """
        初始化下载管理器。

        参数:
            config_manager: 配置管理器实例
            http_get: 发送 GET 请求的函数
        """
        self.config_manager = config_manager
        rate_limit = config_manager.get_request_rate_limit()
        self.rate_limiter = RateLimiter(requests_per_second=rate_limit)
        retry_count = config_manager.get_download_retry_count()
        self.retry_handler = RetryHandler(max_retries=retry_count)
        self._http_get = http_get

    def _open_stream(self, url: str) -> requests.Response:
        def _do_download():
            self.rate_limiter.acquire()
            response = self._http_get(url, stream=True, timeout=DOWNLOAD_TIMEOUT)
            response.raise_for_status()
            return response

        return self.retry_handler.execute(_do_download)

    def _extract_stream(self, reader: ThrottledReader, target_dir: Path) -> int:
        """
        逐个成员地从流中解压，拒绝落在目标目录之外的路径。

        返回:
            解压的成员数
        """
        count = 0
        with tarfile.open(fileobj=reader, mode="r|gz") as archive:
            for member in archive:
                InputValidator.safe_join_path(str(target_dir), member.name)
                if member.issym() or member.islnk():
                    link_base = Path(member.name).parent if member.issym() else Path()
                    InputValidator.safe_join_path(str(target_dir), str(link_base), member.linkname)
                archive.extract(member, path=str(target_dir), filter="data")
                count += 1
        return count

    def fetch_and_extract(
        self,
        url: str,
        target_dir: Path,
        log_path: Path,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> Path:
        """
        下载压缩包并直接解压到目标目录。

        参数:
            url: 压缩包地址
            target_dir: 解压目录（临时构建目录）
            log_path: 下载日志路径
            progress_callback: 进度回调 (已下载字节, 总字节)

        返回:
            解压目录

        抛出:
            DownloadFailure: 下载失败、压缩包损坏或被截断
        """
        target_dir = Path(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        speed_limiter = SpeedLimiter(speed_limit_bytes=self.config_manager.get_download_speed_limit())

        with download_log(Path(log_path)):
            logger.info(f"正在从 {url} 下载并解压到 {target_dir}")
            try:
                response = self._open_stream(url)
            except requests.exceptions.RequestException as e:
                logger.error(f"下载 {url} 失败: {e}")
                raise DownloadFailure(f"下载 {url} 失败: {e}", str(log_path)) from e

            total_size = int(response.headers.get("content-length", 0) or 0)
            try:
                reader = ThrottledReader(
                    response.raw,
                    total_size=total_size,
                    speed_limiter=speed_limiter,
                    progress_callback=progress_callback,
                )
                count = self._extract_stream(reader, target_dir)
            except requests.exceptions.RequestException as e:
                logger.error(f"下载 {url} 中断: {e}")
                raise DownloadFailure(f"下载 {url} 中断: {e}", str(log_path)) from e
            except EXTRACTION_ERRORS as e:
                logger.error(f"解压 {url} 失败: {e}")
                raise DownloadFailure(f"解压 {url} 失败: {e}", str(log_path)) from e
            finally:
                response.close()

            if count == 0:
                logger.error(f"{url} 是空的压缩包")
                raise DownloadFailure(f"{url} 是空的压缩包", str(log_path))
            logger.info(f"解压完成，共 {count} 个文件，{reader.bytes_read} 字节")
        return target_dir

    def install_binaries(self, extract_dir: Path, version_dir: Path, log_path: Optional[Path] = None) -> Path:
        """
        把解压目录中的 bin 移动到版本目录。

        参数:
            extract_dir: 解压目录
            version_dir: versions/<version> 目录
            log_path: 下载日志路径，失败时附在异常中

        返回:
            版本目录下的 bin 路径

        抛出:
            DownloadFailure: 压缩包中没有 bin 目录
        """
        source_bin = find_bin_dir(Path(extract_dir))
        if source_bin is None:
            logger.error(f"压缩包中没有 bin 目录: {extract_dir}")
            raise DownloadFailure(
                f"压缩包中没有 bin 目录: {extract_dir}",
                str(log_path) if log_path else None,
            )

        target_bin = Path(version_dir) / "bin"
        if target_bin.exists():
            shutil.rmtree(target_bin)
        target_bin.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source_bin), str(target_bin))
        logger.info(f"已安装可执行文件到 {target_bin}")
        return target_bin
