"""
下载速度限制工具模块。

安装包以流的方式直接送入解压，这里把限速做成对响应体的包装读取器。
"""

import io
import time
from typing import BinaryIO, Callable, Optional


class SpeedLimiter:
    """
    下载速度限制器类。

    记录已读取的字节数，超出速率时休眠补齐。
    """

    def __init__(
        self,
        speed_limit_bytes: int = 0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        初始化速度限制器。

        参数:
            speed_limit_bytes: 速度限制（字节/秒），0 表示不限速
            clock: 时钟函数
            sleep: 等待函数
        """
        self.speed_limit = speed_limit_bytes
        self._clock = clock
        self._sleep = sleep
        self._start = clock()
        self._total = 0

    def consume(self, nbytes: int) -> None:
        """
        记录读取的字节数并按需等待。

        参数:
            nbytes: 本次读取的字节数
        """
        self._total += nbytes
        if self.speed_limit <= 0:
            return
        expected = self._total / self.speed_limit
        elapsed = self._clock() - self._start
        if elapsed < expected:
            self._sleep(expected - elapsed)


class ThrottledReader(io.RawIOBase):
    """
    对下载响应体的只读包装。

    每次读取都会统计字节数、调用进度回调并应用限速，
    使 tarfile 可以直接从网络流中解压。
    """

    def __init__(
        self,
        source: BinaryIO,
        total_size: int = 0,
        speed_limiter: Optional[SpeedLimiter] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ):
        super().__init__()
        self._source = source
        self.total_size = total_size
        self.bytes_read = 0
        self._limiter = speed_limiter or SpeedLimiter()
        self._progress = progress_callback

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._source.read(len(buffer))
        if not data:
            return 0
        n = len(data)
        buffer[:n] = data
        self.bytes_read += n
        self._limiter.consume(n)
        if self._progress:
            self._progress(self.bytes_read, self.total_size)
        return n
