"""
速率限制器模块。

为安装包探测和目录抓取提供令牌桶式的请求频率控制。
"""

import time
from typing import Callable, Optional


class RateLimiter:
    """
    速率限制器类，用于控制请求频率。

    按固定速率生成 token，每个请求消耗一个 token；
    requests_per_second 为 None 或不大于 0 时不做限制。
    """

    def __init__(
        self,
        requests_per_second: Optional[float] = None,
        max_tokens: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        初始化速率限制器。

        参数:
            requests_per_second: 每秒允许的请求数
            max_tokens: 令牌桶最大容量，默认为 requests_per_second
            clock: 时钟函数，测试中可替换
            sleep: 等待函数，测试中可替换
        """
        self._clock = clock
        self._sleep = sleep
        if requests_per_second is not None and requests_per_second > 0:
            self.requests_per_second: Optional[float] = float(requests_per_second)
            self.max_tokens = float(max_tokens or requests_per_second)
            self.tokens = self.max_tokens
        else:
            self.requests_per_second = None
            self.max_tokens = 0.0
            self.tokens = 0.0
        self._last_refill = self._clock()

    def acquire(self) -> None:
        """
        获取请求权限，必要时阻塞等待。
        """
        if self.requests_per_second is None:
            return

        self._refill()
        while self.tokens < 1.0:
            self._sleep((1.0 - self.tokens) / self.requests_per_second)
            self._refill()
        self.tokens -= 1.0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.requests_per_second)
        self._last_refill = now

    def reset(self) -> None:
        """重置速率限制器状态。"""
        self.tokens = self.max_tokens
        self._last_refill = self._clock()
