"""
重试机制工具模块。

为目录抓取和安装包下载提供指数退避重试，只处理临时性网络错误。
"""

import random
import time
from typing import Any, Callable, Optional, TypeVar

import requests

from src.utils.logger import get_logger

logger = get_logger()

T = TypeVar('T')

RETRYABLE_STATUS_CODES = frozenset({408, 429})

RETRYABLE_EXCEPTIONS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    requests.exceptions.HTTPError,
    requests.exceptions.ChunkedEncodingError,
)


class RetryHandler:
    """
    重试处理器类。

    实现指数退避重试策略。4xx 响应（408、429 除外）被视为确定性失败，
    立即抛出，以便调用方尽快回退到下一个候选地址。
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_factor: float = 2.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        初始化重试处理器。

        参数:
            max_retries: 最大重试次数
            base_delay: 基础延迟时间（秒）
            max_delay: 最大延迟时间（秒）
            backoff_factor: 退避因子
            jitter: 是否添加随机抖动
            sleep: 等待函数，测试中可替换
        """
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self._sleep = sleep

    def _calculate_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random() * 0.5)
        return delay

    def is_retryable(self, exception: BaseException) -> bool:
        """
        判断错误是否可重试。

        参数:
            exception: 异常对象

        返回:
            可重试返回 True，否则返回 False
        """
        if not isinstance(exception, RETRYABLE_EXCEPTIONS):
            return False
        if isinstance(exception, requests.exceptions.HTTPError):
            response: Optional[requests.Response] = exception.response
            if response is None:
                return True
            return response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES
        return True

    def execute(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        执行函数，失败时自动重试。

        参数:
            func: 要执行的函数
            *args: 函数位置参数
            **kwargs: 函数关键字参数

        返回:
            函数执行结果

        抛出:
            不可重试的异常，或超过最大重试次数后的最后一次异常
        """
        attempt = 0
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.is_retryable(e):
                    logger.debug(f"遇到不可重试的错误: {e}")
                    raise
                if attempt >= self.max_retries:
                    logger.error(f"已达到最大重试次数 {self.max_retries}，放弃重试")
                    raise
                delay = self._calculate_delay(attempt)
                logger.warning(
                    f"请求失败 (尝试 {attempt + 1}/{self.max_retries + 1}): {e}，"
                    f"{delay:.2f} 秒后重试..."
                )
                self._sleep(delay)
                attempt += 1
