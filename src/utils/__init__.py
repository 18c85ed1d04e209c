"""
Mongover 工具模块。

提供日志记录、重试、限流限速、输入验证和权限检测等工具功能。
"""

from .logger import get_logger
from .permission_manager import is_admin, can_write
from .retry import RetryHandler
from .speed_limiter import SpeedLimiter, ThrottledReader
from .rate_limiter import RateLimiter
from .input_validator import InputValidator, InputValidationError

__all__ = [
    "get_logger",
    "is_admin",
    "can_write",
    "RetryHandler",
    "SpeedLimiter",
    "ThrottledReader",
    "RateLimiter",
    "InputValidator",
    "InputValidationError",
]
