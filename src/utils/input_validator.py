"""
输入验证模块。

提供用户输入（版本号、钩子路径、构建参数、URL）的验证和 sanitization 功能。
"""

import os
import re
from typing import Any, Dict

from src.utils.logger import get_logger

logger = get_logger()


class InputValidationError(Exception):
    """输入验证错误异常。"""
    pass


class InputValidator:
    """
    输入验证器类。

    所有方法验证通过返回 True，失败抛出 InputValidationError。
    """

    MAX_PATH_LENGTH = 4096
    MAX_VERSION_LENGTH = 64
    MAX_BUILD_FLAGS_LENGTH = 4096
    VERSION_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')
    URL_PATTERN = re.compile(
        r'^https?://'
        r'(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+'
        r'(?:[A-Z]{2,63}|[A-Z0-9-]{2,})'
        r'|localhost|\d{1,3}(?:\.\d{1,3}){3})'
        r'(?::\d+)?'
        r'(?:/?|[/?]\S+)$',
        re.IGNORECASE
    )

    @classmethod
    def validate_version_string(cls, version: str) -> bool:
        """
        验证版本号字符串的有效性。

        参数:
            version: 版本号字符串

        返回:
            验证通过返回 True
        """
        if not version or not version.strip():
            raise InputValidationError("版本号不能为空")

        version = version.strip()
        if len(version) > cls.MAX_VERSION_LENGTH:
            raise InputValidationError(f"版本号不能超过 {cls.MAX_VERSION_LENGTH} 个字符")

        if not cls.VERSION_PATTERN.match(version):
            raise InputValidationError(f"版本号格式无效: {version}")

        return True

    @classmethod
    def validate_executable_path(cls, path: str) -> bool:
        """
        验证钩子脚本路径：必须是绝对路径且可执行。

        参数:
            path: 脚本路径

        返回:
            验证通过返回 True
        """
        if not path or not path.strip():
            raise InputValidationError("路径不能为空")
        if "\n" in path or "\r" in path:
            raise InputValidationError("路径不能包含换行符")
        if len(path) > cls.MAX_PATH_LENGTH:
            raise InputValidationError(f"路径不能超过 {cls.MAX_PATH_LENGTH} 个字符")
        if not os.path.isabs(path):
            raise InputValidationError(f"路径必须是绝对路径: {path}")
        if not os.path.isfile(path) or not os.access(path, os.X_OK):
            raise InputValidationError(f"文件不存在或不可执行: {path}")
        return True

    @classmethod
    def validate_build_flags(cls, flags: str) -> bool:
        """
        验证源码构建参数。参数原样保存到 .config，因此只允许单行。

        参数:
            flags: 构建参数字符串

        返回:
            验证通过返回 True
        """
        if flags is None:
            return True
        if len(flags) > cls.MAX_BUILD_FLAGS_LENGTH:
            raise InputValidationError("构建参数超过最大长度")
        if "\n" in flags or "\r" in flags:
            raise InputValidationError("构建参数不能包含换行符")
        return True

    @classmethod
    def validate_url(cls, url: str) -> bool:
        """
        验证 URL 的有效性。

        参数:
            url: URL 字符串

        返回:
            验证通过返回 True
        """
        if not url or not url.strip():
            raise InputValidationError("URL 不能为空")
        if not cls.URL_PATTERN.match(url.strip()):
            raise InputValidationError(f"URL 格式无效: {url}")
        return True

    @classmethod
    def safe_join_path(cls, base_path: str, *paths: str) -> str:
        """
        安全连接路径，防止路径遍历。

        参数:
            base_path: 基础路径
            *paths: 要连接的路径部分

        返回:
            安全连接后的路径

        抛出:
            InputValidationError: 如果结果路径位于 base_path 之外
        """
        base = os.path.abspath(base_path)
        joined = os.path.abspath(os.path.join(base, *paths))
        if joined != base and not joined.startswith(base + os.sep):
            raise InputValidationError(f"路径遍历检测: {joined}")
        return joined

    @classmethod
    def safe_get_config_value(cls, config: Dict[str, Any], key: str, default: Any = None) -> Any:
        """
        按点分键安全地获取配置值，避免 KeyError。

        参数:
            config: 配置字典
            key: 键名，如 "settings.prefix"
            default: 默认值

        返回:
            配置值或默认值
        """
        value: Any = config
        for k in key.split('.'):
            if not isinstance(value, dict) or k not in value:
                return default
            value = value[k]
        return value
