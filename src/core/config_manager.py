"""
配置管理器模块。

提供应用程序配置的加载、保存和验证功能，以及远程版本目录的缓存文件。
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from src.core.errors import MongoverError
from src.utils.input_validator import InputValidationError, InputValidator
from src.utils.logger import get_home_dir, get_logger

logger = get_logger()

HOOK_FAILURE_POLICIES = ("ignore", "abort")


class ConfigValidationError(MongoverError):
    """配置验证错误异常。"""
    pass


class ConfigSaveError(MongoverError):
    """配置保存错误异常。"""
    pass


def _atomic_save_json(file_path: Path, data: Any, indent: int = 2) -> None:
    """
    原子保存 JSON 数据到文件，防止写入中断导致文件损坏。

    参数:
        file_path: 目标文件路径
        data: 要保存的数据
        indent: JSON 缩进
    """
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
        os.replace(temp_path, file_path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


class ConfigManager:
    """
    配置管理器类。

    负责管理应用程序配置的加载、保存、验证和访问。
    M_PREFIX / M_DIR 环境变量优先于配置文件中的 prefix / install_root。
    """

    REQUIRED_FIELDS = {
        "settings": dict,
    }

    SETTINGS_FIELDS = {
        "prefix": str,
        "install_root": str,
        "catalog_mirrors": list,
        "community_host": str,
        "enterprise_host": str,
        "source_url_template": str,
        "cache_expire_time": int,
        "request_rate_limit": int,
        "download_retry_count": int,
        "download_speed_limit": int,
        "probe_timeout": int,
        "hook_failure_policy": str,
        "build_tool": str,
    }

    def __init__(self, config_dir: Optional[Path] = None):
        """
        初始化配置管理器。

        参数:
            config_dir: 配置目录，默认为 MONGOVER_HOME 或 ~/.mongover
        """
        self.CONFIG_DIR = Path(config_dir) if config_dir else get_home_dir()
        self.CONFIG_FILE = self.CONFIG_DIR / "config.json"
        self.CACHE_FILE = self.CONFIG_DIR / "cache.json"
        self._config: dict[str, Any] = {}
        self._cache: dict[str, Any] = {}

    def _get_builtin_default_config(self) -> dict[str, Any]:
        """获取内置默认配置。"""
        return {
            "settings": {
                "prefix": "/usr/local",
                "install_root": "",
                "catalog_mirrors": [
                    "https://www.mongodb.org/dl/src/",
                ],
                "community_host": "https://fastdl.mongodb.org",
                "enterprise_host": "https://downloads.mongodb.com",
                "source_url_template": "{host}/src/mongodb-src-r{version}.tar.gz",
                "cache_expire_time": 3600,
                "request_rate_limit": 10,
                "download_retry_count": 3,
                "download_speed_limit": 0,
                "probe_timeout": 10,
                "hook_failure_policy": "ignore",
                "build_tool": "scons",
            },
        }

    def load_config(self) -> dict[str, Any]:
        """
        加载配置文件。

        配置文件不存在或损坏时使用内置默认配置；不存在时会尝试写出默认配置。

        返回:
            配置字典
        """
        if not self.CONFIG_FILE.exists():
            logger.info(f"配置文件不存在，使用默认配置: {self.CONFIG_FILE}")
            self._config = self._get_builtin_default_config()
            try:
                self.save_config()
            except ConfigSaveError as e:
                logger.warning(f"无法写出默认配置: {e}")
            self._load_cache()
            return self._config

        try:
            logger.debug(f"从文件加载配置: {self.CONFIG_FILE}")
            with open(self.CONFIG_FILE, "r", encoding="utf-8") as f:
                self._config = json.load(f)
            self._ensure_backward_compatibility()
            self.validate_config(self._config)
        except (IOError, OSError, json.JSONDecodeError) as e:
            logger.error(f"加载配置文件失败，使用默认配置: {e}")
            self._config = self._get_builtin_default_config()
        except ConfigValidationError as e:
            logger.error(f"配置验证失败，使用默认配置: {e}")
            self._config = self._get_builtin_default_config()

        self._load_cache()
        return self._config

    def _ensure_backward_compatibility(self) -> None:
        """为旧版本配置补齐新增字段。"""
        if not isinstance(self._config, dict):
            return
        defaults = self._get_builtin_default_config()["settings"]
        settings = self._config.setdefault("settings", {})
        if not isinstance(settings, dict):
            return
        for key, value in defaults.items():
            settings.setdefault(key, value)

    def _load_cache(self) -> None:
        """加载缓存文件。"""
        if not self.CACHE_FILE.exists():
            self._cache = {}
            return
        try:
            with open(self.CACHE_FILE, "r", encoding="utf-8") as f:
                self._cache = json.load(f)
        except (IOError, OSError, json.JSONDecodeError) as e:
            logger.warning(f"缓存文件损坏，已忽略: {e}")
            self._cache = {}

    def save_config(self, config: dict[str, Any] | None = None) -> None:
        """
        保存配置到文件。

        参数:
            config: 要保存的配置字典，如果为 None 则保存当前配置
        """
        if config is not None:
            self._config = config
        self.validate_config(self._config)
        try:
            self.CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            logger.debug(f"保存配置到 {self.CONFIG_FILE}")
            _atomic_save_json(self.CONFIG_FILE, self._config, indent=2)
        except (IOError, OSError) as e:
            logger.error(f"保存配置失败: {e}")
            raise ConfigSaveError(f"无法保存配置到 {self.CONFIG_FILE}: {e}") from e

    def save_cache(self, cache: dict[str, Any] | None = None) -> None:
        """
        保存缓存到文件。

        参数:
            cache: 要保存的缓存字典，如果为 None 则保存当前缓存
        """
        if cache is not None:
            self._cache = cache
        try:
            self.CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            _atomic_save_json(self.CACHE_FILE, self._cache, indent=2)
        except (IOError, OSError) as e:
            logger.error(f"保存缓存失败: {e}")
            raise ConfigSaveError(f"无法保存缓存到 {self.CACHE_FILE}: {e}") from e

    def clear_cache(self) -> None:
        """清空缓存。"""
        logger.info("清空缓存")
        self._cache = {}
        self.save_cache()

    def validate_config(self, config: dict[str, Any]) -> bool:
        """
        验证配置的有效性。

        参数:
            config: 要验证的配置字典

        返回:
            验证通过返回 True

        抛出:
            ConfigValidationError: 配置验证失败时抛出
        """
        if not isinstance(config, dict):
            raise ConfigValidationError("配置必须是字典类型")

        for key, expected_type in self.REQUIRED_FIELDS.items():
            if key not in config:
                raise ConfigValidationError(f"缺少必需字段: {key}")
            if not isinstance(config[key], expected_type):
                raise ConfigValidationError(
                    f"字段 '{key}' 必须是 {expected_type.__name__} 类型，"
                    f"实际为 {type(config[key]).__name__}"
                )

        settings = config["settings"]
        for key, expected_type in self.SETTINGS_FIELDS.items():
            if key not in settings:
                raise ConfigValidationError(f"settings 中缺少必需字段: {key}")
            value = settings[key]
            # bool 是 int 的子类，需要单独排除
            if not isinstance(value, expected_type) or (expected_type is int and isinstance(value, bool)):
                raise ConfigValidationError(
                    f"字段 'settings.{key}' 必须是 {expected_type.__name__} 类型，"
                    f"实际为 {type(value).__name__}"
                )

        if settings["hook_failure_policy"] not in HOOK_FAILURE_POLICIES:
            raise ConfigValidationError(
                f"settings.hook_failure_policy 只能是 {', '.join(HOOK_FAILURE_POLICIES)}"
            )

        try:
            for url in settings["catalog_mirrors"]:
                InputValidator.validate_url(url)
            InputValidator.validate_url(settings["community_host"])
            InputValidator.validate_url(settings["enterprise_host"])
        except InputValidationError as e:
            raise ConfigValidationError(str(e)) from e

        return True

    @property
    def config(self) -> dict[str, Any]:
        """
        获取配置字典（延迟加载）。
        """
        if not self._config:
            self.load_config()
        return self._config

    def get_config(self) -> dict[str, Any]:
        return self.config

    def get_settings(self) -> dict[str, Any]:
        return self.config.get("settings", {})

    def _setting(self, key: str) -> Any:
        settings = self.get_settings()
        if key in settings:
            return settings[key]
        return self._get_builtin_default_config()["settings"][key]

    def set_setting(self, key: str, value: Any) -> None:
        """
        修改单个 settings 字段并保存。

        参数:
            key: 字段名
            value: 字段值

        抛出:
            ConfigValidationError: 未知字段或值类型不匹配
        """
        if key not in self.SETTINGS_FIELDS:
            raise ConfigValidationError(f"未知配置项: {key}")
        candidate = json.loads(json.dumps(self.config))
        candidate["settings"][key] = value
        self.validate_config(candidate)
        self.save_config(candidate)
        logger.info(f"已设置 settings.{key} = {value}")

    def get_prefix(self) -> Path:
        """
        获取可执行文件链接前缀（链接写入 <prefix>/bin）。
        """
        return Path(os.environ.get("M_PREFIX") or self._setting("prefix")).expanduser()

    def get_install_root(self) -> Path:
        """
        获取安装根目录，默认 <prefix>/m。
        """
        root = os.environ.get("M_DIR") or self._setting("install_root")
        if root:
            return Path(root).expanduser()
        return self.get_prefix() / "m"

    def get_versions_dir(self) -> Path:
        return self.get_install_root() / "versions"

    def get_catalog_mirrors(self) -> list[str]:
        return list(self._setting("catalog_mirrors"))

    def get_community_host(self) -> str:
        return self._setting("community_host").rstrip("/")

    def get_enterprise_host(self) -> str:
        return self._setting("enterprise_host").rstrip("/")

    def get_source_url_template(self) -> str:
        return self._setting("source_url_template")

    def get_cache_expire_time(self) -> int:
        """获取目录缓存过期时间（秒）。"""
        return self._setting("cache_expire_time")

    def get_request_rate_limit(self) -> int:
        """获取请求频率限制（次/秒，0 表示不限制）。"""
        return self._setting("request_rate_limit")

    def get_download_retry_count(self) -> int:
        return self._setting("download_retry_count")

    def get_download_speed_limit(self) -> int:
        """获取下载速度限制（字节/秒，0 表示不限制）。"""
        return self._setting("download_speed_limit")

    def get_probe_timeout(self) -> int:
        return self._setting("probe_timeout")

    def get_hook_failure_policy(self) -> str:
        return self._setting("hook_failure_policy")

    def get_build_tool(self) -> str:
        return self._setting("build_tool")

    def get_cache(self) -> dict[str, Any]:
        if not self._config:
            self.load_config()
        return self._cache

    def set_cache(self, key: str, value: Any) -> None:
        self.get_cache()[key] = value
