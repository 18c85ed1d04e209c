"""
本地版本管理模块。

提供已安装版本的扫描、读取构建参数、删除，以及当前激活版本的检测。
"""

import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from src.core.errors import NotInstalledFailure
from src.core.interfaces import IVersionStore
from src.core.link_manager import LinkManager
from src.core.version_utils import Version, try_parse_version
from src.utils.logger import get_logger

logger = get_logger()

CONFIG_FILE_NAME = ".config"
ACTIVE_VERSION_PATTERN = re.compile(r"db version v?(\d+\.\d+\.\d+(?:-[0-9A-Za-z]+)?)", re.IGNORECASE)


@dataclass(frozen=True)
class InstalledVersion:
    """一个已安装版本：versions/<规范版本号> 目录。"""

    version: Version
    path: Path

    @property
    def bin_dir(self) -> Path:
        return self.path / "bin"

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILE_NAME


class VersionStore(IVersionStore):
    """
    本地版本仓库类。

    目录名即规范版本字符串，每个规范版本最多对应一个目录。
    """

    def __init__(
        self,
        versions_dir: Path,
        prefix: Path,
        link_manager: Optional[LinkManager] = None,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        """
        初始化本地版本仓库。

        参数:
            versions_dir: versions 目录
            prefix: 可执行文件前缀，用于定位当前激活的 mongod
            link_manager: 删除激活版本时用于清理链接
            run: 执行外部命令的函数
            which: 在 PATH 中查找可执行文件的函数
        """
        self.versions_dir = Path(versions_dir)
        self.prefix = Path(prefix)
        self.link_manager = link_manager
        self._run = run
        self._which = which

    def version_dir(self, version: Version) -> Path:
        return self.versions_dir / str(version)

    def list(self) -> List[InstalledVersion]:
        """
        扫描已安装版本。

        返回:
            按版本全序升序排列的 InstalledVersion 列表
        """
        if not self.versions_dir.is_dir():
            return []

        installed = []
        for item in self.versions_dir.iterdir():
            if not item.is_dir():
                continue
            version = try_parse_version(item.name)
            if version is None or str(version) != item.name:
                logger.warning(f"跳过非规范命名的版本目录: {item}")
                continue
            if not (item / "bin").is_dir():
                logger.warning(f"版本目录缺少 bin，跳过: {item}")
                continue
            installed.append(InstalledVersion(version, item))

        installed.sort(key=lambda v: v.version)
        logger.debug(f"找到 {len(installed)} 个本地版本")
        return installed

    def list_versions(self) -> List[Version]:
        return [item.version for item in self.list()]

    def get(self, version: Version) -> Optional[InstalledVersion]:
        path = self.version_dir(version)
        if (path / "bin").is_dir():
            return InstalledVersion(version, path)
        return None

    def exists(self, version: Version) -> bool:
        return self.get(version) is not None

    def require(self, version: Version) -> InstalledVersion:
        installed = self.get(version)
        if installed is None:
            raise NotInstalledFailure(str(version))
        return installed

    def bin_path(self, version: Version, name: str = "mongod") -> Path:
        """
        获取已安装版本中某个可执行文件的路径。

        参数:
            version: 版本
            name: 可执行文件名

        返回:
            可执行文件路径

        抛出:
            NotInstalledFailure: 版本未安装
        """
        return self.require(version).bin_dir / name

    def read_config(self, version: Version) -> Optional[str]:
        """读取源码安装时保存的构建参数，没有则返回 None。"""
        path = self.require(version).config_path
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8").rstrip("\n")

    def write_config(self, version: Version, flags: str) -> None:
        """原样保存构建参数到 .config。"""
        path = self.version_dir(version) / CONFIG_FILE_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(flags + "\n", encoding="utf-8")

    def _active_binary(self) -> Optional[str]:
        linked = self.prefix / "bin" / "mongod"
        if linked.exists():
            return str(linked)
        return self._which("mongod")

    def detect_active(self) -> Optional[Version]:
        """
        通过执行当前链接的 mongod --version 获取激活版本。

        每次调用都会重新执行命令，不做缓存。

        返回:
            激活版本，没有或无法识别时返回 None
        """
        binary = self._active_binary()
        if not binary:
            return None
        try:
            result = self._run([binary, "--version"], capture_output=True, text=True, timeout=10)
        except subprocess.TimeoutExpired:
            logger.warning(f"获取 {binary} 版本超时 (10秒)")
            return None
        except OSError as e:
            logger.warning(f"无法执行 {binary}: {e}")
            return None

        output = (result.stdout or "") + (result.stderr or "")
        match = ACTIVE_VERSION_PATTERN.search(output)
        if not match:
            logger.debug(f"无法从输出中解析 mongod 版本: {output[:200]}")
            return None
        version = try_parse_version(match.group(1))
        if version is None:
            return None
        enterprise = re.search(r"enterprise", output, re.IGNORECASE) is not None
        return version.with_enterprise(enterprise)

    def remove(self, version: Version, confirm: Optional[Callable[[], bool]] = None) -> bool:
        """
        删除已安装版本。

        删除当前激活的版本需要 confirm() 返回 True，否则跳过并给出警告。

        参数:
            version: 要删除的版本
            confirm: 确认回调

        返回:
            删除返回 True，跳过返回 False

        抛出:
            NotInstalledFailure: 版本未安装
        """
        installed = self.require(version)
        if version == self.detect_active():
            if confirm is None or not confirm():
                logger.warning(f"{version} 是当前激活版本，未确认，跳过删除")
                return False
            if self.link_manager is not None:
                self.link_manager.unlink_version(installed.path)

        shutil.rmtree(installed.path)
        logger.info(f"已删除 {installed.path}")
        return True
