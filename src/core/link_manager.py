"""
链接管理模块。

激活版本时把版本目录 bin 下的可执行文件以符号链接的形式写入
<prefix>/bin，并更新安装根目录下的 current 链接。
"""

import os
from pathlib import Path
from typing import List

from src.core.errors import MongoverError
from src.utils.logger import get_logger

logger = get_logger()


class LinkManagerError(MongoverError):
    """链接管理错误异常。"""
    pass


def _replace_symlink(target: Path, link: Path) -> None:
    """
    原子地创建或覆盖符号链接。

    参数:
        target: 链接指向的路径
        link: 链接本身的路径
    """
    if link.is_dir() and not link.is_symlink():
        raise LinkManagerError(f"{link} 是目录，无法覆盖为链接")
    temp_link = link.with_name(f".{link.name}.mgv-tmp")
    if temp_link.is_symlink() or temp_link.exists():
        temp_link.unlink()
    os.symlink(target, temp_link)
    os.replace(temp_link, link)


class LinkManager:
    """
    链接管理器类。

    负责激活版本的符号链接；任意时刻最多只有一个版本处于激活状态。
    """

    def __init__(self, prefix: Path, install_root: Path):
        """
        初始化链接管理器。

        参数:
            prefix: 可执行文件前缀，链接写入 <prefix>/bin
            install_root: 安装根目录，current 链接位于其下
        """
        self.prefix = Path(prefix)
        self.install_root = Path(install_root)

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def current_link(self) -> Path:
        return self.install_root / "current"

    def link_version(self, version_dir: Path) -> List[Path]:
        """
        激活版本目录：覆盖 <prefix>/bin 中的同名链接并更新 current。

        参数:
            version_dir: versions/<version> 目录

        返回:
            创建的链接路径列表
        """
        source_bin = Path(version_dir) / "bin"
        if not source_bin.is_dir():
            raise LinkManagerError(f"{source_bin} 不存在")

        self.bin_dir.mkdir(parents=True, exist_ok=True)
        links = []
        for item in sorted(source_bin.iterdir()):
            if not item.is_file():
                continue
            link = self.bin_dir / item.name
            _replace_symlink(item.resolve(), link)
            links.append(link)
        logger.debug(f"已链接 {len(links)} 个可执行文件到 {self.bin_dir}")

        self.install_root.mkdir(parents=True, exist_ok=True)
        _replace_symlink(Path(version_dir).resolve(), self.current_link)
        return links

    def unlink_version(self, version_dir: Path) -> int:
        """
        删除指向指定版本目录的链接（包括 current）。

        参数:
            version_dir: versions/<version> 目录

        返回:
            删除的链接数量
        """
        resolved = Path(version_dir).resolve()
        removed = 0
        candidates = [self.current_link]
        if self.bin_dir.is_dir():
            candidates.extend(self.bin_dir.iterdir())
        for link in candidates:
            if not link.is_symlink():
                continue
            target = Path(os.readlink(link))
            if not target.is_absolute():
                target = (link.parent / target).resolve()
            if target == resolved or resolved in target.parents:
                link.unlink()
                removed += 1
        logger.debug(f"已删除 {removed} 个指向 {version_dir} 的链接")
        return removed
