"""
核心模块抽象接口定义。

定义版本目录、本地版本仓库和钩子注册表的抽象接口，
解析器和安装流水线只依赖这些接口。
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from src.core.version_utils import Version


class IVersionCatalog(ABC):
    """远程版本目录抽象接口。"""

    @abstractmethod
    def list_versions(self, use_cache: bool = True) -> List[Version]:
        """获取远程已发布的全部版本（升序）。"""
        pass


class IVersionStore(ABC):
    """本地已安装版本仓库抽象接口。"""

    @abstractmethod
    def list_versions(self) -> List[Version]:
        """获取本地已安装的全部版本（升序）。"""
        pass

    @abstractmethod
    def exists(self, version: Version) -> bool:
        """判断版本是否已安装。"""
        pass

    @abstractmethod
    def detect_active(self) -> Optional[Version]:
        """查询当前激活的版本。"""
        pass


class IHookRegistry(ABC):
    """生命周期钩子注册表抽象接口。"""

    @abstractmethod
    def list(self, phase: str, event: str) -> List[str]:
        """列出 (phase, event) 下注册的脚本。"""
        pass

    @abstractmethod
    def fire(self, phase: str, event: str, *args: str) -> list:
        """按顺序执行 (phase, event) 下注册的脚本。"""
        pass
