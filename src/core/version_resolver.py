"""
版本解析模块。

把用户给出的版本规格解析为一个具体版本。远程范围查询版本目录，
本地范围只查询已安装版本，永远不访问网络。
"""

from typing import Callable, List

from src.core.errors import NotInstalledFailure, ResolutionFailure
from src.core.interfaces import IVersionCatalog, IVersionStore
from src.core.version_utils import (
    Exact, LocalOnly, MetaLatest, MetaStable, Series, Version, VersionSpec,
)
from src.utils.logger import get_logger

logger = get_logger()

SCOPE_REMOTE = "remote"
SCOPE_LOCAL = "local"


class VersionResolver:
    """
    版本解析器类。

    远程目录只列出社区版版本号，企业版规格在匹配后再带上企业版标记；
    本地范围下企业版标记必须与已安装目录一致。
    """

    def __init__(self, catalog: IVersionCatalog, store: IVersionStore):
        """
        初始化版本解析器。

        参数:
            catalog: 远程版本目录
            store: 本地版本仓库
        """
        self.catalog = catalog
        self.store = store

    def resolve(
        self,
        spec: VersionSpec,
        scope: str = SCOPE_REMOTE,
        include_prerelease: bool = False,
    ) -> Version:
        """
        解析版本规格。

        参数:
            spec: 版本规格
            scope: remote 或 local
            include_prerelease: Series 规格是否包含预发布版本

        返回:
            具体版本

        抛出:
            ResolutionFailure: 没有匹配的版本
            NotInstalledFailure: 本地范围下精确版本未安装
        """
        if scope not in (SCOPE_REMOTE, SCOPE_LOCAL):
            raise ValueError(f"无效的解析范围: {scope}")

        if isinstance(spec, LocalOnly):
            return self.resolve(spec.spec, SCOPE_LOCAL, include_prerelease)

        if isinstance(spec, Exact):
            if scope == SCOPE_LOCAL and not self.store.exists(spec.version):
                raise NotInstalledFailure(str(spec.version))
            return spec.version

        if isinstance(spec, Series):
            return self._select(
                spec, scope,
                lambda v: v.series == (spec.major, spec.minor)
                and (include_prerelease or not v.is_prerelease),
            )

        if isinstance(spec, MetaLatest):
            return self._select(spec, scope, lambda v: True)

        if isinstance(spec, MetaStable):
            return self._select(
                spec, scope, lambda v: v.minor % 2 == 0 and not v.is_prerelease
            )

        raise ResolutionFailure(f"无法识别的版本规格: {spec!r}")

    def _pool(self, enterprise: bool, scope: str) -> List[Version]:
        if scope == SCOPE_LOCAL:
            return [v for v in self.store.list_versions() if v.enterprise == enterprise]
        return [v.with_enterprise(enterprise) for v in self.catalog.list_versions()]

    def _select(self, spec, scope: str, predicate: Callable[[Version], bool]) -> Version:
        candidates = [v for v in self._pool(spec.enterprise, scope) if predicate(v)]
        if not candidates:
            where = "本地已安装版本" if scope == SCOPE_LOCAL else "远程版本目录"
            raise ResolutionFailure(f"{where}中没有与 {_describe(spec)} 匹配的版本")
        selected = max(candidates)
        logger.debug(f"{_describe(spec)} ({scope}) 解析为 {selected}")
        return selected


def _describe(spec: VersionSpec) -> str:
    if isinstance(spec, MetaLatest):
        return "latest-ent" if spec.enterprise else "latest"
    if isinstance(spec, MetaStable):
        return "stable-ent" if spec.enterprise else "stable"
    return str(spec)
