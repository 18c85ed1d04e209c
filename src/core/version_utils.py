"""
版本工具模块。

提供版本号解析、排序以及版本规格（VersionSpec）的定义与解析。

版本的全序：先按 (major, minor, patch) 数值比较；同一三元组下正式版
排在预发布版之后（正式版 > rc）；剩余情况按预发布标签的自然顺序
（rc2 < rc10）及企业版标记（社区版在前）区分。
"""

import functools
import re
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Tuple, Union

from src.core.errors import ResolutionFailure

ENTERPRISE_SUFFIX = "ent"

_ENTERPRISE_RE = re.compile(r'^(.*?)-?(?:enterprise|ent)$', re.IGNORECASE)
_VERSION_RE = re.compile(r'^v?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z][0-9A-Za-z.]*))?$')
_SERIES_RE = re.compile(r'^v?(\d+)\.(\d+)(?:\.x)?$', re.IGNORECASE)
CATALOG_PATTERN = re.compile(r'(?<![\d.])(\d+\.\d+\.\d+(?:-[0-9A-Za-z]+)?)(?![\d.]\d)')


def _natural_key(tag: str) -> Tuple[Tuple[int, Union[int, str]], ...]:
    parts = re.split(r'(\d+)', tag)
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts if p)


@functools.total_ordering
@dataclass(frozen=True, eq=True)
class Version:
    """一个具体的 MongoDB 版本。"""

    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None
    enterprise: bool = False

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    @property
    def series(self) -> Tuple[int, int]:
        return (self.major, self.minor)

    def sort_key(self) -> tuple:
        return (
            self.major,
            self.minor,
            self.patch,
            self.prerelease is None,
            _natural_key(self.prerelease or ""),
            self.prerelease or "",
            self.enterprise,
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def community(self) -> "Version":
        """返回去掉企业版标记的同一版本。"""
        return replace(self, enterprise=False)

    def with_enterprise(self, enterprise: bool) -> "Version":
        return replace(self, enterprise=enterprise)

    @property
    def number(self) -> str:
        """不含企业版后缀的版本号，用于拼接下载地址。"""
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        return text

    def __str__(self) -> str:
        if self.enterprise:
            return f"{self.number}-{ENTERPRISE_SUFFIX}"
        return self.number


def _split_enterprise(text: str) -> Tuple[str, bool]:
    match = _ENTERPRISE_RE.match(text)
    if match and match.group(1):
        return match.group(1), True
    return text, False


def parse_version(text: str) -> Version:
    """
    解析完整版本字符串。

    支持前缀 v，以及 -ent / ent / -enterprise 企业版后缀。

    参数:
        text: 版本字符串，如 "3.6.3"、"4.0.0-rc1-ent"

    返回:
        Version 实例

    抛出:
        ValueError: 格式无效
    """
    raw = text.strip()
    base, enterprise = _split_enterprise(raw)
    match = _VERSION_RE.match(base)
    if not match:
        raise ValueError(f"无效的版本号: {text}")
    major, minor, patch, prerelease = match.groups()
    return Version(int(major), int(minor), int(patch), prerelease, enterprise)


def try_parse_version(text: str) -> Optional[Version]:
    try:
        return parse_version(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class Exact:
    version: Version


@dataclass(frozen=True)
class Series:
    major: int
    minor: int
    enterprise: bool = False

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}"
        return f"{text}-{ENTERPRISE_SUFFIX}" if self.enterprise else text


@dataclass(frozen=True)
class MetaLatest:
    enterprise: bool = False


@dataclass(frozen=True)
class MetaStable:
    enterprise: bool = False


@dataclass(frozen=True)
class LocalOnly:
    """只针对本地已安装版本解析的规格，永远不会访问网络。"""

    spec: "VersionSpec" = field(default_factory=MetaLatest)


VersionSpec = Union[Exact, Series, MetaLatest, MetaStable, LocalOnly]


def parse_spec(text: str) -> VersionSpec:
    """
    把用户输入解析为版本规格。

    参数:
        text: "3.6.3"、"3.6"、"3.6-ent"、"latest"、"stable" 等

    返回:
        VersionSpec

    抛出:
        ResolutionFailure: 无法识别的规格
    """
    raw = (text or "").strip()
    base, enterprise = _split_enterprise(raw)
    lowered = base.lower()

    if lowered == "latest":
        return MetaLatest(enterprise)
    if lowered == "stable":
        return MetaStable(enterprise)

    match = _SERIES_RE.match(base)
    if match:
        return Series(int(match.group(1)), int(match.group(2)), enterprise)

    version = try_parse_version(raw)
    if version is not None:
        return Exact(version)

    raise ResolutionFailure(f"无法识别的版本规格: {text}")


def sort_versions(versions: Iterable[Version], reverse: bool = False) -> List[Version]:
    """
    按全序排列版本并去重。

    参数:
        versions: 版本集合
        reverse: 是否降序

    返回:
        排序后的版本列表
    """
    return sorted(set(versions), reverse=reverse)


def extract_versions(content: str) -> List[Version]:
    """
    从目录页面中抓取形如 MAJOR.MINOR.PATCH[-tag] 的版本号。

    参数:
        content: 页面文本

    返回:
        去重并按升序排列的版本列表
    """
    found = []
    for text in CATALOG_PATTERN.findall(content):
        version = try_parse_version(text)
        if version is not None:
            found.append(version)
    return sort_versions(found)
