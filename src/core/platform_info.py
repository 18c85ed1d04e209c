"""
平台信息模块。

检测操作系统、CPU 架构以及 Linux 发行版标识和版本，
供安装包定位使用。
"""

import platform
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from src.core.errors import UnsupportedPlatformFailure
from src.utils.logger import get_logger

logger = get_logger()

SUPPORTED_OS = ("linux", "darwin", "sunos")

ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "i86pc": "x86_64",
    "arm64": "arm64",
    "aarch64": "aarch64",
}

# 按前缀匹配，先匹配先生效
DISTRO_ALIASES: List[Tuple[str, str]] = [
    ("redhat", "rhel"),
    ("rhel", "rhel"),
    ("centos", "rhel"),
    ("rocky", "rhel"),
    ("almalinux", "rhel"),
    ("ol", "rhel"),
    ("oracle", "rhel"),
    ("amzn", "amazon"),
    ("amazon", "amazon"),
    ("sles", "suse"),
    ("suse", "suse"),
    ("opensuse", "suse"),
]

UBUNTU_DERIVATIVES = ("linuxmint", "pop", "elementary", "neon", "zorin")

UBUNTU_CODENAMES = {
    "precise": "12.04",
    "trusty": "14.04",
    "xenial": "16.04",
    "bionic": "18.04",
    "focal": "20.04",
    "jammy": "22.04",
    "noble": "24.04",
}

DEBIAN_CODENAMES = {
    "wheezy": "7",
    "jessie": "8",
    "stretch": "9",
    "buster": "10",
    "bullseye": "11",
    "bookworm": "12",
    "trixie": "13",
}


@dataclass(frozen=True)
class PlatformDescriptor:
    """一次调用内不变的平台描述。"""

    os: str
    arch: str
    distro_id: Optional[str] = None
    distro_version: Optional[str] = None

    @property
    def distro_major(self) -> Optional[int]:
        match = re.match(r"(\d+)", self.distro_version or "")
        return int(match.group(1)) if match else None

    def __str__(self) -> str:
        text = f"{self.os}/{self.arch}"
        if self.distro_id:
            text += f" ({self.distro_id} {self.distro_version or '?'})"
        return text


def normalize_distro_id(distro_id: str) -> str:
    """
    把发行版厂商标识规范化为统一的小写 id。

    参数:
        distro_id: 原始标识，如 "RedHatEnterpriseServer"、"CentOS"、"amzn"

    返回:
        规范化后的 id，如 "rhel"、"amazon"
    """
    key = re.sub(r"[^a-z0-9]", "", distro_id.lower())
    for prefix, canonical in DISTRO_ALIASES:
        if key == prefix or (len(prefix) > 2 and key.startswith(prefix)):
            return canonical
    return key


def _parse_key_values(text: str) -> Dict[str, str]:
    values = {}
    for line in text.splitlines():
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip().upper()] = value.strip().strip('"').strip("'")
    return values


class PlatformDetector:
    """
    平台检测器类。

    发行版检测优先级：lsb_release 命令、/etc 下的 release 文件、
    /etc/debian_version（代号按固定表映射为版本号）。
    """

    def __init__(
        self,
        etc_dir: str = "/etc",
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        system: Callable[[], str] = platform.system,
        machine: Callable[[], str] = platform.machine,
    ):
        """
        初始化平台检测器。

        参数:
            etc_dir: release 文件所在目录
            run: 执行外部命令的函数
            system: 返回操作系统名称的函数
            machine: 返回 CPU 架构的函数
        """
        self.etc_dir = Path(etc_dir)
        self._run = run
        self._system = system
        self._machine = machine

    def detect(self) -> PlatformDescriptor:
        """
        检测当前平台。

        返回:
            PlatformDescriptor

        抛出:
            UnsupportedPlatformFailure: Windows 等不支持的系统
        """
        os_name = self._system().lower()
        if os_name not in SUPPORTED_OS:
            raise UnsupportedPlatformFailure(f"不支持的操作系统: {self._system()}")

        machine = self._machine().lower()
        arch = ARCH_ALIASES.get(machine, machine)

        distro_id = distro_version = None
        if os_name == "linux":
            distro_id, distro_version = self._detect_distro()

        descriptor = PlatformDescriptor(os_name, arch, distro_id, distro_version)
        logger.debug(f"检测到平台: {descriptor}")
        return descriptor

    def _detect_distro(self) -> Tuple[Optional[str], Optional[str]]:
        for source in (self._from_lsb_release, self._from_release_files, self._from_debian_version):
            distro_id, distro_version = source()
            if distro_id:
                return self._normalize(distro_id, distro_version)
        logger.info("无法识别 Linux 发行版，将只尝试通用安装包")
        return None, None

    def _normalize(self, distro_id: str, distro_version: Optional[str]) -> Tuple[str, Optional[str]]:
        distro_id = normalize_distro_id(distro_id)
        version = distro_version.lower() if distro_version else None

        if distro_id in UBUNTU_DERIVATIVES:
            codename = self._read_os_release().get("UBUNTU_CODENAME", "").lower()
            if codename in UBUNTU_CODENAMES:
                logger.debug(f"{distro_id} 基于 Ubuntu {codename}")
                return "ubuntu", UBUNTU_CODENAMES[codename]

        if distro_id == "debian" and version in DEBIAN_CODENAMES:
            version = DEBIAN_CODENAMES[version]
        return distro_id, version

    def _from_lsb_release(self) -> Tuple[Optional[str], Optional[str]]:
        try:
            distro_id = self._run(["lsb_release", "-si"], capture_output=True, text=True, timeout=5)
            release = self._run(["lsb_release", "-sr"], capture_output=True, text=True, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"lsb_release 不可用: {e}")
            return None, None
        if distro_id.returncode != 0 or not distro_id.stdout.strip():
            return None, None
        return distro_id.stdout.strip(), release.stdout.strip() or None

    def _read_os_release(self) -> Dict[str, str]:
        path = self.etc_dir / "os-release"
        try:
            return _parse_key_values(path.read_text(encoding="utf-8"))
        except OSError:
            return {}

    def _from_release_files(self) -> Tuple[Optional[str], Optional[str]]:
        values = self._read_os_release()
        if values.get("ID"):
            return values["ID"], values.get("VERSION_ID")

        for path in sorted(self.etc_dir.glob("*-release")):
            if path.name in ("os-release", "lsb-release"):
                continue
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            result = self._parse_release_text(text)
            if result[0]:
                logger.debug(f"从 {path} 识别发行版: {result}")
                return result
        return None, None

    @staticmethod
    def _parse_release_text(text: str) -> Tuple[Optional[str], Optional[str]]:
        lines = text.strip().splitlines()
        if not lines:
            return None, None
        first = lines[0]
        match = re.match(r"^(.+?)\s+release\s+([\d.]+)", first, re.IGNORECASE)
        if match:
            return match.group(1), match.group(2)
        values = _parse_key_values(text)
        if values.get("VERSION"):
            name = re.sub(r"\s*\(.*\)\s*$", "", first)
            return name, values["VERSION"]
        return None, None

    def _from_debian_version(self) -> Tuple[Optional[str], Optional[str]]:
        path = self.etc_dir / "debian_version"
        try:
            text = path.read_text(encoding="utf-8").strip()
        except OSError:
            return None, None
        if not text:
            return None, None
        # 测试版本写作 "bullseye/sid"
        return "debian", text.split("/")[0].strip()


def detect_platform() -> PlatformDescriptor:
    """检测当前平台。"""
    return PlatformDetector().detect()
