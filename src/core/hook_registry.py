"""
生命周期钩子模块。

钩子按 (phase, event) 分组保存在安装根目录下的纯文本文件中
（pre_install、post_install、pre_change、post_change），每行一个可执行脚本的绝对路径，
按文件顺序执行。
"""

import enum
import os
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from src.core.errors import HookExecutionError, InvalidHookEvent, InvalidHookPath
from src.core.interfaces import IHookRegistry
from src.utils.input_validator import InputValidationError, InputValidator
from src.utils.logger import get_logger

logger = get_logger()

PHASES = ("pre", "post")
EVENTS = ("install", "change")


class HookFailurePolicy(enum.Enum):
    """钩子脚本返回非零退出码时的处理策略。"""

    IGNORE = "ignore"
    ABORT = "abort"


@dataclass(frozen=True)
class HookResult:
    """单个钩子脚本的执行结果。"""

    path: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _check_key(phase: str, event: str) -> None:
    if phase not in PHASES:
        raise InvalidHookEvent(f"无效的钩子阶段: {phase}（只能是 {' / '.join(PHASES)}）")
    if event not in EVENTS:
        raise InvalidHookEvent(f"无效的钩子事件: {event}（只能是 {' / '.join(EVENTS)}）")


class HookRegistry(IHookRegistry):
    """
    钩子注册表类。

    每个 (phase, event) 是一个有序且无重复的路径集合，修改时整体原子重写。
    默认策略下钩子失败只记录警告，不中断后续钩子和安装流程。
    """

    def __init__(
        self,
        root: Path,
        policy: HookFailurePolicy = HookFailurePolicy.IGNORE,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        """
        初始化钩子注册表。

        参数:
            root: 安装根目录，钩子文件保存在此目录下
            policy: 钩子失败策略
            run: 执行外部进程的函数
        """
        self.root = Path(root)
        self.policy = policy
        self._run = run

    def hook_file(self, phase: str, event: str) -> Path:
        _check_key(phase, event)
        return self.root / f"{phase}_{event}"

    def list(self, phase: str, event: str) -> List[str]:
        """
        列出已注册的钩子脚本。

        参数:
            phase: pre 或 post
            event: install 或 change

        返回:
            按执行顺序排列的脚本路径
        """
        path = self.hook_file(phase, event)
        if not path.exists():
            return []
        seen = []
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and line not in seen:
                seen.append(line)
        return seen

    def _write(self, phase: str, event: str, scripts: List[str]) -> None:
        path = self.hook_file(phase, event)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for script in scripts:
                    f.write(script + "\n")
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def add(self, phase: str, event: str, script: str) -> bool:
        """
        注册一个钩子脚本。

        参数:
            phase: pre 或 post
            event: install 或 change
            script: 可执行脚本的绝对路径

        返回:
            新增返回 True，已存在返回 False

        抛出:
            InvalidHookEvent: 阶段或事件无效
            InvalidHookPath: 路径不是绝对路径或不可执行
        """
        _check_key(phase, event)
        try:
            InputValidator.validate_executable_path(script)
        except InputValidationError as e:
            raise InvalidHookPath(str(e)) from e

        scripts = self.list(phase, event)
        if script in scripts:
            logger.info(f"钩子 {phase}_{event} 已包含 {script}")
            return False
        scripts.append(script)
        self._write(phase, event, scripts)
        logger.info(f"已添加钩子 {phase}_{event}: {script}")
        return True

    def remove(self, phase: str, event: str, script: Optional[str] = None) -> int:
        """
        移除钩子脚本。

        参数:
            phase: pre 或 post
            event: install 或 change
            script: 要移除的路径；为 None 时清空该组

        返回:
            被移除的条目数
        """
        scripts = self.list(phase, event)
        if script is None:
            remaining = []
        else:
            remaining = [s for s in scripts if s != script]
        removed = len(scripts) - len(remaining)
        if removed:
            self._write(phase, event, remaining)
            logger.info(f"已从 {phase}_{event} 移除 {removed} 个钩子")
        return removed

    def fire(self, phase: str, event: str, *args: str) -> List[HookResult]:
        """
        按文件顺序执行钩子脚本，每个脚本是独立进程。

        参数:
            phase: pre 或 post
            event: install 或 change
            *args: 传给脚本的参数（通常是版本号）

        返回:
            每个脚本的执行结果

        抛出:
            HookExecutionError: ABORT 策略下脚本返回非零退出码
        """
        results = []
        for script in self.list(phase, event):
            logger.info(f"执行钩子 {phase}_{event}: {script}")
            try:
                completed = self._run([script, *args], check=False)
                returncode = completed.returncode
            except OSError as e:
                logger.warning(f"无法执行钩子 {script}: {e}")
                returncode = 127
            result = HookResult(script, returncode)
            results.append(result)
            if result.ok:
                continue
            if self.policy is HookFailurePolicy.ABORT:
                raise HookExecutionError(script, returncode)
            logger.warning(f"钩子 {script} 退出码 {returncode}，继续执行")
        return results
