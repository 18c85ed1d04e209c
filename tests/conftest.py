"""Shared fixtures for the Mongover test suite."""

import os
import stat
import tempfile
from pathlib import Path

# 日志模块在导入时确定日志目录，必须先于任何 src 导入设置
os.environ.setdefault("MONGOVER_HOME", tempfile.mkdtemp(prefix="mongover-test-"))

import pytest

from src.core.config_manager import ConfigManager


@pytest.fixture
def mongover_env(tmp_path, monkeypatch):
    """Point every Mongover location at a temporary directory."""
    home = tmp_path / "home"
    prefix = tmp_path / "prefix"
    install_root = tmp_path / "m"
    monkeypatch.setenv("MONGOVER_HOME", str(home))
    monkeypatch.setenv("M_PREFIX", str(prefix))
    monkeypatch.setenv("M_DIR", str(install_root))
    return {"home": home, "prefix": prefix, "install_root": install_root}


@pytest.fixture
def config_manager(mongover_env):
    """A ConfigManager with rate limiting and retries disabled."""
    manager = ConfigManager(mongover_env["home"])
    manager.set_setting("request_rate_limit", 0)
    manager.set_setting("download_retry_count", 0)
    return manager


@pytest.fixture
def make_script(tmp_path):
    """Create an executable shell script that appends its arguments to a log."""
    scripts_dir = tmp_path / "scripts"
    scripts_dir.mkdir()
    calls_log = tmp_path / "calls.log"

    def _make(name: str, exit_code: int = 0) -> str:
        path = scripts_dir / name
        path.write_text(
            "#!/bin/sh\n"
            f'echo "{name} $@" >> "{calls_log}"\n'
            f"exit {exit_code}\n"
        )
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    _make.calls_log = calls_log
    return _make


def make_version_dir(versions_dir: Path, name: str, binaries=("mongod", "mongos", "mongo")) -> Path:
    """Create versions/<name>/bin with empty executables."""
    bin_dir = versions_dir / name / "bin"
    bin_dir.mkdir(parents=True)
    for binary in binaries:
        path = bin_dir / binary
        path.write_text("#!/bin/sh\n")
        path.chmod(0o755)
    return versions_dir / name
