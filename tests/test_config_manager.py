"""Tests for ConfigManager."""

import json
from pathlib import Path

import pytest

from src.core.config_manager import ConfigManager, ConfigSaveError, ConfigValidationError


@pytest.fixture
def home(mongover_env):
    return mongover_env["home"]


class TestLoading:
    def test_defaults_written_on_first_load(self, home):
        manager = ConfigManager(home)
        config = manager.get_config()

        assert config["settings"]["hook_failure_policy"] == "ignore"
        assert manager.CONFIG_FILE.exists()
        assert json.loads(manager.CONFIG_FILE.read_text(encoding="utf-8")) == config

    def test_corrupt_file_falls_back_to_defaults(self, home):
        home.mkdir(parents=True)
        (home / "config.json").write_text("{not json", encoding="utf-8")

        manager = ConfigManager(home)
        assert manager.get_cache_expire_time() == 3600

    def test_invalid_types_fall_back_to_defaults(self, home):
        home.mkdir(parents=True)
        (home / "config.json").write_text(
            json.dumps({"settings": {"probe_timeout": "slow"}}), encoding="utf-8"
        )

        manager = ConfigManager(home)
        assert manager.get_probe_timeout() == 10

    def test_old_config_gets_new_fields(self, home):
        home.mkdir(parents=True)
        (home / "config.json").write_text(
            json.dumps({"settings": {"probe_timeout": 3}}), encoding="utf-8"
        )

        manager = ConfigManager(home)
        assert manager.get_probe_timeout() == 3
        assert manager.get_build_tool() == "scons"

    def test_corrupt_cache_is_ignored(self, home):
        home.mkdir(parents=True)
        (home / "cache.json").write_text("[[[", encoding="utf-8")

        manager = ConfigManager(home)
        assert manager.get_cache() == {}


class TestLocations:
    def test_environment_overrides(self, config_manager, mongover_env):
        assert config_manager.get_prefix() == mongover_env["prefix"]
        assert config_manager.get_install_root() == mongover_env["install_root"]
        assert config_manager.get_versions_dir() == mongover_env["install_root"] / "versions"

    def test_install_root_defaults_under_prefix(self, home, monkeypatch):
        monkeypatch.delenv("M_PREFIX")
        monkeypatch.delenv("M_DIR")
        manager = ConfigManager(home)

        assert manager.get_prefix() == Path("/usr/local")
        assert manager.get_install_root() == Path("/usr/local/m")

    def test_configured_install_root(self, config_manager, monkeypatch, tmp_path):
        monkeypatch.delenv("M_DIR")
        config_manager.set_setting("install_root", str(tmp_path / "custom"))
        assert config_manager.get_install_root() == tmp_path / "custom"

    def test_hosts_strip_trailing_slash(self, config_manager):
        config_manager.set_setting("community_host", "https://mirror.example.org/")
        assert config_manager.get_community_host() == "https://mirror.example.org"


class TestSetSetting:
    def test_persists(self, config_manager, home):
        config_manager.set_setting("hook_failure_policy", "abort")

        reloaded = ConfigManager(home)
        assert reloaded.get_hook_failure_policy() == "abort"

    def test_unknown_key(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.set_setting("colour", "blue")

    def test_wrong_type(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.set_setting("probe_timeout", "10")

    def test_bool_is_not_int(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.set_setting("download_retry_count", True)

    def test_unknown_policy(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.set_setting("hook_failure_policy", "retry")

    def test_invalid_mirror_url(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.set_setting("catalog_mirrors", ["ftp://old.example.org"])

    def test_failed_validation_leaves_config_untouched(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.set_setting("hook_failure_policy", "retry")
        assert config_manager.get_hook_failure_policy() == "ignore"


class TestCache:
    def test_save_and_clear(self, config_manager, home):
        config_manager.set_cache("catalog_versions", {"versions": ["3.6.3"]})
        config_manager.save_cache()
        assert json.loads((home / "cache.json").read_text(encoding="utf-8")) == {
            "catalog_versions": {"versions": ["3.6.3"]}
        }

        config_manager.clear_cache()
        assert ConfigManager(home).get_cache() == {}

    def test_save_failure_raises_config_save_error(self, config_manager, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config_manager.CONFIG_DIR = blocker / "home"
        config_manager.CACHE_FILE = config_manager.CONFIG_DIR / "cache.json"

        with pytest.raises(ConfigSaveError):
            config_manager.save_cache()
