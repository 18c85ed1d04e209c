"""Tests for the VersionManager coordinator."""

from unittest.mock import MagicMock

import pytest

from src.core.errors import NotInstalledFailure, ResolutionFailure
from src.core.installer import InstallAction
from src.core.platform_info import PlatformDescriptor
from src.core.version_manager import VersionManager
from src.core.version_utils import Exact, Series, parse_version

from conftest import make_version_dir


@pytest.fixture
def manager(config_manager):
    return VersionManager(
        config_manager,
        platform_provider=lambda: PlatformDescriptor("linux", "x86_64", "ubuntu", "18.04"),
    )


@pytest.fixture
def versions(mongover_env):
    return mongover_env["install_root"] / "versions"


class TestParse:
    def test_valid(self):
        assert VersionManager.parse("3.6") == Series(3, 6)
        assert VersionManager.parse("3.6.3") == Exact(parse_version("3.6.3"))

    @pytest.mark.parametrize("text", ["", "3.6; ls", "a/b"])
    def test_invalid_input(self, text):
        with pytest.raises(ResolutionFailure):
            VersionManager.parse(text)


class TestLocal:
    def test_resolve_local_picks_newest_installed(self, manager, versions):
        make_version_dir(versions, "3.6.1")
        make_version_dir(versions, "3.6.3")
        make_version_dir(versions, "3.4.10")
        assert manager.resolve_local("3.6") == parse_version("3.6.3")

    def test_bin_path(self, manager, versions):
        make_version_dir(versions, "3.6.3")
        assert manager.bin_path("3.6.3", "mongos") == versions / "3.6.3" / "bin" / "mongos"

    def test_shell_falls_back_to_mongosh(self, manager, versions):
        make_version_dir(versions, "6.0.5", binaries=("mongod", "mongos", "mongosh"))
        assert manager.bin_path("6.0.5", "mongo").name == "mongosh"

    def test_missing_binary(self, manager, versions):
        make_version_dir(versions, "3.6.3", binaries=("mongod",))
        with pytest.raises(NotInstalledFailure):
            manager.bin_path("3.6.3", "mongos")

    def test_remove_uses_local_resolution(self, manager, versions):
        make_version_dir(versions, "3.4.10")
        make_version_dir(versions, "3.6.3")
        assert manager.remove(["3.4"]) == [parse_version("3.4.10")]
        assert not (versions / "3.4.10").exists()
        assert (versions / "3.6.3").exists()

    def test_read_build_config(self, manager, versions):
        make_version_dir(versions, "3.6.3")
        (versions / "3.6.3" / ".config").write_text("--ssl\n")
        assert manager.read_build_config("3.6.3") == "--ssl"


class TestInstall:
    def test_exact_version_skips_catalog(self, manager, versions):
        make_version_dir(versions, "3.6.3")
        manager.catalog = MagicMock()

        result = manager.install("3.6.3")

        assert result.action is InstallAction.ACTIVATED
        manager.catalog.list_versions.assert_not_called()

    def test_series_resolved_against_catalog(self, manager):
        manager.resolver.catalog = MagicMock()
        manager.resolver.catalog.list_versions.return_value = [
            parse_version("3.6.1"), parse_version("3.6.3"), parse_version("3.7.0-rc1"),
        ]
        manager.pipeline = MagicMock()

        manager.install("3.6", config="--ssl")

        manager.pipeline.install.assert_called_once_with(
            parse_version("3.6.3"),
            config="--ssl",
            confirm_source_build=None,
            progress_callback=None,
        )

    def test_source_url(self, manager):
        assert manager.source_url("3.6.3") == "https://fastdl.mongodb.org/src/mongodb-src-r3.6.3.tar.gz"
