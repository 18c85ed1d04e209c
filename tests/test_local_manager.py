"""Tests for the installed-version store and activation links."""

import subprocess
from unittest.mock import MagicMock

import pytest

from src.core.errors import MongoverError, NotInstalledFailure
from src.core.link_manager import LinkManager, LinkManagerError
from src.core.local_manager import VersionStore
from src.core.version_utils import parse_version

from conftest import make_version_dir


def version_output(text):
    return subprocess.CompletedProcess(["mongod", "--version"], 0, stdout=text, stderr="")


@pytest.fixture
def paths(tmp_path):
    return {
        "prefix": tmp_path / "prefix",
        "root": tmp_path / "m",
        "versions": tmp_path / "m" / "versions",
    }


@pytest.fixture
def links(paths):
    return LinkManager(paths["prefix"], paths["root"])


def make_store(paths, links=None, active_text="", which=None):
    run = MagicMock(return_value=version_output(active_text))
    store = VersionStore(
        paths["versions"], paths["prefix"], links, run=run, which=which or (lambda name: None)
    )
    return store, run


class TestListing:
    def test_sorted_and_filtered(self, paths):
        for name in ("3.6.3", "3.4.10", "3.6.3-ent", "3.6.3-rc0"):
            make_version_dir(paths["versions"], name)
        (paths["versions"] / "junk").mkdir()
        make_version_dir(paths["versions"], "3.6")
        (paths["versions"] / "3.2.0").mkdir()

        store, _ = make_store(paths)

        assert [str(v) for v in store.list_versions()] == ["3.4.10", "3.6.3-rc0", "3.6.3", "3.6.3-ent"]

    def test_missing_versions_dir(self, paths):
        store, _ = make_store(paths)
        assert store.list() == []

    def test_exists_and_require(self, paths):
        make_version_dir(paths["versions"], "4.0.0")
        store, _ = make_store(paths)
        assert store.exists(parse_version("4.0.0"))
        assert not store.exists(parse_version("4.0.1"))
        with pytest.raises(NotInstalledFailure):
            store.require(parse_version("4.0.1"))

    def test_bin_path(self, paths):
        make_version_dir(paths["versions"], "4.0.0")
        store, _ = make_store(paths)
        assert store.bin_path(parse_version("4.0.0"), "mongos") == paths["versions"] / "4.0.0" / "bin" / "mongos"

    def test_build_config_roundtrip(self, paths):
        make_version_dir(paths["versions"], "3.6.3")
        store, _ = make_store(paths)
        version = parse_version("3.6.3")
        assert store.read_config(version) is None
        store.write_config(version, "--ssl --disable-warnings-as-errors")
        assert store.read_config(version) == "--ssl --disable-warnings-as-errors"


class TestDetectActive:
    def test_parses_linked_mongod(self, paths, links):
        version_dir = make_version_dir(paths["versions"], "3.6.3")
        links.link_version(version_dir)
        store, run = make_store(paths, active_text="db version v3.6.3\ngit version: abc\n")

        assert store.detect_active() == parse_version("3.6.3")
        assert run.call_args[0][0] == [str(paths["prefix"] / "bin" / "mongod"), "--version"]

    def test_enterprise_module(self, paths):
        store, _ = make_store(
            paths,
            active_text='db version v3.6.3\nmodules: enterprise\n',
            which=lambda name: "/usr/bin/mongod",
        )
        assert str(store.detect_active()) == "3.6.3-ent"

    def test_no_binary(self, paths):
        store, run = make_store(paths)
        assert store.detect_active() is None
        run.assert_not_called()

    def test_unparseable_output(self, paths):
        store, _ = make_store(paths, active_text="garbage", which=lambda name: "/usr/bin/mongod")
        assert store.detect_active() is None

    def test_not_cached(self, paths):
        store, run = make_store(paths, active_text="db version v3.6.3\n", which=lambda name: "/usr/bin/mongod")
        store.detect_active()
        store.detect_active()
        assert run.call_count == 2


class TestRemove:
    def test_active_without_confirmation_is_kept(self, paths, links):
        version_dir = make_version_dir(paths["versions"], "3.6.3")
        links.link_version(version_dir)
        store, _ = make_store(paths, links, active_text="db version v3.6.3\n")

        assert store.remove(parse_version("3.6.3"), confirm=lambda: False) is False
        assert version_dir.is_dir()
        assert (paths["prefix"] / "bin" / "mongod").is_symlink()
        assert store.detect_active() == parse_version("3.6.3")

    def test_active_without_callback_is_kept(self, paths, links):
        version_dir = make_version_dir(paths["versions"], "3.6.3")
        links.link_version(version_dir)
        store, _ = make_store(paths, links, active_text="db version v3.6.3\n")

        assert store.remove(parse_version("3.6.3")) is False
        assert version_dir.is_dir()

    def test_active_with_confirmation(self, paths, links):
        version_dir = make_version_dir(paths["versions"], "3.6.3")
        links.link_version(version_dir)
        store, _ = make_store(paths, links, active_text="db version v3.6.3\n")

        assert store.remove(parse_version("3.6.3"), confirm=lambda: True) is True
        assert not version_dir.exists()
        assert not (paths["prefix"] / "bin" / "mongod").is_symlink()
        assert not links.current_link.is_symlink()

    def test_inactive_needs_no_confirmation(self, paths):
        version_dir = make_version_dir(paths["versions"], "3.4.0")
        store, _ = make_store(paths, active_text="db version v3.6.3\n", which=lambda name: "/usr/bin/mongod")
        confirm = MagicMock(return_value=False)

        assert store.remove(parse_version("3.4.0"), confirm=confirm) is True
        assert not version_dir.exists()
        confirm.assert_not_called()

    def test_not_installed(self, paths):
        store, _ = make_store(paths)
        with pytest.raises(NotInstalledFailure):
            store.remove(parse_version("1.0.0"))


class TestLinkManager:
    def test_links_every_binary(self, paths, links):
        version_dir = make_version_dir(paths["versions"], "3.6.3")
        created = links.link_version(version_dir)

        assert sorted(p.name for p in created) == ["mongo", "mongod", "mongos"]
        assert (paths["prefix"] / "bin" / "mongod").resolve() == (version_dir / "bin" / "mongod").resolve()
        assert links.current_link.resolve() == version_dir.resolve()

    def test_relink_overwrites(self, paths, links):
        old = make_version_dir(paths["versions"], "3.4.0")
        new = make_version_dir(paths["versions"], "3.6.3", binaries=("mongod",))
        links.link_version(old)
        links.link_version(new)

        assert (paths["prefix"] / "bin" / "mongod").resolve() == (new / "bin" / "mongod").resolve()
        assert links.current_link.resolve() == new.resolve()

    def test_unlink_only_touches_target(self, paths, links):
        old = make_version_dir(paths["versions"], "3.4.0", binaries=("mongo",))
        new = make_version_dir(paths["versions"], "3.6.3", binaries=("mongod",))
        links.link_version(old)
        links.link_version(new)

        assert links.unlink_version(new) == 2
        assert (paths["prefix"] / "bin" / "mongo").is_symlink()
        assert not (paths["prefix"] / "bin" / "mongod").exists()

    def test_missing_bin(self, paths, links):
        with pytest.raises(LinkManagerError) as excinfo:
            links.link_version(paths["versions"] / "9.9.9")
        assert isinstance(excinfo.value, MongoverError)
