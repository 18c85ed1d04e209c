"""Tests for resolving version specs against the catalog and the local store."""

from typing import List, Optional

import pytest

from src.core.errors import NotInstalledFailure, ResolutionFailure
from src.core.interfaces import IVersionCatalog, IVersionStore
from src.core.version_resolver import SCOPE_LOCAL, VersionResolver
from src.core.version_utils import (
    Exact, LocalOnly, MetaLatest, MetaStable, Series, Version, parse_version,
)


class FakeCatalog(IVersionCatalog):
    def __init__(self, texts):
        self.versions = [parse_version(t) for t in texts]
        self.calls = 0

    def list_versions(self, use_cache: bool = True) -> List[Version]:
        self.calls += 1
        return sorted(self.versions)


class FakeStore(IVersionStore):
    def __init__(self, texts):
        self.versions = [parse_version(t) for t in texts]

    def list_versions(self) -> List[Version]:
        return sorted(self.versions)

    def exists(self, version: Version) -> bool:
        return version in self.versions

    def detect_active(self) -> Optional[Version]:
        return None


CATALOG = ["3.6.1", "3.6.3", "3.6.3-rc0"]


@pytest.fixture
def resolver():
    return VersionResolver(FakeCatalog(CATALOG + ["3.7.0-rc1", "3.5.13", "3.4.10"]), FakeStore([]))


class TestRemoteResolution:
    def test_series_excludes_prerelease(self):
        resolver = VersionResolver(FakeCatalog(CATALOG), FakeStore([]))
        assert str(resolver.resolve(Series(3, 6))) == "3.6.3"

    def test_series_can_include_prerelease(self):
        resolver = VersionResolver(FakeCatalog(["3.6.1", "3.6.2-rc0"]), FakeStore([]))
        assert str(resolver.resolve(Series(3, 6), include_prerelease=True)) == "3.6.2-rc0"
        assert str(resolver.resolve(Series(3, 6))) == "3.6.1"

    def test_latest_includes_prerelease(self, resolver):
        assert str(resolver.resolve(MetaLatest())) == "3.7.0-rc1"

    def test_stable_skips_odd_minor(self, resolver):
        assert str(resolver.resolve(MetaStable())) == "3.6.3"

    def test_stable_ignores_odd_series_even_when_newest(self):
        resolver = VersionResolver(FakeCatalog(["3.4.1", "3.5.9", "3.5.10"]), FakeStore([]))
        assert str(resolver.resolve(MetaStable())) == "3.4.1"

    def test_series_carries_enterprise_flag(self, resolver):
        version = resolver.resolve(Series(3, 6, enterprise=True))
        assert version.enterprise
        assert str(version) == "3.6.3-ent"

    def test_exact_is_passthrough(self, resolver):
        assert resolver.resolve(Exact(Version(9, 9, 9))) == Version(9, 9, 9)
        assert resolver.catalog.calls == 0

    def test_no_match(self, resolver):
        with pytest.raises(ResolutionFailure):
            resolver.resolve(Series(2, 4))


class TestLocalResolution:
    def test_local_only_never_touches_catalog(self):
        catalog = FakeCatalog(["9.0.0"])
        resolver = VersionResolver(catalog, FakeStore(["3.4.10", "3.6.3", "3.6.5-rc0"]))
        assert str(resolver.resolve(LocalOnly(Series(3, 6)))) == "3.6.3"
        assert str(resolver.resolve(LocalOnly(MetaLatest()))) == "3.6.5-rc0"
        assert catalog.calls == 0

    def test_local_exact_missing(self):
        resolver = VersionResolver(FakeCatalog([]), FakeStore(["3.6.3"]))
        with pytest.raises(NotInstalledFailure):
            resolver.resolve(LocalOnly(Exact(Version(3, 6, 4))))

    def test_local_enterprise_must_match(self):
        resolver = VersionResolver(FakeCatalog([]), FakeStore(["3.6.3", "3.6.2-ent"]))
        assert str(resolver.resolve(Series(3, 6, enterprise=True), scope=SCOPE_LOCAL)) == "3.6.2-ent"
        assert str(resolver.resolve(Series(3, 6), scope=SCOPE_LOCAL)) == "3.6.3"

    def test_local_empty_store(self):
        resolver = VersionResolver(FakeCatalog(["3.6.3"]), FakeStore([]))
        with pytest.raises(ResolutionFailure):
            resolver.resolve(LocalOnly(MetaStable()))

    def test_invalid_scope(self, resolver):
        with pytest.raises(ValueError):
            resolver.resolve(MetaLatest(), scope="cloud")
