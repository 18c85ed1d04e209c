"""Tests for the remote version catalog client."""

import json
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests

from src.core.errors import CatalogUnavailable, ResolutionFailure
from src.core.remote_fetcher import CACHE_KEY, MirrorStatus, VersionCatalogClient
from src.core.version_utils import parse_version
from src.utils.retry import RetryHandler

PRIMARY = "https://primary.example.org/dl/src/"
SECONDARY = "https://secondary.example.org/dl/src/"

LISTING = """
<a href="mongodb-src-r3.6.3.tar.gz">mongodb-src-r3.6.3.tar.gz</a>
<a href="mongodb-src-r3.4.10.tar.gz">mongodb-src-r3.4.10.tar.gz</a>
<a href="mongodb-src-r3.7.0-rc1.tar.gz">mongodb-src-r3.7.0-rc1.tar.gz</a>
<a href="mongodb-src-r3.6.3.zip">mongodb-src-r3.6.3.zip</a>
"""


def ok_response(text=LISTING):
    response = MagicMock()
    response.text = text
    response.raise_for_status.return_value = None
    return response


def error_response(status):
    response = MagicMock()
    response.status_code = status
    response.raise_for_status.side_effect = requests.exceptions.HTTPError(
        f"{status} error", response=response
    )
    return response


@pytest.fixture
def catalog_config(config_manager):
    config_manager.set_setting("catalog_mirrors", [PRIMARY, SECONDARY])
    return config_manager


@pytest.fixture
def client(catalog_config):
    return VersionCatalogClient(catalog_config, retry_handler=RetryHandler(max_retries=0))


class TestListVersions:
    def test_fetches_sorted_unique_versions(self, client):
        with patch("src.core.remote_fetcher.requests.get", return_value=ok_response()) as mock_get:
            versions = client.list_versions()

        assert [str(v) for v in versions] == ["3.4.10", "3.6.3", "3.7.0-rc1"]
        mock_get.assert_called_once_with(PRIMARY, timeout=10)

    def test_memory_cache_avoids_second_request(self, client):
        with patch("src.core.remote_fetcher.requests.get", return_value=ok_response()) as mock_get:
            client.list_versions()
            client.list_versions()
        assert mock_get.call_count == 1

    def test_cache_file_is_shared_between_clients(self, catalog_config, client):
        with patch("src.core.remote_fetcher.requests.get", return_value=ok_response()):
            client.list_versions()

        stored = json.loads(catalog_config.CACHE_FILE.read_text(encoding="utf-8"))
        assert stored[CACHE_KEY]["versions"] == ["3.4.10", "3.6.3", "3.7.0-rc1"]

        other = VersionCatalogClient(catalog_config)
        with patch("src.core.remote_fetcher.requests.get") as mock_get:
            versions = other.list_versions()
        mock_get.assert_not_called()
        assert parse_version("3.6.3") in versions

    def test_refresh_bypasses_cache(self, client):
        with patch("src.core.remote_fetcher.requests.get", return_value=ok_response()) as mock_get:
            client.list_versions()
            client.list_versions(use_cache=False)
        assert mock_get.call_count == 2

    def test_expired_cache_is_refetched(self, catalog_config, client):
        old = (datetime.now() - timedelta(hours=2)).isoformat()
        catalog_config.set_cache(CACHE_KEY, {"last_update": old, "versions": ["3.2.0"]})

        with patch("src.core.remote_fetcher.requests.get", return_value=ok_response()) as mock_get:
            versions = client.list_versions()

        mock_get.assert_called_once()
        assert parse_version("3.2.0") not in versions

    def test_falls_back_to_next_mirror(self, client):
        responses = {PRIMARY: error_response(503), SECONDARY: ok_response()}
        with patch("src.core.remote_fetcher.requests.get", side_effect=lambda url, timeout: responses[url]):
            versions = client.list_versions()

        assert len(versions) == 3
        assert client.mirror_status.get_sorted_mirrors([PRIMARY, SECONDARY]) == [SECONDARY, PRIMARY]

    def test_empty_listing_counts_as_failure(self, client):
        responses = {PRIMARY: ok_response("<html>nothing here</html>"), SECONDARY: ok_response()}
        with patch("src.core.remote_fetcher.requests.get", side_effect=lambda url, timeout: responses[url]):
            versions = client.list_versions()

        assert len(versions) == 3
        assert "空版本列表" in client.mirror_status.get_failure_summary()

    def test_stale_cache_used_when_all_mirrors_fail(self, catalog_config, client):
        old = (datetime.now() - timedelta(days=3)).isoformat()
        catalog_config.set_cache(CACHE_KEY, {"last_update": old, "versions": ["3.2.0", "bogus"]})

        with patch(
            "src.core.remote_fetcher.requests.get",
            side_effect=requests.exceptions.ConnectionError("offline"),
        ):
            versions = client.list_versions()

        assert versions == [parse_version("3.2.0")]

    def test_unavailable_without_cache(self, client):
        with patch(
            "src.core.remote_fetcher.requests.get",
            side_effect=requests.exceptions.ConnectionError("offline"),
        ):
            with pytest.raises(CatalogUnavailable) as excinfo:
                client.list_versions()

        assert isinstance(excinfo.value, ResolutionFailure)
        assert "offline" in str(excinfo.value)


class TestMirrorStatus:
    def test_unknown_mirrors_keep_configured_order(self):
        status = MirrorStatus()
        assert status.get_sorted_mirrors(["a", "b", "c"]) == ["a", "b", "c"]

    def test_successful_mirror_first_and_failing_last(self):
        status = MirrorStatus()
        status.record_failure("a", "timeout")
        status.record_failure("a", "timeout")
        status.record_success("c")
        assert status.get_sorted_mirrors(["a", "b", "c"]) == ["c", "b", "a"]

    def test_failure_summary(self):
        status = MirrorStatus()
        assert status.get_failure_summary() == "无失败记录"
        status.record_failure("a", "timeout")
        assert status.get_failure_summary() == "a: timeout (连续失败 1 次)"

    def test_most_recent_success_first(self):
        clock = iter([100.0, 200.0])
        status = MirrorStatus(clock=lambda: next(clock))
        status.record_success("a")
        status.record_success("b")
        assert status.get_sorted_mirrors(["a", "b"]) == ["b", "a"]

    def test_recovery_resets_failure_count(self):
        status = MirrorStatus(clock=lambda: 1.0)
        status.record_failure("a", "timeout")
        status.record_success("a")
        assert status.health("a").consecutive_failures == 0
        assert status.get_failure_summary() == "无失败记录"

    def test_success_then_failure_ranks_behind_untried(self):
        status = MirrorStatus(clock=lambda: 1.0)
        status.record_success("a")
        status.record_failure("a", "503")
        assert status.get_sorted_mirrors(["a", "b"]) == ["b", "a"]
