"""Tests for ValkeyClient with redis-py mocked out."""

from unittest.mock import MagicMock, patch

import pytest

from clients.valkey_client import ValkeyClient


@pytest.fixture
def redis_mock():
    with patch("clients.valkey_client.redis.from_url") as from_url:
        client = MagicMock()
        from_url.return_value = client
        yield from_url, client


class TestValkeyClientInit:
    def test_connects_and_pings(self, redis_mock):
        from_url, client = redis_mock

        ValkeyClient("redis://localhost:6379/0")

        from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)
        client.ping.assert_called_once()


class TestOperations:
    def test_set_with_expiry_uses_setex(self, redis_mock):
        _, client = redis_mock

        ValkeyClient("redis://x").set("k", "v", expire_seconds=30)

        client.setex.assert_called_once_with("k", 30, "v")

    def test_set_without_expiry(self, redis_mock):
        _, client = redis_mock

        ValkeyClient("redis://x").set("k", "v")

        client.set.assert_called_once_with("k", "v")

    def test_delete_reports_existence(self, redis_mock):
        _, client = redis_mock
        client.delete.return_value = 0

        assert ValkeyClient("redis://x").delete("k") is False

    def test_json_round_trip(self, redis_mock):
        _, client = redis_mock
        valkey = ValkeyClient("redis://x")

        valkey.set_json("k", True, expire_seconds=60)

        client.setex.assert_called_once_with("k", 60, "true")
        client.get.return_value = "true"
        assert valkey.get_json("k") is True

    def test_get_json_missing(self, redis_mock):
        _, client = redis_mock
        client.get.return_value = None

        assert ValkeyClient("redis://x").get_json("k") is None

    def test_get_json_invalid(self, redis_mock):
        _, client = redis_mock
        client.get.return_value = "{not json"

        with pytest.raises(ValueError, match="Invalid JSON"):
            ValkeyClient("redis://x").get_json("k")
