"""Tests for configuration containers."""

from __future__ import annotations

import dataclasses

import pytest

from remote_contents._config import ClientConfig, ConnectionContext, ConnectionParams, SessionConfig


class TestClientConfig:
    def test_defaults(self) -> None:
        cfg = ClientConfig()
        assert cfg.request_delay_ms == 100
        assert cfg.cache_timeout_ms == 5000
        assert cfg.max_cache_size == 100
        assert cfg.caching_enabled is True
        assert cfg.auto_reconnect is True
        assert cfg.reconnect_interval_ms == 5000
        assert cfg.max_reconnect_attempts == 3
        cfg.validate()

    def test_immutable(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            ClientConfig().max_cache_size = 5  # type: ignore[misc]

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("request_delay_ms", 10),
            ("request_delay_ms", 2000),
            ("cache_timeout_ms", 500),
            ("cache_timeout_ms", 60000),
            ("max_cache_size", 5),
            ("max_cache_size", 5000),
        ],
    )
    def test_out_of_range_rejected(self, field: str, value: int) -> None:
        with pytest.raises(ValueError, match=field):
            ClientConfig(**{field: value}).validate()

    def test_delay_bounds_must_be_ordered(self) -> None:
        with pytest.raises(ValueError, match="min_request_delay_ms"):
            ClientConfig(min_request_delay_ms=3000, max_request_delay_ms=2000).validate()

    def test_reconnect_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="max_reconnect_attempts"):
            ClientConfig(max_reconnect_attempts=0).validate()

    def test_from_dict_camel_case(self) -> None:
        cfg = ClientConfig.from_dict({"requestDelayMs": 200, "enableCaching": False, "maxCacheSize": 50})
        assert cfg.request_delay_ms == 200
        assert cfg.caching_enabled is False
        assert cfg.max_cache_size == 50

    def test_from_dict_snake_case(self) -> None:
        assert ClientConfig.from_dict({"cache_timeout_ms": 2000}).cache_timeout_ms == 2000

    def test_from_dict_unknown_key(self) -> None:
        with pytest.raises(TypeError, match="Unknown client option"):
            ClientConfig.from_dict({"colour": "blue"})


class TestConnectionParams:
    def test_trailing_slash_added(self) -> None:
        ctx = ConnectionParams("http://host:8888", "tok").to_context()
        assert ctx.base_url == "http://host:8888/"
        assert ctx.root_path == "/"

    def test_remote_path_joined_into_base_url(self) -> None:
        ctx = ConnectionParams("http://hub.example.org/", "tok", remote_path="/user/alice/").to_context()
        assert ctx.base_url == "http://hub.example.org/user/alice/"

    def test_dot_slash_prefix_removed(self) -> None:
        ctx = ConnectionParams("http://hub.example.org", "tok", remote_path="./user/bob").to_context()
        assert ctx.base_url == "http://hub.example.org/user/bob/"

    def test_root_remote_path_is_ignored(self) -> None:
        ctx = ConnectionParams("http://host/", "tok", remote_path="/").to_context()
        assert ctx.base_url == "http://host/"

    def test_empty_url_rejected(self) -> None:
        with pytest.raises(ValueError, match="server_url"):
            ConnectionParams("  ", "tok").to_context()

    def test_empty_token_rejected(self) -> None:
        with pytest.raises(ValueError, match="token"):
            ConnectionParams("http://host", "").to_context()

    def test_token_hidden_from_repr(self) -> None:
        assert "s3cret" not in repr(ConnectionParams("http://host", "s3cret"))


class TestConnectionContext:
    def test_base_url_must_end_with_slash(self) -> None:
        with pytest.raises(ValueError):
            ConnectionContext(base_url="http://host", token="t")

    def test_contents_url(self) -> None:
        ctx = ConnectionContext(base_url="http://host/", token="t")
        assert ctx.contents_url("a/b.txt") == "http://host/api/contents/a/b.txt"

    def test_token_hidden_from_repr(self) -> None:
        assert "s3cret" not in repr(ConnectionContext(base_url="http://host/", token="s3cret"))


class TestSessionConfig:
    def test_from_dict_with_connection_list(self) -> None:
        cfg = SessionConfig.from_dict(
            {
                "connections": [
                    {"name": "lab", "url": "http://lab:8888", "token": "t1", "remotePath": "/"},
                    {"name": "hub", "url": "http://hub", "token": "t2", "remotePath": "user/me"},
                ],
                "client": {"requestDelayMs": 150},
            }
        )
        assert sorted(cfg.connections) == ["hub", "lab"]
        assert cfg.connections["hub"].remote_path == "user/me"
        assert cfg.client.request_delay_ms == 150
        cfg.validate()

    def test_from_dict_with_mapping(self) -> None:
        cfg = SessionConfig.from_dict({"connections": {"lab": {"server_url": "http://lab", "token": "t"}}})
        assert cfg.connections["lab"].name == "lab"
        assert cfg.connections["lab"].server_url == "http://lab"

    def test_from_dict_empty(self) -> None:
        cfg = SessionConfig.from_dict({})
        assert cfg.connections == {}
        assert cfg.client == ClientConfig()

    def test_from_dict_bad_shapes(self) -> None:
        with pytest.raises(TypeError):
            SessionConfig.from_dict({"connections": "lab"})
        with pytest.raises(TypeError):
            SessionConfig.from_dict({"client": []})
        with pytest.raises(TypeError):
            SessionConfig.from_dict({"connections": ["lab"]})

    def test_validate_missing_token(self) -> None:
        cfg = SessionConfig(connections={"lab": ConnectionParams("http://lab", "")})
        with pytest.raises(ValueError, match="no token"):
            cfg.validate()

    def test_validate_checks_client(self) -> None:
        with pytest.raises(ValueError):
            SessionConfig(client=ClientConfig(max_cache_size=1)).validate()
