"""Immutable data containers for connections and client tuning."""

from __future__ import annotations

import dataclasses
from typing import Any
from urllib.parse import urljoin

_CAMEL_KEYS = {
    "requestDelayMs": "request_delay_ms",
    "minRequestDelayMs": "min_request_delay_ms",
    "maxRequestDelayMs": "max_request_delay_ms",
    "cacheTimeoutMs": "cache_timeout_ms",
    "maxCacheSize": "max_cache_size",
    "cachingEnabled": "caching_enabled",
    "enableCaching": "caching_enabled",
    "requestTimeoutMs": "request_timeout_ms",
    "autoReconnect": "auto_reconnect",
    "reconnectIntervalMs": "reconnect_interval_ms",
    "maxReconnectAttempts": "max_reconnect_attempts",
}

_RANGES = {
    "request_delay_ms": (50, 1000),
    "cache_timeout_ms": (1000, 30000),
    "max_cache_size": (10, 1000),
}


@dataclasses.dataclass(frozen=True)
class ClientConfig:
    """Tuning knobs for rate limiting, caching, timeouts and reconnects.

    :param request_delay_ms: Initial spacing between request starts.
    :param min_request_delay_ms: Floor the spacing recovers towards.
    :param max_request_delay_ms: Ceiling the spacing backs off to.
    :param cache_timeout_ms: Lifetime of a cached GET response.
    :param max_cache_size: Maximum number of cached responses.
    :param caching_enabled: Whether GET responses are cached at all.
    :param request_timeout_ms: Per-request timeout.
    :param auto_reconnect: Whether the session monitors health and reconnects.
    :param reconnect_interval_ms: Delay between health checks and reconnect attempts.
    :param max_reconnect_attempts: Reconnect attempts before giving up.
    """

    request_delay_ms: int = 100
    min_request_delay_ms: int = 50
    max_request_delay_ms: int = 5000
    cache_timeout_ms: int = 5000
    max_cache_size: int = 100
    caching_enabled: bool = True
    request_timeout_ms: int = 30000
    auto_reconnect: bool = True
    reconnect_interval_ms: int = 5000
    max_reconnect_attempts: int = 3

    def validate(self) -> None:
        """Check every value is within its accepted range.

        :raises ValueError: Naming the first offending field.
        """
        for field, (low, high) in _RANGES.items():
            value = getattr(self, field)
            if not low <= value <= high:
                raise ValueError(f"{field} must be between {low} and {high}, got {value}")
        if not 0 < self.min_request_delay_ms <= self.max_request_delay_ms:
            raise ValueError(
                f"min_request_delay_ms must be positive and not exceed max_request_delay_ms "
                f"({self.min_request_delay_ms} > {self.max_request_delay_ms})"
            )
        if self.request_timeout_ms <= 0:
            raise ValueError(f"request_timeout_ms must be positive, got {self.request_timeout_ms}")
        if self.reconnect_interval_ms <= 0:
            raise ValueError(f"reconnect_interval_ms must be positive, got {self.reconnect_interval_ms}")
        if self.max_reconnect_attempts < 1:
            raise ValueError(f"max_reconnect_attempts must be at least 1, got {self.max_reconnect_attempts}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientConfig:
        """Construct from a plain dict with snake_case or camelCase keys.

        :raises TypeError: On unknown keys.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_KEYS.get(key, key)
            if name not in known:
                raise TypeError(f"Unknown client option '{key}'. Known options: {sorted(known)}")
            kwargs[name] = value
        return cls(**kwargs)


@dataclasses.dataclass(frozen=True)
class ConnectionContext:
    """The bound server, token and root for an active session.

    :param base_url: Absolute URL ending in ``/``; the contents API lives under ``api/contents/``.
    :param token: Opaque API token.
    :param root_path: Display path browsing starts from.
    """

    base_url: str
    token: str = dataclasses.field(repr=False)
    root_path: str = "/"

    def __post_init__(self) -> None:
        if not self.base_url.endswith("/"):
            raise ValueError(f"base_url must end with '/': {self.base_url!r}")

    def contents_url(self, api_path: str) -> str:
        return f"{self.base_url}api/contents/{api_path}"


def _clean_remote_path(remote_path: str) -> str:
    cleaned = remote_path.strip()
    if cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned.strip("/")


@dataclasses.dataclass(frozen=True)
class ConnectionParams:
    """Connection parameters as entered by the user.

    :param server_url: Server URL (with or without trailing slash).
    :param token: API token.
    :param remote_path: Optional path prefix on the server, e.g. a JupyterHub
        ``user/<name>`` prefix. It becomes part of the base URL.
    :param name: Display name of the saved connection.
    """

    server_url: str
    token: str = dataclasses.field(repr=False)
    remote_path: str = "/"
    name: str = ""

    def to_context(self) -> ConnectionContext:
        """Derive the ``ConnectionContext`` for these parameters.

        :raises ValueError: If the server URL or token is empty.
        """
        if not self.server_url or not self.server_url.strip():
            raise ValueError("server_url must be a non-empty string")
        if not self.token:
            raise ValueError("token must be a non-empty string")
        base = self.server_url.strip()
        if not base.endswith("/"):
            base += "/"
        prefix = _clean_remote_path(self.remote_path)
        if prefix:
            base = urljoin(base, prefix)
        if not base.endswith("/"):
            base += "/"
        return ConnectionContext(base_url=base, token=self.token, root_path="/")


@dataclasses.dataclass(frozen=True)
class SessionConfig:
    """Saved connections plus client tuning.

    :param connections: Mapping of connection names to parameters.
    :param client: Client tuning shared by every connection.
    """

    connections: dict[str, ConnectionParams] = dataclasses.field(default_factory=dict)
    client: ClientConfig = dataclasses.field(default_factory=ClientConfig)

    def validate(self) -> None:
        """Validate client settings and that every connection has a URL and token.

        :raises ValueError: On the first invalid entry.
        """
        self.client.validate()
        for name, params in self.connections.items():
            if not params.server_url:
                raise ValueError(f"Connection '{name}' has no server_url")
            if not params.token:
                raise ValueError(f"Connection '{name}' has no token")

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> SessionConfig:
        """Construct from a plain dict (e.g. parsed settings JSON).

        :param data: Dict with optional ``connections`` (list or mapping) and ``client`` keys.
        """
        raw_connections = data.get("connections", {})
        raw_client = data.get("client", {})
        if not isinstance(raw_client, dict):
            msg = "Expected 'client' to be a dict"
            raise TypeError(msg)
        if isinstance(raw_connections, list):
            items = [(str(c.get("name", "")), c) for c in raw_connections if isinstance(c, dict)]
            if len(items) != len(raw_connections):
                msg = "Every entry in 'connections' must be a dict"
                raise TypeError(msg)
        elif isinstance(raw_connections, dict):
            items = list(raw_connections.items())
        else:
            msg = "Expected 'connections' to be a list or dict"
            raise TypeError(msg)

        connections: dict[str, ConnectionParams] = {}
        for name, conn in items:
            if not isinstance(conn, dict):
                msg = f"Connection '{name}' must be a dict"
                raise TypeError(msg)
            connections[str(name)] = ConnectionParams(
                server_url=str(conn.get("url", conn.get("server_url", ""))),
                token=str(conn.get("token", "")),
                remote_path=str(conn.get("remotePath", conn.get("remote_path", "/")) or "/"),
                name=str(name),
            )
        return cls(connections=connections, client=ClientConfig.from_dict(raw_client))
