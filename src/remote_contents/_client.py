"""Rate-limited, cached access to a remote contents API."""

from __future__ import annotations

import asyncio
import base64
import binascii
import dataclasses
import json
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from remote_contents._cache import ResponseCache, cache_key
from remote_contents._config import ClientConfig
from remote_contents._errors import (
    Conflict,
    DirectoryNotEmpty,
    MalformedResponse,
    NotAFile,
    NotConnected,
    NotFound,
    RemoteContentsError,
    RemoteRejected,
    TransportError,
)
from remote_contents._models import ChangeEvent, ContentsModel, ContentType, EntryStat, RemoteEntry
from remote_contents._notifier import ChangeNotifier, changed_events, created_events, deleted_events
from remote_contents._path import join_child, parent_of, to_api_path, to_display_path, validate_name
from remote_contents._ratelimit import RateLimiter

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable
    from types import TracebackType

    from remote_contents._config import ConnectionContext
    from remote_contents._types import Content

log = logging.getLogger(__name__)


@dataclasses.dataclass
class _Connection:
    """Everything owned by one ConnectionContext; replaced as a unit on reconnect."""

    context: ConnectionContext
    http: httpx.AsyncClient
    limiter: RateLimiter
    cache: ResponseCache


def _server_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()[:500]
    if isinstance(body, dict):
        for field in ("message", "reason"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value
    return response.text.strip()[:500]


def _rejection(response: httpx.Response, path: str) -> RemoteRejected:
    """Map an error response onto the error hierarchy."""
    status = response.status_code
    server_message = _server_message(response)
    message = f"{response.request.method} {path} failed with status {status}"
    if server_message:
        message = f"{message}: {server_message}"
    cls: type[RemoteRejected]
    if status == 404:
        cls = NotFound
    elif status == 409:
        cls = Conflict
    elif "not empty" in server_message.lower():
        cls = DirectoryNotEmpty
    else:
        cls = RemoteRejected
    return cls(message, path=path, status=status, server_message=server_message)


class ContentsClient:
    """Client for a ``/api/contents`` REST service.

    Every request waits for a rate-limiter slot. GET responses are cached and
    concurrent identical GETs share one network call. Mutations invalidate
    affected cache entries and emit change events through the notifier.

    Paths may be given in display form (``"/a/b"``) or API form (``"a/b"``).
    Paths reported in events and errors are in display form.

    :param config: Client tuning; validated immediately.
    :param notifier: Where change events go. A private one is created if omitted.
    :param transport_factory: Builds the httpx transport for each connection (tests inject mocks).
    :param clock: Monotonic clock shared by the rate limiter and cache.
    :param sleep: Coroutine the rate limiter waits with.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        notifier: ChangeNotifier | None = None,
        transport_factory: Callable[[], httpx.AsyncBaseTransport] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or ClientConfig()
        self._config.validate()
        self._notifier = notifier or ChangeNotifier()
        self._transport_factory = transport_factory
        self._clock = clock
        self._sleep = sleep
        self._conn: _Connection | None = None

    def __repr__(self) -> str:
        base = self._conn.context.base_url if self._conn else None
        return f"ContentsClient(base_url={base!r})"

    async def __aenter__(self) -> ContentsClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # region: connection lifecycle

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def context(self) -> ConnectionContext | None:
        return self._conn.context if self._conn else None

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._require().limiter

    @property
    def cache(self) -> ResponseCache:
        return self._require().cache

    def _open(self, context: ConnectionContext) -> _Connection:
        cfg = self._config
        http = httpx.AsyncClient(
            headers={"Authorization": f"token {context.token}"},
            timeout=httpx.Timeout(cfg.request_timeout_ms / 1000),
            transport=self._transport_factory() if self._transport_factory else None,
        )
        limiter = RateLimiter(
            cfg.request_delay_ms,
            min_delay_ms=min(cfg.min_request_delay_ms, cfg.request_delay_ms),
            max_delay_ms=cfg.max_request_delay_ms,
            clock=self._clock,
            sleep=self._sleep,
        )
        cache = ResponseCache(cfg.cache_timeout_ms, cfg.max_cache_size, clock=self._clock)
        return _Connection(context=context, http=http, limiter=limiter, cache=cache)

    async def connect(self, context: ConnectionContext) -> None:
        """Bind to ``context``, replacing any previous connection with fresh limiter and cache state."""
        previous = self._conn
        self._conn = self._open(context)
        log.info("Connected to %s", context.base_url)
        if previous is not None:
            previous.cache.clear()
            await previous.http.aclose()
        self._notifier.refresh()

    async def disconnect(self) -> None:
        """Drop the connection and all state tied to it. A no-op when not connected."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        conn.cache.clear()
        await conn.http.aclose()
        log.info("Disconnected from %s", conn.context.base_url)
        self._notifier.refresh()

    def ensure_connected(self) -> None:
        """Raise ``NotConnected`` unless a connection is active."""
        self._require()

    def _require(self) -> _Connection:
        if self._conn is None:
            raise NotConnected()
        return self._conn

    def configure(self, config: ClientConfig) -> None:
        """Apply new tuning to the live connection.

        Cache limits take effect immediately; disabling caching or shrinking
        the cache below its occupancy clears it. Rate-limiter bounds and the
        request timeout apply from the next connect.
        """
        config.validate()
        self._config = config
        if self._conn is not None:
            self._conn.cache.resize(config.max_cache_size, config.cache_timeout_ms)
            if not config.caching_enabled:
                self._conn.cache.clear()

    def refresh(self) -> None:
        """Forget cached responses and ask observers to re-read the tree."""
        if self._conn is not None:
            self._conn.cache.clear()
        self._notifier.refresh()

    # endregion

    # region: transport

    @staticmethod
    def _url(conn: _Connection, api_path: str, params: dict[str, str] | None = None) -> str:
        url = conn.context.contents_url(quote(api_path, safe="/"))
        if params:
            url = str(httpx.URL(url, params=params))
        return url

    async def _send(
        self,
        conn: _Connection,
        method: str,
        url: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Issue one request and map failures. ``path`` is the display path used in errors."""
        await conn.limiter.await_slot()
        log.debug("%s %s", method, url)
        try:
            response = await conn.http.request(method, url, json=body)
        except httpx.TimeoutException as exc:
            conn.limiter.record_outcome(False, throttled=True)
            raise TransportError(f"{method} {path} timed out", path=path, timeout=True) from exc
        except httpx.RequestError as exc:
            conn.limiter.record_outcome(False, throttled=True)
            raise TransportError(f"{method} {path} failed: {exc}", path=path) from exc
        conn.limiter.record_outcome(response.is_success, throttled=response.status_code == 429)
        if not response.is_success:
            raise _rejection(response, path)
        return response

    @staticmethod
    def _decode(response: httpx.Response, path: str) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise MalformedResponse(f"Response for {path} is not valid JSON", path=path) from None

    async def _get_json(self, path: str, *, params: dict[str, str] | None = None, use_cache: bool = True) -> Any:
        conn = self._require()
        api_path = to_api_path(path)
        display = to_display_path(path)
        url = self._url(conn, api_path, params)
        key = cache_key("GET", url)
        caching = use_cache and self._config.caching_enabled
        if caching:
            cached = conn.cache.get(key)
            if cached is not None:
                return cached

        async def fetch() -> Any:
            response = await self._send(conn, "GET", url, display)
            return self._decode(response, display)

        payload = await conn.cache.dedupe(key, fetch)
        if caching and payload is not None and self._conn is conn:
            conn.cache.put(key, payload)
        return payload

    async def _mutate(self, method: str, path: str, body: dict[str, Any] | None = None) -> httpx.Response:
        conn = self._require()
        return await self._send(conn, method, self._url(conn, to_api_path(path)), to_display_path(path), body=body)

    def _after_mutation(self, paths: Iterable[str], events: list[ChangeEvent]) -> None:
        conn = self._conn
        if conn is not None:
            for path in paths:
                conn.cache.invalidate(path)
                conn.cache.invalidate(parent_of(to_display_path(path)), recursive=False)
        self._notifier.notify(events)

    # endregion

    # region: read operations

    async def list_dir(self, path: str = "/") -> list[RemoteEntry]:
        """List the children of directory ``path``.

        A response without a list-valued ``content`` is logged and treated as
        an empty directory; malformed children are skipped.
        """
        params = None if self._config.caching_enabled else {"t": str(int(time.time() * 1000))}
        payload = await self._get_json(path, params=params)
        display = to_display_path(path)
        content = payload.get("content") if isinstance(payload, dict) else None
        if not isinstance(content, list):
            log.warning("Listing of %s returned no directory content; treating it as empty", display)
            return []
        entries = []
        for item in content:
            try:
                entries.append(ContentsModel.from_payload(item).to_entry())
            except MalformedResponse as exc:
                log.warning("Skipping malformed entry in %s: %s", display, exc)
        return entries

    async def stat(self, path: str) -> EntryStat:
        """Best-effort metadata for ``path``.

        Any failure other than ``NotConnected`` yields ``EntryStat.fallback()``.
        """
        self._require()
        try:
            model = ContentsModel.from_payload(await self._get_json(path, params={"content": "0"}))
        except NotConnected:
            raise
        except RemoteContentsError as exc:
            log.debug("stat(%s) failed, using fallback metadata: %s", to_display_path(path), exc)
            return EntryStat.fallback()
        now = datetime.now(tz=timezone.utc)
        return EntryStat(
            kind=model.kind,
            size=model.size or 0,
            last_modified=model.last_modified or now,
            created_at=model.created or model.last_modified or now,
        )

    async def read(self, path: str) -> str | bytes:
        """Read file content.

        Text and JSON content come back as ``str`` (structured JSON such as
        notebooks is serialized with indentation). Base64 content is decoded
        and returned as ``str`` when it is valid UTF-8, otherwise as ``bytes``.

        :raises NotAFile: If ``path`` is a directory.
        :raises NotFound: If ``path`` does not exist.
        """
        display = to_display_path(path)
        model = ContentsModel.from_payload(await self._get_json(path))
        if model.type is ContentType.DIRECTORY:
            raise NotAFile(f"Cannot read {display}: it is a directory", path=display)
        content = model.content
        if model.format == "base64":
            if not isinstance(content, str):
                raise MalformedResponse(f"base64 content of {display} is not a string", path=display)
            try:
                raw = base64.b64decode(content)
            except (binascii.Error, ValueError):
                raise MalformedResponse(f"Invalid base64 content for {display}", path=display) from None
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError:
                return raw
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        return json.dumps(content, indent=2)

    async def ping(self) -> None:
        """Uncached metadata request for the root; raises if the server is unreachable."""
        await self._get_json("/", params={"content": "0"}, use_cache=False)

    # endregion

    # region: mutations

    async def write(self, path: str, content: Content) -> None:
        """Write text content to ``path``, creating or overwriting it.

        ``bytes`` are decoded as UTF-8 with replacement, so binary data is not
        preserved here; use ``upload`` for binary-safe writes.
        """
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        response = await self._mutate("PUT", path, {"content": content, "type": "file", "format": "text"})
        events = created_events(path) if response.status_code == 201 else changed_events(path)
        self._after_mutation([path], events)

    async def create_file(self, path: str, content: str = "") -> None:
        """Create a text file (empty by default)."""
        await self._mutate("PUT", path, {"content": content, "type": "file", "format": "text"})
        self._after_mutation([path], created_events(path))

    async def upload(self, path: str, data: bytes, *, binary: bool) -> None:
        """Write raw bytes to ``path``; base64-encoded when ``binary`` is set, else UTF-8 text.

        :raises UnicodeDecodeError: If ``binary`` is ``False`` and ``data`` is not UTF-8.
        """
        if binary:
            body = {"content": base64.b64encode(data).decode("ascii"), "type": "file", "format": "base64"}
        else:
            body = {"content": data.decode("utf-8"), "type": "file", "format": "text"}
        response = await self._mutate("PUT", path, body)
        events = created_events(path) if response.status_code == 201 else changed_events(path)
        self._after_mutation([path], events)

    async def create_directory(self, path: str) -> None:
        """Create directory ``path``."""
        await self._mutate("PUT", path, {"type": "directory"})
        self._after_mutation([path], created_events(path))

    async def delete(self, path: str) -> None:
        """Delete a single file or an empty directory.

        :raises NotFound: If ``path`` does not exist.
        :raises DirectoryNotEmpty: If the server refuses because the directory has children.
        """
        await self._mutate("DELETE", path)
        self._after_mutation([path], deleted_events(path))

    async def move(self, old_path: str, new_path: str) -> None:
        """Move or rename ``old_path`` to ``new_path``.

        :raises NotFound: If ``old_path`` does not exist.
        :raises Conflict: If ``new_path`` already exists.
        """
        await self._mutate("PATCH", old_path, {"path": to_api_path(new_path)})
        self._after_mutation([old_path, new_path], deleted_events(old_path) + created_events(new_path))

    async def rename(self, path: str, new_name: str) -> str:
        """Rename ``path`` within its parent directory; returns the new display path."""
        validate_name(new_name)
        new_path = join_child(parent_of(to_display_path(path)), new_name)
        await self.move(path, new_path)
        return new_path

    # endregion
