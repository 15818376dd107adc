"""Saved connections, connection lifecycle and reconnects."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from tenacity import AsyncRetrying, RetryError, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_fixed

from remote_contents._client import ContentsClient
from remote_contents._config import ConnectionParams, SessionConfig
from remote_contents._errors import NotConnected, RemoteContentsError, TransportError
from remote_contents._operations import RecursiveOperations

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    import httpx

    from remote_contents._config import ConnectionContext
    from remote_contents._notifier import ChangeNotifier

log = logging.getLogger(__name__)


class SessionManager:
    """Owns the active connection and the tasks that keep it healthy.

    Saved connections live in memory only. While connected with
    ``auto_reconnect`` enabled, a monitor task pings the server every
    ``reconnect_interval_ms``; when the server stops answering it reconnects
    up to ``max_reconnect_attempts`` times before disconnecting.

    :param config: Saved connections and client tuning. Validates immediately.
    :param notifier: Passed to the client; a private one is created if omitted.
    :param transport_factory: Passed to the client.
    :param sleep: Coroutine used for monitor, reconnect and rate-limiter waits.
    :raises ValueError: If config is invalid.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        notifier: ChangeNotifier | None = None,
        transport_factory: Callable[[], httpx.AsyncBaseTransport] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or SessionConfig()
        self._config.validate()
        self._connections: dict[str, ConnectionParams] = dict(self._config.connections)
        self._client = ContentsClient(
            self._config.client, notifier=notifier, transport_factory=transport_factory, sleep=sleep
        )
        self._operations = RecursiveOperations(self._client, sleep=sleep)
        self._sleep = sleep
        self._last_connection: ConnectionParams | None = None
        self._monitor: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"SessionManager(connections={sorted(self._connections)!r}, connected={self.is_connected})"

    async def __aenter__(self) -> SessionManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    @property
    def client(self) -> ContentsClient:
        return self._client

    @property
    def operations(self) -> RecursiveOperations:
        return self._operations

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    @property
    def last_connection(self) -> ConnectionParams | None:
        return self._last_connection

    @property
    def monitoring(self) -> bool:
        return self._monitor is not None and not self._monitor.done()

    # region: saved connections

    @property
    def connections(self) -> dict[str, ConnectionParams]:
        return dict(self._connections)

    def add_connection(self, params: ConnectionParams) -> None:
        """Save ``params`` under ``params.name``, replacing an existing entry.

        :raises ValueError: If the connection has no name or cannot produce a context.
        """
        if not params.name:
            raise ValueError("A saved connection needs a name")
        params.to_context()
        self._connections[params.name] = params

    def remove_connection(self, name: str) -> None:
        """Forget a saved connection.

        :raises KeyError: If no connection with this name exists.
        """
        if name not in self._connections:
            raise KeyError(f"Unknown connection '{name}'. Available connections: {sorted(self._connections)}")
        del self._connections[name]

    # endregion

    # region: lifecycle

    async def connect(self, target: str | ConnectionParams) -> ConnectionContext:
        """Connect to a saved connection (by name) or to explicit parameters.

        Any previous connection, its cache and its rate state are discarded.

        :raises KeyError: If ``target`` names an unknown saved connection.
        :raises ValueError: If the parameters are incomplete.
        """
        if isinstance(target, str):
            if target not in self._connections:
                raise KeyError(f"Unknown connection '{target}'. Available connections: {sorted(self._connections)}")
            params = self._connections[target]
        else:
            params = target
        context = params.to_context()
        await self._cancel_monitor()
        await self._client.connect(context)
        self._last_connection = params
        log.info("Session connected to %s", params.name or context.base_url)
        self.start()
        return context

    async def disconnect(self) -> None:
        """Stop monitoring and drop the connection."""
        await self._cancel_monitor()
        await self._client.disconnect()

    def start(self) -> None:
        """Start the health monitor if connected, enabled and not already running."""
        if not self._client.config.auto_reconnect or not self.is_connected or self.monitoring:
            return
        self._monitor = asyncio.get_running_loop().create_task(self._watch(), name="remote-contents-monitor")

    async def stop(self) -> None:
        """Stop every owned task and disconnect."""
        await self.disconnect()

    async def _cancel_monitor(self) -> None:
        task, self._monitor = self._monitor, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # endregion

    # region: health monitoring

    @property
    def _interval(self) -> float:
        return self._client.config.reconnect_interval_ms / 1000

    async def _watch(self) -> None:
        while self.is_connected:
            await self._sleep(self._interval)
            try:
                await self._client.ping()
            except NotConnected:
                return
            except TransportError as exc:
                log.warning("Health check failed: %s", exc)
                try:
                    if not await self.reconnect():
                        return
                except RemoteContentsError as reconnect_exc:
                    log.warning("Reconnect was rejected by the server: %s", reconnect_exc)
            except RemoteContentsError as exc:
                log.warning("Health check was rejected by the server: %s", exc)

    async def reconnect(self) -> bool:
        """Re-establish the last connection with fresh state.

        :returns: ``True`` once a ping succeeds, ``False`` after all attempts failed
            (the session is then disconnected).
        """
        params = self._last_connection
        if params is None:
            return False
        context = params.to_context()
        attempts = self._client.config.max_reconnect_attempts
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self._interval),
            retry=retry_if_exception_type(TransportError),
            before_sleep=before_sleep_log(log, logging.WARNING),  # type: ignore[arg-type,unused-ignore]
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    log.info("Reconnecting to %s (attempt %d)", context.base_url, attempt.retry_state.attempt_number)
                    await self._client.connect(context)
                    await self._client.ping()
        except RetryError as exc:
            log.error(
                "Giving up on %s after %d reconnect attempts: %s",
                context.base_url,
                attempts,
                exc.last_attempt.exception(),
            )
            await self._client.disconnect()
            return False
        log.info("Reconnected to %s", context.base_url)
        return True

    # endregion
