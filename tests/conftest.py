"""Shared test fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import pytest_asyncio

from remote_contents._client import ContentsClient
from remote_contents._config import ClientConfig, ConnectionContext
from remote_contents._notifier import ChangeNotifier
from tests.contents_server import ContentsServer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from remote_contents._models import ChangeEvent

BASE_URL = "http://jupyter.test/user/alice/"
TOKEN = "secret-token"


async def no_sleep(seconds: float) -> None:
    """Stand-in for ``asyncio.sleep`` that returns immediately."""


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def server() -> ContentsServer:
    return ContentsServer()


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def events(notifier: ChangeNotifier) -> list[ChangeEvent]:
    received: list[ChangeEvent] = []
    notifier.subscribe(received.extend)
    return received


@pytest.fixture
def context() -> ConnectionContext:
    return ConnectionContext(base_url=BASE_URL, token=TOKEN)


@pytest_asyncio.fixture
async def client(
    server: ContentsServer, notifier: ChangeNotifier, context: ConnectionContext
) -> AsyncIterator[ContentsClient]:
    c = ContentsClient(ClientConfig(), notifier=notifier, transport_factory=server.transport, sleep=no_sleep)
    await c.connect(context)
    yield c
    await c.disconnect()
