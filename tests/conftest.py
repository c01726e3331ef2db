"""Testing initialization."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator

import pytest
import structlog


@pytest.fixture(autouse=True)
def fixture_configure_structlog() -> None:
    """Fixture to configure structlog. Currently just silences it entirely."""

    def dummy_processor(
        logger: logging.Logger, name: str, event_dict: structlog.typing.EventDict
    ) -> structlog.typing.EventDict:
        raise structlog.DropEvent

    structlog.configure(processors=[dummy_processor])


class FakeServer:
    """Bare IRC server, recording the lines clients send and sending arbitrary lines back.

    It does not implement any IRC semantics, so that tests can script the
    exact conversation, including invalid or unexpected input.
    """

    def __init__(self) -> None:
        self.received: asyncio.Queue[str] = asyncio.Queue()
        self.writers: list[asyncio.StreamWriter] = []
        self.server: asyncio.Server | None = None
        self.address, self.port = "127.0.0.1", 0

    async def start(self) -> None:
        """Listen on a random free port."""
        self.server = await asyncio.start_server(self._handle, self.address, 0)
        self.address, self.port = self.server.sockets[0].getsockname()[:2]

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.writers.append(writer)
        try:
            while line := await reader.readline():
                await self.received.put(line.decode("utf8").rstrip("\r\n"))
        except ConnectionResetError:
            pass

    def send(self, line: str | bytes) -> None:
        """Send a raw line to all connected clients."""
        bline = line if isinstance(line, bytes) else line.encode("utf8")
        for writer in self.writers:
            writer.write(bline + b"\r\n")

    async def expect(self, count: int = 1, timeout: float = 2) -> list[str]:
        """Return the next count lines received, failing if they do not arrive in time."""
        return [await asyncio.wait_for(self.received.get(), timeout) for _ in range(count)]

    def disconnect(self) -> None:
        """Close all client connections from the server side."""
        for writer in self.writers:
            writer.close()
        self.writers.clear()

    async def stop(self) -> None:
        """Disconnect everyone and stop listening."""
        self.disconnect()
        if self.server:
            self.server.close()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self.server.wait_closed(), 1)


@pytest.fixture(name="fakeserver")
async def fixture_fakeserver() -> AsyncGenerator[FakeServer, None]:
    """Fixture for a running FakeServer."""
    server = FakeServer()
    await server.start()
    yield server
    await server.stop()
