"""IRC client connection.

Manages the lifecycle of a connection to an IRC server: registration (PASS,
NICK, USER), the stream of incoming messages and CTCP requests, and the final
QUIT. PING requests from the server are answered internally.

The stream is meant to be consumed by a single task; outbound messages can be
sent from any task, as writes are serialized with a lock.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import configparser
import contextlib
import dataclasses
import datetime
from collections.abc import AsyncGenerator, AsyncIterator, Iterable, Mapping
from typing import Any, Union

import prometheus_client
import structlog

from . import codec
from .ctcp import CTCP, CTCPPing, CTCPTime, CTCPVersion
from .ctcp import make as make_ctcp
from .errors import IRCConnectionLost, IRCStateError
from .message import Message
from .numerics import NumericRegistry, default_registry
from .prometheus import client_metrics

PORT_DEFAULT = 6667

USER_MODE_DEFAULT = 0
USER_MODE_RECEIVE_WALLOPS = 4
USER_MODE_INVISIBLE = 8

Event = Union[Message, CTCP]


@dataclasses.dataclass
class Context:
    """Collaborators shared by a client and its codec.

    Built once at startup and passed explicitly, instead of relying on
    process-wide state.
    """

    numerics: NumericRegistry = dataclasses.field(default_factory=default_registry)
    log: Any = dataclasses.field(default_factory=lambda: structlog.get_logger("netirc.client"))
    encoding: str = "utf-8"


class IRCClient:
    """A client connection to a single IRC server.

    Use start()/finish() explicitly, or the session() context manager, which
    guarantees that the connection is torn down.
    """

    def __init__(self, address: str, port: int | None = None, context: Context | None = None) -> None:
        self.address = address
        self.port = port or PORT_DEFAULT
        self.context = context or Context()
        self.log = self.context.log.bind(address=self.address, port=self.port)

        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self._started = False
        self._handshaking = False
        self._lock = asyncio.Lock()

        # set up a few Prometheus metrics
        self.metrics_registry = prometheus_client.CollectorRegistry()
        self.metrics = client_metrics(self.metrics_registry, lambda: self._started)

    @classmethod
    def from_config(cls, config: configparser.SectionProxy, context: Context | None = None) -> IRCClient:
        """Create a client for the server given in a configuration section."""
        return cls(config.get("address", "localhost"), config.getint("port", fallback=PORT_DEFAULT), context)

    @property
    def started(self) -> bool:
        """Return True if the session has been registered and not finished yet."""
        return self._started

    async def start(
        self, user: str, password: str | None = "", realname: str | None = None, nickname: str | None = None
    ) -> IRCClient:
        """Connect to the server and register.

        Sends PASS (if a password is given), NICK and USER. If anything fails,
        the connection is closed and the exception propagated.
        """
        if self._started or self._handshaking:
            raise IRCStateError("IRC session already started")

        self._handshaking = True
        try:
            async with self._lock:
                try:
                    self.reader, self.writer = await asyncio.open_connection(self.address, self.port)
                    self.log.info("Connected to server")
                    if password:
                        await self._write(Message.create("PASS", password))
                    await self._write(Message.create("NICK", nickname or user))
                    await self._write(Message.create("USER", user, USER_MODE_DEFAULT, "*", realname or user))
                    self._started = True
                finally:
                    if not self._started:
                        self.metrics["errors"].labels("connect").inc()
                        await self._close()
        finally:
            self._handshaking = False
        return self

    async def finish(self, text: str | None = None) -> None:
        """Send QUIT (if the session is started) and close the connection.

        Safe to call more than once, and from a task other than the reader.
        """
        async with self._lock:
            try:
                if self._started:
                    await self._write(Message.create("QUIT", *(p for p in (text,) if p)))
            except (OSError, IRCStateError) as exc:
                self.log.debug("Unable to send QUIT", error=str(exc))
            finally:
                self._started = False
                await self._close()

    async def _close(self) -> None:
        writer, self.reader, self.writer = self.writer, None, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as exc:
            self.log.debug("Unknown error in close", error=str(exc))
        self.log.info("Disconnected from server")

    def messages(self) -> AsyncIterator[Event]:
        """Return the stream of incoming messages and CTCP requests.

        PINGs are answered and not part of the stream. CTCPs are yielded
        before the message carrying them. A PRIVMSG or NOTICE is skipped if its
        text is empty once the CTCPs are removed, even if it had none.
        """
        if not self._started or self.reader is None:
            raise IRCStateError("IRC session not yet started")
        return self._stream(self.reader)

    def __aiter__(self) -> AsyncIterator[Event]:
        return self.messages()

    async def _stream(self, reader: asyncio.StreamReader) -> AsyncGenerator[Event, None]:
        while True:
            try:
                bline = await reader.readline()
            except ValueError:
                self.metrics["errors"].labels("overlong").inc()
                self.log.debug("Line exceeded max length, ignoring")
                continue
            except OSError as exc:
                if self._started:
                    self.metrics["errors"].labels("disconnect").inc()
                    raise IRCConnectionLost(f"Connection to {self.address} lost: {exc}") from exc
                return

            if not bline:
                if self._started:
                    self.metrics["errors"].labels("disconnect").inc()
                    raise IRCConnectionLost(f"Connection to {self.address} closed by server")
                return

            line = self._decode(bline.rstrip(b"\r\n"))
            if not line:
                continue
            self.log.debug("Data received", message=line)

            try:
                message = codec.parse(line, self.context.numerics, self.log)
            except ValueError:
                self.metrics["errors"].labels("parsing").inc()
                self.log.info("Unparseable message, ignoring", message=line)
                continue
            self.metrics["received"].inc()

            if message.command == "PING":
                await self._handle_ping(message)
                continue

            for event in self._filter(message):
                yield event

    def _decode(self, bline: bytes) -> str:
        try:
            return bline.decode(self.context.encoding)
        except UnicodeDecodeError:
            # legacy clients still send latin-1; this never fails
            return bline.decode("latin-1")

    async def _handle_ping(self, message: Message) -> None:
        if not message.params:
            self.log.debug("PING without origin, ignoring")
            return
        async with self._lock:
            # finish() may have run while waiting for the lock
            if not self._started:
                return
            self.metrics["pings"].inc()
            await self._write(Message.create("PONG", message.params[0]))

    def _filter(self, message: Message) -> Iterable[Event]:
        """Split a message in the CTCPs it carries, followed by the message itself."""
        if message.variant is None or not message.variant.ctcp:
            return [message]

        text, ctcps = message.extract_ctcp()
        source = message.prefix.nickname if message.prefix else None
        events: list[Event] = [c.annotate(source, message.target) for c in ctcps]
        self.metrics["ctcp"].inc(len(ctcps))
        if text:
            events.append(message)
        return events

    async def send(self, message: Message) -> None:
        """Send a message to the server."""
        if not self._started:
            raise IRCStateError("IRC session not yet started")
        await self._send(message)

    async def _send(self, message: Message) -> None:
        async with self._lock:
            await self._write(message)

    async def _write(self, message: Message) -> None:
        """Write a message; the caller must hold the write lock."""
        if self.writer is None or self.writer.is_closing():
            raise IRCStateError("IRC connection is closed")
        line = codec.to_wire(message, self.context.numerics)
        self.log.debug("Data sent", message=line)
        self.writer.write(line.encode(self.context.encoding) + b"\r\n")
        await self.writer.drain()
        self.metrics["sent"].inc()

    async def join(self, channels: Mapping[str, str] | Iterable[str] | str | None = None) -> None:
        """Join channels.

        Without channels, leave all channels (JOIN 0). A mapping gives the key
        of each channel; a list or a single name joins channels without keys.
        """
        if channels is None:
            message = Message.create("JOIN", "0")
        elif isinstance(channels, Mapping):
            message = Message.create("JOIN", ",".join(channels.keys()), ",".join(channels.values()))
        elif isinstance(channels, str):
            message = Message.create("JOIN", channels)
        else:
            message = Message.create("JOIN", ",".join(channels))
        await self.send(message)

    async def part(self, channels: Iterable[str] | str, text: str | None = None) -> None:
        """Leave channels, with an optional parting message."""
        if not isinstance(channels, str):
            channels = ",".join(channels)
        params = (channels, text) if text else (channels,)
        await self.send(Message.create("PART", *params))

    async def nick(self, nickname: str) -> None:
        await self.send(Message.create("NICK", nickname))

    async def notice(self, target: str, text: str) -> None:
        await self.send(Message.create("NOTICE", target, text))

    async def privmsg(self, target: str, text: str) -> None:
        await self.send(Message.create("PRIVMSG", target, text))

    async def password(self, password: str) -> None:
        await self.send(Message.create("PASS", password))

    async def user(self, user: str, realname: str, mode: int | None = None) -> None:
        await self.send(Message.create("USER", user, mode or USER_MODE_DEFAULT, "*", realname))

    async def pong(self, server: str, target: str | None = None) -> None:
        params = (server, target) if target else (server,)
        await self.send(Message.create("PONG", *params))

    async def quit(self, text: str | None = None) -> None:
        """Send a QUIT. Prefer finish(), which also closes the connection."""
        await self.send(Message.create("QUIT", *(p for p in (text,) if p)))

    async def ctcp(self, target: str, ctcp: CTCP | str) -> None:
        """Send a CTCP request, wrapped in a PRIVMSG."""
        if isinstance(ctcp, str):
            words = ctcp.split()
            if not words:
                raise ValueError("Empty CTCP request")
            ctcp = make_ctcp(*words)
        await self.privmsg(target, str(ctcp))

    async def ctcp_version(self, target: str, *parameters: str) -> None:
        """Send a CTCP VERSION reply, wrapped in a NOTICE."""
        await self.notice(target, str(CTCPVersion.build(*parameters)))

    async def ctcp_ping(self, target: str, arg: str | None = None) -> None:
        """Send a CTCP PING reply, echoing the argument of the request."""
        await self.notice(target, str(CTCPPing.build(arg)))

    async def ctcp_time(self, target: str, time: datetime.datetime | None = None) -> None:
        """Send a CTCP TIME reply, by default with the current local time."""
        time = time or datetime.datetime.now().astimezone()
        await self.notice(target, str(CTCPTime.build(time.strftime("%a, %d %b %Y %H:%M %z"))))

    def __repr__(self) -> str:
        """Return a user-readable description of the client."""
        state = "started" if self._started else "not started"
        return f"<{self.__class__.__name__} {self.address}:{self.port} ({state})>"


async def connect(
    address: str,
    port: int | None = None,
    user: str = "netirc",
    password: str | None = "",
    realname: str | None = None,
    context: Context | None = None,
) -> IRCClient:
    """Connect and register to a server, returning the started client."""
    client = IRCClient(address, port, context)
    return await client.start(user, password, realname)


@contextlib.asynccontextmanager
async def session(
    address: str,
    port: int | None = None,
    user: str = "netirc",
    password: str | None = "",
    realname: str | None = None,
    context: Context | None = None,
) -> AsyncGenerator[IRCClient, None]:
    """Run a block with a started client, finishing it on every exit path."""
    client = await connect(address, port, user, password, realname, context)
    try:
        yield client
    finally:
        await client.finish()
