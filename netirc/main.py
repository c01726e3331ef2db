"""Command-line executable component.

Responsible for parsing the command-line arguments and the configuration file,
then connecting to the configured IRC server and logging everything that
happens there. Answers the common CTCP queries and keeps the nickname unique.
Not interactive.

Provides a run() function, used by __main__ or directly.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import asyncio
import configparser
import contextlib
import errno
import logging
import pathlib
import platform
import re
import sys
from collections.abc import Sequence

import structlog

from . import prometheus
from ._version import __version__
from .client import Context, Event, IRCClient
from .ctcp import CTCP, CTCPPing, CTCPTime, CTCPVersion
from .errors import IRCConnectionLost
from .message import Message

logger = structlog.get_logger("netirc.main")


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    """Parse and return the parsed command line arguments."""
    parser = argparse.ArgumentParser(
        prog="netirc",
        description="Simple IRC protocol client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    cfg_dflt = pathlib.Path("netirc.conf")
    if not cfg_dflt.exists():
        cfg_dflt = pathlib.Path("/etc/netirc.conf")
    parser.add_argument("--config-file", "-c", type=pathlib.Path, default=cfg_dflt, help="Path to configuration file")

    log_levels = ("DEBUG", "INFO", "WARNING", "ERROR")
    parser.add_argument("--log-level", choices=log_levels, type=str.upper, help="Log level (overrides config)")
    log_formats = ("plain", "console", "json")
    log_dflt = "console" if sys.stdout.isatty() else "plain"
    parser.add_argument("--log-format", default=log_dflt, choices=log_formats, help="Log format")
    return parser.parse_args(argv)


def configure_logging(log_format: str) -> None:
    """Configure logging parameters."""
    renderer: structlog.typing.Processor
    if log_format == "plain":
        timestamper = None
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    elif log_format == "console":
        timestamper = structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False)
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    elif log_format == "json":
        timestamper = structlog.processors.TimeStamper(fmt="iso")
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        raise ValueError(f"Invalid logging format specified: {log_format}")

    # render using structlog-based formatters within logging, so that stdlib records look the same
    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if timestamper:
        processors.append(timestamper)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[*processors, structlog.stdlib.ExtraAdder()],
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    # default level, only for events emitted before the config is parsed
    root_logger.setLevel(logging.WARN)


def configure_log_levels(override_level: str | int | None, config: configparser.SectionProxy | None = None) -> None:
    """Configure logging levels, using the config file and an override, typically given by a CLI argument."""
    if config:
        for key, level in config.items():
            logging.getLogger(key if key != "root" else None).setLevel(level)

    if override_level:
        logging.getLogger("netirc").setLevel(override_level)


def parse_channels(value: str) -> tuple[dict[str, str], list[str]]:
    """Split a channels option, e.g. "#one, #two:key", in keyed and keyless channels."""
    keyed: dict[str, str] = {}
    keyless: list[str] = []
    for item in (i.strip() for i in value.split(",")):
        if not item:
            continue
        channel, _, key = item.partition(":")
        if key:
            keyed[channel] = key
        else:
            keyless.append(channel)
    return keyed, keyless


def bump_nickname(nickname: str) -> str:
    """Return the next nickname to try, incrementing a trailing number, e.g. nick -> nick1 -> nick2."""
    return re.sub(r"\d*$", lambda m: str(int(m.group() or 0) + 1), nickname, count=1)


class Runner:
    """Reacts to the events of a client session, as configured in the [irc] section."""

    def __init__(self, client: IRCClient, config: configparser.SectionProxy) -> None:
        self.client = client
        self.keyed, self.keyless = parse_channels(config.get("channels", ""))
        default_version = f"netirc {__version__} {platform.system()}"
        self.version_reply = config.get("version_reply", default_version)
        self.log = client.log

    async def join_channels(self) -> None:
        """Join the configured channels; keyed ones first, as JOIN pairs keys with the leading channels."""
        if self.keyed:
            await self.client.join(self.keyed)
        if self.keyless:
            await self.client.join(self.keyless)

    async def handle(self, event: Event) -> None:
        """Handle a single message or CTCP from the stream."""
        if isinstance(event, CTCP):
            await self.handle_ctcp(event)
            return

        if event.command == "RPL_WELCOME":
            self.log.info("Registered", text=event.text)
            await self.join_channels()
        elif event.command == "ERR_NICKNAMEINUSE" and event.variant is not None:
            nickname = bump_nickname(event.nickname)
            self.log.info("Nickname in use, retrying", nickname=event.nickname, new_nickname=nickname)
            await self.client.nick(nickname)
        else:
            self.log_message(event)

    async def handle_ctcp(self, ctcp: CTCP) -> None:
        if ctcp.source is None:
            self.log.info("CTCP without source, ignoring", keyword=ctcp.keyword)
        elif isinstance(ctcp, CTCPVersion):
            await self.client.ctcp_version(ctcp.source, *self.version_reply.split())
        elif isinstance(ctcp, CTCPPing):
            await self.client.ctcp_ping(ctcp.source, ctcp.arg)
        elif isinstance(ctcp, CTCPTime):
            await self.client.ctcp_time(ctcp.source)
        else:
            self.log.info("Unhandled CTCP", keyword=ctcp.keyword, source=ctcp.source, params=ctcp.parameters)

    def log_message(self, message: Message) -> None:
        source = message.prefix.nickname if message.prefix else None
        if message.is_error:
            self.log.warning("Error reply", command=message.command, params=message.params)
        elif message.variant is None:
            self.log.debug("Unhandled message", command=message.command, source=source, params=message.params)
        else:
            self.log.info("Message", command=message.command, source=source, **message.bind())


async def start_client(config: configparser.ConfigParser) -> None:
    """Connect to the server, serve metrics if configured, and process events until disconnected."""
    if "irc" not in config:
        logger.critical('Invalid configuration, missing section "irc"')
        raise SystemExit(-1)
    irc_config = config["irc"]

    client = IRCClient.from_config(irc_config, Context())
    user = irc_config.get("user", "netirc")
    try:
        with contextlib.ExitStack() as stack:
            if "prometheus" in config:
                stack.enter_context(prometheus.serve(config["prometheus"], client.metrics_registry))
            await client.start(
                user,
                irc_config.get("password", ""),
                irc_config.get("realname", user),
                irc_config.get("nickname", user),
            )
            runner = Runner(client, irc_config)
            async for event in client:
                await runner.handle(event)
    except IRCConnectionLost as exc:
        logger.critical(str(exc))
        raise SystemExit(-2) from exc
    except OSError as exc:
        code = errno.errorcode.get(exc.errno, "") if exc.errno else ""
        logger.critical(f"System error: {exc.strerror or exc}", errno=code)
        raise SystemExit(-2) from exc
    finally:
        await client.finish()


def run(argv: Sequence[str] | None = None) -> None:
    """Entry point."""
    options = parse_args(argv)

    configure_logging(options.log_format)
    configure_log_levels(options.log_level or logging.INFO)
    logger.info("Starting netirc", config_file=str(options.config_file), version=__version__)

    config = configparser.ConfigParser(strict=True)
    try:
        with options.config_file.open(encoding="utf-8") as config_fh:
            config.read_file(config_fh)
    except OSError as exc:
        logger.critical(f"Cannot open configuration file: {exc.strerror}", errno=errno.errorcode[exc.errno])
        raise SystemExit(-1) from exc
    except configparser.Error as exc:
        msg = repr(exc).replace("\n", " ")  # configparser exceptions sometimes include newlines
        logger.critical(f"Invalid configuration, {msg}")
        raise SystemExit(-1) from exc

    # now that we've read the config, configure with the levels defined there (but CLI option takes precedence)
    if "loggers" in config:
        configure_log_levels(options.log_level, config["loggers"])

    try:
        asyncio.run(start_client(config))
    except KeyboardInterrupt:
        pass
