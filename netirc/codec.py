"""IRC line codec.

Converts between wire protocol lines (without their CR-LF terminator) and
Message instances:

    [":" prefix " "] command *(" " middle) [" :" trailing]
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import re
from typing import Any

import structlog

from .errors import ArityError
from .message import MAX_PARAMS, Message, Prefix, variant_for
from .numerics import NumericRegistry, default_registry

logger = structlog.get_logger("netirc.codec")

PREFIX_RE = re.compile(r":([^ ]+) ")
COMMAND_RE = re.compile(r"[A-Za-z]+|\d{3}")
MIDDLE_RE = re.compile(r" ([^ :][^ ]*)")
TRAILING_RE = re.compile(r" :(.*)", re.DOTALL)

# characters that can never appear in a parameter, as they would end the line
FORBIDDEN_CHARS = ("\r", "\n", "\0")


def parse(line: str, numerics: NumericRegistry | None = None, log: Any = None) -> Message:
    """Parse a wire protocol line into a Message.

    Numeric commands are resolved to their symbolic name using the given
    registry (or the default one). Commands with a registered variant build
    that variant; if the parameters do not fit its layout, a generic message
    is returned instead.
    """
    log = log or logger
    pos = 0

    prefix = None
    match = PREFIX_RE.match(line, pos)
    if match:
        prefix = Prefix(match.group(1))
        pos = match.end()

    match = COMMAND_RE.match(line, pos)
    if not match:
        raise ValueError("Invalid IRC message (no command specified)")
    command = match.group()
    pos = match.end()

    params = []
    for _ in range(MAX_PARAMS - 1):
        match = MIDDLE_RE.match(line, pos)
        if not match:
            break
        params.append(match.group(1))
        pos = match.end()

    match = TRAILING_RE.match(line, pos)
    if match:
        params.append(match.group(1))

    name: str | None = command
    if command.isdigit():
        code = int(command)
        name = (numerics or default_registry()).resolve(code) if code > 0 else None

    # unknown numerics keep their digits, and are never dispatched to a variant
    if name is None or variant_for(name) is None:
        return Message(name or command, tuple(params), prefix)

    try:
        return Message.create(name, *params, prefix=prefix)
    except ArityError as exc:
        log.debug("Parameters do not match command layout", command=name, params=params, error=str(exc))
        return Message(name, tuple(params), prefix)


def to_wire(message: Message, numerics: NumericRegistry | None = None) -> str:
    """Generate an RFC-compliant formatted string for a message.

    Symbolic reply names, e.g. RPL_WELCOME, are sent as their numeric, using
    the given registry (or the default one).

    The last parameter is introduced by a colon if it is empty, contains a
    space or starts with a colon; any other parameter doing so is an error.
    """
    components = []

    if message.prefix:
        components.append(":" + str(message.prefix))

    command = message.command
    if not COMMAND_RE.fullmatch(command):
        code = (numerics or default_registry()).code(command)
        if code is None:
            raise ValueError(f"Invalid IRC command: {command!r}")
        command = f"{code:03d}"
    components.append(command)

    params = [str(arg) for arg in message.params]
    for arg in params:
        if any(char in arg for char in FORBIDDEN_CHARS):
            raise ValueError(f"Invalid IRC parameter (line break or NUL): {arg!r}")

    if params:
        *middle, last = params
        for arg in middle:
            if not arg or " " in arg or arg[0] == ":":
                raise ValueError(f"Invalid IRC parameter (only the last one may be empty or have spaces): {arg!r}")
        components.extend(middle)

        if last and " " not in last and last[0] != ":":
            components.append(last)
        else:
            components.append(":" + last)

    return " ".join(components)
