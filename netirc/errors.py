"""Exceptions raised by the IRC client."""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations


class IRCError(Exception):
    """Base class for all netirc errors."""


class IRCStateError(IRCError):
    """Exception thrown when an operation is attempted in the wrong connection state."""


class IRCConnectionLost(IRCError, ConnectionError):
    """Exception thrown when the server connection drops while the session is started."""


class ArityError(IRCError, ValueError):
    """Exception thrown when a message variant is built with the wrong number of parameters."""

    def __init__(self, command: str, expected: str, given: int) -> None:
        super().__init__(f"{command}: wrong number of parameters ({given} for {expected})")
        self.command = command
        self.expected = expected
        self.given = given
