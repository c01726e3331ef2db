"""CTCP (Client-To-Client Protocol) support.

CTCP requests and replies travel inside the text of PRIVMSG and NOTICE
messages, each one delimited by a pair of \\x01 bytes, e.g.
"\\x01ACTION waves\\x01". A single text may carry several of them, mixed with
plain text.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import dataclasses
import re
from typing import ClassVar, TypeVar

from .errors import ArityError

DELIMITER = "\x01"
CTCP_RE = re.compile(r"\x01(.*?)\x01", re.DOTALL)

T = TypeVar("T", bound="CTCP")


@dataclasses.dataclass(frozen=True)
class CTCP:
    """A CTCP request or reply.

    source and target are only known once the CTCP has been extracted from a
    message, and are filled in by annotate().
    """

    keyword: str
    parameters: tuple[str, ...] = ()
    source: str | None = dataclasses.field(default=None, compare=False)
    target: str | None = dataclasses.field(default=None, compare=False)

    KEYWORD: ClassVar[str] = ""
    MIN_PARAMS: ClassVar[int] = 0
    MAX_PARAMS: ClassVar[int | None] = None

    @classmethod
    def build(cls: type[T], *parameters: str | None) -> T:
        """Build a CTCP of this keyword; None parameters are left out."""
        params = tuple(str(p) for p in parameters if p is not None)
        if len(params) < cls.MIN_PARAMS or (cls.MAX_PARAMS is not None and len(params) > cls.MAX_PARAMS):
            expected = f"{cls.MIN_PARAMS}..{cls.MAX_PARAMS if cls.MAX_PARAMS is not None else 'n'}"
            raise ArityError(cls.KEYWORD, expected, len(params))
        return cls(cls.KEYWORD, params)

    def annotate(self: T, source: str | None, target: str | None) -> T:
        """Return a copy of this CTCP, tagged with the sender and recipient of its message."""
        return dataclasses.replace(self, source=source, target=target)

    def __str__(self) -> str:
        """Return the CTCP in its quoted, inline format."""
        return to_wire(self)


@dataclasses.dataclass(frozen=True)
class CTCPVersion(CTCP):
    KEYWORD = "VERSION"


@dataclasses.dataclass(frozen=True)
class CTCPPing(CTCP):
    KEYWORD = "PING"

    @property
    def arg(self) -> str | None:
        return " ".join(self.parameters) or None


@dataclasses.dataclass(frozen=True)
class CTCPClientinfo(CTCP):
    KEYWORD = "CLIENTINFO"

    @property
    def keywords(self) -> tuple[str, ...]:
        return self.parameters


@dataclasses.dataclass(frozen=True)
class CTCPAction(CTCP):
    KEYWORD = "ACTION"

    @property
    def text(self) -> str:
        return " ".join(self.parameters)


@dataclasses.dataclass(frozen=True)
class CTCPFinger(CTCP):
    KEYWORD = "FINGER"

    @property
    def text(self) -> str | None:
        return " ".join(self.parameters) or None


@dataclasses.dataclass(frozen=True)
class CTCPTime(CTCP):
    KEYWORD = "TIME"

    @property
    def time(self) -> str:
        return " ".join(self.parameters)


@dataclasses.dataclass(frozen=True)
class CTCPDcc(CTCP):
    """DCC offer: DCC <type> <argument> <address> <port> [<args> ...]."""

    KEYWORD = "DCC"
    MIN_PARAMS = 4

    @property
    def type(self) -> str:
        return self.parameters[0]

    @property
    def protocol(self) -> str:
        return self.parameters[1]

    @property
    def address(self) -> str:
        return self.parameters[2]

    @property
    def port(self) -> str:
        return self.parameters[3]

    @property
    def arguments(self) -> tuple[str, ...]:
        return self.parameters[4:]


@dataclasses.dataclass(frozen=True)
class CTCPErrmsg(CTCP):
    KEYWORD = "ERRMSG"
    MIN_PARAMS = 1

    @property
    def query(self) -> str:
        return self.parameters[0]

    @property
    def text(self) -> str | None:
        return " ".join(self.parameters[1:]) or None


@dataclasses.dataclass(frozen=True)
class CTCPPlay(CTCP):
    KEYWORD = "PLAY"
    MIN_PARAMS = MAX_PARAMS = 2

    @property
    def filename(self) -> str:
        return self.parameters[0]

    @property
    def mime_type(self) -> str:
        return self.parameters[1]


KEYWORDS: dict[str, type[CTCP]] = {
    cls.KEYWORD: cls
    for cls in (CTCPVersion, CTCPPing, CTCPClientinfo, CTCPAction, CTCPFinger, CTCPTime, CTCPDcc, CTCPErrmsg, CTCPPlay)
}


def make(keyword: str, *parameters: str) -> CTCP:
    """Build the CTCP variant matching keyword, or a generic CTCP if it is unknown or malformed."""
    cls = KEYWORDS.get(keyword)
    if cls is not None:
        try:
            return cls.build(*parameters)
        except ArityError:
            pass
    return CTCP(keyword, tuple(parameters))


def extract(text: str) -> tuple[str, tuple[CTCP, ...]]:
    """Split text into the plain text left over, and the CTCPs embedded in it.

    Every delimited region is removed from the text, even empty ones; only
    regions with a keyword produce a CTCP.
    """
    found = []
    for payload in CTCP_RE.findall(text):
        words = payload.split()
        if words:
            found.append(make(*words))
    return CTCP_RE.sub("", text), tuple(found)


def to_wire(ctcp: CTCP) -> str:
    """Quote a CTCP for inclusion in a PRIVMSG or NOTICE text."""
    return DELIMITER + ctcp.keyword + "".join(" " + p for p in ctcp.parameters) + DELIMITER
