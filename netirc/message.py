"""IRC message model.

Every IRC command and numeric reply is represented by the same Message type.
What sets e.g. a PRIVMSG apart from an RPL_TOPIC is its *variant*: a record
from a static table that describes the field layout of the command, so that
``msg.channel`` or ``msg.text`` resolve to the right positional parameter.

Variants are declared with register(), using a compact field notation:
  * ``name``  a required parameter
  * ``name?`` an optional parameter
  * ``*name`` zero or more parameters, collected into a tuple
  * ``+name`` one or more parameters, collected into a tuple
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import dataclasses
import datetime
import enum
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from . import ctcp
from .errors import ArityError

# 14 middle parameters, plus the trailing one
MAX_PARAMS = 15


@dataclasses.dataclass(frozen=True)
class Prefix:
    """The origin of a message: either a server name, or nick[!user][@host]."""

    raw: str

    PREFIX_RE = re.compile(r"^([^!@]+)(?:(?:!([^@]+))?@(.+))?")

    def _group(self, index: int) -> str | None:
        match = self.PREFIX_RE.match(self.raw)
        return match.group(index) if match else None

    @property
    def server(self) -> str:
        return self.raw

    @property
    def nickname(self) -> str | None:
        return self._group(1)

    @property
    def user(self) -> str | None:
        return self._group(2)

    @property
    def host(self) -> str | None:
        return self._group(3)

    def __str__(self) -> str:
        return self.raw


class Arity(enum.Enum):
    """How many parameters a variant field consumes."""

    REQUIRED = ""
    OPTIONAL = "?"
    ANY = "*"
    SOME = "+"


@dataclasses.dataclass(frozen=True)
class Field:
    """A named parameter slot of a variant."""

    name: str
    arity: Arity

    @classmethod
    def from_spec(cls, spec: str) -> Field:
        """Parse the compact field notation, e.g. "keys?" or "*modes"."""
        if spec[0] in "*+":
            return cls(spec[1:], Arity(spec[0]))
        if spec.endswith("?"):
            return cls(spec[:-1], Arity.OPTIONAL)
        return cls(spec, Arity.REQUIRED)

    @property
    def variadic(self) -> bool:
        return self.arity in (Arity.ANY, Arity.SOME)


Accessor = Callable[["Message"], Any]


@dataclasses.dataclass(frozen=True)
class Variant:
    """The field layout of one IRC command or reply."""

    command: str
    fields: tuple[Field, ...]
    reply: bool = False
    ctcp: bool = False
    derived: Mapping[str, Accessor] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        variadic = [f for f in self.fields if f.variadic]
        optional = [f for f in self.fields if f.arity == Arity.OPTIONAL]
        if len(variadic) > 1 or (variadic and optional):
            raise ValueError(f"{self.command}: ambiguous field layout")

    @property
    def name(self) -> str:
        """Return the variant name, e.g. RplWelcome for RPL_WELCOME."""
        return variant_name(self.command)

    @property
    def min_params(self) -> int:
        return sum(1 for f in self.fields if f.arity in (Arity.REQUIRED, Arity.SOME))

    @property
    def max_params(self) -> int:
        if any(f.variadic for f in self.fields):
            return MAX_PARAMS
        return len(self.fields)

    def accepts(self, count: int) -> bool:
        """Return True if a message with count parameters fits this variant."""
        return self.min_params <= count <= self.max_params

    def bind(self, params: Sequence[str]) -> dict[str, Any]:
        """Map each field name to the parameter(s) it covers."""
        for index, field in enumerate(self.fields):
            if field.variadic:
                head, tail = self.fields[:index], self.fields[index + 1 :]
                end = len(params) - len(tail)
                bound = {f.name: params[i] for i, f in enumerate(head)}
                bound[field.name] = tuple(params[len(head) : end])
                bound.update({f.name: params[end + i] for i, f in enumerate(tail)})
                return bound

        return {f.name: params[i] if i < len(params) else None for i, f in enumerate(self.fields)}

    def lookup(self, message: Message, name: str) -> Any:
        """Resolve an accessor on a message of this variant."""
        if name in self.derived:
            return self.derived[name](message)
        bound = self.bind(message.params)
        if name in bound:
            return bound[name]
        if self.reply and name == "text":
            return None
        raise AttributeError(f"{self.name!r} message has no attribute {name!r}")

    def __repr__(self) -> str:
        """Return the representation of the variant, e.g. <Variant RplWelcome>."""
        return f"<{self.__class__.__name__} {self.name}>"


VARIANTS: dict[str, Variant] = {}


def variant_name(command: str) -> str:
    """Title-case an underscore-delimited command, e.g. RPL_WELCOME -> RplWelcome."""
    return "".join(word.capitalize() for word in command.lower().split("_"))


def variant_for(command: str) -> Variant | None:
    """Return the registered variant for a symbolic command, if there is one."""
    return VARIANTS.get(variant_name(command))


def register(
    command: str,
    *fields: str,
    reply: bool = False,
    ctcp: bool = False,
    derived: Mapping[str, Accessor] | None = None,
) -> Variant:
    """Declare the field layout of a command or reply."""
    accessors = dict(derived or {})
    if ctcp:
        accessors.setdefault("raw_text", lambda m: m.bind()["text"])
        accessors.setdefault("text", lambda m: m.extract_ctcp()[0])
        accessors.setdefault("ctcp", lambda m: m.extract_ctcp()[1])

    variant = Variant(command, tuple(Field.from_spec(f) for f in fields), reply, ctcp, accessors)
    VARIANTS[variant.name] = variant
    return variant


@dataclasses.dataclass(frozen=True)
class Message:
    """Represents an RFC 1459/2812 message.

    Can be either initialized:
    * with create(), using a command, params and (optionally) a prefix, which
      picks the variant matching the command
    * given a wire line, using codec.parse()

    Messages built directly with the constructor and no variant are generic:
    they only carry the command and its parameters.
    """

    command: str
    params: tuple[str, ...] = ()
    prefix: Prefix | None = None
    variant: Variant | None = dataclasses.field(default=None, compare=False, repr=False)

    @classmethod
    def create(cls, command: str, *params: Any, prefix: Prefix | str | None = None) -> Message:
        """Build a message, attaching the variant registered for its command.

        Raises ArityError if the command is known but the parameters do not
        fit its field layout.
        """
        if isinstance(prefix, str):
            prefix = Prefix(prefix)
        strparams = tuple(str(p) for p in params)

        variant = variant_for(command)
        if variant is None:
            return cls(command, strparams, prefix)
        if not variant.accepts(len(strparams)):
            if variant.max_params == variant.min_params:
                expected = str(variant.min_params)
            else:
                expected = f"{variant.min_params}..{variant.max_params}"
            raise ArityError(variant.command, expected, len(strparams))
        return cls(variant.command, strparams, prefix, variant)

    def __getattr__(self, name: str) -> Any:
        variant = self.__dict__.get("variant")
        if variant is None or name.startswith("_"):
            raise AttributeError(f"{self.__class__.__name__!r} object has no attribute {name!r}")
        return variant.lookup(self, name)

    def bind(self) -> dict[str, Any]:
        """Return all field values of this message, by name."""
        if self.variant is None:
            return {}
        return self.variant.bind(self.params)

    def extract_ctcp(self) -> tuple[str, tuple[ctcp.CTCP, ...]]:
        """Split the message text into plain text and embedded CTCP requests."""
        return ctcp.extract(self.bind().get("text") or "")

    @property
    def is_reply(self) -> bool:
        return self.variant is not None and self.variant.reply

    @property
    def is_error(self) -> bool:
        return self.command.startswith("ERR_")

    def __str__(self) -> str:
        """Return the message in its wire protocol format."""
        from .codec import to_wire

        return to_wire(self)


def _split(name: str) -> Accessor:
    def accessor(message: Message) -> list[str]:
        value = message.bind()[name]
        return value.split(",") if value else []

    return accessor


def _joined(name: str) -> Accessor:
    return lambda m: " ".join(m.bind()[name])


def _isupport(message: Message) -> dict[str, str | bool]:
    """Parse RPL_ISUPPORT tokens, e.g. CHANTYPES=# or -EXCEPTS."""
    features: dict[str, str | bool] = {}
    for token in message.bind()["tokens"]:
        match = re.match(r"^(-)?([A-Za-z0-9]{1,20})(?:=(.*))?", token)
        if not match:
            continue
        negated, name, value = match.groups()
        features[name] = value if value is not None else negated is None
    return features


def _timestamp(message: Message) -> datetime.datetime | None:
    try:
        return datetime.datetime.fromtimestamp(int(message.bind()["time"]), tz=datetime.timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


# commands
register("JOIN", "channels", "keys?", derived={"channels": _split("channels"), "keys": _split("keys")})
register("MODE", "channel", "*mode_args", derived={"modes": _joined("mode_args")})
register("NICK", "nickname")
register("NOTICE", "target", "text", ctcp=True)
register("PART", "channels", "text?", derived={"channels": _split("channels")})
register("PASS", "password")
register("PING", "server", "target?")
register("PONG", "server", "target?")
register("PRIVMSG", "target", "text", ctcp=True)
register("QUIT", "text?")
register("USER", "user", "mode", "unused", "realname")
register("KICK", "channel", "nickname", "text?")
register("TOPIC", "channel", "text?")
register("INVITE", "nickname", "channel")
register("ERROR", "text")

# 001 <target> :Welcome to the Internet Relay Network <nick>!<user>@<host>
register("RPL_WELCOME", "target", "text", reply=True)
register("RPL_YOURHOST", "target", "text", reply=True)
register("RPL_CREATED", "target", "text", reply=True)
# 004 <target> <servername> <version> <user modes> <channel modes> [<channel modes with a parameter>]
register(
    "RPL_MYINFO",
    "target",
    "servername",
    "version",
    "available_user_modes",
    "available_channel_modes",
    "parameter_channel_modes?",
    reply=True,
)
# 005 <target> <token> [<token> ...] :are supported by this server
register("RPL_ISUPPORT", "target", "+tokens", "text", reply=True, derived={"isupport": _isupport})
register("RPL_STATSCONN", "target", "text", reply=True)
register("RPL_LUSERCLIENT", "target", "text", reply=True)
register("RPL_LUSEROP", "target", "count", "text", reply=True)
register("RPL_LUSERUNKNOWN", "target", "count", "text", reply=True)
register("RPL_LUSERCHANNELS", "target", "count", "text", reply=True)
register("RPL_LUSERME", "target", "text", reply=True)
# 265 <target> [<count> <max>] :Current local users <count>, max <max>
register("RPL_LOCALUSERS", "target", "*words", reply=True, derived={"text": _joined("words")})
register("RPL_GLOBALUSERS", "target", "*words", reply=True, derived={"text": _joined("words")})
register("RPL_TOPIC", "target", "channel", "text", reply=True)
# 333 <target> <channel> <nickname> <time>
register("RPL_TOPICWHOTIME", "target", "channel", "nickname", "time", reply=True, derived={"set_at": _timestamp})
# 353 <target> ( "=" / "*" / "@" ) <channel> :[ "@" / "+" ] <nick> *( " " [ "@" / "+" ] <nick> )
register(
    "RPL_NAMREPLY",
    "target",
    "channel_type",
    "channel",
    "text",
    reply=True,
    derived={"names": lambda m: m.bind()["text"].split()},
)
register("RPL_ENDOFNAMES", "target", "channel", "text", reply=True)
register("RPL_MOTD", "target", "text", reply=True)
register("RPL_MOTDSTART", "target", "text", reply=True)
register("RPL_ENDOFMOTD", "target", "text", reply=True)
register("ERR_NICKNAMEINUSE", "target", "nickname", "text", reply=True)
register("ERR_NEEDREGGEDNICK", "target", "channel", "text", reply=True)
# 900 <target> <nick>!<user>@<host> <account> :You are now logged in as <account>
register("RPL_LOGGEDIN", "target", "mask", "account", "text", reply=True)
register("RPL_LOGGEDOUT", "target", "mask", "text", reply=True)
