"""Test the Message model, its variants and the Prefix class."""

from __future__ import annotations

import datetime

import pytest

from netirc import codec
from netirc.ctcp import CTCPAction
from netirc.errors import ArityError
from netirc.message import VARIANTS, Arity, Field, Message, Prefix, Variant, register, variant_for, variant_name


@pytest.mark.parametrize(
    ("raw", "nickname", "user", "host"),
    [
        ("nick!user@host.example.org", "nick", "user", "host.example.org"),
        ("nick@host.example.org", "nick", None, "host.example.org"),
        ("irc.example.org", "irc.example.org", None, None),
    ],
)
def test_prefix(raw: str, nickname: str, user: str | None, host: str | None) -> None:
    """Test the decomposition of a prefix."""
    prefix = Prefix(raw)
    assert prefix.server == raw
    assert str(prefix) == raw
    assert prefix.nickname == nickname
    assert prefix.user == user
    assert prefix.host == host


def test_field_notation() -> None:
    """Test the compact field notation used by register()."""
    assert Field.from_spec("text") == Field("text", Arity.REQUIRED)
    assert Field.from_spec("keys?") == Field("keys", Arity.OPTIONAL)
    assert Field.from_spec("*words") == Field("words", Arity.ANY)
    assert Field.from_spec("+tokens") == Field("tokens", Arity.SOME)


def test_ambiguous_layout() -> None:
    """Test that layouts that cannot be bound unambiguously are refused."""
    with pytest.raises(ValueError, match="ambiguous"):
        Variant("FOO", (Field("a", Arity.OPTIONAL), Field("b", Arity.ANY)))
    with pytest.raises(ValueError, match="ambiguous"):
        Variant("FOO", (Field("a", Arity.ANY), Field("b", Arity.SOME)))


def test_variant_names() -> None:
    """Test the title-casing of symbolic command names."""
    assert variant_name("RPL_WELCOME") == "RplWelcome"
    assert variant_name("PRIVMSG") == "Privmsg"
    assert variant_name("privmsg") == "Privmsg"
    assert variant_for("RPL_TOPIC") is VARIANTS["RplTopic"]
    assert variant_for("TOPIC") is VARIANTS["Topic"]
    assert variant_for("RPL_UNKNOWN") is None


def test_create_variant() -> None:
    """Test explicit construction of known and unknown commands."""
    message = Message.create("privmsg", "#channel", "hello")
    assert message.command == "PRIVMSG"
    assert message.variant is VARIANTS["Privmsg"]
    assert message.target == "#channel"
    assert message.text == "hello"

    generic = Message.create("WALLOPS", "text")
    assert generic.variant is None
    assert generic.params == ("text",)

    user = Message.create("USER", "guest", 0, "*", "Real Name")
    assert user.params == ("guest", "0", "*", "Real Name")
    assert user.realname == "Real Name"


@pytest.mark.parametrize(
    ("command", "params"),
    [
        ("NICK", ()),
        ("NICK", ("one", "two")),
        ("PRIVMSG", ("#channel",)),
        ("RPL_ISUPPORT", ("nick", "are supported by this server")),
        ("USER", ("guest", "Real Name")),
    ],
)
def test_create_arity(command: str, params: tuple[str, ...]) -> None:
    """Test that known commands refuse parameters that do not fit their layout."""
    with pytest.raises(ArityError) as exc:
        Message.create(command, *params)
    assert exc.value.given == len(params)
    assert isinstance(exc.value, ValueError)


def test_unknown_attribute() -> None:
    """Test that accessors outside the variant layout raise AttributeError."""
    message = Message.create("NICK", "newnick")
    assert message.nickname == "newnick"
    with pytest.raises(AttributeError):
        message.channel  # noqa: B018
    with pytest.raises(AttributeError):
        Message("NICK", ("newnick",)).nickname  # noqa: B018


def test_equality() -> None:
    """Test that parsed and constructed messages compare equal."""
    assert codec.parse("PRIVMSG #channel :hi") == Message.create("PRIVMSG", "#channel", "hi")
    assert codec.parse("PRIVMSG #channel :hi") != Message.create("PRIVMSG", "#other", "hi")


def test_join() -> None:
    """Test the JOIN accessors."""
    join = codec.parse(":nick!user@host JOIN #one,#two keyone")
    assert join.channels == ["#one", "#two"]
    assert join.keys == ["keyone"]
    assert codec.parse(":nick!user@host JOIN #one").keys == []


def test_part_quit() -> None:
    """Test commands with an optional text."""
    part = codec.parse(":nick!user@host PART #one,#two :see you")
    assert part.channels == ["#one", "#two"]
    assert part.text == "see you"
    assert codec.parse(":nick!user@host PART #one").text is None
    assert codec.parse(":nick!user@host QUIT").text is None
    assert codec.parse(":nick!user@host QUIT :Quit: bye").text == "Quit: bye"


def test_mode() -> None:
    """Test the MODE accessors."""
    mode = codec.parse(":op!user@host MODE #channel +ov nick nick")
    assert mode.channel == "#channel"
    assert mode.modes == "+ov nick nick"


def test_ping() -> None:
    """Test the PING accessors."""
    assert codec.parse("PING :irc.example.org").server == "irc.example.org"
    ping = codec.parse("PING irc.example.org other.example.org")
    assert ping.target == "other.example.org"


def test_privmsg_ctcp() -> None:
    """Test that text-bearing messages separate plain text and CTCP."""
    message = codec.parse(":joe!j@host PRIVMSG #channel :\x01ACTION waves\x01 hello")
    assert message.text == " hello"
    assert message.raw_text == "\x01ACTION waves\x01 hello"
    assert message.params[-1] == "\x01ACTION waves\x01 hello"
    assert message.ctcp == (CTCPAction("ACTION", ("waves",)),)

    plain = codec.parse(":joe!j@host NOTICE #channel :just text")
    assert plain.text == "just text"
    assert plain.ctcp == ()


def test_replies() -> None:
    """Test the reply accessors common to all replies."""
    welcome = codec.parse(":irc.example.org 001 nick :Welcome to the network")
    assert welcome.is_reply
    assert not welcome.is_error
    assert welcome.target == "nick"
    assert welcome.text == "Welcome to the network"

    myinfo = codec.parse(":irc.example.org 004 nick irc.example.org ircd-1.0 iow biklmnopstv")
    assert myinfo.servername == "irc.example.org"
    assert myinfo.available_channel_modes == "biklmnopstv"
    assert myinfo.parameter_channel_modes is None
    assert myinfo.text is None

    inuse = codec.parse(":irc.example.org 433 * nick :Nickname is already in use")
    assert inuse.is_error
    assert inuse.nickname == "nick"

    assert not Message.create("NICK", "nick").is_reply
    assert codec.parse(":irc.example.org 401 nick other :No such nick").is_error


def test_isupport() -> None:
    """Test the parsing of RPL_ISUPPORT feature tokens."""
    isupport = codec.parse(
        ":irc.example.org 005 nick CHANTYPES=# EXCEPTS -INVEX NICKLEN= :are supported by this server"
    )
    assert isupport.tokens == ("CHANTYPES=#", "EXCEPTS", "-INVEX", "NICKLEN=")
    assert isupport.text == "are supported by this server"
    assert isupport.isupport == {"CHANTYPES": "#", "EXCEPTS": True, "INVEX": False, "NICKLEN": ""}


def test_channel_replies() -> None:
    """Test the accessors of channel-related replies."""
    topic = codec.parse(":irc.example.org 332 nick #channel :The topic")
    assert (topic.target, topic.channel, topic.text) == ("nick", "#channel", "The topic")

    whotime = codec.parse(":irc.example.org 333 nick #channel setter 1700000000")
    assert whotime.nickname == "setter"
    assert whotime.set_at == datetime.datetime(2023, 11, 14, 22, 13, 20, tzinfo=datetime.timezone.utc)

    names = codec.parse(":irc.example.org 353 nick = #channel :@op +voice user")
    assert names.channel_type == "="
    assert names.channel == "#channel"
    assert names.names == ["@op", "+voice", "user"]


def test_luser_replies() -> None:
    """Test replies with a count or with a variable number of words."""
    luserop = codec.parse(":irc.example.org 252 nick 3 :operator(s) online")
    assert luserop.count == "3"
    assert luserop.text == "operator(s) online"

    local = codec.parse(":irc.example.org 265 nick 3 5 :Current local users 3, max 5")
    assert local.words == ("3", "5", "Current local users 3, max 5")
    assert local.text == "3 5 Current local users 3, max 5"


def test_register_custom() -> None:
    """Test that new variants can be declared and are picked up by the parser."""
    variant = register("RPL_AWAY", "target", "nickname", "text", reply=True)
    try:
        away = codec.parse(":irc.example.org 301 me them :Gone fishing")
        assert away.variant is variant
        assert away.nickname == "them"
    finally:
        del VARIANTS[variant.name]


@pytest.mark.parametrize("time", ["not-a-number", "99999999999999999999"])
def test_topicwhotime_invalid(time: str) -> None:
    """Test that an unusable topic timestamp gives None instead of an error."""
    whotime = codec.parse(f":irc.example.org 333 nick #channel setter {time}")
    assert whotime.set_at is None
