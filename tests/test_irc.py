import pytest
import trio

from discirc.backends.irc import IRCConnection, IRCResponse
from discirc.errors import ConnectionClosedError, NicknameExhaustedError

from .conftest import wait_for


def connect(server, **kwargs):
    kwargs.setdefault("nickname", "Bridge")
    kwargs.setdefault("alt_nicknames", ["Bridge_", "Bridge__", "Bridge___"])
    return IRCConnection("127.0.0.1", server.port, **kwargs)


async def test_handshake_then_joins_after_welcome(nursery, server):
    conn = connect(server, channels=["##general", "##dev"])
    registered = []

    @conn.listen("REGISTERED")
    async def on_registered(_, nickname):
        registered.append(nickname)

    nursery.start_soon(conn.start)
    await wait_for(lambda: len(server.received("JOIN")) == 2)

    assert server.lines[:2] == ["NICK Bridge", "USER Bridge * * :Discord <-> IRC bridge"]
    assert server.received("JOIN") == ["JOIN ##general", "JOIN ##dev"]
    assert registered == ["Bridge"]
    assert conn.registered

    await conn.stop()
    await wait_for(lambda: server.received("QUIT"))


async def test_falls_back_to_alternative_nicknames(nursery, server):
    server.taken = {"Bridge", "Bridge_"}
    conn = connect(server)

    nursery.start_soon(conn.start)
    await wait_for(lambda: conn.registered)

    assert conn.nickname == "Bridge__"
    assert server.received("NICK") == ["NICK Bridge", "NICK Bridge_", "NICK Bridge__"]


async def test_gives_up_when_every_nickname_is_taken(server):
    server.taken = {"Bridge", "Bridge_", "Bridge__", "Bridge___"}
    conn = connect(server)

    with trio.fail_after(5):
        with pytest.raises(NicknameExhaustedError):
            await conn.start()

    assert not conn.running()


async def test_answers_pings_and_emits_privmsgs(nursery, server):
    conn = connect(server)
    received = []

    @conn.listen("IRC_PRIVMSG")
    async def on_privmsg(_, response):
        received.append((response.source_nickname, response.args[0], response.data))

    nursery.start_soon(conn.start)
    await wait_for(lambda: conn.registered)

    await server.say("PING :mock.server")
    await server.say(":bob!~bob@example.org PRIVMSG ##general :hello there")
    await wait_for(lambda: received and server.received("PONG"))

    assert server.received("PONG") == ["PONG :mock.server"]
    assert received == [("bob", "##general", "hello there")]


async def test_messages_are_sent_in_order(nursery, server):
    conn = connect(server)

    nursery.start_soon(conn.start)
    await wait_for(lambda: conn.registered)

    assert await conn.message("##general", "Alice: hi")
    assert await conn.message("##general", "Alice: one\nAlice: two")
    await wait_for(lambda: len(server.received("PRIVMSG")) == 3)

    assert server.received("PRIVMSG") == [
        "PRIVMSG ##general :Alice: hi",
        "PRIVMSG ##general :Alice: one",
        "PRIVMSG ##general :Alice: two",
    ]


async def test_server_hangup_is_reported(nursery, server):
    conn = connect(server)
    done = trio.Event()
    errors = []

    async def run():
        try:
            await conn.start()

        except ConnectionClosedError as err:
            errors.append(err)

        done.set()

    nursery.start_soon(run)
    await wait_for(lambda: conn.registered)

    await server.hangup()

    with trio.fail_after(5):
        await done.wait()

    assert len(errors) == 1
    assert not await conn.message("##general", "too late")


def test_parse_numeric_and_trailing():
    response = IRCResponse.parse(":mock.server 433 * Bridge :Nickname is already in use")

    assert response.is_numeric
    assert response.kind == 433
    assert response.args == ("*", "Bridge")
    assert response.data == "Nickname is already in use"
    assert response.origin.is_server()


def test_parse_ignores_blank_lines():
    assert IRCResponse.parse("   ") is None
