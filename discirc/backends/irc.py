"""
The IRC backend.

A small IRC client in and of itself, running on trio. One
IRCConnection is one session with one IRC server; the bridge
opens one per guild category.
"""

import logging
import math
import ssl
import typing
from typing import Iterable, Optional, Tuple

import attr
import trio

from discirc.backend import Backend
from discirc.errors import ConnectionClosedError, IRCError, NicknameExhaustedError

# ERR_ERRONEUSNICKNAME, ERR_NICKNAMEINUSE, ERR_NICKCOLLISION
NICKNAME_REJECTED = {432, 433, 436}
RPL_WELCOME = 1
MAX_LINE_SIZE = 300
QUIT_TIMEOUT = 2.0


@attr.s(auto_attribs=True, frozen=True)
class IRCOrigin:
    full: str
    type: str

    # Users
    nick: Optional[str] = None
    ident: Optional[str] = None
    hostname: Optional[str] = None

    @classmethod
    def create(cls: typing.Type["IRCOrigin"], origin: str) -> "IRCOrigin":
        """
            >>> IRCOrigin.create('bob!~bob@example.org').nick
            'bob'
            >>> IRCOrigin.create('irc.example.org').is_server()
            True
        """

        if "!" in origin:
            nick, _, rest = origin.partition("!")
            ident, _, hostname = rest.partition("@")

            return cls(origin, "user", nick, ident, hostname)

        return cls(origin, "server")

    def is_user(self) -> bool:
        """Whether this IRCOrigin was another client."""
        return self.type == "user"

    def is_server(self) -> bool:
        """Whether this IRCOrigin was a server."""
        return self.type == "server"


def irc_lex_response(
    resp: str,
) -> Tuple[str, str, typing.Union[str, int], bool, Tuple[str, ...], str]:
    if resp.startswith(":"):
        origin, _, resp = resp[1:].partition(" ")

    else:
        origin = ""

    head, sep, dataline = resp.partition(" :")

    if not sep and head.startswith(":"):
        head, dataline = "", head[1:]

    tokens = head.split()
    kind = tokens[0] if tokens else ""

    if kind.isdigit() and len(kind) == 3:
        kind = int(kind)
        is_numeric = True

    else:
        kind = kind.upper()
        is_numeric = False

    return (resp, origin, kind, is_numeric, tuple(tokens[1:]), dataline)


@attr.s(auto_attribs=True)
class IRCResponse:
    line: str
    origin: IRCOrigin
    is_numeric: bool
    kind: typing.Union[str, int]
    args: Tuple[str, ...] = ()
    data: str = ""

    def __repr__(self):
        return "IRCResponse({})".format(repr(self.line))

    @property
    def source_nickname(self) -> Optional[str]:
        """The nickname of the client that sent this, if it was a client.

            >>> IRCResponse.parse(':bob!b@host PRIVMSG ##general :hi').source_nickname
            'bob'
            >>> print(IRCResponse.parse(':irc.example.org NOTICE * :hello').source_nickname)
            None
        """
        return self.origin.nick

    @classmethod
    def parse(cls: typing.Type["IRCResponse"], line: str) -> Optional["IRCResponse"]:
        """Parses an IRC server response, according to RFC 1459.

            >>> IRCResponse.parse(':zirconium.libera.chat 404 :Not Found').kind
            404

            >>> print(IRCResponse.parse(':zirconium.libera.chat IS okay :a Good Word').args[0])
            okay

            >>> response = IRCResponse.parse('PING :irc.example.org')
            >>> response.kind, response.data
            ('PING', 'irc.example.org')

        Arguments:
            line {str} -- The IRC response to parse.

        Returns:
            Optional[IRCResponse] -- The parsed representation, or None if the
                                     line holds no command.
        """

        if not line.strip():
            return None

        _, origin, kind, is_numeric, args, data = irc_lex_response(line)

        if kind == "":
            return None

        return cls(line, IRCOrigin.create(origin), is_numeric, kind, args, data)


def split_message(message: str) -> Iterable[str]:
    """Splits a message into lines that fit in a PRIVMSG.

        >>> list(split_message('one\\r\\ntwo\\n\\nthree'))
        ['one', 'two', 'three']
        >>> [len(part) for part in split_message('x' * 700)]
        [300, 300, 100]
    """

    for line in message.splitlines():
        while line:
            yield line[:MAX_LINE_SIZE]
            line = line[MAX_LINE_SIZE:]


class IRCConnection(Backend):
    """An IRC connection. Used by the bridge to relay
    messages to and from one IRC server.
    """

    def __init__(
        self,
        host: str,
        port: int = 6667,
        nickname: str = "PonasBridge",
        alt_nicknames: Iterable[str] = (),
        realname: str = "Discord <-> IRC bridge",
        channels: Iterable[str] = (),
        ssl_ctx: Optional[ssl.SSLContext] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Sets up an IRC connection.

            >>> conn = IRCConnection('irc.example.org', alt_nicknames=['Bridge_'], nickname='Bridge')
            >>> conn.nickname
            'Bridge'
            >>> conn.running()
            False

        Arguments:
            host {str} -- The host of the IRC server.

        Keyword Arguments:
            port {int} -- The port of the IRC server. (default: 6667)

            nickname {str} -- The nickname used by this connection. (default: 'PonasBridge')

            alt_nicknames {Iterable[str]} -- Nicknames tried, in order, when the server
                                             rejects the previous one. (default: ())

            realname {str} -- The IRC 'real name' used by this connection.

            channels {Iterable[str]} -- The channels to join once registered. (default: ())

            ssl_ctx {ssl.SSLContext} -- The SSL context used (or None if not using any).
                                        (default: None)
        """

        super().__init__(logger=logger)

        self.host = host
        self.port = port
        self.ssl_context = ssl_ctx
        self.connection = None  # type: Optional[trio.abc.Stream]

        self.nicknames = [nickname] + list(alt_nicknames)
        self._nick_index = 0
        self.realname = realname
        self.join_channels = list(dict.fromkeys(channels))

        self.registered = False
        self._error = None  # type: Optional[IRCError]
        self._out_send = None  # type: Optional[trio.MemorySendChannel]
        self._out_receive = None  # type: Optional[trio.MemoryReceiveChannel]

    @property
    def nickname(self) -> str:
        return self.nicknames[self._nick_index]

    async def send(self, line: str):
        """
        Queues to send a raw IRC command (string). Lines are sent
        in the order they were queued.

        Arguments:
            line {str} -- The line to send.
        """

        await self._out_send.send(line)

    async def _sender(self):
        """
        This async loop is responsible for sending the queued lines.
        """

        try:
            async for line in self._out_receive:
                await self._send(line)
                self.logger.debug("%s >>> %s", self.host, line)

        except (trio.BrokenResourceError, trio.ClosedResourceError) as err:
            self._fail(ConnectionClosedError("lost connection to {}: {}".format(self.host, err)))

    async def _send(self, item: str):
        await self.connection.send_all(str(item).encode("utf-8") + b"\r\n")

    def _fail(self, error: IRCError):
        if self._error is None and not self._stopping:
            self._error = error

        self.cancel_stop_scopes()

    async def _next_nickname(self):
        if self._nick_index + 1 >= len(self.nicknames):
            self._fail(
                NicknameExhaustedError(
                    "{} rejected every nickname: {}".format(
                        self.host, ", ".join(self.nicknames)
                    )
                )
            )
            return

        self._nick_index += 1
        self.logger.info(
            "Nickname taken on %s, trying %s instead", self.host, self.nickname
        )

        await self.send("NICK " + self.nickname)

    async def _receive(self, line: str) -> bool:
        """
        This function is called asynchronously everytime
        the IRC backend receives a line from the server.

            >>> import trio
            >>> conn = IRCConnection('i.have.no.mouth.and.i.must.scream')
            ...
            >>> @conn.listen('IRC_PRIVMSG')
            ... async def print_received(_, msg):
            ...     print(msg.source_nickname, msg.args[0], msg.data)
            ...
            >>> async def print_a_test():
            ...     print(await conn._receive(':ted!t@am PRIVMSG ##general :AAAAAAAAA'))
            ...
            >>> trio.run(print_a_test)
            ted ##general AAAAAAAAA
            True

        Arguments:
            line {str} --   A single line, after being extracted from received data, and
                            stripped of its trailing CRLF.

        Returns:
            bool -- Whether the line is valid IRC data.
        """

        self.logger.debug("%s <<< %s", self.host, line)

        response = IRCResponse.parse(line)

        if response is None:
            return False

        if response.kind == "PING":
            await self.send("PONG :{}".format(response.data or " ".join(response.args)))

        elif response.is_numeric and not self.registered:
            if response.kind == RPL_WELCOME:
                await self._on_welcome()

            elif response.kind in NICKNAME_REJECTED:
                await self._next_nickname()

        if response.is_numeric:
            await self.receive_message("IRC__NUMERIC", response)

        else:
            await self.receive_message("IRC_" + response.kind, response)

        return True

    async def _on_welcome(self):
        self.registered = True
        self.logger.info("Registered on %s as %s", self.host, self.nickname)

        for chan in self.join_channels:
            await self.join(chan)

        await self.receive_message("REGISTERED", self.nickname)

    async def _receiver(self):
        buf = b""

        try:
            async for data in self.connection:
                buf += data

                while b"\n" in buf:
                    raw, buf = buf.split(b"\n", 1)
                    await self._receive(raw.rstrip(b"\r").decode("utf-8", "replace"))

        except (trio.BrokenResourceError, trio.ClosedResourceError) as err:
            self._fail(ConnectionClosedError("lost connection to {}: {}".format(self.host, err)))

        else:
            self._fail(ConnectionClosedError("{} closed the connection".format(self.host)))

    async def send_irc_handshake(self):
        """
        Sends the IRC handshake, including
        nickname and real name.
        """

        await self.send("NICK " + self.nickname)
        await self.send("USER {} * * :{}".format(self.nickname, self.realname))

    async def start(self):
        """
        Starts the IRC connection. Returns once stop is called.

        Raises:
            IRCError -- The connection failed, was closed by the server, or
                        no nickname was accepted.
            OSError -- The server could not be reached.
        """

        if self._stopping:
            raise RuntimeError("Tried to start a backend whilst it is stopping!")

        self._error = None
        self._nick_index = 0
        self._out_send, self._out_receive = trio.open_memory_channel(math.inf)

        connection = await trio.open_tcp_stream(self.host, self.port)

        if self.ssl_context:
            connection = trio.SSLStream(connection, self.ssl_context, server_hostname=self.host)

        self.connection = connection
        self._running = True

        try:
            with self.new_stop_scope():
                async with trio.open_nursery() as nursery:
                    nursery.start_soon(self._sender)
                    nursery.start_soon(self._receiver)

                    await self.send_irc_handshake()

        finally:
            self._out_send.close()

            with trio.move_on_after(QUIT_TIMEOUT) as cleanup:
                cleanup.shield = True

                if self._stopping:
                    try:
                        await self._send("QUIT :Bridge shutting down")

                    except (trio.BrokenResourceError, trio.ClosedResourceError):
                        pass

                await self.connection.aclose()

            self._running = False
            self.registered = False
            self._stopping = False

        if self._error is not None:
            raise self._error

    async def stop(self):
        if not self.running():
            return False

        self._stopping = True
        self.cancel_stop_scopes()

        return True

    # === IRC commands ===

    async def join(self, channel: str):
        """Joins an IRC channel.

        Arguments:
            channel {str} -- The name of the channel.
        """

        await self.send("JOIN {}".format(channel))

    async def message(self, target: str, message: str) -> bool:
        """Sends a message to an IRC target (nickname or channel).
        Multi-line and overlong messages are sent as several PRIVMSGs.

        Arguments:
            target {str} -- The IRC target. Can either be another client or a channel.
            message {str} -- The message.

        Returns:
            bool -- Whether the message was queued.
        """

        if not self.running():
            return False

        for line in split_message(message):
            await self.send("PRIVMSG {} :{}".format(target, line))

        return True
