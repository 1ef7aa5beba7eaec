import functools
import itertools

import attr
import pytest
import trio

from discirc.backend import Backend
from discirc.config import BridgeConfig
from discirc.errors import ConnectionClosedError, PlatformError, TopologyError
from discirc.platform import GuildChannel

GUILD = 4242
BRIDGE_USER = 1


@attr.s(auto_attribs=True, frozen=True)
class FakeEndpoint:
    id: int
    name: str
    channel_id: int


@attr.s(auto_attribs=True, frozen=True)
class Post:
    endpoint: FakeEndpoint
    username: str
    content: str
    avatar_url: str


class FakePlatform:
    """An in-memory guild, implementing the Platform protocol."""

    def __init__(self, user_id=BRIDGE_USER):
        self.user_id = user_id
        self.channels = {}
        self.categories = {}
        self.endpoints = {}
        self.posts = []
        self.failing = set()

        self._ids = itertools.count(100)

    def add_category(self, name):
        category_id = next(self._ids)
        self.categories[category_id] = name
        return category_id

    def add_channel(self, name, category_id=None, is_text=True, endpoints=0):
        channel = GuildChannel(next(self._ids), name, is_text, category_id)
        self.channels[channel.id] = channel

        for index in range(endpoints):
            self.endpoints.setdefault(channel.id, []).append(
                FakeEndpoint(next(self._ids), "existing_{}".format(index), channel.id)
            )

        return channel

    def posts_to(self, channel):
        return [post for post in self.posts if post.endpoint.channel_id == channel.id]

    async def list_channels(self, guild_id):
        await trio.sleep(0)
        return list(self.channels.values())

    async def get_channel(self, channel_id):
        await trio.sleep(0)
        return self.channels.get(channel_id)

    async def category_name(self, category_id):
        await trio.sleep(0)

        if category_id not in self.categories:
            raise TopologyError("no such category: {}".format(category_id))

        return self.categories[category_id]

    async def list_endpoints(self, channel):
        await trio.sleep(0)

        if channel.id in self.failing:
            raise PlatformError("403 Missing Permissions")

        return list(self.endpoints.get(channel.id, []))

    async def create_endpoint(self, channel, name):
        await trio.sleep(0)

        endpoint = FakeEndpoint(next(self._ids), name, channel.id)
        self.endpoints.setdefault(channel.id, []).append(endpoint)

        return endpoint

    async def post_as(self, endpoint, username, content, avatar_url):
        await trio.sleep(0)
        self.posts.append(Post(endpoint, username, content, avatar_url))

    def own_user_id(self):
        return self.user_id


class FakeConnection(Backend):
    """Stands in for an IRCConnection; registers as soon as it starts."""

    def __init__(
        self,
        host,
        port=6667,
        nickname="PonasBridge",
        alt_nicknames=(),
        realname="",
        channels=(),
        ssl_ctx=None,
        fail_with=None,
        running=False,
    ):
        super().__init__()

        self.host = host
        self.port = port
        self.nickname = nickname
        self.alt_nicknames = list(alt_nicknames)
        self.channels = list(channels)
        self.ssl_ctx = ssl_ctx
        self.fail_with = fail_with
        self.sent = []

        self._running = running
        self._hangup = trio.Event()

    async def start(self):
        self._running = True

        try:
            if self.fail_with is not None:
                raise self.fail_with

            await self.receive_message("REGISTERED", self.nickname)

            with self.new_stop_scope():
                await self._hangup.wait()
                raise ConnectionClosedError("{} closed the connection".format(self.host))

        finally:
            self._running = False
            self._stopping = False

    async def stop(self):
        self._stopping = True
        self.cancel_stop_scopes()
        return True

    def hangup(self):
        self._hangup.set()

    async def message(self, target, text):
        if not self.running():
            return False

        self.sent.append((target, text))
        return True


class ConnectionFactory:
    """Makes FakeConnections, optionally failing the first attempts per host."""

    def __init__(self):
        self.connections = []
        self.failures = {}

    def __call__(self, **kwargs):
        failures = self.failures.get(kwargs["host"])
        conn = FakeConnection(fail_with=failures.pop(0) if failures else None, **kwargs)
        self.connections.append(conn)
        return conn

    def for_host(self, host):
        return [conn for conn in self.connections if conn.host == host]


class MockIRCServer:
    """Just enough of an IRC server: nickname collisions, welcome, and a transcript."""

    def __init__(self):
        self.taken = set()
        self.lines = []
        self.streams = []
        self.port = None

    async def handle(self, stream):
        self.streams.append(stream)
        buffer = b""
        nick, user, welcomed = None, False, False

        try:
            async for data in stream:
                buffer += data

                while b"\r\n" in buffer:
                    raw, buffer = buffer.split(b"\r\n", 1)
                    line = raw.decode("utf-8")
                    self.lines.append(line)

                    command, _, rest = line.partition(" ")

                    if command == "NICK":
                        if rest in self.taken:
                            await self.say(":mock.server 433 * {} :Nickname is already in use".format(rest))

                        else:
                            nick = rest

                    elif command == "USER":
                        user = True

                    elif command == "QUIT":
                        return

                    if nick and user and not welcomed:
                        welcomed = True
                        await self.say(":mock.server 001 {} :Welcome to the mock network".format(nick))

        except (trio.BrokenResourceError, trio.ClosedResourceError):
            return

    async def say(self, line):
        await self.streams[-1].send_all((line + "\r\n").encode("utf-8"))

    async def hangup(self):
        await self.streams[-1].aclose()

    def received(self, command):
        return [line for line in self.lines if line.startswith(command + " ")]


async def wait_for(predicate, timeout=5):
    with trio.fail_after(timeout):
        while not predicate():
            await trio.sleep(0.01)


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def config():
    return BridgeConfig(
        "token", GUILD, nickname="Bridge", reconnect_min=0.5, reconnect_max=2.0
    )


@pytest.fixture
def factory():
    return ConnectionFactory()


@pytest.fixture
async def server(nursery):
    server = MockIRCServer()
    listeners = await nursery.start(
        functools.partial(trio.serve_tcp, server.handle, 0, host="127.0.0.1")
    )
    server.port = listeners[0].socket.getsockname()[1]
    return server
