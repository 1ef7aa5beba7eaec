"""
IRC side of the bridge: one supervised connection per category,
relaying what is said on IRC into the category's channels.
"""

import functools
import logging
import math
import ssl
from typing import Callable, Dict, Optional

import trio

from discirc.backends.irc import IRCConnection, IRCResponse
from discirc.config import BridgeConfig
from discirc.errors import IRCError, PlatformError
from discirc.platform import Platform
from discirc.routing import RoutingTable, SendHandle
from discirc.topology import ChannelMap, local_channel

logger = logging.getLogger(__name__)

SERVER_NICKNAME = "Server"


class RemoteRelay:
    """
    Keeps one category's IRC connection up, reconnecting with
    exponential backoff, and posts the PRIVMSGs it receives
    through the matching channel's webhook.

    Received PRIVMSGs are queued and posted, in order, by a single
    poster task, so a slow webhook never holds up the IRC receive
    loop (and its PING replies).
    """

    def __init__(
        self,
        category: str,
        channels: ChannelMap,
        platform: Platform,
        config: BridgeConfig,
        handle: SendHandle,
        connection_factory: Callable[..., IRCConnection] = IRCConnection,
    ):
        self.category = category
        self.channels = channels
        self.platform = platform
        self.config = config
        self.handle = handle
        self.connection_factory = connection_factory

        self.connection = None  # type: Optional[IRCConnection]
        self.state = "idle"
        self.attempts = 0
        self.relayed = 0
        self.last_error = None  # type: Optional[BaseException]

        self._scope = trio.CancelScope()
        self._registered = False
        self._outbox = None  # type: Optional[trio.MemorySendChannel]

    def _connect(self) -> IRCConnection:
        conn = self.connection_factory(
            host=self.category,
            port=self.config.irc_port,
            nickname=self.config.nickname,
            alt_nicknames=self.config.alt_nicknames(),
            realname=self.config.realname,
            channels=self.channels.remote_channels(),
            ssl_ctx=ssl.create_default_context() if self.config.irc_ssl else None,
        )

        conn.listen("REGISTERED")(functools.partial(self._on_registered, conn))
        conn.listen("IRC_PRIVMSG")(self._on_privmsg)

        return conn

    async def _on_registered(self, conn: IRCConnection, _, nickname: str):
        self._registered = True
        self.state = "connected"
        self.handle.attach(conn)

        logger.info("IRC connected to %s as %s", self.category, nickname)

    async def _on_privmsg(self, _, response: IRCResponse):
        if self._outbox is not None:
            self._outbox.send_nowait(response)

    async def _poster(self, receive: trio.MemoryReceiveChannel):
        async with receive:
            async for response in receive:
                await self.relay_privmsg(response)

    async def _session(self):
        """
        Runs one connection alongside its poster. Whatever was queued
        when the connection ends is still posted before it returns.
        """

        send, receive = trio.open_memory_channel(math.inf)
        error = None  # type: Optional[Exception]

        async with trio.open_nursery() as nursery:
            nursery.start_soon(self._poster, receive)
            self._outbox = send

            try:
                await self.connection.start()

            # raised after the nursery, so it isn't wrapped in an ExceptionGroup
            except Exception as err:
                error = err

            finally:
                self._outbox = None
                send.close()

        if error is not None:
            raise error

    async def relay_privmsg(self, response: IRCResponse) -> bool:
        """Posts an IRC channel message to the guild channel it belongs to.

        Messages to channels outside this category are ignored.

        Returns:
            bool -- Whether the message was posted.
        """

        if not response.args:
            return False

        nickname = response.source_nickname or SERVER_NICKNAME
        name = local_channel(response.args[0])
        endpoint = self.channels.get(name)

        if endpoint is None:
            logger.debug("%s: ignoring message to unbridged %s", self.category, response.args[0])
            return False

        try:
            await self.platform.post_as(endpoint, nickname, response.data, self.config.avatar_url)

        except PlatformError as err:
            logger.warning("%s: could not relay %s's message to #%s: %s", self.category, nickname, name, err)
            return False

        self.relayed += 1

        return True

    async def run(self):
        """
        Runs the connection until stop is called. A connection that
        fails or is closed is retried after a delay that doubles every
        time, up to config.reconnect_max, and goes back to
        config.reconnect_min once a connection registers again.
        """

        delay = self.config.reconnect_min

        with self._scope:
            while True:
                self.attempts += 1
                self.state = "connecting"
                self._registered = False
                self.connection = self._connect()

                logger.info("Connecting to %s (attempt %d)", self.category, self.attempts)

                try:
                    await self._session()

                except (IRCError, OSError, trio.BrokenResourceError) as err:
                    self.last_error = err

                except Exception as err:
                    self.last_error = err
                    logger.error("%s: relay failed", self.category, exc_info=True)

                else:
                    self.last_error = None

                finally:
                    self.handle.detach(self.connection)
                    self.connection = None

                if self._registered:
                    delay = self.config.reconnect_min

                self.state = "closed"
                logger.warning(
                    "IRC connection to %s ended (%s); reconnecting in %.1fs",
                    self.category,
                    self.last_error or "closed",
                    delay,
                )

                await trio.sleep(delay)
                delay = min(delay * 2, self.config.reconnect_max)

        self.state = "stopped"
        logger.info("Stopped relaying %s", self.category)

    async def stop(self):
        self._scope.cancel()

        if self.connection is not None:
            await self.connection.stop()


class ConnectionManager:
    """
    Brings up one RemoteRelay per category of the topology, each in
    its own task, and registers its send handle in the routing table.
    """

    def __init__(
        self,
        config: BridgeConfig,
        platform: Platform,
        routing: RoutingTable,
        nursery: trio.Nursery,
        connection_factory: Callable[..., IRCConnection] = IRCConnection,
    ):
        self.config = config
        self.platform = platform
        self.routing = routing
        self.nursery = nursery
        self.connection_factory = connection_factory

        self.relays = {}  # type: Dict[str, RemoteRelay]

    def connect_all(self, topology: Dict[str, ChannelMap]) -> int:
        """Starts relaying every category that isn't being relayed yet.

        Arguments:
            topology {Dict[str, ChannelMap]} -- The output of build_topology.

        Returns:
            int -- How many relays were started.
        """

        started = 0

        for category, channels in topology.items():
            handle = SendHandle(category)

            if not self.routing.insert_if_absent(category, handle):
                logger.debug("%s is already relayed", category)
                continue

            relay = RemoteRelay(
                category,
                channels,
                self.platform,
                self.config,
                handle,
                self.connection_factory,
            )
            self.relays[category] = relay
            self.nursery.start_soon(relay.run, name="relay " + category)
            started += 1

        return started

    async def stop(self):
        for relay in self.relays.values():
            await relay.stop()
