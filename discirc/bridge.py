"""
The bridge itself: wires the Discord backend, the topology
builder, the relays and the router together.
"""

import logging
from typing import Callable, Optional

import trio

from discirc.backend import Backend
from discirc.backends.discord import DiscordClient
from discirc.backends.irc import IRCConnection
from discirc.config import BridgeConfig
from discirc.errors import PlatformError
from discirc.platform import InboundMessage, Platform
from discirc.relay import ConnectionManager
from discirc.router import PlatformRouter
from discirc.routing import RoutingTable
from discirc.topology import EndpointProvisioner, build_topology

logger = logging.getLogger(__name__)


class Bridge:
    """
    Bridges one guild with IRC. Every category of the guild is an IRC
    server, and every text channel in it is that server's ##channel.
    """

    def __init__(
        self,
        config: BridgeConfig,
        backend: Optional[Backend] = None,
        platform: Optional[Platform] = None,
        connection_factory: Callable[..., IRCConnection] = IRCConnection,
    ):
        """
        Arguments:
            config {BridgeConfig} -- The bridge configuration.

        Keyword Arguments:
            backend {Backend} -- The guild platform's gateway. Emits READY and MESSAGE.
                                 (default: a DiscordClient for config.token)

            platform {Platform} -- The guild platform's REST side. (default: the backend)

            connection_factory {Callable[..., IRCConnection]} -- Makes IRC connections.
        """

        self.config = config
        self.backend = backend or DiscordClient(config.token)
        self.platform = platform or self.backend
        self.connection_factory = connection_factory

        self.routing = RoutingTable()
        self.provisioner = EndpointProvisioner(self.platform, config.webhook_prefix)
        self.router = PlatformRouter(self.platform, self.routing, config.guild_id)
        self.manager = None  # type: Optional[ConnectionManager]

        self.backend.listen("READY")(self.on_ready)
        self.backend.listen("MESSAGE")(self.on_message)

    async def on_ready(self, _, user):
        logger.info("%s is connected!", getattr(user, "name", user))

        try:
            topology = await build_topology(
                self.platform, self.config.guild_id, self.provisioner
            )

        except PlatformError as err:
            logger.error("Could not read guild %d: %s", self.config.guild_id, err)
            return

        started = self.manager.connect_all(topology)
        logger.info("Relaying %d new categories (%d total)", started, len(self.routing))

    async def on_message(self, _, message: InboundMessage):
        await self.router.route(message)

    async def _run_backend(self):
        try:
            await self.backend.start()

        finally:
            await self.manager.stop()

    async def start(self):
        """Starts the bridge. Returns once the guild backend stops."""

        async with trio.open_nursery() as nursery:
            self.manager = ConnectionManager(
                self.config,
                self.platform,
                self.routing,
                nursery,
                self.connection_factory,
            )
            nursery.start_soon(self._run_backend)
