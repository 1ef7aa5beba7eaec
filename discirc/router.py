"""
Guild side of the bridge: forwards guild messages to the IRC
channel they are bridged with.
"""

import collections
import logging
from typing import Dict, Optional

import trio

from discirc.errors import PlatformError
from discirc.platform import InboundMessage, Platform
from discirc.routing import RoutingTable
from discirc.topology import remote_channel

logger = logging.getLogger(__name__)


def format_line(author: str, content: str) -> str:
    """Formats a guild message for IRC, one line per line of content.

        >>> format_line('Alice', 'hi')
        'Alice: hi'
        >>> print(format_line('Alice', 'hi\\n\\nthere'))
        Alice: hi
        Alice: there
    """

    return "\n".join(
        "{}: {}".format(author, line) for line in content.splitlines() if line
    )


class PlatformRouter:
    """
    Decides whether a guild message gets relayed, and
    relays it through its category's send handle.
    """

    def __init__(
        self, platform: Platform, routing: RoutingTable, guild_id: Optional[int] = None
    ):
        self.platform = platform
        self.routing = routing
        self.guild_id = guild_id

        self._locks = collections.defaultdict(trio.Lock)  # type: Dict[int, trio.Lock]

    def is_own(self, message: InboundMessage) -> bool:
        """Whether the bridge itself produced this message, either as
        its bot user or through a webhook."""

        return message.is_webhook_post() or message.author_id == self.platform.own_user_id()

    async def route(self, message: InboundMessage) -> bool:
        """Relays a guild message to IRC, if it should be.

        Messages are dropped when their channel has no webhook, when the
        bridge or another bot wrote them, or when their category has no
        IRC connection.

        Arguments:
            message {InboundMessage} -- The guild message.

        Returns:
            bool -- Whether the message was handed to an IRC connection.
        """

        if self.guild_id is not None and message.guild_id != self.guild_id:
            return False

        # messages of one channel leave in the order they came in
        async with self._locks[message.channel_id]:
            return await self._route(message)

    async def _route(self, message: InboundMessage) -> bool:
        try:
            channel = await self.platform.get_channel(message.channel_id)

            if channel is None or not await self.platform.list_endpoints(channel):
                return False

            if self.is_own(message) or message.author_is_bot:
                return False

            if channel.category_id is None:
                return False

            category = await self.platform.category_name(channel.category_id)

        except PlatformError as err:
            logger.warning("Could not resolve channel %d: %s", message.channel_id, err)
            return False

        handle = self.routing.lookup(category)

        if handle is None:
            logger.debug("No IRC connection for %s; dropped message in #%s", category, channel.name)
            return False

        line = format_line(message.author_name, message.content)

        if not line:
            return False

        return await handle.send_privmsg(remote_channel(channel.name), line)
