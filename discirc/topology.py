"""
Bridge topology: which guild category maps to which IRC
server, and which webhook relays each channel's IRC side.
"""

import collections
import logging
import types
from typing import Dict, List, Mapping, Optional

import attr
import trio

from discirc.errors import PlatformError
from discirc.platform import Endpoint, GuildChannel, Platform

logger = logging.getLogger(__name__)

REMOTE_PREFIX = "##"


def remote_channel(name: str) -> str:
    """The IRC channel a guild channel is bridged with.

        >>> remote_channel('general')
        '##general'
    """
    return REMOTE_PREFIX + name


def local_channel(target: str) -> str:
    """The guild channel name an IRC channel stands for.

        >>> local_channel('##General')
        'General'
        >>> local_channel('#general')
        'general'
    """
    return target.lstrip("#")


@attr.s(auto_attribs=True, frozen=True)
class ChannelMap:
    """
    The channels of one category, by name, along with their
    webhooks. Read-only once built.
    """

    category: str
    endpoints: Mapping[str, Endpoint] = attr.ib(
        factory=dict, converter=lambda mapping: types.MappingProxyType(dict(mapping))
    )

    def get(self, name: str) -> Optional[Endpoint]:
        return self.endpoints.get(name)

    def remote_channels(self) -> List[str]:
        """
            >>> ChannelMap('irc.example.org', {'general': None, 'dev': None}).remote_channels()
            ['##general', '##dev']
        """
        return [remote_channel(name) for name in self.endpoints]

    def __contains__(self, name: str) -> bool:
        return name in self.endpoints


class EndpointProvisioner:
    """
    Makes sure a channel has a webhook, creating one if it
    has none. Concurrent calls for the same channel create
    at most one.
    """

    def __init__(self, platform: Platform, prefix: str = "irc_bridge_"):
        self.platform = platform
        self.prefix = prefix
        self.created = 0

        self._locks = collections.defaultdict(trio.Lock)  # type: Dict[int, trio.Lock]

    async def ensure_endpoint(self, channel: GuildChannel) -> Endpoint:
        """Returns the channel's first webhook, or a new one if there is none.

        Arguments:
            channel {GuildChannel} -- The channel to provision.

        Raises:
            PlatformError -- The webhooks could not be listed or created.

        Returns:
            Endpoint -- The channel's webhook.
        """

        async with self._locks[channel.id]:
            endpoints = await self.platform.list_endpoints(channel)

            if endpoints:
                return endpoints[0]

            endpoint = await self.platform.create_endpoint(
                channel, self.prefix + channel.name
            )
            self.created += 1

            logger.info("Created webhook %s for #%s", self.prefix + channel.name, channel.name)

            return endpoint


async def build_topology(
    platform: Platform, guild_id: int, provisioner: EndpointProvisioner
) -> Dict[str, ChannelMap]:
    """Maps every category of the guild to its channels' webhooks.

    Channels that aren't text channels, or that aren't in a category, are
    left out. A channel whose category or webhook can't be resolved is left
    out too, without affecting the others.

    Arguments:
        platform {Platform} -- The guild platform.
        guild_id {int} -- The guild to bridge.
        provisioner {EndpointProvisioner} -- Supplies each channel's webhook.

    Raises:
        PlatformError -- The guild's channels could not be listed.

    Returns:
        Dict[str, ChannelMap] -- The channel maps, by category name.
    """

    categories = {}  # type: Dict[int, str]
    grouped = {}  # type: Dict[str, Dict[str, Endpoint]]

    for channel in await platform.list_channels(guild_id):
        if not channel.is_text:
            continue

        if channel.category_id is None:
            logger.debug("Skipping #%s: not in a category", channel.name)
            continue

        try:
            if channel.category_id not in categories:
                categories[channel.category_id] = await platform.category_name(
                    channel.category_id
                )

            category = categories[channel.category_id]
            endpoint = await provisioner.ensure_endpoint(channel)

        except PlatformError as err:
            logger.warning("Skipping #%s: %s", channel.name, err)
            continue

        channels = grouped.setdefault(category, {})

        if channel.name in channels:
            logger.warning(
                "Skipping #%s (%d): %s already has a channel by that name",
                channel.name,
                channel.id,
                category,
            )
            continue

        channels[channel.name] = endpoint

    topology = {
        category: ChannelMap(category, channels) for category, channels in grouped.items()
    }

    for category, channels in topology.items():
        logger.info("%s: %s", category, ", ".join(channels.remote_channels()))

    return topology
