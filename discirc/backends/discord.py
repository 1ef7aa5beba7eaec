"""
The Discord backend.

Uses the high-level discord.py library for actually
communicating to Discord, unlike the IRC backend, which
is an IRC client in and of itself.

Also requires trio_asyncio, since discirc uses trio,
whereas discord.py uses asyncio, requiring bridging in
order to maintain proper, seamless asynchronous functionality.
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp
import discord
import trio_asyncio

from discirc.backend import Backend
from discirc.errors import PlatformError, TopologyError
from discirc.platform import GuildChannel, InboundMessage


def wrap_channel(channel: "discord.abc.GuildChannel") -> GuildChannel:
    return GuildChannel(
        id=channel.id,
        name=channel.name,
        is_text=getattr(channel, "type", None) == discord.ChannelType.text,
        category_id=getattr(channel, "category_id", None),
        raw=channel,
    )


def wrap_message(message: discord.Message) -> InboundMessage:
    return InboundMessage(
        channel_id=message.channel.id,
        author_id=message.author.id,
        author_name=message.author.name,
        content=message.content,
        author_is_bot=message.author.bot,
        webhook_id=message.webhook_id,
        guild_id=message.guild.id if message.guild is not None else None,
    )


class DiscordClient(Backend):
    """
    A Discord backend. Emits READY (with the bot's user) and
    MESSAGE (with an InboundMessage) events, and implements the
    Platform protocol the bridge uses for REST calls.
    """

    def __init__(self, token: str, logger: Optional[logging.Logger] = None):
        """
        Prepares a Discord bot session, via the
        discord.py library.

        Arguments:
            token {str} -- The token of your bot.
        """

        super().__init__(logger=logger)

        self._token = token
        self.client = None  # type: Optional[discord.Client]

    def _setup_client(self, client: "discord.Client"):
        @client.event
        async def on_message(message: discord.Message):
            await trio_asyncio.trio_as_aio(self.receive_message)(
                "MESSAGE", wrap_message(message)
            )

        @client.event
        async def on_ready():
            await trio_asyncio.trio_as_aio(self.receive_message)("READY", client.user)

    async def _call(self, func, *args, **kwargs):
        """Awaits a discord.py coroutine function from trio.

        Raises:
            PlatformError -- Discord answered with an error, or could not be
                             reached at all.
        """

        name = getattr(func, "__qualname__", func)

        try:
            return await trio_asyncio.aio_as_trio(func)(*args, **kwargs)

        except discord.HTTPException as err:
            raise PlatformError(
                "{} failed: {} {}".format(name, err.status, err.text)
            ) from err

        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as err:
            raise PlatformError("{} failed: {!r}".format(name, err)) from err

    # === Platform protocol ===

    async def list_channels(self, guild_id: int) -> List[GuildChannel]:
        guild = self.client.get_guild(guild_id) or await self._call(
            self.client.fetch_guild, guild_id
        )
        channels = await self._call(guild.fetch_channels)

        return [wrap_channel(channel) for channel in channels]

    async def _resolve(self, channel_id: int):
        return self.client.get_channel(channel_id) or await self._call(
            self.client.fetch_channel, channel_id
        )

    async def get_channel(self, channel_id: int) -> Optional[GuildChannel]:
        channel = await self._resolve(channel_id)

        if not isinstance(channel, discord.abc.GuildChannel):
            return None

        return wrap_channel(channel)

    async def category_name(self, category_id: int) -> str:
        category = await self._resolve(category_id)

        if not isinstance(category, discord.CategoryChannel):
            raise TopologyError("channel {} is not a category".format(category_id))

        return category.name

    async def list_endpoints(self, channel: GuildChannel) -> List[discord.Webhook]:
        return await self._call(channel.raw.webhooks)

    async def create_endpoint(self, channel: GuildChannel, name: str) -> discord.Webhook:
        return await self._call(channel.raw.create_webhook, name=name)

    async def post_as(
        self, endpoint: discord.Webhook, username: str, content: str, avatar_url: str
    ):
        await self._call(
            endpoint.send, content, username=username, avatar_url=avatar_url
        )

    def own_user_id(self) -> Optional[int]:
        if self.client is None or self.client.user is None:
            return None

        return self.client.user.id

    # === Lifetime ===

    async def _trio_asyncio_start(self):
        intents = discord.Intents.default()
        intents.typing = False
        intents.presences = False
        intents.message_content = True

        self.client = discord.Client(intents=intents)

        self._setup_client(self.client)

        await self.client.login(self._token)
        await self.client.connect()

    async def start(self):
        """Starts the Discord client. Returns once the client is closed."""

        self._running = True

        try:
            await trio_asyncio.aio_as_trio(self._trio_asyncio_start)()

        finally:
            self._running = False

    async def stop(self):
        if not self.running():
            return False

        self._stopping = True

        try:
            await trio_asyncio.aio_as_trio(self.client.close)()

        finally:
            self._stopping = False

        return True
