"""
The guild platform, as seen by the bridge.

The bridge never talks to discord.py directly; it goes through
the Platform protocol, which the Discord backend implements.
"""

import typing
from typing import Any, List, Optional

import attr


@attr.s(auto_attribs=True, frozen=True)
class GuildChannel:
    """A channel of the bridged guild."""

    id: int
    name: str
    is_text: bool = True
    category_id: Optional[int] = None
    raw: Any = attr.ib(default=None, eq=False, repr=False)


@attr.s(auto_attribs=True, frozen=True)
class InboundMessage:
    """A message received from the guild platform's gateway."""

    channel_id: int
    author_id: int
    author_name: str
    content: str
    author_is_bot: bool = False
    webhook_id: Optional[int] = None
    guild_id: Optional[int] = None

    def is_webhook_post(self) -> bool:
        return self.webhook_id is not None


class Endpoint(typing.Protocol):
    """
    An impersonation endpoint (a webhook). Posting through it
    shows an arbitrary name and avatar instead of the bot's own.
    """

    id: int


class Platform(typing.Protocol):
    """The capabilities the bridge needs from the guild platform.

    Every method may raise discirc.errors.PlatformError.
    """

    async def list_channels(self, guild_id: int) -> List[GuildChannel]:
        """Lists every channel of a guild."""
        ...

    async def get_channel(self, channel_id: int) -> Optional[GuildChannel]:
        """Resolves a channel by ID; None if it is not a guild channel."""
        ...

    async def category_name(self, category_id: int) -> str:
        """Resolves the display name of a category."""
        ...

    async def list_endpoints(self, channel: GuildChannel) -> List[Endpoint]:
        """Lists the webhooks of a channel."""
        ...

    async def create_endpoint(self, channel: GuildChannel, name: str) -> Endpoint:
        """Creates a new webhook in a channel."""
        ...

    async def post_as(
        self, endpoint: Endpoint, username: str, content: str, avatar_url: str
    ):
        """Posts a message through a webhook, under another name and avatar."""
        ...

    def own_user_id(self) -> Optional[int]:
        """The user ID the bridge is logged in as, once ready."""
        ...
