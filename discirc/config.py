"""
Bridge configuration.

The configuration is parsed once at startup and handed to the
bridge explicitly; nothing reads it from global state afterwards.
"""

import argparse
import os
import typing
from typing import List, Mapping, Optional, Sequence

import attr

DEFAULT_NICKNAME = "PonasBridge"
DEFAULT_AVATAR_URL = "https://i.imgur.com/FxPoAVr.png"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@attr.s(auto_attribs=True, frozen=True)
class BridgeConfig:
    """Everything the bridge needs to know in order to run.

        >>> config = BridgeConfig('token', 1234)
        >>> config.nickname
        'PonasBridge'
        >>> config.irc_port
        6667
    """

    token: str = attr.ib(repr=False)
    guild_id: int
    nickname: str = DEFAULT_NICKNAME
    avatar_url: str = DEFAULT_AVATAR_URL
    irc_port: int = 6667
    irc_ssl: bool = False
    realname: str = "Discord <-> IRC bridge"
    webhook_prefix: str = "irc_bridge_"
    reconnect_min: float = 1.0
    reconnect_max: float = 300.0
    log_level: str = "INFO"

    def alt_nicknames(self) -> List[str]:
        """The fallback nicknames tried when the server rejects the
        configured one.

            >>> BridgeConfig('token', 1234, nickname='Bridge').alt_nicknames()
            ['Bridge_', 'Bridge__', 'Bridge___']
        """

        return [self.nickname + "_" * count for count in range(1, 4)]

    @classmethod
    def from_args(
        cls: typing.Type["BridgeConfig"],
        argv: Optional[Sequence[str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BridgeConfig":
        """Parses the command line, falling back to environment
        variables for the nickname, token and guild.

            >>> config = BridgeConfig.from_args(['-t', 'abc', '-g', '42'], environ={})
            >>> config.guild_id, config.nickname
            (42, 'PonasBridge')

        Keyword Arguments:
            argv {Optional[Sequence[str]]} -- The arguments; sys.argv if None.
            environ {Optional[Mapping[str, str]]} -- The environment; os.environ if None.

        Returns:
            BridgeConfig -- The parsed configuration.
        """

        if environ is None:
            environ = os.environ

        parser = argparse.ArgumentParser(
            prog="discirc", description="A simple Discord <-> IRC bridge"
        )
        parser.add_argument(
            "-n",
            "--nickname",
            default=environ.get("NICKNAME", DEFAULT_NICKNAME),
            help="IRC nickname (env: NICKNAME)",
        )
        parser.add_argument(
            "-t",
            "--token",
            default=environ.get("DISCORD_TOKEN"),
            help="Discord bot token (env: DISCORD_TOKEN)",
        )
        parser.add_argument(
            "-g",
            "--guild",
            type=int,
            default=environ.get("DISCORD_GUILD"),
            help="Discord server ID (env: DISCORD_GUILD)",
        )
        parser.add_argument(
            "-p", "--port", type=int, default=6667, help="IRC server port"
        )
        parser.add_argument(
            "--ssl",
            action="store_true",
            help="connect to the IRC servers over TLS (usually with --port 6697)",
        )
        parser.add_argument(
            "--avatar-url",
            default=DEFAULT_AVATAR_URL,
            help="avatar shown for messages relayed from IRC",
        )
        parser.add_argument(
            "--log-level", default="INFO", choices=LOG_LEVELS, type=str.upper
        )

        args = parser.parse_args(argv)

        if not args.token:
            parser.error("a Discord token is required (--token or DISCORD_TOKEN)")

        if args.guild is None:
            parser.error("a Discord guild ID is required (--guild or DISCORD_GUILD)")

        return cls(
            token=args.token,
            guild_id=args.guild,
            nickname=args.nickname,
            avatar_url=args.avatar_url,
            irc_port=args.port,
            irc_ssl=args.ssl,
            log_level=args.log_level,
        )
