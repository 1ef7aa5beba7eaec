"""
discirc bridges a Discord guild with IRC: every category of
the guild is an IRC server, and every text channel in it is
one of that server's channels.
"""

from discirc.bridge import Bridge
from discirc.config import BridgeConfig

__all__ = ["Bridge", "BridgeConfig"]
