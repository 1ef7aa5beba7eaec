"""
The routing table, from guild category to the send handle of
that category's IRC connection.
"""

import logging
from typing import Dict, Optional

import trio

logger = logging.getLogger(__name__)


class SendHandle:
    """
    The outbound side of one category's IRC connection.

    The handle outlives the connections behind it: the relay attaches
    each new connection once it has registered, and detaches it when it
    goes away. Messages sent while nothing is attached are dropped.
    """

    def __init__(self, category: str):
        self.category = category
        self.connection = None
        self.sent = 0
        self.dropped = 0

    def attach(self, connection):
        self.connection = connection

    def detach(self, connection):
        if self.connection is connection:
            self.connection = None

    def connected(self) -> bool:
        return self.connection is not None and self.connection.running()

    async def send_privmsg(self, target: str, text: str) -> bool:
        """Sends a message to an IRC channel through the attached connection.

        Arguments:
            target {str} -- The IRC channel.
            text {str} -- The message.

        Returns:
            bool -- Whether the message was handed to a live connection.
        """

        connection = self.connection

        if connection is None or not connection.running():
            self.dropped += 1
            logger.debug("%s is not connected; dropped message to %s", self.category, target)
            return False

        try:
            sent = await connection.message(target, text)

        except trio.ClosedResourceError:
            sent = False

        if sent:
            self.sent += 1

        else:
            self.dropped += 1

        return sent


class RoutingTable:
    """
    Category name to SendHandle. Entries are inserted at most once
    and never replaced; reads never wait on writes.

        >>> table = RoutingTable()
        >>> table.insert_if_absent('irc.example.org', SendHandle('irc.example.org'))
        True
        >>> table.insert_if_absent('irc.example.org', SendHandle('irc.example.org'))
        False
        >>> print(table.lookup('irc.nowhere.org'))
        None
        >>> table.misses
        1
    """

    def __init__(self):
        self._handles = {}  # type: Dict[str, SendHandle]
        self.misses = 0

    def insert_if_absent(self, category: str, handle: SendHandle) -> bool:
        """Registers a category's send handle, unless it already has one.

        Returns:
            bool -- Whether the handle was inserted.
        """

        if category in self._handles:
            return False

        self._handles[category] = handle

        return True

    def get(self, category: str) -> Optional[SendHandle]:
        return self._handles.get(category)

    def lookup(self, category: str) -> Optional[SendHandle]:
        """Like get, but counts a miss when the category isn't routed."""

        handle = self._handles.get(category)

        if handle is None:
            self.misses += 1

        return handle

    def __len__(self) -> int:
        return len(self._handles)
