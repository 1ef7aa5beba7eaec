"""
The Backend class.

The base class of both discirc backends (the Discord
gateway and the IRC connection) is here defined.
"""

import logging
from typing import Callable, Dict, List, Optional

import trio


class Backend:
    """
    Event emitting backend superclass.

    Actual discirc backends are supposed to subclass the Backend class, which
    nonetheless provides the listener registry the bridge hooks into.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._listeners = {}  # type: Dict[str, List[Callable]]
        self._global_listeners = []  # type: List[Callable]

        self._running = False
        self._stopping = False

        self.stop_scopes = set()  # type: set[trio.CancelScope]
        self.logger = logger or logging.getLogger(type(self).__module__)

    def listen(self, name: str = "_"):
        """Adds a listener for specific messages received in this backend.
        Use as a decorator generating method.

        Keyword Arguments:
            name {str} -- The name of the event to listen for (default: {'_'})

        Returns:
            function -- The decorator method.
        """

        def _decorator(func):
            self._listeners.setdefault(name, []).append(func)
            return func

        return _decorator

    def listen_all(self):
        """Adds a listener for all messages received in this backend.
        Use as a decorator generating method.

        Returns:
            function -- The decorator method.
        """

        def _decorator(func):
            self._global_listeners.append(func)
            return func

        return _decorator

    async def receive_message(self, kind: str, data: any):
        """Call this function whenever a message is received in this backend.
        Used either by subclasses or to 'simulate' messages.

        Listeners are awaited one after the other, in the order they were
        registered, so events emitted by a single backend are handled in
        the order they arrived.

            >>> import trio
            >>> dummy_backend = Backend()
            ...
            >>> @dummy_backend.listen('PRIVMSG')
            ... async def privmsg(kind, data):
            ...     print(kind, data)
            ...
            >>> @dummy_backend.listen_all()
            ... async def anything(kind, data):
            ...     print('any', kind)
            ...
            >>> trio.run(dummy_backend.receive_message, 'PRIVMSG', 'hello')
            PRIVMSG hello
            any PRIVMSG

        Arguments:
            kind {str} -- The kind of message (aka name argument in listen).
            data {any} -- The message's data.
        """

        for listener in self._listeners.get(kind, []) + self._global_listeners:
            await listener(kind, data)

    def running(self) -> bool:
        """Returns whether this backend is still up and running.

            >>> Backend().running()
            False
        """

        return self._running and not self._stopping

    def new_stop_scope(self) -> trio.CancelScope:
        """Makes a new Trio cancel scope, which is cancelled
        when the backend is stopped.

        Returns:
            trio.CancelScope -- The stop scope.
        """

        scope = trio.CancelScope()
        self.stop_scopes.add(scope)

        return scope

    def cancel_stop_scopes(self):
        for scope in self.stop_scopes:
            scope.cancel()

        self.stop_scopes.clear()

    async def start(self):
        """Starts the backend."""

        raise NotImplementedError("Please subclass and implement!")

    async def stop(self):
        """Stops the backend."""

        raise NotImplementedError("Please subclass and implement!")
