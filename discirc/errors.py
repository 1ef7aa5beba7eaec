class BridgeError(Exception):
    """
    A common superclass for all
    exceptions regarding discirc.
    """
    pass

# == Platform errors ==

class PlatformError(BridgeError):
    """
    Raised when a call to the guild platform
    (listing channels, resolving categories,
    managing or executing webhooks) fails.
    """
    pass

class TopologyError(PlatformError):
    """
    Raised when a single channel's category
    or webhook cannot be resolved while the
    bridge topology is being built.
    """
    pass

# == IRC errors ==

class IRCError(BridgeError):
    """
    A common superclass for all exceptions
    involving discirc.backends.irc.IRCConnection.
    """
    pass

class NicknameExhaustedError(IRCError):
    """
    Raised when the server rejects the configured
    nickname and every fallback nickname.
    """
    pass

class ConnectionClosedError(IRCError):
    """
    Raised when the IRC server closes the connection
    without the bridge having asked it to stop.
    """
    pass
