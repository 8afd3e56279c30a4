"""
The errors raised by the transport. Each category maps to a different retry policy for callers:
resolution and connection errors can be retried with backoff, while a TransportError mid-stream
is fatal for that connection.
"""


class HostlinkError(Exception):
    """ Base class for all errors raised by the transport. """


class ResolutionError(HostlinkError):
    """ Indicates a problem resolving candidate hosts into addresses. """


class NoHostsResolvedError(ResolutionError):
    """ None of the supplied hosts resolved to any connectable address. """


class ConnectorError(HostlinkError):
    """ Indicates an error condition with a connection. """
    def __init__(self, message=None, attempts=0):
        super().__init__(message or "could not connect to any of the specified hosts")
        self.attempts = attempts


class ConnectionNotConnectedError(ConnectorError):
    """ Indicates a connection is in the disconnected state when a connection is required. """


class ConnectionClosedError(ConnectorError):
    """ The connection was closed and cannot be opened again. """


class TransportError(HostlinkError):
    """
    An OS-level I/O or readiness-probe failure on an open channel.
    :param errno: the OS error number, when known
    """
    def __init__(self, message, errno=None):
        super().__init__(message)
        self.errno = errno


class ChannelTimeoutError(HostlinkError):
    """
    A readiness wait elapsed without progress.
    :param timeout_ms: the timeout that elapsed, in milliseconds
    """
    def __init__(self, message, timeout_ms=None):
        super().__init__(message)
        self.timeout_ms = timeout_ms


def os_error_text(e: OSError):
    """
    >>> os_error_text(OSError(111, 'Connection refused'))
    '[Errno 111] Connection refused'
    """
    return str(e) or e.__class__.__name__
