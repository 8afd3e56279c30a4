import logging
import random
import socket

from hostlink.config.settings import TransportSettings
from hostlink.errors import ConnectorError, os_error_text
from hostlink.support.timeval import pack_timeval
from hostlink.support.trace import Tracer

logger = logging.getLogger(__name__)

family_names = {
    socket.AF_INET: 'ipv4',
    socket.AF_INET6: 'ipv6',
}


def resolve_port(port) -> int:
    """
    Converts a port number or service name into a port number.
    >>> resolve_port('80')
    80
    >>> resolve_port(8080)
    8080
    """
    if isinstance(port, int):
        return port
    port = str(port).strip()
    if port.isdigit():
        return int(port)
    return socket.getservbyname(port, 'tcp')


def set_timeouts(sock, send_timeout, recv_timeout):
    """ applies send and receive timeouts, in milliseconds, to the socket as socket options. """
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDTIMEO, pack_timeval(send_timeout))
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVTIMEO, pack_timeval(recv_timeout))


class ConnectionEstablisher:
    """
    Opens a single connected socket to the first reachable address of a list of hosts.

    IPv6 addresses are tried first, every host in order, unless IPv4 only is configured. If none
    accepts a connection the IPv4 addresses are tried in the same way, unless IPv6 only is configured.
    The first successful connection wins. Every other socket created along the way is closed.

    :param settings: the TransportSettings giving the address family policy, host ordering and timeouts
    :param trace: a trace sink, logger or callable receiving debug trace lines
    :param socket_factory: creates sockets given (family, type, proto)
    :param shuffle: shuffles the host list in place when random host order is configured
    """

    def __init__(self, settings: TransportSettings = None, trace=None, socket_factory=socket.socket,
                 shuffle=random.shuffle):
        self.settings = settings or TransportSettings()
        self.trace = Tracer(trace, lambda: self.settings.debug)
        self.socket_factory = socket_factory
        self.shuffle = shuffle

    def open(self, hosts) -> socket.socket:
        """
        Connects to the first reachable address.
        :param hosts: the Host values, typically from Resolver.resolve()
        :return: the connected socket
        :raises ConnectorError: when no address accepted a connection
        """
        hosts = list(hosts)
        if self.settings.random_host_order:
            self.shuffle(hosts)
        attempts = 0
        for family in self.settings.families():
            candidates = [(address, host.port) for host in hosts for address in host.addresses(family)]
            if not candidates:
                continue
            sock = None
            try:
                for address, port in candidates:
                    if sock is None:
                        sock = self._create_socket(family)
                    attempts += 1
                    if self._connect(sock, family, address, port):
                        connected, sock = sock, None
                        return connected
                    # a socket cannot be reused after a failed connect
                    sock.close()
                    sock = None
            finally:
                if sock is not None:
                    sock.close()
        raise ConnectorError("Could not connect to any of the specified hosts (%d attempts)" % attempts, attempts)

    def _create_socket(self, family):
        try:
            sock = self.socket_factory(family, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        except OSError as e:
            raise ConnectorError("Could not create %s socket; %s" % (family_names[family], os_error_text(e))) from e
        try:
            set_timeouts(sock, self.settings.send_timeout, self.settings.recv_timeout)
        except OSError as e:
            sock.close()
            raise ConnectorError("Could not set timeouts on socket; %s" % os_error_text(e)) from e
        return sock

    def _connect(self, sock, family, address, port):
        """
        Attempts a single connection.
        :return: True if connected, False if the attempt failed
        """
        name = family_names[family]
        self.trace("Using %s, connecting to %s:%s...", name, address, port)
        # a zero connect timeout waits as long as the OS does
        connect_timeout = self.settings.connect_timeout or None
        try:
            if connect_timeout is not None:
                sock.settimeout(connect_timeout / 1000)
            sock.connect((address, resolve_port(port)))
            if connect_timeout is not None:
                sock.settimeout(None)
        except OSError as e:
            reason = os_error_text(e)
            self.trace("Using %s, socket connect to %s:%s failed; %s", name, address, port, reason)
            logger.debug("error opening socket to %s:%s: %s" % (address, port, reason))
            return False
        self.trace("Using %s, connected to %s:%s!", name, address, port)
        logger.info("opened socket to %s:%s" % (address, port))
        return True
