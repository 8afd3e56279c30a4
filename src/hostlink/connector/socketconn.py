import logging

from hostlink.conduit.base import ChannelState
from hostlink.conduit.socket_conduit import BlockingChannel
from hostlink.config.settings import TransportSettings, check_timeout
from hostlink.connector.base import AbstractConnector, ConnectorError
from hostlink.connector.establisher import ConnectionEstablisher
from hostlink.resolver import Resolver, pairs_from
from hostlink.support.trace import LoggerTraceSink

logger = logging.getLogger(__name__)


class SocketConnector(AbstractConnector):
    """
    A connector that communicates with the first reachable host of a pool of redundant servers.

    The hosts are resolved when the connector is constructed. connect() opens a single socket to
    the first address that accepts a connection and wraps it in a BlockingChannel, available as
    the conduit. The connector does not reconnect: once disconnected it is closed.

    >>> connector = SocketConnector(['127.0.0.1'], 80)
    >>> connector.endpoint
    ('127.0.0.1:80',)
    """

    def __init__(self, hosts, ports=None, settings: TransportSettings = None, trace=None, report_errors=True,
                 resolve_by_address=False, resolver: Resolver = None, establisher: ConnectionEstablisher = None):
        """
        :param hosts: a host, or a list of hosts to try in order. Each host is a name, a literal address,
            a "host:port" string or a (host, port) pair.
        :param ports: a port common to all hosts, or a list of ports parallel to hosts
        :param settings: the transport settings. The connector keeps its own copy.
        :param trace: a trace sink, logger or callable for debug trace lines. Defaults to the hostlink.trace logger.
        :param report_errors: log connection failures as warnings rather than at debug level
        :param resolve_by_address: name literal hosts by their reverse lookup
        :raises NoHostsResolvedError: if none of the hosts resolve
        """
        super().__init__()
        self.settings = (settings or TransportSettings()).copy()
        self.trace = trace if trace is not None else LoggerTraceSink()
        self._resolver = resolver or Resolver(self.settings, trace=self.trace)
        self._establisher = establisher or ConnectionEstablisher(self.settings, trace=self.trace)
        self._report_errors = report_errors
        self.hosts = self._resolver.resolve(pairs_from(hosts, ports), resolve_by_address)

    @property
    def endpoint(self):
        return tuple(host.key() for host in self.hosts)

    @property
    def channel(self) -> BlockingChannel:
        return self.conduit

    def _connect(self) -> BlockingChannel:
        try:
            sock = self._establisher.open(self.hosts)
        except ConnectorError as e:
            method = logger.warning if self._report_errors else logger.debug
            method("error opening socket to %s: %s" % (', '.join(self.endpoint), e))
            raise
        return BlockingChannel(sock)

    def _disconnect(self):
        pass

    def _try_available(self):
        return bool(self.hosts)

    def _connected(self):
        return self._conduit is not None and not self._conduit.closed

    def is_open(self) -> bool:
        """ probes the channel for an exceptional condition. See BlockingChannel.is_open(). """
        return self._state is ChannelState.OPEN and self._conduit.is_open()

    def set_send_timeout(self, ms):
        """
        Sets the send timeout in milliseconds. Applied to the live socket when open, otherwise used
        for the next socket opened.
        """
        if self._state is ChannelState.OPEN:
            self._conduit.send_timeout = ms
        else:
            self.settings.send_timeout = check_timeout(ms)

    def set_recv_timeout(self, ms):
        """
        Sets the receive timeout in milliseconds. Applied to the live socket when open, otherwise used
        for the next socket opened.
        """
        if self._state is ChannelState.OPEN:
            self._conduit.recv_timeout = ms
        else:
            self.settings.recv_timeout = check_timeout(ms)

    def has_data(self):
        return self.conduit.has_data()

    def read(self, max_length):
        return self.conduit.read(max_length)

    def read_all(self, length):
        return self.conduit.read_all(length)

    def write(self, buffer, chunk_size=None):
        self.conduit.write(buffer, chunk_size)

    def close(self):
        self.disconnect()
