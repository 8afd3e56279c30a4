import socket
import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, is_, calling, raises, has_property

from hostlink.config.settings import TransportSettings
from hostlink.connector.establisher import ConnectionEstablisher, resolve_port
from hostlink.errors import ConnectorError
from hostlink.host import Host
from hostlink.support.timeval import pack_timeval


def closed_port():
    """ a local port that nothing listens on """
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(('127.0.0.1', 0))
    port = s.getsockname()[1]
    s.close()
    return port


class FakeSockets:
    """ a socket factory producing mocks that connect only to the given addresses """

    def __init__(self, reachable=()):
        self.reachable = set(reachable)
        self.created = []
        self.connects = []

    def __call__(self, family, type, proto):
        sock = Mock()
        sock.family = family

        def connect(address):
            self.connects.append(address)
            if address not in self.reachable:
                raise ConnectionRefusedError(111, 'Connection refused')
        sock.connect.side_effect = connect
        self.created.append(sock)
        return sock


class ResolvePortTest(unittest.TestCase):

    def test_numbers(self):
        assert_that(resolve_port(80), is_(80))
        assert_that(resolve_port('2775'), is_(2775))

    def test_unknown_service(self):
        assert_that(calling(resolve_port).with_args('no-such-service-name'), raises(OSError))


class ConnectionEstablisherTest(unittest.TestCase):

    def test_ipv6_preferred(self):
        sockets = FakeSockets([('::1', 80), ('127.0.0.1', 80)])
        sut = ConnectionEstablisher(socket_factory=sockets)
        sock = sut.open([Host('localhost', 80, ['127.0.0.1'], ['::1'])])
        assert_that(sock.family, is_(socket.AF_INET6))
        assert_that(sockets.connects, is_([('::1', 80)]))
        assert_that(len(sockets.created), is_(1))
        sock.close.assert_not_called()

    def test_every_ipv6_address_before_ipv4(self):
        sockets = FakeSockets([('192.0.2.1', 80)])
        sut = ConnectionEstablisher(socket_factory=sockets)
        hosts = [Host('a', 80, ['192.0.2.1'], ['2001:db8::1']), Host('b', 81, ['192.0.2.2'], ['2001:db8::2'])]
        sock = sut.open(hosts)
        assert_that(sock.family, is_(socket.AF_INET))
        assert_that(sockets.connects, is_([('2001:db8::1', 80), ('2001:db8::2', 81), ('192.0.2.1', 80)]))

    def test_unused_sockets_are_closed(self):
        sockets = FakeSockets([('192.0.2.2', 81)])
        sut = ConnectionEstablisher(socket_factory=sockets)
        hosts = [Host('a', 80, ['192.0.2.1'], ['2001:db8::1']), Host('b', 81, ['192.0.2.2'])]
        sock = sut.open(hosts)
        assert_that(sockets.created[-1], is_(sock))
        for created in sockets.created[:-1]:
            created.close.assert_called_once_with()
        sock.close.assert_not_called()

    def test_force_ipv4(self):
        sockets = FakeSockets([('::1', 80), ('127.0.0.1', 80)])
        sut = ConnectionEstablisher(TransportSettings(force_ipv4=True), socket_factory=sockets)
        sock = sut.open([Host('localhost', 80, ['127.0.0.1'], ['::1'])])
        assert_that(sock.family, is_(socket.AF_INET))
        assert_that(sockets.connects, is_([('127.0.0.1', 80)]))

    def test_force_ipv6(self):
        sockets = FakeSockets([('127.0.0.1', 80)])
        sut = ConnectionEstablisher(TransportSettings(force_ipv6=True), socket_factory=sockets)
        assert_that(calling(sut.open).with_args([Host('localhost', 80, ['127.0.0.1'], ['::1'])]),
                    raises(ConnectorError))
        assert_that(sockets.connects, is_([('::1', 80)]))

    def test_total_failure_names_attempts(self):
        sockets = FakeSockets()
        sut = ConnectionEstablisher(socket_factory=sockets)
        hosts = [Host('a', 80, ['192.0.2.1', '192.0.2.2'], ['2001:db8::1'])]
        assert_that(calling(sut.open).with_args(hosts),
                    raises(ConnectorError, "3 attempts"))
        for created in sockets.created:
            created.close.assert_called_once_with()
        with self.assertRaises(ConnectorError) as raised:
            sut.open(hosts)
        assert_that(raised.exception, has_property('attempts', 3))

    def test_no_hosts(self):
        sut = ConnectionEstablisher(socket_factory=FakeSockets())
        assert_that(calling(sut.open).with_args([]), raises(ConnectorError, "0 attempts"))

    def test_timeouts_applied_before_connect(self):
        sockets = FakeSockets([('192.0.2.1', 80)])
        sut = ConnectionEstablisher(TransportSettings(send_timeout=1500, recv_timeout=250), socket_factory=sockets)
        sock = sut.open([Host('a', 80, ['192.0.2.1'])])
        sock.setsockopt.assert_has_calls([
            call(socket.SOL_SOCKET, socket.SO_SNDTIMEO, pack_timeval(1500)),
            call(socket.SOL_SOCKET, socket.SO_RCVTIMEO, pack_timeval(250))])

    def test_connect_timeout(self):
        sockets = FakeSockets([('192.0.2.1', 80)])
        sut = ConnectionEstablisher(TransportSettings(connect_timeout=2500), socket_factory=sockets)
        sock = sut.open([Host('a', 80, ['192.0.2.1'])])
        sock.settimeout.assert_has_calls([call(2.5), call(None)])

    def test_zero_connect_timeout(self):
        sockets = FakeSockets([('192.0.2.1', 80)])
        sut = ConnectionEstablisher(TransportSettings(connect_timeout=0), socket_factory=sockets)
        sock = sut.open([Host('a', 80, ['192.0.2.1'])])
        sock.settimeout.assert_not_called()

    def test_socket_creation_failure(self):
        factory = Mock(side_effect=OSError(97, 'Address family not supported by protocol'))
        sut = ConnectionEstablisher(socket_factory=factory)
        assert_that(calling(sut.open).with_args([Host('a', 80, [], ['::1'])]),
                    raises(ConnectorError, "Could not create ipv6 socket"))

    def test_random_host_order(self):
        sockets = FakeSockets([('192.0.2.1', 80), ('192.0.2.2', 80)])
        sut = ConnectionEstablisher(TransportSettings(random_host_order=True), socket_factory=sockets,
                                    shuffle=lambda hosts: hosts.reverse())
        sock = sut.open([Host('a', 80, ['192.0.2.1']), Host('b', 80, ['192.0.2.2'])])
        assert_that(sockets.connects, is_([('192.0.2.2', 80)]))
        sock.close.assert_not_called()

    def test_host_list_is_not_modified(self):
        sockets = FakeSockets([('192.0.2.1', 80)])
        sut = ConnectionEstablisher(TransportSettings(random_host_order=True), socket_factory=sockets,
                                    shuffle=lambda hosts: hosts.reverse())
        hosts = [Host('a', 80, ['192.0.2.1']), Host('b', 80, ['192.0.2.2'])]
        sut.open(hosts)
        assert_that([h.name for h in hosts], is_(['a', 'b']))

    def test_trace(self):
        trace = Mock()
        sockets = FakeSockets([('192.0.2.2', 80)])
        sut = ConnectionEstablisher(TransportSettings(debug=True), trace, socket_factory=sockets)
        sut.open([Host('a', 80, ['192.0.2.1', '192.0.2.2'])])
        trace.assert_has_calls([
            call("Using ipv4, connecting to 192.0.2.1:80..."),
            call("Using ipv4, socket connect to 192.0.2.1:80 failed; [Errno 111] Connection refused"),
            call("Using ipv4, connecting to 192.0.2.2:80..."),
            call("Using ipv4, connected to 192.0.2.2:80!")])


class LoopbackEstablisherTest(unittest.TestCase):

    def setUp(self):
        self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server.bind(('127.0.0.1', 0))
        self.server.listen(5)
        self.port = self.server.getsockname()[1]

    def tearDown(self):
        self.server.close()

    def test_unreachable(self):
        sut = ConnectionEstablisher(TransportSettings(force_ipv4=True))
        hosts = [Host('a', closed_port(), ['127.0.0.1']), Host('b', closed_port(), ['127.0.0.1'])]
        assert_that(calling(sut.open).with_args(hosts), raises(ConnectorError, "2 attempts"))

    def test_first_success_wins(self):
        sut = ConnectionEstablisher(TransportSettings(force_ipv4=True))
        hosts = [Host('down', closed_port(), ['127.0.0.1']), Host('up', self.port, ['127.0.0.1'])]
        sock = sut.open(hosts)
        try:
            assert_that(sock.getpeername(), is_(('127.0.0.1', self.port)))
            accepted, _ = self.server.accept()
            accepted.close()
        finally:
            sock.close()

    def test_timeouts_on_socket(self):
        sut = ConnectionEstablisher(TransportSettings(send_timeout=1500, recv_timeout=200))
        sock = sut.open([Host('up', self.port, ['127.0.0.1'])])
        try:
            assert_that(sock.getsockopt(socket.SOL_SOCKET, socket.SO_RCVTIMEO, len(pack_timeval(0))),
                        is_(pack_timeval(200)))
            assert_that(sock.getsockopt(socket.SOL_SOCKET, socket.SO_SNDTIMEO, len(pack_timeval(0))),
                        is_(pack_timeval(1500)))
        finally:
            sock.close()

    def test_zero_connect_timeout_blocks(self):
        sut = ConnectionEstablisher(TransportSettings(force_ipv4=True, connect_timeout=0))
        sock = sut.open([Host('up', self.port, ['127.0.0.1'])])
        try:
            assert_that(sock.getpeername(), is_(('127.0.0.1', self.port)))
            assert_that(sock.gettimeout(), is_(None))
        finally:
            sock.close()

    def test_connect_timeout_restores_blocking(self):
        sut = ConnectionEstablisher(TransportSettings(force_ipv4=True, connect_timeout=2000))
        sock = sut.open([Host('up', self.port, ['127.0.0.1'])])
        try:
            assert_that(sock.gettimeout(), is_(None))
        finally:
            sock.close()


if __name__ == '__main__':  # pragma no cover
    unittest.main()
