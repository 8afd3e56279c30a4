import socket

from hostlink.support.mixins import CommonEqualityMixin, FrozenMixin


class Host(FrozenMixin, CommonEqualityMixin):
    """
    A resolved endpoint: the name as given by the caller, the port to connect to, and the
    IPv4 and IPv6 addresses found for the name, each in resolution order.

    Host values are immutable.

    >>> Host('localhost', 80, ['127.0.0.1'])
    Host('localhost', 80, ipv4=('127.0.0.1',), ipv6=())
    """

    def __init__(self, name: str, port, ipv4_addresses=(), ipv6_addresses=()):
        """
        :param name: the hostname or literal address supplied by the caller
        :param port: the destination port. A string is permitted for a symbolic service name.
        :param ipv4_addresses: dotted-quad addresses resolved for name
        :param ipv6_addresses: IPv6 addresses resolved for name
        """
        self.name = name
        self.port = port
        self.ipv4_addresses = tuple(ipv4_addresses or ())
        self.ipv6_addresses = tuple(ipv6_addresses or ())
        self._freeze()

    @property
    def has_addresses(self) -> bool:
        return bool(self.ipv4_addresses or self.ipv6_addresses)

    @property
    def address_count(self) -> int:
        return len(self.ipv4_addresses) + len(self.ipv6_addresses)

    def addresses(self, family):
        """
        :param family: socket.AF_INET or socket.AF_INET6
        :return: the addresses of that family
        """
        if family == socket.AF_INET:
            return self.ipv4_addresses
        if family == socket.AF_INET6:
            return self.ipv6_addresses
        raise ValueError("unsupported address family %s" % family)

    def key(self):
        """
        >>> Host('name', 55).key()
        'name:55'
        """
        return str(self.name) + ':' + str(self.port)

    def __repr__(self):
        return "Host(%r, %r, ipv4=%r, ipv6=%r)" % (self.name, self.port, self.ipv4_addresses, self.ipv6_addresses)

    def __str__(self):
        return self.key()
