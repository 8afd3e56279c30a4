import socket

from hostlink.support.mixins import CommonEqualityMixin, StringerMixin

DEFAULT_SEND_TIMEOUT = 100
DEFAULT_RECV_TIMEOUT = 750


class TransportSettings(CommonEqualityMixin, StringerMixin):
    """
    The configuration read by the resolver and the establisher when a connection is opened.

    Settings are passed explicitly to each component rather than held as process state, so
    independent configurations can be used side by side. Changing a settings value has no
    effect on connections that are already open.

    :param force_ipv4: use only IPv4 addresses. Takes precedence over force_ipv6 when both are set.
    :param force_ipv6: use only IPv6 addresses.
    :param random_host_order: shuffle the resolved hosts each time a connection is opened
    :param debug: emit trace lines to the trace sink
    :param send_timeout: the send timeout in milliseconds
    :param recv_timeout: the receive timeout in milliseconds
    :param connect_timeout: the connect timeout in milliseconds, or None or 0 to use the OS timeout
    """

    def __init__(self, force_ipv4=False, force_ipv6=False, random_host_order=False, debug=False,
                 send_timeout=DEFAULT_SEND_TIMEOUT, recv_timeout=DEFAULT_RECV_TIMEOUT, connect_timeout=None):
        self.force_ipv4 = bool(force_ipv4)
        self.force_ipv6 = bool(force_ipv6)
        self.random_host_order = bool(random_host_order)
        self.debug = bool(debug)
        self.send_timeout = check_timeout(send_timeout)
        self.recv_timeout = check_timeout(recv_timeout)
        self.connect_timeout = None if connect_timeout is None else check_timeout(connect_timeout)

    @property
    def ipv4_enabled(self) -> bool:
        return self.force_ipv4 or not self.force_ipv6

    @property
    def ipv6_enabled(self) -> bool:
        return not self.force_ipv4

    @property
    def ipv4_only(self) -> bool:
        return self.force_ipv4

    @property
    def ipv6_only(self) -> bool:
        return self.force_ipv6 and not self.force_ipv4

    def families(self):
        """
        The address families to try, in connection order.
        >>> TransportSettings().families() == (socket.AF_INET6, socket.AF_INET)
        True
        >>> TransportSettings(force_ipv4=True, force_ipv6=True).families() == (socket.AF_INET,)
        True
        """
        families = []
        if self.ipv6_enabled:
            families.append(socket.AF_INET6)
        if self.ipv4_enabled:
            families.append(socket.AF_INET)
        return tuple(families)

    def copy(self, **changes):
        """ returns a new settings value with the given attributes replaced. """
        values = dict(self.__dict__)
        values.update(changes)
        return TransportSettings(**values)


def check_timeout(ms):
    ms = int(ms)
    if ms < 0:
        raise ValueError("timeout must not be negative: %s" % ms)
    return ms
