"""
Resolves candidate hosts into Host values holding their IPv4 and IPv6 addresses.

Literal addresses are used as-is. Names are looked up in DNS: AAAA records unless IPv4 only is
configured, then A records and a forward name lookup unless IPv6 only is configured. The forward
lookup catches names such as "localhost" that are known to the system but have no A record.
"""
import logging
import re
import socket

import dns.exception
import dns.resolver

from hostlink.config.settings import TransportSettings
from hostlink.errors import NoHostsResolvedError, ResolutionError, os_error_text
from hostlink.host import Host
from hostlink.support.trace import Tracer

logger = logging.getLogger(__name__)

_octet = r'(25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9])'
IPV4_LITERAL = re.compile(r'^(' + _octet + r'\.){3}' + _octet + r'$')


def is_ipv4_literal(value) -> bool:
    """
    >>> is_ipv4_literal('10.0.0.255')
    True
    >>> is_ipv4_literal('10.0.0.256')
    False
    """
    return bool(IPV4_LITERAL.match(value))


def strip_brackets(value):
    """
    >>> strip_brackets('[::1]')
    '::1'
    """
    return value[1:-1] if value.startswith('[') and value.endswith(']') else value


def is_ipv6_literal(value) -> bool:
    """
    >>> is_ipv6_literal('::1')
    True
    >>> is_ipv6_literal('[fe80::1%eth0]')
    True
    >>> is_ipv6_literal('example.com')
    False
    """
    address = strip_brackets(value).split('%', 1)[0]
    if ':' not in address:
        return False
    try:
        socket.inet_pton(socket.AF_INET6, address)
        return True
    except (OSError, ValueError):
        return False


def split_host_port(value, default_port=None):
    """
    Splits a "host:port" string. Unbracketed IPv6 literals are taken to have no port.

    >>> split_host_port('example.com:8080')
    ('example.com', '8080')
    >>> split_host_port('[::1]:25', 80)
    ('::1', '25')
    >>> split_host_port('::1', 80)
    ('::1', 80)
    >>> split_host_port('example.com', 80)
    ('example.com', 80)
    """
    if value.startswith('['):
        end = value.find(']')
        if end > 0:
            rest = value[end + 1:]
            port = rest[1:] if rest.startswith(':') and len(rest) > 1 else default_port
            return value[1:end], port
    if value.count(':') == 1:
        host, port = value.split(':')
        return host, port or default_port
    return value, default_port


def prepare_pair(entry, default_port=None):
    """
    Normalises a candidate into a (host, port) pair.
    :param entry: a (host, port) sequence, or a "host:port" or bare host string
    :param default_port: the port used when the entry does not name one
    """
    if isinstance(entry, (tuple, list)):
        if len(entry) != 2:
            raise ValueError("expected a (host, port) pair, got %r" % (entry,))
        host, port = entry
    elif isinstance(entry, str):
        host, port = split_host_port(entry, default_port)
    else:
        raise TypeError("cannot use %r as a host" % (entry,))
    if port is None:
        raise ValueError("no port given for host %s" % host)
    return host, port


def pairs_from(hosts, ports):
    """
    Combines hosts with ports.
    :param hosts: a host, or a list of hosts
    :param ports: a port common to all hosts, or a list of ports parallel to hosts
    :return: the list of (host, port) pairs

    >>> pairs_from(['a', 'b'], 80)
    [('a', 80), ('b', 80)]
    >>> pairs_from('a:81', [80])
    [('a', '81')]
    """
    hosts = [hosts] if isinstance(hosts, str) else list(hosts)
    if isinstance(ports, (tuple, list)):
        if len(ports) != len(hosts):
            raise ValueError("expected %d ports, got %d" % (len(hosts), len(ports)))
        return [prepare_pair(h, p) for h, p in zip(hosts, ports)]
    return [prepare_pair(h, ports) for h in hosts]


class DnsLookup:
    """
    The name service queries used by the resolver. Record queries go to DNS through dnspython,
    forward and reverse name lookups use the system resolver.

    Record queries distinguish "no records" (an empty list) from a failed lookup, which raises
    ResolutionError.
    """

    def __init__(self, resolver: dns.resolver.Resolver = None, lifetime=None):
        """
        :param resolver: the dnspython resolver to query. Defaults to one configured from the system.
        :param lifetime: the total time in seconds allowed for each record query
        """
        self._resolver = resolver
        self.lifetime = lifetime

    @property
    def resolver(self) -> dns.resolver.Resolver:
        if self._resolver is None:
            try:
                self._resolver = dns.resolver.Resolver()
            except dns.exception.DNSException as e:
                raise ResolutionError("no DNS resolver configuration: %s" % e) from e
        return self._resolver

    def records(self, name, rdtype):
        """
        Queries the addresses held in the A or AAAA records for a name, in response order.
        """
        try:
            answer = self.resolver.resolve(name, rdtype, lifetime=self.lifetime, search=True)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.DNSException as e:
            raise ResolutionError("DNS lookup for %s records for %s failed: %s" % (rdtype, name, e)) from e
        return [rdata.address for rdata in answer]

    def host_by_name(self, name):
        """ the IPv4 address for a name from the system resolver """
        try:
            return socket.gethostbyname(name)
        except OSError as e:
            raise ResolutionError("forward lookup for %s failed: %s" % (name, os_error_text(e))) from e

    def host_by_address(self, address):
        """ the name for an address from the system resolver, or None if it is not known """
        try:
            return socket.gethostbyaddr(address)[0]
        except OSError as e:
            logger.debug("reverse lookup for %s failed: %s" % (address, os_error_text(e)))
            return None


class Resolver:
    """
    Turns candidate (host, port) pairs into an ordered list of Host values.

    :param settings: the TransportSettings giving the address family policy and debug flag
    :param lookup: the DnsLookup used for name service queries
    :param trace: a trace sink, logger or callable receiving debug trace lines
    """

    def __init__(self, settings: TransportSettings = None, lookup: DnsLookup = None, trace=None):
        self.settings = settings or TransportSettings()
        self.lookup = lookup or DnsLookup()
        self.trace = Tracer(trace, lambda: self.settings.debug)

    def resolve(self, pairs, resolve_by_address=False):
        """
        Resolves each candidate, dropping those without usable addresses.
        :param pairs: the candidates, each a (host, port) pair or a "host:port" string
        :param resolve_by_address: name literal hosts by their reverse lookup
        :return: the list of Host values, in candidate order
        :raises NoHostsResolvedError: when no candidate has a usable address
        """
        hosts = []
        total = 0
        for entry in pairs:
            name, port = prepare_pair(entry)
            host = self.resolve_host(name, port, resolve_by_address)
            if not self._usable(host):
                self.trace("No usable addresses for %s, skipping", host.key())
                continue
            total += host.address_count
            hosts.append(host)
        self.trace("Built connection pool of %d host(s) with %d ip(s) in total", len(hosts), total)
        if not hosts:
            raise NoHostsResolvedError("No valid hosts were found")
        return hosts

    def resolve_host(self, name, port, resolve_by_address=False) -> Host:
        """
        Resolves a single host. Never fails: a host that cannot be resolved has no addresses.
        """
        if is_ipv4_literal(name):
            return Host(self._literal_name(name, resolve_by_address), port, [name], [])
        if is_ipv6_literal(name):
            address = strip_brackets(name)
            return Host(self._literal_name(address, resolve_by_address), port, [], [address])

        ipv4s, ipv6s = [], []
        if self.settings.ipv6_enabled:
            # check the AAAA records first
            ipv6s = self._records(name, 'AAAA')
            self.trace("IPv6 addresses for %s: %s", name, ', '.join(ipv6s))
        if self.settings.ipv4_enabled:
            ipv4s = self._records(name, 'A')
            # the name may be known to the system without an A record, such as "localhost"
            ip = self._host_by_name(name)
            if ip is not None and ip != name and ip not in ipv4s:
                ipv4s.append(ip)
            self.trace("IPv4 addresses for %s: %s", name, ', '.join(ipv4s))
        return Host(name, port, ipv4s, ipv6s)

    def host_by_address(self, address):
        """
        Reverse resolves an address into a name.
        :return: the name, or None when the address has no name
        """
        return self.lookup.host_by_address(strip_brackets(address))

    def _literal_name(self, address, resolve_by_address):
        if not resolve_by_address:
            return address
        name = self.host_by_address(address)
        self.trace("Reverse lookup for %s: %s", address, name or 'failed')
        return name or address

    def _records(self, name, rdtype):
        try:
            return list(self.lookup.records(name, rdtype))
        except ResolutionError as e:
            logger.debug(str(e))
            self.trace("DNS lookup for %s records for: %s failed", rdtype, name)
            return []

    def _host_by_name(self, name):
        try:
            return self.lookup.host_by_name(name)
        except ResolutionError as e:
            logger.debug(str(e))
            self.trace("Forward lookup for %s failed", name)
            return None

    def _usable(self, host: Host):
        if self.settings.ipv4_only:
            return bool(host.ipv4_addresses)
        if self.settings.ipv6_only:
            return bool(host.ipv6_addresses)
        return host.has_addresses
