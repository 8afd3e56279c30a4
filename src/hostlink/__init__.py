"""


Host-pool TCP transport

- Host: an endpoint name and port with the IPv4 and IPv6 addresses resolved for it.
- Resolver: turns (host, port) candidates into Host values. Literal addresses are used directly,
  names are looked up as AAAA and A records, subject to the IPv4-only/IPv6-only settings.
- ConnectionEstablisher: opens one socket to the first reachable address, trying IPv6 addresses
  of every host before the IPv4 addresses.
- BlockingChannel: the conduit around the connected socket. Reads and writes block for at most
  the send/receive timeout and handle partial transfers.
- SocketConnector: the connector that ties these together for a pool of hosts.

The transport never interprets the bytes it carries. Framing belongs to the caller.


## Threading

Everything is synchronous. Each call blocks the calling thread for up to the configured timeout.
Callers that need concurrency use one connector per thread. Closing a channel from one thread
while another is blocked in a call on it is ill-defined.


## Settings

TransportSettings are passed to each component explicitly. They can be loaded from configobj
files with hostlink.config.config.load_settings().
"""
