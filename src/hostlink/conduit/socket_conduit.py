"""
The blocking channel: timeout-bounded reads and writes on a single connected socket.

Every call blocks the calling thread for at most the configured timeout. The timeouts are held on
the socket itself as the SO_RCVTIMEO and SO_SNDTIMEO options, so a single recv() or send() is bounded
by the OS, and the readiness waits in read_all() and write() are bounded by the same values.

Closing the socket from another thread while a call is in progress is ill-defined and should be avoided.
"""
import errno
import io
import logging
import os
import select
import socket
import struct
from socket import SOL_SOCKET

from hostlink.conduit.base import ChannelState, Conduit
from hostlink.errors import ChannelTimeoutError, TransportError, os_error_text
from hostlink.support.timeval import TIMEVAL_SIZE, pack_timeval, timeval_to_ms, timeval_to_seconds, \
    unpack_timeval

logger = logging.getLogger(__name__)

_would_block = (errno.EAGAIN, errno.EWOULDBLOCK)

# wait for up to a second for unsent data to be delivered when closing
LINGER_SECONDS = 1


class _Eof:
    """ returned by reads when no data is available: the peer closed its side or the read timed out. """

    def __bool__(self):
        return False

    def __len__(self):
        return 0

    def __repr__(self):
        return 'EOF'


EOF = _Eof()


def _is_would_block(e: OSError):
    return isinstance(e, (BlockingIOError, socket.timeout)) or e.errno in _would_block


class BlockingChannel(Conduit):
    """
    Wraps a connected socket. The channel owns the socket and closes it on close().

    :param sock: the connected socket
    """

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._state = ChannelState.OPEN
        # timeouts are enforced by the socket options, not by the python socket timeout
        sock.setblocking(True)
        self._input = ChannelReader(self)
        self._output = ChannelWriter(self)

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is ChannelState.CLOSED

    @property
    def socket(self) -> socket.socket:
        return self._sock

    @property
    def target(self):
        return self._sock

    @property
    def input(self):
        return self._input

    @property
    def output(self):
        return self._output

    @property
    def open(self) -> bool:
        return self.is_open()

    def is_open(self) -> bool:
        """
        Determines if the socket is present and has no exceptional condition pending.

        This is a liveness hint rather than a guarantee: a zero-timeout probe only sees conditions
        visible locally, and does not detect every form of closure by the peer.
        :raises TransportError: if the socket could not be examined
        """
        if self.closed or self._sock is None or self._sock.fileno() < 0:
            return False
        _, _, exceptional = self._select([], [], 0)
        return not exceptional

    def has_data(self) -> bool:
        """
        Determines if data is waiting to be read, without blocking.
        :raises TransportError: if the socket could not be examined
        """
        self._check_open()
        readable, _, _ = self._select([self._sock], [], 0, exceptional=False)
        return bool(readable)

    def read(self, max_length):
        """
        Reads up to max_length bytes with a single receive. Fewer bytes may be returned.
        :return: the bytes read, or EOF if the receive timed out or the peer closed the connection
        :raises TransportError: for any other failure
        """
        return self._receive(max_length, 0)

    def peek(self, max_length):
        """
        As read(), but the data remains queued on the socket.
        """
        return self._receive(max_length, socket.MSG_PEEK)

    def read_all(self, length) -> bytes:
        """
        Reads exactly length bytes, waiting up to the receive timeout each time no data is available.
        :raises ChannelTimeoutError: if no data arrived within the receive timeout
        :raises TransportError: on a socket error, or if the peer closed the connection first
        """
        self._check_open()
        data = bytearray()
        timeout = self._timeout(socket.SO_RCVTIMEO)
        while len(data) < length:
            chunk = self._receive_available(length - len(data))
            if chunk is not None:
                if not chunk:
                    raise TransportError("Connection closed by peer after %d of %d bytes" % (len(data), length))
                data += chunk
                if len(data) == length:
                    break
            # wait for data to be available, up to timeout
            readable, _, exceptional = self._select([self._sock], [], timeout)
            if exceptional:
                raise TransportError("Socket exception while waiting for data; %s" % self._pending_error_text(),
                                     self._pending_errno())
            if not readable:
                raise ChannelTimeoutError("Timed out waiting for data on socket", self.recv_timeout)
        return bytes(data)

    def write(self, buffer, chunk_size=None):
        """
        Writes chunk_size bytes from the start of buffer, by default all of it, waiting up to the send timeout
        each time the socket accepts only part of the data.
        :raises ChannelTimeoutError: if the socket did not become writable within the send timeout
        :raises TransportError: on a socket error
        """
        self._check_open()
        view = memoryview(buffer).cast('B')
        if chunk_size is None:
            chunk_size = len(view)
        if chunk_size < 0:
            raise ValueError("chunk_size must not be negative: %s" % chunk_size)
        remaining = min(chunk_size, len(view))
        offset = 0
        timeout = self._timeout(socket.SO_SNDTIMEO)
        while remaining > 0:
            try:
                wrote = self._sock.send(view[offset:offset + remaining])
            except OSError as e:
                if not _is_would_block(e):
                    raise TransportError("Could not write %d bytes to socket; %s" % (remaining, os_error_text(e)),
                                         e.errno) from e
                wrote = 0
            remaining -= wrote
            offset += wrote
            if remaining == 0:
                break
            # wait for the socket to accept more data, up to timeout
            _, writable, exceptional = self._select([], [self._sock], timeout)
            if exceptional:
                raise TransportError("Socket exception while waiting to write data; %s" % self._pending_error_text(),
                                     self._pending_errno())
            if not writable:
                raise ChannelTimeoutError("Timed out waiting to write data on socket", self.send_timeout)

    def close(self):
        """
        Closes the socket, lingering so that data already written is delivered rather than discarded.
        Closing a closed channel does nothing.
        """
        if self.closed:
            return
        self._state = ChannelState.CLOSED
        sock = self._sock
        try:
            sock.setblocking(True)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack('ii', 1, LINGER_SECONDS))
        except OSError as e:
            # the peer may have reset the connection already
            logger.debug("could not set linger on socket: %s" % os_error_text(e))
        finally:
            sock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def send_timeout(self):
        """ the send timeout in milliseconds """
        return timeval_to_ms(*self._timeval(socket.SO_SNDTIMEO))

    @send_timeout.setter
    def send_timeout(self, ms):
        self.set_socket_option(socket.SO_SNDTIMEO, pack_timeval(ms))

    @property
    def recv_timeout(self):
        """ the receive timeout in milliseconds """
        return timeval_to_ms(*self._timeval(socket.SO_RCVTIMEO))

    @recv_timeout.setter
    def recv_timeout(self, ms):
        self.set_socket_option(socket.SO_RCVTIMEO, pack_timeval(ms))

    def get_socket_option(self, option, level=SOL_SOCKET, buflen=None):
        self._check_open()
        try:
            if buflen is None:
                return self._sock.getsockopt(level, option)
            return self._sock.getsockopt(level, option, buflen)
        except OSError as e:
            raise TransportError("Could not get socket option %s; %s" % (option, os_error_text(e)), e.errno) from e

    def set_socket_option(self, option, value, level=SOL_SOCKET):
        self._check_open()
        try:
            self._sock.setsockopt(level, option, value)
        except OSError as e:
            raise TransportError("Could not set socket option %s; %s" % (option, os_error_text(e)), e.errno) from e

    def _check_open(self):
        if self.closed:
            raise TransportError("Channel is closed")

    def _timeval(self, option):
        return unpack_timeval(self.get_socket_option(option, buflen=TIMEVAL_SIZE))

    def _timeout(self, option):
        """ the timeout held in a socket option as seconds for select(). A zero timeout never expires. """
        seconds = timeval_to_seconds(*self._timeval(option))
        return seconds or None

    def _receive(self, max_length, flags):
        self._check_open()
        try:
            data = self._sock.recv(max_length, flags)
        except OSError as e:
            # sockets give EAGAIN on timeout
            if _is_would_block(e):
                return EOF
            raise TransportError("Could not read %d bytes from socket; %s" % (max_length, os_error_text(e)),
                                 e.errno) from e
        return data or EOF

    def _receive_available(self, max_length):
        """
        Receives whatever is available without waiting.
        :return: the data, b'' if the peer closed the connection, or None if no data is available
        """
        try:
            return self._sock.recv(max_length, socket.MSG_DONTWAIT)
        except OSError as e:
            if _is_would_block(e):
                return None
            raise TransportError("Could not read %d bytes from socket; %s" % (max_length, os_error_text(e)),
                                 e.errno) from e

    def _select(self, readers, writers, timeout, exceptional=True):
        try:
            return select.select(readers, writers, [self._sock] if exceptional else [], timeout)
        except (OSError, ValueError) as e:
            raise TransportError("Could not examine socket; %s" % e, getattr(e, 'errno', None)) from e

    def _pending_errno(self):
        try:
            return self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as e:
            return e.errno

    def _pending_error_text(self):
        code = self._pending_errno()
        return os.strerror(code) if code else 'no error pending'


class ChannelReader(io.RawIOBase):
    """ a raw input stream over a channel. A read that times out is reported as end of stream. """

    def __init__(self, channel: BlockingChannel):
        self.channel = channel

    def readable(self):
        return True

    def readinto(self, b):
        data = self.channel.read(len(b))
        if not data:
            return 0
        n = len(data)
        b[:n] = data
        return n


class ChannelWriter(io.RawIOBase):
    """ a raw output stream over a channel. Writes are complete or raise. """

    def __init__(self, channel: BlockingChannel):
        self.channel = channel

    def writable(self):
        return True

    def write(self, b):
        self.channel.write(b)
        return memoryview(b).nbytes
