"""
Conversions between millisecond timeouts and the (seconds, microseconds) pairs used by the
SO_SNDTIMEO and SO_RCVTIMEO socket options.
"""
import struct

# struct timeval is two native longs on the platforms we support
TIMEVAL_FORMAT = 'll'
TIMEVAL_SIZE = struct.calcsize(TIMEVAL_FORMAT)


def ms_to_timeval(ms):
    """
    Converts a timeout in milliseconds to a (seconds, microseconds) pair.

    >>> ms_to_timeval(1500)
    (1, 500000)
    >>> ms_to_timeval(0)
    (0, 0)
    """
    if ms < 0:
        raise ValueError("timeout must not be negative: %s" % ms)
    usec = int(ms) * 1000
    return usec // 1000000, usec % 1000000


def timeval_to_ms(seconds, microseconds):
    """
    >>> timeval_to_ms(1, 500000)
    1500
    """
    return seconds * 1000 + microseconds // 1000


def timeval_to_seconds(seconds, microseconds):
    """
    The timeval as fractional seconds, suitable for select().
    >>> timeval_to_seconds(0, 250000)
    0.25
    """
    return seconds + microseconds / 1000000


def pack_timeval(ms):
    """ packs a millisecond timeout into the binary struct timeval expected by setsockopt(). """
    return struct.pack(TIMEVAL_FORMAT, *ms_to_timeval(ms))


def unpack_timeval(data):
    """ unpacks the binary struct timeval returned by getsockopt() into (seconds, microseconds). """
    return struct.unpack(TIMEVAL_FORMAT, data)
