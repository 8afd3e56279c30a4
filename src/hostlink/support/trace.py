"""
Debug trace sinks. The resolver and the establisher emit one formatted line per traced step
to a sink. A sink never changes the outcome of the operation being traced: exceptions raised by a
sink are logged and dropped.
"""
import logging
from abc import abstractmethod

logger = logging.getLogger(__name__)

trace_logger = logging.getLogger('hostlink.trace')


class TraceSink:
    """ Receives debug trace lines. """

    @abstractmethod
    def trace(self, line: str):
        raise NotImplementedError

    def __call__(self, line):
        self.trace(line)


class NullTraceSink(TraceSink):
    """ Discards all trace lines. """

    def trace(self, line):
        pass


class LoggerTraceSink(TraceSink):
    """ Writes trace lines to a logger at debug level. """

    def __init__(self, log=trace_logger, level=logging.DEBUG):
        self.logger = log
        self.level = level

    def trace(self, line):
        self.logger.log(self.level, line)


class CallableTraceSink(TraceSink):
    """ Adapts a single-argument callable, such as print. The return value is ignored. """

    def __init__(self, fn):
        self.fn = fn

    def trace(self, line):
        self.fn(line)


def as_trace_sink(sink) -> TraceSink:
    """
    Coerces the given value into a TraceSink.
    :param sink: None, a TraceSink, a logging.Logger or a callable.
    """
    if sink is None:
        return NullTraceSink()
    if isinstance(sink, TraceSink):
        return sink
    if isinstance(sink, logging.Logger):
        return LoggerTraceSink(sink)
    if callable(sink):
        return CallableTraceSink(sink)
    raise TypeError("cannot use %r as a trace sink" % sink)


class Tracer:
    """
    Emits trace lines to a sink when enabled.
    :param sink: the sink that receives the lines
    :param enabled: a callable returning whether tracing is on, or a bool
    """

    def __init__(self, sink=None, enabled=True):
        self.sink = as_trace_sink(sink)
        self._enabled = enabled

    @property
    def enabled(self):
        enabled = self._enabled
        return enabled() if callable(enabled) else bool(enabled)

    def __call__(self, message, *args):
        if not self.enabled:
            return
        try:
            line = message % args if args else message
            self.sink.trace(line)
        except Exception as e:
            logger.debug("trace sink %r failed: %s" % (self.sink, e))
