import logging
import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, instance_of, calling, raises

from hostlink.support.trace import Tracer, NullTraceSink, LoggerTraceSink, CallableTraceSink, as_trace_sink, \
    TraceSink


class AsTraceSinkTest(unittest.TestCase):

    def test_none_is_null_sink(self):
        assert_that(as_trace_sink(None), is_(instance_of(NullTraceSink)))

    def test_sink_is_unchanged(self):
        sink = NullTraceSink()
        assert_that(as_trace_sink(sink), is_(sink))

    def test_logger(self):
        log = logging.getLogger('hostlink.test')
        sink = as_trace_sink(log)
        assert_that(sink, is_(instance_of(LoggerTraceSink)))
        assert_that(sink.logger, is_(log))

    def test_callable(self):
        fn = Mock()
        sink = as_trace_sink(fn)
        assert_that(sink, is_(instance_of(CallableTraceSink)))
        sink.trace('line')
        fn.assert_called_once_with('line')

    def test_invalid(self):
        assert_that(calling(as_trace_sink).with_args(42), raises(TypeError))

    def test_abstract(self):
        assert_that(calling(TraceSink().trace).with_args('x'), raises(NotImplementedError))


class TracerTest(unittest.TestCase):

    def test_formats_message(self):
        fn = Mock()
        sut = Tracer(fn)
        sut("Connecting to %s:%d...", '::1', 80)
        fn.assert_called_once_with("Connecting to ::1:80...")

    def test_disabled(self):
        fn = Mock()
        sut = Tracer(fn, enabled=False)
        sut("hello")
        fn.assert_not_called()

    def test_enabled_callable_is_read_each_time(self):
        fn = Mock()
        enabled = [False]
        sut = Tracer(fn, lambda: enabled[0])
        sut("one")
        enabled[0] = True
        sut("two")
        fn.assert_called_once_with("two")

    def test_sink_errors_are_not_raised(self):
        fn = Mock(side_effect=RuntimeError("sink broke"))
        sut = Tracer(fn)
        sut("hello")
        fn.assert_called_once_with("hello")

    def test_logger_sink(self):
        log = Mock()
        sut = Tracer(LoggerTraceSink(log))
        sut("hello %s", "world")
        log.log.assert_called_once_with(logging.DEBUG, "hello world")


if __name__ == '__main__':  # pragma no cover
    unittest.main()
