"""
Tests for operational middleware: Logging, Profiler, ErrorHandling, Timeout,
CircuitBreaker, Cache, AuditLog, MetricsCollector
"""

import json
import logging
import os
import tempfile
import threading
import unittest

from eventline import (
    ChainableEvent,
    EventChain,
    EventContext,
    FaultTolerance,
    Middleware,
    MiddlewareContractError,
    Result,
)
from eventline_ops import (
    AuditLogMiddleware,
    CacheMiddleware,
    CircuitBreakerMiddleware,
    CircuitState,
    ErrorHandlingMiddleware,
    FunctionEvent,
    LoggingMiddleware,
    MetricsCollectorMiddleware,
    PerformanceProfilerMiddleware,
    TimeoutMiddleware,
)


class DummyEvent(ChainableEvent):
    """Simple event for testing."""

    def __init__(self, should_fail=False, should_raise=False):
        self.should_fail = should_fail
        self.should_raise = should_raise

    def execute(self, context):
        context.set('calls', context.get('calls', 0) + 1)

        if self.should_raise:
            raise ValueError("Test exception")

        if self.should_fail:
            return Result.fail("Test failure")

        context.set('test_value', 42)
        return Result.ok()


class BlockingEvent(ChainableEvent):
    def __init__(self, release):
        self.release = release

    def execute(self, context):
        self.release.wait(5)
        context.set('late', True)
        return Result.ok()


class PlainEvent:
    """Has execute() but neither a name nor the ChainableEvent base."""

    def execute(self, context):
        context.set('plain', True)
        return Result.ok()


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestLoggingMiddleware(unittest.TestCase):

    def test_logs_success_and_failure(self):
        log = logging.getLogger('eventline_ops.tests.logging')
        chain = (EventChain(FaultTolerance.BEST_EFFORT)
            .add_event(DummyEvent())
            .add_event(DummyEvent(should_fail=True))
            .use_middleware(LoggingMiddleware(logger=log)))

        with self.assertLogs(log, level='INFO') as captured:
            chain.execute(EventContext())

        messages = [record.getMessage() for record in captured.records]
        self.assertEqual(messages[0], '-> DummyEvent')
        self.assertTrue(messages[1].startswith('<- DummyEvent ok'))
        self.assertIn('failed', messages[3])
        self.assertIn('Test failure', messages[3])
        self.assertEqual(captured.records[3].levelno, logging.WARNING)

    def test_event_without_name_uses_class_name(self):
        log = logging.getLogger('eventline_ops.tests.logging')
        metrics = MetricsCollectorMiddleware()
        chain = (EventChain()
            .add_event(PlainEvent())
            .use_middleware(PerformanceProfilerMiddleware())
            .use_middleware(CircuitBreakerMiddleware())
            .use_middleware(CacheMiddleware(lambda event, context: None))
            .use_middleware(metrics)
            .use_middleware(LoggingMiddleware(logger=log)))

        with self.assertLogs(log, level='INFO') as captured:
            result = chain.execute(EventContext())

        self.assertTrue(result.success)
        self.assertTrue(result.context.get('plain'))
        self.assertEqual(captured.records[0].getMessage(), '-> PlainEvent')
        self.assertEqual(metrics.event_counts, {'PlainEvent': 1})


class TestPerformanceProfilerMiddleware(unittest.TestCase):

    def test_report_per_event(self):
        profiler = PerformanceProfilerMiddleware()
        chain = (EventChain()
            .add_event(DummyEvent())
            .add_event(DummyEvent())
            .use_middleware(profiler))

        chain.execute(EventContext())

        report = profiler.get_report()
        self.assertEqual(len(report), 1)
        entry = report[0]
        self.assertEqual(entry['event'], 'DummyEvent')
        self.assertEqual(entry['calls'], 2)
        self.assertLessEqual(entry['min_ms'], entry['p50_ms'])
        self.assertLessEqual(entry['p95_ms'], entry['max_ms'])
        self.assertAlmostEqual(entry['total_ms'], entry['avg_ms'] * 2)

    def test_reset(self):
        profiler = PerformanceProfilerMiddleware()
        EventChain().add_event(DummyEvent()).use_middleware(profiler).execute()

        profiler.reset()

        self.assertEqual(profiler.get_report(), [])
        self.assertIsNone(profiler.start_time)


class TestErrorHandlingMiddleware(unittest.TestCase):

    def test_exception_becomes_failure(self):
        handler = ErrorHandlingMiddleware()
        chain = EventChain().add_event(DummyEvent(should_raise=True)).use_middleware(handler)

        result = chain.execute(EventContext())

        self.assertFalse(result.success)
        failure = result.failures[0]
        self.assertEqual(failure.cause, 'ValueError: Test exception')
        self.assertFalse(failure.is_defect)
        self.assertEqual(len(handler.errors), 1)

    def test_reraise_types_pass_through(self):
        chain = (EventChain()
            .add_event(DummyEvent(should_raise=True))
            .use_middleware(ErrorHandlingMiddleware(reraise=(ValueError,))))

        result = chain.execute(EventContext())

        self.assertTrue(result.failures[0].is_defect)
        self.assertIsInstance(result.failures[0].exception, ValueError)

    def test_contract_violations_are_not_swallowed(self):
        class Twice(Middleware):
            def execute(self, event, context, next_callable):
                next_callable(context)
                return next_callable(context)

        chain = (EventChain(FaultTolerance.BEST_EFFORT)
            .add_event(DummyEvent())
            .add_event(DummyEvent())
            .use_middleware(Twice())
            .use_middleware(ErrorHandlingMiddleware()))

        result = chain.execute(EventContext())

        self.assertFalse(result.success)
        self.assertTrue(result.halted)
        self.assertIsInstance(result.failures[0].exception, MiddlewareContractError)


class TestTimeoutMiddleware(unittest.TestCase):

    def test_fast_event_passes(self):
        chain = EventChain().add_event(DummyEvent()).use_middleware(TimeoutMiddleware(5))

        result = chain.execute(EventContext())

        self.assertTrue(result.success)
        self.assertEqual(result.context.get('test_value'), 42)

    def test_slow_event_times_out_without_waiting(self):
        release = threading.Event()
        timeout = TimeoutMiddleware(0.05)
        chain = (EventChain(FaultTolerance.BEST_EFFORT)
            .add_event(BlockingEvent(release))
            .add_event(DummyEvent())
            .use_middleware(timeout))

        context = EventContext()
        try:
            result = chain.execute(context)
        finally:
            release.set()

        self.assertTrue(result.success)
        self.assertEqual(len(result.failures), 1)
        self.assertIn('timed out', result.failures[0].cause)
        self.assertEqual(timeout.timeouts, ['BlockingEvent'])
        self.assertEqual(context.get('test_value'), 42)

    def test_exception_from_inner_stage_is_reraised(self):
        chain = EventChain().add_event(DummyEvent(should_raise=True)).use_middleware(TimeoutMiddleware(5))

        result = chain.execute(EventContext())

        self.assertIsInstance(result.failures[0].exception, ValueError)

    def test_rejects_non_positive_deadline(self):
        with self.assertRaises(ValueError):
            TimeoutMiddleware(0)


class TestCircuitBreakerMiddleware(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.breaker = CircuitBreakerMiddleware(failure_threshold=2, reset_timeout=10, clock=self.clock)
        self.chain = (EventChain(FaultTolerance.BEST_EFFORT)
            .add_event(DummyEvent(should_fail=True))
            .use_middleware(self.breaker))

    def test_opens_after_threshold_and_short_circuits(self):
        context = EventContext()
        self.chain.execute(context)
        self.chain.execute(context)
        self.assertEqual(self.breaker.state('DummyEvent'), CircuitState.OPEN)

        result = self.chain.execute(context)

        self.assertEqual(context.get('calls'), 2)  # Third call never reached the event
        self.assertEqual(result.failures[0].cause, 'Circuit open for DummyEvent')

    def test_half_open_trial_after_reset_timeout(self):
        context = EventContext()
        self.chain.execute(context)
        self.chain.execute(context)

        self.clock.now = 11
        self.chain.execute(context)

        self.assertEqual(context.get('calls'), 3)
        self.assertEqual(self.breaker.state('DummyEvent'), CircuitState.OPEN)

    def test_success_closes_circuit(self):
        breaker = CircuitBreakerMiddleware(failure_threshold=1, reset_timeout=10, clock=self.clock)
        EventChain().add_event(DummyEvent(should_fail=True)).use_middleware(breaker).execute()
        self.assertEqual(breaker.state('DummyEvent'), CircuitState.OPEN)

        self.clock.now = 20
        result = EventChain().add_event(DummyEvent()).use_middleware(breaker).execute()

        self.assertTrue(result.success)
        self.assertEqual(breaker.state('DummyEvent'), CircuitState.CLOSED)


class TestCacheMiddleware(unittest.TestCase):

    def test_hit_short_circuits_and_replays_context(self):
        runs = []

        def lookup(context):
            runs.append(context.get('input'))
            context.set('price', 9.5)

        cache = CacheMiddleware(lambda event, context: context.get('input', None))
        chain = EventChain().add_event(FunctionEvent(lookup)).use_middleware(cache)

        chain.execute({'input': 'a'})
        second = chain.execute({'input': 'a'})
        third = chain.execute({'input': 'b'})

        self.assertEqual(runs, ['a', 'b'])
        self.assertTrue(second.success)
        self.assertEqual(second.context.get('price'), 9.5)
        self.assertTrue(third.success)
        self.assertEqual((cache.hits, cache.misses), (1, 2))

    def test_replayed_values_are_not_shared_between_runs(self):
        def produce(context):
            context.set('items', [1])

        def extend(context):
            context.get('items').append(2)

        cache = CacheMiddleware(
            lambda event, context: 'items' if event.name == 'produce' else None)
        chain = (EventChain()
            .add_event(FunctionEvent(produce))
            .add_event(FunctionEvent(extend))
            .use_middleware(cache))

        first = chain.execute()
        second = chain.execute()

        self.assertEqual(first.context.get('items'), [1, 2])
        self.assertEqual(second.context.get('items'), [1, 2])
        self.assertEqual((cache.hits, cache.misses), (1, 1))

    def test_failures_are_not_cached(self):
        cache = CacheMiddleware(lambda event, context: 'key')
        chain = EventChain().add_event(DummyEvent(should_fail=True)).use_middleware(cache)

        chain.execute()
        chain.execute()

        self.assertEqual((cache.hits, cache.misses), (0, 2))

    def test_none_key_skips_cache(self):
        cache = CacheMiddleware(lambda event, context: None)
        chain = EventChain().add_event(DummyEvent()).use_middleware(cache)

        chain.execute()
        chain.execute()

        self.assertEqual((cache.hits, cache.misses), (0, 0))


class TestAuditLogMiddleware(unittest.TestCase):
    """Test AuditLogMiddleware functionality."""

    def setUp(self):
        self.temp_file = tempfile.NamedTemporaryFile(mode='w+', delete=False, suffix='.jsonl')
        self.temp_file.close()
        self.log_file = self.temp_file.name

    def tearDown(self):
        if os.path.exists(self.log_file):
            os.unlink(self.log_file)

    def read_lines(self):
        with open(self.log_file, 'r') as f:
            return [json.loads(line) for line in f if line.strip()]

    def test_audit_log_creation(self):
        audit_log = AuditLogMiddleware(log_file=self.log_file)

        self.assertIsNotNone(audit_log.session_id)
        self.assertEqual(audit_log.event_counter, 0)

        entries = self.read_lines()
        self.assertEqual(entries[0]['type'], 'session_start')
        self.assertEqual(entries[0]['session_id'], audit_log.session_id)

    def test_audit_log_event_execution(self):
        audit_log = AuditLogMiddleware(log_file=self.log_file, exclude_keys=('secret',))

        chain = (EventChain()
            .add_event(DummyEvent())
            .use_middleware(audit_log))

        result = chain.execute(EventContext({'input': 'test', 'secret': 'hunter2'}))
        self.assertTrue(result.success)

        entries = self.read_lines()
        self.assertEqual(len(entries), 3)

        event_start = entries[1]
        self.assertEqual(event_start['type'], 'event_start')
        self.assertEqual(event_start['event_name'], 'DummyEvent')
        self.assertEqual(event_start['context'], {'input': 'test'})

        event_complete = entries[2]
        self.assertEqual(event_complete['type'], 'event_complete')
        self.assertTrue(event_complete['success'])
        self.assertEqual(event_complete['context']['test_value'], 42)

    def test_audit_log_failure_and_close(self):
        audit_log = AuditLogMiddleware(log_file=self.log_file)

        chain = EventChain().add_event(DummyEvent(should_fail=True)).use_middleware(audit_log)
        chain.execute(EventContext())
        audit_log.close()

        entries = self.read_lines()
        self.assertFalse(entries[2]['success'])
        self.assertEqual(entries[2]['error'], 'Test failure')
        self.assertEqual(entries[3]['type'], 'session_end')
        self.assertEqual(entries[3]['total_events'], 1)

    def test_audit_log_records_raising_event(self):
        audit_log = AuditLogMiddleware(log_file=self.log_file)

        chain = EventChain().add_event(DummyEvent(should_raise=True)).use_middleware(audit_log)
        result = chain.execute(EventContext())

        self.assertFalse(result.success)
        entries = self.read_lines()
        self.assertEqual(entries[2]['type'], 'event_complete')
        self.assertFalse(entries[2]['success'])
        self.assertEqual(entries[2]['error'], 'ValueError: Test exception')


class TestMetricsCollectorMiddleware(unittest.TestCase):

    def setUp(self):
        self.metrics = MetricsCollectorMiddleware(gauge_keys=('test_value',))
        chain = (EventChain(FaultTolerance.BEST_EFFORT)
            .add_event(DummyEvent())
            .add_event(DummyEvent(should_fail=True))
            .use_middleware(self.metrics))
        chain.execute(EventContext())

    def test_summary(self):
        summary = self.metrics.get_summary()

        self.assertEqual(summary['total_events'], 2)
        self.assertEqual(summary['total_failures'], 1)
        self.assertEqual(summary['events']['DummyEvent']['count'], 2)
        self.assertEqual(self.metrics.gauges, {'test_value': 42})

    def test_prometheus_render(self):
        text = self.metrics.render()

        self.assertIn('eventline_event_count{event="DummyEvent"} 2', text)
        self.assertIn('eventline_event_failures{event="DummyEvent"} 1', text)
        self.assertIn('eventline_context_gauge{key="test_value"} 42', text)

    def test_statsd_and_json_render(self):
        self.metrics.export_format = 'statsd'
        self.assertIn('eventline.event.count.DummyEvent:2|c', self.metrics.render())

        self.metrics.export_format = 'json'
        data = json.loads(self.metrics.render())
        self.assertEqual(data['events']['DummyEvent']['failures'], 1)

    def test_export_writes_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            self.metrics.export_file = os.path.join(tmp, 'metrics.txt')
            self.metrics.export_metrics()

            with open(self.metrics.export_file) as f:
                self.assertEqual(f.read(), self.metrics.render())

    def test_raising_event_is_counted(self):
        metrics = MetricsCollectorMiddleware()
        chain = EventChain().add_event(DummyEvent(should_raise=True)).use_middleware(metrics)

        chain.execute(EventContext())

        self.assertEqual(metrics.event_counts, {'DummyEvent': 1})
        self.assertEqual(metrics.event_failures, {'DummyEvent': 1})
        self.assertEqual(len(metrics.event_durations['DummyEvent']), 1)

    def test_prometheus_labels_are_escaped(self):
        metrics = MetricsCollectorMiddleware()
        chain = (EventChain()
            .add_event(FunctionEvent(lambda context: None, name='Quote"Back\\slash'))
            .add_event(FunctionEvent(lambda context: None, name='line\nbreak'))
            .use_middleware(metrics))

        chain.execute(EventContext())
        text = metrics.render()

        self.assertIn('eventline_event_count{event="Quote\\"Back\\\\slash"} 1', text)
        self.assertIn('eventline_event_count{event="line\\nbreak"} 1', text)

    def test_unknown_format_rejected(self):
        with self.assertRaises(ValueError):
            MetricsCollectorMiddleware(export_format='xml')


if __name__ == '__main__':
    unittest.main()
