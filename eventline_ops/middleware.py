"""
Operational Middleware for eventline

Middleware that wraps events to provide:
- Logging of every event through the logging module
- Performance profiling
- Exception containment
- Timeouts
- Circuit breaking and caching (short-circuiting middleware)
- JSONL audit logs
- Metrics export (Prometheus, StatsD, JSON)
"""

import copy
import datetime
import json
import logging
import threading
import time
import uuid

import numpy as np

from eventline import ContractViolation, Middleware, Result, event_name

logger = logging.getLogger(__name__)


class LoggingMiddleware(Middleware):
    """
    Log the start and end of every event.

    Successes are logged at the configured level, failures at WARNING.
    """

    def __init__(self, logger=None, level=logging.INFO):
        """
        Initialize the LoggingMiddleware.

        Args:
            logger: Logger to write to (default: this module's logger)
            level: Level for start/success records
        """
        self.logger = logger or logging.getLogger(__name__)
        self.level = level

    def execute(self, event, context, next_callable):
        self.logger.log(self.level, "-> %s", event_name(event))

        start = time.perf_counter()
        result = next_callable(context)
        elapsed = (time.perf_counter() - start) * 1000

        if result.success:
            self.logger.log(self.level, "<- %s ok (%.2f ms)", event_name(event), elapsed)
        else:
            self.logger.warning("<- %s failed (%.2f ms): %s", event_name(event), elapsed, result.error)

        return result


class PerformanceProfilerMiddleware(Middleware):
    """
    Profile the execution time of each event.

    Tracks:
    - Time per event (mean, min, max, p50, p95)
    - Total time spent in each event
    - Number of calls
    """

    def __init__(self):
        self.timings = {}
        self.start_time = None

    def execute(self, event, context, next_callable):
        if self.start_time is None:
            self.start_time = time.perf_counter()

        start = time.perf_counter()
        try:
            return next_callable(context)
        finally:
            elapsed = (time.perf_counter() - start) * 1000  # Convert to ms
            self.timings.setdefault(event_name(event), []).append(elapsed)

    def get_report(self):
        """Generate a performance report, one entry per event name."""
        report = []

        for event, times in sorted(self.timings.items()):
            samples = np.asarray(times, dtype=float)
            report.append({
                'event': event,
                'avg_ms': float(samples.mean()),
                'min_ms': float(samples.min()),
                'max_ms': float(samples.max()),
                'p50_ms': float(np.percentile(samples, 50)),
                'p95_ms': float(np.percentile(samples, 95)),
                'total_ms': float(samples.sum()),
                'calls': int(samples.size),
            })

        return report

    def print_report(self):
        """Print a formatted performance report."""
        print("\n" + "=" * 90)
        print("Performance Profiling Report")
        print("=" * 90)

        print(f"{'Event':<30} {'Avg (ms)':>10} {'P50 (ms)':>10} {'P95 (ms)':>10} "
              f"{'Max (ms)':>10} {'Total (ms)':>12} {'Calls':>6}")
        print("-" * 90)

        total_time_all = 0.0
        for entry in self.get_report():
            print(f"{entry['event']:<30} "
                  f"{entry['avg_ms']:>10.2f} "
                  f"{entry['p50_ms']:>10.2f} "
                  f"{entry['p95_ms']:>10.2f} "
                  f"{entry['max_ms']:>10.2f} "
                  f"{entry['total_ms']:>12.2f} "
                  f"{entry['calls']:>6}")
            total_time_all += entry['total_ms']

        print("-" * 90)
        print(f"{'TOTAL':<30} {'':<10} {'':<10} {'':<10} {'':<10} {total_time_all:>12.2f}")

        if self.start_time:
            elapsed_seconds = time.perf_counter() - self.start_time
            print(f"\nTotal wall time: {elapsed_seconds:.2f}s")

        print("=" * 90)

    def reset(self):
        """Reset all timing data."""
        self.timings.clear()
        self.start_time = None


class ErrorHandlingMiddleware(Middleware):
    """
    Turn exceptions escaping the inner pipeline into failure Results.

    Contract violations are never converted: they stay fatal.
    """

    def __init__(self, reraise=(), critical=False):
        """
        Initialize the ErrorHandlingMiddleware.

        Args:
            reraise: Exception types to let through unchanged
            critical: Mark the converted failures as critical
        """
        self.reraise = tuple(reraise)
        self.critical = critical
        self.errors = []

    def execute(self, event, context, next_callable):
        try:
            return next_callable(context)
        except ContractViolation:
            raise
        except Exception as e:
            if self.reraise and isinstance(e, self.reraise):
                raise
            logger.error("%s raised %s: %s", event_name(event), type(e).__name__, e, exc_info=True)
            self.errors.append((event_name(event), e))
            return Result.fail(f"{type(e).__name__}: {e}", data={'exception': e},
                               critical=self.critical)


class TimeoutMiddleware(Middleware):
    """
    Fail an event that does not finish within a deadline.

    The rest of the pipeline runs on a worker thread. When the deadline
    passes the middleware returns a failure straight away; the worker is not
    killed and may still finish (and touch the context) later.
    """

    def __init__(self, seconds):
        """
        Initialize the TimeoutMiddleware.

        Args:
            seconds: Deadline per event, in seconds
        """
        if seconds <= 0:
            raise ValueError("seconds must be positive")
        self.seconds = seconds
        self.timeouts = []

    def execute(self, event, context, next_callable):
        outcome = {}

        def run():
            try:
                outcome['result'] = next_callable(context)
            except Exception as e:
                outcome['error'] = e

        worker = threading.Thread(target=run, name=f"timeout-{event_name(event)}", daemon=True)
        worker.start()
        worker.join(self.seconds)

        if worker.is_alive():
            logger.warning("%s timed out after %ss", event_name(event), self.seconds)
            self.timeouts.append(event_name(event))
            return Result.fail(f"{event_name(event)} timed out after {self.seconds}s",
                               data={'timeout': self.seconds})

        if 'error' in outcome:
            raise outcome['error']
        return outcome['result']


class CircuitState:
    """States of a circuit breaker."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class _Circuit:
    def __init__(self):
        self.state = CircuitState.CLOSED
        self.failures = 0
        self.opened_at = None


class CircuitBreakerMiddleware(Middleware):
    """
    Stop calling an event that keeps failing.

    One circuit per event name. After failure_threshold consecutive failures
    the circuit opens and the event is short-circuited with a failure. Once
    reset_timeout seconds have passed, one trial call is let through
    (half-open): success closes the circuit, failure opens it again.
    """

    def __init__(self, failure_threshold=3, reset_timeout=30.0, clock=time.monotonic):
        """
        Initialize the CircuitBreakerMiddleware.

        Args:
            failure_threshold: Consecutive failures before the circuit opens
            reset_timeout: Seconds to wait before a half-open trial
            clock: Callable returning seconds; inject a fake in tests
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.clock = clock
        self._circuits = {}

    def state(self, name):
        """Return the CircuitState for an event name."""
        circuit = self._circuits.get(name)
        return circuit.state if circuit else CircuitState.CLOSED

    def execute(self, event, context, next_callable):
        circuit = self._circuits.setdefault(event_name(event), _Circuit())

        if circuit.state == CircuitState.OPEN:
            if self.clock() - circuit.opened_at < self.reset_timeout:
                return Result.fail(f"Circuit open for {event_name(event)}", data={'circuit': CircuitState.OPEN})
            circuit.state = CircuitState.HALF_OPEN
            logger.info("Circuit for %s half-open, allowing trial call", event_name(event))

        try:
            result = next_callable(context)
        except Exception:
            self._record_failure(event_name(event), circuit)
            raise

        if result.success:
            circuit.state = CircuitState.CLOSED
            circuit.failures = 0
            circuit.opened_at = None
        else:
            self._record_failure(event_name(event), circuit)
        return result

    def _record_failure(self, name, circuit):
        circuit.failures += 1
        if circuit.state == CircuitState.HALF_OPEN or circuit.failures >= self.failure_threshold:
            circuit.state = CircuitState.OPEN
            circuit.opened_at = self.clock()
            logger.warning("Circuit for %s opened after %d failure(s)", name, circuit.failures)

    def reset(self):
        """Close every circuit."""
        self._circuits.clear()


class CacheMiddleware(Middleware):
    """
    Short-circuit events whose successful outcome is already known.

    key_func(event, context) returns a hashable cache key, or None to skip
    caching for that call. On a miss the event runs; if it succeeds its
    Result and the context entries it added or replaced are stored. On a hit
    the stored entries are written back and the stored Result returned
    without running the event.
    """

    def __init__(self, key_func):
        self.key_func = key_func
        self._cache = {}
        self.hits = 0
        self.misses = 0

    def execute(self, event, context, next_callable):
        key = self.key_func(event, context)
        if key is None:
            return next_callable(context)

        cache_key = (event_name(event), key)
        if cache_key in self._cache:
            result, changes = self._cache[cache_key]
            for name, value in copy.deepcopy(changes).items():
                context.set(name, value)
            self.hits += 1
            return result

        self.misses += 1
        before = context.to_dict()
        result = next_callable(context)

        if result.success:
            changes = {
                name: value for name, value in context.items()
                if not name.startswith('_') and (name not in before or before[name] is not value)
            }
            self._cache[cache_key] = (result, copy.deepcopy(changes))
        return result

    def clear(self):
        """Drop all cached outcomes."""
        self._cache.clear()
        self.hits = 0
        self.misses = 0


def _snapshot(context, exclude):
    """JSON-friendly copy of the public context entries."""
    snapshot = {}
    for key, value in context.items():
        if key.startswith('_') or key in exclude:
            continue
        if isinstance(value, (int, float, str, bool, list, dict)) or value is None:
            snapshot[key] = value
        elif hasattr(value, 'item'):  # numpy scalars
            try:
                snapshot[key] = value.item()
            except (TypeError, ValueError):
                continue
    return snapshot


class AuditLogMiddleware(Middleware):
    """
    Write a JSONL audit trail of every event.

    Logs session start/end and, per event, a start and a completion record
    with a snapshot of the public context. Useful for reproducibility,
    compliance and post-mortem debugging.
    """

    def __init__(self, log_file='audit_log.jsonl', log_to_console=False, exclude_keys=()):
        """
        Initialize the AuditLogMiddleware.

        Args:
            log_file: Path to JSONL audit log file
            log_to_console: Whether to also log records through the logging module
            exclude_keys: Context keys left out of snapshots
        """
        self.log_file = log_file
        self.log_to_console = log_to_console
        self.exclude_keys = set(exclude_keys)
        self.event_counter = 0
        self.session_id = f"{datetime.datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"

        self._write_log({
            'type': 'session_start',
            'session_id': self.session_id,
            'timestamp': datetime.datetime.now().isoformat(),
        })

    def execute(self, event, context, next_callable):
        self.event_counter += 1
        event_id = self.event_counter

        self._write_log({
            'type': 'event_start',
            'session_id': self.session_id,
            'event_id': event_id,
            'event_name': event_name(event),
            'timestamp': datetime.datetime.now().isoformat(),
            'context': _snapshot(context, self.exclude_keys),
        })

        start_time = datetime.datetime.now()
        result = None
        error = None
        try:
            result = next_callable(context)
            return result
        except Exception as e:
            error = e
            raise
        finally:
            end_time = datetime.datetime.now()
            post_log = {
                'type': 'event_complete',
                'session_id': self.session_id,
                'event_id': event_id,
                'event_name': event_name(event),
                'timestamp': end_time.isoformat(),
                'duration_ms': (end_time - start_time).total_seconds() * 1000,
                'success': result is not None and result.success,
            }
            if error is not None:
                post_log['error'] = f"{type(error).__name__}: {error}"
            elif result is not None and not result.success:
                post_log['error'] = str(result.error)
            post_log['context'] = _snapshot(context, self.exclude_keys)
            self._write_log(post_log)

    def _write_log(self, log_entry):
        """Write a log entry to the audit log file."""
        line = json.dumps(log_entry, default=str)

        if self.log_to_console:
            logger.info("[AUDIT] %s", line)

        try:
            with open(self.log_file, 'a') as f:
                f.write(line + '\n')
        except OSError as e:
            logger.warning("Failed to write audit log %s: %s", self.log_file, e)

    def close(self):
        """Close the audit log session."""
        self._write_log({
            'type': 'session_end',
            'session_id': self.session_id,
            'timestamp': datetime.datetime.now().isoformat(),
            'total_events': self.event_counter,
        })


def _label(value):
    """Escape a Prometheus label value."""
    return str(value).replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n')


class MetricsCollectorMiddleware(Middleware):
    """
    Collect and export metrics for monitoring systems (Prometheus, StatsD, etc.).

    Tracks:
    - Event execution counts
    - Event durations
    - Failure counts
    - Gauges read from selected context keys
    """

    FORMATS = ('prometheus', 'statsd', 'json')

    def __init__(self, export_format='prometheus', export_file='metrics.txt', gauge_keys=()):
        """
        Initialize the MetricsCollectorMiddleware.

        Args:
            export_format: Format for metrics export ('prometheus', 'statsd', 'json')
            export_file: File to export metrics to
            gauge_keys: Numeric context keys reported as gauges
        """
        if export_format not in self.FORMATS:
            raise ValueError(f"Unknown export format: {export_format!r}")
        self.export_format = export_format
        self.export_file = export_file
        self.gauge_keys = tuple(gauge_keys)

        self.event_counts = {}
        self.event_durations = {}
        self.event_failures = {}
        self.gauges = {}
        self.start_time = time.time()

    def execute(self, event, context, next_callable):
        name = event_name(event)
        if name not in self.event_counts:
            self.event_counts[name] = 0
            self.event_durations[name] = []
            self.event_failures[name] = 0

        start = time.perf_counter()
        result = None
        try:
            result = next_callable(context)
            return result
        finally:
            duration = time.perf_counter() - start
            self.event_counts[name] += 1
            self.event_durations[name].append(duration)
            if result is None or not result.success:
                self.event_failures[name] += 1

            for key in self.gauge_keys:
                if context.has(key):
                    self.gauges[key] = context.get(key)

    def render(self):
        """Render metrics in the configured format."""
        if self.export_format == 'prometheus':
            return self._render_prometheus()
        if self.export_format == 'json':
            return json.dumps(self._as_dict(), indent=2, default=str)
        return self._render_statsd()

    def export_metrics(self):
        """Export metrics to export_file in the configured format."""
        with open(self.export_file, 'w') as f:
            f.write(self.render())

    def _render_prometheus(self):
        lines = []
        lines.append("# HELP eventline_event_count Total number of event executions")
        lines.append("# TYPE eventline_event_count counter")
        for event, count in self.event_counts.items():
            lines.append(f'eventline_event_count{{event="{_label(event)}"}} {count}')

        lines.append("\n# HELP eventline_event_duration_seconds Average event execution duration")
        lines.append("# TYPE eventline_event_duration_seconds gauge")
        for event, durations in self.event_durations.items():
            if durations:
                lines.append(f'eventline_event_duration_seconds{{event="{_label(event)}"}} '
                             f'{sum(durations) / len(durations)}')

        lines.append("\n# HELP eventline_event_failures Total number of event failures")
        lines.append("# TYPE eventline_event_failures counter")
        for event, failures in self.event_failures.items():
            lines.append(f'eventline_event_failures{{event="{_label(event)}"}} {failures}')

        if self.gauges:
            lines.append("\n# HELP eventline_context_gauge Values read from the context")
            lines.append("# TYPE eventline_context_gauge gauge")
            for key, value in self.gauges.items():
                lines.append(f'eventline_context_gauge{{key="{_label(key)}"}} {value}')

        return '\n'.join(lines)

    def _render_statsd(self):
        lines = []
        for event, count in self.event_counts.items():
            lines.append(f"eventline.event.count.{event}:{count}|c")

        for event, durations in self.event_durations.items():
            if durations:
                avg_duration = sum(durations) / len(durations) * 1000  # Convert to ms
                lines.append(f"eventline.event.duration.{event}:{avg_duration:.2f}|ms")

        for event, failures in self.event_failures.items():
            if failures > 0:
                lines.append(f"eventline.event.failures.{event}:{failures}|c")

        for key, value in self.gauges.items():
            lines.append(f"eventline.context.{key}:{value}|g")

        return '\n'.join(lines)

    def _as_dict(self):
        metrics = {
            'timestamp': time.time(),
            'uptime_seconds': time.time() - self.start_time,
            'events': {},
            'gauges': self.gauges,
        }
        for event, durations in self.event_durations.items():
            metrics['events'][event] = {
                'count': self.event_counts[event],
                'failures': self.event_failures[event],
                'avg_duration_seconds': sum(durations) / len(durations) if durations else 0,
                'min_duration_seconds': min(durations) if durations else 0,
                'max_duration_seconds': max(durations) if durations else 0,
            }
        return metrics

    def get_summary(self):
        """Get a summary of collected metrics."""
        summary = {
            'total_events': sum(self.event_counts.values()),
            'total_failures': sum(self.event_failures.values()),
            'events': {},
        }

        for event, durations in self.event_durations.items():
            summary['events'][event] = {
                'count': self.event_counts[event],
                'failures': self.event_failures[event],
                'avg_duration_ms': sum(durations) / len(durations) * 1000 if durations else 0,
            }

        return summary
