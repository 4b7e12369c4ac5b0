"""
EventChain - Orchestrates sequential execution of events through middleware.
"""

import logging
import threading

from .context import EventContext
from .event import event_name
from .exceptions import ChainStateError, ContractViolation
from .pipeline import build_pipeline
from .policy import ExecutionState, FaultTolerance, Verdict, resolve_policy
from .result import ChainResult, ChainStatus, EventFailure, Result

logger = logging.getLogger(__name__)


class EventChain:
    """
    Orchestrates sequential execution of events through a middleware pipeline.

    The chain manages:
    - Sequential event execution
    - Middleware pipeline (last registered is outermost)
    - Failure handling based on fault tolerance
    - Shared context management

    One chain instance runs one execution at a time. Calling execute() again
    while it is running, or changing events/middleware mid-run, raises
    ChainStateError.
    """

    def __init__(self, fault_tolerance=FaultTolerance.STRICT, decision_function=None, name=None):
        """
        Initialize an EventChain.

        Args:
            fault_tolerance: How to handle failures (default: STRICT). A
                FaultTolerance constant or a Policy instance.
            decision_function: Function (ExecutionState) -> Verdict, required
                for FaultTolerance.CUSTOM
            name: Optional label used in logs and repr
        """
        self._events = []
        self._middleware = []
        self._fault_tolerance = fault_tolerance
        self._decision_function = decision_function
        self.name = name or self.__class__.__name__
        self._pipeline = None
        self._pipeline_built = False
        self._lock = threading.Lock()
        self._executing = False

    @property
    def events(self):
        return tuple(self._events)

    @property
    def middleware(self):
        return tuple(self._middleware)

    @property
    def fault_tolerance(self):
        return self._fault_tolerance

    @property
    def is_executing(self):
        return self._executing

    def _ensure_idle(self):
        if self._executing:
            raise ChainStateError(f"{self.name} cannot be modified while it is executing")

    def add_event(self, event):
        """
        Add an event to the chain.

        Args:
            event: ChainableEvent instance to add

        Returns:
            self (for method chaining)
        """
        self._ensure_idle()
        if not callable(getattr(event, 'execute', None)):
            raise TypeError(f"{event!r} has no execute(context) method")
        self._events.append(event)
        return self

    def add_events(self, *events):
        """Add several events in order."""
        for event in events:
            self.add_event(event)
        return self

    def use_middleware(self, middleware):
        """
        Add middleware to the chain.
        The last middleware added becomes the outermost layer.

        Args:
            middleware: Middleware instance to add

        Returns:
            self (for method chaining)
        """
        self._ensure_idle()
        if not callable(getattr(middleware, 'execute', None)):
            raise TypeError(f"{middleware!r} has no execute(event, context, next_callable) method")
        self._middleware.append(middleware)
        self._pipeline_built = False  # Invalidate cached pipeline
        return self

    def set_fault_tolerance(self, fault_tolerance, decision_function=None):
        """
        Select the fault tolerance mode.

        Args:
            fault_tolerance: FaultTolerance constant or Policy instance
            decision_function: Required for FaultTolerance.CUSTOM

        Returns:
            self (for method chaining)
        """
        self._ensure_idle()
        self._fault_tolerance = fault_tolerance
        self._decision_function = decision_function
        return self

    def execute(self, context=None):
        """
        Execute all events in the chain through the middleware pipeline.

        Args:
            context: EventContext, plain dict of initial data, or None for
                an empty context

        Returns:
            ChainResult with overall status, the context and recorded failures

        Raises:
            ConfigurationError: No usable fault tolerance policy
            ChainStateError: The chain is already executing
        """
        if not self._lock.acquire(blocking=False):
            raise ChainStateError(f"{self.name} is already executing")
        try:
            self._executing = True
            policy = resolve_policy(self._fault_tolerance, self._decision_function)

            # Build pipeline once and cache it
            if not self._pipeline_built:
                self._pipeline = build_pipeline(self._middleware)
                self._pipeline_built = True

            if not isinstance(context, EventContext):
                context = EventContext(context)

            return self._run(tuple(self._events), self._pipeline, policy, context)
        finally:
            self._executing = False
            self._lock.release()

    def _run(self, events, pipeline, policy, context):
        total = len(events)
        failures = []
        halted = False
        fatal = False
        halting_failure = None
        executed = 0

        logger.debug("%s: starting %d events with %r", self.name, total, policy)

        for index, event in enumerate(events):
            name = event_name(event)
            logger.debug("%s: event %d/%d %s", self.name, index + 1, total, name)

            exception = None
            try:
                result = pipeline(event, context)
            except ContractViolation as e:
                logger.error("%s: contract violation in %s: %s", self.name, name, e)
                exception = e
                fatal = True
                result = Result.fail(e, critical=True)
            except Exception as e:
                logger.exception("%s: unexpected error in %s", self.name, name)
                exception = e
                result = Result.fail(e)
            executed += 1

            failure = None
            if not result.success:
                failure = EventFailure(
                    name,
                    index,
                    result.error,
                    critical=bool(result.critical or getattr(event, 'critical', False)),
                    exception=exception,
                )
                failures.append(failure)
                context.set(f'_error_{name}', result.error)
                logger.warning("%s: %s failed: %s", self.name, name, result.error)

            if fatal:
                halted = True
                halting_failure = failure
                break

            state = ExecutionState(index, name, result, failures, total)
            try:
                verdict = policy.decide(state)
            except Exception as e:
                logger.exception("%s: %r could not decide after %s", self.name, policy, name)
                halting_failure = EventFailure(name, index, e, critical=True, exception=e)
                failures.append(halting_failure)
                if failure is None:
                    context.set(f'_error_{name}', e)
                fatal = halted = True
                break

            if verdict == Verdict.HALT:
                halted = True
                halting_failure = failure
                logger.info("%s: halted after %s (%d/%d events)",
                            self.name, name, executed, total)
                break

        status = ChainStatus.FAILURE if fatal else policy.final_status(failures, halted)
        logger.info("%s: finished with %s, %d failure(s)", self.name, status, len(failures))
        return ChainResult(status, context, failures, halted=halted, events_executed=executed,
                           halting_failure=halting_failure)

    def clear_events(self):
        """Remove all events from the chain."""
        self._ensure_idle()
        self._events.clear()
        return self

    def clear_middleware(self):
        """Remove all middleware from the chain."""
        self._ensure_idle()
        self._middleware.clear()
        self._pipeline_built = False
        return self

    def reset(self):
        """Clear both events and middleware."""
        self.clear_events()
        self.clear_middleware()
        return self

    def event_count(self):
        """Return the number of events in the chain."""
        return len(self._events)

    def middleware_count(self):
        """Return the number of middleware in the chain."""
        return len(self._middleware)

    def __repr__(self):
        return (f"EventChain(events={len(self._events)}, "
                f"middleware={len(self._middleware)}, "
                f"fault_tolerance={self._fault_tolerance})")
