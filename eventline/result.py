"""
Result - Represents the outcome of an event execution, plus the records the
chain builds from outcomes (EventFailure, ChainResult).
"""


class Result:
    """
    Represents the outcome of an event execution.
    Contains success status and optional error information.
    """

    def __init__(self, success, error=None, data=None, critical=False):
        """
        Initialize a Result.

        Args:
            success: Boolean indicating if the event succeeded
            error: Optional error message or exception
            data: Optional additional data about the result
            critical: Whether a failure should fail a LENIENT chain
        """
        self.success = success
        self.error = error
        self.data = data
        self.critical = critical

    @staticmethod
    def ok(data=None):
        """
        Create a successful result.

        Args:
            data: Optional data to include with the success result

        Returns:
            Result instance indicating success
        """
        return Result(True, data=data)

    @staticmethod
    def fail(error, data=None, critical=False):
        """
        Create a failed result.

        Args:
            error: Error message or exception
            data: Optional additional data about the failure
            critical: Mark the failure as critical (see LenientPolicy)

        Returns:
            Result instance indicating failure
        """
        return Result(False, error=error, data=data, critical=critical)

    def is_success(self):
        """Return True if the result indicates success."""
        return self.success

    def is_failure(self):
        """Return True if the result indicates failure."""
        return not self.success

    def __bool__(self):
        """Allow Result to be used in boolean context (if result: ...)"""
        return self.success

    def __eq__(self, other):
        if not isinstance(other, Result):
            return NotImplemented
        return (self.success, self.error, self.data, self.critical) == \
            (other.success, other.error, other.data, other.critical)

    __hash__ = None

    def __repr__(self):
        if self.success:
            return f"Result.ok(data={self.data})"
        return f"Result.fail(error={self.error}, data={self.data}, critical={self.critical})"

    def __str__(self):
        if self.success:
            return "Success"
        return f"Failure: {self.error}"


class EventFailure:
    """
    A failure recorded by the chain for one event.

    Attributes:
        event: Name of the failing event
        index: Position of the event in the chain
        cause: Error description or exception carried by the failed Result
        critical: Whether the failure counts as critical
        exception: The exception for contained defects, None for business failures
    """

    def __init__(self, event, index, cause, critical=False, exception=None):
        self.event = event
        self.index = index
        self.cause = cause
        self.critical = critical
        self.exception = exception

    @property
    def is_defect(self):
        """True when the failure came from an exception rather than a Result."""
        return self.exception is not None

    def to_dict(self):
        return {
            'event': self.event,
            'index': self.index,
            'cause': self.cause,
            'critical': self.critical,
        }

    def __repr__(self):
        return (f"EventFailure(event={self.event!r}, index={self.index}, "
                f"cause={self.cause!r}, critical={self.critical})")


class ChainStatus:
    """Overall status of a chain execution."""
    SUCCESS = "success"
    FAILURE = "failure"


class ChainResult:
    """
    The value returned by EventChain.execute().

    Attributes:
        status: ChainStatus.SUCCESS or ChainStatus.FAILURE
        context: The EventContext the chain ran against
        failures: Ordered list of EventFailure records (empty if none)
        halted: True if the policy (or a contract violation) stopped the chain early
        events_executed: Number of events that produced an outcome
        halting_failure: The EventFailure that stopped the chain, or None when
            the chain ran to the end or a policy halted it after a success
    """

    def __init__(self, status, context, failures=None, halted=False, events_executed=0,
                 halting_failure=None):
        self.status = status
        self.context = context
        self.failures = list(failures) if failures else []
        self.halted = halted
        self.events_executed = events_executed
        self.halting_failure = halting_failure

    @property
    def success(self):
        return self.status == ChainStatus.SUCCESS

    @property
    def error(self):
        """
        Cause of the failure that halted the chain.

        A chain halted after a successful event has no error. A chain that ran
        to the end reports its first failure, if any.
        """
        if self.halted:
            return self.halting_failure.cause if self.halting_failure else None
        if not self.failures:
            return None
        return self.failures[0].cause

    def is_success(self):
        return self.success

    def is_failure(self):
        return not self.success

    def __bool__(self):
        return self.success

    def __repr__(self):
        return (f"ChainResult(status={self.status}, failures={len(self.failures)}, "
                f"halted={self.halted}, events_executed={self.events_executed})")
