"""
Fault tolerance policies - decide whether the chain continues after each event,
and what the chain's overall status is once it stops.
"""

from .exceptions import ConfigurationError, PolicyDecisionError
from .result import ChainStatus


class FaultTolerance:
    """Enumeration of fault tolerance modes for event chains."""
    STRICT = "strict"           # Any failure stops the chain
    LENIENT = "lenient"         # Non-critical failures continue
    BEST_EFFORT = "best_effort" # All events attempted regardless of failures
    CUSTOM = "custom"           # User-defined failure handling


class Verdict:
    """What a policy tells the chain to do after an event."""
    CONTINUE = "continue"
    HALT = "halt"


class ExecutionState:
    """
    Snapshot of a chain execution handed to a policy after each event.

    Attributes:
        index: Position of the event that just ran
        event: Name of that event
        outcome: Result it produced (after all middleware)
        failures: Tuple of every EventFailure recorded so far, this one included
        total_events: Number of events in the chain
    """

    def __init__(self, index, event, outcome, failures, total_events):
        self.index = index
        self.event = event
        self.outcome = outcome
        self.failures = tuple(failures)
        self.total_events = total_events

    @property
    def failure_count(self):
        return len(self.failures)

    @property
    def is_last(self):
        return self.index == self.total_events - 1

    def __repr__(self):
        return (f"ExecutionState(index={self.index}, event={self.event!r}, "
                f"success={self.outcome.success}, failures={len(self.failures)})")


class Policy:
    """Base class for fault tolerance policies."""

    mode = None

    def decide(self, state):
        """Return Verdict.CONTINUE or Verdict.HALT for the given ExecutionState."""
        raise NotImplementedError(f"{self.__class__.__name__} must implement decide()")

    def final_status(self, failures, halted):
        """Return the ChainStatus for a finished execution."""
        raise NotImplementedError(f"{self.__class__.__name__} must implement final_status()")

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class StrictPolicy(Policy):
    """The first failure halts the chain; the chain fails."""

    mode = FaultTolerance.STRICT

    def decide(self, state):
        if state.outcome.success:
            return Verdict.CONTINUE
        return Verdict.HALT

    def final_status(self, failures, halted):
        return ChainStatus.FAILURE if failures else ChainStatus.SUCCESS


class LenientPolicy(Policy):
    """Never halts; the chain fails only if a critical failure was recorded."""

    mode = FaultTolerance.LENIENT

    def decide(self, state):
        return Verdict.CONTINUE

    def final_status(self, failures, halted):
        if any(failure.critical for failure in failures):
            return ChainStatus.FAILURE
        return ChainStatus.SUCCESS


class BestEffortPolicy(Policy):
    """Never halts; the chain succeeds once every event was attempted."""

    mode = FaultTolerance.BEST_EFFORT

    def decide(self, state):
        return Verdict.CONTINUE

    def final_status(self, failures, halted):
        return ChainStatus.SUCCESS


class CustomPolicy(Policy):
    """
    Delegates the continue/halt decision to a caller-supplied function.

    The function receives an ExecutionState and returns a Verdict. It should
    be pure: all the history it needs is in the state. A HALT verdict stops
    the chain like STRICT and fails it. An invalid verdict, or an exception
    from the function, is recorded as a critical failure and halts the chain.

    Example:
        def halt_after_three(state):
            if state.failure_count >= 3:
                return Verdict.HALT
            return Verdict.CONTINUE

        chain = EventChain(FaultTolerance.CUSTOM, decision_function=halt_after_three)
    """

    mode = FaultTolerance.CUSTOM

    def __init__(self, decision_function):
        if not callable(decision_function):
            raise ConfigurationError("CUSTOM fault tolerance requires a callable decision function")
        self.decision_function = decision_function

    def decide(self, state):
        verdict = self.decision_function(state)
        if verdict not in (Verdict.CONTINUE, Verdict.HALT):
            raise PolicyDecisionError(verdict)
        return verdict

    def final_status(self, failures, halted):
        return ChainStatus.FAILURE if halted else ChainStatus.SUCCESS

    def __repr__(self):
        name = getattr(self.decision_function, '__name__', repr(self.decision_function))
        return f"CustomPolicy({name})"


_POLICIES = {
    FaultTolerance.STRICT: StrictPolicy,
    FaultTolerance.LENIENT: LenientPolicy,
    FaultTolerance.BEST_EFFORT: BestEffortPolicy,
}


def resolve_policy(fault_tolerance, decision_function=None):
    """
    Turn a fault tolerance mode (or a ready Policy) into a Policy instance.

    Args:
        fault_tolerance: A FaultTolerance constant or a Policy instance
        decision_function: Required for FaultTolerance.CUSTOM

    Returns:
        Policy instance

    Raises:
        ConfigurationError: Unknown mode, or CUSTOM without a decision function
    """
    if isinstance(fault_tolerance, Policy):
        return fault_tolerance
    if fault_tolerance is None:
        raise ConfigurationError("No fault tolerance mode selected")
    if fault_tolerance == FaultTolerance.CUSTOM:
        if decision_function is None:
            raise ConfigurationError("CUSTOM fault tolerance requires a decision_function")
        return CustomPolicy(decision_function)
    try:
        return _POLICIES[fault_tolerance]()
    except (KeyError, TypeError):
        raise ConfigurationError(f"Unknown fault tolerance mode: {fault_tolerance!r}") from None
